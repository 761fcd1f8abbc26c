"""Tests for the flow loader and tracing SDK."""

import httpx
import pytest

from cardflow.io import export_flow
from cardflow.sdk import FlowLoader, FlowLoaderError, enable_tracing, get_active_context

from flow_factory import counter_flow


class TestFlowLoader:
    def setup_method(self):
        self.requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            self.requests.append(request.url.path)
            if request.url.path == "/api/flows/flow-counter/export":
                return httpx.Response(200, json=export_flow(counter_flow()))
            if request.url.path == "/api/flows/broken/export":
                return httpx.Response(200, text="<html>oops</html>")
            if request.url.path == "/api/flows/crash/export":
                return httpx.Response(500, text="boom")
            return httpx.Response(404, json={"detail": "Flow not found"})

        self.loader = FlowLoader(base_url="http://cardflow.test/", transport=httpx.MockTransport(handler))

    def test_get_parses_and_caches(self):
        flow = self.loader.get("flow-counter")
        assert flow == counter_flow()
        assert self.loader.get("flow-counter") is flow
        assert self.requests == ["/api/flows/flow-counter/export"]

    def test_refresh_bypasses_cache(self):
        self.loader.get("flow-counter")
        self.loader.get("flow-counter", refresh=True)
        assert len(self.requests) == 2

    def test_clear_cache(self):
        self.loader.preload(["flow-counter"])
        self.loader.clear_cache()
        self.loader.get("flow-counter")
        assert len(self.requests) == 2

    @pytest.mark.parametrize("flow_id", ["missing", "broken", "crash"])
    def test_failures(self, flow_id):
        with pytest.raises(FlowLoaderError):
            self.loader.get(flow_id)


class TestTracingContext:
    def test_context_is_restored(self):
        assert get_active_context() is None
        with enable_tracing(trace_id="outer") as outer:
            with enable_tracing(trace_id="inner") as inner:
                assert get_active_context() is inner
            assert get_active_context() is outer
        assert get_active_context() is None

    def test_file_sink_location(self, tmp_path):
        with enable_tracing(trace_id="trace-9", output_dir=tmp_path) as ctx:
            ctx.emitter.emit_node_entered("start", "start", 1)
        assert (tmp_path / "trace-9" / "events.jsonl").exists()
        assert [e.node_id for e in ctx.events] == ["start"]

"""Tracing SDK - capture executor events without threading an emitter through.

Example:
    from cardflow.sdk import enable_tracing

    with enable_tracing() as ctx:
        result = await executor.run(flow, context, invoker)
    print(ctx.events)
"""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Generator

from cardflow.adapters.event_api import EventEmitter
from cardflow.adapters.sinks import EventSink, FileSink, ListSink
from cardflow.models.trace_event import TraceEvent
from cardflow.utils.identifiers import generate_execution_id, generate_trace_id


# set while an enable_tracing() block is open
_active_context: TracingContext | None = None


def get_active_context() -> TracingContext | None:
    """The tracing context of the innermost open enable_tracing() block.

    FlowExecutor falls back to this context's emitter when none is given.
    """
    return _active_context


@dataclass
class TracingContext:
    """Context object returned by enable_tracing()."""

    trace_id: str
    execution_id: str
    emitter: EventEmitter
    event_sink: EventSink

    @property
    def events(self) -> list[TraceEvent]:
        """Events captured so far (in-memory sinks only)."""
        if isinstance(self.event_sink, ListSink):
            return list(self.event_sink.events)
        if isinstance(self.event_sink, FileSink):
            return self.event_sink.read()
        return []


@contextmanager
def enable_tracing(
    trace_id: str | None = None,
    execution_id: str | None = None,
    output_dir: str | Path | None = None,
    output_file: str = "events.jsonl",
) -> Generator[TracingContext, None, None]:
    """Enable trace capture for executor runs inside the block.

    Events are kept in memory, or written to output_dir/<trace_id>/events.jsonl
    when output_dir is given.
    """
    global _active_context

    tid = trace_id or generate_trace_id()
    eid = execution_id or generate_execution_id()

    if output_dir:
        sink: EventSink = FileSink(Path(output_dir) / tid / output_file)
    else:
        sink = ListSink()

    context = TracingContext(
        trace_id=tid,
        execution_id=eid,
        emitter=EventEmitter(execution_id=eid, trace_id=tid, event_sink=sink),
        event_sink=sink,
    )

    previous = _active_context
    _active_context = context
    try:
        yield context
    finally:
        _active_context = previous

"""Tests for the FastAPI server: flow storage, validation and turn runs."""

import asyncio

import pytest
from fastapi import HTTPException
from fastapi.testclient import TestClient

from cardflow.io import export_flow
from server import db, invokers, turn_routes
from server.app import app

from flow_factory import counter_flow, linear_flow, make_agent

CHAR = {"id": "c1", "name": "Mira"}


@pytest.fixture
def client(tmp_path, monkeypatch):
    monkeypatch.setattr(db, "DB_PATH", tmp_path / "cardflow.db")
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def agent_replies(monkeypatch):
    """Replace provider calls with canned text; records agent keys called."""
    calls = []

    async def fake_invoke(messages, agent):
        calls.append(agent.key)
        return "Seven"

    monkeypatch.setattr(invokers, "invoke_agent", fake_invoke)
    return calls


def put_flow(client, flow):
    response = client.put(f"/api/flows/{flow.id}", json=export_flow(flow))
    assert response.status_code == 200
    return response.json()


class TestFlowRoutes:
    def test_put_validates_and_stores(self, client):
        stored = put_flow(client, counter_flow())
        assert stored["readyState"] == "ready"
        assert stored["validationIssues"] == []

        assert client.get("/api/flows/flow-counter").json() == stored
        assert [f["id"] for f in client.get("/api/flows").json()] == ["flow-counter"]

    def test_put_invalid_flow_is_stored_as_invalid(self, client):
        stored = put_flow(client, linear_flow("You are {{char.name}}."))
        assert stored["readyState"] == "invalid"
        assert [issue["code"] for issue in stored["validationIssues"]] == ["unresolvable-variable"]

    def test_put_malformed_document(self, client):
        response = client.put("/api/flows/bad", json={"nodes": [{"id": "n", "type": "warp"}]})
        assert response.status_code == 422

    def test_validate_with_bound_scopes(self, client):
        put_flow(client, linear_flow("You are {{char.name}}."))

        unbound = client.post("/api/flows/flow-1/validate")
        assert unbound.json()["ready_state"] == "invalid"

        bound = client.post(
            "/api/flows/flow-1/validate",
            json={"bound_scopes": ["session", "history", "toggle", "response", "char"]},
        )
        assert bound.json() == {"flow_id": "flow-1", "ready_state": "ready", "issues": []}

    def test_export_and_import(self, client):
        put_flow(client, counter_flow())
        document = client.get("/api/flows/flow-counter/export").json()
        assert document == export_flow(counter_flow())

        client.delete("/api/flows/flow-counter")
        assert client.get("/api/flows/flow-counter").status_code == 404

        imported = client.post("/api/flows/import", json=document)
        assert imported.status_code == 200
        assert imported.json()["readyState"] == "ready"

    def test_missing_flow(self, client):
        assert client.get("/api/flows/nope").status_code == 404
        assert client.delete("/api/flows/nope").status_code == 404
        assert client.get("/api/flows/nope/export").status_code == 404


class TestTurnRoutes:
    def test_run_turn_commits_data_store(self, client, agent_replies):
        put_flow(client, counter_flow())
        response = client.post(
            "/api/sessions/s1/turns", json={"flow_id": "flow-counter", "turn_id": "t1"}
        )
        assert response.status_code == 200
        body = response.json()
        assert body["trace"] == ["start", "store", "a1", "end"]
        assert body["response"] == "Seven (7)"
        assert body["data_store"] == {"f-count": 7.0}
        assert agent_replies == ["narrator"]

        values = client.get("/api/sessions/s1/data-store", params={"flow_id": "flow-counter"})
        assert values.json() == {"count": 7.0}

        events = client.get("/api/turns/t1/events").json()
        assert events[0]["event_type"] == "node_entered"
        assert events[-1]["event_type"] == "turn_committed"

    def test_bound_character_makes_flow_runnable(self, client, agent_replies):
        put_flow(client, linear_flow("You are {{char.name}}."))

        rejected = client.post("/api/sessions/s1/turns", json={"flow_id": "flow-1"})
        assert rejected.status_code == 422
        assert agent_replies == []

        accepted = client.post("/api/sessions/s1/turns", json={"flow_id": "flow-1", "char": CHAR})
        assert accepted.status_code == 200
        assert accepted.json()["trace"] == ["start", "a1", "end"]

    def test_unknown_flow(self, client, agent_replies):
        response = client.post("/api/sessions/s1/turns", json={"flow_id": "missing"})
        assert response.status_code == 404

    def test_concurrent_turn_rejected(self, client, agent_replies):
        put_flow(client, counter_flow())
        turn_routes._in_flight.add("busy")
        try:
            response = client.post("/api/sessions/busy/turns", json={"flow_id": "flow-counter"})
        finally:
            turn_routes._in_flight.discard("busy")
        assert response.status_code == 409

    def test_agent_failure_reports_node(self, client, monkeypatch):
        async def failing(messages, agent):
            raise ConnectionError("provider down")

        monkeypatch.setattr(invokers, "invoke_agent", failing)
        put_flow(client, counter_flow())

        response = client.post(
            "/api/sessions/s1/turns", json={"flow_id": "flow-counter", "turn_id": "t-fail"}
        )
        assert response.status_code == 502
        assert response.json()["detail"]["node_id"] == "a1"
        assert response.json()["detail"]["error_type"] == "infra"

        values = client.get("/api/sessions/s1/data-store", params={"flow_id": "flow-counter"})
        assert values.json() == {"count": 0.0}
        events = client.get("/api/turns/t-fail/events").json()
        assert events[-1]["event_type"] == "error"

    def test_provider_http_errors_pass_through(self, client, monkeypatch):
        async def missing_key(messages, agent):
            raise HTTPException(status_code=500, detail="OPENAI_API_KEY environment variable not set")

        monkeypatch.setattr(invokers, "invoke_agent", missing_key)
        put_flow(client, counter_flow())
        response = client.post("/api/sessions/s1/turns", json={"flow_id": "flow-counter"})
        assert response.status_code == 500


class TestInvokers:
    def test_unsupported_provider(self):
        agent = make_agent("a1", "Narrator", api_source="google")
        with pytest.raises(HTTPException) as excinfo:
            asyncio.run(invokers.invoke_agent([], agent))
        assert excinfo.value.status_code == 400

    def test_missing_api_key(self, monkeypatch):
        monkeypatch.delenv("OPENAI_API_KEY", raising=False)
        monkeypatch.setattr(invokers, "_openai_client", None)
        with pytest.raises(HTTPException) as excinfo:
            asyncio.run(invokers.invoke_agent([], make_agent("a1", "Narrator")))
        assert excinfo.value.status_code == 500

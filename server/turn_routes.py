"""API routes for running flow turns against a session.

A session may have at most one turn in flight; a second request for the
same session is rejected with 409 rather than queued.
"""

from typing import Any

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel

from cardflow.adapters.event_api import EventEmitter
from cardflow.adapters.sinks import ListSink
from cardflow.data_store import DataStore
from cardflow.executor import FlowExecutor
from cardflow.models.context import Character, HistoryItem, RenderContext
from cardflow.utils.identifiers import generate_trace_id, generate_turn_id
from cardflow.validation.core import DEFAULT_BOUND_SCOPES
from server import invokers
from server.flow_db import get_flow as db_get_flow
from server.flow_routes import issues_detail, orchestrator
from server.session_db import SqliteDataStoreRepository
from server.turn_db import insert_events, load_events

router = APIRouter()

_in_flight: set[str] = set()


class CharacterIn(BaseModel):
    id: str
    name: str
    description: str = ""
    example_dialog: str = ""
    entries: str = ""

    def to_character(self) -> Character:
        return Character(**self.model_dump())


class HistoryItemIn(BaseModel):
    char_id: str
    char_name: str
    content: str


class RunTurnRequest(BaseModel):
    """request body for running one turn of a flow."""

    flow_id: str
    turn_id: str | None = None
    char: CharacterIn | None = None
    user: CharacterIn | None = None
    cast_all: list[CharacterIn] | None = None
    cast_active: list[CharacterIn] | None = None
    cast_inactive: list[CharacterIn] | None = None
    session: dict[str, Any] = {}
    history: list[HistoryItemIn] = []
    toggles: dict[str, bool] = {}


class RunTurnResponse(BaseModel):
    turn_id: str
    session_id: str
    trace: list[str]
    agent_outputs: dict[str, Any]
    data_store: dict[str, Any]
    response: str


def _cast(group: list[CharacterIn] | None) -> list[Character] | None:
    return None if group is None else [member.to_character() for member in group]


def _render_context(request: RunTurnRequest) -> tuple[RenderContext, set[str]]:
    """Build the render context and the scopes it binds."""
    scopes = set(DEFAULT_BOUND_SCOPES)
    if request.char:
        scopes.add("char")
    if request.user:
        scopes.add("user")
    if any(g is not None for g in (request.cast_all, request.cast_active, request.cast_inactive)):
        scopes.add("cast")
    context = RenderContext(
        char=request.char.to_character() if request.char else None,
        user=request.user.to_character() if request.user else None,
        cast_all=_cast(request.cast_all),
        cast_active=_cast(request.cast_active),
        cast_inactive=_cast(request.cast_inactive),
        session=dict(request.session),
        history=[HistoryItem(**item.model_dump()) for item in request.history],
        toggles=dict(request.toggles),
    )
    return context, scopes


@router.post("/sessions/{session_id}/turns")
async def run_turn(session_id: str, request: RunTurnRequest) -> RunTurnResponse:
    """validate the flow for this session's context, then run one turn."""
    flow = db_get_flow(request.flow_id)
    if not flow:
        raise HTTPException(status_code=404, detail=f"Flow not found: {request.flow_id}")

    if session_id in _in_flight:
        raise HTTPException(
            status_code=409, detail=f"A turn is already running for session {session_id}"
        )

    context, scopes = _render_context(request)
    flow = orchestrator.apply(flow, scopes)
    if not flow.is_ready:
        raise HTTPException(
            status_code=422,
            detail={
                "message": "Flow is not ready to run",
                "issues": issues_detail(flow.validation_issues),
            },
        )

    turn_id = request.turn_id or generate_turn_id()
    sink = ListSink()
    executor = FlowExecutor(
        emitter=EventEmitter(execution_id=turn_id, trace_id=generate_trace_id(), event_sink=sink)
    )

    _in_flight.add(session_id)
    try:
        result = await executor.run(
            flow,
            context,
            invokers.invoke_agent,
            turn_id=turn_id,
            session_id=session_id,
            repository=SqliteDataStoreRepository(),
        )
    finally:
        _in_flight.discard(session_id)
        insert_events(turn_id, session_id, sink.events)

    if result.is_failure:
        error = result.error
        if isinstance(getattr(error, "cause", None), HTTPException):
            raise error.cause
        raise HTTPException(status_code=502, detail=error.to_dict())

    outcome = result.value
    return RunTurnResponse(
        turn_id=outcome.turn_id,
        session_id=session_id,
        trace=outcome.trace,
        agent_outputs=outcome.agent_outputs,
        data_store=outcome.data_store,
        response=outcome.response,
    )


@router.get("/sessions/{session_id}/data-store")
def get_data_store(session_id: str, flow_id: str) -> dict[str, Any]:
    """current field values for a session, by field name."""
    flow = db_get_flow(flow_id)
    if not flow:
        raise HTTPException(status_code=404, detail=f"Flow not found: {flow_id}")
    store = DataStore(
        flow.data_store_schema,
        repository=SqliteDataStoreRepository(),
        session_id=session_id,
    )
    return store.by_name(store.initial_values())


@router.get("/turns/{turn_id}/events")
def get_turn_events(turn_id: str) -> list[dict[str, Any]]:
    return [event.model_dump(mode="json") for event in load_events(turn_id)]

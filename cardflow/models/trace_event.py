"""
Trace event models for what happened while a turn walked the graph.

Payload invariants are checked per event type so sinks never persist a
half-formed event.
"""

from enum import Enum
from typing import Any, Self

from pydantic import BaseModel, model_validator


class EventType(str, Enum):
    """Types of events in a turn trace."""

    node_entered = "node_entered"
    agent_input = "agent_input"
    agent_output = "agent_output"
    branch_taken = "branch_taken"
    data_store_buffered = "data_store_buffered"
    turn_committed = "turn_committed"
    error = "error"


# valid error types for error events
ERROR_TYPES = {"schema", "tool", "model", "infra", "logic"}

BRANCHES = {"true", "false"}


class TraceEvent(BaseModel):
    """A structured event emitted by the executor."""

    model_config = {"extra": "forbid"}

    event_id: str  # UUID for deduping
    trace_id: str
    execution_id: str
    timestamp: str
    sequence: int | None = None  # monotonic ordering within trace

    event_type: EventType
    node_id: str | None = None

    payload: dict[str, Any]

    @model_validator(mode="after")
    def validate_payload_invariants(self) -> Self:
        """Validate payload structure based on event_type."""
        payload = self.payload
        event_type = self.event_type

        if event_type == EventType.branch_taken:
            self._validate_branch_taken(payload)
        elif event_type == EventType.data_store_buffered:
            self._validate_data_store_buffered(payload)
        elif event_type == EventType.turn_committed:
            self._validate_turn_committed(payload)
        elif event_type == EventType.error:
            self._validate_error(payload)

        return self

    def _validate_branch_taken(self, payload: dict) -> None:
        """branch_taken requires branch (true|false)."""
        if "branch" not in payload:
            raise ValueError("branch_taken payload must contain 'branch'")
        if payload["branch"] not in BRANCHES:
            raise ValueError(f"branch must be one of {BRANCHES}")

    def _validate_data_store_buffered(self, payload: dict) -> None:
        if not isinstance(payload.get("values"), dict):
            raise ValueError("data_store_buffered payload must contain 'values' dict")

    def _validate_turn_committed(self, payload: dict) -> None:
        if "turn_id" not in payload:
            raise ValueError("turn_committed payload must contain 'turn_id'")

    def _validate_error(self, payload: dict) -> None:
        """error requires error_type and message."""
        if "error_type" not in payload:
            raise ValueError("error payload must contain 'error_type'")
        if payload["error_type"] not in ERROR_TYPES:
            raise ValueError(f"error_type must be one of {ERROR_TYPES}")
        if "message" not in payload:
            raise ValueError("error payload must contain 'message'")

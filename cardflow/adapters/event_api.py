"""Event emission API used by the executor."""

from typing import Any

from cardflow.adapters.sinks import EventSink
from cardflow.models.trace_event import EventType, TraceEvent
from cardflow.utils.identifiers import generate_event_id, utc_timestamp


class EventEmitter:
    """Stamps ids, timestamps and sequence numbers onto turn events."""

    def __init__(
        self,
        execution_id: str,
        trace_id: str,
        event_sink: EventSink,
    ) -> None:
        self.execution_id = execution_id
        self.trace_id = trace_id
        self.event_sink = event_sink
        self._sequence = 0

    def _next_sequence(self) -> int:
        seq = self._sequence
        self._sequence += 1
        return seq

    def emit(
        self,
        event_type: EventType,
        node_id: str | None = None,
        payload: dict | None = None,
    ) -> TraceEvent:
        """Emit a trace event with the given parameters."""
        event = TraceEvent(
            event_id=generate_event_id(),
            trace_id=self.trace_id,
            execution_id=self.execution_id,
            timestamp=utc_timestamp(),
            sequence=self._next_sequence(),
            event_type=event_type,
            node_id=node_id,
            payload=payload or {},
        )
        self.event_sink.append(event)
        return event

    def emit_node_entered(self, node_id: str, node_type: str, step: int) -> TraceEvent:
        return self.emit(
            EventType.node_entered, node_id, {"node_type": node_type, "step": step}
        )

    def emit_input(
        self, node_id: str, agent_key: str, messages: list[dict[str, str]]
    ) -> TraceEvent:
        """Emit an agent_input event with the rendered messages."""
        return self.emit(
            EventType.agent_input, node_id, {"agent": agent_key, "messages": messages}
        )

    def emit_output(self, node_id: str, agent_key: str, output: Any) -> TraceEvent:
        return self.emit(
            EventType.agent_output, node_id, {"agent": agent_key, "output": output}
        )

    def emit_branch(self, node_id: str, branch: bool, results: list[bool]) -> TraceEvent:
        """Emit the branch an If node took and the per-condition results."""
        return self.emit(
            EventType.branch_taken,
            node_id,
            {"branch": "true" if branch else "false", "results": results},
        )

    def emit_buffered(self, node_id: str, values: dict[str, Any]) -> TraceEvent:
        return self.emit(EventType.data_store_buffered, node_id, {"values": values})

    def emit_committed(
        self, node_id: str, turn_id: str, values: dict[str, Any]
    ) -> TraceEvent:
        return self.emit(
            EventType.turn_committed, node_id, {"turn_id": turn_id, "values": values}
        )

    def emit_error(
        self,
        node_id: str | None,
        error_type: str,
        message: str,
        details: dict | None = None,
    ) -> TraceEvent:
        """Emit an error event."""
        payload: dict = {"error_type": error_type, "message": message}
        if details:
            payload["details"] = details
        return self.emit(EventType.error, node_id, payload)

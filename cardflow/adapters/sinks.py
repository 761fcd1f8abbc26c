"""Event sinks for turn trace events."""

from pathlib import Path
from typing import Protocol

from cardflow.models.trace_event import TraceEvent


class EventSink(Protocol):
    """Protocol for receiving trace events."""

    def append(self, event: TraceEvent) -> None:
        """Append an event to the sink."""
        ...


class ListSink:
    """stores events in a list."""

    def __init__(self) -> None:
        self.events: list[TraceEvent] = []

    def append(self, event: TraceEvent) -> None:
        self.events.append(event)

    def clear(self) -> None:
        self.events.clear()


class FileSink:
    """writes events to a JSONL file."""

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)

    def append(self, event: TraceEvent) -> None:
        with open(self.path, "a") as f:
            f.write(event.model_dump_json() + "\n")

    def read(self) -> list[TraceEvent]:
        if not self.path.exists():
            return []
        with open(self.path) as f:
            return [TraceEvent.model_validate_json(line) for line in f if line.strip()]

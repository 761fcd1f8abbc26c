"""Transient objects templates are rendered against.

None of these are persisted; a RenderContext is rebuilt for each turn and
grown step by step as agents and data store nodes produce values.
"""

from dataclasses import dataclass, field, replace
from typing import Any, Self


@dataclass(frozen=True)
class Character:
    """A card participating in the session (the user persona is one too)."""

    id: str
    name: str
    description: str = ""
    example_dialog: str = ""
    entries: str = ""


@dataclass(frozen=True)
class HistoryItem:
    """One past chat turn."""

    char_id: str
    char_name: str
    content: str


@dataclass(frozen=True)
class Message:
    """A role-tagged message handed to an agent invoker."""

    role: str
    content: str

    def to_dict(self) -> dict[str, str]:
        return {"role": self.role, "content": self.content}


@dataclass(frozen=True)
class RenderContext:
    """Everything a macro may resolve against during one turn."""

    char: Character | None = None
    user: Character | None = None
    cast_all: list[Character] | None = None
    cast_active: list[Character] | None = None
    cast_inactive: list[Character] | None = None
    session: dict[str, Any] = field(default_factory=dict)
    history: list[HistoryItem] = field(default_factory=list)
    data_store: dict[str, Any] = field(default_factory=dict)  # by field name
    toggles: dict[str, bool] = field(default_factory=dict)
    agent_outputs: dict[str, Any] = field(default_factory=dict)  # by agent key
    response: str | None = None
    turn: HistoryItem | None = None  # only set inside history messages

    def with_agent_output(self, key: str, output: Any) -> Self:
        return replace(self, agent_outputs={**self.agent_outputs, key: output})

    def with_data_store(self, values: dict[str, Any]) -> Self:
        return replace(self, data_store={**self.data_store, **values})

    def with_turn(self, turn: HistoryItem | None) -> Self:
        return replace(self, turn=turn)

    def with_response(self, response: str) -> Self:
        return replace(self, response=response)

    def toggle_on(self, name: str) -> bool:
        return bool(self.toggles.get(name, False))

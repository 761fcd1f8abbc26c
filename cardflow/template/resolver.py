"""Resolve macro paths against a RenderContext and format the values."""

import json
from dataclasses import asdict, is_dataclass
from typing import Any

from cardflow.models.context import Character, HistoryItem, RenderContext
from cardflow.template.variables import CAST_GROUPS, CHARACTER_FIELDS, TURN_FIELDS

_MISSING = (False, None)


def _walk(value: Any, parts: list[str]) -> tuple[bool, Any]:
    for part in parts:
        if isinstance(value, dict):
            if part not in value:
                return _MISSING
            value = value[part]
        elif is_dataclass(value) and hasattr(value, part):
            value = getattr(value, part)
        else:
            return _MISSING
    return True, value


class VariableResolver:
    """Looks up ``scope.path`` in a RenderContext.

    Returns (found, value). Bare data store field names resolve as a
    fallback when no scope or agent key matches.
    """

    def resolve(self, path: str, context: RenderContext) -> tuple[bool, Any]:
        head, *parts = path.split(".")

        if head in ("char", "user"):
            character = context.char if head == "char" else context.user
            if character is None:
                return _MISSING
            if parts and parts[0] not in CHARACTER_FIELDS:
                return _MISSING
            return _walk(character, parts)

        if head == "cast":
            if len(parts) != 1 or parts[0] not in CAST_GROUPS:
                return _MISSING
            group = getattr(context, f"cast_{parts[0]}")
            return _MISSING if group is None else (True, group)

        if head == "session":
            return _walk(context.session, parts) if parts else _MISSING

        if head == "history":
            return _MISSING if parts else (True, context.history)

        if head == "turn":
            if context.turn is None or len(parts) != 1 or parts[0] not in TURN_FIELDS:
                return _MISSING
            return True, getattr(context.turn, parts[0])

        if head == "toggle":
            return (True, context.toggle_on(parts[0])) if len(parts) == 1 else _MISSING

        if head == "response":
            if parts or context.response is None:
                return _MISSING
            return True, context.response

        if head == "dataStore":
            name = ".".join(parts)
            if name not in context.data_store:
                return _MISSING
            return True, context.data_store[name]

        if head in context.agent_outputs:
            return _walk(context.agent_outputs[head], parts)

        if not parts and head in context.data_store:
            return True, context.data_store[head]

        return _MISSING


def format_value(value: Any) -> str:
    """Render a resolved value as prompt text."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, Character):
        return f"{value.name}: {value.description}" if value.description else value.name
    if isinstance(value, HistoryItem):
        return f"{value.char_name}: {value.content}"
    if isinstance(value, (list, tuple)):
        return "\n".join(format_value(item) for item in value)
    if isinstance(value, dict):
        return json.dumps(value, ensure_ascii=False)
    if is_dataclass(value) and not isinstance(value, type):
        return json.dumps(asdict(value), ensure_ascii=False)
    return str(value)

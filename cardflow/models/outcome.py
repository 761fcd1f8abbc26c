"""Result payload of a completed turn."""

from typing import Any

from pydantic import BaseModel


class TurnOutcome(BaseModel):
    """What a successful turn produced.

    trace is the node ids in walk order; agent_outputs is keyed by agent key;
    data_store holds the committed values keyed by field id.
    """

    turn_id: str
    session_id: str | None = None
    trace: list[str]
    agent_outputs: dict[str, Any]
    data_store: dict[str, Any]
    response: str = ""

"""Agent configuration models referenced by Agent nodes."""

import re
from enum import Enum
from typing import Annotated, Any, Literal

from pydantic import Field

from cardflow.models.base import DocumentModel


class ApiType(str, Enum):
    """Which completion API an agent targets."""

    chat = "chat"
    text = "text"


class OutputFormat(str, Enum):
    text_output = "text_output"
    structured_output = "structured_output"


class MessageRole(str, Enum):
    system = "system"
    user = "user"
    assistant = "assistant"


class HistoryType(str, Enum):
    """split: one message per turn; merge: the whole window in one message."""

    split = "split"
    merge = "merge"


class PromptBlock(DocumentModel):
    """A piece of message text, optionally gated by a session toggle."""

    template: str = ""
    toggle: str | None = None
    enabled: bool = True


class PlainPromptMessage(DocumentModel):
    type: Literal["plain"] = "plain"
    id: str | None = None
    role: MessageRole = MessageRole.system
    blocks: list[PromptBlock] = []


class HistoryPromptMessage(DocumentModel):
    """Expands a window of chat history into one or more messages."""

    type: Literal["history"] = "history"
    id: str | None = None
    history_type: HistoryType = HistoryType.split
    start: int | None = None
    end: int | None = None
    count_from_end: bool = True
    user_blocks: list[PromptBlock] = []
    assistant_blocks: list[PromptBlock] = []
    role: MessageRole = MessageRole.user  # merge mode only


PromptMessage = Annotated[
    PlainPromptMessage | HistoryPromptMessage, Field(discriminator="type")
]


class SchemaField(DocumentModel):
    """One property of a structured-output schema."""

    name: str
    type: Literal["string", "number", "integer", "boolean"] = "string"
    description: str | None = None
    required: bool = True
    array: bool = False


class Agent(DocumentModel):
    """Prompt, model and output configuration of an Agent node."""

    id: str
    flow_id: str | None = None
    name: str = ""
    target_api_type: ApiType = ApiType.chat
    api_source: str | None = None
    model_name: str | None = None
    prompt_messages: list[PromptMessage] = []
    text_prompt: str = ""
    parameters: dict[str, Any] = {}
    output_format: OutputFormat = OutputFormat.text_output
    schema_name: str | None = None
    schema_fields: list[SchemaField] = []

    @property
    def key(self) -> str:
        """Macro scope under which this agent's output is exposed."""
        return agent_key(self.name) or agent_key(self.id)

    @property
    def is_structured(self) -> bool:
        return self.output_format == OutputFormat.structured_output

    def output_json_schema(self) -> dict[str, Any]:
        """JSON schema describing the structured output, for provider calls."""
        properties: dict[str, Any] = {}
        for schema_field in self.schema_fields:
            prop: dict[str, Any] = {"type": schema_field.type}
            if schema_field.description:
                prop["description"] = schema_field.description
            if schema_field.array:
                prop = {"type": "array", "items": prop}
            properties[schema_field.name] = prop
        return {
            "title": self.schema_name or self.key or "output",
            "type": "object",
            "properties": properties,
            "required": [f.name for f in self.schema_fields if f.required],
        }


def agent_key(name: str) -> str:
    """Lowercase an agent name into a macro-safe identifier."""
    key = re.sub(r"[^0-9a-zA-Z_]+", "_", name.strip()).strip("_").lower()
    if key and key[0].isdigit():
        key = f"_{key}"
    return key

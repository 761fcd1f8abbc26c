"""Typed data store: field registry, per-turn resolution and commit.

Values computed during a turn are buffered here and only reach the
repository through commit(), which the executor calls once the walk has
reached an End node.
"""

import json
import logging
from pathlib import Path
from typing import Any, Protocol

from cardflow.conditions import coerce
from cardflow.errors import TemplateSyntaxError
from cardflow.models.context import RenderContext
from cardflow.models.data_store import (
    DataStoreField,
    DataStoreSavedField,
    DataStoreSchema,
)
from cardflow.models.flow import DataStoreNode
from cardflow.template.renderer import TemplateRenderer
from cardflow.utils.identifiers import utc_timestamp

logger = logging.getLogger(__name__)


class DataStoreRepository(Protocol):
    """Protocol for loading and committing per-session field values."""

    def load(self, session_id: str) -> list[DataStoreSavedField]:
        """Latest committed fields for a session (empty if none)."""
        ...

    def commit(
        self, session_id: str, turn_id: str, fields: list[DataStoreSavedField]
    ) -> None:
        """Persist a full snapshot of field values for a turn."""
        ...


class InMemoryDataStoreRepository:
    """keeps committed snapshots in memory."""

    def __init__(self) -> None:
        self.sessions: dict[str, list[DataStoreSavedField]] = {}
        self.commits: list[tuple[str, str]] = []

    def load(self, session_id: str) -> list[DataStoreSavedField]:
        return list(self.sessions.get(session_id, []))

    def commit(
        self, session_id: str, turn_id: str, fields: list[DataStoreSavedField]
    ) -> None:
        self.sessions[session_id] = list(fields)
        self.commits.append((session_id, turn_id))


class JsonlDataStoreRepository:
    """appends one snapshot per committed turn to a JSONL file."""

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)

    def load(self, session_id: str) -> list[DataStoreSavedField]:
        if not self.path.exists():
            return []
        latest: list[dict] = []
        with open(self.path) as f:
            for line in f:
                if not line.strip():
                    continue
                record = json.loads(line)
                if record["session_id"] == session_id:
                    latest = record["fields"]
        return [DataStoreSavedField.model_validate(item) for item in latest]

    def commit(
        self, session_id: str, turn_id: str, fields: list[DataStoreSavedField]
    ) -> None:
        record = {
            "session_id": session_id,
            "turn_id": turn_id,
            "committed_at": utc_timestamp(),
            "fields": [item.to_document() for item in fields],
        }
        with open(self.path, "a") as f:
            f.write(json.dumps(record) + "\n")


class DataStore:
    """Field registry plus the write buffer of the turn in progress."""

    def __init__(
        self,
        schema: DataStoreSchema | None = None,
        repository: DataStoreRepository | None = None,
        session_id: str | None = None,
        renderer: TemplateRenderer | None = None,
    ) -> None:
        self.schema = schema or DataStoreSchema()
        self.repository = repository
        self.session_id = session_id
        self.renderer = renderer or TemplateRenderer()
        self.fields: dict[str, DataStoreField] = {}
        self._buffer: dict[str, Any] = {}

        for schema_field in self.schema.fields:
            self.declare_field(
                DataStoreField(
                    id=schema_field.id,
                    name=schema_field.name,
                    type=schema_field.type,
                    default_value=schema_field.initial_value,
                )
            )

    def declare_field(self, field: DataStoreField) -> None:
        """Register a field; redeclaring an id replaces it."""
        self.fields[field.id] = field

    def fields_for_node(self, node: DataStoreNode) -> list[DataStoreField]:
        """Node update rules joined with their schema declarations."""
        result = []
        for node_field in node.fields:
            declared = self.fields.get(node_field.schema_field_id)
            if declared is None:
                logger.warning(
                    "DataStore node %s references unknown field %s",
                    node.id,
                    node_field.schema_field_id,
                )
                continue
            result.append(declared.model_copy(update={"value_expression": node_field.logic}))
        return result

    def initial_values(self) -> dict[str, Any]:
        """Schema defaults overlaid with the session's last committed values."""
        values: dict[str, Any] = {}
        for field in self.fields.values():
            values[field.id] = coerce(field.default_value, field.type.value)
        if self.repository is not None and self.session_id is not None:
            for saved in self.repository.load(self.session_id):
                if saved.id in self.fields:
                    values[saved.id] = saved.value
        return values

    def resolve_all(
        self,
        context: RenderContext,
        fields: list[DataStoreField] | None = None,
        previous: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Render and coerce each field's value expression.

        Fields without an expression keep their previous value. A rendered
        value that does not coerce keeps the previous value and is logged.
        """
        previous = previous if previous is not None else self.initial_values()
        values: dict[str, Any] = {}
        for field in fields if fields is not None else list(self.fields.values()):
            if not field.value_expression:
                values[field.id] = previous.get(field.id)
                continue
            try:
                rendered = self.renderer.render(field.value_expression, context)
            except TemplateSyntaxError as e:
                logger.warning("Field %s: bad expression, skipping update: %s", field.name, e)
                values[field.id] = previous.get(field.id)
                continue
            value = coerce(rendered, field.type.value)
            if value is None:
                logger.warning(
                    "Field %s: %r is not a valid %s, skipping update",
                    field.name,
                    rendered,
                    field.type.value,
                )
                value = previous.get(field.id)
            values[field.id] = value
        return values

    # --- buffering ---

    def buffer(self, values: dict[str, Any]) -> None:
        self._buffer.update(values)

    @property
    def buffered(self) -> dict[str, Any]:
        return dict(self._buffer)

    def discard(self) -> None:
        self._buffer.clear()

    def by_name(self, values: dict[str, Any]) -> dict[str, Any]:
        """Re-key a field-id map by field name, for RenderContext."""
        return {
            self.fields[field_id].name: value
            for field_id, value in values.items()
            if field_id in self.fields
        }

    def by_id(self, values: dict[str, Any]) -> dict[str, Any]:
        """Coerce a by-name map onto declared field ids.

        Names that are not declared, and values that do not coerce, are dropped.
        """
        names = {field.name: field for field in self.fields.values()}
        result = {}
        for name, value in values.items():
            field = names.get(name)
            if field is None:
                continue
            coerced = coerce(value, field.type.value)
            if coerced is None:
                logger.warning(
                    "Field %s: bound value %r is not a valid %s, ignoring",
                    name,
                    value,
                    field.type.value,
                )
                continue
            result[field.id] = coerced
        return result

    def commit(self, turn_id: str, values: dict[str, Any] | None = None) -> dict[str, Any]:
        """Persist the full field snapshot for a completed turn.

        values defaults to the current buffer. Returns the committed map by
        field id. The buffer is cleared afterwards.
        """
        pending = self.buffered if values is None else dict(values)
        committed = {**self.initial_values(), **pending}
        if self.repository is not None and self.session_id is not None:
            saved = [
                DataStoreSavedField(
                    id=field.id,
                    name=field.name,
                    type=field.type,
                    value=committed.get(field.id),
                )
                for field in self.fields.values()
            ]
            self.repository.commit(self.session_id, turn_id, saved)
        logger.info(
            "Committed %d data store field(s) for turn %s", len(pending), turn_id
        )
        self._buffer.clear()
        return committed

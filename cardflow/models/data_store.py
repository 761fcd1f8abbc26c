"""Data store field models."""

from enum import Enum
from typing import Any

from pydantic import BaseModel

from cardflow.models.base import DocumentModel


class DataStoreFieldType(str, Enum):
    """Declared type of a data store field."""

    string = "string"
    number = "number"
    boolean = "boolean"


class DataStoreSchemaField(DocumentModel):
    """A field declared on the flow-wide data store schema."""

    id: str
    name: str
    type: DataStoreFieldType = DataStoreFieldType.string
    initial_value: str = ""
    description: str | None = None


class DataStoreSchema(DocumentModel):
    """All fields a flow declares, across its DataStore nodes."""

    fields: list[DataStoreSchemaField] = []

    def field(self, field_id: str) -> DataStoreSchemaField | None:
        for schema_field in self.fields:
            if schema_field.id == field_id:
                return schema_field
        return None

    def by_name(self) -> dict[str, DataStoreSchemaField]:
        return {schema_field.name: schema_field for schema_field in self.fields}


class DataStoreNodeField(DocumentModel):
    """A DataStore node's update rule for one schema field."""

    id: str
    schema_field_id: str
    logic: str = ""  # value expression (macro template)


class DataStoreField(BaseModel):
    """A field as the runtime store sees it: schema entry plus update rule."""

    id: str
    name: str
    type: DataStoreFieldType = DataStoreFieldType.string
    default_value: str = ""
    value_expression: str | None = None


class DataStoreSavedField(DocumentModel):
    """A committed field value, as persisted per session."""

    id: str
    name: str
    type: DataStoreFieldType = DataStoreFieldType.string
    value: Any = None

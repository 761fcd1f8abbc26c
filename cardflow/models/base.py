"""Shared pydantic configuration for persisted flow documents.

Documents are exchanged with the editor as camelCase JSON; attributes stay
snake_case on the Python side. Unknown keys are ignored so documents written
by newer editors still load.
"""

from typing import Any

from pydantic import BaseModel
from pydantic.alias_generators import to_camel


class DocumentModel(BaseModel):
    """Base for every model that round-trips through exported JSON."""

    model_config = {
        "alias_generator": to_camel,
        "populate_by_name": True,
        "extra": "ignore",
        "protected_namespaces": (),
    }

    def to_document(self) -> dict[str, Any]:
        """Dump as the camelCase JSON-ready dict used for export."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)

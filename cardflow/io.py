"""Flow import/export as a JSON document, optionally zipped with session data.

Import accepts exactly what export produces; unknown keys are ignored and
missing optional keys take their defaults. Imported flows always start as
draft, since validation output is not trusted across the boundary.
"""

import json
import zipfile
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from cardflow.errors import FlowImportError
from cardflow.models.flow import Flow, ReadyState

FLOW_ENTRY = "flow.json"
SESSION_ENTRY = "session.json"


def export_flow(flow: Flow) -> dict[str, Any]:
    """Export document: id, name, nodes, edges, responseTemplate,
    dataStoreSchema and agents keyed by agent id."""
    return flow.model_dump(
        mode="json",
        by_alias=True,
        exclude_none=True,
        exclude={"ready_state", "validation_issues"},
    )


def dumps_flow(flow: Flow, indent: int | None = 2) -> str:
    return json.dumps(export_flow(flow), indent=indent, ensure_ascii=False)


def import_flow(data: str | bytes | dict[str, Any]) -> Flow:
    """Parse an exported document. Raises FlowImportError."""
    if isinstance(data, (str, bytes)):
        try:
            data = json.loads(data)
        except json.JSONDecodeError as e:
            raise FlowImportError(f"Flow document is not valid JSON: {e}") from e
    if not isinstance(data, dict):
        raise FlowImportError("Flow document must be a JSON object")

    try:
        flow = Flow.model_validate(data)
    except ValidationError as e:
        raise FlowImportError(f"Flow document is malformed: {e}") from e
    return flow.model_copy(update={"ready_state": ReadyState.draft, "validation_issues": []})


def export_flow_archive(
    flow: Flow,
    path: Path | str,
    session_data: dict[str, Any] | None = None,
) -> Path:
    """Write flow.json (and session.json when given) into a zip archive."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with zipfile.ZipFile(path, "w", compression=zipfile.ZIP_DEFLATED) as archive:
        archive.writestr(FLOW_ENTRY, dumps_flow(flow))
        if session_data is not None:
            archive.writestr(SESSION_ENTRY, json.dumps(session_data, ensure_ascii=False))
    return path


def import_flow_archive(path: Path | str) -> tuple[Flow, dict[str, Any] | None]:
    """Read an archive written by export_flow_archive."""
    try:
        with zipfile.ZipFile(path) as archive:
            names = set(archive.namelist())
            if FLOW_ENTRY not in names:
                raise FlowImportError(f"Archive has no {FLOW_ENTRY}")
            flow = import_flow(archive.read(FLOW_ENTRY))
            session = None
            if SESSION_ENTRY in names:
                session = json.loads(archive.read(SESSION_ENTRY))
    except zipfile.BadZipFile as e:
        raise FlowImportError(f"Not a flow archive: {e}") from e
    return flow, session

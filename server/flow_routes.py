"""API routes for flow storage, validation and import/export."""

from typing import Any

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel

from cardflow.errors import FlowImportError
from cardflow.io import export_flow, import_flow
from cardflow.models.flow import Flow
from cardflow.models.validation import ValidationIssue
from cardflow.utils.identifiers import utc_timestamp
from cardflow.validation.orchestrator import ValidationOrchestrator
from server.flow_db import (
    delete_flow as db_delete_flow,
    get_flow as db_get_flow,
    list_flows as db_list_flows,
    upsert_flow as db_upsert_flow,
)

router = APIRouter()

# shared so repeated validation of an unchanged flow hits the cache
orchestrator = ValidationOrchestrator()


class ValidateRequest(BaseModel):
    """scopes bound by the session the flow will run in."""

    bound_scopes: list[str] | None = None


class ValidateResponse(BaseModel):
    flow_id: str
    ready_state: str
    issues: list[dict[str, Any]]


def _load_or_404(flow_id: str) -> Flow:
    flow = db_get_flow(flow_id)
    if not flow:
        raise HTTPException(status_code=404, detail=f"Flow not found: {flow_id}")
    return flow


def _document(flow: Flow) -> dict[str, Any]:
    return flow.model_dump(mode="json", by_alias=True, exclude_none=True)


@router.get("/flows")
def list_flows() -> list[dict[str, Any]]:
    """list all stored flows."""
    return [_document(flow) for flow in db_list_flows()]


@router.get("/flows/{flow_id}")
def get_flow(flow_id: str) -> dict[str, Any]:
    return _document(_load_or_404(flow_id))


@router.put("/flows/{flow_id}")
def upsert_flow(flow_id: str, body: dict[str, Any]) -> dict[str, Any]:
    """create or update a flow.

    The stored snapshot is always validated, so ready_state reflects the
    content that was saved.
    """
    try:
        flow = import_flow({**body, "id": flow_id})
    except FlowImportError as e:
        raise HTTPException(status_code=422, detail=str(e)) from e
    flow = orchestrator.apply(flow)
    db_upsert_flow(flow, utc_timestamp())
    return _document(flow)


@router.delete("/flows/{flow_id}")
def delete_flow(flow_id: str) -> dict:
    _load_or_404(flow_id)
    db_delete_flow(flow_id)
    return {"deleted": flow_id}


@router.post("/flows/{flow_id}/validate")
def validate_flow(flow_id: str, request: ValidateRequest | None = None) -> ValidateResponse:
    """validate a stored flow against the given bound scopes."""
    flow = _load_or_404(flow_id)
    scopes = request.bound_scopes if request else None
    validated = orchestrator.apply(flow, scopes)
    return ValidateResponse(
        flow_id=flow_id,
        ready_state=validated.ready_state.value,
        issues=[issue.to_document() for issue in validated.validation_issues],
    )


@router.get("/flows/{flow_id}/export")
def export_flow_endpoint(flow_id: str) -> dict[str, Any]:
    return export_flow(_load_or_404(flow_id))


@router.post("/flows/import")
def import_flow_endpoint(body: dict[str, Any]) -> dict[str, Any]:
    """store an exported flow document; it is validated on the way in."""
    try:
        flow = import_flow(body)
    except FlowImportError as e:
        raise HTTPException(status_code=422, detail=str(e)) from e
    flow = orchestrator.apply(flow)
    db_upsert_flow(flow, utc_timestamp())
    return _document(flow)


def issues_detail(issues: list[ValidationIssue]) -> list[dict[str, Any]]:
    return [issue.to_document() for issue in issues]

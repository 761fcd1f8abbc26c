"""Pre-flight validation of flows."""

from cardflow.validation.core import (
    DEFAULT_BOUND_SCOPES,
    ValidationContext,
    Validator,
    compose,
    enhance,
    filtered,
)
from cardflow.validation.orchestrator import (
    DEFAULT_VALIDATORS,
    ValidationOrchestrator,
    flow_content_hash,
    ready_state_for,
    validate_flow,
)

__all__ = [
    "DEFAULT_BOUND_SCOPES",
    "DEFAULT_VALIDATORS",
    "ValidationContext",
    "ValidationOrchestrator",
    "Validator",
    "compose",
    "enhance",
    "filtered",
    "flow_content_hash",
    "ready_state_for",
    "validate_flow",
]

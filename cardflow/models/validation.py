"""Validation issue models."""

from enum import Enum
from typing import Any

from cardflow.models.base import DocumentModel


class Severity(str, Enum):
    error = "error"
    warning = "warning"


class IssueLocation(DocumentModel):
    """Where an issue applies, for UI highlighting."""

    model_config = {**DocumentModel.model_config, "frozen": True}

    node_id: str | None = None
    agent_id: str | None = None
    field: str | None = None


class ValidationIssue(DocumentModel):
    """A single finding produced by a validator."""

    model_config = {**DocumentModel.model_config, "frozen": True}

    code: str
    severity: Severity
    message: str
    location: IssueLocation | None = None
    data: dict[str, Any] = {}
    category: str = "general"

    @property
    def is_error(self) -> bool:
        return self.severity == Severity.error


class IssueCode:
    """Machine-readable issue codes."""

    # structure
    MISSING_START = "missing-start"
    MULTIPLE_START = "multiple-start"
    MISSING_END = "missing-end"
    DANGLING_EDGE = "dangling-edge"
    UNREACHABLE_NODE = "unreachable-node"
    CYCLE_DETECTED = "cycle-detected"
    MISSING_OUTGOING_EDGE = "missing-outgoing-edge"
    IF_MISSING_BRANCH = "if-missing-branch"
    INVALID_BRANCH_HANDLE = "invalid-branch-handle"
    END_HAS_OUTGOING_EDGE = "end-has-outgoing-edge"
    DUPLICATE_NODE_ID = "duplicate-node-id"

    # agents
    MISSING_AGENT = "missing-agent"
    NO_MODEL_SELECTED = "no-model-selected"
    MISSING_PROMPT = "missing-prompt"
    SYSTEM_MESSAGE_IN_MIDDLE = "system-message-in-middle"
    MISSING_HISTORY_MESSAGE = "missing-history-message"
    MISSING_OUTPUT_SCHEMA = "missing-output-schema"
    INVALID_OUTPUT_SCHEMA_FIELD = "invalid-output-schema-field"
    DUPLICATE_AGENT_NAME = "duplicate-agent-name"
    RESERVED_AGENT_NAME = "reserved-agent-name"

    # provider parameters
    UNKNOWN_PROVIDER = "unknown-provider"
    UNSUPPORTED_PARAMETER = "unsupported-parameter"
    PARAMETER_OUT_OF_RANGE = "parameter-out-of-range"
    UNSUPPORTED_STRUCTURED_OUTPUT = "unsupported-structured-output"

    # templates
    TEMPLATE_SYNTAX_ERROR = "template-syntax-error"
    UNRESOLVABLE_VARIABLE = "unresolvable-variable"
    TURN_VARIABLE_OUTSIDE_HISTORY = "turn-variable-outside-history"

    # if nodes
    INCOMPLETE_CONDITION = "incomplete-condition"
    OPERATOR_TYPE_MISMATCH = "operator-type-mismatch"
    CONDITION_TYPE_MISMATCH = "condition-type-mismatch"

    # data store
    DATA_STORE_INVALID_INITIAL_VALUE = "data-store-invalid-initial-value"
    DATA_STORE_UNKNOWN_FIELD = "data-store-unknown-field"
    DATA_STORE_INVALID_EXPRESSION = "data-store-invalid-expression"

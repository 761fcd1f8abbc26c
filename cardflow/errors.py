"""Exception types raised or returned by the engine."""

from typing import Any


class CardflowError(Exception):
    """Base class for engine errors."""


class TemplateSyntaxError(CardflowError):
    """A template could not be parsed into macros."""

    def __init__(self, message: str, position: int | None = None) -> None:
        super().__init__(message)
        self.position = position


class FlowImportError(CardflowError):
    """Exception raised when an imported flow document is malformed."""


class RuntimeExecutionError(CardflowError):
    """A turn failed while walking the graph.

    Carries the id of the node that failed (if any), a coarse error_type
    ("model", "tool", "infra", "schema", "logic") and the underlying cause.
    """

    def __init__(
        self,
        message: str,
        node_id: str | None = None,
        cause: BaseException | None = None,
        error_type: str | None = None,
    ) -> None:
        super().__init__(message)
        self.node_id = node_id
        self.cause = cause
        self.error_type = error_type or (classify_error(cause) if cause else "logic")

    def to_dict(self) -> dict[str, Any]:
        return {
            "message": str(self),
            "node_id": self.node_id,
            "error_type": self.error_type,
            "exception_type": type(self.cause).__name__ if self.cause else None,
        }


class ExecutionAborted(RuntimeExecutionError):
    """The abort signal was set between node steps."""


class FlowNotReadyError(RuntimeExecutionError):
    """A run was requested for a flow that has not been validated as ready."""


class DefensiveAbort(CardflowError):
    """The step guard tripped; the graph walked more nodes than it holds."""

    def __init__(self, message: str, steps: int, trace: list[str]) -> None:
        super().__init__(message)
        self.steps = steps
        self.trace = trace


def classify_error(error: BaseException) -> str:
    """Classify an error into one of the valid error types."""
    error_name = type(error).__name__.lower()

    # model-related errors
    if any(x in error_name for x in ["openai", "anthropic", "llm", "api", "rate"]):
        return "model"

    if any(x in error_name for x in ["tool", "function"]):
        return "tool"

    if any(x in error_name for x in ["timeout", "connection", "network", "http"]):
        return "infra"

    if any(x in error_name for x in ["validation", "schema", "parse", "json", "type"]):
        return "schema"

    return "logic"

"""SDK for tracing turns and loading flows from a server."""

from cardflow.sdk.flow_loader import FlowLoader, FlowLoaderError
from cardflow.sdk.tracing import TracingContext, enable_tracing, get_active_context

__all__ = [
    "FlowLoader",
    "FlowLoaderError",
    "TracingContext",
    "enable_tracing",
    "get_active_context",
]

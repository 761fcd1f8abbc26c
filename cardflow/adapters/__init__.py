"""Adapters for event capture and LangChain chat models."""

from cardflow.adapters.event_api import EventEmitter
from cardflow.adapters.langchain_invoker import LangChainAgentInvoker, to_langchain_messages
from cardflow.adapters.sinks import EventSink, FileSink, ListSink

__all__ = [
    "EventEmitter",
    "EventSink",
    "FileSink",
    "LangChainAgentInvoker",
    "ListSink",
    "to_langchain_messages",
]

"""Core data models for flows, agents and turns."""

from cardflow.models.agent import (
    Agent,
    ApiType,
    HistoryPromptMessage,
    HistoryType,
    MessageRole,
    OutputFormat,
    PlainPromptMessage,
    PromptBlock,
    PromptMessage,
    SchemaField,
)
from cardflow.models.condition import (
    ConditionDataType,
    ConditionOperator,
    IfCondition,
    LogicOperator,
)
from cardflow.models.context import Character, HistoryItem, Message, RenderContext
from cardflow.models.data_store import (
    DataStoreField,
    DataStoreFieldType,
    DataStoreNodeField,
    DataStoreSavedField,
    DataStoreSchema,
    DataStoreSchemaField,
)
from cardflow.models.flow import (
    AgentNode,
    DataStoreNode,
    Edge,
    EndNode,
    Flow,
    IfNode,
    Node,
    NodeType,
    ReadyState,
    StartNode,
)
from cardflow.models.outcome import TurnOutcome
from cardflow.models.validation import IssueCode, IssueLocation, Severity, ValidationIssue

__all__ = [
    # Agents
    "Agent",
    "ApiType",
    "HistoryPromptMessage",
    "HistoryType",
    "MessageRole",
    "OutputFormat",
    "PlainPromptMessage",
    "PromptBlock",
    "PromptMessage",
    "SchemaField",
    # Conditions
    "ConditionDataType",
    "ConditionOperator",
    "IfCondition",
    "LogicOperator",
    # Render context
    "Character",
    "HistoryItem",
    "Message",
    "RenderContext",
    # Data store
    "DataStoreField",
    "DataStoreFieldType",
    "DataStoreNodeField",
    "DataStoreSavedField",
    "DataStoreSchema",
    "DataStoreSchemaField",
    # Flow graph
    "AgentNode",
    "DataStoreNode",
    "Edge",
    "EndNode",
    "Flow",
    "IfNode",
    "Node",
    "NodeType",
    "ReadyState",
    "StartNode",
    # Turns
    "TurnOutcome",
    # Validation
    "IssueCode",
    "IssueLocation",
    "Severity",
    "ValidationIssue",
]

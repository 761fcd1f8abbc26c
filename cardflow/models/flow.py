"""Flow graph models: nodes, edges and the flow aggregate.

A Flow is an immutable snapshot handed to the graph model, the validators
and the executor. Nodes are a tagged union on ``type``; each variant carries
its own payload.
"""

from enum import Enum
from typing import Annotated, Any, Literal

from pydantic import Field

from cardflow.models.agent import Agent
from cardflow.models.base import DocumentModel
from cardflow.models.condition import IfCondition, LogicOperator
from cardflow.models.data_store import DataStoreNodeField, DataStoreSchema
from cardflow.models.validation import ValidationIssue


class NodeType(str, Enum):
    start = "start"
    end = "end"
    agent = "agent"
    if_ = "if"
    data_store = "dataStore"


class ReadyState(str, Enum):
    """draft until validated, then ready or invalid."""

    draft = "draft"
    ready = "ready"
    invalid = "invalid"


class _NodeBase(DocumentModel):
    id: str
    position: dict[str, float] | None = None  # editor canvas only


class StartNode(_NodeBase):
    type: Literal["start"] = "start"


class EndNode(_NodeBase):
    type: Literal["end"] = "end"


class AgentNode(_NodeBase):
    type: Literal["agent"] = "agent"
    agent_id: str | None = None

    @property
    def resolved_agent_id(self) -> str:
        return self.agent_id or self.id


class IfNode(_NodeBase):
    type: Literal["if"] = "if"
    name: str = ""
    logic_operator: LogicOperator = LogicOperator.and_
    conditions: list[IfCondition] = []


class DataStoreNode(_NodeBase):
    type: Literal["dataStore"] = "dataStore"
    name: str = ""
    fields: list[DataStoreNodeField] = []


Node = Annotated[
    StartNode | EndNode | AgentNode | IfNode | DataStoreNode,
    Field(discriminator="type"),
]


class Edge(DocumentModel):
    """a directed edge; sourceHandle is "true"/"false" when leaving an If node."""

    id: str
    source: str
    target: str
    source_handle: str | None = None


class Flow(DocumentModel):
    """The persisted node/edge graph plus everything it references."""

    id: str
    name: str = ""
    nodes: list[Node] = []
    edges: list[Edge] = []
    response_template: str = ""
    data_store_schema: DataStoreSchema = Field(default_factory=DataStoreSchema)
    agents: dict[str, Agent] = {}
    ready_state: ReadyState = ReadyState.draft
    validation_issues: list[ValidationIssue] = []

    def node(self, node_id: str) -> Any:
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None

    def nodes_of(self, node_type: NodeType | str) -> list[Any]:
        wanted = NodeType(node_type).value
        return [node for node in self.nodes if node.type == wanted]

    def agent_for(self, node: AgentNode) -> Agent | None:
        return self.agents.get(node.resolved_agent_id)

    @property
    def is_ready(self) -> bool:
        return self.ready_state == ReadyState.ready

"""In-memory graph over a Flow snapshot with structural checks.

The structural checks here gate everything else: validators that reason
about upstream agents or branch reachability only run once the graph is a
single-Start DAG with complete If branches.
"""

from collections import deque
from functools import cached_property

from cardflow.models.flow import Edge, Flow, NodeType
from cardflow.models.validation import IssueCode, IssueLocation, Severity, ValidationIssue

BRANCH_HANDLES = ("true", "false")

_WHITE, _GREY, _BLACK = 0, 1, 2


def _structural(
    code: str,
    message: str,
    node_id: str | None = None,
    severity: Severity = Severity.error,
    **data,
) -> ValidationIssue:
    return ValidationIssue(
        code=code,
        severity=severity,
        message=message,
        location=IssueLocation(node_id=node_id) if node_id else None,
        data=data,
        category="structure",
    )


class GraphModel:
    """Adjacency view of a flow. Never mutates the flow it wraps."""

    def __init__(self, flow: Flow) -> None:
        self.flow = flow
        self.nodes = {node.id: node for node in flow.nodes}
        self._outgoing: dict[str, list[Edge]] = {node_id: [] for node_id in self.nodes}
        self._incoming: dict[str, list[Edge]] = {node_id: [] for node_id in self.nodes}
        self.dangling_edges: list[Edge] = []

        for edge in flow.edges:
            if edge.source not in self.nodes or edge.target not in self.nodes:
                self.dangling_edges.append(edge)
                continue
            self._outgoing[edge.source].append(edge)
            self._incoming[edge.target].append(edge)

    # --- lookups ---

    def start_node(self):
        """The first Start node in document order, if any."""
        starts = self.flow.nodes_of(NodeType.start)
        return starts[0] if starts else None

    def outgoing(self, node_id: str) -> list[Edge]:
        return list(self._outgoing.get(node_id, []))

    def incoming(self, node_id: str) -> list[Edge]:
        return list(self._incoming.get(node_id, []))

    def next_node_id(self, node_id: str, handle: str | None = None) -> str | None:
        """Target of the edge leaving node_id, matching handle when given."""
        for edge in self._outgoing.get(node_id, []):
            if handle is None or edge.source_handle == handle:
                return edge.target
        return None

    def reachable_from_start(self) -> list[str]:
        """Node ids in BFS order from the Start node."""
        start = self.start_node()
        if start is None:
            return []
        return self._bfs(start.id)

    def _bfs(self, origin: str) -> list[str]:
        seen = {origin}
        order = [origin]
        queue = deque([origin])
        while queue:
            current = queue.popleft()
            for edge in self._outgoing[current]:
                if edge.target not in seen:
                    seen.add(edge.target)
                    order.append(edge.target)
                    queue.append(edge.target)
        return order

    def ancestors(self, node_id: str) -> set[str]:
        """Every node with a directed path into node_id."""
        seen: set[str] = set()
        queue = deque([node_id])
        while queue:
            current = queue.popleft()
            for edge in self._incoming.get(current, []):
                if edge.source not in seen:
                    seen.add(edge.source)
                    queue.append(edge.source)
        seen.discard(node_id)
        return seen

    def find_cycle(self) -> list[str] | None:
        """Return one cycle as a list of node ids, or None for a DAG."""
        color = {node_id: _WHITE for node_id in self.nodes}
        parent: dict[str, str | None] = {}

        for root in self.nodes:
            if color[root] != _WHITE:
                continue
            parent[root] = None
            stack = [(root, iter(self._outgoing[root]))]
            color[root] = _GREY
            while stack:
                current, edges = stack[-1]
                edge = next(edges, None)
                if edge is None:
                    color[current] = _BLACK
                    stack.pop()
                    continue
                target = edge.target
                if color[target] == _GREY:
                    # back edge: walk parents from current back to target
                    cycle = [current]
                    while cycle[-1] != target:
                        cycle.append(parent[cycle[-1]])
                    cycle.reverse()
                    return cycle
                if color[target] == _WHITE:
                    parent[target] = current
                    color[target] = _GREY
                    stack.append((target, iter(self._outgoing[target])))
        return None

    # --- structure ---

    def validate_structure(self) -> list[ValidationIssue]:
        """Return structural issues; empty iff the graph may be executed."""
        return list(self._structure_issues)

    @property
    def is_sound(self) -> bool:
        return not any(issue.is_error for issue in self._structure_issues)

    @cached_property
    def _structure_issues(self) -> list[ValidationIssue]:
        issues: list[ValidationIssue] = []
        issues.extend(self._check_node_ids())
        issues.extend(self._check_terminals())
        issues.extend(self._check_edges())
        issues.extend(self._check_outgoing())
        issues.extend(self._check_reachability())

        cycle = self.find_cycle()
        if cycle:
            issues.append(
                _structural(
                    IssueCode.CYCLE_DETECTED,
                    "Flow contains a cycle: " + " -> ".join(cycle + [cycle[0]]),
                    node_id=cycle[0],
                    cycle=cycle,
                )
            )
        return issues

    def _check_node_ids(self) -> list[ValidationIssue]:
        seen: set[str] = set()
        issues = []
        for node in self.flow.nodes:
            if node.id in seen:
                issues.append(
                    _structural(
                        IssueCode.DUPLICATE_NODE_ID,
                        f"Node id '{node.id}' is used more than once",
                        node_id=node.id,
                    )
                )
            seen.add(node.id)
        return issues

    def _check_terminals(self) -> list[ValidationIssue]:
        issues = []
        starts = self.flow.nodes_of(NodeType.start)
        if not starts:
            issues.append(_structural(IssueCode.MISSING_START, "Flow has no Start node"))
        for extra in starts[1:]:
            issues.append(
                _structural(
                    IssueCode.MULTIPLE_START,
                    "Flow must have exactly one Start node",
                    node_id=extra.id,
                )
            )
        if not self.flow.nodes_of(NodeType.end):
            issues.append(_structural(IssueCode.MISSING_END, "Flow has no End node"))
        return issues

    def _check_edges(self) -> list[ValidationIssue]:
        issues = []
        for edge in self.dangling_edges:
            missing = [
                endpoint
                for endpoint in (edge.source, edge.target)
                if endpoint not in self.nodes
            ]
            issues.append(
                _structural(
                    IssueCode.DANGLING_EDGE,
                    f"Edge '{edge.id}' references missing node(s): {', '.join(missing)}",
                    edge_id=edge.id,
                    missing=missing,
                )
            )
        return issues

    def _check_outgoing(self) -> list[ValidationIssue]:
        issues = []
        for node in self.flow.nodes:
            edges = self._outgoing[node.id]
            if node.type == NodeType.end.value:
                if edges:
                    issues.append(
                        _structural(
                            IssueCode.END_HAS_OUTGOING_EDGE,
                            "Edges leaving an End node are never followed",
                            node_id=node.id,
                            severity=Severity.warning,
                        )
                    )
                continue

            if node.type == NodeType.if_.value:
                handles = [edge.source_handle for edge in edges]
                for edge in edges:
                    if edge.source_handle not in BRANCH_HANDLES:
                        issues.append(
                            _structural(
                                IssueCode.INVALID_BRANCH_HANDLE,
                                f"Edge '{edge.id}' leaves an If node without a true/false handle",
                                node_id=node.id,
                                edge_id=edge.id,
                            )
                        )
                for branch in BRANCH_HANDLES:
                    if branch not in handles:
                        issues.append(
                            _structural(
                                IssueCode.IF_MISSING_BRANCH,
                                f"If node is missing its '{branch}' branch",
                                node_id=node.id,
                                branch=branch,
                            )
                        )
                continue

            if not edges:
                issues.append(
                    _structural(
                        IssueCode.MISSING_OUTGOING_EDGE,
                        "Node has no outgoing edge",
                        node_id=node.id,
                    )
                )
        return issues

    def _check_reachability(self) -> list[ValidationIssue]:
        if len(self.flow.nodes_of(NodeType.start)) != 1:
            return []
        reached = set(self.reachable_from_start())
        return [
            _structural(
                IssueCode.UNREACHABLE_NODE,
                "Node is not reachable from Start",
                node_id=node.id,
            )
            for node in self.flow.nodes
            if node.id not in reached
        ]


def validate_structure(flow: Flow) -> list[ValidationIssue]:
    """Structural issues of a flow; empty iff structurally sound."""
    return GraphModel(flow).validate_structure()

"""Validator type, validation context and composition primitives.

A validator is any callable taking a ValidationContext and returning a list
of issues. Validators are pure; the primitives below build pipelines out of
them without changing that.
"""

from collections import OrderedDict
from dataclasses import dataclass
from functools import cached_property
from typing import Any, Callable, Hashable

from cardflow.graph import GraphModel
from cardflow.models.agent import Agent
from cardflow.models.flow import AgentNode, Flow, NodeType
from cardflow.models.validation import ValidationIssue

# scopes a flow can always rely on; char/user/cast need a bound session
DEFAULT_BOUND_SCOPES = frozenset({"session", "history", "toggle", "response"})


@dataclass
class ValidationContext:
    """Read-only view of a flow shared by all validators in one pass."""

    flow: Flow
    graph: GraphModel
    bound_scopes: frozenset[str] = DEFAULT_BOUND_SCOPES

    @classmethod
    def for_flow(cls, flow: Flow, bound_scopes: frozenset[str] | None = None) -> "ValidationContext":
        return cls(
            flow=flow,
            graph=GraphModel(flow),
            bound_scopes=DEFAULT_BOUND_SCOPES if bound_scopes is None else bound_scopes,
        )

    @cached_property
    def structurally_sound(self) -> bool:
        return self.graph.is_sound

    @cached_property
    def agent_nodes(self) -> list[tuple[AgentNode, Agent | None]]:
        """Agent nodes in document order with their configuration."""
        return [
            (node, self.flow.agent_for(node))
            for node in self.flow.nodes_of(NodeType.agent)
        ]

    @cached_property
    def agents_by_key(self) -> dict[str, Agent]:
        result: dict[str, Agent] = {}
        for _, agent in self.agent_nodes:
            if agent is not None:
                result.setdefault(agent.key, agent)
        return result

    @cached_property
    def data_store_fields(self) -> dict[str, Any]:
        """Schema fields by name."""
        return self.flow.data_store_schema.by_name()

    def upstream_agents(self, node_id: str) -> dict[str, Agent]:
        """Agents whose nodes can run before node_id, by agent key."""
        ancestors = self.graph.ancestors(node_id)
        result: dict[str, Agent] = {}
        for node, agent in self.agent_nodes:
            if agent is not None and node.id in ancestors:
                result.setdefault(agent.key, agent)
        return result

    def upstream_of_end(self) -> dict[str, Agent]:
        """Agents that can run before any End node."""
        result: dict[str, Agent] = {}
        for end in self.flow.nodes_of(NodeType.end):
            for key, agent in self.upstream_agents(end.id).items():
                result.setdefault(key, agent)
        return result


Validator = Callable[[ValidationContext], list[ValidationIssue]]


def compose(*validators: Validator) -> Validator:
    """Run validators in order and concatenate their issues."""

    def composed(ctx: ValidationContext) -> list[ValidationIssue]:
        issues: list[ValidationIssue] = []
        for validator in validators:
            issues.extend(validator(ctx))
        return issues

    return composed


def filtered(predicate: Callable[[ValidationContext], bool]) -> Callable[[Validator], Validator]:
    """Disable a validator whenever predicate(ctx) is false."""

    def decorate(validator: Validator) -> Validator:
        def guarded(ctx: ValidationContext) -> list[ValidationIssue]:
            if not predicate(ctx):
                return []
            return validator(ctx)

        guarded.__name__ = getattr(validator, "__name__", "validator")
        return guarded

    return decorate


def enhance(
    validator: Validator,
    enrich: Callable[[ValidationIssue, ValidationContext], ValidationIssue] | None = None,
    key: Callable[[ValidationContext], Hashable] | None = None,
    max_entries: int = 64,
) -> Validator:
    """Wrap a validator with issue enrichment and/or memoization on key(ctx)."""
    memo: OrderedDict[Hashable, tuple[ValidationIssue, ...]] = OrderedDict()

    def enhanced(ctx: ValidationContext) -> list[ValidationIssue]:
        cache_key = key(ctx) if key is not None else None
        if cache_key is not None and cache_key in memo:
            memo.move_to_end(cache_key)
            return list(memo[cache_key])

        issues = validator(ctx)
        if enrich is not None:
            issues = [enrich(issue, ctx) for issue in issues]

        if cache_key is not None:
            memo[cache_key] = tuple(issues)
            if len(memo) > max_entries:
                memo.popitem(last=False)
        return list(issues)

    enhanced.__name__ = getattr(validator, "__name__", "validator")
    return enhanced


def categorize(category: str) -> Callable[[ValidationIssue, ValidationContext], ValidationIssue]:
    """Enricher that tags uncategorized issues with category."""

    def tag(issue: ValidationIssue, ctx: ValidationContext) -> ValidationIssue:
        if issue.category != "general":
            return issue
        return issue.model_copy(update={"category": category})

    return tag


requires_sound_structure = filtered(lambda ctx: ctx.structurally_sound)

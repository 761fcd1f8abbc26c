"""Runs the validator pipeline over a flow and derives its ready state.

Validation is pure and synchronous, so results are cached by a content
hash of the flow; calling it on every editor change is cheap.
"""

import hashlib
import json
from collections import OrderedDict
from typing import Iterable

from cardflow.models.flow import Flow, ReadyState
from cardflow.models.validation import ValidationIssue
from cardflow.validation.core import (
    DEFAULT_BOUND_SCOPES,
    ValidationContext,
    Validator,
    categorize,
    compose,
    enhance,
    requires_sound_structure,
)
from cardflow.validation.validators import (
    validate_agents_exist,
    validate_data_store,
    validate_duplicate_agent_names,
    validate_if_nodes,
    validate_message_order,
    validate_model_assigned,
    validate_output_schema,
    validate_prompt_not_empty,
    validate_provider_parameters,
    validate_structure,
    validate_template_syntax,
    validate_variable_references,
)

DEFAULT_VALIDATORS: tuple[Validator, ...] = (
    validate_structure,
    enhance(validate_agents_exist, enrich=categorize("agent")),
    enhance(validate_model_assigned, enrich=categorize("agent")),
    enhance(validate_prompt_not_empty, enrich=categorize("agent")),
    enhance(validate_message_order, enrich=categorize("agent")),
    enhance(validate_output_schema, enrich=categorize("agent")),
    enhance(validate_duplicate_agent_names, enrich=categorize("agent")),
    enhance(validate_provider_parameters, enrich=categorize("parameters")),
    enhance(validate_template_syntax, enrich=categorize("template")),
    enhance(
        requires_sound_structure(validate_variable_references),
        enrich=categorize("variables"),
    ),
    enhance(validate_if_nodes, enrich=categorize("condition")),
    enhance(validate_data_store, enrich=categorize("dataStore")),
)


def flow_content_hash(flow: Flow) -> str:
    """sha256 over the flow's content, ignoring validation output."""
    document = flow.model_dump(
        mode="json",
        by_alias=True,
        exclude={"ready_state", "validation_issues"},
    )
    canonical = json.dumps(document, sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def ready_state_for(issues: Iterable[ValidationIssue]) -> ReadyState:
    """invalid if any error-severity issue exists, otherwise ready."""
    if any(issue.is_error for issue in issues):
        return ReadyState.invalid
    return ReadyState.ready


class ValidationOrchestrator:
    """Composes validators and caches results per flow snapshot."""

    def __init__(
        self,
        validators: Iterable[Validator] | None = None,
        cache_size: int = 128,
    ) -> None:
        self._pipeline = compose(*(DEFAULT_VALIDATORS if validators is None else validators))
        self.cache_size = cache_size
        self._cache: OrderedDict[tuple[str, frozenset[str]], tuple[ValidationIssue, ...]] = (
            OrderedDict()
        )

    def validate(
        self, flow: Flow, bound_scopes: Iterable[str] | None = None
    ) -> list[ValidationIssue]:
        """All issues for the flow, in pipeline order."""
        scopes = DEFAULT_BOUND_SCOPES if bound_scopes is None else frozenset(bound_scopes)
        cache_key = (flow_content_hash(flow), scopes)
        if cache_key in self._cache:
            self._cache.move_to_end(cache_key)
            return list(self._cache[cache_key])

        ctx = ValidationContext.for_flow(flow, scopes)
        issues = tuple(self._pipeline(ctx))

        self._cache[cache_key] = issues
        if len(self._cache) > self.cache_size:
            self._cache.popitem(last=False)
        return list(issues)

    def apply(self, flow: Flow, bound_scopes: Iterable[str] | None = None) -> Flow:
        """Copy of the flow with ready_state and validation_issues set."""
        issues = self.validate(flow, bound_scopes)
        return flow.model_copy(
            update={"ready_state": ready_state_for(issues), "validation_issues": issues}
        )

    def clear_cache(self) -> None:
        self._cache.clear()


def validate_flow(flow: Flow, bound_scopes: Iterable[str] | None = None) -> list[ValidationIssue]:
    """Validate with a throwaway orchestrator."""
    return ValidationOrchestrator().validate(flow, bound_scopes)

"""The individual validation rules.

Each validator walks the flow in document order so a given snapshot always
yields the same issues in the same order.
"""

import re
from typing import Iterator

from cardflow.conditions import coerce
from cardflow.errors import TemplateSyntaxError
from cardflow.models.agent import Agent, ApiType, HistoryPromptMessage, MessageRole
from cardflow.models.condition import OPERATORS_BY_TYPE, UNARY_OPERATORS
from cardflow.models.flow import NodeType
from cardflow.models.validation import IssueCode, IssueLocation, Severity, ValidationIssue
from cardflow.template.parser import Macro, parse_template
from cardflow.template.renderer import PromptRenderer
from cardflow.template.variables import (
    SYSTEM_SCOPES,
    SYSTEM_VARIABLES,
    is_system_variable,
    scope_of,
)
from cardflow.validation.core import ValidationContext
from cardflow.validation.providers import get_provider

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

# placeholder text substituted for a macro when probing an expression's type
_PROBE_VALUES = {"number": "0", "boolean": "true", "string": "x"}
_STRING_SCOPES = frozenset({"char", "user", "cast", "history", "turn"})


def _issue(
    code: str,
    message: str,
    severity: Severity = Severity.error,
    node_id: str | None = None,
    agent_id: str | None = None,
    field: str | None = None,
    **data,
) -> ValidationIssue:
    location = None
    if node_id or agent_id or field:
        location = IssueLocation(node_id=node_id, agent_id=agent_id, field=field)
    return ValidationIssue(
        code=code, severity=severity, message=message, location=location, data=data
    )


def _configured_agents(ctx: ValidationContext) -> Iterator[tuple[str, Agent]]:
    for node, agent in ctx.agent_nodes:
        if agent is not None:
            yield node.id, agent


def _condition_sources(ctx: ValidationContext) -> Iterator[tuple[str, str, str]]:
    """(node_id, field, template) for every condition operand."""
    for node in ctx.flow.nodes_of(NodeType.if_):
        for index, condition in enumerate(node.conditions):
            yield node.id, f"conditions[{index}].value1", condition.value1
            if condition.operator not in UNARY_OPERATORS:
                yield node.id, f"conditions[{index}].value2", condition.value2


def _data_store_sources(ctx: ValidationContext) -> Iterator[tuple[str, str, str]]:
    for node in ctx.flow.nodes_of(NodeType.data_store):
        for index, node_field in enumerate(node.fields):
            yield node.id, f"fields[{index}].logic", node_field.logic


def _parses(source: str) -> bool:
    try:
        parse_template(source)
    except TemplateSyntaxError:
        return False
    return True


# --- structure ---


def validate_structure(ctx: ValidationContext) -> list[ValidationIssue]:
    return ctx.graph.validate_structure()


# --- agent configuration ---


def validate_agents_exist(ctx: ValidationContext) -> list[ValidationIssue]:
    return [
        _issue(
            IssueCode.MISSING_AGENT,
            f"Agent node references unknown agent '{node.resolved_agent_id}'",
            node_id=node.id,
            agent_id=node.resolved_agent_id,
        )
        for node, agent in ctx.agent_nodes
        if agent is None
    ]


def validate_model_assigned(ctx: ValidationContext) -> list[ValidationIssue]:
    issues = []
    for node_id, agent in _configured_agents(ctx):
        if not agent.api_source or not agent.model_name:
            issues.append(
                _issue(
                    IssueCode.NO_MODEL_SELECTED,
                    f"Agent '{agent.name or agent.id}' has no model selected",
                    node_id=node_id,
                    agent_id=agent.id,
                    field="modelName",
                )
            )
    return issues


def validate_prompt_not_empty(ctx: ValidationContext) -> list[ValidationIssue]:
    issues = []
    for node_id, agent in _configured_agents(ctx):
        if agent.target_api_type == ApiType.text:
            has_prompt = bool(agent.text_prompt.strip())
        else:
            has_prompt = any(
                block.template.strip()
                for message in agent.prompt_messages
                if not isinstance(message, HistoryPromptMessage)
                for block in message.blocks
            )
        if not has_prompt:
            issues.append(
                _issue(
                    IssueCode.MISSING_PROMPT,
                    f"Agent '{agent.name or agent.id}' has an empty prompt",
                    node_id=node_id,
                    agent_id=agent.id,
                )
            )
    return issues


def validate_message_order(ctx: ValidationContext) -> list[ValidationIssue]:
    """System messages belong at the top; chat agents usually want history."""
    issues = []
    for node_id, agent in _configured_agents(ctx):
        if agent.target_api_type != ApiType.chat:
            continue
        seen_other = False
        has_history = False
        for index, message in enumerate(agent.prompt_messages):
            if isinstance(message, HistoryPromptMessage):
                has_history = True
                seen_other = True
                continue
            if message.role != MessageRole.system:
                seen_other = True
            elif seen_other:
                issues.append(
                    _issue(
                        IssueCode.SYSTEM_MESSAGE_IN_MIDDLE,
                        "System message follows a non-system message",
                        severity=Severity.warning,
                        node_id=node_id,
                        agent_id=agent.id,
                        field=f"promptMessages[{index}]",
                    )
                )
        if not has_history:
            issues.append(
                _issue(
                    IssueCode.MISSING_HISTORY_MESSAGE,
                    f"Agent '{agent.name or agent.id}' has no history message",
                    severity=Severity.warning,
                    node_id=node_id,
                    agent_id=agent.id,
                )
            )
    return issues


def validate_output_schema(ctx: ValidationContext) -> list[ValidationIssue]:
    issues = []
    for node_id, agent in _configured_agents(ctx):
        if not agent.is_structured:
            continue
        if not agent.schema_fields:
            issues.append(
                _issue(
                    IssueCode.MISSING_OUTPUT_SCHEMA,
                    f"Agent '{agent.name or agent.id}' uses structured output without schema fields",
                    node_id=node_id,
                    agent_id=agent.id,
                    field="schemaFields",
                )
            )
            continue
        seen: set[str] = set()
        for index, schema_field in enumerate(agent.schema_fields):
            problem = None
            if not _IDENTIFIER.match(schema_field.name):
                problem = f"'{schema_field.name}' is not a valid field name"
            elif schema_field.name in seen:
                problem = f"'{schema_field.name}' is declared twice"
            seen.add(schema_field.name)
            if problem:
                issues.append(
                    _issue(
                        IssueCode.INVALID_OUTPUT_SCHEMA_FIELD,
                        problem,
                        node_id=node_id,
                        agent_id=agent.id,
                        field=f"schemaFields[{index}]",
                    )
                )
    return issues


def validate_provider_parameters(ctx: ValidationContext) -> list[ValidationIssue]:
    """Check parameters and structured output against the provider table."""
    issues = []
    for node_id, agent in _configured_agents(ctx):
        if not agent.api_source:
            continue
        provider = get_provider(agent.api_source)
        if provider is None:
            issues.append(
                _issue(
                    IssueCode.UNKNOWN_PROVIDER,
                    f"No capability data for provider '{agent.api_source}'",
                    severity=Severity.warning,
                    node_id=node_id,
                    agent_id=agent.id,
                    provider=agent.api_source,
                )
            )
            continue

        for name, value in agent.parameters.items():
            allowed = provider.parameters.get(name)
            if allowed is None:
                issues.append(
                    _issue(
                        IssueCode.UNSUPPORTED_PARAMETER,
                        f"{provider.name} does not support parameter '{name}'",
                        severity=Severity.warning,
                        node_id=node_id,
                        agent_id=agent.id,
                        field=f"parameters.{name}",
                        provider=provider.name,
                    )
                )
                continue
            numeric = isinstance(value, (int, float)) and not isinstance(value, bool)
            if not numeric or not allowed.contains(value):
                issues.append(
                    _issue(
                        IssueCode.PARAMETER_OUT_OF_RANGE,
                        f"'{name}' must be a {allowed.describe()}, got {value!r}",
                        severity=Severity.warning,
                        node_id=node_id,
                        agent_id=agent.id,
                        field=f"parameters.{name}",
                        value=value,
                        minimum=allowed.minimum,
                        maximum=allowed.maximum,
                    )
                )

        if agent.is_structured and not provider.structured_output:
            issues.append(
                _issue(
                    IssueCode.UNSUPPORTED_STRUCTURED_OUTPUT,
                    f"{provider.name} does not support structured output",
                    severity=Severity.warning,
                    node_id=node_id,
                    agent_id=agent.id,
                    field="outputFormat",
                )
            )
    return issues


def validate_duplicate_agent_names(ctx: ValidationContext) -> list[ValidationIssue]:
    """Agent keys address outputs, so they must be unique and unreserved."""
    issues = []
    seen: dict[str, str] = {}
    for node_id, agent in _configured_agents(ctx):
        key = agent.key
        if key in SYSTEM_SCOPES or key in ctx.data_store_fields:
            issues.append(
                _issue(
                    IssueCode.RESERVED_AGENT_NAME,
                    f"Agent name '{agent.name}' collides with the '{key}' variable",
                    node_id=node_id,
                    agent_id=agent.id,
                    field="name",
                    key=key,
                )
            )
        elif key in seen and seen[key] != agent.id:
            issues.append(
                _issue(
                    IssueCode.DUPLICATE_AGENT_NAME,
                    f"Agent name '{agent.name}' is already used by another agent",
                    node_id=node_id,
                    agent_id=agent.id,
                    field="name",
                    key=key,
                )
            )
        seen.setdefault(key, agent.id)
    return issues


# --- templates ---


def _syntax_issue(
    error: TemplateSyntaxError,
    node_id: str | None,
    field: str,
    agent_id: str | None = None,
) -> ValidationIssue:
    return _issue(
        IssueCode.TEMPLATE_SYNTAX_ERROR,
        str(error),
        node_id=node_id,
        agent_id=agent_id,
        field=field,
        position=error.position,
    )


def validate_template_syntax(ctx: ValidationContext) -> list[ValidationIssue]:
    issues = []
    for node_id, agent in _configured_agents(ctx):
        for site in PromptRenderer(agent).iter_templates():
            try:
                parse_template(site.source)
            except TemplateSyntaxError as e:
                issues.append(_syntax_issue(e, node_id, site.field, agent.id))

    for node_id, field, source in (*_condition_sources(ctx), *_data_store_sources(ctx)):
        try:
            parse_template(source)
        except TemplateSyntaxError as e:
            issues.append(_syntax_issue(e, node_id, field))

    try:
        parse_template(ctx.flow.response_template)
    except TemplateSyntaxError as e:
        issues.append(_syntax_issue(e, None, "responseTemplate"))
    return issues


def _reference_problem(
    path: str,
    ctx: ValidationContext,
    upstream: dict[str, Agent],
    in_history: bool,
) -> tuple[str, str] | None:
    """Return (code, reason) when path cannot resolve at this site."""
    scope = scope_of(path)
    if scope == "turn":
        if not in_history:
            return (
                IssueCode.TURN_VARIABLE_OUTSIDE_HISTORY,
                f"'{path}' is only available inside history messages",
            )
        if path not in SYSTEM_VARIABLES:
            return IssueCode.UNRESOLVABLE_VARIABLE, f"'{path}' is not a turn variable"
        return None

    if scope in SYSTEM_SCOPES:
        if not is_system_variable(path):
            return IssueCode.UNRESOLVABLE_VARIABLE, f"'{path}' is not a known variable"
        if scope == "dataStore":
            name = path.split(".", 1)[1]
            if name not in ctx.data_store_fields:
                return (
                    IssueCode.UNRESOLVABLE_VARIABLE,
                    f"Data store field '{name}' is not declared",
                )
            return None
        if scope not in ctx.bound_scopes:
            return (
                IssueCode.UNRESOLVABLE_VARIABLE,
                f"'{path}' needs {scope} context, which is not bound",
            )
        return None

    head, *parts = path.split(".")
    if head in upstream:
        agent = upstream[head]
        if not parts:
            return None
        if not agent.is_structured:
            return (
                IssueCode.UNRESOLVABLE_VARIABLE,
                f"Agent '{head}' produces text, so '{path}' has no fields",
            )
        if parts[0] not in {f.name for f in agent.schema_fields}:
            return (
                IssueCode.UNRESOLVABLE_VARIABLE,
                f"Agent '{head}' has no output field '{parts[0]}'",
            )
        return None

    if head in ctx.agents_by_key:
        return (
            IssueCode.UNRESOLVABLE_VARIABLE,
            f"Agent '{head}' does not run before this point",
        )
    if not parts and head in ctx.data_store_fields:
        return None
    return IssueCode.UNRESOLVABLE_VARIABLE, f"'{path}' does not match any variable"


def _reference_issues(
    source: str,
    ctx: ValidationContext,
    upstream: dict[str, Agent],
    node_id: str | None,
    field: str,
    agent_id: str | None = None,
    in_history: bool = False,
) -> list[ValidationIssue]:
    if not _parses(source):
        return []
    issues = []
    for path in parse_template(source).variables:
        problem = _reference_problem(path, ctx, upstream, in_history)
        if problem is None:
            continue
        code, reason = problem
        issues.append(
            _issue(
                code,
                reason,
                node_id=node_id,
                agent_id=agent_id,
                field=field,
                variable=path,
            )
        )
    return issues


def validate_variable_references(ctx: ValidationContext) -> list[ValidationIssue]:
    """Every macro must resolve against what is bound before its node runs."""
    issues = []
    for node_id, agent in _configured_agents(ctx):
        upstream = ctx.upstream_agents(node_id)
        for site in PromptRenderer(agent).iter_templates():
            issues.extend(
                _reference_issues(
                    site.source,
                    ctx,
                    upstream,
                    node_id,
                    site.field,
                    agent_id=agent.id,
                    in_history=site.in_history,
                )
            )

    for node_id, field, source in (*_condition_sources(ctx), *_data_store_sources(ctx)):
        issues.extend(
            _reference_issues(source, ctx, ctx.upstream_agents(node_id), node_id, field)
        )

    issues.extend(
        _reference_issues(
            ctx.flow.response_template,
            ctx,
            ctx.upstream_of_end(),
            None,
            "responseTemplate",
        )
    )
    return issues


# --- typed expressions ---


def _macro_type(macro: Macro, ctx: ValidationContext) -> str | None:
    """Declared type behind a macro, or None when only known at run time."""
    head, *parts = macro.path.split(".")
    if head == "dataStore" and parts:
        declared = ctx.data_store_fields.get(".".join(parts))
        return declared.type.value if declared else None
    if head == "toggle":
        return "boolean"
    if head in _STRING_SCOPES:
        return "string"
    if not parts and head not in ctx.agents_by_key and head in ctx.data_store_fields:
        return ctx.data_store_fields[head].type.value
    return None


def renders_as(source: str, target: str, ctx: ValidationContext) -> bool:
    """Whether source can render into a value of the target type.

    A macro whose declared type differs from the target never does. The
    remaining macros are replaced by a sample of the target type and the
    result is coerced.
    """
    if target == "string" or not _parses(source):
        return True
    parts = []
    for node in parse_template(source).nodes:
        if isinstance(node, Macro):
            declared = _macro_type(node, ctx)
            if declared is not None and declared != target:
                return False
            parts.append(_PROBE_VALUES[target])
        else:
            parts.append(node.value)
    return coerce("".join(parts), target) is not None


def validate_if_nodes(ctx: ValidationContext) -> list[ValidationIssue]:
    issues = []
    for node in ctx.flow.nodes_of(NodeType.if_):
        for index, condition in enumerate(node.conditions):
            field = f"conditions[{index}]"
            unary = condition.operator in UNARY_OPERATORS
            if (
                condition.operator is None
                or not condition.value1.strip()
                or (not unary and not condition.value2.strip())
            ):
                issues.append(
                    _issue(
                        IssueCode.INCOMPLETE_CONDITION,
                        "Condition needs an operator and both operands",
                        node_id=node.id,
                        field=field,
                    )
                )
                continue
            if condition.operator not in OPERATORS_BY_TYPE[condition.data_type]:
                issues.append(
                    _issue(
                        IssueCode.OPERATOR_TYPE_MISMATCH,
                        f"Operator '{condition.operator.value}' does not apply to "
                        f"{condition.data_type.value} values",
                        node_id=node.id,
                        field=field,
                        operator=condition.operator.value,
                        data_type=condition.data_type.value,
                    )
                )
                continue
            operands = [("value1", condition.value1)]
            if not unary:
                operands.append(("value2", condition.value2))
            for operand, source in operands:
                if not renders_as(source, condition.data_type.value, ctx):
                    issues.append(
                        _issue(
                            IssueCode.CONDITION_TYPE_MISMATCH,
                            f"'{source}' cannot be compared as {condition.data_type.value}",
                            node_id=node.id,
                            field=f"{field}.{operand}",
                            data_type=condition.data_type.value,
                        )
                    )
    return issues


def validate_data_store(ctx: ValidationContext) -> list[ValidationIssue]:
    issues = []
    schema = ctx.flow.data_store_schema
    for index, schema_field in enumerate(schema.fields):
        initial = schema_field.initial_value
        if initial.strip() and coerce(initial, schema_field.type.value) is None:
            issues.append(
                _issue(
                    IssueCode.DATA_STORE_INVALID_INITIAL_VALUE,
                    f"Initial value '{initial}' of '{schema_field.name}' is not a "
                    f"valid {schema_field.type.value}",
                    field=f"dataStoreSchema.fields[{index}]",
                    field_id=schema_field.id,
                )
            )

    for node in ctx.flow.nodes_of(NodeType.data_store):
        for index, node_field in enumerate(node.fields):
            field = f"fields[{index}]"
            declared = schema.field(node_field.schema_field_id)
            if declared is None:
                issues.append(
                    _issue(
                        IssueCode.DATA_STORE_UNKNOWN_FIELD,
                        f"Field '{node_field.schema_field_id}' is not in the data store schema",
                        node_id=node.id,
                        field=field,
                    )
                )
                continue
            if node_field.logic.strip() and not renders_as(
                node_field.logic, declared.type.value, ctx
            ):
                issues.append(
                    _issue(
                        IssueCode.DATA_STORE_INVALID_EXPRESSION,
                        f"'{node_field.logic}' does not render as a "
                        f"{declared.type.value} for '{declared.name}'",
                        node_id=node.id,
                        field=f"{field}.logic",
                        field_id=declared.id,
                    )
                )
    return issues

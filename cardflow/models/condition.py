"""If-node condition models."""

from enum import Enum

from cardflow.models.base import DocumentModel


class ConditionDataType(str, Enum):
    """How both operands of a condition are coerced before comparing."""

    string = "string"
    number = "number"
    boolean = "boolean"


class ConditionOperator(str, Enum):
    """Comparison operators, grouped per data type in OPERATORS_BY_TYPE."""

    # string
    equals = "equals"
    not_equals = "notEquals"
    contains = "contains"
    not_contains = "notContains"
    starts_with = "startsWith"
    ends_with = "endsWith"
    matches_regex = "matchesRegex"
    is_empty = "isEmpty"
    is_not_empty = "isNotEmpty"
    # number
    greater_than = "greaterThan"
    less_than = "lessThan"
    greater_or_equal = "greaterOrEqual"
    less_or_equal = "lessOrEqual"
    # boolean
    is_ = "is"
    is_not = "isNot"


class LogicOperator(str, Enum):
    """Node-level combinator applied uniformly across all conditions."""

    and_ = "AND"
    or_ = "OR"


OPERATORS_BY_TYPE: dict[ConditionDataType, frozenset[ConditionOperator]] = {
    ConditionDataType.string: frozenset(
        {
            ConditionOperator.equals,
            ConditionOperator.not_equals,
            ConditionOperator.contains,
            ConditionOperator.not_contains,
            ConditionOperator.starts_with,
            ConditionOperator.ends_with,
            ConditionOperator.matches_regex,
            ConditionOperator.is_empty,
            ConditionOperator.is_not_empty,
        }
    ),
    ConditionDataType.number: frozenset(
        {
            ConditionOperator.equals,
            ConditionOperator.not_equals,
            ConditionOperator.greater_than,
            ConditionOperator.less_than,
            ConditionOperator.greater_or_equal,
            ConditionOperator.less_or_equal,
        }
    ),
    ConditionDataType.boolean: frozenset(
        {ConditionOperator.is_, ConditionOperator.is_not}
    ),
}

# operators that ignore value2
UNARY_OPERATORS = frozenset({ConditionOperator.is_empty, ConditionOperator.is_not_empty})


class IfCondition(DocumentModel):
    """One typed comparison; either operand may embed macros."""

    id: str
    data_type: ConditionDataType = ConditionDataType.string
    value1: str = ""
    operator: ConditionOperator | None = None
    value2: str = ""

"""Typed boolean evaluation for If-node branching."""

import logging
import math
import re
from typing import Any, Iterable

from cardflow.errors import TemplateSyntaxError
from cardflow.models.condition import (
    OPERATORS_BY_TYPE,
    UNARY_OPERATORS,
    ConditionDataType,
    ConditionOperator,
    IfCondition,
    LogicOperator,
)
from cardflow.models.context import RenderContext
from cardflow.models.flow import IfNode
from cardflow.template.renderer import TemplateRenderer

logger = logging.getLogger(__name__)

TRUE_LITERALS = frozenset({"true", "1", "yes"})
FALSE_LITERALS = frozenset({"false", "0", "no"})


def coerce(value: Any, data_type: ConditionDataType | str) -> Any | None:
    """Coerce a rendered value into data_type; None when it cannot be."""
    data_type = ConditionDataType(data_type)
    if data_type == ConditionDataType.string:
        return "" if value is None else str(value)

    if data_type == ConditionDataType.number:
        if isinstance(value, bool) or value is None:
            return None
        if isinstance(value, (int, float)):
            return float(value)
        try:
            return float(str(value).strip())
        except ValueError:
            return None

    if isinstance(value, bool):
        return value
    text = str(value).strip().lower() if value is not None else ""
    if text in TRUE_LITERALS:
        return True
    if text in FALSE_LITERALS:
        return False
    return None


class ConditionEvaluator:
    """Evaluates IfConditions against a RenderContext.

    Type problems are validation-time errors; at run time a value that does
    not coerce is logged and the condition evaluates to False.
    """

    def __init__(self, renderer: TemplateRenderer | None = None) -> None:
        self.renderer = renderer or TemplateRenderer()

    def evaluate(self, condition: IfCondition, context: RenderContext) -> bool:
        operator = condition.operator
        if operator is None or operator not in OPERATORS_BY_TYPE[condition.data_type]:
            logger.warning(
                "Condition %s: operator %s not valid for %s",
                condition.id,
                operator,
                condition.data_type.value,
            )
            return False

        try:
            left_text = self.renderer.render(condition.value1, context)
            right_text = (
                "" if operator in UNARY_OPERATORS
                else self.renderer.render(condition.value2, context)
            )
        except TemplateSyntaxError as e:
            logger.warning("Condition %s could not be rendered: %s", condition.id, e)
            return False

        left = coerce(left_text, condition.data_type)
        right = coerce(right_text, condition.data_type)
        if left is None or (right is None and operator not in UNARY_OPERATORS):
            logger.warning(
                "Condition %s: could not coerce %r / %r to %s",
                condition.id,
                left_text,
                right_text,
                condition.data_type.value,
            )
            return False

        if condition.data_type == ConditionDataType.string:
            return self._compare_strings(condition, left, right)
        if condition.data_type == ConditionDataType.number:
            return self._compare_numbers(operator, left, right)
        if operator == ConditionOperator.is_:
            return left == right
        return left != right

    def _compare_strings(self, condition: IfCondition, left: str, right: str) -> bool:
        operator = condition.operator
        if operator == ConditionOperator.equals:
            return left == right
        if operator == ConditionOperator.not_equals:
            return left != right
        if operator == ConditionOperator.contains:
            return right in left
        if operator == ConditionOperator.not_contains:
            return right not in left
        if operator == ConditionOperator.starts_with:
            return left.startswith(right)
        if operator == ConditionOperator.ends_with:
            return left.endswith(right)
        if operator == ConditionOperator.is_empty:
            return not left.strip()
        if operator == ConditionOperator.is_not_empty:
            return bool(left.strip())
        # matchesRegex
        try:
            return re.search(right, left) is not None
        except re.error as e:
            logger.warning("Condition %s: invalid regex %r: %s", condition.id, right, e)
            return False

    def _compare_numbers(self, operator: ConditionOperator, left: float, right: float) -> bool:
        if math.isnan(left) or math.isnan(right):
            return False
        if operator == ConditionOperator.equals:
            return left == right
        if operator == ConditionOperator.not_equals:
            return left != right
        if operator == ConditionOperator.greater_than:
            return left > right
        if operator == ConditionOperator.less_than:
            return left < right
        if operator == ConditionOperator.greater_or_equal:
            return left >= right
        return left <= right

    def combine(self, results: Iterable[bool], logic_operator: LogicOperator | str) -> bool:
        """AND/OR applied uniformly; an empty list is True."""
        results = list(results)
        if not results:
            return True
        if LogicOperator(logic_operator) == LogicOperator.and_:
            return all(results)
        return any(results)

    def evaluate_node(self, node: IfNode, context: RenderContext) -> bool:
        results = [self.evaluate(condition, context) for condition in node.conditions]
        return self.combine(results, node.logic_operator)

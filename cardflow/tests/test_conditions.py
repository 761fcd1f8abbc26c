"""Tests for typed condition evaluation and AND/OR combination."""

import itertools
import logging

import pytest

from cardflow.conditions import ConditionEvaluator, coerce
from cardflow.models.condition import (
    ConditionDataType,
    ConditionOperator,
    IfCondition,
    LogicOperator,
)
from cardflow.models.context import RenderContext
from cardflow.models.flow import IfNode


def cond(data_type, value1, operator, value2="", cid="c"):
    return IfCondition(
        id=cid,
        data_type=data_type,
        value1=value1,
        operator=operator,
        value2=value2,
    )


class TestCoerce:
    def test_numbers(self):
        assert coerce("10", "number") == 10.0
        assert coerce(" 2.5 ", "number") == 2.5
        assert coerce(3, "number") == 3.0
        assert coerce("ten", "number") is None
        assert coerce(True, "number") is None

    def test_booleans(self):
        assert coerce("TRUE", "boolean") is True
        assert coerce("false", "boolean") is False
        assert coerce("yes", "boolean") is True
        assert coerce("0", "boolean") is False
        assert coerce("maybe", "boolean") is None

    def test_strings_pass_through(self):
        assert coerce("anything", "string") == "anything"
        assert coerce(None, "string") == ""


class TestEvaluate:
    """Each operator compares coerced operands."""

    def setup_method(self):
        self.evaluator = ConditionEvaluator()
        self.context = RenderContext(
            data_store={"count": 10.0, "name": "Sir Alice", "ready": True},
        )

    @pytest.mark.parametrize(
        "operator, value2, expected",
        [
            (ConditionOperator.greater_than, "5", True),
            (ConditionOperator.less_than, "5", False),
            (ConditionOperator.greater_or_equal, "10", True),
            (ConditionOperator.less_or_equal, "9.5", False),
            (ConditionOperator.equals, "10.0", True),
            (ConditionOperator.not_equals, "10", False),
        ],
    )
    def test_number_operators(self, operator, value2, expected):
        condition = cond(ConditionDataType.number, "{{dataStore.count}}", operator, value2)
        assert self.evaluator.evaluate(condition, self.context) is expected

    @pytest.mark.parametrize(
        "operator, value2, expected",
        [
            (ConditionOperator.equals, "Sir Alice", True),
            (ConditionOperator.not_equals, "Sir Alice", False),
            (ConditionOperator.contains, "Alice", True),
            (ConditionOperator.not_contains, "Bob", True),
            (ConditionOperator.starts_with, "Sir", True),
            (ConditionOperator.ends_with, "Sir", False),
            (ConditionOperator.matches_regex, r"^Sir\s+\w+$", True),
        ],
    )
    def test_string_operators(self, operator, value2, expected):
        condition = cond(ConditionDataType.string, "{{name}}", operator, value2)
        assert self.evaluator.evaluate(condition, self.context) is expected

    def test_unary_string_operators(self):
        empty = cond(ConditionDataType.string, "{{dataStore.missing}}", ConditionOperator.is_empty)
        assert self.evaluator.evaluate(empty, self.context) is True
        not_empty = cond(ConditionDataType.string, "{{name}}", ConditionOperator.is_not_empty)
        assert self.evaluator.evaluate(not_empty, self.context) is True

    def test_boolean_operators(self):
        is_true = cond(ConditionDataType.boolean, "{{dataStore.ready}}", ConditionOperator.is_, "true")
        is_not = cond(ConditionDataType.boolean, "{{dataStore.ready}}", ConditionOperator.is_not, "true")
        assert self.evaluator.evaluate(is_true, self.context) is True
        assert self.evaluator.evaluate(is_not, self.context) is False

    def test_uncoercible_value_is_false_and_logged(self, caplog):
        condition = cond(
            ConditionDataType.number, "{{name}}", ConditionOperator.greater_than, "1"
        )
        with caplog.at_level(logging.WARNING, logger="cardflow.conditions"):
            assert self.evaluator.evaluate(condition, self.context) is False
        assert "could not coerce" in caplog.text

    def test_operator_from_other_type_is_false(self):
        condition = cond(ConditionDataType.number, "1", ConditionOperator.contains, "1")
        assert self.evaluator.evaluate(condition, self.context) is False

    def test_invalid_regex_is_false(self):
        condition = cond(ConditionDataType.string, "abc", ConditionOperator.matches_regex, "(")
        assert self.evaluator.evaluate(condition, self.context) is False


class TestCombine:
    """AND is all, OR is any, applied uniformly to the whole list."""

    def setup_method(self):
        self.evaluator = ConditionEvaluator()

    @pytest.mark.parametrize("size", [1, 2, 3, 4])
    def test_and_or_over_all_combinations(self, size):
        for results in itertools.product([True, False], repeat=size):
            assert self.evaluator.combine(results, LogicOperator.and_) == all(results)
            assert self.evaluator.combine(results, "OR") == any(results)

    def test_empty_list_is_true(self):
        assert self.evaluator.combine([], LogicOperator.and_) is True
        assert self.evaluator.combine([], LogicOperator.or_) is True

    def test_evaluate_node(self):
        context = RenderContext(data_store={"count": 3.0})
        node = IfNode(
            id="n",
            logic_operator=LogicOperator.or_,
            conditions=[
                cond(ConditionDataType.number, "{{count}}", ConditionOperator.greater_than, "5", "c1"),
                cond(ConditionDataType.number, "{{count}}", ConditionOperator.less_than, "4", "c2"),
            ],
        )
        assert self.evaluator.evaluate_node(node, context) is True
        and_node = node.model_copy(update={"logic_operator": LogicOperator.and_})
        assert self.evaluator.evaluate_node(and_node, context) is False

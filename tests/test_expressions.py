"""Tests for mathExpression evaluation."""

import pytest

from schemaplate.exceptions import ExpressionError, ExpressionOperandError
from schemaplate.templates.expressions import evaluate_expression, expression_symbols


class TestExpressionSymbols:
    def test_identifiers(self):
        assert expression_symbols("a + b * count") == {"a", "b", "count"}

    def test_numbers_are_not_symbols(self):
        assert expression_symbols("2 * x + 10") == {"x"}

    def test_reserved_words(self):
        assert expression_symbols("a and not b") == {"a", "b"}

    def test_number_exponents_are_not_symbols(self):
        assert expression_symbols("a*1e3 + 2.5E-2 * b") == {"a", "b"}


class TestEvaluateExpression:
    def test_addition(self):
        assert evaluate_expression("a+b", {"a": 2, "b": 3}) == 5

    def test_integral_results_are_ints(self):
        result = evaluate_expression("a * 2", {"a": 1.5})
        assert result == 3
        assert isinstance(result, int)

    def test_fractional_results_are_floats(self):
        assert evaluate_expression("a / b", {"a": 1, "b": 4}) == 0.25

    def test_prefix_names(self):
        assert evaluate_expression("a + ab + abc", {"abc": 100, "a": 1, "ab": 10}) == 111

    def test_unbound_symbol(self):
        with pytest.raises(KeyError, match="b"):
            evaluate_expression("a + b", {"a": 1})

    def test_malformed_expression(self):
        with pytest.raises(ExpressionError):
            evaluate_expression("a +", {"a": 1})

    def test_caret_is_power(self):
        assert evaluate_expression("a^2", {"a": 3}) == 9

    def test_mistyped_operand(self):
        with pytest.raises(ExpressionOperandError):
            evaluate_expression("a+b", {"a": "two", "b": 3})

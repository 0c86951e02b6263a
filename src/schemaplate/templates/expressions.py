"""Arithmetic ``mathExpression`` support.

Expressions are parsed and evaluated with rule-engine, e.g. ``"a + b * 2"``.
``^`` is exponentiation, as in ``"a^2"``.
"""

import decimal
import logging
import re
from typing import Any, Dict, Set, Union

import rule_engine
from rule_engine import errors as rule_errors

from ..exceptions import ExpressionError, ExpressionOperandError

logger = logging.getLogger(__name__)

# Not preceded by a digit or dot, so exponents like 1e3 are not symbols
_IDENTIFIER_PATTERN = re.compile(r"(?<![\w.])[A-Za-z_][A-Za-z0-9_]*")

# rule-engine words that look like identifiers but are not symbols
_RESERVED_WORDS = {
    "and",
    "or",
    "not",
    "in",
    "if",
    "else",
    "for",
    "true",
    "false",
    "null",
    "inf",
    "nan",
}

Number = Union[int, float]


def expression_symbols(expression: str) -> Set[str]:
    """Return the identifiers an expression refers to."""
    return {
        name
        for name in _IDENTIFIER_PATTERN.findall(expression)
        if name not in _RESERVED_WORDS
    }


def _normalize(value: Any) -> Any:
    if isinstance(value, decimal.Decimal):
        if value == value.to_integral_value():
            return int(value)
        return float(value)
    return value


def evaluate_expression(expression: str, bindings: Dict[str, Any]) -> Number:
    """Evaluate an arithmetic expression against variable bindings.

    Args:
        expression: Expression text
        bindings: Values for the identifiers used in the expression

    Returns:
        The numeric result, as an int when it has no fractional part

    Raises:
        KeyError: If the expression references an unbound identifier
        ExpressionOperandError: If an operand has the wrong type
        ExpressionError: If the expression is malformed or cannot be evaluated
    """
    missing = expression_symbols(expression) - set(bindings)
    if missing:
        raise KeyError(", ".join(sorted(missing)))

    # Longer names are bound last so that no name shadows a longer one it prefixes
    ordered = {key: bindings[key] for key in sorted(bindings, key=len)}

    try:
        rule = rule_engine.Rule(expression.replace("^", "**"))
    except rule_errors.EngineError as e:
        raise ExpressionError(
            f"Failed to parse expression '{expression}': {getattr(e, 'message', e)}"
        ) from e

    try:
        return _normalize(rule.evaluate(ordered))
    except (TypeError, rule_errors.EvaluationError) as e:
        reason = getattr(e, "message", None) or str(e)
        raise ExpressionOperandError(
            f"Operand of expression '{expression}' has the wrong type: {reason}"
        ) from e
    except (rule_errors.EngineError, ArithmeticError) as e:
        reason = getattr(e, "message", None) or str(e)
        raise ExpressionError(
            f"Failed to evaluate expression '{expression}': {reason}"
        ) from e

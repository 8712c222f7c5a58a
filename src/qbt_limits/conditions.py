"""
Condition evaluation for share limit rules

Conditions are parsed once, when the configuration is loaded, so evaluation
never fails: a numeric condition on a field the torrent does not report
simply does not match.
"""

import math
from typing import Any, Optional, Tuple, Union

from qbt_limits.errors import ConditionSyntaxError
from qbt_limits.models import (
    CategoryEquals,
    Condition,
    NumericCompare,
    Operator,
    TagsEqual,
    TorrentSnapshot,
    is_number,
)

OPERATOR_CHARS = '<>='
EXPECTED_FORMAT = "a number prefixed with '>', '>=', '<' or '<='"

Number = Union[int, float]


def parse_operator(symbol: str) -> Operator:
    """
    Parse an operator symbol

    Raises:
        ConditionSyntaxError: If symbol is not one of >, >=, <, <=
    """
    try:
        return Operator(str(symbol).strip())
    except ValueError:
        raise ConditionSyntaxError(symbol, f"unknown operator '{symbol}', expected '>', '>=', '<' or '<='")


def parse_number(text: str) -> Number:
    """
    Parse a threshold, keeping integers as int

    Raises:
        ValueError: If text is not a finite number
    """
    text = text.strip()
    try:
        return int(text)
    except ValueError:
        pass
    number = float(text)
    if not math.isfinite(number):
        raise ValueError(f"not a finite number: {text}")
    return number


def parse_comparison(value: Any, default_operator: Optional[Operator] = None) -> Tuple[Operator, Number]:
    """
    Parse an operator-prefixed threshold such as '>10080' or '<=2.5'

    Args:
        value: Raw condition value from the rules document
        default_operator: Operator for values without a prefix; when None,
                          an unprefixed value is rejected

    Returns:
        (operator, threshold) tuple

    Raises:
        ConditionSyntaxError: If the value is malformed

    Examples:
        >>> parse_comparison('>10080')
        (<Operator.GREATER_THAN: '>'>, 10080)
        >>> parse_comparison(5, default_operator=Operator.GREATER_THAN_OR_EQUAL)
        (<Operator.GREATER_THAN_OR_EQUAL: '>='>, 5)
    """
    if isinstance(value, bool) or value is None:
        raise ConditionSyntaxError(value, f"expected {EXPECTED_FORMAT}")

    if is_number(value):
        if default_operator is None:
            raise ConditionSyntaxError(
                value, f"missing comparison operator, expected {EXPECTED_FORMAT} (or set default_operator)"
            )
        if isinstance(value, float) and not math.isfinite(value):
            raise ConditionSyntaxError(value, "expected a finite number")
        return default_operator, value

    if not isinstance(value, str):
        raise ConditionSyntaxError(value, f"expected {EXPECTED_FORMAT}")

    text = value.strip()
    position = next((i for i, char in enumerate(text) if char not in OPERATOR_CHARS), None)
    if position is None:
        # Empty string, or nothing but operator characters
        raise ConditionSyntaxError(value, f"expected {EXPECTED_FORMAT}")

    prefix, number_text = text[:position], text[position:]
    if prefix:
        try:
            operator = Operator(prefix)
        except ValueError:
            raise ConditionSyntaxError(value, f"unknown prefix \"{prefix}\", expected '>', '>=', '<' or '<='")
    elif default_operator is not None:
        operator = default_operator
    else:
        raise ConditionSyntaxError(
            value, f"missing comparison operator, expected {EXPECTED_FORMAT} (or set default_operator)"
        )

    try:
        threshold = parse_number(number_text)
    except ValueError:
        raise ConditionSyntaxError(value, f"\"{number_text.strip()}\" is not a suitable number")

    return operator, threshold


def evaluate_operator(operator: Operator, actual: Number, threshold: Number) -> bool:
    """
    Compare actual against threshold

    Ties belong to >= and <= only.
    """
    if operator is Operator.GREATER_THAN:
        return actual > threshold
    if operator is Operator.GREATER_THAN_OR_EQUAL:
        return actual >= threshold
    if operator is Operator.LESS_THAN:
        return actual < threshold
    if operator is Operator.LESS_THAN_OR_EQUAL:
        return actual <= threshold
    raise TypeError(f"Unsupported operator: {operator!r}")


def evaluate_condition(condition: Condition, snapshot: TorrentSnapshot) -> bool:
    """
    Evaluate one condition against a torrent snapshot

    Args:
        condition: Parsed condition
        snapshot: Torrent snapshot

    Returns:
        True if the torrent satisfies the condition
    """
    if isinstance(condition, CategoryEquals):
        return snapshot.category == condition.value

    if isinstance(condition, TagsEqual):
        return snapshot.tags == condition.tags

    if isinstance(condition, NumericCompare):
        actual = snapshot.fields.get(condition.field)
        if not is_number(actual):
            return False
        if isinstance(actual, float) and math.isnan(actual):
            return False
        return evaluate_operator(condition.operator, actual, condition.threshold)

    raise TypeError(f"Unknown condition type: {type(condition).__name__}")

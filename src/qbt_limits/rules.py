"""
Rule set construction and validation

Turns the raw `rules`, `default_limits` and `default_operator` entries of the
configuration document into an immutable RuleSet. Any problem rejects the
whole configuration: a bad rule is never skipped silently.
"""

import math
from typing import Any, Dict, List, Optional

from qbt_limits.conditions import parse_comparison, parse_operator
from qbt_limits.errors import ConditionSyntaxError, RuleValidationError
from qbt_limits.logging import get_logger
from qbt_limits.models import (
    UNLIMITED,
    CategoryEquals,
    Condition,
    Limits,
    NumericCompare,
    Operator,
    Rule,
    RuleSet,
    TagsEqual,
    normalize_field_name,
)

logger = get_logger(__name__)

# Rule keys that are not numeric field conditions
RESERVED_KEYS = {'name', 'limits', 'enabled', 'category', 'tags'}
LIMIT_KEYS = {'ratio', 'minutes'}
UNLIMITED_WORDS = {'unlimited', 'no limit'}

# qBittorrent caps per-torrent limits at these values
MAX_RATIO = 9999.0
MAX_SEEDING_MINUTES = 525600


def _is_unlimited(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in UNLIMITED_WORDS or value.strip() == '-1'
    return not isinstance(value, bool) and isinstance(value, (int, float)) and value == -1


def parse_ratio(value: Any, rule_name: str):
    """Parse a ratio limit: None, UNLIMITED or a non-negative float"""
    if value is None:
        return None
    if _is_unlimited(value):
        return UNLIMITED
    if isinstance(value, bool):
        raise RuleValidationError(rule_name, f"ratio must be a number or 'unlimited', got {value!r}")
    try:
        ratio = float(value)
    except (TypeError, ValueError):
        raise RuleValidationError(rule_name, f"ratio must be a number or 'unlimited', got {value!r}")
    if not math.isfinite(ratio):
        raise RuleValidationError(rule_name, f"ratio must be a finite number, got {value!r}")
    if ratio < 0:
        raise RuleValidationError(rule_name, f"ratio must not be negative (use 'unlimited'), got {value!r}")
    if ratio > MAX_RATIO:
        raise RuleValidationError(rule_name, f"ratio must be at most {MAX_RATIO:g} (use 'unlimited'), got {value!r}")
    return ratio


def parse_minutes(value: Any, rule_name: str):
    """Parse a seeding time limit in minutes: None, UNLIMITED or a non-negative int"""
    if value is None:
        return None
    if _is_unlimited(value):
        return UNLIMITED
    if isinstance(value, bool):
        raise RuleValidationError(rule_name, f"minutes must be a whole number or 'unlimited', got {value!r}")
    if isinstance(value, float):
        if not value.is_integer():
            raise RuleValidationError(rule_name, f"minutes must be a whole number, got {value!r}")
        value = int(value)
    try:
        minutes = int(value)
    except (TypeError, ValueError):
        raise RuleValidationError(rule_name, f"minutes must be a whole number or 'unlimited', got {value!r}")
    if minutes < 0:
        raise RuleValidationError(rule_name, f"minutes must not be negative (use 'unlimited'), got {value!r}")
    if minutes > MAX_SEEDING_MINUTES:
        raise RuleValidationError(rule_name, f"minutes must be at most {MAX_SEEDING_MINUTES} (use 'unlimited'), got {value!r}")
    return minutes


def parse_limits(raw: Any, rule_name: str, require_value: bool = True) -> Limits:
    """
    Parse a limits block

    Args:
        raw: Mapping with optional 'ratio' and 'minutes'
        rule_name: Rule reference for error messages
        require_value: Reject blocks that set neither ratio nor minutes

    Raises:
        RuleValidationError: If the block is malformed
    """
    if raw is None and not require_value:
        return Limits()
    if not isinstance(raw, dict):
        raise RuleValidationError(rule_name, "'limits' must be a mapping with 'ratio' and/or 'minutes'")

    unknown = set(raw) - LIMIT_KEYS
    if unknown:
        raise RuleValidationError(
            rule_name, f"unknown limits key(s): {', '.join(sorted(map(str, unknown)))} (expected 'ratio', 'minutes')"
        )

    limits = Limits(
        ratio=parse_ratio(raw.get('ratio'), rule_name),
        minutes=parse_minutes(raw.get('minutes'), rule_name),
    )
    if require_value and limits.is_unset():
        raise RuleValidationError(rule_name, "'limits' must set at least one of 'ratio' or 'minutes'")
    return limits


def parse_default_operator(raw: Any) -> Optional[Operator]:
    """Parse the optional document-level default operator"""
    if raw is None:
        return None
    try:
        return parse_operator(raw)
    except ConditionSyntaxError as e:
        raise RuleValidationError('default_operator', e.reason)


def _parse_numeric_conditions(key: str, value: Any, rule_name: str,
                              default_operator: Optional[Operator]) -> List[NumericCompare]:
    field = normalize_field_name(str(key))
    values = value if isinstance(value, list) else [value]
    if not values:
        raise RuleValidationError(rule_name, f"'{key}' must not be an empty list")

    conditions = []
    for item in values:
        try:
            operator, threshold = parse_comparison(item, default_operator)
        except ConditionSyntaxError as e:
            raise ConditionSyntaxError(e.value, e.reason, field=field, rule_name=rule_name) from None
        conditions.append(NumericCompare(field=field, operator=operator, threshold=threshold))
    return conditions


def parse_rule(raw: Any, index: int, default_operator: Optional[Operator] = None) -> Optional[Rule]:
    """
    Parse one rule entry

    Args:
        raw: Rule mapping from the rules list
        index: 1-based position in the rules list
        default_operator: Operator for unprefixed numeric thresholds

    Returns:
        Rule, or None if the rule is disabled

    Raises:
        RuleValidationError: If the rule is malformed
    """
    if not isinstance(raw, dict):
        raise RuleValidationError(f"#{index}", "rule must be a mapping")

    name = raw.get('name')
    if name is not None and not isinstance(name, str):
        name = str(name)
    rule_name = f"#{index} '{name}'" if name else f"#{index}"

    if 'limits' not in raw:
        raise RuleValidationError(rule_name, "missing required field: 'limits'")

    enabled = raw.get('enabled', True)
    if not isinstance(enabled, bool):
        raise RuleValidationError(rule_name, f"'enabled' must be true or false, got {enabled!r}")

    conditions: List[Condition] = []

    if 'category' in raw:
        category = raw['category']
        if not isinstance(category, str):
            raise RuleValidationError(
                rule_name, f"'category' must be a string (use \"\" for uncategorized), got {category!r}"
            )
        conditions.append(CategoryEquals(category))

    if 'tags' in raw:
        tags = raw['tags']
        if not isinstance(tags, list) or not all(isinstance(tag, str) for tag in tags):
            raise RuleValidationError(rule_name, f"'tags' must be a list of strings (use [] for no tags), got {tags!r}")
        conditions.append(TagsEqual(frozenset(tag.strip() for tag in tags)))

    seen_fields: Dict[str, str] = {}
    for key, value in raw.items():
        if key in RESERVED_KEYS:
            continue
        field = normalize_field_name(str(key))
        if field in seen_fields:
            raise RuleValidationError(rule_name, f"'{key}' duplicates '{seen_fields[field]}'")
        if field in RESERVED_KEYS:
            raise RuleValidationError(rule_name, f"'{key}' clashes with the reserved key '{field}'")
        seen_fields[field] = str(key)
        conditions.extend(_parse_numeric_conditions(key, value, rule_name, default_operator))

    limits = parse_limits(raw['limits'], rule_name)

    if not enabled:
        logger.debug(f"Rule {rule_name} is disabled")
        return None

    return Rule(index=index, conditions=tuple(conditions), limits=limits, name=name)


def build_rule_set(rules: Any, default_limits: Any = None, default_operator: Any = None) -> RuleSet:
    """
    Build a RuleSet from raw configuration values

    Args:
        rules: The `rules` list (None means no rules)
        default_limits: The `default_limits` mapping (None = use client globals)
        default_operator: Operator for numeric thresholds written without one

    Returns:
        Immutable RuleSet

    Raises:
        RuleValidationError: If any rule or the defaults are invalid
    """
    if rules is None:
        rules = []
    if not isinstance(rules, list):
        raise RuleValidationError('rules', "'rules' must be a list")

    operator = parse_default_operator(default_operator)
    parsed = []
    for index, raw in enumerate(rules, 1):
        rule = parse_rule(raw, index, operator)
        if rule is not None:
            parsed.append(rule)

    defaults = parse_limits(default_limits, 'default_limits', require_value=False)

    return RuleSet(rules=tuple(parsed), default_limits=defaults)

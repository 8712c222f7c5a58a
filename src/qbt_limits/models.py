"""
Data model for share limit rules

Everything here is immutable: a RuleSet is built once per configuration
load and replaced wholesale on reload, and a TorrentSnapshot is a read-only
view of one torrent at evaluation time.
"""

import math
import re
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, FrozenSet, Iterable, Mapping, Optional, Tuple, Union

from qbt_limits.errors import TorrentDataError
from qbt_limits.utils import parse_tags


class Unlimited(Enum):
    """Explicit "no limit", distinct from unset (use global) and from zero"""

    UNLIMITED = 'unlimited'

    def __str__(self) -> str:
        return self.value


UNLIMITED = Unlimited.UNLIMITED

RatioValue = Union[float, Unlimited]
MinutesValue = Union[int, Unlimited]


class Operator(Enum):
    """Comparison operator of a numeric condition"""

    GREATER_THAN = '>'
    GREATER_THAN_OR_EQUAL = '>='
    LESS_THAN = '<'
    LESS_THAN_OR_EQUAL = '<='

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class Limits:
    """
    Share limits to apply to a torrent

    Each component is None (unset: defer to the client's global limit),
    UNLIMITED, or a non-negative number.
    """

    ratio: Optional[RatioValue] = None
    minutes: Optional[MinutesValue] = None

    def is_unset(self) -> bool:
        """True when both components defer to the global limits"""
        return self.ratio is None and self.minutes is None

    def describe(self) -> str:
        ratio = 'global' if self.ratio is None else str(self.ratio)
        minutes = 'global' if self.minutes is None else str(self.minutes)
        return f"ratio {ratio}, minutes {minutes}"

    def __str__(self) -> str:
        return self.describe()


@dataclass(frozen=True)
class CategoryEquals:
    """Torrent category equals value (case-sensitive, '' = uncategorized)"""

    value: str

    def describe(self) -> str:
        return f"category = {self.value!r}" if self.value == '' else f"category = {self.value}"


@dataclass(frozen=True)
class TagsEqual:
    """Torrent tag set equals exactly this set"""

    tags: FrozenSet[str]

    def describe(self) -> str:
        return f"tags = [{', '.join(sorted(self.tags))}]"


@dataclass(frozen=True)
class NumericCompare:
    """Numeric torrent field compared against a threshold"""

    field: str
    operator: Operator
    threshold: float

    def describe(self) -> str:
        return f"{self.field} {self.operator} {self.threshold}"


Condition = Union[CategoryEquals, TagsEqual, NumericCompare]


@dataclass(frozen=True)
class Rule:
    """Ordered conjunction of conditions plus the limits applied on match"""

    index: int
    conditions: Tuple[Condition, ...]
    limits: Limits
    name: Optional[str] = None

    @property
    def label(self) -> str:
        """Human-readable rule reference for logs and errors"""
        if self.name:
            return f"#{self.index} '{self.name}'"
        return f"#{self.index}"

    def describe(self) -> str:
        if self.conditions:
            conditions = ', '.join(condition.describe() for condition in self.conditions)
        else:
            conditions = 'any torrent'
        return f"{conditions} => {self.limits.describe()}"

    def __str__(self) -> str:
        return self.describe()


@dataclass(frozen=True)
class RuleSet:
    """Full ordered rule list plus the fallback limits"""

    rules: Tuple[Rule, ...] = ()
    default_limits: Limits = field(default_factory=Limits)

    def __len__(self) -> int:
        return len(self.rules)

    def __iter__(self):
        return iter(self.rules)


# Fields qBittorrent reports that are not useful as rule attributes
_NON_ATTRIBUTE_FIELDS = {'category', 'tags', 'name', 'hash'}

_CAMEL_CASE_BOUNDARY = re.compile(r'(?<=[a-z0-9])([A-Z])')


def normalize_field_name(name: str) -> str:
    """
    Normalize a field name to the snake_case used by qBittorrent

    Examples:
        >>> normalize_field_name('seedingTime')
        'seeding_time'
        >>> normalize_field_name('num_seeds')
        'num_seeds'
    """
    return _CAMEL_CASE_BOUNDARY.sub(r'_\1', name.strip()).lower()


def is_number(value: Any) -> bool:
    """True for int/float values, excluding bool"""
    return isinstance(value, (int, float)) and not isinstance(value, bool)


@dataclass(frozen=True)
class TorrentSnapshot:
    """
    Read-only view of one torrent at evaluation time

    `fields` holds every numeric attribute keyed by snake_case name, with
    `seeding_time` expressed in minutes. `ratio_limit` and
    `seeding_time_limit` are the torrent's current per-torrent settings in
    qBittorrent's encoding (-2 = global, -1 = unlimited).
    """

    hash: str
    name: str
    category: str
    tags: FrozenSet[str]
    seeding_time_minutes: int = 0
    fields: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))
    ratio_limit: Optional[float] = None
    seeding_time_limit: Optional[int] = None

    @classmethod
    def create(cls, hash: str, name: str = '', category: str = '', tags: Iterable[str] = (),
               seeding_time_minutes: int = 0, ratio_limit: Optional[float] = None,
               seeding_time_limit: Optional[int] = None, **fields) -> 'TorrentSnapshot':
        """Build a snapshot from keyword attributes (extra keywords become fields)"""
        attributes: Dict[str, Any] = dict(fields)
        attributes['seeding_time'] = seeding_time_minutes
        return cls(
            hash=hash,
            name=name,
            category=category,
            tags=frozenset(tags),
            seeding_time_minutes=seeding_time_minutes,
            fields=MappingProxyType(attributes),
            ratio_limit=ratio_limit,
            seeding_time_limit=seeding_time_limit,
        )

    @classmethod
    def from_api(cls, torrent: Mapping[str, Any]) -> 'TorrentSnapshot':
        """
        Build a snapshot from a qBittorrent torrents/info entry

        Args:
            torrent: Torrent dictionary from the Web API

        Raises:
            TorrentDataError: If category or tags are missing
        """
        torrent_hash = torrent.get('hash', '(unknown)')
        for required in ('category', 'tags'):
            if torrent.get(required) is None:
                raise TorrentDataError(torrent_hash, required)

        attributes = {
            key: value for key, value in torrent.items()
            if key not in _NON_ATTRIBUTE_FIELDS and is_number(value)
        }

        # qBittorrent reports seeding_time in seconds. Without a value the
        # field stays absent so seeding_time conditions never match.
        seeding_minutes = 0
        seeding_seconds = attributes.pop('seeding_time', None)
        if seeding_seconds is not None and math.isfinite(seeding_seconds):
            seeding_minutes = max(int(seeding_seconds) // 60, 0)
            attributes['seeding_time'] = seeding_minutes

        ratio_limit = torrent.get('ratio_limit')
        seeding_time_limit = torrent.get('seeding_time_limit')

        return cls(
            hash=torrent_hash,
            name=torrent.get('name', ''),
            category=torrent['category'],
            tags=frozenset(parse_tags(torrent)),
            seeding_time_minutes=seeding_minutes,
            fields=MappingProxyType(attributes),
            ratio_limit=ratio_limit if is_number(ratio_limit) else None,
            seeding_time_limit=seeding_time_limit if is_number(seeding_time_limit) else None,
        )

"""
Rule matching and limit resolution

Rules are scanned in declaration order and the first rule whose conditions
all match decides the torrent's limits. When no rule matches, the rule
set's default limits apply, so resolution always produces a decision.
"""

from dataclasses import dataclass
from typing import Optional

from qbt_limits.conditions import evaluate_condition
from qbt_limits.logging import get_logger
from qbt_limits.models import Limits, Rule, RuleSet, TorrentSnapshot

logger = get_logger(__name__)


@dataclass(frozen=True)
class Resolution:
    """Outcome of resolving one torrent: the limits and the rule that set them"""

    limits: Limits
    rule: Optional[Rule] = None

    @property
    def matched(self) -> bool:
        return self.rule is not None

    @property
    def source(self) -> str:
        return f"rule {self.rule.label}" if self.rule else "default limits"


def rule_matches(rule: Rule, snapshot: TorrentSnapshot) -> bool:
    """
    Check whether every condition of a rule holds for a torrent

    A rule without conditions matches every torrent.
    """
    return all(evaluate_condition(condition, snapshot) for condition in rule.conditions)


class RuleResolver:
    """
    Resolves torrents against an ordered rule set

    Holds no mutable state, so one resolver can be shared across threads
    for the lifetime of a rule set.

    Example:
        >>> resolver = RuleResolver(rule_set)
        >>> resolution = resolver.resolve(snapshot)
        >>> resolution.limits
        Limits(ratio=20.0, minutes=129600)
    """

    def __init__(self, rule_set: RuleSet):
        self.rule_set = rule_set

    def find_rule(self, snapshot: TorrentSnapshot) -> Optional[Rule]:
        """Return the first rule matching the torrent, or None"""
        for rule in self.rule_set.rules:
            if rule_matches(rule, snapshot):
                return rule
        return None

    def resolve(self, snapshot: TorrentSnapshot) -> Resolution:
        """
        Decide which limits apply to a torrent

        Args:
            snapshot: Torrent snapshot

        Returns:
            Resolution with the first matching rule's limits, or the
            default limits when no rule matches
        """
        rule = self.find_rule(snapshot)
        if rule is None:
            logger.debug(f"No rule matched '{snapshot.name}', using default limits")
            return Resolution(limits=self.rule_set.default_limits)

        logger.debug(f"Rule {rule.label} matched '{snapshot.name}'")
        return Resolution(limits=rule.limits, rule=rule)


def resolve(rule_set: RuleSet, snapshot: TorrentSnapshot) -> Limits:
    """Resolve the limits for one torrent (first match wins, else defaults)"""
    return RuleResolver(rule_set).resolve(snapshot).limits

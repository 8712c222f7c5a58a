"""Tests for resolver.py - First-match rule resolution."""

from qbt_limits.models import (
    UNLIMITED,
    CategoryEquals,
    Limits,
    NumericCompare,
    Operator,
    Rule,
    RuleSet,
    TagsEqual,
    TorrentSnapshot,
)
from qbt_limits.resolver import Resolution, RuleResolver, resolve, rule_matches
from qbt_limits.rules import build_rule_set


def snapshot(**kwargs):
    kwargs.setdefault('hash', 'h' * 40)
    return TorrentSnapshot.create(**kwargs)


# ============================================================================
# rule_matches
# ============================================================================

class TestRuleMatches:
    """Test conjunction of conditions."""

    def test_no_conditions_matches_everything(self):
        assert rule_matches(Rule(1, (), Limits(ratio=1.0)), snapshot())

    def test_all_conditions_must_hold(self):
        rule = Rule(1, (CategoryEquals('tv'), NumericCompare('ratio', Operator.GREATER_THAN, 1)), Limits(ratio=1.0))
        assert rule_matches(rule, snapshot(category='tv', ratio=2.0))
        assert not rule_matches(rule, snapshot(category='tv', ratio=0.5))
        assert not rule_matches(rule, snapshot(category='movies', ratio=2.0))


# ============================================================================
# RuleResolver
# ============================================================================

class TestRuleResolver:
    """Test first-match-wins resolution with default fallback."""

    def test_first_match_wins(self):
        rule_set = RuleSet(rules=(
            Rule(1, (CategoryEquals('tv'),), Limits(ratio=1.0)),
            Rule(2, (CategoryEquals('tv'),), Limits(ratio=2.0)),
        ))
        resolution = RuleResolver(rule_set).resolve(snapshot(category='tv'))
        assert resolution.limits == Limits(ratio=1.0)
        assert resolution.rule.index == 1

    def test_later_rule_used_when_earlier_fails(self):
        rule_set = RuleSet(rules=(
            Rule(1, (CategoryEquals('movies'),), Limits(ratio=1.0)),
            Rule(2, (CategoryEquals('tv'),), Limits(ratio=2.0)),
        ))
        assert resolve(rule_set, snapshot(category='tv')) == Limits(ratio=2.0)

    def test_fallback_to_default_limits(self):
        rule_set = RuleSet(
            rules=(Rule(1, (CategoryEquals('movies'),), Limits(ratio=1.0)),),
            default_limits=Limits(minutes=60),
        )
        resolution = RuleResolver(rule_set).resolve(snapshot(category='tv'))
        assert resolution.limits == Limits(minutes=60)
        assert resolution.rule is None
        assert not resolution.matched
        assert resolution.source == 'default limits'

    def test_empty_rule_set_uses_defaults(self):
        assert resolve(RuleSet(), snapshot()) == Limits()

    def test_find_rule(self):
        rule = Rule(1, (), Limits(ratio=1.0))
        resolver = RuleResolver(RuleSet(rules=(rule,)))
        assert resolver.find_rule(snapshot()) is rule

    def test_source_names_rule(self):
        rule_set = RuleSet(rules=(Rule(3, (), Limits(ratio=1.0), name='all'),))
        resolution = RuleResolver(rule_set).resolve(snapshot())
        assert resolution.matched
        assert resolution.source == "rule #3 'all'"

    def test_missing_field_skips_rule(self):
        rule_set = RuleSet(
            rules=(Rule(1, (NumericCompare('num_leechs', Operator.LESS_THAN, 5),), Limits(ratio=1.0)),),
            default_limits=Limits(ratio=9.0),
        )
        assert resolve(rule_set, snapshot()) == Limits(ratio=9.0)

    def test_empty_tags_rule_only_matches_untagged(self):
        rule_set = RuleSet(
            rules=(Rule(1, (TagsEqual(frozenset()),), Limits(ratio=1.0)),),
            default_limits=Limits(ratio=5.0),
        )
        assert resolve(rule_set, snapshot(tags=[])) == Limits(ratio=1.0)
        assert resolve(rule_set, snapshot(tags=['x'])) == Limits(ratio=5.0)

    def test_deterministic(self):
        rule_set = RuleSet(rules=(
            Rule(1, (NumericCompare('ratio', Operator.GREATER_THAN_OR_EQUAL, 1),), Limits(ratio=1.0)),
            Rule(2, (), Limits(ratio=2.0)),
        ))
        torrent = snapshot(ratio=1.0)
        results = {RuleResolver(rule_set).resolve(torrent) for _ in range(5)}
        assert len(results) == 1

    def test_resolution_is_hashable_value(self):
        limits = Limits(ratio=1.0)
        assert Resolution(limits) == Resolution(limits)


# ============================================================================
# Worked example
# ============================================================================

class TestWorkedExample:
    """A rule document resolved against several torrents."""

    RULES = [
        {'category': 'private', 'limits': {'ratio': 'unlimited', 'minutes': 'unlimited'}},
        {'category': 'linux', 'tags': ['iso'], 'num_complete': '<5',
         'limits': {'ratio': 20, 'minutes': 129600}},
        {'seeding_time': '>=10080', 'limits': {'ratio': 3}},
    ]

    def setup_method(self):
        self.rule_set = build_rule_set(self.RULES, default_limits={'ratio': 2, 'minutes': 43200})

    def test_private_unlimited(self):
        assert resolve(self.rule_set, snapshot(category='private')) == Limits(ratio=UNLIMITED, minutes=UNLIMITED)

    def test_rare_linux_iso(self):
        torrent = snapshot(category='linux', tags=['iso'], num_complete=2)
        assert resolve(self.rule_set, torrent) == Limits(ratio=20.0, minutes=129600)

    def test_well_seeded_linux_iso_falls_through(self):
        torrent = snapshot(category='linux', tags=['iso'], num_complete=50, seeding_time_minutes=20000)
        assert resolve(self.rule_set, torrent) == Limits(ratio=3.0)

    def test_linux_iso_with_extra_tag_falls_through(self):
        torrent = snapshot(category='linux', tags=['iso', 'new'], num_complete=2, seeding_time_minutes=5)
        assert resolve(self.rule_set, torrent) == Limits(ratio=2.0, minutes=43200)

    def test_seeding_time_boundary(self):
        assert resolve(self.rule_set, snapshot(seeding_time_minutes=10080)) == Limits(ratio=3.0)
        assert resolve(self.rule_set, snapshot(seeding_time_minutes=10079)) == Limits(ratio=2.0, minutes=43200)


class TestAlienGhostExample:
    """Two-rule document with camelCase fields and an empty tag set."""

    def setup_method(self):
        self.rule_set = build_rule_set(
            [
                {'category': 'Alien', 'seedingTime': '>10080', 'limits': {'ratio': 20.0, 'minutes': 129600}},
                {'category': 'Ghost', 'tags': [], 'limits': {'ratio': 100.0}},
            ],
            default_limits={'ratio': 1.0},
        )

    def test_alien_long_seeder(self):
        torrent = snapshot(category='Alien', seeding_time_minutes=20000)
        assert resolve(self.rule_set, torrent) == Limits(ratio=20.0, minutes=129600)

    def test_alien_short_seeder_falls_back(self):
        torrent = snapshot(category='Alien', seeding_time_minutes=10080)
        assert resolve(self.rule_set, torrent) == Limits(ratio=1.0)

    def test_tagged_ghost_falls_back(self):
        assert resolve(self.rule_set, snapshot(category='Ghost', tags=['x'])) == Limits(ratio=1.0)

    def test_untagged_ghost(self):
        assert resolve(self.rule_set, snapshot(category='Ghost')) == Limits(ratio=100.0)

"""
Pass driver - resolves every torrent and applies the resulting limits

One pass enumerates the client's torrents, resolves each against the rule
set and sets limits only where the torrent's current settings differ.
Failures on one torrent are logged and counted; they never stop the pass.
"""

from dataclasses import dataclass, asdict
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from qbt_limits.applicator import LimitApplicator
from qbt_limits.errors import QbtLimitsError, TorrentDataError
from qbt_limits.logging import get_logger
from qbt_limits.models import RuleSet, TorrentSnapshot
from qbt_limits.resolver import Resolution, RuleResolver

logger = get_logger(__name__)


@dataclass
class PassStats:
    """Counters for one pass"""

    total_torrents: int = 0
    processed: int = 0
    rules_matched: int = 0
    defaulted: int = 0
    limits_applied: int = 0
    already_correct: int = 0
    errors: int = 0
    cancelled: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class RulesEngine:
    """Runs one share limit pass over the client's torrents"""

    def __init__(self, api, rule_set: RuleSet, dry_run: bool = False):
        """
        Initialize engine

        Args:
            api: QBittorrentAPI instance
            rule_set: Rule set for this pass (not modified)
            dry_run: Log limit changes without applying them
        """
        self.api = api
        self.rule_set = rule_set
        self.dry_run = dry_run
        self.resolver = RuleResolver(rule_set)
        self.applicator = LimitApplicator(api, dry_run=dry_run)
        self.stats = PassStats()

    def load_snapshots(self, torrent_hash: Optional[str] = None) -> List[TorrentSnapshot]:
        """
        Fetch torrents and convert them to snapshots

        Raises:
            QbtLimitsError: If the torrent listing fails
        """
        torrents = self.api.get_torrents(torrent_hash)
        self.stats.total_torrents = len(torrents)

        snapshots = []
        for torrent in torrents:
            try:
                snapshots.append(TorrentSnapshot.from_api(torrent))
            except TorrentDataError as e:
                self.stats.errors += 1
                logger.warning(f"Unable to read torrent {e.torrent_hash}: missing {e.field}")
        return snapshots

    def plan(self, snapshots: Iterable[TorrentSnapshot]) -> List[Tuple[TorrentSnapshot, Resolution]]:
        """Resolve snapshots without touching the client"""
        return [(snapshot, self.resolver.resolve(snapshot)) for snapshot in snapshots]

    def run(self, torrent_hash: Optional[str] = None,
            should_stop: Optional[Callable[[], bool]] = None) -> PassStats:
        """
        Run one pass

        Args:
            torrent_hash: Restrict the pass to one torrent
            should_stop: Checked before every limit change; returning True
                         cancels the rest of the pass

        Returns:
            Statistics for this pass

        Raises:
            QbtLimitsError: If the torrent listing fails
        """
        self.stats = PassStats()
        mode = " (dry run)" if self.dry_run else ""
        logger.debug(f"Starting share limit pass{mode} with {len(self.rule_set)} rules")

        for snapshot in self.load_snapshots(torrent_hash):
            resolution = self.resolver.resolve(snapshot)
            self.stats.processed += 1
            if resolution.matched:
                self.stats.rules_matched += 1
            else:
                self.stats.defaulted += 1

            if not self.applicator.needs_update(snapshot, resolution.limits):
                self.stats.already_correct += 1
                continue

            if should_stop is not None and should_stop():
                self.stats.cancelled = True
                logger.info("Pass cancelled, no further limits will be applied")
                break

            self._apply(snapshot, resolution)

        logger.info(
            f"Pass complete: {self.stats.processed}/{self.stats.total_torrents} torrents, "
            f"{self.stats.rules_matched} matched a rule, {self.stats.limits_applied} updated, "
            f"{self.stats.errors} errors"
        )
        return self.stats

    def _apply(self, snapshot: TorrentSnapshot, resolution: Resolution):
        change = self.applicator.describe_change(snapshot, resolution.limits)
        logger.info(f"Applying {resolution.source} to '{snapshot.name}'; {change}")
        try:
            if self.applicator.apply(snapshot, resolution.limits):
                self.stats.limits_applied += 1
                logger.debug(f"Successfully updated {snapshot.hash}")
        except QbtLimitsError as e:
            self.stats.errors += 1
            logger.warning(f"Couldn't update '{snapshot.name}' ({snapshot.hash}): {e.message}")
            logger.debug(str(e))

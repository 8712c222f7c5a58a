"""
Limit application - translates resolved Limits into qBittorrent API values

qBittorrent encodes share limits in-band: -2 means "use the global limit",
-1 means "no limit" and anything else is the limit itself. That encoding is
confined to this module; the rest of the code works with Limits.
"""

from typing import Optional, Tuple, Union

from qbt_limits.logging import get_logger
from qbt_limits.models import UNLIMITED, Limits, TorrentSnapshot
from qbt_limits.utils import format_limit

logger = get_logger(__name__)

USE_GLOBAL = -2
NO_LIMIT = -1

# Allowed float noise between the configured and the reported ratio limit
RATIO_TOLERANCE = 1e-6


def _to_api_value(value):
    if value is None:
        return USE_GLOBAL
    if value is UNLIMITED:
        return NO_LIMIT
    return value


def to_api_values(limits: Limits) -> Tuple[float, int]:
    """
    Translate Limits into (ratio_limit, seeding_time_limit) API values

    Examples:
        >>> to_api_values(Limits(ratio=2.0))
        (2.0, -2)
        >>> to_api_values(Limits(ratio=UNLIMITED, minutes=0))
        (-1, 0)
    """
    return _to_api_value(limits.ratio), _to_api_value(limits.minutes)


class LimitApplicator:
    """
    Applies resolved limits to torrents through the API client

    One outbound call per torrent; retries belong to the transport.
    """

    def __init__(self, api, dry_run: bool = False):
        """
        Initialize applicator

        Args:
            api: QBittorrentAPI instance (anything with set_share_limits)
            dry_run: If True, log changes without calling the API
        """
        self.api = api
        self.dry_run = dry_run

    def needs_update(self, snapshot: TorrentSnapshot, limits: Limits) -> bool:
        """
        Check whether the torrent's current settings differ from limits

        Unknown current settings always need an update.
        """
        ratio_limit, seeding_time_limit = to_api_values(limits)

        if snapshot.ratio_limit is None or snapshot.seeding_time_limit is None:
            return True

        if abs(snapshot.ratio_limit - ratio_limit) > RATIO_TOLERANCE:
            logger.debug(f"Torrent '{snapshot.name}' has incorrect ratio limit")
            return True

        if int(snapshot.seeding_time_limit) != int(seeding_time_limit):
            logger.debug(f"Torrent '{snapshot.name}' has incorrect seeding time limit")
            return True

        return False

    def apply(self, target: Union[TorrentSnapshot, str], limits: Limits) -> bool:
        """
        Set a torrent's share limits

        Args:
            target: Torrent snapshot or torrent hash
            limits: Resolved limits

        Returns:
            True if the API was called, False in dry-run mode

        Raises:
            QbtLimitsError: Transport errors from the API client
        """
        if isinstance(target, TorrentSnapshot):
            torrent_hash, label = target.hash, target.name or target.hash
        else:
            torrent_hash, label = target, target

        ratio_limit, seeding_time_limit = to_api_values(limits)

        if self.dry_run:
            logger.info(
                f"[DRY RUN] Would set share limits on '{label}': "
                f"ratio {format_limit(ratio_limit)}, minutes {format_limit(seeding_time_limit, minutes=True)}"
            )
            return False

        self.api.set_share_limits(
            [torrent_hash],
            ratio_limit=ratio_limit,
            seeding_time_limit=seeding_time_limit,
            inactive_seeding_time_limit=USE_GLOBAL
        )
        return True

    def describe_change(self, snapshot: TorrentSnapshot, limits: Limits) -> str:
        """Render 'current => new' values for logs"""
        ratio_limit, seeding_time_limit = to_api_values(limits)
        return (
            f"ratio: {format_limit(snapshot.ratio_limit)} => {format_limit(ratio_limit)}; "
            f"minutes: {format_limit(snapshot.seeding_time_limit, minutes=True)} => "
            f"{format_limit(seeding_time_limit, minutes=True)}"
        )

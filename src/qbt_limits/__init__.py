"""
qbt-limits - Rule-based share limits for qBittorrent

Matches torrents against an ordered rule list and sets each torrent's
ratio / seeding time limits from the first matching rule.
"""

from qbt_limits.__version__ import __version__, __description__

__all__ = ['__version__', '__description__']

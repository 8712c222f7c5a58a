"""Version information for qbt-limits"""

__version__ = '0.1.0'
__description__ = 'Rule-based share limits for qBittorrent'

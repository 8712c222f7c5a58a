"""
Small helpers shared by the model and log output
"""

from typing import Any, List, Mapping, Optional

# (suffix, seconds) from largest to smallest
DURATION_UNITS = (('d', 86400), ('h', 3600), ('m', 60))


def parse_tags(torrent: Mapping[str, Any]) -> List[str]:
    """
    Tags of a torrent entry as a list

    The Web API reports tags as one comma-separated string ("iso, new");
    already split sequences are accepted too. Blank entries are dropped.
    """
    raw = torrent.get('tags') or ''
    items = raw.split(',') if isinstance(raw, str) else raw
    return [str(item).strip() for item in items if str(item).strip()]


def format_duration(seconds: int) -> str:
    """'1d 2h 30m' style duration; below a minute the seconds are shown"""
    if seconds < 60:
        return f"{seconds}s"

    parts = []
    for suffix, size in DURATION_UNITS:
        count, seconds = divmod(seconds, size)
        if count:
            parts.append(f"{count}{suffix}")
    return " ".join(parts)


def format_limit(value: Optional[float], minutes: bool = False) -> str:
    """
    Render a limit in Web API encoding for log lines

    -2 is "global", other negatives "unlimited", None "unknown". With minutes
    set the value is also shown as a duration.
    """
    if value is None:
        return "unknown"
    if value == -2:
        return "global"
    if value < 0:
        return "unlimited"
    if minutes:
        return f"{int(value)} min ({format_duration(int(value) * 60)})"
    return f"{value:g}"

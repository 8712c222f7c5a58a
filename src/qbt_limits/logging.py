"""
Logging setup for qbt-limits

Console output goes to stdout at the configured level; the log file always
receives everything the configured level allows, in simple or trace format.
"""

import logging
import sys
from pathlib import Path

LOG_FORMAT_SIMPLE = '%(asctime)s [%(levelname)s] %(message)s'
LOG_FORMAT_DETAILED = '%(asctime)s [%(levelname)s] %(name)s %(module)s.%(funcName)s:%(lineno)d - %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'


def setup_logging(config, trace_mode: bool = False):
    """
    Configure root logger with console and file handlers

    Args:
        config: Config object providing get_log_level() and get_log_file()
        trace_mode: Use detailed format with module/function/line information

    File logging problems never abort startup: the error is printed to
    stderr and logging continues on the console only.
    """
    level = getattr(logging, str(config.get_log_level()).upper(), logging.INFO)
    log_format = LOG_FORMAT_DETAILED if trace_mode else LOG_FORMAT_SIMPLE
    formatter = logging.Formatter(log_format, datefmt=DATE_FORMAT)

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)

    # Remove handlers from previous setup calls to avoid duplicate lines
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)
        handler.close()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    log_file = Path(config.get_log_file())
    try:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding='utf-8')
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)
    except OSError as e:
        from qbt_limits.errors import LoggingSetupError
        error = LoggingSetupError(str(log_file), f"{type(e).__name__}: {e}")
        print(f"WARNING: Failed to setup file logging, using console only\n{error.format_error()}", file=sys.stderr)

    # qbittorrent-api and urllib3 are chatty at DEBUG
    logging.getLogger('qbittorrentapi').setLevel(max(level, logging.INFO))
    logging.getLogger('urllib3').setLevel(max(level, logging.WARNING))


def get_logger(name: str) -> logging.Logger:
    """Get a named logger"""
    return logging.getLogger(name)

"""
Command line definition and the utility commands that only need a config
"""

import os
import re
import argparse
from pathlib import Path
from typing import Optional

from qbt_limits.__version__ import __version__, __description__
from qbt_limits.config import default_config_dir
from qbt_limits.logging import get_logger
from qbt_limits.utils import format_limit
from qbt_limits.applicator import to_api_values

TORRENT_HASH = re.compile(r'[0-9a-fA-F]{40}')

EPILOG = '''
Examples:
  qbt-limits --config-dir /config     run forever, one pass per interval
  qbt-limits --once --dry-run         one pass, log changes only
  qbt-limits --explain                which rule each torrent falls under
  qbt-limits --validate               check config.yml and exit
'''


def create_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='qbt-limits',
        description=f'qbt-limits - {__description__}',
        epilog=EPILOG,
        formatter_class=argparse.RawDescriptionHelpFormatter
    )
    parser.add_argument('--version', action='version', version=f'qbt-limits v{__version__}')

    config = parser.add_argument_group('configuration')
    config.add_argument('--config-dir', type=Path, default=None,
                        help='Directory holding config.yml (default: QBT_LIMITS_CONFIG_DIR, ./config, /config)')
    config.add_argument('--config-file', type=Path, default=None,
                        help='Explicit config file, takes precedence over --config-dir')
    config.add_argument('--dry-run', action='store_true',
                        help='Log the limits a pass would set, set nothing')
    config.add_argument('--log-level', choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
                        help='Log verbosity (default: logging.level or INFO)')
    config.add_argument('--trace', action='store_true',
                        help='Include module, function and line in log lines')
    config.add_argument('--interval', type=float, default=None,
                        help='Seconds between passes (default: engine.interval or 60)')

    modes = parser.add_argument_group('run modes (default: run until stopped)')
    modes.add_argument('--once', action='store_true', help='Run one pass, then exit')
    modes.add_argument('--hash', default=None,
                       help='Run one pass over this torrent only (40 hex characters)')
    modes.add_argument('--explain', action='store_true',
                       help='Print the resolved limits of every torrent without applying them')

    utility = parser.add_argument_group('utility')
    utility.add_argument('--validate', action='store_true', help='Load and check config.yml, then exit')
    utility.add_argument('--list-rules', action='store_true', help='Print the rules in evaluation order, then exit')

    return parser


def validate_torrent_hash(torrent_hash: Optional[str]) -> str:
    """
    Check that torrent_hash is a 40 character hex info hash

    Returns:
        The hash in lower case

    Raises:
        ValueError: empty or malformed hash
    """
    if not torrent_hash:
        raise ValueError("no torrent hash given")
    if not TORRENT_HASH.fullmatch(torrent_hash):
        raise ValueError(f"{torrent_hash!r} is not 40 hexadecimal characters")
    return torrent_hash.lower()


def process_args(args: argparse.Namespace) -> Path:
    """
    Push flag overrides into the environment and pick the config location

    Flags travel as QBT_LIMITS_* variables so Config resolves them like any
    other environment override.
    """
    overrides = {
        'QBT_LIMITS_DRY_RUN': 'true' if args.dry_run else None,
        'QBT_LIMITS_LOG_LEVEL': args.log_level,
        'QBT_LIMITS_TRACE_MODE': 'true' if args.trace else None,
    }
    for name, value in overrides.items():
        if value:
            os.environ[name] = value

    return args.config_file or args.config_dir or default_config_dir()


def _log_validation(config, logger):
    rule_set = config.get_rule_set()
    server = config.get_server_config()

    logger.info(f"✓ Config file: {config.config_file}")
    logger.info(f"✓ Server: {server['address']}")
    if not server['username']:
        logger.info("  (no username set, requests go out without logging in)")

    if len(rule_set):
        logger.info(f"✓ Loaded {len(rule_set)} rules")
    else:
        logger.warning("No rules defined, every torrent gets the default limits")
    logger.info(f"✓ Default limits: {rule_set.default_limits.describe()}")
    logger.info("\nConfiguration is valid.")


def _log_rule_table(config, logger):
    rule_set = config.get_rule_set()

    if not len(rule_set):
        logger.info("No rules defined")
    else:
        logger.info(f"\nRules ({len(rule_set)} total, first match wins):\n")
        logger.info(f"{'#':<5} {'Ratio':<12} {'Minutes':<12} Conditions")
        logger.info("-" * 80)
        for rule in rule_set:
            ratio, minutes = to_api_values(rule.limits)
            conditions = ', '.join(c.describe() for c in rule.conditions) or 'any torrent'
            if rule.name:
                conditions += f" ({rule.name})"
            logger.info(f"{rule.index:<5} {format_limit(ratio):<12} {format_limit(minutes):<12} {conditions}")

    logger.info(f"\nDefault limits: {rule_set.default_limits.describe()}")


def handle_utility_args(args: argparse.Namespace, config) -> bool:
    """
    Run --validate or --list-rules if requested

    Returns:
        True when a utility command ran and the program should exit
    """
    logger = get_logger(__name__)

    if args.validate:
        _log_validation(config, logger)
        return True
    if args.list_rules:
        _log_rule_table(config, logger)
        return True
    return False

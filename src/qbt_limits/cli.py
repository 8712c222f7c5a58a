#!/usr/bin/env python3
"""
qbt-limits CLI

Modes:
1. Daemon (default): run a pass every interval until interrupted,
   reloading config.yml on SIGHUP
2. Single pass (--once / --hash)
3. Explain (--explain): show the rule each torrent resolves to

Utility commands: --validate, --list-rules
"""

import sys
import signal
import threading

from qbt_limits.api import QBittorrentAPI
from qbt_limits.arguments import create_parser, process_args, validate_torrent_hash, handle_utility_args
from qbt_limits.config import Config, load_config
from qbt_limits.engine import RulesEngine
from qbt_limits.errors import QbtLimitsError, handle_errors
from qbt_limits.logging import setup_logging, get_logger
from qbt_limits.worker import Worker

logger = get_logger(__name__)


def create_api(config: Config, connect_now: bool = True) -> QBittorrentAPI:
    """Create the API client from the server section"""
    server = config.get_server_config()
    return QBittorrentAPI(
        host=server['address'],
        username=server['username'],
        password=server['password'],
        connect_now=connect_now
    )


def log_rules(config: Config):
    """Log the loaded rules in evaluation order"""
    rule_set = config.get_rule_set()
    logger.info(f"Loaded configuration with {len(rule_set)} rules")
    for rule in rule_set:
        logger.info(f"Rule {rule.label}: {rule.describe()}")
    logger.info(f"Default limits: {rule_set.default_limits.describe()}")


def run_explain(config: Config, api: QBittorrentAPI, torrent_hash=None):
    """Print the resolution of every torrent without applying anything"""
    engine = RulesEngine(api=api, rule_set=config.get_rule_set(), dry_run=True)
    snapshots = engine.load_snapshots(torrent_hash)

    for snapshot, resolution in engine.plan(snapshots):
        status = "up to date" if not engine.applicator.needs_update(snapshot, resolution.limits) else "would change"
        logger.info(
            f"{snapshot.name} [{snapshot.hash[:8]}] -> {resolution.source}: "
            f"{resolution.limits.describe()} ({status})"
        )

    logger.info(f"{len(snapshots)} torrents")


def run_once(config: Config, api: QBittorrentAPI, torrent_hash=None) -> int:
    """
    Run a single pass

    Returns:
        Process exit code
    """
    worker = Worker(api=api, rule_set=config.get_rule_set(), dry_run=config.is_dry_run())
    stats = worker.run_once(torrent_hash=torrent_hash)
    if stats is None:
        return 1
    return 1 if stats.errors else 0


def run_daemon(config: Config, api: QBittorrentAPI, interval: float):
    """
    Run passes on a timer until interrupted

    SIGHUP reloads the configuration file; an invalid file is logged and
    the current rules stay in effect.
    """
    worker = Worker(
        api=api,
        rule_set=config.get_rule_set(),
        interval=interval,
        dry_run=config.is_dry_run()
    )
    stop_requested = threading.Event()
    current = {'config': config}

    def handle_reload(signum, frame):
        logger.info("Reloading configuration...")
        try:
            new_config = current['config'].reload()
        except QbtLimitsError as e:
            logger.error(f"Reload failed, keeping current rules:\n{e}")
            return
        current['config'] = new_config
        log_rules(new_config)
        worker.reload(new_config.get_rule_set())

    def handle_stop(signum, frame):
        stop_requested.set()

    if hasattr(signal, 'SIGHUP'):
        signal.signal(signal.SIGHUP, handle_reload)
    signal.signal(signal.SIGTERM, handle_stop)

    if config.is_dry_run():
        logger.info("Dry run: limits will be logged but not applied")
    logger.info(f"Running a pass every {interval:g}s. Press Ctrl+C to stop")
    worker.start()

    try:
        while not stop_requested.is_set() and worker.is_alive():
            stop_requested.wait(1.0)
    except KeyboardInterrupt:
        logger.info("\nShutting down...")
    finally:
        worker.stop()
        logger.info("Stopped")


@handle_errors
def main():
    """Main entry point for qbt-limits CLI"""
    parser = create_parser()
    args = parser.parse_args()

    config_path = process_args(args)
    config = load_config(config_path)

    setup_logging(config, config.get_trace_mode())
    logger.debug(f"Using configuration at {config.config_file}")

    if handle_utility_args(args, config):
        sys.exit(0)

    torrent_hash = None
    if args.hash:
        try:
            torrent_hash = validate_torrent_hash(args.hash)
        except ValueError as e:
            logger.error(f"Invalid torrent hash: {e}")
            sys.exit(1)

    log_rules(config)
    interval = config.get_interval(args.interval)

    if args.explain:
        run_explain(config, create_api(config), torrent_hash)
        sys.exit(0)

    if args.once or torrent_hash:
        sys.exit(run_once(config, create_api(config), torrent_hash))

    # Daemon mode logs in on the first pass so a server that is not up yet
    # does not prevent startup
    run_daemon(config, create_api(config, connect_now=False), interval)
    sys.exit(0)


if __name__ == '__main__':
    main()

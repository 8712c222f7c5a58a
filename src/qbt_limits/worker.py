"""
Timer-driven pass runner

A single background thread runs one pass, sleeps for what is left of the
interval and repeats, so passes never overlap. stop() and reload() cancel the
pass in progress between torrents; limits it already set are kept.
"""

import threading
import time
import logging
from datetime import datetime, timezone
from typing import Optional, Dict, Any

from qbt_limits.engine import PassStats, RulesEngine
from qbt_limits.errors import AuthenticationError, QbtLimitsError
from qbt_limits.models import RuleSet

logger = logging.getLogger(__name__)


class Worker:
    """
    Runs a pass right after start() and then every `interval` seconds

    Args:
        api: QBittorrentAPI (or anything with the same three methods)
        rule_set: Rules for the first pass; replace with reload()
        interval: Seconds from the start of one pass to the start of the next
        dry_run: Only log the limits that would be set
    """

    def __init__(
        self,
        api,
        rule_set: RuleSet,
        interval: float = 60.0,
        dry_run: bool = False
    ):
        self.api = api
        self.rule_set = rule_set
        self.interval = interval
        self.dry_run = dry_run

        self.running = False
        self.thread: Optional[threading.Thread] = None
        self.passes_completed = 0
        self.last_stats: Optional[PassStats] = None
        self.last_pass_completed: Optional[datetime] = None

        # _stop_event ends the loop; _cancel_pass only aborts the current pass
        self._stop_event = threading.Event()
        self._cancel_pass = threading.Event()
        self._lock = threading.Lock()

        logger.debug(f"Worker created (interval {interval:g}s, dry_run={dry_run})")

    def start(self):
        """Start the worker thread; the first pass begins immediately"""
        if self.is_alive():
            logger.warning("Worker is already running")
            return

        self._stop_event.clear()
        self._cancel_pass.clear()
        self.running = True
        self.thread = threading.Thread(target=self._run_loop, name="qbt-limits-worker", daemon=False)
        self.thread.start()

    def stop(self, timeout: float = 30.0):
        """Ask the loop to exit and wait up to `timeout` seconds for it"""
        if not self.running:
            return

        self.running = False
        self._cancel_pass.set()
        self._stop_event.set()

        thread = self.thread
        if thread is None or thread is threading.current_thread() or not thread.is_alive():
            return

        thread.join(timeout=timeout)
        if thread.is_alive():
            logger.warning(f"Pass still running {timeout}s after stop was requested")
        else:
            logger.debug("Worker thread joined")

    def reload(self, rule_set: RuleSet):
        """Swap in new rules; the running pass is cancelled and the next one uses them"""
        with self._lock:
            self.rule_set = rule_set
        self._cancel_pass.set()
        logger.info(f"New rule set with {len(rule_set)} rules will be used from the next pass")

    def is_alive(self) -> bool:
        """True while the worker thread is running"""
        return self.thread is not None and self.thread.is_alive()

    def get_status(self) -> Dict[str, Any]:
        """Snapshot of the worker state, e.g. for logging"""
        completed = self.last_pass_completed
        return {
            'running': self.running,
            'thread_alive': self.is_alive(),
            'rules': len(self.rule_set),
            'interval': self.interval,
            'passes_completed': self.passes_completed,
            'last_pass_completed': completed.isoformat() if completed else None,
            'last_stats': self.last_stats.to_dict() if self.last_stats else None,
        }

    def run_once(self, torrent_hash: Optional[str] = None) -> Optional[PassStats]:
        """
        Run one pass on the calling thread

        Returns:
            The pass statistics, or None when the pass could not run (the
            error is logged). A rejected session is dropped so the next pass
            logs in again.
        """
        self._cancel_pass.clear()
        with self._lock:
            engine = RulesEngine(api=self.api, rule_set=self.rule_set, dry_run=self.dry_run)

        began = time.monotonic()
        try:
            stats = engine.run(torrent_hash=torrent_hash, should_stop=self._should_stop)
        except AuthenticationError as e:
            logger.warning(f"{e.message}; logging in again on the next pass")
            self.api.reset_connection()
            return None
        except QbtLimitsError as e:
            logger.error(f"Pass aborted:\n{e}")
            return None

        self.passes_completed += 1
        self.last_stats = stats
        self.last_pass_completed = datetime.now(timezone.utc)
        logger.debug(f"Pass took {time.monotonic() - began:.2f}s")
        return stats

    def _should_stop(self) -> bool:
        """Cancellation hook polled by the engine between torrents"""
        return self._stop_event.is_set() or self._cancel_pass.is_set()

    def _run_loop(self):
        """Thread body: run passes until stop() is called"""
        logger.debug("Worker loop entered")

        while self.running:
            began = time.monotonic()
            try:
                self.run_once()
            except Exception:
                logger.exception("Pass crashed")

            # Sleep out the interval; stop() wakes us immediately
            left = self.interval - (time.monotonic() - began)
            if left > 0:
                self._stop_event.wait(left)

        logger.debug("Worker loop left")

    def __repr__(self) -> str:
        return f"<Worker running={self.running} alive={self.is_alive()}>"

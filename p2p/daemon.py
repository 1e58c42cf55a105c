"""Fulfillment reconcile daemon: drains the ad-fulfillment outbox on an interval.

Usage:
    p2p daemon                 # run in the foreground
    p2p daemon --stop          # stop a running daemon
    p2p daemon --status        # print daemon stats
"""

import json
import logging
import os
import signal
import sys
import time
from datetime import UTC, datetime
from pathlib import Path

from p2p.config.loader import config_hash
from p2p.config.schema import P2PConfig
from p2p.models.fulfillment import ReconcileSummary
from p2p.orders.fulfillment import FulfillmentReconciler
from p2p.resolvers.ad_resolver import AdResolver, build_catalog
from p2p.storage.database import open_database

logger = logging.getLogger(__name__)

MAX_BACKOFF = 900  # seconds
PID_DIR = Path("data")
PID_FILE = PID_DIR / "reconcile.pid"
STATE_FILE = PID_DIR / "reconcile_state.json"
LOG_DIR = Path("logs")
MAX_LOG_FILES = 50


def reconcile_once(config: P2PConfig, db_path: str) -> ReconcileSummary:
    """One outbox pass against a fresh connection."""
    conn = open_database(db_path)
    try:
        ads = AdResolver(build_catalog(config.catalog, conn))
        reconciler = FulfillmentReconciler(
            conn, ads, max_attempts=config.fulfillment.max_attempts
        )
        return reconciler.run_once(limit=config.fulfillment.batch_size)
    finally:
        conn.close()


class ReconcileDaemon:
    """Runs reconcile passes in a loop with backoff and signal handling."""

    def __init__(
        self,
        config: P2PConfig,
        db_path: str = "data/p2p.db",
        interval: int | None = None,
    ):
        self.config = config
        self.db_path = db_path
        self.interval = interval or config.fulfillment.interval_seconds
        self._running = False
        self._consecutive_failures = 0
        self._passes = 0
        self._delivered = 0
        self._failed_passes = 0
        self._started_at: str | None = None

    def start(self) -> None:
        self._check_not_already_running()
        self._write_pid()
        self._setup_signals()
        self._running = True
        self._started_at = datetime.now(UTC).isoformat()
        logger.info(
            "Reconcile daemon started: interval=%ds pid=%d config=%s",
            self.interval, os.getpid(), config_hash(self.config),
        )
        print(f"Reconcile daemon started (pid {os.getpid()}, every {self.interval}s)")

        try:
            self._loop()
        except KeyboardInterrupt:
            logger.info("Reconcile daemon interrupted by keyboard")
        finally:
            self._cleanup()

    def _loop(self) -> None:
        while self._running:
            started = time.monotonic()
            if self._run_one_pass():
                self._consecutive_failures = 0
                wait = self.interval
            else:
                self._consecutive_failures += 1
                wait = min(self.interval * (2 ** self._consecutive_failures), MAX_BACKOFF)
                logger.warning(
                    "Reconcile pass failed (%d consecutive), backing off %ds",
                    self._consecutive_failures, wait,
                )
            self._save_state()

            sleep_until = started + wait
            while self._running and time.monotonic() < sleep_until:
                time.sleep(1)

    def _run_one_pass(self) -> bool:
        """One pass with its own log file. True if no delivery failed."""
        self._passes += 1
        LOG_DIR.mkdir(parents=True, exist_ok=True)
        stamp = datetime.now(UTC).strftime("%Y%m%dT%H%M%SZ")
        handler = logging.FileHandler(LOG_DIR / f"reconcile_{stamp}.log")
        handler.setLevel(logging.INFO)
        handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")
        )
        root_logger = logging.getLogger()
        root_logger.addHandler(handler)

        try:
            summary = reconcile_once(self.config, self.db_path)
            self._delivered += summary.delivered
            if summary.failed or summary.abandoned:
                self._failed_passes += 1
                logger.error("Reconcile pass #%d had failures: %s", self._passes, summary.errors)
                return False
            return True
        except Exception:
            self._failed_passes += 1
            logger.exception("Reconcile pass #%d crashed", self._passes)
            return False
        finally:
            root_logger.removeHandler(handler)
            handler.close()
            self._rotate_logs()

    def _rotate_logs(self) -> None:
        if not LOG_DIR.exists():
            return
        logs = sorted(LOG_DIR.glob("reconcile_*.log"))
        for old in logs[: max(0, len(logs) - MAX_LOG_FILES)]:
            old.unlink(missing_ok=True)

    def _setup_signals(self) -> None:
        def _stop(signum: int, frame: object) -> None:
            logger.info("Received %s, stopping after current pass", signal.Signals(signum).name)
            self._running = False

        signal.signal(signal.SIGTERM, _stop)
        signal.signal(signal.SIGINT, _stop)

    def _check_not_already_running(self) -> None:
        if not PID_FILE.exists():
            return
        try:
            pid = int(PID_FILE.read_text().strip())
            os.kill(pid, 0)
        except (ProcessLookupError, ValueError):
            PID_FILE.unlink(missing_ok=True)
            return
        except PermissionError:
            print("Reconcile daemon may be running, can't verify.")
            sys.exit(1)
        print(f"Reconcile daemon already running (pid {pid}). Stop it with: p2p daemon --stop")
        sys.exit(1)

    def _write_pid(self) -> None:
        PID_DIR.mkdir(parents=True, exist_ok=True)
        PID_FILE.write_text(str(os.getpid()))

    def _save_state(self) -> None:
        PID_DIR.mkdir(parents=True, exist_ok=True)
        state = {
            "pid": os.getpid(),
            "started_at": self._started_at,
            "interval": self.interval,
            "config_hash": config_hash(self.config),
            "passes": self._passes,
            "delivered": self._delivered,
            "failed_passes": self._failed_passes,
            "consecutive_failures": self._consecutive_failures,
            "last_update": datetime.now(UTC).isoformat(),
        }
        STATE_FILE.write_text(json.dumps(state, indent=2))

    def _cleanup(self) -> None:
        PID_FILE.unlink(missing_ok=True)
        self._save_state()
        logger.info(
            "Reconcile daemon stopped: %d passes, %d delivered, %d failed passes",
            self._passes, self._delivered, self._failed_passes,
        )


def stop_daemon() -> int:
    """Send SIGTERM to a running daemon and wait for it to exit."""
    if not PID_FILE.exists():
        print("No reconcile daemon running")
        return 1
    try:
        pid = int(PID_FILE.read_text().strip())
    except ValueError:
        PID_FILE.unlink(missing_ok=True)
        print("Corrupt PID file removed")
        return 1

    try:
        os.kill(pid, signal.SIGTERM)
    except ProcessLookupError:
        PID_FILE.unlink(missing_ok=True)
        print(f"Reconcile daemon not running (stale pid {pid}), cleaned up")
        return 0

    for _ in range(30):
        time.sleep(1)
        try:
            os.kill(pid, 0)
        except ProcessLookupError:
            PID_FILE.unlink(missing_ok=True)
            print("Reconcile daemon stopped")
            return 0

    print("Reconcile daemon did not stop in 30s")
    return 1


def daemon_status() -> int:
    if not STATE_FILE.exists():
        print("No reconcile daemon state found")
        return 1

    state = json.loads(STATE_FILE.read_text())
    running = False
    try:
        os.kill(int(state.get("pid")), 0)
        running = True
    except (ProcessLookupError, ValueError, TypeError):
        pass

    print(f"Reconcile daemon {'running' if running else 'stopped'}")
    for key in (
        "pid", "started_at", "interval", "config_hash", "passes", "delivered",
        "failed_passes", "consecutive_failures", "last_update",
    ):
        print(f"  {key}: {state.get(key, '?')}")
    return 0

"""Reconcile loop: watch snapshots and periodic resyncs feeding one serialized syncer."""

from __future__ import annotations

import logging
import threading
import time

from .exceptions import RegistryUnavailable, SyncCancelled, SyncFailed
from .health import ReadinessFlag
from .k8s.syncer import StateSyncer
from .metrics import SyncMetrics
from .registry import SnapshotSource
from .registry.mailbox import MailboxClosed
from .registry.models import ServiceState

logger = logging.getLogger(__name__)

TRIGGER_WATCH = "watch"
TRIGGER_RESYNC = "resync"

# Longest single wait on the mailbox, so shutdown and resync deadlines are noticed
_MAX_WAIT_SECONDS = 1.0


class ReconcileLoop:
    """Drives StateSyncer from the watcher stream plus a fixed resync interval.

    Every sync runs on the thread that calls ``run``, so at most one sync is
    in flight. Readiness is raised after the first successful cycle and never
    lowered again.
    """

    def __init__(
        self,
        watcher: SnapshotSource,
        syncer: StateSyncer,
        readiness: ReadinessFlag,
        metrics: SyncMetrics,
        resync_interval: float,
    ):
        self._watcher = watcher
        self._syncer = syncer
        self._readiness = readiness
        self._metrics = metrics
        self._resync_interval = resync_interval
        self._stop = threading.Event()

    def run(self, stop: threading.Event | None = None) -> None:
        """Run until ``stop`` is set or the watch stream ends."""
        if stop is not None:
            self._stop = stop
        mailbox = self._watcher.watch(self._stop)
        next_resync = time.monotonic() + self._resync_interval
        logger.info("Reconciler started, resync every %ss", self._resync_interval)

        try:
            while not self._stop.is_set():
                timeout = min(max(0.0, next_resync - time.monotonic()), _MAX_WAIT_SECONDS)
                try:
                    states = mailbox.get(timeout)
                except MailboxClosed:
                    logger.info("Watch stream closed")
                    return

                if states is not None:
                    self.reconcile(states, TRIGGER_WATCH)

                if not self._stop.is_set() and time.monotonic() >= next_resync:
                    self.resync()
                    # Ticks missed while syncing collapse into this one
                    next_resync = time.monotonic() + self._resync_interval
        finally:
            self._watcher.stop(timeout=_MAX_WAIT_SECONDS)
            logger.info("Reconciler shutting down")

    def run_once(self) -> bool:
        """Single full fetch + sync cycle (``--once``)."""
        return self.resync()

    def resync(self) -> bool:
        """Full refetch bypassing the change index; skips the cycle if Consul is unreachable."""
        logger.info("Performing scheduled resync")
        try:
            states = self._watcher.fetch_all_now()
        except RegistryUnavailable as exc:
            logger.error("Resync fetch failed: %s", exc, extra={"trigger": TRIGGER_RESYNC})
            self._metrics.consul_errors.inc()
            self._metrics.record_reconcile(False)
            return False
        return self.reconcile(states, TRIGGER_RESYNC)

    def reconcile(self, states: list[ServiceState], trigger: str) -> bool:
        """Sync one snapshot and record the outcome. Returns True on success."""
        start = time.monotonic()
        logger.info("Reconciling", extra={"trigger": trigger, "services": len(states)})

        try:
            self._syncer.sync(states, self._stop)
        except SyncCancelled:
            logger.info("Sync cancelled by shutdown", extra={"trigger": trigger})
            return False
        except SyncFailed as exc:
            logger.error(
                "Sync failed with %d error(s): %s", len(exc.errors), exc,
                extra={"trigger": trigger, "services": len(states)},
            )
            self._metrics.record_reconcile(False)
            return False

        self._metrics.record_reconcile(True)
        self._readiness.mark_ready()
        logger.info(
            "Reconciliation complete",
            extra={
                "trigger": trigger,
                "services": len(states),
                "elapsed_seconds": round(time.monotonic() - start, 2),
            },
        )
        return True

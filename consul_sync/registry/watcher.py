"""Blocking-query watcher that turns Consul catalog changes into full snapshots."""

from __future__ import annotations

import logging
import threading

from ..exceptions import RegistryUnavailable
from ..metrics import SyncMetrics
from .consul_client import ConsulClient
from .mailbox import SnapshotMailbox
from .models import ServiceInstance, ServiceState

logger = logging.getLogger(__name__)

DEFAULT_BACKOFF_BASE = 1.0
DEFAULT_MAX_BACKOFF = 30.0


class ChangeWatcher:
    """Watches the Consul catalog with blocking queries.

    A background thread long-polls ``/v1/catalog/services`` with the last
    seen change index. Whenever the index advances it fetches the passing
    instances of every tagged service and hands the whole list to the
    consumer through a single-slot mailbox.
    """

    def __init__(
        self,
        client: ConsulClient,
        metrics: SyncMetrics,
        wait_seconds: int = 300,
        backoff_base: float = DEFAULT_BACKOFF_BASE,
        max_backoff: float = DEFAULT_MAX_BACKOFF,
    ):
        self._client = client
        self._metrics = metrics
        self._wait = wait_seconds
        self._backoff_base = backoff_base
        self._max_backoff = max_backoff
        self.backoff = backoff_base
        self.index = 0
        self._stop = threading.Event()
        self._mailbox: SnapshotMailbox[list[ServiceState]] = SnapshotMailbox()
        self._thread: threading.Thread | None = None

    # ── Registry reads ──────────────────────────────────────────────

    def list_matching(self, wait_index: int) -> tuple[list[str], int]:
        return self._client.list_services(wait_index, wait=self._wait)

    def fetch_instances(self, service_name: str) -> list[ServiceInstance]:
        return self._client.get_service_instances(service_name)

    def fetch_all_now(self) -> list[ServiceState]:
        """Non-blocking full fetch that ignores the change index (used by resync)."""
        names, _ = self._client.list_services()
        return self._collect(names)

    def _collect(self, names: list[str]) -> list[ServiceState]:
        states: list[ServiceState] = []
        for name in names:
            try:
                instances = self.fetch_instances(name)
            except RegistryUnavailable as exc:
                self._metrics.consul_errors.inc()
                logger.error(
                    "Failed to get instances for %s: %s", name, exc,
                    extra={"service": name},
                )
                # Keep the service in the snapshot so it is not mistaken for an orphan
                states.append(ServiceState(name=name, instances_known=False))
                continue
            states.append(ServiceState(name=name, instances=tuple(instances)))
        return states

    # ── Watch loop ──────────────────────────────────────────────────

    def watch(self, stop: threading.Event | None = None) -> SnapshotMailbox[list[ServiceState]]:
        """Start the background poll loop and return the mailbox it feeds."""
        if stop is not None:
            self._stop = stop
        self._thread = threading.Thread(target=self._run, name="consul-watcher", daemon=True)
        self._thread.start()
        return self._mailbox

    def stop(self, timeout: float | None = None) -> None:
        """Close the mailbox; the thread exits once its in-flight request returns."""
        self._stop.set()
        self._mailbox.close()
        if self._thread is not None and timeout is not None:
            self._thread.join(timeout)

    def _run(self) -> None:
        logger.info("Consul watcher started")
        try:
            while not self._stop.is_set():
                states = self.poll_once()
                if states is None:
                    continue
                if not self._mailbox.put(states, self._stop):
                    break
        finally:
            self._mailbox.close()
            logger.info("Consul watcher stopped")

    def poll_once(self) -> list[ServiceState] | None:
        """One blocking query. Returns a snapshot when the index advanced, else None.

        Failures are counted and followed by an interruptible backoff sleep.
        """
        try:
            names, new_index = self.list_matching(self.index)
        except RegistryUnavailable as exc:
            if self._stop.is_set():
                return None
            self._metrics.consul_errors.inc()
            logger.error(
                "Failed to list Consul services: %s", exc,
                extra={"backoff_seconds": self.backoff, "status_code": exc.status_code},
            )
            self._sleep(self.backoff)
            self.backoff = min(self.backoff * 2, self._max_backoff)
            return None

        self.backoff = self._backoff_base

        if self.index != 0 and new_index == self.index:
            return None

        if new_index < self.index:
            # Registry restarted or its index was reset; treat as a change but never go backwards.
            # Until the registry passes the kept index every query runs the full wait.
            logger.warning(
                "Consul index went backwards (%d -> %d), keeping %d; changes are seen "
                "at most once per %ss until the registry catches up",
                self.index, new_index, self.index, self._wait,
                extra={"index": new_index},
            )
        else:
            self.index = new_index

        logger.info(
            "Consul services changed",
            extra={"services": names, "index": new_index},
        )
        return self._collect(names)

    def _sleep(self, seconds: float) -> None:
        self._stop.wait(seconds)

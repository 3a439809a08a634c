"""Component wiring, signal handling and the process lifecycle."""

from __future__ import annotations

import logging
import signal
import threading
from types import FrameType

from . import __version__
from .config import AppConfig
from .health import HealthServer, ReadinessFlag
from .k8s.api_client import KubernetesClient
from .k8s.syncer import StateSyncer
from .metrics import SyncMetrics
from .reconciler import ReconcileLoop
from .registry.consul_client import ConsulClient
from .registry.watcher import ChangeWatcher

logger = logging.getLogger(__name__)

# Set at build time by packaging, like the version
COMMIT = "unknown"


class Daemon:
    """Builds the watcher -> loop -> syncer pipeline and runs it until a shutdown signal."""

    def __init__(self, config: AppConfig):
        self._config = config
        self._stop = threading.Event()
        self.metrics = SyncMetrics()
        self.readiness = ReadinessFlag()

        # Raises KubernetesAPIError when no API server/credentials are available
        self._k8s = KubernetesClient(config.kubernetes)
        self._watcher = ChangeWatcher(
            ConsulClient(config.consul),
            self.metrics,
            wait_seconds=config.consul.wait_seconds,
            backoff_base=config.reconcile.backoff_base_seconds,
            max_backoff=config.reconcile.max_backoff_seconds,
        )
        self._syncer = StateSyncer(self._k8s, self.metrics, config.routes)
        self._loop = ReconcileLoop(
            self._watcher,
            self._syncer,
            self.readiness,
            self.metrics,
            resync_interval=config.reconcile.resync_interval_seconds,
        )
        self._health: HealthServer | None = None
        if config.health.enabled:
            self._health = HealthServer(
                config.health, self.readiness, self.metrics,
                version=__version__, commit=COMMIT,
            )

    def check_kubernetes(self) -> None:
        """Fail fast when the API server cannot be reached."""
        info = self._k8s.server_version()
        logger.info("Connected to Kubernetes API server %s", info.get("gitVersion", "unknown"))

    def run_once(self) -> bool:
        """Execute a single full fetch + sync cycle."""
        self.check_kubernetes()
        return self._loop.run_once()

    def run(self) -> None:
        """Run the reconcile loop until SIGTERM/SIGINT."""
        self._install_signal_handlers()
        cfg = self._config
        logger.info(
            "Starting consul-sync %s (consul=%s tag=%s namespace=%s routes=%s)",
            __version__, cfg.consul.address, cfg.consul.tag,
            cfg.kubernetes.namespace, cfg.routes.enabled,
        )

        if self._health is not None:
            self._health.start()
        try:
            self.check_kubernetes()
            self._loop.run(self._stop)
        finally:
            if self._health is not None:
                self._health.shutdown()
        logger.info("consul-sync stopped")

    def stop(self) -> None:
        self._stop.set()

    def _install_signal_handlers(self) -> None:
        signal.signal(signal.SIGTERM, self._handle_shutdown)
        signal.signal(signal.SIGINT, self._handle_shutdown)

    def _handle_shutdown(self, signum: int, frame: FrameType | None) -> None:
        sig_name = signal.Signals(signum).name
        logger.info("Received %s, shutting down", sig_name)
        self._stop.set()


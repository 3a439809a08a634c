"""Readiness flag and the HTTP liveness/readiness/metrics endpoint."""

from __future__ import annotations

import logging
import threading
import time

import uvicorn
from fastapi import FastAPI, Response
from fastapi.responses import PlainTextResponse
from prometheus_client import CONTENT_TYPE_LATEST

from .config import HealthConfig
from .exceptions import ConsulSyncError
from .metrics import SyncMetrics

logger = logging.getLogger(__name__)

# How long start() waits for uvicorn to bind before giving up
STARTUP_TIMEOUT_SECONDS = 10.0


class ReadinessFlag:
    """One-way not-ready -> ready flag, safe to read from any thread."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def mark_ready(self) -> None:
        if not self._event.is_set():
            logger.info("Marked ready")
        self._event.set()

    @property
    def is_ready(self) -> bool:
        return self._event.is_set()


def create_app(
    readiness: ReadinessFlag,
    metrics: SyncMetrics,
    version: str = "dev",
    commit: str = "unknown",
) -> FastAPI:
    """Build the health/metrics application around the daemon's shared state."""
    app = FastAPI(title="consul-sync", version=version, docs_url=None, redoc_url=None, openapi_url=None)

    @app.get("/healthz", response_class=PlainTextResponse)
    async def healthz() -> str:
        return "ok"

    @app.get("/readyz", response_class=PlainTextResponse)
    async def readyz() -> PlainTextResponse:
        if readiness.is_ready:
            return PlainTextResponse("ok")
        return PlainTextResponse("not ready", status_code=503)

    @app.get("/version")
    async def version_info() -> dict[str, str]:
        return {"version": version, "commit": commit}

    @app.get("/metrics")
    async def prometheus_metrics() -> Response:
        return Response(content=metrics.exposition(), media_type=CONTENT_TYPE_LATEST)

    return app


class HealthServer:
    """Runs the health app under uvicorn on a background daemon thread."""

    def __init__(
        self,
        config: HealthConfig,
        readiness: ReadinessFlag,
        metrics: SyncMetrics,
        version: str = "dev",
        commit: str = "unknown",
    ):
        self._config = config
        self.app = create_app(readiness, metrics, version=version, commit=commit)
        self._server: uvicorn.Server | None = None
        self._thread: threading.Thread | None = None

    @property
    def port(self) -> int:
        """Bound port (useful when configured with port 0)."""
        if self._server is None or not self._server.started:
            return self._config.port
        return self._server.servers[0].sockets[0].getsockname()[1]

    def start(self) -> None:
        server = uvicorn.Server(
            uvicorn.Config(
                self.app,
                host=self._config.listen_address,
                port=self._config.port,
                log_config=None,  # uvicorn loggers propagate to our root handler
                log_level="warning",
                access_log=False,
                lifespan="off",
            )
        )
        # Signals belong to the Daemon; uvicorn skips them off the main thread
        self._thread = threading.Thread(target=server.run, name="health-server", daemon=True)
        self._server = server
        self._thread.start()

        deadline = time.monotonic() + STARTUP_TIMEOUT_SECONDS
        while not server.started:
            if not self._thread.is_alive() or time.monotonic() > deadline:
                self.shutdown()
                raise ConsulSyncError(
                    f"Health server failed to start on {self._config.listen_address}:{self._config.port}"
                )
            time.sleep(0.05)
        logger.info("Health server listening on %s:%d", self._config.listen_address, self.port)

    def shutdown(self, timeout: float = 5.0) -> None:
        if self._server is None:
            return
        self._server.should_exit = True
        if self._thread is not None:
            self._thread.join(timeout)
        self._server = None
        self._thread = None
        logger.info("Health server stopped")

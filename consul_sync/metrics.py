"""Prometheus metrics for the reconciliation engine.

All collectors live in a private ``CollectorRegistry`` owned by a
``SyncMetrics`` instance. The instance is created once at startup and handed
to the watcher, syncer and reconcile loop, so tests can build an isolated
sink without touching process-wide state.
"""

from __future__ import annotations

from prometheus_client import CollectorRegistry, Counter, Gauge, generate_latest

RECONCILE_SUCCESS = "success"
RECONCILE_ERROR = "error"


class SyncMetrics:
    """Counters and gauges describing sync outcomes."""

    def __init__(self, registry: CollectorRegistry | None = None):
        self.registry = registry or CollectorRegistry()

        self.synced_services = Gauge(
            "consul_sync_services_total",
            "Number of currently synced services",
            registry=self.registry,
        )
        self.synced_endpoints = Gauge(
            "consul_sync_endpoints_total",
            "Total number of endpoints across all synced services",
            registry=self.registry,
        )
        self.synced_routes = Gauge(
            "consul_sync_httproutes_total",
            "Number of currently synced HTTPRoutes",
            registry=self.registry,
        )
        self.reconcile_total = Counter(
            "consul_sync_reconcile_total",
            "Total reconciliations performed",
            ["status"],  # success, error
            registry=self.registry,
        )
        self.consul_errors = Counter(
            "consul_sync_consul_errors_total",
            "Total errors communicating with Consul",
            registry=self.registry,
        )
        self.kubernetes_errors = Counter(
            "consul_sync_kubernetes_errors_total",
            "Total errors communicating with the Kubernetes API",
            registry=self.registry,
        )

    def record_reconcile(self, success: bool) -> None:
        status = RECONCILE_SUCCESS if success else RECONCILE_ERROR
        self.reconcile_total.labels(status=status).inc()

    def value(self, name: str, labels: dict[str, str] | None = None) -> float:
        """Current sample value, 0.0 when the series has not been touched."""
        sample = self.registry.get_sample_value(name, labels or {})
        return sample if sample is not None else 0.0

    def exposition(self) -> bytes:
        return generate_latest(self.registry)

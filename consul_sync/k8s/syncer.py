"""Service/EndpointSlice/HTTPRoute reconciliation against the Kubernetes API."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field

from ..config import RoutesConfig
from ..exceptions import (
    ApplyFailure,
    DeleteFailure,
    InvalidServiceData,
    KubernetesAPIError,
    SyncCancelled,
    SyncFailed,
)
from ..metrics import SyncMetrics
from ..registry.models import ServiceState
from .api_client import ENDPOINT_SLICES, HTTP_ROUTES, SERVICES, KubernetesClient, ResourceKind
from .names import sanitize_name
from .resources import (
    MANAGED_SELECTOR,
    EndpointSlice,
    HeadlessService,
    HTTPRoute,
    ParentRef,
    address_type,
    endpoint_slice_name,
    route_name,
)

logger = logging.getLogger(__name__)


@dataclass
class SyncResult:
    """Outcome of one sync cycle."""

    services: int = 0
    endpoints: int = 0
    routes: int = 0
    deleted: list[str] = field(default_factory=list)
    errors: list[Exception] = field(default_factory=list)


class StateSyncer:
    """Makes the managed Kubernetes objects match a list of Consul service states.

    ``sync`` is a pure function of the snapshot: it server-side-applies every
    desired object and deletes every managed object outside the desired set.
    It keeps no memory of previous cycles, so watch-triggered and resync
    cycles can call it interchangeably.
    """

    def __init__(self, client: KubernetesClient, metrics: SyncMetrics, routes: RoutesConfig):
        self._client = client
        self._metrics = metrics
        self._routes = routes
        self._namespace = client.namespace
        self._gateway_namespace = routes.gateway_namespace or client.namespace

    def _route_bindings(self) -> list[tuple[str, str]]:
        """(tag, gateway) pairs that produce an HTTPRoute."""
        return [
            (self._routes.internal_tag, self._routes.internal_gateway),
            (self._routes.external_tag, self._routes.external_gateway),
        ]

    def sync(self, states: list[ServiceState], stop: threading.Event | None = None) -> SyncResult:
        """Apply desired objects for ``states`` and delete orphans.

        Raises SyncFailed carrying every per-object error once the whole
        cycle has run, or SyncCancelled if ``stop`` is set mid-cycle.
        """
        result = SyncResult()
        desired: set[str] = set()
        desired_routes: set[str] = set()

        for state in states:
            if stop is not None and stop.is_set():
                raise SyncCancelled("sync interrupted by shutdown")
            self._sync_service(state, desired, desired_routes, result)

        if stop is not None and stop.is_set():
            # A partial desired set must never drive deletions
            raise SyncCancelled("sync interrupted by shutdown")

        self._cleanup(desired, result)
        if self._routes.enabled:
            self._cleanup_routes(desired_routes, result)
            self._metrics.synced_routes.set(result.routes)

        self._metrics.synced_services.set(result.services)
        self._metrics.synced_endpoints.set(result.endpoints)

        if result.errors:
            raise SyncFailed(result.errors)
        return result

    # ── Per-service apply ───────────────────────────────────────────

    def _sync_service(
        self,
        state: ServiceState,
        desired: set[str],
        desired_routes: set[str],
        result: SyncResult,
    ) -> None:
        name = sanitize_name(state.name)
        if not name:
            logger.warning(
                "Skipping service %r: no characters valid in a Kubernetes name", state.name,
                extra={"service": state.name},
            )
            return

        if not state.instances_known:
            # Membership unknown this cycle: keep whatever exists, touch nothing
            logger.warning(
                "Instances of %s unknown this cycle, leaving its objects untouched", state.name,
                extra={"service": state.name},
            )
            desired.add(name)
            desired_routes.update(self._existing_route_names(name))
            return

        if not state.instances:
            logger.warning(
                "Skipping service %s with no healthy instances", state.name,
                extra={"service": state.name},
            )
            return

        addresses = [inst.address for inst in state.instances]
        try:
            port = self._service_port(state)
            address_type(addresses)
        except InvalidServiceData as exc:
            logger.warning("Skipping service %s: %s", state.name, exc, extra={"service": state.name})
            return

        desired.add(name)

        service = HeadlessService(name=name, namespace=self._namespace, port=port)
        if not self._apply(SERVICES, name, service.to_manifest(), result):
            return

        eps = EndpointSlice(
            service_name=name,
            namespace=self._namespace,
            port=port,
            addresses=addresses,
        )
        if not self._apply(ENDPOINT_SLICES, eps.name, eps.to_manifest(), result):
            return

        result.services += 1
        result.endpoints += len(state.instances)

        if self._routes.enabled:
            tags = state.tags
            for tag, gateway in self._route_bindings():
                if tag not in tags:
                    continue
                route = self._build_route(name, port, gateway)
                desired_routes.add(route.name)
                if self._apply(HTTP_ROUTES, route.name, route.to_manifest(), result):
                    result.routes += 1
                    logger.info(
                        "Applied HTTPRoute %s", route.name,
                        extra={"route": route.name, "gateway": gateway, "hostname": route.hostnames[0]},
                    )

        logger.info(
            "Synced service %s", name,
            extra={"service": name, "endpoints": len(state.instances)},
        )

    @staticmethod
    def _service_port(state: ServiceState) -> int:
        # All instances of one service are assumed to share the first one's port
        port = state.instances[0].port
        if not 1 <= port <= 65535:
            raise InvalidServiceData(f"invalid port {port}")
        return port

    def _build_route(self, name: str, port: int, gateway: str) -> HTTPRoute:
        return HTTPRoute(
            service_name=name,
            namespace=self._namespace,
            port=port,
            parent=ParentRef(
                name=gateway,
                namespace=self._gateway_namespace,
                section_name=self._routes.gateway_listener,
            ),
            hostnames=[f"{name}.{self._routes.domain_suffix}"],
        )

    def _existing_route_names(self, name: str) -> list[str]:
        if not self._routes.enabled:
            return []
        return [route_name(name, gateway) for _, gateway in self._route_bindings()]

    def _apply(self, kind: ResourceKind, name: str, manifest: dict, result: SyncResult) -> bool:
        try:
            self._client.apply(kind, name, manifest)
        except KubernetesAPIError as exc:
            self._metrics.kubernetes_errors.inc()
            logger.error(
                "Failed to apply %s %s: %s", kind.kind, name, exc,
                extra={"service": name, "status_code": exc.status_code},
            )
            result.errors.append(ApplyFailure(kind.kind, name, exc))
            return False
        return True

    # ── Orphan cleanup ──────────────────────────────────────────────

    def _cleanup(self, desired: set[str], result: SyncResult) -> None:
        """Delete managed EndpointSlices and Services whose service is no longer desired.

        EndpointSlice deletions are best-effort; a failed Service deletion is
        surfaced as a DeleteFailure.
        """
        try:
            services = self._client.list_names(SERVICES, MANAGED_SELECTOR)
        except KubernetesAPIError as exc:
            self._list_failed(SERVICES, exc, result)
            services = []
        orphans = [name for name in services if name not in desired]

        desired_slices = {endpoint_slice_name(name) for name in desired}
        try:
            slices = self._client.list_names(ENDPOINT_SLICES, MANAGED_SELECTOR)
            orphan_slices = [name for name in slices if name not in desired_slices]
        except KubernetesAPIError as exc:
            self._list_failed(ENDPOINT_SLICES, exc, result)
            orphan_slices = [endpoint_slice_name(name) for name in orphans]

        for slice_name in orphan_slices:
            logger.info("Deleting orphaned EndpointSlice %s", slice_name)
            self._delete_quietly(ENDPOINT_SLICES, slice_name)

        for name in orphans:
            logger.info("Deleting orphaned service %s", name, extra={"service": name})
            try:
                self._client.delete(SERVICES, name)
            except KubernetesAPIError as exc:
                self._metrics.kubernetes_errors.inc()
                logger.error("Failed to delete service %s: %s", name, exc, extra={"service": name})
                result.errors.append(DeleteFailure(SERVICES.kind, name, exc))
                continue
            result.deleted.append(name)

    def _cleanup_routes(self, desired_routes: set[str], result: SyncResult) -> None:
        try:
            routes = self._client.list_names(HTTP_ROUTES, MANAGED_SELECTOR)
        except KubernetesAPIError as exc:
            self._list_failed(HTTP_ROUTES, exc, result)
            return

        for name in routes:
            if name in desired_routes:
                continue
            logger.info("Deleting orphaned HTTPRoute %s", name, extra={"route": name})
            if self._delete_quietly(HTTP_ROUTES, name):
                result.deleted.append(name)

    def _delete_quietly(self, kind: ResourceKind, name: str) -> bool:
        """Delete whose failure is logged and counted but does not fail the cycle."""
        try:
            self._client.delete(kind, name)
        except KubernetesAPIError as exc:
            self._metrics.kubernetes_errors.inc()
            logger.error("Failed to delete %s %s: %s", kind.kind, name, exc)
            return False
        return True

    def _list_failed(self, kind: ResourceKind, exc: KubernetesAPIError, result: SyncResult) -> None:
        self._metrics.kubernetes_errors.inc()
        logger.error("Failed to list managed %s objects: %s", kind.kind, exc)
        result.errors.append(exc)

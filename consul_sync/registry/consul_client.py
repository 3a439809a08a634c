"""REST client for the Consul catalog and health APIs."""

from __future__ import annotations

import logging
from typing import Any

import requests

from ..config import ConsulConfig
from ..exceptions import RegistryUnavailable
from .models import ServiceInstance, parse_change_index

logger = logging.getLogger(__name__)

# Built-in service registered by every Consul server
CONSUL_SYSTEM_SERVICE = "consul"


class ConsulClient:
    """Thin wrapper around the Consul HTTP API v1."""

    def __init__(self, config: ConsulConfig):
        self._base = config.address.rstrip("/")
        self._tag = config.tag
        self._datacenter = config.datacenter
        self._timeout = config.timeout_seconds
        self._session = requests.Session()
        self._session.verify = config.verify_ssl
        if config.token:
            self._session.headers["X-Consul-Token"] = config.token

    # ── Catalog ─────────────────────────────────────────────────────

    def list_services(self, index: int = 0, wait: int | None = None) -> tuple[list[str], int]:
        """Return tagged service names and the new change index.

        With a non-zero ``index`` and a ``wait``, the call is a blocking query
        that Consul holds open until the catalog changes or ``wait`` elapses.
        """
        params: dict[str, Any] = {"tag": self._tag}
        if index:
            params["index"] = index
        if wait:
            params["wait"] = f"{wait}s"

        resp = self._get("/v1/catalog/services", params=params)
        new_index = parse_change_index(resp.headers.get("X-Consul-Index"))
        catalog = self._decode(resp)
        if not isinstance(catalog, dict):
            raise RegistryUnavailable("Unexpected catalog response: expected a mapping")

        names = sorted(name for name in catalog if name != CONSUL_SYSTEM_SERVICE)
        return names, new_index

    # ── Health ──────────────────────────────────────────────────────

    def get_service_instances(self, service_name: str) -> list[ServiceInstance]:
        """Return the instances of ``service_name`` currently passing health checks."""
        resp = self._get(f"/v1/health/service/{service_name}", params={"passing": "true"})
        entries = self._decode(resp)
        if not isinstance(entries, list):
            raise RegistryUnavailable(f"Unexpected health response for {service_name}: expected a list")

        instances: list[ServiceInstance] = []
        for entry in entries:
            node = entry.get("Node") or {}
            service = entry.get("Service") or {}
            # Service address wins; registrations without one inherit the node's
            address = service.get("Address") or node.get("Address") or ""
            instances.append(ServiceInstance(
                service_name=service.get("Service") or service_name,
                address=address,
                port=int(service.get("Port") or 0),
                tags=frozenset(service.get("Tags") or ()),
            ))
        return instances

    # ── Internal HTTP helpers ───────────────────────────────────────

    def _get(self, path: str, params: dict[str, Any] | None = None) -> requests.Response:
        params = dict(params or {})
        if self._datacenter:
            params["dc"] = self._datacenter
        url = f"{self._base}{path}"
        logger.debug("GET %s params=%s", path, params)

        try:
            resp = self._session.get(url, params=params, timeout=self._timeout)
        except requests.RequestException as exc:
            raise RegistryUnavailable(f"Request failed: {exc}") from exc

        if resp.status_code != 200:
            raise RegistryUnavailable(
                f"HTTP {resp.status_code} on GET {path}: {resp.text[:1024]}",
                status_code=resp.status_code,
            )
        return resp

    @staticmethod
    def _decode(resp: requests.Response) -> Any:
        try:
            return resp.json()
        except ValueError as exc:
            raise RegistryUnavailable(f"Decoding response failed: {exc}") from exc

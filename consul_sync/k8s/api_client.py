"""REST client for the Kubernetes API server (server-side apply, list, delete)."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import requests

from ..config import KubernetesConfig
from ..exceptions import KubernetesAPIError
from .resources import FIELD_MANAGER

logger = logging.getLogger(__name__)

APPLY_CONTENT_TYPE = "application/apply-patch+yaml"


@dataclass(frozen=True)
class ResourceKind:
    """Where a namespaced resource lives in the API: ``{prefix}/namespaces/{ns}/{plural}``."""

    kind: str
    api_prefix: str
    plural: str


SERVICES = ResourceKind("Service", "/api/v1", "services")
ENDPOINT_SLICES = ResourceKind("EndpointSlice", "/apis/discovery.k8s.io/v1", "endpointslices")
HTTP_ROUTES = ResourceKind("HTTPRoute", "/apis/gateway.networking.k8s.io/v1", "httproutes")


def _resolve_api_server(config: KubernetesConfig) -> str:
    if config.api_server:
        return config.api_server.rstrip("/")
    host = os.environ.get("KUBERNETES_SERVICE_HOST")
    port = os.environ.get("KUBERNETES_SERVICE_PORT", "443")
    if not host:
        raise KubernetesAPIError(
            "kubernetes.api_server is empty and KUBERNETES_SERVICE_HOST is not set "
            "(not running in a cluster?)"
        )
    if ":" in host:
        host = f"[{host}]"
    return f"https://{host}:{port}"


class KubernetesClient:
    """Thin wrapper around the Kubernetes REST API for namespaced objects."""

    def __init__(self, config: KubernetesConfig):
        self._base = _resolve_api_server(config)
        self._namespace = config.namespace
        self._timeout = config.timeout_seconds
        self._token = config.token
        self._token_file = Path(config.token_file) if config.token_file else None
        if not self._token and (self._token_file is None or not self._token_file.is_file()):
            raise KubernetesAPIError(
                f"No Kubernetes credentials: kubernetes.token is empty and "
                f"token file {config.token_file!r} does not exist"
            )

        self._session = requests.Session()
        if not config.verify_ssl:
            self._session.verify = False
        elif config.ca_file and Path(config.ca_file).is_file():
            self._session.verify = config.ca_file

    @property
    def namespace(self) -> str:
        return self._namespace

    # ── Cluster ─────────────────────────────────────────────────────

    def server_version(self) -> dict[str, Any]:
        """Return the API server's version info; used as a startup reachability check."""
        return self._request("GET", "/version").json()

    # ── Namespaced objects ──────────────────────────────────────────

    def apply(self, kind: ResourceKind, name: str, manifest: dict[str, Any]) -> dict[str, Any]:
        """Create or update ``name`` with server-side apply (idempotent)."""
        resp = self._request(
            "PATCH",
            self._item_path(kind, name),
            params={"fieldManager": FIELD_MANAGER, "force": "true"},
            data=json.dumps(manifest),
            headers={"Content-Type": APPLY_CONTENT_TYPE},
        )
        return resp.json()

    def list_objects(self, kind: ResourceKind, label_selector: str) -> list[dict[str, Any]]:
        resp = self._request(
            "GET",
            self._collection_path(kind),
            params={"labelSelector": label_selector},
        )
        return resp.json().get("items") or []

    def list_names(self, kind: ResourceKind, label_selector: str) -> list[str]:
        return [item["metadata"]["name"] for item in self.list_objects(kind, label_selector)]

    def delete(self, kind: ResourceKind, name: str) -> None:
        """Delete ``name``; an already-missing object counts as deleted."""
        try:
            self._request("DELETE", self._item_path(kind, name))
        except KubernetesAPIError as e:
            if e.status_code == 404:
                logger.debug("%s %s already gone", kind.kind, name)
                return
            raise

    # ── Internal HTTP helpers ───────────────────────────────────────

    def _collection_path(self, kind: ResourceKind) -> str:
        return f"{kind.api_prefix}/namespaces/{self._namespace}/{kind.plural}"

    def _item_path(self, kind: ResourceKind, name: str) -> str:
        return f"{self._collection_path(kind)}/{name}"

    def _bearer_token(self) -> str:
        if self._token:
            return self._token
        # Projected service-account tokens rotate; read the current one each time
        return self._token_file.read_text().strip()

    def _request(self, method: str, path: str, headers: dict[str, str] | None = None, **kwargs) -> requests.Response:
        url = f"{self._base}{path}"
        kwargs.setdefault("timeout", self._timeout)
        logger.debug("%s %s params=%s", method, path, kwargs.get("params"))

        try:
            all_headers = {"Authorization": f"Bearer {self._bearer_token()}", "Accept": "application/json"}
        except OSError as exc:
            raise KubernetesAPIError(f"Reading service-account token failed: {exc}") from exc
        all_headers.update(headers or {})

        try:
            resp = self._session.request(method, url, headers=all_headers, **kwargs)
        except requests.RequestException as exc:
            raise KubernetesAPIError(f"Request failed: {exc}") from exc

        if resp.status_code >= 400:
            raise KubernetesAPIError(
                f"HTTP {resp.status_code} on {method} {path}: {resp.text[:1024]}",
                status_code=resp.status_code,
                response_body=resp.text,
            )

        return resp

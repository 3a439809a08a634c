"""Typed builders for the Kubernetes objects consul-sync owns.

Each dataclass models exactly the fields this daemon sets and renders the
manifest dict sent as a server-side apply body.
"""

from __future__ import annotations

import ipaddress
from dataclasses import dataclass, field
from typing import Any

from ..exceptions import InvalidServiceData

FIELD_MANAGER = "consul-sync"
MANAGED_BY_KEY = "app.kubernetes.io/managed-by"
MANAGED_BY = "consul-sync"
NAME_KEY = "app.kubernetes.io/name"
SERVICE_NAME_KEY = "kubernetes.io/service-name"
SLICE_MANAGED_BY_KEY = "endpointslice.kubernetes.io/managed-by"

MANAGED_SELECTOR = f"{MANAGED_BY_KEY}={MANAGED_BY}"

PORT_NAME = "http"
PROTOCOL = "TCP"
ENDPOINT_SLICE_SUFFIX = "-consul"


def endpoint_slice_name(service_name: str) -> str:
    return service_name + ENDPOINT_SLICE_SUFFIX


def route_name(service_name: str, gateway: str) -> str:
    return f"{service_name}-{gateway}"


def managed_labels(name: str) -> dict[str, str]:
    return {MANAGED_BY_KEY: MANAGED_BY, NAME_KEY: name}


def address_type(addresses: list[str]) -> str:
    """EndpointSlice addressType: FQDN if any hostname, else the single IP family.

    One slice carries one address family, so a mix of IPv4 and IPv6
    addresses raises InvalidServiceData.
    """
    versions = set()
    for addr in addresses:
        try:
            versions.add(ipaddress.ip_address(addr).version)
        except ValueError:
            return "FQDN"
    if versions == {4, 6}:
        raise InvalidServiceData("mixed IPv4 and IPv6 addresses")
    if versions == {6}:
        return "IPv6"
    return "IPv4"


@dataclass(frozen=True)
class HeadlessService:
    name: str
    namespace: str
    port: int

    def to_manifest(self) -> dict[str, Any]:
        return {
            "apiVersion": "v1",
            "kind": "Service",
            "metadata": {
                "name": self.name,
                "namespace": self.namespace,
                "labels": managed_labels(self.name),
            },
            "spec": {
                "type": "ClusterIP",
                "clusterIP": "None",
                "ports": [
                    {"name": PORT_NAME, "port": self.port, "protocol": PROTOCOL},
                ],
            },
        }


@dataclass(frozen=True)
class EndpointSlice:
    service_name: str
    namespace: str
    port: int
    addresses: list[str] = field(default_factory=list)

    @property
    def name(self) -> str:
        return endpoint_slice_name(self.service_name)

    def to_manifest(self) -> dict[str, Any]:
        return {
            "apiVersion": "discovery.k8s.io/v1",
            "kind": "EndpointSlice",
            "metadata": {
                "name": self.name,
                "namespace": self.namespace,
                "labels": {
                    SERVICE_NAME_KEY: self.service_name,
                    SLICE_MANAGED_BY_KEY: MANAGED_BY,
                    MANAGED_BY_KEY: MANAGED_BY,
                },
            },
            "addressType": address_type(self.addresses),
            "endpoints": [
                {"addresses": [addr], "conditions": {"ready": True}}
                for addr in self.addresses
            ],
            "ports": [
                {"name": PORT_NAME, "port": self.port, "protocol": PROTOCOL},
            ],
        }


@dataclass(frozen=True)
class ParentRef:
    name: str
    namespace: str
    section_name: str


@dataclass(frozen=True)
class HTTPRoute:
    """Gateway API route: one hostname through one gateway to one backend port."""

    service_name: str
    namespace: str
    port: int
    parent: ParentRef
    hostnames: list[str] = field(default_factory=list)

    @property
    def name(self) -> str:
        return route_name(self.service_name, self.parent.name)

    def to_manifest(self) -> dict[str, Any]:
        return {
            "apiVersion": "gateway.networking.k8s.io/v1",
            "kind": "HTTPRoute",
            "metadata": {
                "name": self.name,
                "namespace": self.namespace,
                "labels": managed_labels(self.service_name),
            },
            "spec": {
                "parentRefs": [
                    {
                        "name": self.parent.name,
                        "namespace": self.parent.namespace,
                        "sectionName": self.parent.section_name,
                    },
                ],
                "hostnames": list(self.hostnames),
                "rules": [
                    {"backendRefs": [{"name": self.service_name, "port": self.port}]},
                ],
            },
        }

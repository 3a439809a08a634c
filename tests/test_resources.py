"""Tests for the typed Kubernetes resource builders."""

import pytest

from consul_sync.exceptions import InvalidServiceData
from consul_sync.k8s.resources import (
    MANAGED_BY,
    MANAGED_BY_KEY,
    EndpointSlice,
    HeadlessService,
    HTTPRoute,
    ParentRef,
    address_type,
)


class TestHeadlessService:
    def test_manifest(self):
        manifest = HeadlessService(name="web", namespace="network", port=8080).to_manifest()
        assert manifest["kind"] == "Service"
        assert manifest["metadata"]["labels"] == {
            MANAGED_BY_KEY: MANAGED_BY,
            "app.kubernetes.io/name": "web",
        }
        assert manifest["spec"]["clusterIP"] == "None"
        assert manifest["spec"]["ports"] == [{"name": "http", "port": 8080, "protocol": "TCP"}]


class TestEndpointSlice:
    def test_manifest(self):
        eps = EndpointSlice(service_name="web", namespace="network", port=8080, addresses=["10.0.0.1", "10.0.0.2"])
        manifest = eps.to_manifest()
        assert eps.name == "web-consul"
        assert manifest["metadata"]["labels"]["kubernetes.io/service-name"] == "web"
        assert manifest["metadata"]["labels"][MANAGED_BY_KEY] == MANAGED_BY
        assert manifest["addressType"] == "IPv4"
        assert manifest["endpoints"] == [
            {"addresses": ["10.0.0.1"], "conditions": {"ready": True}},
            {"addresses": ["10.0.0.2"], "conditions": {"ready": True}},
        ]
        assert manifest["ports"] == [{"name": "http", "port": 8080, "protocol": "TCP"}]


class TestAddressType:
    def test_ipv4(self):
        assert address_type(["10.0.0.1"]) == "IPv4"

    def test_ipv6(self):
        assert address_type(["fd00::1", "fd00::2"]) == "IPv6"

    def test_hostname(self):
        assert address_type(["10.0.0.1", "node1.example.com"]) == "FQDN"

    def test_mixed_families_rejected(self):
        with pytest.raises(InvalidServiceData, match="mixed"):
            address_type(["10.0.0.1", "fd00::1"])


class TestHTTPRoute:
    def test_manifest(self):
        route = HTTPRoute(
            service_name="web",
            namespace="network",
            port=8080,
            parent=ParentRef(name="envoy-internal", namespace="gateways", section_name="https"),
            hostnames=["web.k8s.example.io"],
        )
        manifest = route.to_manifest()
        assert route.name == "web-envoy-internal"
        assert manifest["apiVersion"] == "gateway.networking.k8s.io/v1"
        assert manifest["metadata"]["labels"][MANAGED_BY_KEY] == MANAGED_BY
        assert manifest["spec"]["parentRefs"] == [
            {"name": "envoy-internal", "namespace": "gateways", "sectionName": "https"},
        ]
        assert manifest["spec"]["hostnames"] == ["web.k8s.example.io"]
        assert manifest["spec"]["rules"] == [{"backendRefs": [{"name": "web", "port": 8080}]}]

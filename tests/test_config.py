"""Tests for configuration loading and validation."""

import pytest
import yaml

from consul_sync.config import load_config
from consul_sync.exceptions import ConfigError

MINIMAL = {
    "consul": {"address": "http://consul:8500"},
    "routes": {"domain_suffix": "k8s.example.io"},
}


def _write_config(tmp_path, data: dict) -> str:
    path = tmp_path / "config.yaml"
    path.write_text(yaml.dump(data))
    return str(path)


def _with(**sections):
    data = {k: dict(v) for k, v in MINIMAL.items()}
    for key, value in sections.items():
        data.setdefault(key, {}).update(value)
    return data


class TestLoadConfig:
    def test_minimal_valid_config(self, tmp_path):
        config = load_config(_write_config(tmp_path, MINIMAL))
        assert config.consul.address == "http://consul:8500"
        assert config.consul.tag == "kubernetes"
        assert config.consul.wait_seconds == 300
        assert config.kubernetes.namespace == "network"
        assert config.routes.enabled is True
        assert config.routes.internal_gateway == "envoy-internal"
        assert config.reconcile.resync_interval_seconds == 300
        assert config.reconcile.backoff_base_seconds == 1.0
        assert config.reconcile.max_backoff_seconds == 30.0
        assert config.health.port == 8080

    def test_missing_file_raises(self):
        with pytest.raises(ConfigError, match="not found"):
            load_config("/nonexistent/file.yaml")

    def test_non_mapping_file(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("just a string")
        with pytest.raises(ConfigError, match="mapping"):
            load_config(str(path))

    def test_missing_consul_address_raises(self, tmp_path):
        data = {"routes": {"domain_suffix": "x.io"}}
        with pytest.raises(ConfigError, match="consul.address"):
            load_config(_write_config(tmp_path, data))

    def test_wait_must_be_below_timeout(self, tmp_path):
        data = _with(consul={"wait_seconds": 400, "timeout_seconds": 360})
        with pytest.raises(ConfigError, match="wait_seconds"):
            load_config(_write_config(tmp_path, data))

    def test_empty_namespace_raises(self, tmp_path):
        data = _with(kubernetes={"namespace": ""})
        with pytest.raises(ConfigError, match="namespace"):
            load_config(_write_config(tmp_path, data))

    def test_resync_interval_too_low(self, tmp_path):
        data = _with(reconcile={"resync_interval_seconds": 2})
        with pytest.raises(ConfigError, match="resync_interval_seconds"):
            load_config(_write_config(tmp_path, data))

    def test_backoff_max_below_base(self, tmp_path):
        data = _with(reconcile={"backoff_base_seconds": 10, "max_backoff_seconds": 5})
        with pytest.raises(ConfigError, match="max_backoff_seconds"):
            load_config(_write_config(tmp_path, data))

    def test_domain_suffix_required_when_routes_enabled(self, tmp_path):
        data = {"consul": {"address": "http://consul:8500"}}
        with pytest.raises(ConfigError, match="domain_suffix"):
            load_config(_write_config(tmp_path, data))

    def test_domain_suffix_optional_when_routes_disabled(self, tmp_path):
        data = {"consul": {"address": "http://consul:8500"}, "routes": {"enabled": False}}
        config = load_config(_write_config(tmp_path, data))
        assert config.routes.enabled is False

    def test_invalid_logging_format(self, tmp_path):
        data = _with(logging={"format": "xml"})
        with pytest.raises(ConfigError, match="logging.format"):
            load_config(_write_config(tmp_path, data))

    def test_env_var_interpolation(self, tmp_path, monkeypatch):
        monkeypatch.setenv("TEST_CONSUL_TOKEN", "secret-token")
        data = _with(consul={"token": "${TEST_CONSUL_TOKEN}"})
        config = load_config(_write_config(tmp_path, data))
        assert config.consul.token == "secret-token"

    def test_env_var_missing_raises(self, tmp_path, monkeypatch):
        monkeypatch.delenv("SURELY_MISSING_VAR", raising=False)
        data = _with(consul={"token": "${SURELY_MISSING_VAR}"})
        with pytest.raises(ConfigError, match="SURELY_MISSING_VAR"):
            load_config(_write_config(tmp_path, data))

    def test_env_values_coerced_to_field_types(self, tmp_path, monkeypatch):
        monkeypatch.setenv("TEST_HEALTH_PORT", "9100")
        monkeypatch.setenv("TEST_ROUTES_ON", "false")
        monkeypatch.setenv("TEST_BACKOFF", "0.5")
        data = _with(
            health={"port": "${TEST_HEALTH_PORT}"},
            routes={"enabled": "${TEST_ROUTES_ON}"},
            reconcile={"backoff_base_seconds": "${TEST_BACKOFF}"},
        )
        config = load_config(_write_config(tmp_path, data))
        assert config.health.port == 9100
        assert config.routes.enabled is False
        assert config.reconcile.backoff_base_seconds == 0.5

    def test_bad_numeric_value(self, tmp_path):
        data = _with(health={"port": "eighty"})
        with pytest.raises(ConfigError, match="health.port"):
            load_config(_write_config(tmp_path, data))

    def test_bad_boolean_value(self, tmp_path):
        data = _with(consul={"verify_ssl": "maybe"})
        with pytest.raises(ConfigError, match="consul.verify_ssl"):
            load_config(_write_config(tmp_path, data))

    def test_section_must_be_mapping(self, tmp_path):
        data = _with()
        data["health"] = [1, 2]
        with pytest.raises(ConfigError, match="health must be a mapping"):
            load_config(_write_config(tmp_path, data))

    def test_empty_section_uses_defaults(self, tmp_path):
        data = _with()
        data["health"] = None
        config = load_config(_write_config(tmp_path, data))
        assert config.health.port == 8080

    def test_unparsable_yaml(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("consul: [unclosed")
        with pytest.raises(ConfigError, match="Cannot parse"):
            load_config(str(path))

    def test_unknown_keys_ignored(self, tmp_path):
        data = _with(consul={"colour": "blue"}, extra={"a": 1})
        config = load_config(_write_config(tmp_path, data))
        assert config.consul.address == "http://consul:8500"

    def test_full_config(self, tmp_path):
        data = {
            "consul": {
                "address": "https://consul:8501",
                "token": "t",
                "tag": "k8s",
                "datacenter": "dc2",
                "wait_seconds": 60,
                "timeout_seconds": 90,
                "verify_ssl": False,
            },
            "kubernetes": {"api_server": "https://k8s:6443", "token": "kt", "namespace": "edge"},
            "routes": {
                "domain_suffix": "apps.example.io",
                "internal_gateway": "gw-int",
                "external_gateway": "gw-ext",
                "gateway_namespace": "gateways",
                "gateway_listener": "http",
                "internal_tag": "private",
                "external_tag": "public",
            },
            "reconcile": {"resync_interval_seconds": 60, "backoff_base_seconds": 2, "max_backoff_seconds": 60},
            "health": {"enabled": False, "port": 9090},
            "logging": {"level": "DEBUG", "format": "text"},
        }
        config = load_config(_write_config(tmp_path, data))
        assert config.consul.datacenter == "dc2"
        assert config.consul.verify_ssl is False
        assert config.kubernetes.api_server == "https://k8s:6443"
        assert config.kubernetes.namespace == "edge"
        assert config.routes.gateway_namespace == "gateways"
        assert config.routes.external_tag == "public"
        assert config.reconcile.max_backoff_seconds == 60
        assert config.health.enabled is False
        assert config.logging.format == "text"

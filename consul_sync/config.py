"""Configuration model and YAML loader.

The file is a mapping of sections (``consul``, ``kubernetes``, ``routes``,
``reconcile``, ``health``, ``logging``), each read into a frozen dataclass.
String values may reference environment variables as ``${NAME}``; after
substitution, values for numeric and boolean fields are coerced, so
``port: ${HEALTH_PORT}`` works as expected.
"""

from __future__ import annotations

import dataclasses
import os
import re
import typing
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from .exceptions import ConfigError

_ENV_PATTERN = re.compile(r"\$\{([^}]+)\}")

_TRUE = {"true", "yes", "on", "1"}
_FALSE = {"false", "no", "off", "0"}

SERVICE_ACCOUNT_DIR = "/var/run/secrets/kubernetes.io/serviceaccount"


def _expand_env(obj: Any) -> Any:
    """Substitute ${NAME} in every string of a parsed YAML tree."""
    if isinstance(obj, dict):
        return {key: _expand_env(value) for key, value in obj.items()}
    if isinstance(obj, list):
        return [_expand_env(value) for value in obj]
    if not isinstance(obj, str):
        return obj

    def _lookup(match: re.Match) -> str:
        name = match.group(1)
        if name not in os.environ:
            raise ConfigError(f"Environment variable '{name}' is not set")
        return os.environ[name]

    return _ENV_PATTERN.sub(_lookup, obj)


@dataclass(frozen=True)
class ConsulConfig:
    address: str = ""
    token: str = ""
    tag: str = "kubernetes"
    datacenter: str = ""
    wait_seconds: int = 300
    timeout_seconds: int = 360  # must outlast wait_seconds so long polls end server-side
    verify_ssl: bool = True


@dataclass(frozen=True)
class KubernetesConfig:
    api_server: str = ""  # empty = in-cluster (KUBERNETES_SERVICE_HOST/PORT)
    token: str = ""
    token_file: str = f"{SERVICE_ACCOUNT_DIR}/token"
    ca_file: str = f"{SERVICE_ACCOUNT_DIR}/ca.crt"
    namespace: str = "network"
    timeout_seconds: int = 30
    verify_ssl: bool = True


@dataclass(frozen=True)
class RoutesConfig:
    enabled: bool = True
    domain_suffix: str = ""
    internal_gateway: str = "envoy-internal"
    external_gateway: str = "envoy-external"
    gateway_namespace: str = ""  # empty = kubernetes.namespace
    gateway_listener: str = "https"
    internal_tag: str = "internal"
    external_tag: str = "external"


@dataclass(frozen=True)
class ReconcileConfig:
    resync_interval_seconds: int = 300
    backoff_base_seconds: float = 1.0
    max_backoff_seconds: float = 30.0


@dataclass(frozen=True)
class HealthConfig:
    enabled: bool = True
    listen_address: str = "0.0.0.0"
    port: int = 8080


@dataclass(frozen=True)
class LoggingConfig:
    level: str = "INFO"
    format: str = "json"  # "json" or "text"


@dataclass(frozen=True)
class AppConfig:
    consul: ConsulConfig = field(default_factory=ConsulConfig)
    kubernetes: KubernetesConfig = field(default_factory=KubernetesConfig)
    routes: RoutesConfig = field(default_factory=RoutesConfig)
    reconcile: ReconcileConfig = field(default_factory=ReconcileConfig)
    health: HealthConfig = field(default_factory=HealthConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def _coerce(value: Any, target: Any, where: str) -> Any:
    """Convert env-substituted strings to the field's scalar type."""
    if not isinstance(value, str) or target is str:
        return value
    text = value.strip()
    if target is bool:
        if text.lower() in _TRUE:
            return True
        if text.lower() in _FALSE:
            return False
        raise ConfigError(f"{where} must be a boolean, got {value!r}")
    if target in (int, float):
        try:
            return target(text)
        except ValueError:
            raise ConfigError(f"{where} must be {target.__name__}, got {value!r}") from None
    return value


def _build_section(cls: type, data: Any, prefix: str) -> Any:
    """Instantiate dataclass ``cls`` from a mapping, ignoring unknown keys."""
    if data is None:
        return cls()
    if not isinstance(data, dict):
        raise ConfigError(f"{prefix} must be a mapping")
    hints = typing.get_type_hints(cls)
    kwargs: dict[str, Any] = {}
    for f in dataclasses.fields(cls):
        if f.name not in data:
            continue
        where = f"{prefix}.{f.name}" if prefix else f.name
        target = hints[f.name]
        if dataclasses.is_dataclass(target):
            kwargs[f.name] = _build_section(target, data[f.name], where)
        else:
            kwargs[f.name] = _coerce(data[f.name], target, where)
    return cls(**kwargs)


def load_config(path: str | Path) -> AppConfig:
    """Read, interpolate and validate the YAML file at ``path``."""
    path = Path(path)
    if not path.is_file():
        raise ConfigError(f"Configuration file not found: {path}")

    try:
        with open(path) as f:
            raw = yaml.safe_load(f)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Cannot parse {path}: {exc}") from exc

    if not isinstance(raw, dict):
        raise ConfigError("Configuration file must be a YAML mapping")

    config = _build_section(AppConfig, _expand_env(raw), "")
    _validate(config)
    return config


def _validate(config: AppConfig) -> None:
    consul, reconcile = config.consul, config.reconcile
    checks = [
        (bool(consul.address), "consul.address is required"),
        (consul.wait_seconds >= 1, "consul.wait_seconds must be >= 1"),
        (
            consul.wait_seconds < consul.timeout_seconds,
            "consul.wait_seconds must be lower than consul.timeout_seconds",
        ),
        (bool(config.kubernetes.namespace), "kubernetes.namespace is required"),
        (reconcile.resync_interval_seconds >= 5, "reconcile.resync_interval_seconds must be >= 5"),
        (reconcile.backoff_base_seconds > 0, "reconcile.backoff_base_seconds must be > 0"),
        (
            reconcile.max_backoff_seconds >= reconcile.backoff_base_seconds,
            "reconcile.max_backoff_seconds must be >= reconcile.backoff_base_seconds",
        ),
        (
            not config.routes.enabled or bool(config.routes.domain_suffix),
            "routes.domain_suffix is required when routes are enabled",
        ),
        (config.logging.format in ("json", "text"), "logging.format must be 'json' or 'text'"),
        (0 <= config.health.port <= 65535, "health.port must be between 0 and 65535"),
    ]
    for ok, message in checks:
        if not ok:
            raise ConfigError(message)

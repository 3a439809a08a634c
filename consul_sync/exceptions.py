"""Custom exception hierarchy for the consul-sync daemon."""

from __future__ import annotations


class ConsulSyncError(Exception):
    """Base exception for all daemon errors."""


class ConfigError(ConsulSyncError):
    """Invalid or missing configuration."""


class RegistryUnavailable(ConsulSyncError):
    """Consul could not be queried (network failure, bad status or undecodable body)."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class InvalidServiceData(ConsulSyncError):
    """A registry service carries data that cannot be projected (e.g. a bad port)."""


class KubernetesAPIError(ConsulSyncError):
    """Error communicating with the Kubernetes API server."""

    def __init__(self, message: str, status_code: int | None = None, response_body: str | None = None):
        super().__init__(message)
        self.status_code = status_code
        self.response_body = response_body


class ApplyFailure(KubernetesAPIError):
    """Server-side apply of a single object failed."""

    def __init__(self, kind: str, name: str, cause: KubernetesAPIError):
        super().__init__(
            f"applying {kind} {name}: {cause}",
            status_code=cause.status_code,
            response_body=cause.response_body,
        )
        self.kind = kind
        self.name = name


class DeleteFailure(KubernetesAPIError):
    """Deletion of a single managed object failed."""

    def __init__(self, kind: str, name: str, cause: KubernetesAPIError):
        super().__init__(
            f"deleting {kind} {name}: {cause}",
            status_code=cause.status_code,
            response_body=cause.response_body,
        )
        self.kind = kind
        self.name = name


class SyncFailed(ConsulSyncError):
    """One or more per-object failures during a sync cycle."""

    def __init__(self, errors: list[Exception]):
        super().__init__("; ".join(str(e) for e in errors))
        self.errors = list(errors)


class SyncCancelled(ConsulSyncError):
    """Shutdown was requested while a sync was in progress."""

"""Consul registry package: the snapshot source Protocol."""

from __future__ import annotations

import threading
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from .mailbox import SnapshotMailbox
    from .models import ServiceState


@runtime_checkable
class SnapshotSource(Protocol):
    """Protocol the reconcile loop expects from a registry watcher."""

    def watch(self, stop: threading.Event | None = None) -> SnapshotMailbox[list[ServiceState]]:
        """Start emitting snapshots on change."""
        ...

    def fetch_all_now(self) -> list[ServiceState]:
        """Return the full current picture without blocking."""
        ...

    def stop(self, timeout: float | None = None) -> None:
        """Stop emitting snapshots."""
        ...

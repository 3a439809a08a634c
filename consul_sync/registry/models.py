"""Data models for Consul services and their healthy instances."""

from __future__ import annotations

from dataclasses import dataclass, field

# Consul indexes start at 1. Blocking on index 0 returns immediately, so a
# zero/missing index would turn the watch loop into a tight poll.
MIN_CHANGE_INDEX = 1


@dataclass(frozen=True)
class ServiceInstance:
    """A single passing instance of a Consul service."""

    service_name: str
    address: str
    port: int
    tags: frozenset[str] = field(default_factory=frozenset)


@dataclass(frozen=True)
class ServiceState:
    """A Consul service and its currently-healthy members.

    ``instances_known`` is False when the instance lookup failed for this
    read; the service still exists upstream but its membership is unknown.
    """

    name: str
    instances: tuple[ServiceInstance, ...] = ()
    instances_known: bool = True

    @property
    def tags(self) -> frozenset[str]:
        """Union of the tags carried by every instance."""
        result: set[str] = set()
        for inst in self.instances:
            result.update(inst.tags)
        return frozenset(result)


def parse_change_index(raw: str | None) -> int:
    """Parse an ``X-Consul-Index`` header, coercing missing/invalid/zero values to 1."""
    try:
        index = int(raw) if raw is not None else 0
    except ValueError:
        index = 0
    return index if index >= MIN_CHANGE_INDEX else MIN_CHANGE_INDEX

"""Consul service name to Kubernetes object name conversion."""

from __future__ import annotations

import re

# RFC 1035 label limit, shared by Service names
MAX_NAME_LENGTH = 63

# Service names must start with a letter
DIGIT_PREFIX = "svc-"

_INVALID_CHARS = re.compile(r"[^a-z0-9-]+")


def sanitize_name(name: str) -> str:
    """Convert a Consul service name into a valid Kubernetes Service name.

    Lowercases, collapses runs of invalid characters into a single hyphen,
    strips leading/trailing hyphens, prefixes ``svc-`` when the result starts
    with a digit and truncates to 63 characters. Returns an empty string when
    nothing usable is left. Distinct Consul names can map to the same result;
    callers do not guard against such collisions.
    """
    name = _INVALID_CHARS.sub("-", name.lower()).strip("-")
    if name[:1].isdigit():
        name = DIGIT_PREFIX + name
    # Truncation can expose a trailing hyphen again
    return name[:MAX_NAME_LENGTH].rstrip("-")

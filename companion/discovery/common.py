"""
Helpers shared by both discovery strategies: deadline bookkeeping,
endpoint deduplication and instance-name derivation.
"""

import time
from typing import Iterable

from companion.shared.constants import POLL_INTERVAL_MS
from companion.shared.models import DiscoveredServer


class Deadline:
    """An absolute monotonic deadline polled in bounded slices."""

    def __init__(self, timeout_ms: int, poll_interval_ms: int = POLL_INTERVAL_MS):
        self._expires_at = time.monotonic() + max(0, timeout_ms) / 1000.0
        self._slice = max(1, poll_interval_ms) / 1000.0

    def remaining(self) -> float:
        """Seconds left, never negative."""
        return max(0.0, self._expires_at - time.monotonic())

    def expired(self) -> bool:
        return self.remaining() <= 0.0

    def next_wait(self) -> float:
        """How long the next blocking wait may last: one slice or what is left."""
        return min(self.remaining(), self._slice)


def dedupe_by_endpoint(servers: Iterable[DiscoveredServer]) -> list[DiscoveredServer]:
    """Keep the first server seen for every (hostname, port)."""
    seen = set()
    unique = []
    for server in servers:
        if server.endpoint_key in seen:
            continue
        seen.add(server.endpoint_key)
        unique.append(server)
    return unique


def normalize_service_type(service_type: str) -> str:
    """Service types are fully qualified: always end with a dot."""
    service_type = service_type.strip()
    return service_type if service_type.endswith(".") else service_type + "."


def instance_name_from_fullname(fullname: str, service_type: str) -> str:
    """
    Strip the ``.<service_type>`` suffix from a resolved full name.
    ``box1._nascraft._tcp.local.`` -> ``box1``; without the suffix the
    full name is returned unchanged.
    """
    suffix = "." + normalize_service_type(service_type)
    if fullname.endswith(suffix) and len(fullname) > len(suffix):
        return fullname[: -len(suffix)]
    return fullname

"""
Multicast-DNS discovery strategy (platforms where multicast is available).

Browses one or more service types in a single zeroconf session and polls the
browse events until the call deadline. Each added instance is resolved to its
host, port and IPv4 addresses.
"""

import ipaddress
import logging
import queue
from typing import Callable, Iterable, Optional

from zeroconf import (
    BadTypeInNameException,
    IPVersion,
    ServiceBrowser,
    ServiceStateChange,
    Zeroconf,
)

from companion.shared.constants import POLL_INTERVAL_MS, RESOLVE_TIMEOUT_MS
from companion.shared.diagnostics import Diagnostics
from companion.shared.errors import DiscoveryError
from companion.shared.interfaces import IDiscoveryStrategy
from companion.shared.models import DiscoveredServer

from .common import (
    Deadline,
    dedupe_by_endpoint,
    instance_name_from_fullname,
    normalize_service_type,
)

logger = logging.getLogger(__name__)

_RESOLVABLE = (ServiceStateChange.Added, ServiceStateChange.Updated)


def _ipv4_zeroconf() -> Zeroconf:
    return Zeroconf(ip_version=IPVersion.V4Only)


def _ipv4_sort_key(address: str):
    try:
        return (0, int(ipaddress.IPv4Address(address)))
    except ValueError:
        return (1, address)


class MdnsDiscoveryStrategy(IDiscoveryStrategy):
    """Finds services by browsing their mDNS service types."""

    name = "mdns"

    def __init__(
        self,
        service_types: Iterable[str],
        *,
        poll_interval_ms: int = POLL_INTERVAL_MS,
        resolve_timeout_ms: int = RESOLVE_TIMEOUT_MS,
        zeroconf_factory: Callable[[], Zeroconf] = _ipv4_zeroconf,
        browser_factory: Callable = ServiceBrowser,
        diagnostics: Optional[Diagnostics] = None,
    ):
        self._service_types = tuple(normalize_service_type(t) for t in service_types)
        if not self._service_types:
            raise ValueError("At least one service type is required")
        self._poll_interval_ms = poll_interval_ms
        self._resolve_timeout_ms = resolve_timeout_ms
        self._zeroconf_factory = zeroconf_factory
        self._browser_factory = browser_factory
        self._diagnostics = diagnostics or Diagnostics()

    @property
    def service_types(self) -> tuple:
        return self._service_types

    def with_service_types(self, service_types: Iterable[str]) -> "MdnsDiscoveryStrategy":
        """Same transport settings, different service types."""
        return MdnsDiscoveryStrategy(
            service_types,
            poll_interval_ms=self._poll_interval_ms,
            resolve_timeout_ms=self._resolve_timeout_ms,
            zeroconf_factory=self._zeroconf_factory,
            browser_factory=self._browser_factory,
            diagnostics=self._diagnostics,
        )

    def discover(self, timeout_ms: int) -> list[DiscoveredServer]:
        deadline = Deadline(timeout_ms, self._poll_interval_ms)
        try:
            zc = self._zeroconf_factory()
        except OSError as e:
            raise DiscoveryError(f"Cannot open multicast session: {e}") from e

        events: queue.Queue = queue.Queue()

        def on_service_state_change(zeroconf, service_type, name, state_change):
            # Browser thread: hand the event over, resolve on the caller's thread.
            events.put((service_type, name, state_change))

        found: dict[str, list[DiscoveredServer]] = {t: [] for t in self._service_types}
        seen: dict[str, set] = {t: set() for t in self._service_types}
        browser = None
        try:
            browser = self._browser_factory(
                zc, list(self._service_types), handlers=[on_service_state_change]
            )
            while not deadline.expired():
                try:
                    service_type, name, state_change = events.get(timeout=deadline.next_wait())
                except queue.Empty:
                    continue
                if state_change not in _RESOLVABLE:
                    continue
                service_type = normalize_service_type(service_type)
                if service_type not in seen or name in seen[service_type]:
                    continue
                server = self._resolve(zc, service_type, name, deadline)
                if server is None:
                    continue
                seen[service_type].add(name)
                found[service_type].append(server)
                logger.info(
                    f"Resolved {server.instance_name} ({service_type}) at "
                    f"{server.hostname}:{server.port}"
                )
        finally:
            if browser is not None:
                browser.cancel()
            zc.close()

        merged = [server for t in self._service_types for server in found[t]]
        return dedupe_by_endpoint(merged)

    def _resolve(
        self, zc, service_type: str, name: str, deadline: Deadline
    ) -> Optional[DiscoveredServer]:
        """Resolve one instance; incomplete resolutions are rejected."""
        wait_ms = int(min(deadline.remaining() * 1000, self._resolve_timeout_ms))
        if wait_ms <= 0:
            return None
        try:
            info = zc.get_service_info(service_type, name, timeout=wait_ms)
        except (BadTypeInNameException, ValueError) as e:
            logger.debug(f"Invalid mDNS name {name}: {e}")
            info = None

        if info is None or not info.port or not info.server:
            self._diagnostics.record("resolution_rejected", name)
            return None

        addresses = sorted(set(info.parsed_addresses(IPVersion.V4Only)), key=_ipv4_sort_key)
        hostname = info.server
        return DiscoveredServer(
            instance_name=instance_name_from_fullname(info.name or name, service_type),
            service_type=service_type,
            hostname=hostname,
            ip_v4=tuple(addresses) or (hostname,),
            port=info.port,
        )

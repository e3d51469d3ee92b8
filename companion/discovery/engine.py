"""
Discovery engine - picks one strategy by platform capability and runs
deadline-bounded discovery passes on demand.

No state is shared between calls: every pass opens and releases its own
browse session or socket, so concurrent calls are safe.
"""

import logging
import time
from typing import Optional

from companion.shared.config import AppConfig, DiscoveryStrategyKind
from companion.shared.constants import DEFAULT_DISCOVERY_TIMEOUT_MS, MAX_DISCOVERY_TIMEOUT_MS
from companion.shared.diagnostics import Diagnostics
from companion.shared.errors import UnsupportedPlatformError
from companion.shared.interfaces import IDiscoveryStrategy
from companion.shared.models import DiscoveredServer

from .broadcast import BroadcastDiscoveryStrategy
from .common import dedupe_by_endpoint
from .mdns import MdnsDiscoveryStrategy

logger = logging.getLogger(__name__)


class DiscoveryEngine:
    """Runs discovery through a single strategy chosen at startup."""

    def __init__(
        self,
        strategy: IDiscoveryStrategy,
        *,
        default_timeout_ms: int = DEFAULT_DISCOVERY_TIMEOUT_MS,
        max_timeout_ms: int = MAX_DISCOVERY_TIMEOUT_MS,
    ):
        self._strategy = strategy
        self._default_timeout_ms = default_timeout_ms
        self._max_timeout_ms = max_timeout_ms

    @property
    def strategy_name(self) -> str:
        return self._strategy.name

    def resolve_timeout(self, timeout_ms: Optional[int]) -> int:
        """None -> default; otherwise must be positive and is clamped to the max."""
        if timeout_ms is None:
            return self._default_timeout_ms
        if timeout_ms <= 0:
            raise ValueError("timeout_ms must be > 0")
        return min(timeout_ms, self._max_timeout_ms)

    def discover(self, timeout_ms: Optional[int] = None) -> list[DiscoveredServer]:
        """Deduplicated servers found within the window; [] is not an error."""
        timeout = self.resolve_timeout(timeout_ms)
        started = time.monotonic()
        servers = dedupe_by_endpoint(self._strategy.discover(timeout))
        elapsed_ms = (time.monotonic() - started) * 1000
        logger.info(
            f"Discovery ({self._strategy.name}) found {len(servers)} server(s) "
            f"in {elapsed_ms:.0f} ms"
        )
        return servers

    def browse(self, service_type: str, timeout_ms: Optional[int] = None) -> list[DiscoveredServer]:
        """Browse one arbitrary mDNS service type (multicast platforms only)."""
        if not isinstance(self._strategy, MdnsDiscoveryStrategy):
            raise UnsupportedPlatformError("mDNS browsing", self._strategy.name)
        if not service_type or not service_type.strip():
            raise ValueError("service_type is required")
        timeout = self.resolve_timeout(timeout_ms)
        return self._strategy.with_service_types([service_type]).discover(timeout)


def create_strategy(
    config: AppConfig, diagnostics: Optional[Diagnostics] = None
) -> IDiscoveryStrategy:
    """Strategy for the configured platform: mDNS where multicast works, else broadcast."""
    discovery = config.discovery
    if config.discovery_strategy is DiscoveryStrategyKind.MDNS:
        return MdnsDiscoveryStrategy(
            discovery.service_types,
            poll_interval_ms=discovery.poll_interval_ms,
            diagnostics=diagnostics,
        )
    return BroadcastDiscoveryStrategy(
        port=discovery.broadcast_port,
        broadcast_addrs=discovery.broadcast_addrs,
        default_server_port=discovery.default_server_port,
        service_type=discovery.service_type,
        poll_interval_ms=discovery.poll_interval_ms,
        diagnostics=diagnostics,
    )


def create_discovery_engine(
    config: AppConfig, diagnostics: Optional[Diagnostics] = None
) -> DiscoveryEngine:
    strategy = create_strategy(config, diagnostics)
    logger.info(f"Discovery strategy: {strategy.name} (platform={config.platform.value})")
    return DiscoveryEngine(
        strategy,
        default_timeout_ms=config.discovery.default_timeout_ms,
        max_timeout_ms=config.discovery.max_timeout_ms,
    )

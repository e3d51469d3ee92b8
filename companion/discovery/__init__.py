"""
Service discovery for the companion host.

Two interchangeable strategies find Nascraft servers on the local network:
  - mDNS browsing where multicast is available
  - a UDP broadcast probe where the platform restricts multicast

DiscoveryEngine selects one at startup from the platform capability flags.
"""

from companion.discovery.broadcast import BroadcastDiscoveryStrategy
from companion.discovery.engine import DiscoveryEngine, create_discovery_engine
from companion.discovery.mdns import MdnsDiscoveryStrategy

__all__ = [
    "BroadcastDiscoveryStrategy",
    "DiscoveryEngine",
    "MdnsDiscoveryStrategy",
    "create_discovery_engine",
]

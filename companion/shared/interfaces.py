"""
Abstract interfaces (Ports) for the background services.
Components depend on these abstractions so hosts and tests can swap back-ends.
"""

from abc import ABC, abstractmethod

from .models import DiscoveredServer


class IDiscoveryStrategy(ABC):
    """Interface for one way of finding service endpoints on the network."""

    name: str = "abstract"

    @abstractmethod
    def discover(self, timeout_ms: int) -> list[DiscoveredServer]:
        """Run a single deadline-bounded discovery pass.

        Returns whatever was found before the deadline; an empty list is a
        valid outcome. Implementations must release every network resource
        they open before returning, including on error paths.
        """


class INotifier(ABC):
    """Interface for pushing named events towards the UI layer."""

    @abstractmethod
    def emit(self, name: str, payload: str) -> bool:
        """Deliver one notification. Returns False if it was dropped.

        Called from watcher threads; must never block.
        """

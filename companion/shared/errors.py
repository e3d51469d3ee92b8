"""
Exception taxonomy for the background services.

Configuration and path problems, unsupported platforms and transport
failures are reported to the immediate caller. None of them is fatal
to the host process.
"""


class CompanionError(Exception):
    """Base class for all errors raised by the services layer."""


class LogStorageError(CompanionError):
    """The log directory or log file could not be created, opened or read."""


class WatchRegistrationError(CompanionError):
    """A directory could not be registered with the filesystem watcher."""

    def __init__(self, path: str, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Failed to watch {path}: {reason}")


class UnsupportedPlatformError(CompanionError):
    """A desktop-only capability was invoked on a platform without it."""

    def __init__(self, capability: str, platform: str):
        self.capability = capability
        self.platform = platform
        super().__init__(f"{capability} is not supported on this platform ({platform})")


class DiscoveryError(CompanionError):
    """The discovery transport could not be opened."""

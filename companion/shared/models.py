"""
Domain models for the background services.
Pure data classes with no external dependencies.
"""

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional


def now_ms() -> int:
    """Current wall-clock time as integer epoch milliseconds."""
    return time.time_ns() // 1_000_000


class LogLevel(Enum):
    """Levels written by the services themselves."""
    INFO = "INFO"
    WARN = "WARN"
    ERROR = "ERROR"

    @classmethod
    def web(cls, level: str) -> str:
        """Level tag for an entry injected by the UI layer, e.g. ``WEB:DEBUG``."""
        # Control characters dropped: one entry stays one line.
        printable = "".join(ch for ch in (level or "") if ch.isprintable())
        normalized = printable.strip().upper() or cls.INFO.value
        return f"WEB:{normalized}"


def _one_line(text: str) -> str:
    return text.replace("\r", "\\r").replace("\n", "\\n")


@dataclass(frozen=True)
class LogLine:
    """One immutable entry of the application log."""
    timestamp_ms: int
    level: str
    message: str

    @classmethod
    def create(cls, level, message: str, timestamp_ms: Optional[int] = None) -> "LogLine":
        level_str = level.value if isinstance(level, LogLevel) else str(level)
        return cls(
            timestamp_ms=now_ms() if timestamp_ms is None else timestamp_ms,
            level=level_str,
            message=message,
        )

    def render(self) -> str:
        """Serialize as ``<epoch_ms> [<LEVEL>] <message>`` on a single line."""
        return f"{self.timestamp_ms} [{_one_line(self.level)}] {_one_line(self.message)}"


@dataclass(frozen=True)
class DiscoveredServer:
    """A service endpoint found during one discovery call."""
    instance_name: str
    service_type: str
    hostname: str
    ip_v4: tuple = ()
    port: int = 0

    @property
    def endpoint_key(self) -> tuple:
        return (self.hostname, self.port)

    def to_dict(self) -> dict:
        return {
            "instance_name": self.instance_name,
            "service_type": self.service_type,
            "hostname": self.hostname,
            "ip_v4": list(self.ip_v4),
            "port": self.port,
        }


@dataclass(frozen=True)
class Notification:
    """A named event pushed towards the UI layer."""
    name: str
    payload: str
    timestamp_ms: int = field(default_factory=now_ms)

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "payload": self.payload,
            "timestamp_ms": self.timestamp_ms,
        }

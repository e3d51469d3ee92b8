"""
Centralized configuration for the background services.
Uses environment variables (optionally from a .env file) with safe defaults.
"""

import os
import sys
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from dotenv import load_dotenv

from .constants import (
    DEFAULT_APP_NAME,
    DEFAULT_DISCOVERY_TIMEOUT_MS,
    DEFAULT_SERVER_PORT,
    DEFAULT_TAIL_BYTES,
    DISCOVERY_PORT,
    FILE_CREATED_EVENT,
    GENERIC_SERVICE_TYPE,
    LIMITED_BROADCAST_ADDR,
    LOG_DIR_NAME,
    LOG_MAX_BYTES,
    MAX_DISCOVERY_TIMEOUT_MS,
    NASCRAFT_SERVICE_TYPE,
    POLL_INTERVAL_MS,
)


class PlatformKind(Enum):
    """Build targets the host application runs on."""
    DESKTOP = "desktop"
    ANDROID = "android"
    IOS = "ios"

    @property
    def is_mobile(self) -> bool:
        return self is not PlatformKind.DESKTOP


class DiscoveryStrategyKind(Enum):
    """Which discovery transport to use."""
    MDNS = "mdns"
    BROADCAST = "broadcast"


def detect_platform() -> PlatformKind:
    """Best guess of the running platform when COMPANION_PLATFORM is unset."""
    if sys.platform == "ios":
        return PlatformKind.IOS
    if sys.platform == "android" or "ANDROID_ROOT" in os.environ:
        return PlatformKind.ANDROID
    return PlatformKind.DESKTOP


def default_data_dir(app_name: str = DEFAULT_APP_NAME) -> str:
    """Per-user application data directory for the current OS."""
    if sys.platform == "win32":
        base = os.environ.get("APPDATA") or os.path.expanduser("~\\AppData\\Roaming")
    elif sys.platform == "darwin":
        base = os.path.expanduser("~/Library/Application Support")
    else:
        base = os.environ.get("XDG_DATA_HOME") or os.path.expanduser("~/.local/share")
    return os.path.join(base, app_name)


@dataclass(frozen=True)
class LogConfig:
    """Application log file configuration."""
    app_name: str = DEFAULT_APP_NAME
    data_dir: str = ""  # empty = per-user default
    max_bytes: int = LOG_MAX_BYTES
    default_tail_bytes: int = DEFAULT_TAIL_BYTES

    @property
    def log_file_path(self) -> str:
        data_dir = self.data_dir or default_data_dir(self.app_name)
        return os.path.join(data_dir, LOG_DIR_NAME, f"{self.app_name}.log")


@dataclass(frozen=True)
class DiscoveryConfig:
    """Service discovery configuration shared by both strategies."""
    service_type: str = NASCRAFT_SERVICE_TYPE
    fallback_service_type: str = GENERIC_SERVICE_TYPE
    include_fallback: bool = False
    default_timeout_ms: int = DEFAULT_DISCOVERY_TIMEOUT_MS
    max_timeout_ms: int = MAX_DISCOVERY_TIMEOUT_MS
    poll_interval_ms: int = POLL_INTERVAL_MS
    broadcast_port: int = DISCOVERY_PORT
    broadcast_addrs: tuple = (LIMITED_BROADCAST_ADDR,)
    default_server_port: int = DEFAULT_SERVER_PORT
    strategy_override: Optional[DiscoveryStrategyKind] = None

    @property
    def service_types(self) -> tuple:
        if self.include_fallback and self.fallback_service_type:
            return (self.service_type, self.fallback_service_type)
        return (self.service_type,)


@dataclass(frozen=True)
class WatchConfig:
    """Directory watcher configuration."""
    event_name: str = FILE_CREATED_EVENT
    initial_dirs: tuple = ()


@dataclass(frozen=True)
class AppConfig:
    """Root application configuration - assembled from environment."""
    platform: PlatformKind = PlatformKind.DESKTOP
    log: LogConfig = field(default_factory=LogConfig)
    discovery: DiscoveryConfig = field(default_factory=DiscoveryConfig)
    watch: WatchConfig = field(default_factory=WatchConfig)
    api_host: str = "127.0.0.1"
    api_port: int = 8765
    log_level: str = "INFO"
    environment: str = "production"

    @property
    def supports_fs_watch(self) -> bool:
        return not self.platform.is_mobile

    @property
    def discovery_strategy(self) -> DiscoveryStrategyKind:
        if self.discovery.strategy_override is not None:
            return self.discovery.strategy_override
        # iOS restricts multicast to entitled apps; broadcast still works there.
        if self.platform is PlatformKind.IOS:
            return DiscoveryStrategyKind.BROADCAST
        return DiscoveryStrategyKind.MDNS

    @property
    def supports_multicast(self) -> bool:
        return self.discovery_strategy is DiscoveryStrategyKind.MDNS


def _split_csv(value: str) -> tuple:
    return tuple(part.strip() for part in value.split(",") if part.strip())


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.environ.get(name, str(default)))
    except ValueError:
        return default  # Fail safe


def _env_positive_int(name: str, default: int) -> int:
    value = _env_int(name, default)
    return value if value > 0 else default


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def load_config() -> AppConfig:
    """
    Load configuration from environment variables.
    Safe defaults are used when env vars are not set or cannot be parsed.
    """
    load_dotenv()  # Load .env file if present

    platform_str = os.environ.get("COMPANION_PLATFORM", "").strip().lower()
    try:
        platform = PlatformKind(platform_str) if platform_str else detect_platform()
    except ValueError:
        platform = detect_platform()

    log = LogConfig(
        app_name=os.environ.get("COMPANION_APP_NAME", DEFAULT_APP_NAME),
        data_dir=os.environ.get("COMPANION_DATA_DIR", ""),
        max_bytes=_env_positive_int("LOG_MAX_BYTES", LOG_MAX_BYTES),
    )

    strategy_str = os.environ.get("DISCOVERY_STRATEGY", "").strip().lower()
    try:
        strategy_override = DiscoveryStrategyKind(strategy_str) if strategy_str else None
    except ValueError:
        strategy_override = None

    broadcast_addrs = _split_csv(os.environ.get("DISCOVERY_BROADCAST_ADDRS", ""))
    discovery = DiscoveryConfig(
        service_type=os.environ.get("DISCOVERY_SERVICE_TYPE", NASCRAFT_SERVICE_TYPE),
        fallback_service_type=os.environ.get(
            "DISCOVERY_FALLBACK_SERVICE_TYPE", GENERIC_SERVICE_TYPE
        ),
        include_fallback=_env_bool("DISCOVERY_INCLUDE_FALLBACK", False),
        default_timeout_ms=min(
            _env_positive_int("DISCOVERY_TIMEOUT_MS", DEFAULT_DISCOVERY_TIMEOUT_MS),
            MAX_DISCOVERY_TIMEOUT_MS,
        ),
        poll_interval_ms=_env_positive_int("DISCOVERY_POLL_MS", POLL_INTERVAL_MS),
        broadcast_port=_env_int("DISCOVERY_PORT", DISCOVERY_PORT),
        broadcast_addrs=broadcast_addrs or (LIMITED_BROADCAST_ADDR,),
        strategy_override=strategy_override,
    )

    watch = WatchConfig(
        initial_dirs=_split_csv(os.environ.get("WATCH_DIRS", "")),
    )

    return AppConfig(
        platform=platform,
        log=log,
        discovery=discovery,
        watch=watch,
        api_host=os.environ.get("API_HOST", "127.0.0.1"),
        api_port=_env_int("API_PORT", 8765),
        log_level=os.environ.get("LOG_LEVEL", "INFO").upper(),
        environment=os.environ.get("ENVIRONMENT", "production"),
    )

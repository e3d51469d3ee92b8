"""
Application context - the explicitly constructed set of services a host
(the API, a test) works with. Nothing here is a process-wide singleton.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from companion.discovery.engine import DiscoveryEngine, create_discovery_engine
from companion.shared.app_log import RotatingFileLogger
from companion.shared.config import AppConfig
from companion.shared.diagnostics import Diagnostics, DiagnosticCallback
from companion.shared.errors import CompanionError
from companion.watcher.dir_watcher import WatchSetReconciler
from companion.watcher.notifications import QueueNotifier

logger = logging.getLogger(__name__)


@dataclass
class AppContext:
    config: AppConfig
    diagnostics: Diagnostics
    file_logger: RotatingFileLogger
    notifier: QueueNotifier
    reconciler: WatchSetReconciler
    discovery: DiscoveryEngine

    def apply_initial_watch_dirs(self) -> None:
        """Reconcile WATCH_DIRS once at startup; failures are logged, not raised."""
        dirs = self.config.watch.initial_dirs
        if not dirs or not self.reconciler.supported:
            return
        try:
            self.reconciler.update_watch_dirs(dirs)
        except CompanionError as e:
            logger.error(f"Initial watch directories rejected: {e}")

    def close(self) -> None:
        self.reconciler.close()


def build_context(
    config: AppConfig, diagnostic_callback: Optional[DiagnosticCallback] = None
) -> AppContext:
    """Wire up every service for one host process (or one test)."""
    diagnostics = Diagnostics(diagnostic_callback)
    file_logger = RotatingFileLogger(
        config.log.log_file_path,
        max_bytes=config.log.max_bytes,
        diagnostics=diagnostics,
    )
    notifier = QueueNotifier(diagnostics=diagnostics)
    reconciler = WatchSetReconciler(
        notifier,
        supported=config.supports_fs_watch,
        platform_name=config.platform.value,
        event_name=config.watch.event_name,
        diagnostics=diagnostics,
    )
    return AppContext(
        config=config,
        diagnostics=diagnostics,
        file_logger=file_logger,
        notifier=notifier,
        reconciler=reconciler,
        discovery=create_discovery_engine(config, diagnostics),
    )

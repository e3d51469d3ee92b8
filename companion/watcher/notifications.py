"""
In-memory notification channel between watcher threads and the UI layer.
"""

import logging
import queue
from typing import Optional

from companion.shared.constants import MAX_NOTIFICATION_QUEUE_SIZE
from companion.shared.diagnostics import Diagnostics
from companion.shared.interfaces import INotifier
from companion.shared.models import Notification

logger = logging.getLogger(__name__)


class QueueNotifier(INotifier):
    """Bounded, thread-safe FIFO of notifications. emit() never blocks."""

    def __init__(
        self,
        maxsize: int = MAX_NOTIFICATION_QUEUE_SIZE,
        diagnostics: Optional[Diagnostics] = None,
    ):
        self._queue: queue.Queue[Notification] = queue.Queue(maxsize=maxsize)
        self._diagnostics = diagnostics or Diagnostics()

    def emit(self, name: str, payload: str) -> bool:
        try:
            self._queue.put_nowait(Notification(name=name, payload=payload))
            return True
        except queue.Full:
            logger.warning(f"Notification queue full, dropping {name}: {payload}")
            self._diagnostics.record("notification_dropped", payload)
            return False

    def drain(self, max_items: Optional[int] = None) -> list[Notification]:
        """Remove and return pending notifications in emission order."""
        drained = []
        while max_items is None or len(drained) < max_items:
            try:
                drained.append(self._queue.get_nowait())
            except queue.Empty:
                break
        return drained

    def get(self, timeout: float) -> Optional[Notification]:
        """Wait up to timeout seconds for the next notification."""
        try:
            return self._queue.get(timeout=timeout)
        except queue.Empty:
            return None

    def pending(self) -> int:
        return self._queue.qsize()

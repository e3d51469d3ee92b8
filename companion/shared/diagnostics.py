"""
Diagnostics - makes best-effort error swallowing observable.

Components that deliberately ignore an error (a failed unwatch, a malformed
datagram, a dropped log write) record it here instead of discarding it
silently. Tests assert on the counters; hosts may attach a callback.
"""

import logging
from collections import Counter
from threading import Lock
from typing import Callable, Optional

logger = logging.getLogger(__name__)

DiagnosticCallback = Callable[[str, str], None]


class Diagnostics:
    """Thread-safe counter of swallowed errors, keyed by kind."""

    def __init__(self, callback: Optional[DiagnosticCallback] = None):
        self._callback = callback
        self._counts: Counter = Counter()
        self._lock = Lock()

    def record(self, kind: str, detail: str = "") -> None:
        with self._lock:
            self._counts[kind] += 1
        if self._callback is None:
            return
        try:
            self._callback(kind, detail)
        except Exception as e:
            logger.warning(f"Diagnostic callback failed for {kind}: {e}")

    def count(self, kind: str) -> int:
        with self._lock:
            return self._counts[kind]

    def snapshot(self) -> dict:
        with self._lock:
            return dict(self._counts)

    def reset(self) -> None:
        with self._lock:
            self._counts.clear()

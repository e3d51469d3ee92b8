"""
Directory watcher - keeps a set of directories under live observation and
reports newly created paths.

One long-lived watchdog Observer serves every directory. update_watch_dirs()
converges the watched set onto the requested set by diffing the two, so
repeating a request performs no OS calls at all.
"""

import logging
import os
from threading import Lock
from typing import Callable, Iterable, Optional

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from companion.shared.constants import FILE_CREATED_EVENT
from companion.shared.diagnostics import Diagnostics
from companion.shared.errors import UnsupportedPlatformError, WatchRegistrationError
from companion.shared.interfaces import INotifier

logger = logging.getLogger(__name__)


def normalize_watch_dirs(dirs: Iterable[str]) -> set[str]:
    """Drop blank entries and deduplicate the rest as absolute, normalized paths."""
    desired = set()
    for entry in dirs:
        if entry is None or not str(entry).strip():
            continue
        desired.add(os.path.abspath(os.path.expanduser(str(entry).strip())))
    return desired


def _is_under(path: str, root: str) -> bool:
    return path.startswith(root.rstrip(os.sep) + os.sep)


def _require_dir(path: str) -> None:
    if not os.path.isdir(path):
        raise WatchRegistrationError(path, "not an existing directory")


class CreatedPathHandler(FileSystemEventHandler):
    """Forwards creation events to the notifier; every other kind is ignored."""

    def __init__(
        self,
        notifier: INotifier,
        event_name: str = FILE_CREATED_EVENT,
        diagnostics: Optional[Diagnostics] = None,
    ):
        self._notifier = notifier
        self._event_name = event_name
        self._diagnostics = diagnostics or Diagnostics()

    def dispatch(self, event: FileSystemEvent) -> None:
        # Runs on the observer thread; an exception here would kill it.
        try:
            super().dispatch(event)
        except Exception as e:
            logger.error(f"Watcher callback error for {event.src_path}: {e}")
            self._diagnostics.record("watcher_callback_failed", str(e))

    def on_created(self, event: FileSystemEvent) -> None:
        path = os.fsdecode(event.src_path)
        logger.info(f"New path detected: {path}")
        self._notifier.emit(self._event_name, path)


class WatchSetReconciler:
    """
    Owns the Observer and the set of watched directories.

    Both are guarded by one lock so concurrent reconciliations serialize.
    The observer thread only talks to the notifier, never to the watched set.
    """

    def __init__(
        self,
        notifier: INotifier,
        *,
        supported: bool = True,
        platform_name: str = "desktop",
        event_name: str = FILE_CREATED_EVENT,
        observer_factory: Callable[[], object] = Observer,
        diagnostics: Optional[Diagnostics] = None,
    ):
        self._supported = supported
        self._platform_name = platform_name
        self._observer_factory = observer_factory
        self._diagnostics = diagnostics or Diagnostics()
        self._handler = CreatedPathHandler(notifier, event_name, self._diagnostics)
        self._observer = None
        self._watches: dict[str, object] = {}  # path -> ObservedWatch, None if covered by an ancestor
        self._lock = Lock()

    @property
    def supported(self) -> bool:
        return self._supported

    @property
    def watched_dirs(self) -> frozenset:
        with self._lock:
            return frozenset(self._watches)

    def update_watch_dirs(self, desired_dirs: Iterable[str]) -> None:
        """
        Converge the watched set onto desired_dirs.

        Removals are best-effort. The first failed addition aborts the call
        with WatchRegistrationError; additions made before it stay in place.

        A directory nested under another watched directory is already covered
        by that recursive watch and gets no watch of its own, so each created
        path is reported once.
        """
        if not self._supported:
            raise UnsupportedPlatformError("Directory watching", self._platform_name)

        desired = normalize_watch_dirs(desired_dirs)

        with self._lock:
            observer = self._ensure_observer()

            removed = set(self._watches) - desired
            for path in sorted(removed):
                watch = self._watches.pop(path)
                if watch is not None:
                    self._unschedule(observer, path, watch)
                logger.info(f"Stopped watching directory: {path}")

            # Nested paths whose covering ancestor was just removed.
            for path in sorted(self._watches):
                if self._watches[path] is None and not self._is_covered(path):
                    try:
                        self._watches[path] = self._schedule(observer, path)
                    except WatchRegistrationError:
                        del self._watches[path]
                        raise

            added = desired - set(self._watches)
            for path in sorted(added):
                if self._is_covered(path):
                    _require_dir(path)
                    self._watches[path] = None
                else:
                    self._watches[path] = self._schedule(observer, path)
                    self._demote_descendants(observer, path)
                logger.info(f"Watching directory: {path}")

    def close(self) -> None:
        """Stop the observer thread and forget every watch."""
        with self._lock:
            observer, self._observer = self._observer, None
            self._watches.clear()
        if observer is None:
            return
        try:
            observer.stop()
            observer.join(timeout=2)
        except Exception as e:
            logger.debug(f"Watcher stop error: {e}")
        logger.info("Directory watcher stopped")

    def _ensure_observer(self):
        """Create and start the shared observer on first use. Caller holds the lock."""
        if self._observer is None:
            observer = self._observer_factory()
            observer.start()
            self._observer = observer
            logger.info("Directory watcher started")
        return self._observer

    def _is_covered(self, path: str) -> bool:
        """True if a strict ancestor of path is in the watched set. Caller holds the lock."""
        return any(_is_under(path, other) for other in self._watches if other != path)

    def _demote_descendants(self, observer, root: str) -> None:
        """Drop the own watches of paths now covered by root."""
        for path, watch in self._watches.items():
            if watch is not None and path != root and _is_under(path, root):
                self._unschedule(observer, path, watch)
                self._watches[path] = None

    def _unschedule(self, observer, path: str, watch) -> None:
        try:
            observer.unschedule(watch)
        except Exception as e:
            logger.debug(f"Unwatch failed for {path}: {e}")
            self._diagnostics.record("unwatch_failed", f"{path}: {e}")

    def _schedule(self, observer, path: str):
        _require_dir(path)
        try:
            return observer.schedule(self._handler, path, recursive=True)
        except (OSError, ValueError) as e:
            raise WatchRegistrationError(path, str(e)) from e

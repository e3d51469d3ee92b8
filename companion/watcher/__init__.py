"""Directory watching and the notification channel it feeds."""

from companion.watcher.dir_watcher import WatchSetReconciler
from companion.watcher.notifications import QueueNotifier

__all__ = ["QueueNotifier", "WatchSetReconciler"]

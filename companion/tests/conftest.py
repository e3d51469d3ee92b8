"""
Shared test fixtures for the companion services test suite.
"""

import os
import socket
import sys
import tempfile
import time

import pytest

# Ensure companion is importable
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", ".."))

from companion.shared.config import AppConfig, LogConfig, PlatformKind
from companion.shared.diagnostics import Diagnostics
from companion.shared.app_log import RotatingFileLogger
from companion.shared.interfaces import IDiscoveryStrategy
from companion.watcher.notifications import QueueNotifier


@pytest.fixture
def tmp_dir():
    with tempfile.TemporaryDirectory() as d:
        yield os.path.realpath(d)


@pytest.fixture
def diagnostics():
    return Diagnostics()


@pytest.fixture
def log_path(tmp_dir):
    return os.path.join(tmp_dir, "data", "logs", "companion-test.log")


@pytest.fixture
def file_logger(log_path, diagnostics):
    return RotatingFileLogger(log_path, diagnostics=diagnostics)


@pytest.fixture
def notifier(diagnostics):
    return QueueNotifier(diagnostics=diagnostics)


@pytest.fixture
def app_config(tmp_dir):
    return AppConfig(
        platform=PlatformKind.DESKTOP,
        log=LogConfig(app_name="companion-test", data_dir=os.path.join(tmp_dir, "data")),
        log_level="INFO",
        environment="test",
    )


@pytest.fixture
def watch_dirs(tmp_dir):
    """Three real directories that can be watched."""
    paths = []
    for name in ("alpha", "beta", "gamma"):
        path = os.path.join(tmp_dir, "watched", name)
        os.makedirs(path)
        paths.append(path)
    return paths


# ═══════════════════════════════════════════════════════════════
# FAKE BACK-ENDS
# ═══════════════════════════════════════════════════════════════

class FakeWatch:
    def __init__(self, path, recursive):
        self.path = path
        self.is_recursive = recursive


class FakeObserver:
    """Stands in for watchdog's Observer and records every OS-level call."""

    def __init__(self):
        self.started = 0
        self.stopped = False
        self.scheduled: list[str] = []
        self.unscheduled: list[str] = []
        self.fail_unschedule: set[str] = set()
        self.fail_schedule: set[str] = set()

    def start(self):
        self.started += 1

    def stop(self):
        self.stopped = True

    def join(self, timeout=None):
        return None

    def schedule(self, handler, path, recursive=False):
        if path in self.fail_schedule:
            raise OSError(f"inotify watch limit reached for {path}")
        self.scheduled.append(path)
        return FakeWatch(path, recursive)

    def unschedule(self, watch):
        self.unscheduled.append(watch.path)
        if watch.path in self.fail_unschedule:
            raise KeyError(watch.path)


@pytest.fixture
def fake_observer():
    return FakeObserver()


class FakeStrategy(IDiscoveryStrategy):
    """Returns a canned result and remembers the timeouts it was given."""

    name = "fake"

    def __init__(self, servers=None, error=None):
        self.servers = list(servers or [])
        self.error = error
        self.calls: list[int] = []

    def discover(self, timeout_ms):
        self.calls.append(timeout_ms)
        if self.error is not None:
            raise self.error
        return list(self.servers)


class FakeSocket:
    """A UDP socket that replays scripted datagrams, then times out."""

    def __init__(self, replies=None, send_error=None, recv_error=None):
        self.replies = list(replies or [])
        self.send_error = send_error
        self.recv_error = recv_error
        self.sent: list[tuple] = []
        self.timeout = None
        self.closed = False

    def sendto(self, data, addr):
        if self.send_error is not None:
            raise self.send_error
        self.sent.append((data, addr))
        return len(data)

    def settimeout(self, value):
        self.timeout = value

    def recvfrom(self, bufsize):
        if self.recv_error is not None:
            raise self.recv_error
        if self.replies:
            return self.replies.pop(0)
        time.sleep(self.timeout or 0)
        raise socket.timeout("timed out")

    def close(self):
        self.closed = True

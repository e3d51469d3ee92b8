"""
Application log - size-capped, append-only text log that survives restarts.

Each entry is one UTF-8 line ``<epoch_ms> [<LEVEL>] <message>``. When a new
line would push the file past its cap the file is truncated to empty first;
old content is discarded, never archived.

The same file doubles as the process-wide sink for the standard ``logging``
module once install_log_sink() has been called.
"""

import logging
import os
from threading import Lock
from typing import Optional

from .constants import DEFAULT_TAIL_BYTES, LOG_MAX_BYTES
from .diagnostics import Diagnostics
from .errors import LogStorageError
from .models import LogLevel, LogLine

logger = logging.getLogger(__name__)


class RotatingFileLogger:
    """
    Thread-safe line sink with truncate-on-overflow.

    Every append runs in one critical section: create the parent directory,
    measure the file, truncate if the incoming line would overflow the cap,
    then append the line.
    """

    def __init__(
        self,
        log_path: str,
        max_bytes: int = LOG_MAX_BYTES,
        diagnostics: Optional[Diagnostics] = None,
    ):
        if max_bytes <= 0:
            raise ValueError("max_bytes must be > 0")
        self._log_path = log_path
        self._max_bytes = max_bytes
        self._diagnostics = diagnostics or Diagnostics()
        self._lock = Lock()

    @property
    def path(self) -> str:
        return self._log_path

    @property
    def max_bytes(self) -> int:
        return self._max_bytes

    @property
    def diagnostics(self) -> Diagnostics:
        return self._diagnostics

    def append_line(self, text: str) -> None:
        """Append one line. Raises LogStorageError if the file is unusable."""
        data = (text + "\n").encode("utf-8", errors="replace")
        with self._lock:
            parent = os.path.dirname(self._log_path)
            try:
                if parent:
                    os.makedirs(parent, exist_ok=True)
            except OSError as e:
                raise LogStorageError(f"Cannot create log directory {parent}: {e}") from e

            try:
                current = os.path.getsize(self._log_path)
            except FileNotFoundError:
                current = 0
            except OSError as e:
                raise LogStorageError(f"Cannot stat log file {self._log_path}: {e}") from e

            # Truncate-on-overflow: "wb" empties the file before the write.
            mode = "wb" if current + len(data) > self._max_bytes else "ab"
            try:
                with open(self._log_path, mode) as f:
                    f.write(data)
            except OSError as e:
                raise LogStorageError(f"Cannot write log file {self._log_path}: {e}") from e

    def append(self, level, message: str) -> None:
        """Append a LogLine stamped with the current time."""
        self.append_line(LogLine.create(level, message).render())

    def append_web(self, level: str, message: str) -> None:
        """Append an entry injected by the UI layer (level ``WEB:<LEVEL>``)."""
        self.append(LogLevel.web(level), message)

    def read_tail(self, max_bytes: Optional[int] = None) -> str:
        """
        Return up to the last max_bytes of the log, decoded lossily.
        The request is capped at the log's hard limit; a missing file reads as "".
        """
        if max_bytes is None:
            max_bytes = DEFAULT_TAIL_BYTES
        if max_bytes < 0:
            raise ValueError("max_bytes must be >= 0")
        wanted = min(max_bytes, self._max_bytes)

        with self._lock:
            try:
                with open(self._log_path, "rb") as f:
                    f.seek(0, os.SEEK_END)
                    length = f.tell()
                    f.seek(max(0, length - wanted))
                    data = f.read()
            except FileNotFoundError:
                return ""
            except OSError as e:
                raise LogStorageError(f"Cannot read log file {self._log_path}: {e}") from e

        return data.decode("utf-8", errors="replace")

    def log_info(self, fmt: str, *args) -> bool:
        return self._log(LogLevel.INFO, fmt, args)

    def log_warn(self, fmt: str, *args) -> bool:
        return self._log(LogLevel.WARN, fmt, args)

    def log_error(self, fmt: str, *args) -> bool:
        return self._log(LogLevel.ERROR, fmt, args)

    def _log(self, level: LogLevel, fmt: str, args: tuple) -> bool:
        """Format and append; a failed write is dropped, never raised."""
        try:
            message = fmt % args if args else fmt
        except (TypeError, ValueError):
            message = f"{fmt} {args!r}"
        try:
            self.append(level, message)
            return True
        except LogStorageError as e:
            # Not routed through `logging`: that would re-enter this file.
            self._diagnostics.record("log_write_failed", str(e))
            return False


def level_for_record(levelno: int) -> LogLevel:
    """Map a stdlib logging level onto the log file's level set."""
    if levelno >= logging.ERROR:
        return LogLevel.ERROR
    if levelno >= logging.WARNING:
        return LogLevel.WARN
    return LogLevel.INFO


class LogFileHandler(logging.Handler):
    """Routes standard ``logging`` records into a RotatingFileLogger."""

    def __init__(self, file_logger: RotatingFileLogger, level: int = logging.INFO):
        super().__init__(level)
        self._file_logger = file_logger

    @property
    def file_logger(self) -> RotatingFileLogger:
        return self._file_logger

    def emit(self, record: logging.LogRecord) -> None:
        try:
            message = f"{record.name}: {record.getMessage()}"
            if record.exc_info:
                message = f"{message}\n{logging.Formatter().formatException(record.exc_info)}"
            line = LogLine.create(
                level_for_record(record.levelno),
                message,
                timestamp_ms=int(record.created * 1000),
            )
            self._file_logger.append_line(line.render())
        except Exception:
            # Logging must never crash the caller.
            self.handleError(record)

    def handleError(self, record: logging.LogRecord) -> None:
        self._file_logger.diagnostics.record("log_write_failed", str(record.msg))


def install_log_sink(file_logger: RotatingFileLogger, level: int = logging.INFO) -> bool:
    """
    Attach a LogFileHandler for file_logger to the root logger.
    Only the first call per process has an effect; later calls return False.
    """
    root = logging.getLogger()
    for handler in root.handlers:
        if isinstance(handler, LogFileHandler):
            return False
    root.addHandler(LogFileHandler(file_logger, level))
    logger.info(f"Application log sink installed: {file_logger.path}")
    return True


def uninstall_log_sink() -> None:
    """Detach any LogFileHandler from the root logger."""
    root = logging.getLogger()
    for handler in list(root.handlers):
        if isinstance(handler, LogFileHandler):
            root.removeHandler(handler)

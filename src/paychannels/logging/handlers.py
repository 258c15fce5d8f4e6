"""Log handlers for paychannels.

Console, memory and file handlers for the paychannels logging system.
"""

import os
import sys
import threading
from typing import Any, Dict, List, Optional

from .core import LogEntry, LogHandler


def _default_line(entry: LogEntry) -> str:
    return f"{entry.timestamp} [{entry.level.value.upper()}] {entry.logger_name}: {entry.message}"


class FileHandler(LogHandler):
    """File log handler."""

    def __init__(self, filename: str, mode: str = "a", encoding: str = "utf-8"):
        super().__init__()
        self.filename = filename
        self.mode = mode
        self.encoding = encoding
        self.stream = None
        self._open()

    def _open(self) -> None:
        """Open file stream."""
        directory = os.path.dirname(self.filename)
        if directory:
            os.makedirs(directory, exist_ok=True)
        self.stream = open(self.filename, self.mode, encoding=self.encoding)

    def emit(self, entry: LogEntry) -> None:
        """Emit log entry to file."""
        with self._lock:
            if self.stream is None:
                self._open()
            formatted = self.formatter.format(entry) if self.formatter else entry.to_json()
            self.stream.write(formatted + "\n")
            self.stream.flush()

    def close(self) -> None:
        """Close handler."""
        with self._lock:
            if self.stream is not None:
                self.stream.close()
                self.stream = None


class ConsoleHandler(LogHandler):
    """Console log handler.

    Without an explicit stream the handler writes to whatever ``sys.stdout``
    is at emit time, so redirected or captured output keeps working.
    """

    def __init__(self, stream: Any = None):
        super().__init__()
        self.stream = stream

    def emit(self, entry: LogEntry) -> None:
        """Emit log entry to console."""
        with self._lock:
            stream = self.stream or sys.stdout
            formatted = self.formatter.format(entry) if self.formatter else _default_line(entry)
            stream.write(formatted + "\n")
            stream.flush()

    def close(self) -> None:
        """Close handler. Standard streams are left open."""
        with self._lock:
            if self.stream is not None and self.stream not in (sys.stdout, sys.stderr):
                self.stream.close()
            self.stream = None


class MemoryHandler(LogHandler):
    """Memory log handler with a bounded buffer."""

    def __init__(self, max_size: int = 1000):
        super().__init__()
        self.max_size = max_size
        self.buffer: List[Dict[str, Any]] = []

    def emit(self, entry: LogEntry) -> None:
        """Emit log entry to memory."""
        with self._lock:
            self.buffer.append(
                {
                    "timestamp": entry.timestamp,
                    "level": entry.level.value,
                    "message": entry.message,
                    "logger_name": entry.logger_name,
                    "extra": dict(entry.extra),
                    "formatted": self.formatter.format(entry)
                    if self.formatter
                    else _default_line(entry),
                }
            )

            if len(self.buffer) > self.max_size:
                self.buffer.pop(0)

    def get_logs(self, level: Optional[str] = None) -> List[Dict[str, Any]]:
        """Get logs from memory, optionally only those at one level."""
        with self._lock:
            if level is None:
                return self.buffer.copy()
            return [log for log in self.buffer if log["level"] == level]

    def clear_logs(self) -> None:
        """Clear all logs from memory."""
        with self._lock:
            self.buffer.clear()

    def close(self) -> None:
        """Close handler."""
        with self._lock:
            self.buffer.clear()

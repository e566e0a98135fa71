from __future__ import annotations

import copy
import json
import locale
import logging
import os
import platform
import socket
import sys
import tempfile
import threading
import traceback
from collections import deque
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Mapping

from .bundle import safe_json_clone
from .compression import compression_available

__all__ = [
    "BUNDLE_VERSION",
    "DEFAULT_LOG_CAPACITY",
    "NO_DESCRIPTION",
    "LogSink",
    "LogSinkHandler",
    "collect_info",
    "make_sample_logs",
]

BUNDLE_VERSION = "1.0"
DEFAULT_LOG_CAPACITY = 80
NO_DESCRIPTION = "(no description provided)"

_LEVEL_NAMES = (
    (logging.ERROR, "error"),
    (logging.WARNING, "warn"),
    (logging.INFO, "info"),
)


def _now_iso(moment: datetime | None = None) -> str:
    moment = moment or datetime.now(timezone.utc)
    return moment.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _stringify_safe(value: Any) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, BaseException):
        return f"{type(value).__name__}: {value}"
    return json.dumps(safe_json_clone(value), ensure_ascii=False)


class LogSink:
    """
    Bounded, thread-safe buffer of log entries for a bundle's ``logs`` field.

    Once ``capacity`` entries are held, each new entry drops the oldest one.
    Bundles receive :meth:`snapshot`, never the live buffer.
    """

    def __init__(self, capacity: int = DEFAULT_LOG_CAPACITY) -> None:
        if capacity < 1:
            raise ValueError("LogSink capacity must be at least 1")
        self._entries: deque[dict[str, Any]] = deque(maxlen=capacity)
        self._lock = threading.Lock()

    @property
    def capacity(self) -> int:
        return self._entries.maxlen or 0

    def push(self, level: str, *args: Any) -> dict[str, Any]:
        entry = {
            "level": level,
            "message": " ".join(_stringify_safe(arg) for arg in args),
            "args": [safe_json_clone(arg) for arg in args],
            "time": _now_iso(),
        }
        self.push_entry(entry)
        return entry

    def push_entry(self, entry: Mapping[str, Any]) -> None:
        cleaned = safe_json_clone(dict(entry))
        with self._lock:
            self._entries.append(cleaned)

    def snapshot(self) -> list[dict[str, Any]]:
        with self._lock:
            return copy.deepcopy(list(self._entries))

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


class LogSinkHandler(logging.Handler):
    """Route stdlib logging records into a LogSink."""

    def __init__(self, sink: LogSink, level: int = logging.NOTSET) -> None:
        super().__init__(level)
        self.sink = sink

    @staticmethod
    def _level_name(levelno: int) -> str:
        for threshold, name in _LEVEL_NAMES:
            if levelno >= threshold:
                return name
        return "debug"

    def emit(self, record: logging.LogRecord) -> None:
        try:
            entry: dict[str, Any] = {
                "level": self._level_name(record.levelno),
                "message": record.getMessage(),
                "logger": record.name,
                "source": record.pathname,
                "line": record.lineno,
                "time": _now_iso(datetime.fromtimestamp(record.created, tz=timezone.utc)),
            }
            if record.exc_info and record.exc_info[1] is not None:
                entry["stack"] = "".join(traceback.format_exception(*record.exc_info))
            self.sink.push_entry(entry)
        except Exception:
            self.handleError(record)


def _cwd() -> str | None:
    try:
        return str(Path.cwd())
    except OSError:
        return None


def _home() -> str | None:
    try:
        return str(Path.home())
    except (OSError, RuntimeError):
        return None


def _storage_info(cwd: str | None) -> dict[str, Any]:
    return {
        "home": _home(),
        "tempDir": tempfile.gettempdir(),
        "cwdWritable": os.access(cwd, os.W_OK) if cwd else False,
    }


def collect_info(
    user_error: str = "",
    *,
    sink: LogSink | None = None,
    now: datetime | None = None,
) -> dict[str, Any]:
    """
    Snapshot the current process and host into a bundle.

    Log entries come only from *sink*; nothing is read from global logging
    state.
    """
    local_now = (now or datetime.now(timezone.utc)).astimezone()
    cwd = _cwd()
    language, _ = locale.getlocale()
    return {
        "version": BUNDLE_VERSION,
        "timestamp": _now_iso(local_now),
        "localeTime": f"{local_now:%a %b %d %Y %H:%M:%S} {local_now.tzname() or ''}".strip(),
        "userError": (user_error or "").strip() or NO_DESCRIPTION,
        "host": {
            "hostname": socket.gethostname(),
            "system": platform.system(),
            "release": platform.release(),
            "machine": platform.machine(),
            "processor": platform.processor() or None,
        },
        "runtime": {
            "implementation": platform.python_implementation(),
            "version": platform.python_version(),
            "executable": sys.executable or None,
            "compression": compression_available(),
        },
        "process": {
            "pid": os.getpid(),
            "cwd": cwd,
            "argv": list(sys.argv),
            "cpuCount": os.cpu_count(),
        },
        "locale": {
            "language": language,
            "encoding": locale.getpreferredencoding(False),
            "filesystemEncoding": sys.getfilesystemencoding(),
        },
        "timezone": local_now.tzname(),
        "storage": _storage_info(cwd),
        "logs": sink.snapshot() if sink is not None else [],
    }


def make_sample_logs(sink: LogSink) -> None:
    sink.push("warn", "Sample warning created for TroubleCode demo.")
    sink.push("info", "Sample info log created for TroubleCode demo.")
    sink.push("error", RuntimeError("Sample error created for TroubleCode demo."))

"""Structured logging with console and file sinks.

Loggers are tagged (usually with a ``service`` key) and cached per service,
so every component of a dev session writes through the same configuration:

    log = Log.create({"service": "dev.tunnel"})
    log.info("starting a tunnel", {"port": 8787})

The console sink is what the developer watches during ``kumo dev``; the file
sink keeps one log per session (or ``dev.log`` when ``logging.devFile`` is set)
under the user's data directory.
"""

import json
import sys
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, Optional, TextIO

from ..core.global_paths import GlobalPath


class LogLevel(str, Enum):
    """Log severity levels."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARN = "WARN"
    ERROR = "ERROR"

    @property
    def priority(self) -> int:
        return _PRIORITY[self]

    @classmethod
    def parse(cls, value: str | None) -> "LogLevel":
        if value is None:
            return cls.INFO
        level = _LEVEL_NAMES.get(value.strip().lower())
        if level is None:
            raise ValueError(f"invalid log level: {value}")
        return level


_PRIORITY = {LogLevel.DEBUG: 0, LogLevel.INFO: 1, LogLevel.WARN: 2, LogLevel.ERROR: 3}

# "log" is the level name users know from the JavaScript console.
_LEVEL_NAMES = {
    "debug": LogLevel.DEBUG,
    "info": LogLevel.INFO,
    "log": LogLevel.INFO,
    "warn": LogLevel.WARN,
    "warning": LogLevel.WARN,
    "error": LogLevel.ERROR,
}


class LogFormat(str, Enum):
    """Log output format."""
    KV = "kv"
    JSON = "json"
    PRETTY = "pretty"

    @classmethod
    def parse(cls, value: str | None) -> "LogFormat":
        if value is None:
            return cls.PRETTY
        try:
            return cls(value.strip().lower())
        except ValueError:
            raise ValueError(f"invalid log format: {value}") from None


# Maximum number of timestamped session logs kept on disk.
KEEP_LOG_FILES = 10
SESSION_LOG_GLOB = "????-??-??T??????.log"

# Payload keys rendered by position rather than as key=value pairs.
_HEADER_KEYS = frozenset({"time", "delta_ms", "level", "msg"})


@dataclass
class _Sinks:
    level: LogLevel = LogLevel.INFO
    format: LogFormat = LogFormat.PRETTY
    console: bool = False
    file: bool = False
    path: Optional[Path] = None
    handle: Optional[TextIO] = None
    last_write: float = 0.0


_sinks = _Sinks(last_write=time.time())


def _describe_error(error: BaseException, depth: int = 0) -> str:
    text = str(error) or error.__class__.__name__
    if error.__cause__ is not None and depth < 10:
        text += " Caused by: " + _describe_error(error.__cause__, depth + 1)
    return text


def _plain(value: Any) -> Any:
    if isinstance(value, BaseException):
        return _describe_error(value)
    if value is None or isinstance(value, (dict, list, tuple, int, float, bool)):
        return value
    return str(value)


def _quote(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, (dict, list, tuple)):
        return json.dumps(value, ensure_ascii=False, separators=(",", ":"))
    text = str(value)
    if not text or "=" in text or any(ch.isspace() for ch in text):
        return json.dumps(text, ensure_ascii=False)
    return text


def _pairs(payload: Dict[str, Any], hidden: frozenset = frozenset()) -> str:
    return " ".join(
        f"{key}={_quote(value)}"
        for key, value in payload.items()
        if key not in _HEADER_KEYS and key not in hidden
    )


def _render_json(level: LogLevel, payload: Dict[str, Any]) -> str:
    return json.dumps(payload, ensure_ascii=False, separators=(",", ":"))


def _render_kv(level: LogLevel, payload: Dict[str, Any]) -> str:
    head = [
        str(payload["time"]),
        f"+{payload['delta_ms']}ms",
        f"level={payload['level']}",
        f"msg={_quote(payload['msg'])}",
    ]
    pairs = _pairs(payload)
    return " ".join(head + [pairs] if pairs else head)


def _render_pretty(level: LogLevel, payload: Dict[str, Any]) -> str:
    # Session output reads like the tool talking: no INFO label, no service tag.
    text = "" if payload["msg"] is None else str(payload["msg"])
    if level is not LogLevel.INFO:
        text = f"[{level.value}] {text}"
    pairs = _pairs(payload, hidden=frozenset({"service"}))
    return f"{text} ({pairs})" if pairs else text


_RENDERERS: Dict[LogFormat, Callable[[LogLevel, Dict[str, Any]], str]] = {
    LogFormat.JSON: _render_json,
    LogFormat.KV: _render_kv,
    LogFormat.PRETTY: _render_pretty,
}


class Logger:
    """Structured logger carrying a set of tags."""

    def __init__(self, tags: Optional[Dict[str, Any]] = None):
        self.tags = tags or {}

    def _payload(self, level: LogLevel, message: Any, extra: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        now = time.time()
        delta_ms = int((now - _sinks.last_write) * 1000)
        _sinks.last_write = now

        fields = {**self.tags, **(extra or {})}
        return {
            "time": datetime.now(timezone.utc).isoformat(timespec="seconds"),
            "delta_ms": delta_ms,
            "level": level.value.lower(),
            "msg": _plain(message),
            **{key: _plain(value) for key, value in fields.items() if value is not None},
        }

    def _emit(self, level: LogLevel, message: Any, extra: Optional[Dict[str, Any]]) -> None:
        if level.priority < _sinks.level.priority:
            return
        if not _sinks.console and _sinks.handle is None:
            return

        line = _RENDERERS[_sinks.format](level, self._payload(level, message, extra)) + "\n"
        if _sinks.console:
            sys.stderr.write(line)
            sys.stderr.flush()
        if _sinks.file and _sinks.handle is not None:
            _sinks.handle.write(line)
            _sinks.handle.flush()

    def debug(self, message: Any = None, extra: Optional[Dict[str, Any]] = None) -> None:
        self._emit(LogLevel.DEBUG, message, extra)

    def info(self, message: Any = None, extra: Optional[Dict[str, Any]] = None) -> None:
        self._emit(LogLevel.INFO, message, extra)

    def warn(self, message: Any = None, extra: Optional[Dict[str, Any]] = None) -> None:
        self._emit(LogLevel.WARN, message, extra)

    def error(self, message: Any = None, extra: Optional[Dict[str, Any]] = None) -> None:
        self._emit(LogLevel.ERROR, message, extra)


class Log:
    """Global logging interface and factory."""

    _loggers: Dict[str, Logger] = {}

    @classmethod
    def create(cls, tags: Optional[Dict[str, Any]] = None) -> Logger:
        """Create or retrieve a logger; loggers with a ``service`` tag are cached."""
        tags = tags or {}
        service = tags.get("service")
        if not isinstance(service, str) or not service:
            return Logger(tags=tags)

        logger = cls._loggers.get(service)
        if logger is None:
            logger = cls._loggers[service] = Logger(tags=tags)
        return logger

    @classmethod
    def configure(
        cls,
        *,
        level: LogLevel | None = None,
        format: LogFormat | None = None,
        console: bool | None = None,
        file: bool | None = None,
        dev: bool = False,
    ) -> None:
        """Configure the sinks. ``dev`` writes to a fixed ``dev.log`` instead of
        a timestamped session log."""
        if level is not None:
            _sinks.level = level
        if format is not None:
            _sinks.format = format
        if console is not None:
            _sinks.console = console
        _sinks.file = True if file is None else file

        cls.close()
        _sinks.path = None
        if not _sinks.file:
            return

        log_dir = Path(GlobalPath.log())
        log_dir.mkdir(parents=True, exist_ok=True)
        cls._cleanup_logs(log_dir)
        name = "dev.log" if dev else datetime.now().strftime("%Y-%m-%dT%H%M%S") + ".log"
        _sinks.path = log_dir / name
        _sinks.handle = _sinks.path.open("w", encoding="utf-8")

    @classmethod
    def file(cls) -> str:
        """Path of the current log file, or an empty string."""
        return str(_sinks.path) if _sinks.path else ""

    @classmethod
    def _cleanup_logs(cls, log_dir: Path) -> None:
        logs = sorted(log_dir.glob(SESSION_LOG_GLOB), key=lambda p: p.stat().st_mtime)
        for old in logs[: max(len(logs) - KEEP_LOG_FILES, 0)]:
            old.unlink(missing_ok=True)

    @classmethod
    def close(cls) -> None:
        """Close the log file handle if open."""
        if _sinks.handle is not None:
            _sinks.handle.close()
            _sinks.handle = None

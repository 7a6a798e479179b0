"""Runtime logging bootstrap helpers."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal, Optional, TypeVar

from ..core.config_schema import SessionConfig
from ..util.log import Log, LogFormat, LogLevel

LogMode = Literal["cli", "dev"]

T = TypeVar("T")


@dataclass(frozen=True)
class LogSettings:
    level: LogLevel
    format: LogFormat
    console: bool
    file: bool
    dev_file: bool


def _first(*values: Optional[T], default: T) -> T:
    for value in values:
        if value is not None:
            return value
    return default


def resolve_log_settings(
    config: Optional[SessionConfig],
    *,
    mode: LogMode,
    level: Optional[str] = None,
    format: Optional[str] = None,
    console: Optional[bool] = None,
    file: Optional[bool] = None,
) -> LogSettings:
    """Pick each setting from the CLI flag, then ``logging``, then the legacy
    ``logLevel`` key. A dev session reports to the terminal by default."""
    section = config.logging if config is not None else None
    legacy_level = config.log_level if config is not None else None

    return LogSettings(
        level=LogLevel.parse(
            _first(level, section.level if section else None, legacy_level, default=None)
        ),
        format=LogFormat.parse(_first(format, section.format if section else None, default=None)),
        console=_first(console, section.console if section else None, default=mode == "dev"),
        file=_first(file, section.file if section else None, default=True),
        dev_file=_first(section.dev_file if section else None, default=False),
    )


def bootstrap_logging(
    config: Optional[SessionConfig],
    *,
    mode: LogMode,
    level: Optional[str] = None,
    format: Optional[str] = None,
    console: Optional[bool] = None,
    file: Optional[bool] = None,
) -> LogSettings:
    """Resolve settings from flags and config and initialize the process logger."""
    settings = resolve_log_settings(
        config,
        mode=mode,
        level=level,
        format=format,
        console=console,
        file=file,
    )
    Log.configure(
        level=settings.level,
        format=settings.format,
        console=settings.console,
        file=settings.file,
        dev=settings.dev_file,
    )
    return settings

"""Configuration management.

Loads the session configuration from the global config directory and the
project's ``kumo.jsonc`` / ``kumo.json``, then applies command-line overrides.
"""

from pathlib import Path
from typing import Any, Dict, Optional

from pydantic import ValidationError

from .config_loader import deep_merge, load_json_file
from .config_schema import (
    BindingsConfig,
    BuildConfig,
    Entry,
    LoggingConfig,
    ServiceBinding,
    SessionConfig,
)
from .global_paths import GlobalPath
from ..util.log import Log

log = Log.create({"service": "config"})

__all__ = [
    "BindingsConfig",
    "BuildConfig",
    "ConfigError",
    "ConfigManager",
    "Entry",
    "LoggingConfig",
    "PROJECT_CONFIG_FILES",
    "ServiceBinding",
    "SessionConfig",
]

PROJECT_CONFIG_FILES = ("kumo.jsonc", "kumo.json")


class ConfigError(Exception):
    """Configuration error."""

    def __init__(self, path: str, message: str):
        self.path = path
        super().__init__(f"Config error in {path}: {message}")


def _validation_message(error: ValidationError) -> str:
    parts = []
    for item in error.errors():
        loc = ".".join(str(p) for p in item.get("loc", ()))
        msg = str(item.get("msg", "invalid value"))
        parts.append(f"{loc}: {msg}" if loc else msg)
    return "; ".join(parts)


class ConfigManager:
    """Resolve a SessionConfig from config files and overrides."""

    @classmethod
    def find_project_config(cls, directory: Path) -> Optional[Path]:
        for name in PROJECT_CONFIG_FILES:
            candidate = directory / name
            if candidate.is_file():
                return candidate
        return None

    @classmethod
    def _read(cls, path: Path) -> Dict[str, Any]:
        try:
            return load_json_file(path)
        except Exception as e:
            # commentjson reports syntax errors with its parser's own exception types.
            raise ConfigError(str(path), str(e)) from e

    @classmethod
    def load(
        cls,
        directory: Optional[Path] = None,
        *,
        config_path: Optional[Path] = None,
        overrides: Optional[Dict[str, Any]] = None,
    ) -> SessionConfig:
        """Load, merge and validate the session configuration.

        Precedence (lowest first): global config, project config, overrides.
        ``None`` values in ``overrides`` are ignored so unset CLI flags keep
        the file's values.
        """
        directory = (directory or Path.cwd()).resolve()
        project_file = config_path or cls.find_project_config(directory)
        root = project_file.resolve().parent if project_file else directory

        merged = cls._read(Path(GlobalPath.config()) / "config.json")
        if project_file:
            merged = deep_merge(merged, cls._read(project_file))
        merged = deep_merge(
            merged,
            {k: v for k, v in (overrides or {}).items() if v is not None},
        )
        merged.setdefault("root", str(root))
        if merged.get("force_local"):
            merged["initial_mode"] = "local"

        source = str(project_file) if project_file else "<defaults>"
        try:
            config = SessionConfig.model_validate(merged)
        except ValidationError as e:
            raise ConfigError(source, _validation_message(e)) from e

        log.info("loaded session config", {"source": source, "name": config.name})
        return config

    @classmethod
    def require_entry(cls, config: SessionConfig) -> Entry:
        """The worker's entry point; a session cannot start without one."""
        try:
            return config.entry
        except ValueError as e:
            project_file = cls.find_project_config(config.root)
            raise ConfigError(str(project_file or config.root), str(e)) from e

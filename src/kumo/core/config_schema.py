"""Configuration schema: Pydantic models for kumo config files."""

from __future__ import annotations

from pathlib import Path
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

Mode = Literal["local", "remote"]
UrlProtocol = Literal["http", "https"]
EntryFormat = Literal["modules", "service-worker"]


class ServiceBinding(BaseModel):
    """A binding from this worker to another worker, by service name."""
    binding: str
    service: str
    environment: Optional[str] = None

    model_config = ConfigDict(frozen=True)


class BindingsConfig(BaseModel):
    """Declared bindings of the worker under development."""
    services: List[ServiceBinding] = Field(default_factory=list)
    vars: Dict[str, str] = Field(default_factory=dict)
    text_blobs: Optional[Dict[str, str]] = None
    data_blobs: Optional[Dict[str, str]] = None
    wasm_modules: Optional[Dict[str, str]] = None

    model_config = ConfigDict(frozen=True, extra="forbid")


class BuildConfig(BaseModel):
    """Custom build settings."""
    command: Optional[str] = None
    cwd: Optional[str] = None
    watch_dir: Optional[str] = None

    model_config = ConfigDict(frozen=True, extra="forbid")


class LoggingConfig(BaseModel):
    """Logging configuration."""
    level: Optional[str] = None
    format: Optional[Literal["kv", "json", "pretty"]] = None
    console: Optional[bool] = None
    file: Optional[bool] = None
    dev_file: Optional[bool] = Field(None, alias="devFile")

    model_config = ConfigDict(frozen=True, extra="forbid", populate_by_name=True)


class Entry(BaseModel):
    """Resolved entry point of the worker."""
    file: Path
    directory: Path
    format: EntryFormat = "modules"

    model_config = ConfigDict(frozen=True)

    @property
    def relative_file(self) -> str:
        """Entry file relative to its project directory (``.`` when identical)."""
        try:
            rel = self.file.relative_to(self.directory).as_posix()
        except ValueError:
            rel = self.file.as_posix()
        return "." if rel in {"", "."} else rel


class SessionConfig(BaseModel):
    """Settings of one dev session, fixed for the lifetime of the process."""
    schema_: Optional[str] = Field(None, alias="$schema")
    name: Optional[str] = None
    main: Optional[str] = None
    format: EntryFormat = "modules"

    port: int = 8787
    ip: str = "localhost"
    inspector_port: int = 9229
    local_protocol: UrlProtocol = "http"
    upstream_protocol: UrlProtocol = "https"

    bindings: BindingsConfig = Field(default_factory=BindingsConfig)
    compatibility_date: Optional[str] = None
    compatibility_flags: List[str] = Field(default_factory=list)
    build: BuildConfig = Field(default_factory=BuildConfig)

    initial_mode: Mode = "local"
    force_local: bool = False
    inspect: bool = True
    live_reload: bool = False
    local_persistence: bool = False
    tunnel: bool = False
    interactive: Optional[bool] = None

    local_command: Optional[List[str]] = None
    remote_command: Optional[List[str]] = None

    log_level: Optional[str] = Field(None, alias="logLevel")
    logging: Optional[LoggingConfig] = None

    # Directory the config was loaded from; relative paths resolve against it.
    root: Path = Field(default_factory=Path.cwd)

    model_config = ConfigDict(frozen=True, extra="forbid", populate_by_name=True)

    @model_validator(mode="after")
    def _check_module_bindings(self) -> "SessionConfig":
        if self.format != "modules":
            return self
        if self.bindings.wasm_modules:
            raise ValueError(
                "You cannot configure [wasm_modules] with an ES module worker. "
                "Instead, import the .wasm module directly in your code"
            )
        if self.bindings.text_blobs:
            raise ValueError(
                "You cannot configure [text_blobs] with an ES module worker. "
                "Instead, import the file directly in your code"
            )
        if self.bindings.data_blobs:
            raise ValueError(
                "You cannot configure [data_blobs] with an ES module worker. "
                "Instead, import the file directly in your code"
            )
        return self

    @property
    def entry(self) -> Entry:
        if not self.main:
            raise ValueError("Missing entry-point: pass a script path or set `main` in kumo.json")
        file = Path(self.main)
        if not file.is_absolute():
            file = self.root / file
        return Entry(file=file, directory=self.root, format=self.format)

    @property
    def service_names(self) -> List[str]:
        return [binding.service for binding in self.bindings.services]

    @property
    def watch_dir(self) -> Optional[Path]:
        if not self.build.command or not self.build.watch_dir:
            return None
        path = Path(self.build.watch_dir)
        return path if path.is_absolute() else self.root / path

    @property
    def build_cwd(self) -> Path:
        if not self.build.cwd:
            return self.root
        path = Path(self.build.cwd)
        return path if path.is_absolute() else self.root / path

    @property
    def local_url(self) -> str:
        return f"{self.local_protocol}://{self.ip}:{self.port}"

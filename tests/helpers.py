"""Shared test helpers."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from pathlib import Path
from typing import Any

from kumo.core.config_schema import SessionConfig
from kumo.dev.registry import WorkerDefinition


def make_config(tmp_path: Path, **overrides: Any) -> SessionConfig:
    entry = tmp_path / "worker.js"
    if not entry.exists():
        entry.write_text("export default {}\n", encoding="utf-8")
    data: dict[str, Any] = {"name": "my-worker", "main": "worker.js", "root": str(tmp_path)}
    data.update(overrides)
    return SessionConfig.model_validate(data)


def worker(port: int, host: str = "localhost") -> WorkerDefinition:
    return WorkerDefinition(host=host, port=port, protocol="http", mode="local")


async def wait_for(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    """Yield to the loop until ``predicate`` holds."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.01)


class FakeRegistry:
    """In-memory stand-in for DevRegistry that records every call."""

    def __init__(self, workers: dict[str, WorkerDefinition] | None = None, calls: list[str] | None = None) -> None:
        self.workers = dict(workers or {})
        self.calls = calls if calls is not None else []
        self.list_calls = 0
        self.list_error: Exception | None = None
        self.start_error: Exception | None = None
        self.stop_error: Exception | None = None
        self.unregister_error: Exception | None = None
        self.registered: dict[str, WorkerDefinition] = {}

    async def start(self) -> None:
        self.calls.append("registry.start")
        if self.start_error:
            raise self.start_error

    async def stop(self) -> None:
        self.calls.append("registry.stop")
        if self.stop_error:
            raise self.stop_error

    async def list(self) -> dict[str, WorkerDefinition]:
        self.list_calls += 1
        if self.list_error:
            raise self.list_error
        return dict(self.workers)

    async def register(self, name: str, definition: WorkerDefinition) -> None:
        self.calls.append(f"registry.register:{name}")
        self.registered[name] = definition

    async def unregister(self, name: str) -> None:
        self.calls.append(f"registry.unregister:{name}")
        if self.unregister_error:
            raise self.unregister_error

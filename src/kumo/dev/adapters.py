"""Collaborators the session drives: the bundler and the execution adapters.

The session only needs a bundle location and a way to (re)start whatever
serves it. ``CopyBundler`` and ``CommandAdapter`` are the stock
implementations used by ``kumo dev``; anything satisfying the protocols can be
swapped in.
"""

from __future__ import annotations

import asyncio
import inspect
import json
import os
import shutil
from contextlib import suppress
from dataclasses import dataclass, field
from pathlib import Path
from typing import Awaitable, Callable, Dict, List, Optional, Protocol, Union

import watchfiles

from ..core.config_schema import Entry, SessionConfig
from ..util.log import Log
from .registry import WorkerRegistry

log = Log.create({"service": "dev.adapters"})

BundleCallback = Callable[["Bundle"], Union[None, Awaitable[None]]]

STOP_GRACE_PERIOD = 5.0


@dataclass(frozen=True)
class Bundle:
    """A built worker ready to be served."""
    path: Path
    directory: Path
    entry: Entry
    source_map_path: Optional[Path] = None


@dataclass(frozen=True)
class BranchInputs:
    """Everything an execution adapter needs to serve the worker."""
    mode: str
    bundle: Bundle
    config: SessionConfig
    workers: WorkerRegistry = field(default_factory=dict)


class Bundler(Protocol):
    async def start(self, destination: Path, on_bundle: BundleCallback) -> None: ...

    async def stop(self) -> None: ...


class ExecutionAdapter(Protocol):
    async def start(self, inputs: BranchInputs) -> None: ...

    async def stop(self) -> None: ...


class CopyBundler:
    """No-bundle mode: the entry file is served as-is from the work directory."""

    def __init__(self, entry: Entry) -> None:
        self.entry = entry
        self._task: Optional[asyncio.Task[None]] = None
        self._stop_event: Optional[asyncio.Event] = None

    async def build(self, destination: Path) -> Bundle:
        target = destination / self.entry.file.name
        await asyncio.to_thread(shutil.copy2, self.entry.file, target)

        # A prebuilt entry may ship its source map beside it as <entry>.map.
        source_map = self.entry.file.with_name(self.entry.file.name + ".map")
        source_map_path: Optional[Path] = None
        if source_map.is_file():
            source_map_path = destination / source_map.name
            await asyncio.to_thread(shutil.copy2, source_map, source_map_path)
        return Bundle(path=target, directory=destination, entry=self.entry, source_map_path=source_map_path)

    async def start(self, destination: Path, on_bundle: BundleCallback) -> None:
        await self._emit(on_bundle, await self.build(destination))
        self._stop_event = asyncio.Event()
        self._task = asyncio.create_task(self._watch(destination, on_bundle, self._stop_event))

    async def _watch(self, destination: Path, on_bundle: BundleCallback, stop_event: asyncio.Event) -> None:
        async for changes in watchfiles.awatch(self.entry.file.parent, stop_event=stop_event):
            target = self.entry.file.resolve()
            if not any(Path(path).resolve() == target for _change, path in changes):
                continue
            if not self.entry.file.exists():
                continue
            try:
                bundle = await self.build(destination)
            except OSError as e:
                log.error("failed to copy entry point", {"file": str(self.entry.file), "error": e})
                continue
            await self._emit(on_bundle, bundle)

    async def _emit(self, on_bundle: BundleCallback, bundle: Bundle) -> None:
        result = on_bundle(bundle)
        if inspect.isawaitable(result):
            await result

    async def stop(self) -> None:
        task, self._task = self._task, None
        if self._stop_event is not None:
            self._stop_event.set()
            self._stop_event = None
        if task is not None:
            task.cancel()
            with suppress(asyncio.CancelledError):
                await task


def _branch_env(inputs: BranchInputs) -> Dict[str, str]:
    config = inputs.config
    return {
        "KUMO_MODE": inputs.mode,
        "KUMO_BUNDLE": str(inputs.bundle.path),
        "KUMO_BUNDLE_FORMAT": inputs.bundle.entry.format,
        "KUMO_SOURCE_MAP": str(inputs.bundle.source_map_path) if inputs.bundle.source_map_path else "",
        "KUMO_NAME": config.name or "",
        "KUMO_IP": config.ip,
        "KUMO_PORT": str(config.port),
        "KUMO_LOCAL_PROTOCOL": config.local_protocol,
        "KUMO_UPSTREAM_PROTOCOL": config.upstream_protocol,
        "KUMO_INSPECTOR_PORT": str(config.inspector_port) if config.inspect else "",
        "KUMO_COMPATIBILITY_DATE": config.compatibility_date or "",
        "KUMO_COMPATIBILITY_FLAGS": ",".join(config.compatibility_flags),
        "KUMO_LIVE_RELOAD": "1" if config.live_reload else "",
        "KUMO_PERSIST": "1" if config.local_persistence else "",
        "KUMO_BINDINGS": config.bindings.model_dump_json(exclude_none=True),
        "KUMO_WORKERS": json.dumps(
            {name: d.model_dump(exclude_none=True) for name, d in inputs.workers.items()}
        ),
    }


class CommandAdapter:
    """Serves the worker by running a command (an emulator, a preview uploader...).

    The command learns what to serve from ``KUMO_*`` environment variables.
    Restarting means stopping the previous process before spawning the next.
    """

    def __init__(self, mode: str, command: Optional[List[str]]) -> None:
        self.mode = mode
        self.command = command
        self._process: Optional[asyncio.subprocess.Process] = None
        self._warned = False

    @property
    def running(self) -> bool:
        return self._process is not None and self._process.returncode is None

    async def start(self, inputs: BranchInputs) -> None:
        await self.stop()
        if not self.command:
            if not self._warned:
                self._warned = True
                log.warn(f"No {self.mode} runtime configured, set `{self.mode}_command` in kumo.json")
            return

        log.debug("starting runtime", {"mode": self.mode, "bundle": str(inputs.bundle.path)})
        self._process = await asyncio.create_subprocess_exec(
            *self.command,
            env={**os.environ, **_branch_env(inputs)},
            cwd=str(inputs.config.root),
        )

    async def stop(self) -> None:
        process, self._process = self._process, None
        if process is None or process.returncode is not None:
            return
        with suppress(ProcessLookupError):
            process.terminate()
        try:
            await asyncio.wait_for(process.wait(), timeout=STOP_GRACE_PERIOD)
        except asyncio.TimeoutError:
            with suppress(ProcessLookupError):
                process.kill()
            await process.wait()

"""The dev session state machine.

Everything that changes the session (a hotkey flipping the mode, a fresh
bundle, a sibling worker appearing in the registry, an exit request) is posted
as an event to one queue. The supervisor handles events one at a time, so the
resources of the previous configuration are always released before those of
the next one are acquired:

    idle ──enter──▶ local ◀──ModeChanged──▶ remote
                      │                        │
                      └───────Shutdown─────────┴──▶ stopped

Leaving a mode stops the execution adapter and deactivates the registry
client; entering one reactivates the client and starts the adapter for the new
mode as soon as a bundle exists.
"""

from __future__ import annotations

import asyncio
import shutil
import tempfile
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Awaitable, Callable, ContextManager, Iterator, Mapping, Optional, Union

from ..core.config_schema import SessionConfig
from ..util.log import Log
from .adapters import BranchInputs, Bundle, Bundler, ExecutionAdapter
from .build import BuildWatcher
from .mode import ModeController, ModeState
from .registry import DevRegistry, WorkerDefinition, WorkerRegistry
from .registry_client import WorkerRegistryClient
from .tunnel import TunnelManager

log = Log.create({"service": "dev.session"})


class SessionSetupError(Exception):
    """The session cannot start at all."""


class SessionPhase(str, Enum):
    IDLE = "idle"
    LOCAL = "local"
    REMOTE = "remote"
    STOPPED = "stopped"


@dataclass(frozen=True)
class ModeChanged:
    state: ModeState


@dataclass(frozen=True)
class BundleChanged:
    bundle: Bundle


@dataclass(frozen=True)
class RegistryChanged:
    workers: WorkerRegistry


@dataclass(frozen=True)
class Shutdown:
    pass


SessionEvent = Union[ModeChanged, BundleChanged, RegistryChanged, Shutdown]


@contextmanager
def tmp_work_directory() -> Iterator[Path]:
    """A scratch directory for build output, removed when the session ends."""
    try:
        path = Path(tempfile.mkdtemp(prefix="kumo-dev-"))
    except OSError as e:
        log.error("Failed to create temporary directory to store built files.")
        raise SessionSetupError("Failed to create temporary directory to store built files.") from e
    try:
        yield path
    finally:
        shutil.rmtree(path, ignore_errors=True)


class SessionSupervisor:
    def __init__(
        self,
        config: SessionConfig,
        *,
        mode: ModeController,
        registry: DevRegistry,
        tunnel: TunnelManager,
        bundler: Bundler,
        adapters: Mapping[str, ExecutionAdapter],
        build_watcher: Optional[BuildWatcher] = None,
        render: Optional[Callable[[ModeState], None]] = None,
        work_directory: Callable[[], ContextManager[Path]] = tmp_work_directory,
    ) -> None:
        self.config = config
        self.mode = mode
        self.registry = registry
        self.tunnel = tunnel
        self.bundler = bundler
        self.adapters = adapters
        self.build_watcher = build_watcher
        self.registry_client = WorkerRegistryClient(
            registry,
            name=config.name,
            services=config.service_names,
            on_change=lambda workers: self.post(RegistryChanged(workers)),
        )
        self._render = render
        self._work_directory = work_directory
        self._events: asyncio.Queue[SessionEvent] = asyncio.Queue()
        self._phase = SessionPhase.IDLE
        self._applied: Optional[ModeState] = None
        self._bundle: Optional[Bundle] = None
        self._workers: WorkerRegistry = {}
        self._branch: Optional[ExecutionAdapter] = None
        self.directory: Optional[Path] = None

    @property
    def phase(self) -> SessionPhase:
        return self._phase

    @property
    def bundle(self) -> Optional[Bundle]:
        return self._bundle

    @property
    def workers(self) -> WorkerRegistry:
        return self._workers

    def post(self, event: SessionEvent) -> None:
        self._events.put_nowait(event)

    def request_exit(self) -> None:
        self.post(Shutdown())

    async def run(self) -> None:
        """Run the session until an exit is requested."""
        with self._work_directory() as directory:
            self.directory = directory
            unsubscribe = self.mode.subscribe(lambda state: self.post(ModeChanged(state)))
            try:
                if self.build_watcher is not None:
                    self.build_watcher.start()
                await self.bundler.start(directory, lambda bundle: self.post(BundleChanged(bundle)))
                await self._enter(self.mode.state)
                if self.config.tunnel:
                    self.mode.set_tunnel(True)

                while True:
                    event = await self._events.get()
                    if isinstance(event, Shutdown):
                        break
                    await self._handle(event)
            finally:
                unsubscribe()
                await self._shutdown()
                self.directory = None

    async def _handle(self, event: SessionEvent) -> None:
        if isinstance(event, ModeChanged):
            await self._apply_mode(event.state)
        elif isinstance(event, BundleChanged):
            self._bundle = event.bundle
            log.debug("bundle changed", {"path": str(event.bundle.path)})
            await self._restart_branch()
        elif isinstance(event, RegistryChanged):
            self._workers = event.workers
            # Snapshots published after leaving local mode are stale; keep them
            # for the next local branch but do not restart anything.
            if self._phase == SessionPhase.LOCAL:
                await self._restart_branch()

    async def _apply_mode(self, state: ModeState) -> None:
        previous = self._applied
        if previous is None or previous.local != state.local:
            await self._leave()
            await self._enter(state)

        if previous is None or previous.tunnel != state.tunnel:
            if state.tunnel:
                if not await self.tunnel.start():
                    self.mode.set_tunnel(False)
            else:
                await self.tunnel.stop()

        self._applied = state
        self._show(state)

    async def _enter(self, state: ModeState) -> None:
        self._applied = state
        self._phase = SessionPhase.LOCAL if state.local else SessionPhase.REMOTE
        log.info(f"Entering {state.mode} mode")
        await self.registry_client.activate(state.mode)
        await self._start_branch()
        self._show(state)

    async def _leave(self) -> None:
        await self._stop_branch()
        await self.registry_client.deactivate()

    async def _start_branch(self) -> None:
        if self._bundle is None or self._phase not in (SessionPhase.LOCAL, SessionPhase.REMOTE):
            return

        local = self._phase == SessionPhase.LOCAL
        adapter = self.adapters[self._phase.value]
        inputs = BranchInputs(
            mode=self._phase.value,
            bundle=self._bundle,
            config=self.config,
            workers=self._workers if local else {},
        )
        try:
            await adapter.start(inputs)
        except Exception as e:
            log.error(f"failed to start {self._phase.value} runtime", {"error": e})
            return
        self._branch = adapter

        if local and self.config.name:
            await self._register()

    async def _register(self) -> None:
        definition = WorkerDefinition(
            host=self.config.ip,
            port=self.config.port,
            protocol=self.config.local_protocol,
            mode="local",
        )
        try:
            await self.registry.register(self.config.name or "", definition)
        except Exception as e:
            log.error("Failed to register worker", {"name": self.config.name, "error": e})

    async def _stop_branch(self) -> None:
        branch, self._branch = self._branch, None
        if branch is None:
            return
        try:
            await branch.stop()
        except Exception as e:
            log.error("failed to stop runtime", {"error": e})

    async def _restart_branch(self) -> None:
        await self._stop_branch()
        await self._start_branch()

    def _show(self, state: ModeState) -> None:
        if self._render is not None:
            self._render(state)

    async def _shutdown(self) -> None:
        steps: list[tuple[str, Callable[[], Awaitable[None]]]] = [
            ("tunnel", self.tunnel.stop),
            ("runtime", self._stop_branch),
            ("registry", self.registry_client.deactivate),
            ("bundler", self.bundler.stop),
        ]
        if self.build_watcher is not None:
            steps.append(("build watcher", self.build_watcher.stop))

        for name, step in steps:
            try:
                await step()
            except Exception as e:
                log.error(f"failed to stop {name}", {"error": e})
        self._phase = SessionPhase.STOPPED
        log.debug("session stopped")

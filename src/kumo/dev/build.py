"""Custom build command support and the watcher that re-runs it."""

from __future__ import annotations

import asyncio
from contextlib import suppress
from pathlib import Path
from typing import Awaitable, Callable, Iterable, Optional, Set, Tuple

import watchfiles

from ..core.config_schema import BuildConfig, Entry
from ..util.log import Log

log = Log.create({"service": "dev.build"})

BuildRunner = Callable[[Path, str, BuildConfig, Optional[Path]], Awaitable[None]]


class BuildError(Exception):
    """The custom build command failed or did not produce the entry point."""


async def run_custom_build(
    entry_file: Path,
    relative_file: str,
    build: BuildConfig,
    cwd: Optional[Path] = None,
) -> None:
    """Run ``build.command`` through the shell and check the entry exists afterwards."""
    if not build.command:
        return

    log.info(f"Running custom build: {build.command}")
    process = await asyncio.create_subprocess_shell(build.command, cwd=str(cwd) if cwd else None)
    code = await process.wait()
    if code != 0:
        raise BuildError(f"Command failed with exit code {code}: {build.command}")

    if not entry_file.exists():
        raise BuildError(
            f'Could not resolve "{relative_file}" after running custom build: {build.command}'
        )


class BuildWatcher:
    """Re-runs the custom build on every change under the watch directory.

    Builds are fire-and-forget: a change arriving while a build is running
    starts another one alongside it.
    """

    def __init__(
        self,
        entry: Entry,
        build: BuildConfig,
        watch_dir: Path,
        *,
        cwd: Optional[Path] = None,
        runner: BuildRunner = run_custom_build,
    ) -> None:
        self.entry = entry
        self.build = build
        self.watch_dir = watch_dir
        self._cwd = cwd
        self._runner = runner
        self._stop_event: Optional[asyncio.Event] = None
        self._task: Optional[asyncio.Task[None]] = None
        self._builds: Set[asyncio.Task[None]] = set()

    @property
    def watching(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.watching:
            return
        self._stop_event = asyncio.Event()
        self._task = asyncio.create_task(self._watch(self._stop_event))
        log.debug("watching for build changes", {"dir": str(self.watch_dir)})

    async def _watch(self, stop_event: asyncio.Event) -> None:
        # awatch only reports changes made after it starts, so the files
        # already present produce no event.
        async for changes in watchfiles.awatch(self.watch_dir, stop_event=stop_event, recursive=True):
            self.on_changes(changes)

    def on_changes(self, changes: Iterable[Tuple[watchfiles.Change, str]]) -> None:
        for _change, path in changes:
            self.trigger(path)

    def trigger(self, path: str) -> None:
        relative_file = self.entry.relative_file
        log.info(f"The file {path} changed, restarting build...")
        task = asyncio.create_task(self._run(relative_file))
        self._builds.add(task)
        task.add_done_callback(self._builds.discard)

    async def _run(self, relative_file: str) -> None:
        try:
            await self._runner(self.entry.file, relative_file, self.build, self._cwd)
        except Exception as e:
            log.error("Custom build failed:", {"error": e})

    async def stop(self) -> None:
        """Close the watch subscription. Builds already running are left alone."""
        task, self._task = self._task, None
        if self._stop_event is not None:
            self._stop_event.set()
            self._stop_event = None
        if task is None:
            return
        task.cancel()
        with suppress(asyncio.CancelledError):
            await task

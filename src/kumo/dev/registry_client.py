"""Keeps a session's view of its bound sibling workers current."""

from __future__ import annotations

import asyncio
import inspect
from typing import Awaitable, Callable, Optional, Sequence, Set, Union

from ..util.log import Log
from .registry import DevRegistry, WorkerRegistry

log = Log.create({"service": "dev.registry_client"})

POLL_INTERVAL = 0.3

SnapshotCallback = Callable[[WorkerRegistry], Union[None, Awaitable[None]]]


class WorkerRegistryClient:
    """Polls the dev registry while the session runs in local mode.

    Only workers named by the session's service bindings are kept, and
    ``on_change`` fires only when that filtered view differs from the last
    one published.
    """

    def __init__(
        self,
        registry: DevRegistry,
        *,
        name: Optional[str],
        services: Sequence[str],
        on_change: Optional[SnapshotCallback] = None,
        interval: float = POLL_INTERVAL,
    ) -> None:
        self._registry = registry
        self._name = name
        self._services = frozenset(services)
        self._on_change = on_change
        self._interval = interval
        self._snapshot: WorkerRegistry = {}
        self._timer: Optional[asyncio.Task[None]] = None
        self._inflight: Set[asyncio.Task[None]] = set()
        self._active = False

    @property
    def snapshot(self) -> WorkerRegistry:
        return self._snapshot

    @property
    def polling(self) -> bool:
        return self._timer is not None and not self._timer.done()

    async def activate(self, mode: str) -> None:
        # TODO: poll in remote mode too once remote previews can resolve
        # service bindings through the registry.
        self._active = True
        try:
            await self._registry.start()
        except Exception as e:
            log.error("failed to start worker registry", {"error": e})

        if mode == "local" and not self.polling:
            self._timer = asyncio.create_task(self._tick())

    async def _tick(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            # Polls do not wait on each other, like a plain interval timer.
            task = asyncio.create_task(self.poll_once())
            self._inflight.add(task)
            task.add_done_callback(self._inflight.discard)

    async def poll_once(self) -> None:
        try:
            workers = await self._registry.list()
        except Exception as e:
            log.warn("Failed to get worker definitions", {"error": e})
            return

        filtered = {
            name: definition
            for name, definition in (workers or {}).items()
            if name in self._services
        }
        if filtered == self._snapshot:
            return

        self._snapshot = filtered
        log.debug("registry snapshot changed", {"workers": sorted(filtered)})
        if self._on_change is not None:
            result = self._on_change(filtered)
            if inspect.isawaitable(result):
                await result

    async def deactivate(self) -> None:
        """Stop polling, then unregister and release the registry concurrently.

        A poll already in flight is left to finish and may still publish.
        """
        timer, self._timer = self._timer, None
        if timer is not None:
            timer.cancel()
        if not self._active:
            return
        self._active = False

        async def _unregister() -> None:
            if self._name:
                await self._registry.unregister(self._name)

        unregistered, stopped = await asyncio.gather(
            _unregister(),
            self._registry.stop(),
            return_exceptions=True,
        )
        if isinstance(unregistered, BaseException):
            log.error("Failed to unregister worker", {"name": self._name, "error": unregistered})
        if isinstance(stopped, BaseException):
            log.error("Failed to stop worker registry", {"error": stopped})

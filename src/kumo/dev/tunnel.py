"""Expose the local worker on the internet through a cloudflared tunnel.

The tunnel subprocess reports its public hostname only through its metrics
endpoint, so once it is spawned the manager polls that endpoint until the
hostname shows up, copies it to the clipboard and tells the user.
"""

from __future__ import annotations

import asyncio
import atexit
import re
import shutil
from contextlib import suppress
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Optional

import httpx

from ..util.log import Log
from .util import copy_to_clipboard

log = Log.create({"service": "dev.tunnel"})

TUNNEL_BINARY = "cloudflared"
METRICS_PORT = 8789
RETRY_INTERVAL = 2.0
INSTALL_URL = (
    "https://developers.cloudflare.com/cloudflare-one/connections/connect-apps/"
    "install-and-setup/installation"
)

_HOSTNAME_RE = re.compile(r'userHostname="(.*)"')


class HostnameNotReady(Exception):
    """The metrics endpoint answered but does not advertise a hostname yet."""


def parse_tunnel_hostname(text: str) -> str:
    match = _HOSTNAME_RE.search(text)
    if not match or not match.group(1):
        raise HostnameNotReady("tunnel has not advertised a hostname yet")
    return match.group(1)


class TunnelPhase(str, Enum):
    IDLE = "idle"
    STARTING = "starting"
    RUNNING = "running"


@dataclass
class TunnelState:
    """Everything a running tunnel owns. Only TunnelManager holds one."""
    process: asyncio.subprocess.Process
    exit_listener: Callable[[], None]
    watcher: Optional[asyncio.Task[None]] = None
    discovery: Optional[asyncio.Task[Optional[str]]] = None
    hostname: Optional[str] = None


class TunnelManager:
    def __init__(
        self,
        port: int,
        *,
        metrics_port: int = METRICS_PORT,
        binary: str = TUNNEL_BINARY,
        retry_interval: float = RETRY_INTERVAL,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clipboard: Callable[[str], Awaitable[bool]] = copy_to_clipboard,
    ) -> None:
        self.port = port
        self.metrics_port = metrics_port
        self.binary = binary
        self._retry_interval = retry_interval
        self._transport = transport
        self._sleep = sleep
        self._clipboard = clipboard
        self._state: Optional[TunnelState] = None
        self._phase = TunnelPhase.IDLE
        self._warned_missing = False

    @property
    def phase(self) -> TunnelPhase:
        return self._phase

    @property
    def hostname(self) -> Optional[str]:
        return self._state.hostname if self._state else None

    @property
    def metrics_url(self) -> str:
        return f"http://localhost:{self.metrics_port}/metrics"

    def available(self) -> bool:
        """Whether the tunnel binary is installed; warns once when it is not."""
        if shutil.which(self.binary):
            return True
        if not self._warned_missing:
            self._warned_missing = True
            log.warn(
                f"To share your worker on the Internet, please install `{self.binary}` from {INSTALL_URL}"
            )
        return False

    async def start(self) -> bool:
        if self._state is not None:
            return True

        self._phase = TunnelPhase.STARTING
        if not self.available():
            self._phase = TunnelPhase.IDLE
            return False

        log.info("⎔ Starting a tunnel...")
        try:
            process = await asyncio.create_subprocess_exec(
                self.binary,
                "tunnel",
                "--url",
                f"http://localhost:{self.port}",
                "--metrics",
                f"localhost:{self.metrics_port}",
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.DEVNULL,
            )
        except OSError as e:
            log.error("tunnel failed to start", {"error": e})
            self._phase = TunnelPhase.IDLE
            return False

        def _kill_on_exit() -> None:
            log.info("⎔ Shutting down local tunnel.")
            with suppress(ProcessLookupError):
                process.kill()

        atexit.register(_kill_on_exit)
        state = TunnelState(process=process, exit_listener=_kill_on_exit)
        state.watcher = asyncio.create_task(self._watch_exit(state))
        state.discovery = asyncio.create_task(self._discover(state))
        self._state = state
        self._phase = TunnelPhase.RUNNING
        return True

    async def _watch_exit(self, state: TunnelState) -> None:
        code = await state.process.wait()
        # Observational only: the tunnel is not restarted.
        if code and self._state is state:
            log.info(f"Tunnel process exited with code {code}")

    async def find_hostname(self) -> str:
        """Poll the metrics endpoint until it advertises a hostname. Never gives up."""
        async with httpx.AsyncClient(transport=self._transport, timeout=5.0) as client:
            while True:
                try:
                    response = await client.get(self.metrics_url)
                    return parse_tunnel_hostname(response.text)
                except HostnameNotReady:
                    log.debug("tunnel hostname not advertised yet")
                except httpx.HTTPError as e:
                    log.debug("tunnel metrics unreachable", {"error": e})
                await self._sleep(self._retry_interval)

    async def _discover(self, state: TunnelState) -> Optional[str]:
        try:
            hostname = await self.find_hostname()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            log.error("tunnel:", {"error": e})
            return None
        state.hostname = hostname
        if not await self._clipboard(hostname):
            log.warn("could not copy the tunnel hostname to the clipboard")
        log.info(f"⬣ Sharing at {hostname}, copied to clipboard.")
        return hostname

    async def stop(self) -> None:
        """Kill the tunnel and release everything it owned. Safe to repeat."""
        state, self._state = self._state, None
        self._phase = TunnelPhase.IDLE
        if state is None:
            return

        log.info("⎔ Shutting down tunnel.")
        atexit.unregister(state.exit_listener)
        for task in (state.discovery, state.watcher):
            if task is not None and not task.done():
                task.cancel()
        with suppress(ProcessLookupError):
            state.process.kill()
        with suppress(ProcessLookupError):
            await state.process.wait()
        for task in (state.discovery, state.watcher):
            if task is not None:
                with suppress(asyncio.CancelledError):
                    await task

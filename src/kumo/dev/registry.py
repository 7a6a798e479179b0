"""Shared dev registry of workers running a dev session on this host.

The registry is a tiny HTTP service on a fixed port. Whichever session binds
the port first serves it; every other session talks to that one. Starting is
therefore idempotent, and stopping only shuts down a server this process owns.

Routes:
    GET    /workers          all worker definitions
    POST   /workers/{name}   register or replace a worker
    DELETE /workers/{name}   remove one worker
    DELETE /workers          remove every worker
"""

from __future__ import annotations

import asyncio
import socket
from typing import Any, Dict, Literal, Optional

import httpx
from pydantic import BaseModel, ConfigDict
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Route

from ..util.log import Log

log = Log.create({"service": "dev.registry"})

DEV_REGISTRY_HOST = "127.0.0.1"
DEV_REGISTRY_PORT = 6284


class WorkerDefinition(BaseModel):
    """How to reach a worker advertised in the registry."""
    host: str
    port: int
    protocol: Literal["http", "https"] = "http"
    mode: Literal["local", "remote"] = "local"
    headers: Optional[Dict[str, str]] = None

    model_config = ConfigDict(frozen=True)


WorkerRegistry = Dict[str, WorkerDefinition]


def create_registry_app() -> Starlette:
    """Build the registry ASGI application with an in-memory store."""
    workers: Dict[str, Dict[str, Any]] = {}

    async def list_workers(request: Request) -> JSONResponse:
        return JSONResponse(workers)

    async def register_worker(request: Request) -> JSONResponse:
        name = request.path_params["name"]
        definition = WorkerDefinition.model_validate(await request.json())
        workers[name] = definition.model_dump(exclude_none=True)
        return JSONResponse(None)

    async def unregister_worker(request: Request) -> JSONResponse:
        workers.pop(request.path_params["name"], None)
        return JSONResponse(None)

    async def clear_workers(request: Request) -> JSONResponse:
        workers.clear()
        return JSONResponse(None)

    return Starlette(
        routes=[
            Route("/workers", list_workers, methods=["GET"]),
            Route("/workers", clear_workers, methods=["DELETE"]),
            Route("/workers/{name}", register_worker, methods=["POST"]),
            Route("/workers/{name}", unregister_worker, methods=["DELETE"]),
        ]
    )


def _bind(host: str, port: int) -> Optional[socket.socket]:
    """Bind the registry port, or return None when another session holds it."""
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
    try:
        sock.bind((host, port))
        # Linux lets two SO_REUSEADDR sockets bind one port until one listens.
        sock.listen()
    except OSError:
        sock.close()
        return None
    return sock


class DevRegistry:
    """Client for the shared registry, able to host it when nobody else does."""

    def __init__(
        self,
        host: str = DEV_REGISTRY_HOST,
        port: int = DEV_REGISTRY_PORT,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = 5.0,
    ) -> None:
        self.host = host
        self.port = port
        self._transport = transport
        self._timeout = timeout
        self._server: Optional[Any] = None
        self._serve_task: Optional[asyncio.Task[None]] = None
        self._lock = asyncio.Lock()

    @property
    def url(self) -> str:
        return f"http://{self.host}:{self.port}"

    @property
    def owned(self) -> bool:
        """Whether this process is serving the registry."""
        return self._server is not None

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.url,
            transport=self._transport,
            timeout=self._timeout,
        )

    async def start(self) -> None:
        """Serve the registry unless this or another session already does."""
        import uvicorn

        async with self._lock:
            if self._server is not None:
                return
            sock = _bind(self.host, self.port)
            if sock is None:
                log.debug("registry already running", {"url": self.url})
                return

            config = uvicorn.Config(
                create_registry_app(),
                host=self.host,
                port=self.port,
                log_level="warning",
                lifespan="off",
            )
            server = uvicorn.Server(config)
            task = asyncio.create_task(server.serve(sockets=[sock]))
            while not server.started:
                if task.done():
                    task.result()
                    return
                await asyncio.sleep(0.05)

            self._server = server
            self._serve_task = task
            log.info("registry started", {"url": self.url})

    async def stop(self) -> None:
        """Stop the registry if this process is the one serving it."""
        async with self._lock:
            server, task = self._server, self._serve_task
            self._server = None
            self._serve_task = None
            if server is None:
                return
            server.should_exit = True
            if task is not None:
                await task
            log.info("registry stopped", {"url": self.url})

    async def list(self) -> Optional[WorkerRegistry]:
        """Return all registered workers, or None when no registry is reachable."""
        try:
            async with self._client() as client:
                response = await client.get("/workers")
                response.raise_for_status()
                data = response.json()
        except httpx.ConnectError:
            return None
        return {
            name: WorkerDefinition.model_validate(value)
            for name, value in (data or {}).items()
        }

    async def register(self, name: str, definition: WorkerDefinition) -> None:
        await self.start()
        try:
            async with self._client() as client:
                response = await client.post(
                    f"/workers/{name}",
                    json=definition.model_dump(exclude_none=True),
                )
                response.raise_for_status()
        except httpx.ConnectError:
            log.warn("registry unreachable, worker not registered", {"name": name})
            return
        log.debug("worker registered", {"name": name, "port": definition.port})

    async def unregister(self, name: str) -> None:
        try:
            async with self._client() as client:
                response = await client.delete(f"/workers/{name}")
                response.raise_for_status()
        except httpx.ConnectError:
            return
        log.debug("worker unregistered", {"name": name})

"""Raw keyboard input for the interactive session."""

from __future__ import annotations

import asyncio
import os
import sys
import termios
import tty
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional, TextIO

from ..util.log import Log

log = Log.create({"service": "dev.terminal"})


def supports_raw_mode(stream: Optional[TextIO] = None) -> bool:
    stream = stream or sys.stdin
    try:
        return stream.isatty()
    except (AttributeError, ValueError):
        return False


async def _drain(queue: asyncio.Queue[Optional[str]]) -> AsyncIterator[str]:
    while True:
        chunk = await queue.get()
        if chunk is None:
            return
        yield chunk


@asynccontextmanager
async def raw_keys(stream: Optional[TextIO] = None) -> AsyncIterator[AsyncIterator[str]]:
    """Put the terminal in cbreak mode and yield the typed characters.

    The terminal settings are restored on exit. End of input ends the stream.
    """
    stream = stream or sys.stdin
    fd = stream.fileno()
    loop = asyncio.get_running_loop()
    queue: asyncio.Queue[Optional[str]] = asyncio.Queue()

    def _on_input() -> None:
        try:
            data = os.read(fd, 64)
        except OSError:
            data = b""
        if not data:
            loop.remove_reader(fd)
            queue.put_nowait(None)
            return
        queue.put_nowait(data.decode("utf-8", errors="ignore"))

    saved = termios.tcgetattr(fd)
    tty.setcbreak(fd)
    loop.add_reader(fd, _on_input)
    log.debug("reading hotkeys", {"fd": fd})
    try:
        yield _drain(queue)
    finally:
        loop.remove_reader(fd)
        termios.tcsetattr(fd, termios.TCSADRAIN, saved)

"""Desktop integration helpers for the dev session.

Clipboard writes go through the platform's clipboard command, browser and
devtools links through :mod:`webbrowser`.
"""

import asyncio
import sys
import webbrowser

from ..util.log import Log

log = Log.create({"service": "dev.util"})

DEVTOOLS_URL = "https://built-devtools.pages.dev/js_app?experiments=true&v8only=true&ws=localhost:{port}/ws"


def _clipboard_commands() -> list[list[str]]:
    if sys.platform == "win32":
        return [["clip.exe"]]
    if sys.platform == "darwin":
        return [["pbcopy"]]
    return [["wl-copy"], ["xclip", "-selection", "clipboard"], ["xsel", "--clipboard", "--input"]]


async def copy_to_clipboard(text: str) -> bool:
    """Copy text to the system clipboard.

    Supports multiple clipboard backends:
    - Windows: clip.exe
    - macOS: pbcopy
    - Linux: wl-copy, xclip, or xsel

    Returns:
        True if copy succeeded, False otherwise
    """
    encoding = "utf-16le" if sys.platform == "win32" else "utf-8"
    for cmd in _clipboard_commands():
        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.DEVNULL,
            )
        except FileNotFoundError:
            continue
        await process.communicate(text.encode(encoding))
        if process.returncode == 0:
            return True
    return False


async def open_in_browser(url: str) -> None:
    log.info(f"Opening a link in your default browser: {url}")
    opened = await asyncio.to_thread(webbrowser.open, url)
    if not opened:
        log.warn(f"Failed to open {url} in a browser")


async def open_inspector(inspector_port: int) -> None:
    await open_in_browser(DEVTOOLS_URL.format(port=inspector_port))

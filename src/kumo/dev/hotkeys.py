"""Single-key controls of an interactive dev session."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import AsyncIterable, Awaitable, Callable

from rich.text import Text

from ..core.config_schema import SessionConfig
from ..util.log import Log
from .mode import ModeController, ModeState
from .util import open_in_browser, open_inspector

log = Log.create({"service": "dev.hotkeys"})

# Arrow, function and Alt-modified keys arrive as escape sequences (CSI, SS3 or
# ESC plus one character). They carry no binding and are dropped whole.
_ESCAPE_SEQUENCE = re.compile(r"\x1b(?:\[[0-?]*[ -/]*[@-~]|O.|.)?", re.DOTALL)


@dataclass
class SessionActions:
    """Side effects the hotkeys trigger. Replaced wholesale in tests."""
    clear: Callable[[], None]
    exit: Callable[[], None]
    open_browser: Callable[[str], Awaitable[None]] = open_in_browser
    open_inspector: Callable[[int], Awaitable[None]] = open_inspector


class HotkeyDispatcher:
    def __init__(
        self,
        config: SessionConfig,
        mode: ModeController,
        actions: SessionActions,
    ) -> None:
        self.config = config
        self.mode = mode
        self.actions = actions

    async def dispatch(self, key: str) -> bool:
        """Run the action bound to ``key``. Returns False for unbound keys."""
        key = key.lower()
        if key == "c":
            self.actions.clear()
        elif key == "b":
            await self._guard(self.actions.open_browser(self.config.local_url))
        elif key == "d":
            if self.config.inspect:
                await self._guard(self.actions.open_inspector(self.config.inspector_port))
        elif key == "l":
            self.mode.toggle_local()
        elif key in {"q", "x"}:
            self.actions.exit()
        else:
            return False
        return True

    async def _guard(self, action: Awaitable[None]) -> None:
        try:
            await action
        except Exception as e:
            log.warn("hotkey action failed", {"error": e})

    async def run(self, keys: AsyncIterable[str]) -> None:
        """Dispatch keys one at a time, in arrival order."""
        async for chunk in keys:
            for key in _ESCAPE_SEQUENCE.sub("", chunk):
                await self.dispatch(key)


def hotkey_bar(config: SessionConfig, state: ModeState) -> Text:
    """The reminder line listing the available hotkeys."""
    items: list[tuple[str, str]] = [("[b]", " open a browser, ")]
    if config.inspect:
        items.append(("[d]", " open Devtools, "))
    if not config.force_local:
        items.append(("[l]", f" {'turn off' if state.local else 'turn on'} local mode, "))
    items.append(("[c]", " clear console, "))
    items.append(("[x]", " to exit"))

    text = Text()
    for key, label in items:
        text.append(key, style="bold")
        text.append(label)
    return text

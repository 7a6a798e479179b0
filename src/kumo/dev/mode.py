"""Local/remote and tunnel toggles of a dev session."""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Callable, List, Optional

from ..util.log import Log

log = Log.create({"service": "dev.mode"})

ModeListener = Callable[["ModeState"], None]


@dataclass(frozen=True)
class ModeState:
    local: bool
    tunnel: bool = False

    @property
    def mode(self) -> str:
        return "local" if self.local else "remote"


class ModeController:
    """Owns the session's ModeState.

    Changes are synchronous: listeners run before ``toggle_local`` or
    ``set_tunnel`` returns, and only when the state actually changed.
    """

    def __init__(
        self,
        initial: ModeState,
        *,
        force_local: bool = False,
        tunnel_gate: Optional[Callable[[], bool]] = None,
    ) -> None:
        if force_local and not initial.local:
            initial = replace(initial, local=True)
        self._state = initial
        self._force_local = force_local
        self._tunnel_gate = tunnel_gate
        self._listeners: List[ModeListener] = []

    @property
    def state(self) -> ModeState:
        return self._state

    @property
    def force_local(self) -> bool:
        return self._force_local

    def subscribe(self, listener: ModeListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def toggle_local(self) -> ModeState:
        if self._force_local:
            return self._state
        return self._set(replace(self._state, local=not self._state.local))

    def set_tunnel(self, enabled: bool) -> ModeState:
        if enabled and not self._state.tunnel and self._tunnel_gate and not self._tunnel_gate():
            return self._state
        return self._set(replace(self._state, tunnel=enabled))

    def _set(self, state: ModeState) -> ModeState:
        if state == self._state:
            return state
        self._state = state
        log.debug("mode changed", {"mode": state.mode, "tunnel": state.tunnel})
        for listener in list(self._listeners):
            listener(state)
        return state

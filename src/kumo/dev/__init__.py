"""Interactive dev session: mode toggles, registry sync, tunnel, build watch."""

from .mode import ModeController, ModeState
from .supervisor import SessionPhase, SessionSetupError, SessionSupervisor

__all__ = [
    "ModeController",
    "ModeState",
    "SessionPhase",
    "SessionSetupError",
    "SessionSupervisor",
]

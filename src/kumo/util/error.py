"""Error formatting for the process-level failure boundary."""

import json
import traceback
from typing import Any


def format_error(error: Any) -> str | None:
    """Format the errors a dev session knows how to explain.

    Returns None for anything else, so callers fall back to
    format_unknown_error.
    """
    from ..dev.build import BuildError
    from ..dev.supervisor import SessionSetupError

    if isinstance(error, BuildError):
        return f"Custom build failed: {error}"
    if isinstance(error, SessionSetupError):
        cause = error.__cause__
        return f"{error} ({cause})" if cause else str(error)
    return None


def format_unknown_error(error: Any) -> str:
    """Format any error, keeping the stack trace of exceptions."""
    if isinstance(error, BaseException):
        if error.__traceback__:
            return "".join(traceback.format_exception(type(error), error, error.__traceback__))
        return f"{error.__class__.__name__}: {error}"

    if isinstance(error, (dict, list)):
        try:
            return json.dumps(error, indent=2)
        except (TypeError, ValueError):
            return "Unexpected error (unserializable)"

    return str(error)

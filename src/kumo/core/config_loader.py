"""Configuration file loading utilities: JSONC parsing, env substitution, deep merge."""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Any, Dict

import commentjson

from ..util.log import Log

log = Log.create({"service": "config.loader"})


def deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Deep merge two dictionaries; lists and scalars in ``override`` win."""
    result = base.copy()

    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = value

    return result


def substitute_env_vars(text: str) -> str:
    """Replace ``{env:VAR}`` patterns with environment variable values."""
    def replacer(match: re.Match[str]) -> str:
        return os.environ.get(match.group(1), "")

    return re.sub(r'\{env:([^}]+)\}', replacer, text)


def load_json_file(filepath: str | Path) -> Dict[str, Any]:
    """Load a JSON or JSONC file.

    A missing file yields ``{}``. Unreadable or malformed files raise, since a
    dev session started from a half-parsed config would be misleading.
    """
    path = Path(filepath)
    if not path.exists():
        return {}

    text = substitute_env_vars(path.read_text(encoding="utf-8"))
    data = commentjson.loads(text)
    if not isinstance(data, dict):
        raise ValueError("top-level value must be an object")
    log.debug("loaded config file", {"path": str(path)})
    return data

"""Core infrastructure modules."""

from .global_paths import GlobalPath

__all__ = ["GlobalPath"]

# Config imports the logger, which imports GlobalPath from here; import it
# directly: from kumo.core.config import ConfigManager

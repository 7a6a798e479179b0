"""Per-user directories for kumo, resolved with platformdirs."""

from pathlib import Path

from platformdirs import user_config_dir, user_data_dir

APP_NAME = "kumo"


class GlobalPath:
    """Global path management for kumo directories."""

    @classmethod
    def data(cls) -> str:
        return user_data_dir(APP_NAME)

    @classmethod
    def log(cls) -> str:
        """Log file directory."""
        return str(Path(cls.data()) / "log")

    @classmethod
    def config(cls) -> str:
        """Configuration directory."""
        return user_config_dir(APP_NAME)

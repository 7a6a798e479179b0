from collections.abc import Iterator
from pathlib import Path

import pytest

from kumo.core.global_paths import GlobalPath
from kumo.util.log import Log, LogFormat, LogLevel


@pytest.fixture(autouse=True)
def isolated_paths(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> Iterator[None]:
    """Keep logs and the global config out of the real user directories."""
    monkeypatch.setattr(GlobalPath, "log", classmethod(lambda cls: str(tmp_path / "log")))
    monkeypatch.setattr(GlobalPath, "config", classmethod(lambda cls: str(tmp_path / "config")))
    yield


@pytest.fixture(autouse=True)
def _log_teardown() -> Iterator[None]:
    yield
    Log.configure(level=LogLevel.INFO, format=LogFormat.PRETTY, console=False, file=False)


@pytest.fixture
def anyio_backend() -> str:
    """The code under test is built on asyncio primitives."""
    return "asyncio"

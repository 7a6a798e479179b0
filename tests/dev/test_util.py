import pytest

from kumo.dev import util as util_module
from kumo.dev.util import copy_to_clipboard, open_inspector


@pytest.mark.anyio
async def test_open_inspector_opens_devtools_for_port(monkeypatch: pytest.MonkeyPatch) -> None:
    opened: list[str] = []

    def fake_open(url: str) -> bool:
        opened.append(url)
        return True

    monkeypatch.setattr(util_module.webbrowser, "open", fake_open)

    await open_inspector(9230)

    assert opened == [
        "https://built-devtools.pages.dev/js_app?experiments=true&v8only=true&ws=localhost:9230/ws"
    ]


@pytest.mark.anyio
async def test_browser_failure_is_a_warning(monkeypatch: pytest.MonkeyPatch) -> None:
    warnings: list[str] = []
    monkeypatch.setattr(util_module.webbrowser, "open", lambda url: False)
    monkeypatch.setattr(util_module.log, "warn", lambda msg, extra=None: warnings.append(msg))

    await util_module.open_in_browser("http://localhost:8787")

    assert warnings == ["Failed to open http://localhost:8787 in a browser"]


@pytest.mark.anyio
async def test_copy_to_clipboard_without_backend(monkeypatch: pytest.MonkeyPatch) -> None:
    async def missing(*args, **kwargs):  # type: ignore[no-untyped-def]
        raise FileNotFoundError(args[0])

    monkeypatch.setattr(util_module.asyncio, "create_subprocess_exec", missing)

    assert await copy_to_clipboard("https://calm-sea.trycloudflare.com") is False

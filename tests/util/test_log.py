from __future__ import annotations

import json
from pathlib import Path

import pytest

from kumo.core.global_paths import GlobalPath
from kumo.util.log import KEEP_LOG_FILES, Log, LogFormat, LogLevel


def test_log_writes_console_and_file(monkeypatch, tmp_path: Path, capsys) -> None:  # type: ignore[no-untyped-def]
    monkeypatch.setattr(GlobalPath, "log", classmethod(lambda cls: str(tmp_path)))
    Log.configure(level=LogLevel.INFO, format=LogFormat.KV, console=True, file=True, dev=True)

    log = Log.create({"service": "test.log"})
    log.info("hello", {"value": 7})
    Log.close()

    stderr = capsys.readouterr().err
    text = (tmp_path / "dev.log").read_text(encoding="utf-8")

    assert "msg=hello" in stderr
    assert "service=test.log" in stderr
    assert "value=7" in text


def test_log_supports_json_format(monkeypatch, tmp_path: Path) -> None:  # type: ignore[no-untyped-def]
    monkeypatch.setattr(GlobalPath, "log", classmethod(lambda cls: str(tmp_path)))
    Log.configure(level=LogLevel.INFO, format=LogFormat.JSON, console=False, file=True, dev=True)

    log = Log.create({"service": "test.json"})
    log.info("hello world", {"meta": {"k": "v"}})
    Log.close()

    line = (tmp_path / "dev.log").read_text(encoding="utf-8").strip()
    payload = json.loads(line)

    assert payload["level"] == "info"
    assert payload["msg"] == "hello world"
    assert payload["service"] == "test.json"
    assert payload["meta"] == {"k": "v"}


def test_pretty_format_reads_like_terminal_output(capsys) -> None:  # type: ignore[no-untyped-def]
    Log.configure(level=LogLevel.DEBUG, format=LogFormat.PRETTY, console=True, file=False)

    log = Log.create({"service": "test.pretty"})
    log.info("⎔ Starting a tunnel...")
    log.warn("Failed to get worker definitions", {"error": RuntimeError("boom")})

    stderr = capsys.readouterr().err.splitlines()

    assert stderr[0] == "⎔ Starting a tunnel..."
    assert stderr[1] == '[WARN] Failed to get worker definitions (error=boom)'


def test_level_filters_lower_messages(capsys) -> None:  # type: ignore[no-untyped-def]
    Log.configure(level=LogLevel.WARN, format=LogFormat.PRETTY, console=True, file=False)

    log = Log.create({"service": "test.level"})
    log.info("hidden")
    log.error("shown")

    assert capsys.readouterr().err == "[ERROR] shown\n"


def test_error_cause_chain_is_logged(capsys) -> None:  # type: ignore[no-untyped-def]
    Log.configure(level=LogLevel.INFO, format=LogFormat.JSON, console=True, file=False)
    try:
        try:
            raise OSError("disk full")
        except OSError as e:
            raise RuntimeError("copy failed") from e
    except RuntimeError as e:
        Log.create({"service": "test.cause"}).error("bundle", {"error": e})

    payload = json.loads(capsys.readouterr().err)
    assert payload["error"] == "copy failed Caused by: disk full"


def test_old_session_logs_are_pruned(tmp_path: Path) -> None:
    log_dir = tmp_path / "log"
    log_dir.mkdir()
    for i in range(KEEP_LOG_FILES + 3):
        (log_dir / f"2026-01-{i + 1:02d}T000000.log").write_text("", encoding="utf-8")

    Log.configure(file=True)

    remaining = list(log_dir.glob("????-??-??T??????.log"))
    assert len(remaining) == KEEP_LOG_FILES + 1
    assert Path(Log.file()) in remaining


@pytest.mark.parametrize(
    ("text", "level"),
    [(None, LogLevel.INFO), ("log", LogLevel.INFO), ("warning", LogLevel.WARN), (" DEBUG ", LogLevel.DEBUG)],
)
def test_parse_log_level(text: str | None, level: LogLevel) -> None:
    assert LogLevel.parse(text) is level


def test_parse_rejects_unknown_values() -> None:
    with pytest.raises(ValueError):
        LogLevel.parse("verbose")
    with pytest.raises(ValueError):
        LogFormat.parse("xml")

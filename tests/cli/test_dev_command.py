from __future__ import annotations

from pathlib import Path

import pytest
from typer.testing import CliRunner

from kumo import __version__
from kumo.cli.cmd.dev import build_supervisor, run_dev
from kumo.cli.main import app
from kumo.core.config_schema import SessionConfig
from kumo.dev.adapters import CommandAdapter
from kumo.dev.build import BuildError
from kumo.dev.supervisor import SessionSetupError
from tests.helpers import make_config


runner = CliRunner()


def test_cli_dev_command_passes_flags_as_overrides(monkeypatch: pytest.MonkeyPatch) -> None:
    captured: dict[str, object] = {}

    def fake_dev_command(
        *,
        script: str | None,
        config_path: Path | None,
        overrides: dict[str, object],
        log_level: str | None,
        log_format: str | None,
    ) -> None:
        captured["script"] = script
        captured["config_path"] = config_path
        captured["overrides"] = overrides
        captured["log_level"] = log_level
        captured["log_format"] = log_format

    monkeypatch.setattr("kumo.cli.cmd.dev.dev_command", fake_dev_command)

    result = runner.invoke(
        app,
        [
            "dev",
            "src/index.js",
            "--name",
            "edge",
            "--port",
            "8790",
            "--remote",
            "--tunnel",
            "--no-inspect",
            "--log-level",
            "debug",
        ],
    )

    assert result.exit_code == 0
    assert captured["script"] == "src/index.js"
    assert captured["config_path"] is None
    assert captured["log_level"] == "debug"
    assert captured["log_format"] is None
    assert captured["overrides"] == {
        "name": "edge",
        "port": 8790,
        "ip": None,
        "inspector_port": None,
        "initial_mode": "remote",
        "force_local": None,
        "inspect": False,
        "tunnel": True,
        "local_protocol": None,
        "interactive": None,
    }


def test_cli_version() -> None:
    result = runner.invoke(app, ["--version"])

    assert result.exit_code == 0
    assert __version__ in result.output


def test_dev_command_reports_config_errors(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    (tmp_path / "kumo.json").write_text('{"bindings": {"wasm_modules": {"M": "./m.wasm"}}}', encoding="utf-8")
    monkeypatch.chdir(tmp_path)

    result = runner.invoke(app, ["dev", "worker.js"])

    assert result.exit_code == 1
    assert "Error:" in result.output


def test_dev_command_reports_fatal_session_errors(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    seen: list[SessionConfig] = []

    async def fake_run_dev(config: SessionConfig, *, interactive: bool) -> None:
        seen.append(config)
        raise SessionSetupError("Failed to create temporary directory to store built files.")

    monkeypatch.setattr("kumo.cli.cmd.dev.run_dev", fake_run_dev)
    monkeypatch.chdir(tmp_path)

    result = runner.invoke(app, ["dev", "worker.js", "--no-interactive", "--port", "9001"])

    assert result.exit_code == 1
    assert "Something went wrong" in result.output
    assert "Failed to create temporary directory" in result.output
    assert seen[0].port == 9001
    assert seen[0].main == "worker.js"


def test_build_supervisor_wires_session(tmp_path: Path) -> None:
    config = make_config(
        tmp_path,
        force_local=True,
        build={"command": "npm run build", "watch_dir": "src"},
        local_command=["node", "serve.js"],
    )

    supervisor = build_supervisor(config, interactive=False)

    assert supervisor.mode.force_local is True
    assert supervisor.mode.state.local is True
    assert supervisor.build_watcher is not None
    assert supervisor.build_watcher.watch_dir == tmp_path / "src"
    local = supervisor.adapters["local"]
    assert isinstance(local, CommandAdapter)
    assert local.command == ["node", "serve.js"]
    assert supervisor.tunnel.port == config.port


def test_build_supervisor_without_build_has_no_watcher(tmp_path: Path) -> None:
    supervisor = build_supervisor(make_config(tmp_path, initial_mode="remote"), interactive=False)

    assert supervisor.build_watcher is None
    assert supervisor.mode.state.local is False


@pytest.mark.anyio
async def test_failed_initial_build_is_fatal(tmp_path: Path) -> None:
    config = make_config(tmp_path, main="dist/worker.js", build={"command": "exit 2"})

    with pytest.raises(BuildError, match="exit code 2"):
        await run_dev(config, interactive=False)


def test_dev_command_without_entry_point_is_a_config_error(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    started: list[SessionConfig] = []

    async def fake_run_dev(config: SessionConfig, *, interactive: bool) -> None:
        started.append(config)

    monkeypatch.setattr("kumo.cli.cmd.dev.run_dev", fake_run_dev)
    monkeypatch.chdir(tmp_path)

    result = runner.invoke(app, ["dev", "--no-interactive"])

    assert result.exit_code == 1
    assert "Error:" in result.output
    assert "entry-point" in result.output
    assert "Traceback" not in result.output
    assert "Something went wrong" not in result.output
    assert started == []

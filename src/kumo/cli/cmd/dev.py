"""Dev command - run an interactive local development session."""

from __future__ import annotations

import asyncio
import signal
from contextlib import suppress
from pathlib import Path
from typing import Any, Dict, Optional

import typer
from rich.console import Console

from ...core.config import ConfigError, ConfigManager, SessionConfig
from ...dev.adapters import CommandAdapter, CopyBundler
from ...dev.build import BuildWatcher, run_custom_build
from ...dev.hotkeys import HotkeyDispatcher, SessionActions, hotkey_bar
from ...dev.mode import ModeController, ModeState
from ...dev.registry import DevRegistry
from ...dev.supervisor import SessionSupervisor
from ...dev.terminal import raw_keys, supports_raw_mode
from ...dev.tunnel import TunnelManager
from ...runtime.logging import bootstrap_logging
from ...util.error import format_error, format_unknown_error
from ...util.log import Log

log = Log.create({"service": "cli.dev"})
console = Console()


def build_supervisor(config: SessionConfig, *, interactive: bool) -> SessionSupervisor:
    """Wire the stock collaborators into a session."""
    tunnel = TunnelManager(config.port)
    mode = ModeController(
        ModeState(local=config.initial_mode == "local"),
        force_local=config.force_local,
        tunnel_gate=tunnel.available,
    )
    entry = config.entry
    watch_dir = config.watch_dir
    build_watcher = (
        BuildWatcher(entry, config.build, watch_dir, cwd=config.build_cwd)
        if watch_dir is not None
        else None
    )

    def render(state: ModeState) -> None:
        console.print(hotkey_bar(config, state))

    return SessionSupervisor(
        config,
        mode=mode,
        registry=DevRegistry(),
        tunnel=tunnel,
        bundler=CopyBundler(entry),
        adapters={
            "local": CommandAdapter("local", config.local_command),
            "remote": CommandAdapter("remote", config.remote_command),
        },
        build_watcher=build_watcher,
        render=render if interactive else None,
    )


async def run_dev(config: SessionConfig, *, interactive: bool) -> None:
    if config.build.command:
        entry = config.entry
        await run_custom_build(entry.file, entry.relative_file, config.build, config.build_cwd)

    supervisor = build_supervisor(config, interactive=interactive)
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        with suppress(NotImplementedError):
            loop.add_signal_handler(sig, supervisor.request_exit)

    if not interactive:
        await supervisor.run()
        return

    hotkeys = HotkeyDispatcher(
        config,
        supervisor.mode,
        SessionActions(clear=console.clear, exit=supervisor.request_exit),
    )
    async with raw_keys() as keys:
        reader = asyncio.create_task(hotkeys.run(keys))
        try:
            await supervisor.run()
        finally:
            reader.cancel()
            with suppress(asyncio.CancelledError):
                await reader


def dev_command(
    *,
    script: Optional[str],
    config_path: Optional[Path],
    overrides: Dict[str, Any],
    log_level: Optional[str],
    log_format: Optional[str],
) -> None:
    try:
        config = ConfigManager.load(
            config_path=config_path,
            overrides={"main": script, **overrides},
        )
        ConfigManager.require_entry(config)
    except ConfigError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)

    bootstrap_logging(config, mode="dev", level=log_level, format=log_format)
    interactive = config.interactive
    if interactive is None:
        interactive = supports_raw_mode()

    try:
        asyncio.run(run_dev(config, interactive=interactive))
    except KeyboardInterrupt:
        console.print("\nStopping dev session...")
    except Exception as e:
        log.error("dev session failed", {"error": e})
        console.print("[red]Something went wrong:[/red]")
        console.print(format_error(e) or format_unknown_error(e), markup=False, highlight=False)
        raise typer.Exit(1)
    finally:
        Log.close()

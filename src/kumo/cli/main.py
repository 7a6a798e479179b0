"""CLI entry point for kumo."""

from pathlib import Path
from typing import Optional

import typer
from rich.console import Console

from .. import __version__

app = typer.Typer(
    name="kumo",
    help="kumo - develop serverless workers locally",
    no_args_is_help=True,
    add_completion=False,
)

console = Console()


def version_callback(value: bool):
    """Print version and exit."""
    if value:
        console.print(f"kumo {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        None,
        "--version",
        "-v",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit",
    ),
):
    """kumo - develop serverless workers locally."""


@app.command()
def dev(
    script: Optional[str] = typer.Argument(
        None,
        help="Path to the worker's entry point (defaults to `main` in kumo.json)",
    ),
    name: Optional[str] = typer.Option(None, "--name", help="Name of the worker"),
    port: Optional[int] = typer.Option(None, "--port", help="Port to listen on"),
    ip: Optional[str] = typer.Option(None, "--ip", help="IP address to listen on"),
    inspector_port: Optional[int] = typer.Option(
        None,
        "--inspector-port",
        help="Port for the devtools inspector to listen on",
    ),
    local: Optional[bool] = typer.Option(
        None,
        "--local/--remote",
        help="Start in local mode or against the remote platform",
    ),
    force_local: Optional[bool] = typer.Option(
        None,
        "--force-local",
        help="Run locally only; the [l] hotkey is disabled",
    ),
    inspect: Optional[bool] = typer.Option(
        None,
        "--inspect/--no-inspect",
        help="Enable the devtools inspector",
    ),
    tunnel: Optional[bool] = typer.Option(
        None,
        "--tunnel",
        help="Share the worker on the internet through cloudflared",
    ),
    local_protocol: Optional[str] = typer.Option(
        None,
        "--local-protocol",
        help="Protocol to listen on locally: http or https",
    ),
    interactive: Optional[bool] = typer.Option(
        None,
        "--interactive/--no-interactive",
        help="Enable hotkeys (defaults to on when stdin is a terminal)",
    ),
    config: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to a kumo.json / kumo.jsonc file",
    ),
    log_level: Optional[str] = typer.Option(
        None,
        "--log-level",
        help="Log level: debug, info, warn, error",
    ),
    log_format: Optional[str] = typer.Option(
        None,
        "--log-format",
        help="Log format: pretty, kv, json",
    ),
):
    """Start a local development session for a worker."""
    from .cmd.dev import dev_command

    dev_command(
        script=script,
        config_path=config,
        overrides={
            "name": name,
            "port": port,
            "ip": ip,
            "inspector_port": inspector_port,
            "initial_mode": None if local is None else ("local" if local else "remote"),
            "force_local": force_local,
            "inspect": inspect,
            "tunnel": tunnel,
            "local_protocol": local_protocol,
            "interactive": interactive,
        },
        log_level=log_level,
        log_format=log_format,
    )


if __name__ == "__main__":
    app()

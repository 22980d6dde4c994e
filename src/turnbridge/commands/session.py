"""turnbridge session — print the message history of an agent session."""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Any

import click

from turnbridge.approval import TerminalSurface
from turnbridge.commands import configure_logging
from turnbridge.config import ConfigError, TurnbridgeConfig, load_config
from turnbridge.errors import BridgeError, LaunchError
from turnbridge.runtime import build_runtime


@click.command()
@click.argument("session_id")
@click.option("--cwd", default=None, help="Project directory the session belongs to.")
@click.option(
    "-f", "--file", "config_file", type=click.Path(), help="Config file path."
)
@click.option("-v", "--verbose", is_flag=True, help="Enable verbose output.")
def session(
    session_id: str, cwd: str | None, config_file: str | None, verbose: bool
) -> None:
    """Print the messages of SESSION_ID, one JSON object per line."""
    configure_logging(verbose)
    try:
        config = load_config(Path(config_file) if config_file else None)
    except ConfigError as exc:
        click.echo(f"Error: {exc}", err=True)
        raise SystemExit(1) from exc

    try:
        messages = asyncio.run(_load_messages(config, session_id, cwd))
    except (BridgeError, LaunchError) as exc:
        click.echo(f"Error: {exc}", err=True)
        raise SystemExit(1) from exc

    for message in messages:
        click.echo(json.dumps(message, ensure_ascii=False))
    if not messages:
        click.echo(f"No messages in session {session_id}.", err=True)


async def _load_messages(
    config: TurnbridgeConfig, session_id: str, cwd: str | None
) -> list[dict[str, Any]]:
    runtime = build_runtime(config, TerminalSurface())
    try:
        return await runtime.bridge.get_session_messages(session_id, cwd)
    finally:
        runtime.broker.shutdown()

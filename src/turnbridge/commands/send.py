"""turnbridge send — run one conversational turn and stream the reply."""

from __future__ import annotations

import asyncio
import contextlib
import signal
import uuid
from pathlib import Path

import click

from turnbridge.approval import TerminalSurface
from turnbridge.commands import configure_logging
from turnbridge.config import ConfigError, TurnbridgeConfig, load_config
from turnbridge.errors import LaunchError
from turnbridge.launcher import Attachment, InvocationResult
from turnbridge.launcher.helpers import format_output_preview
from turnbridge.runtime import build_runtime
from turnbridge.stream import ContentDelta, ContentFull, FramedEvent

#: Exit status when the agent was stopped by its hard deadline.
EXIT_TIMEOUT = 2


class _StreamPrinter:
    """Echoes assistant text as it arrives.

    Full ``[CONTENT]`` chunks are only printed when no deltas were
    streamed, so the same text is not shown twice.
    """

    def __init__(self) -> None:
        self.streamed = False
        self.printed = False

    def __call__(self, event: FramedEvent) -> None:
        if isinstance(event, ContentDelta):
            self.streamed = True
            self._write(event.text)
        elif isinstance(event, ContentFull) and not self.streamed:
            self._write(event.text)

    def _write(self, text: str) -> None:
        if text:
            click.echo(text, nl=False)
            self.printed = True


@click.command()
@click.argument("message")
@click.option("--session-id", default=None, help="Resume this agent session.")
@click.option("--cwd", default=None, help="Project directory for the agent.")
@click.option(
    "--permission-mode",
    default=None,
    help="Agent permission mode (e.g. default, acceptEdits, plan).",
)
@click.option("--model", default=None, help="Model override for this turn.")
@click.option(
    "--attach",
    "attach",
    multiple=True,
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="File to attach (repeatable).",
)
@click.option(
    "-f", "--file", "config_file", type=click.Path(), help="Config file path."
)
@click.option("-v", "--verbose", is_flag=True, help="Enable verbose output.")
def send(
    message: str,
    session_id: str | None,
    cwd: str | None,
    permission_mode: str | None,
    model: str | None,
    attach: tuple[Path, ...],
    config_file: str | None,
    verbose: bool,
) -> None:
    """Send MESSAGE to the agent and stream its reply to stdout."""
    configure_logging(verbose)
    try:
        config = load_config(Path(config_file) if config_file else None)
    except ConfigError as exc:
        click.echo(f"Error: {exc}", err=True)
        raise SystemExit(1) from exc

    try:
        attachments = [Attachment.from_path(path) for path in attach]
    except OSError as exc:
        raise click.ClickException(f"Cannot read attachment: {exc}") from exc

    exit_code = asyncio.run(
        _run_turn(config, message, session_id, cwd, permission_mode, model, attachments)
    )
    if exit_code:
        raise SystemExit(exit_code)


async def _run_turn(
    config: TurnbridgeConfig,
    message: str,
    session_id: str | None,
    cwd: str | None,
    permission_mode: str | None,
    model: str | None,
    attachments: list[Attachment],
) -> int:
    """Run the turn with approvals wired to the terminal; returns the exit code."""
    surface = TerminalSurface()
    runtime = build_runtime(config, surface)
    surface.bind(runtime.service)

    channel_id = f"cli-{uuid.uuid4().hex[:8]}"
    printer = _StreamPrinter()
    loop = asyncio.get_running_loop()

    task = asyncio.create_task(
        runtime.bridge.send_message(
            channel_id,
            message,
            session_id=session_id,
            cwd=cwd,
            permission_mode=permission_mode,
            model=model,
            attachments=attachments,
            on_event=printer,
        )
    )
    runtime.in_flight.add(task)

    def _on_sigint() -> None:
        click.echo("\nInterrupting...", err=True)
        if not runtime.registry.interrupt(channel_id):
            task.cancel()

    with contextlib.suppress(NotImplementedError):
        loop.add_signal_handler(signal.SIGINT, _on_sigint)

    await runtime.watcher.start()
    reason = "error"
    try:
        result = await task
        reason = result.status
    except LaunchError as exc:
        click.echo(f"Error: {exc}", err=True)
        return 1
    except asyncio.CancelledError:
        click.echo("Cancelled.", err=True)
        reason = "cancelled"
        return 1
    finally:
        with contextlib.suppress(NotImplementedError):
            loop.remove_signal_handler(signal.SIGINT)
        await runtime.watcher.stop()
        await runtime.shutdown_manager().execute(reason)
        runtime.broker.shutdown()

    if printer.printed:
        click.echo()
    return _report(result)


def _report(result: InvocationResult) -> int:
    if result.session_id:
        click.echo(f"Session: {result.session_id}", err=True)
    if result.success:
        return 0

    click.echo(f"Error: {result.error}", err=True)
    preview = format_output_preview(result.output_tail)
    if preview and result.status == "failed":
        click.echo(f"  {preview}", err=True)
    if result.status == "timeout":
        return EXIT_TIMEOUT
    return 1

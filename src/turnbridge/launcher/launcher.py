"""Per-invocation subprocess launcher, streamed through the framer."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import os
import time
from collections.abc import Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Literal

from turnbridge.constants import (
    KILL_WAIT,
    MAX_LINE_BYTES,
    MESSAGE_TIMEOUT,
    TERMINATE_GRACE,
    EventCallback,
)
from turnbridge.errors import InterruptedInvocation, LaunchError, ProcessTimeout
from turnbridge.launcher.helpers import (
    format_output_preview,
    resolve_executable,
    resolve_script,
    resolve_working_dir,
)
from turnbridge.registry import ChannelRegistry, ProcessHandle
from turnbridge.stream import (
    ContentDelta,
    ContentFull,
    FramedEvent,
    RawJsonBlock,
    SessionId,
    StreamFramer,
    StructuredMessage,
)
from turnbridge.workspace import WorkspaceManager

logger = logging.getLogger(__name__)

InvocationStatus = Literal["completed", "failed", "timeout", "interrupted", "error"]


@dataclass
class InvocationResult:
    """Outcome of one launch; exactly one is produced per call."""

    channel_id: str
    status: InvocationStatus
    exit_code: int | None = None
    error: str | None = None
    events: list[FramedEvent] = field(default_factory=list)
    output_tail: list[str] = field(default_factory=list)
    duration: float = 0.0

    @property
    def success(self) -> bool:
        return self.status == "completed"

    @property
    def content(self) -> str:
        """Assistant text, full chunks and deltas concatenated in order."""
        return "".join(
            event.text
            for event in self.events
            if isinstance(event, ContentFull | ContentDelta)
        )

    @property
    def session_id(self) -> str | None:
        """The last session id the agent reported, if any."""
        for event in reversed(self.events):
            if isinstance(event, SessionId):
                return event.session_id
        return None

    @property
    def messages(self) -> list[dict[str, Any]]:
        return [e.payload for e in self.events if isinstance(e, StructuredMessage)]

    @property
    def raw_json(self) -> list[Any]:
        return [e.payload for e in self.events if isinstance(e, RawJsonBlock)]

    def raise_for_status(self) -> None:
        """Raise the matching exception unless the invocation completed."""
        if self.status == "completed":
            return
        message = self.error or f"Invocation {self.channel_id} {self.status}"
        if self.status == "timeout":
            raise ProcessTimeout(message)
        if self.status == "interrupted":
            raise InterruptedInvocation(message)
        raise LaunchError(message)


class CommandLauncher:
    """Runs the agent script as a fresh subprocess per invocation.

    Each launch registers its process under a channel id so it can be
    interrupted, drains combined stdout/stderr through a ``StreamFramer``
    and reclaims the temp files the agent created, whatever the outcome.
    """

    def __init__(
        self,
        registry: ChannelRegistry,
        workspaces: WorkspaceManager,
        default_working_dir: Path,
        terminate_grace: float = TERMINATE_GRACE,
    ) -> None:
        self._registry = registry
        self._workspaces = workspaces
        self._default_working_dir = default_working_dir
        self._terminate_grace = terminate_grace

    async def launch(
        self,
        channel_id: str,
        executable: str,
        script_path: str | Path,
        args: Sequence[str],
        working_dir: str | Path | None = None,
        env: dict[str, str] | None = None,
        stdin_payload: bytes | str | None = None,
        timeout: float = MESSAGE_TIMEOUT,
        on_event: EventCallback | None = None,
        tail_lines: int | None = 20,
    ) -> InvocationResult:
        """Run ``<executable> <script_path> *args`` and collect its events.

        Raises ``LaunchError`` before anything is spawned when the
        executable or script is missing.  Every other outcome (non-zero
        exit, timeout, interrupt) is reported in the returned result.
        """
        exe = resolve_executable(executable)
        script = resolve_script(script_path)
        cwd = resolve_working_dir(working_dir, self._default_working_dir)

        workspace = self._workspaces.allocate()
        proc_env = {**os.environ, **(env or {})}
        if workspace is not None:
            proc_env.update(workspace.env())

        started = time.monotonic()
        try:
            proc = await asyncio.create_subprocess_exec(
                exe,
                str(script),
                *args,
                cwd=str(cwd),
                env=proc_env,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
                limit=MAX_LINE_BYTES,
                start_new_session=True,
            )
        except (OSError, ValueError) as exc:
            # ValueError: NUL bytes in argv or env.
            self._workspaces.cleanup(workspace)
            msg = f"Failed to spawn {exe}: {exc}"
            raise LaunchError(msg) from exc
        except asyncio.CancelledError:
            self._workspaces.cleanup(workspace)
            raise

        handle = ProcessHandle(
            channel_id=channel_id,
            process=proc,
            workspace=workspace,
            loop=asyncio.get_running_loop(),
        )
        self._registry.register(channel_id, handle)
        logger.info("Launched channel %s (pid %d) in %s", channel_id, proc.pid, cwd)

        framer = StreamFramer(name=channel_id, tail_lines=tail_lines)
        events: list[FramedEvent] = []
        status: InvocationStatus = "error"
        error: str | None = None

        try:
            try:
                await asyncio.wait_for(
                    self._run(proc, framer, events, stdin_payload, on_event),
                    timeout=timeout,
                )
            except TimeoutError:
                logger.warning(
                    "Channel %s timed out after %ss, stopping pid %d",
                    channel_id,
                    timeout,
                    proc.pid,
                )
                await self._stop(proc)
                status = "timeout"
                error = f"Agent timed out after {timeout}s"
            else:
                status, error = self._classify(channel_id, proc.returncode, framer)
        except asyncio.CancelledError:
            await self._stop(proc)
            raise
        except Exception as exc:
            logger.exception("Channel %s failed while streaming", channel_id)
            status = "error"
            error = str(exc) or type(exc).__name__
        finally:
            self._registry.unregister(channel_id, handle)
            # Consumes the flag on every exit path.
            interrupted = self._registry.was_interrupted(channel_id)
            if proc.returncode is None:
                await self._stop(proc)
            self._workspaces.cleanup(workspace)

        # Exit code 0 after an interrupt still counts as a failure.
        if interrupted:
            status = "interrupted"
            error = "Invocation was interrupted"

        duration = time.monotonic() - started
        logger.info(
            "Channel %s finished: %s (exit %s, %.1fs)",
            channel_id,
            status,
            proc.returncode,
            duration,
        )
        return InvocationResult(
            channel_id=channel_id,
            status=status,
            exit_code=proc.returncode,
            error=error,
            events=events,
            output_tail=framer.tail,
            duration=duration,
        )

    # ------------------------------------------------------------------ #
    # Internal
    # ------------------------------------------------------------------ #

    async def _run(
        self,
        proc: asyncio.subprocess.Process,
        framer: StreamFramer,
        events: list[FramedEvent],
        stdin_payload: bytes | str | None,
        on_event: EventCallback | None,
    ) -> None:
        # stdin is fed concurrently so a large payload cannot deadlock
        # against a full stdout pipe.
        writer = asyncio.create_task(self._write_stdin(proc, stdin_payload))
        try:
            assert proc.stdout is not None
            async for event in framer.aframe(proc.stdout):
                events.append(event)
                if on_event is not None:
                    try:
                        on_event(event)
                    except Exception:
                        logger.exception(
                            "%s: event callback failed for %s",
                            framer.name,
                            event.type,
                        )
            await writer
            await proc.wait()
        finally:
            if not writer.done():
                writer.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await writer

    @staticmethod
    async def _write_stdin(
        proc: asyncio.subprocess.Process, payload: bytes | str | None
    ) -> None:
        stdin = proc.stdin
        if stdin is None:
            return
        try:
            if payload is not None:
                data = payload.encode("utf-8") if isinstance(payload, str) else payload
                stdin.write(data)
                await stdin.drain()
            stdin.close()
        except (BrokenPipeError, ConnectionResetError, OSError) as exc:
            logger.debug("stdin write to pid %d failed: %s", proc.pid, exc)

    async def _stop(self, proc: asyncio.subprocess.Process) -> None:
        """SIGTERM, wait out the grace period, then SIGKILL."""
        if proc.returncode is not None:
            return
        with contextlib.suppress(ProcessLookupError):
            proc.terminate()
        try:
            await asyncio.wait_for(proc.wait(), timeout=self._terminate_grace)
            return
        except TimeoutError:
            pass
        with contextlib.suppress(ProcessLookupError):
            proc.kill()
        try:
            await asyncio.wait_for(proc.wait(), timeout=KILL_WAIT)
        except TimeoutError:
            logger.error("pid %d did not exit after SIGKILL", proc.pid)

    @staticmethod
    def _classify(
        channel_id: str, exit_code: int | None, framer: StreamFramer
    ) -> tuple[InvocationStatus, str | None]:
        if exit_code == 0:
            return "completed", None
        error = f"Agent exited with code {exit_code}"
        preview = format_output_preview(framer.tail)
        if preview:
            logger.warning("Channel %s: %s. Output:\n  %s", channel_id, error, preview)
        else:
            logger.warning("Channel %s: %s", channel_id, error)
        return "failed", error

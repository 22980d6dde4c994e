"""Agent bridge — the send / getSession command surface over the launcher."""

from __future__ import annotations

import json
import logging
import uuid
from pathlib import Path
from typing import Any

from turnbridge.constants import (
    LONG_OPERATION_TIMEOUT,
    MESSAGE_TIMEOUT,
    QUICK_OPERATION_TIMEOUT,
    EventCallback,
)
from turnbridge.errors import BridgeError
from turnbridge.launcher import (
    Attachment,
    CommandLauncher,
    InvocationResult,
    attachments_payload,
    get_session_args,
    send_args,
    send_env,
)
from turnbridge.launcher.helpers import format_output_preview
from turnbridge.registry import ChannelRegistry

logger = logging.getLogger(__name__)


class AgentBridge:
    """Runs agent script commands, one subprocess per call."""

    def __init__(
        self,
        launcher: CommandLauncher,
        registry: ChannelRegistry,
        executable: str,
        script: Path,
        env: dict[str, str] | None = None,
        message_timeout: float = MESSAGE_TIMEOUT,
        quick_timeout: float = QUICK_OPERATION_TIMEOUT,
        long_timeout: float = LONG_OPERATION_TIMEOUT,
    ) -> None:
        self._launcher = launcher
        self._registry = registry
        self._executable = executable
        self._script = script
        self._env = dict(env or {})
        self._message_timeout = message_timeout
        self._quick_timeout = quick_timeout
        self._long_timeout = long_timeout

    async def send_message(
        self,
        channel_id: str,
        message: str,
        session_id: str | None = None,
        cwd: str | None = None,
        permission_mode: str | None = None,
        model: str | None = None,
        attachments: list[Attachment] | None = None,
        on_event: EventCallback | None = None,
    ) -> InvocationResult:
        """Run one conversational turn on *channel_id*.

        Turns carrying attachments get the long deadline.
        """
        with_attachments = bool(attachments)
        args = send_args(
            message,
            session_id,
            cwd,
            permission_mode,
            model,
            with_attachments=with_attachments,
        )
        env = {**self._env, **send_env(cwd, with_attachments=with_attachments)}
        payload = attachments_payload(attachments) if attachments else None
        return await self._launcher.launch(
            channel_id,
            self._executable,
            self._script,
            args,
            working_dir=cwd,
            env=env,
            stdin_payload=payload,
            timeout=self._long_timeout if with_attachments else self._message_timeout,
            on_event=on_event,
        )

    def interrupt(self, channel_id: str) -> bool:
        """Stop the turn running on *channel_id*, if any."""
        return self._registry.interrupt(channel_id)

    async def get_session_messages(
        self, session_id: str, cwd: str | None = None
    ) -> list[dict[str, Any]]:
        """Load the message history of *session_id*.

        Raises ``BridgeError`` when the script reports a failure or its
        output carries no JSON result.
        """
        channel_id = f"session-{uuid.uuid4().hex[:8]}"
        result = await self._launcher.launch(
            channel_id,
            self._executable,
            self._script,
            get_session_args(session_id, cwd),
            env=dict(self._env),
            timeout=self._quick_timeout,
            tail_lines=None,
        )
        if result.status == "timeout":
            msg = f"getSession timed out after {self._quick_timeout}s"
            raise BridgeError(msg)

        data = _extract_result(result)
        if data is None:
            preview = format_output_preview(result.output_tail)
            msg = f"getSession returned no JSON result (exit {result.exit_code})"
            if preview:
                msg = f"{msg}:\n  {preview}"
            raise BridgeError(msg)

        if not data.get("success"):
            raise BridgeError(str(data.get("error") or "Unknown error"))

        messages = data.get("messages") or []
        logger.debug("Loaded %d message(s) for session %s", len(messages), session_id)
        return [m for m in messages if isinstance(m, dict)]


def _extract_result(result: InvocationResult) -> dict[str, Any] | None:
    """Find the ``{success, messages, error}`` object in command output.

    A bracketed JSON block wins; otherwise the object starting at the
    first ``{`` of the plain output is decoded.
    """
    for payload in result.raw_json:
        if isinstance(payload, dict):
            return payload

    output = "\n".join(result.output_tail)
    start = output.find("{")
    if start == -1:
        return None
    try:
        data, _ = json.JSONDecoder().raw_decode(output[start:])
    except json.JSONDecodeError as exc:
        logger.warning("getSession output is not valid JSON: %s", exc)
        return None
    return data if isinstance(data, dict) else None

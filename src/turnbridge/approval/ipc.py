"""Permission-directory watcher — the agent script's side of approvals.

The agent script asks for approvals by writing request files into a
shared directory and polling for a matching response file::

    request-<session>-<id>.json            -> response-<session>-<id>.json
    ask-user-question-<session>-<id>.json  -> ask-user-question-response-<session>-<id>.json
    plan-approval-<session>-<id>.json      -> plan-approval-response-<session>-<id>.json

The watcher picks each request up, routes it through the
``ApprovalService`` and writes the decision back once it resolves.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import tempfile
import time
from collections.abc import Callable
from concurrent.futures import Future
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from turnbridge.approval.models import PermissionDecision, PlanDecision
from turnbridge.approval.service import ApprovalService
from turnbridge.background_loop import BackgroundLoop

logger = logging.getLogger(__name__)

#: Default shared directory, matching the agent script's fallback.
DEFAULT_PERMISSION_DIR_NAME = "claude-permission"

#: Request files younger than this may still be being written.
_SETTLE_SECONDS = 0.1


def default_permission_dir() -> Path:
    return Path(tempfile.gettempdir()) / DEFAULT_PERMISSION_DIR_NAME


@dataclass(frozen=True)
class _RequestKind:
    name: str
    request_prefix: str
    response_prefix: str


PERMISSION = _RequestKind("permission", "request-", "response-")
QUESTION = _RequestKind(
    "question", "ask-user-question-", "ask-user-question-response-"
)
PLAN = _RequestKind("plan", "plan-approval-", "plan-approval-response-")

_KINDS = (PERMISSION, QUESTION, PLAN)


class PermissionWatcher(BackgroundLoop):
    """Polls the permission directory for one session's request files."""

    def __init__(
        self,
        service: ApprovalService,
        directory: Path | None = None,
        session_id: str = "default",
        shutdown_event: asyncio.Event | None = None,
        interval: float = 0.5,
    ) -> None:
        super().__init__(shutdown_event or asyncio.Event(), interval)
        self._service = service
        self.directory = directory if directory is not None else default_permission_dir()
        self.session_id = session_id
        # Request files that could not be read or removed.
        self._skipped: set[str] = set()

    def env(self) -> dict[str, str]:
        """Environment telling the agent script where to write requests."""
        return {
            "CLAUDE_PERMISSION_DIR": str(self.directory),
            "CLAUDE_SESSION_ID": self.session_id,
        }

    def purge(self) -> int:
        """Delete leftover request/response files of this session."""
        if not self.directory.is_dir():
            return 0
        removed = 0
        prefixes = {k.request_prefix for k in _KINDS} | {
            k.response_prefix for k in _KINDS
        }
        for entry in self.directory.iterdir():
            name = entry.name
            if not name.endswith(".json"):
                continue
            if any(name.startswith(f"{p}{self.session_id}-") for p in prefixes):
                entry.unlink(missing_ok=True)
                removed += 1
        if removed:
            logger.debug("Purged %d stale permission file(s)", removed)
        return removed

    def scan(self, now: float | None = None) -> int:
        """Dispatch every settled request file; returns how many were taken."""
        try:
            entries = sorted(self.directory.iterdir())
        except FileNotFoundError:
            return 0
        except OSError as exc:
            logger.error("Cannot list permission dir %s: %s", self.directory, exc)
            return 0
        now = time.time() if now is None else now
        # Forget skipped names once their files are gone.
        self._skipped &= {entry.name for entry in entries}
        taken = 0
        for entry in entries:
            matched = self._match(entry.name)
            if matched is None or entry.name in self._skipped:
                continue
            kind, request_id = matched
            try:
                if now - entry.stat().st_mtime < _SETTLE_SECONDS:
                    continue
                text: str | None = entry.read_text(encoding="utf-8")
            except FileNotFoundError:
                continue
            except OSError as exc:
                logger.warning(
                    "Cannot read %s request %s: %s", kind.name, entry.name, exc
                )
                text = None
            try:
                entry.unlink(missing_ok=True)
            except OSError as exc:
                logger.warning("Cannot remove %s: %s", entry.name, exc)
                self._skipped.add(entry.name)
            if text is None:
                self._skipped.add(entry.name)
                self._respond(kind, request_id, _default_reply(kind))
            else:
                self._dispatch(kind, request_id, text)
            taken += 1
        return taken

    # ------------------------------------------------------------------ #
    # BackgroundLoop hooks
    # ------------------------------------------------------------------ #

    def _should_start(self) -> bool:
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            logger.error("Cannot create permission dir %s: %s", self.directory, exc)
            return False
        self.purge()
        logger.info(
            "Watching %s for session %s approvals", self.directory, self.session_id
        )
        return True

    async def _tick(self) -> None:
        self.scan()

    # ------------------------------------------------------------------ #
    # Internal
    # ------------------------------------------------------------------ #

    def _match(self, name: str) -> tuple[_RequestKind, str] | None:
        if not name.endswith(".json"):
            return None
        for kind in _KINDS:
            if name.startswith(kind.response_prefix):
                continue
            head = f"{kind.request_prefix}{self.session_id}-"
            if name.startswith(head):
                request_id = name[len(head) : -len(".json")]
                if request_id:
                    return kind, request_id
        return None

    def _dispatch(self, kind: _RequestKind, request_id: str, text: str) -> None:
        try:
            data = json.loads(text)
        except json.JSONDecodeError as exc:
            logger.warning("Malformed %s request %s: %s", kind.name, request_id, exc)
            data = None
        if not isinstance(data, dict):
            self._respond(kind, request_id, _default_reply(kind))
            return

        try:
            future = self._submit(kind, request_id, data)
        except ValueError as exc:
            logger.warning("Skipping %s request %s: %s", kind.name, request_id, exc)
            return
        future.add_done_callback(self._replier(kind, request_id))

    def _submit(
        self, kind: _RequestKind, request_id: str, data: dict[str, Any]
    ) -> Future[Any]:
        if kind is PERMISSION:
            inputs = data.get("inputs")
            return self._service.request_permission(
                str(data.get("toolName", "unknown")),
                inputs if isinstance(inputs, dict) else {},
            )
        if kind is QUESTION:
            questions = data.get("questions")
            return self._service.ask_user_question(
                request_id, questions if isinstance(questions, list) else []
            )
        return self._service.request_plan_approval(
            request_id, {"allowedPrompts": data.get("allowedPrompts") or []}
        )

    def _replier(
        self, kind: _RequestKind, request_id: str
    ) -> Callable[[Future[Any]], None]:
        def reply(future: Future[Any]) -> None:
            if future.cancelled():
                body = _default_reply(kind)
            else:
                body = _reply_body(kind, future.result())
            self._respond(kind, request_id, body)

        return reply

    def _respond(
        self, kind: _RequestKind, request_id: str, body: dict[str, Any]
    ) -> None:
        name = f"{kind.response_prefix}{self.session_id}-{request_id}.json"
        target = self.directory / name
        tmp = self.directory / f".{name}.tmp"
        try:
            tmp.write_text(json.dumps(body), encoding="utf-8")
            os.replace(tmp, target)
        except OSError as exc:
            logger.error("Cannot write %s response %s: %s", kind.name, name, exc)
            return
        logger.debug("Wrote %s response for %s", kind.name, request_id)


def _reply_body(kind: _RequestKind, decision: Any) -> dict[str, Any]:
    if kind is PERMISSION and isinstance(decision, PermissionDecision):
        return {"allow": decision.allowed}
    if kind is QUESTION and isinstance(decision, dict):
        return {"answers": decision}
    if kind is PLAN and isinstance(decision, PlanDecision):
        body: dict[str, Any] = {
            "approved": decision.approved,
            "targetMode": decision.target_mode,
        }
        if decision.message:
            body["message"] = decision.message
        return body
    return _default_reply(kind)


def _default_reply(kind: _RequestKind) -> dict[str, Any]:
    if kind is PERMISSION:
        return {"allow": False}
    if kind is QUESTION:
        return {"answers": {}}
    return {"approved": False, "targetMode": "default"}

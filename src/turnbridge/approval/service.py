"""Typed permission, question and plan requests over the broker."""

from __future__ import annotations

import asyncio
import logging
import threading
import uuid
from collections.abc import Callable
from concurrent.futures import Future
from typing import Any, TypeVar

from pydantic import BaseModel, ValidationError

from turnbridge.approval.broker import ApprovalBroker
from turnbridge.approval.models import (
    PERMISSION_DECISION,
    PERMISSION_HOOK,
    PLAN_HOOK,
    PLAN_RESPONSE,
    QUESTION_HOOK,
    QUESTION_RESPONSE,
    PermissionDecision,
    PermissionReply,
    PermissionRequest,
    PermissionResponse,
    PlanDecision,
    PlanReply,
    PlanRequest,
    QuestionReply,
    QuestionRequest,
)
from turnbridge.constants import APPROVAL_TIMEOUT

logger = logging.getLogger(__name__)

_M = TypeVar("_M", bound=BaseModel)

#: Called with (tool_name, reject_message) when a human denies a tool.
DeniedCallback = Callable[[str, str | None], None]

_PERMISSION_TIMEOUT_DECISION = PermissionDecision(
    response=PermissionResponse.DENY,
    reject_message="Permission request timed out",
)
_PLAN_TIMEOUT_DECISION = PlanDecision(
    approved=False,
    target_mode="default",
    message="Plan approval timed out",
)


class ApprovalService:
    """Front door for approval requests raised while an agent is working.

    Every request goes through the ``ApprovalBroker``; UI responses come
    back through ``handle``.  Tools answered with "allow always" are
    remembered and auto-allowed for the rest of the session.
    """

    def __init__(
        self,
        broker: ApprovalBroker,
        timeout: float = APPROVAL_TIMEOUT,
        on_permission_denied: DeniedCallback | None = None,
    ) -> None:
        self._broker = broker
        self._timeout = timeout
        self.on_permission_denied = on_permission_denied
        self._lock = threading.Lock()
        self._always_allowed: set[str] = set()
        self._permission_tools: dict[str, str] = {}

    # ------------------------------------------------------------------ #
    # Requests
    # ------------------------------------------------------------------ #

    def request_permission(
        self, tool_name: str, inputs: dict[str, Any] | None = None
    ) -> Future[PermissionDecision]:
        """Ask whether *tool_name* may run; DENY when nobody answers."""
        with self._lock:
            remembered = tool_name in self._always_allowed
        if remembered:
            logger.debug("Tool %s auto-allowed", tool_name)
            done: Future[PermissionDecision] = Future()
            done.set_result(PermissionDecision(response=PermissionResponse.ALLOW))
            return done

        request_id = str(uuid.uuid4())
        with self._lock:
            self._permission_tools[request_id] = tool_name
        payload = PermissionRequest(
            channel_id=request_id, tool_name=tool_name, inputs=inputs or {}
        )
        future = self._broker.request(
            request_id,
            payload,
            self._timeout,
            _PERMISSION_TIMEOUT_DECISION,
            hook=PERMISSION_HOOK,
        )
        future.add_done_callback(lambda _: self._forget_request(request_id))
        return future

    def ask_user_question(
        self, request_id: str, questions: list[Any]
    ) -> Future[dict[str, str]]:
        """Ask clarifying questions; an empty answer set on timeout."""
        payload = QuestionRequest(request_id=request_id, questions=questions)
        return self._broker.request(
            request_id, payload, self._timeout, {}, hook=QUESTION_HOOK
        )

    def request_plan_approval(self, request_id: str, plan: Any) -> Future[PlanDecision]:
        """Ask for approval of *plan*; rejected on timeout."""
        payload = PlanRequest(request_id=request_id, plan=plan)
        return self._broker.request(
            request_id,
            payload,
            self._timeout,
            _PLAN_TIMEOUT_DECISION,
            hook=PLAN_HOOK,
        )

    async def permission(
        self, tool_name: str, inputs: dict[str, Any] | None = None
    ) -> PermissionDecision:
        return await asyncio.wrap_future(self.request_permission(tool_name, inputs))

    async def question(self, request_id: str, questions: list[Any]) -> dict[str, str]:
        return await asyncio.wrap_future(self.ask_user_question(request_id, questions))

    async def plan_approval(self, request_id: str, plan: Any) -> PlanDecision:
        return await asyncio.wrap_future(self.request_plan_approval(request_id, plan))

    # ------------------------------------------------------------------ #
    # Responses
    # ------------------------------------------------------------------ #

    def handle(self, message_type: str, content: str | dict[str, Any]) -> bool:
        """Route a UI response; returns ``True`` if it resolved a request.

        Malformed content is logged and dropped.
        """
        handlers: dict[str, Callable[[str | dict[str, Any]], bool]] = {
            PERMISSION_DECISION: self._on_permission_reply,
            QUESTION_RESPONSE: self._on_question_reply,
            PLAN_RESPONSE: self._on_plan_reply,
        }
        handler = handlers.get(message_type)
        if handler is None:
            logger.debug("Ignoring UI message of type %s", message_type)
            return False
        try:
            return handler(content)
        except ValidationError as exc:
            logger.warning("Malformed %s payload: %s", message_type, exc)
            return False

    def clear_pending(self) -> int:
        """Resolve everything outstanding to its default (session switch)."""
        with self._lock:
            self._permission_tools.clear()
        return self._broker.clear_pending()

    def forget_permissions(self) -> None:
        """Drop every remembered "allow always" tool."""
        with self._lock:
            self._always_allowed.clear()

    def is_always_allowed(self, tool_name: str) -> bool:
        with self._lock:
            return tool_name in self._always_allowed

    # ------------------------------------------------------------------ #
    # Internal
    # ------------------------------------------------------------------ #

    def _on_permission_reply(self, content: str | dict[str, Any]) -> bool:
        reply = _parse(PermissionReply, content)
        decision = reply.to_decision()
        with self._lock:
            tool_name = self._permission_tools.pop(reply.channel_id, None)
        if not self._broker.resolve(reply.channel_id, decision):
            return False

        if tool_name is not None:
            if decision.response is PermissionResponse.ALLOW_ALWAYS:
                with self._lock:
                    self._always_allowed.add(tool_name)
                logger.info("Tool %s allowed for the rest of the session", tool_name)
            elif decision.response is PermissionResponse.DENY:
                self._notify_denied(tool_name, decision.reject_message)
        return True

    def _on_question_reply(self, content: str | dict[str, Any]) -> bool:
        reply = _parse(QuestionReply, content)
        return self._broker.resolve(reply.request_id, reply.answers)

    def _on_plan_reply(self, content: str | dict[str, Any]) -> bool:
        reply = _parse(PlanReply, content)
        return self._broker.resolve(reply.request_id, reply.to_decision())

    def _notify_denied(self, tool_name: str, message: str | None) -> None:
        if self.on_permission_denied is None:
            return
        try:
            self.on_permission_denied(tool_name, message)
        except Exception:
            logger.exception("Permission-denied callback failed for %s", tool_name)

    def _forget_request(self, request_id: str) -> None:
        with self._lock:
            self._permission_tools.pop(request_id, None)


def _parse(model: type[_M], content: str | dict[str, Any]) -> _M:
    if isinstance(content, str):
        return model.model_validate_json(content)
    return model.model_validate(content)

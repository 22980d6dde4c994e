"""Tests for typed permission / question / plan approvals."""

from __future__ import annotations

import asyncio
import json
from typing import Any
from unittest.mock import MagicMock

import pytest

from turnbridge.approval import (
    ApprovalBroker,
    ApprovalService,
    PermissionResponse,
    PlanDecision,
    RetryPolicy,
)


class RecordingSurface:
    def __init__(self) -> None:
        self.pushes: list[tuple[str, dict[str, Any]]] = []

    def push(self, hook: str, payload_json: str) -> bool:
        self.pushes.append((hook, json.loads(payload_json)))
        return True

    def last(self) -> dict[str, Any]:
        return self.pushes[-1][1]


def _make_service(
    timeout: float = 5.0, **kwargs: Any
) -> tuple[ApprovalService, RecordingSurface]:
    surface = RecordingSurface()
    broker = ApprovalBroker(surface, policy=RetryPolicy(max_attempts=2, delay=0.01))
    return ApprovalService(broker, timeout=timeout, **kwargs), surface


# ------------------------------------------------------------------ #
# Permissions
# ------------------------------------------------------------------ #


class TestPermission:
    def test_request_payload(self) -> None:
        service, surface = _make_service()
        service.request_permission("Bash", {"command": "ls"})

        hook, payload = surface.pushes[0]
        assert hook == "showPermissionDialog"
        assert payload["toolName"] == "Bash"
        assert payload["inputs"] == {"command": "ls"}
        assert payload["channelId"]
        service.clear_pending()

    def test_allow(self) -> None:
        service, surface = _make_service()
        future = service.request_permission("Bash")
        request_id = surface.last()["channelId"]

        assert service.handle(
            "permission_decision", {"channelId": request_id, "allow": True}
        )
        decision = future.result(timeout=1)
        assert decision.response is PermissionResponse.ALLOW
        assert decision.allowed
        assert not service.is_always_allowed("Bash")

    def test_allow_always_is_remembered(self) -> None:
        service, surface = _make_service()
        future = service.request_permission("Write")
        reply = {"channelId": surface.last()["channelId"], "allow": True, "remember": True}
        service.handle("permission_decision", json.dumps(reply))

        assert future.result(timeout=1).response is PermissionResponse.ALLOW_ALWAYS
        assert service.is_always_allowed("Write")

        again = service.request_permission("Write")
        assert again.done()
        assert again.result().response is PermissionResponse.ALLOW
        assert len(surface.pushes) == 1

    def test_forget_permissions(self) -> None:
        service, surface = _make_service()
        service.request_permission("Write")
        service.handle(
            "permission_decision",
            {"channelId": surface.last()["channelId"], "allow": True, "remember": True},
        )
        service.forget_permissions()

        assert not service.is_always_allowed("Write")
        service.request_permission("Write")
        assert len(surface.pushes) == 2
        service.clear_pending()

    def test_deny_notifies_callback(self) -> None:
        denied = MagicMock()
        service, surface = _make_service(on_permission_denied=denied)
        future = service.request_permission("Bash")
        service.handle(
            "permission_decision",
            {
                "channelId": surface.last()["channelId"],
                "allow": False,
                "rejectMessage": "not on my machine",
            },
        )

        decision = future.result(timeout=1)
        assert decision.response is PermissionResponse.DENY
        assert decision.reject_message == "not on my machine"
        denied.assert_called_once_with("Bash", "not on my machine")

    def test_failing_deny_callback_does_not_propagate(self) -> None:
        service, surface = _make_service(
            on_permission_denied=MagicMock(side_effect=RuntimeError("ui gone"))
        )
        service.request_permission("Bash")
        assert service.handle(
            "permission_decision",
            {"channelId": surface.last()["channelId"], "allow": False},
        )

    def test_timeout_denies_without_callback(self) -> None:
        denied = MagicMock()
        service, _ = _make_service(timeout=0.1, on_permission_denied=denied)
        decision = service.request_permission("Bash").result(timeout=2)

        assert decision.response is PermissionResponse.DENY
        assert decision.reject_message == "Permission request timed out"
        denied.assert_not_called()

    def test_late_reply_ignored(self) -> None:
        service, surface = _make_service()
        future = service.request_permission("Bash")
        request_id = surface.last()["channelId"]
        service.clear_pending()

        assert not service.handle(
            "permission_decision", {"channelId": request_id, "allow": True}
        )
        assert future.result(timeout=1).response is PermissionResponse.DENY

    async def test_async_wrapper(self) -> None:
        service, surface = _make_service()

        def _answer() -> None:
            service.handle(
                "permission_decision",
                {"channelId": surface.last()["channelId"], "allow": True},
            )

        asyncio.get_running_loop().call_later(0.05, _answer)
        decision = await asyncio.wait_for(service.permission("Read"), 2)
        assert decision.allowed


# ------------------------------------------------------------------ #
# Questions and plans
# ------------------------------------------------------------------ #


class TestQuestions:
    def test_answers_returned(self) -> None:
        service, surface = _make_service()
        questions = [{"question": "Which DB?", "options": ["pg", "sqlite"]}]
        future = service.ask_user_question("q1", questions)

        hook, payload = surface.pushes[0]
        assert hook == "showAskUserQuestionDialog"
        assert payload == {"requestId": "q1", "questions": questions}

        service.handle(
            "ask_user_question_response",
            {"requestId": "q1", "answers": {"Which DB?": "pg"}},
        )
        assert future.result(timeout=1) == {"Which DB?": "pg"}

    def test_timeout_returns_empty_answers(self) -> None:
        service, _ = _make_service(timeout=0.1)
        assert service.ask_user_question("q1", []).result(timeout=2) == {}

    async def test_async_wrapper(self) -> None:
        service, _ = _make_service()
        asyncio.get_running_loop().call_later(
            0.05,
            service.handle,
            "ask_user_question_response",
            {"requestId": "q1", "answers": {"a": "b"}},
        )
        assert await asyncio.wait_for(service.question("q1", []), 2) == {"a": "b"}


class TestPlanApproval:
    def test_approved_with_mode(self) -> None:
        service, surface = _make_service()
        future = service.request_plan_approval("p1", "1. edit\n2. test")

        assert surface.pushes[0] == (
            "showPlanApprovalDialog",
            {"requestId": "p1", "plan": "1. edit\n2. test"},
        )
        service.handle(
            "plan_approval_response",
            {"requestId": "p1", "approved": True, "targetMode": "acceptEdits"},
        )
        assert future.result(timeout=1) == PlanDecision(
            approved=True, target_mode="acceptEdits"
        )

    def test_timeout_rejects(self) -> None:
        service, _ = _make_service(timeout=0.1)
        decision = service.request_plan_approval("p1", "plan").result(timeout=2)
        assert decision == PlanDecision(
            approved=False, target_mode="default", message="Plan approval timed out"
        )

    def test_clear_pending_rejects(self) -> None:
        service, _ = _make_service()
        future = service.request_plan_approval("p1", "plan")
        assert service.clear_pending() == 1
        assert future.result(timeout=1).approved is False

    async def test_async_wrapper(self) -> None:
        service, _ = _make_service()
        asyncio.get_running_loop().call_later(
            0.05,
            service.handle,
            "plan_approval_response",
            {"requestId": "p1", "approved": True},
        )
        decision = await asyncio.wait_for(service.plan_approval("p1", "plan"), 2)
        assert decision.approved
        assert decision.target_mode == "default"


# ------------------------------------------------------------------ #
# Malformed responses
# ------------------------------------------------------------------ #


class TestHandleMalformed:
    @pytest.mark.parametrize(
        ("message_type", "content"),
        [
            ("permission_decision", "not json"),
            ("permission_decision", {"allow": True}),
            ("ask_user_question_response", {"answers": {}}),
            ("plan_approval_response", {"requestId": "p1"}),
        ],
    )
    def test_dropped(self, message_type: str, content: Any) -> None:
        service, _ = _make_service()
        assert service.handle(message_type, content) is False

    def test_unknown_type(self) -> None:
        service, _ = _make_service()
        assert service.handle("something_else", {}) is False

    def test_malformed_reply_leaves_request_pending(self) -> None:
        service, _ = _make_service()
        future = service.request_plan_approval("p1", "plan")
        service.handle("plan_approval_response", {"requestId": "p1"})
        assert not future.done()
        service.clear_pending()

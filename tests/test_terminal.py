"""Tests for the terminal approval surface."""

from __future__ import annotations

import json
from unittest.mock import MagicMock, patch

import click

from turnbridge.approval import TerminalSurface
from turnbridge.approval.models import PERMISSION_HOOK, PLAN_HOOK, QUESTION_HOOK


def _make_surface() -> tuple[TerminalSurface, MagicMock]:
    service = MagicMock()
    return TerminalSurface(service), service


class TestPush:
    def test_unbound_surface_not_ready(self) -> None:
        assert TerminalSurface().push(PERMISSION_HOOK, "{}") is False

    def test_bind(self) -> None:
        surface = TerminalSurface()
        service = MagicMock()
        surface.bind(service)
        with patch("click.confirm", return_value=True):
            assert surface.push(PLAN_HOOK, json.dumps({"requestId": "p1", "plan": "x"}))
        service.handle.assert_called_once()

    def test_unknown_hook(self) -> None:
        surface, service = _make_surface()
        assert surface.push("showSomethingElse", "{}") is False
        service.handle.assert_not_called()

    def test_abort_leaves_request_to_timeout(self) -> None:
        surface, service = _make_surface()
        payload = json.dumps({"channelId": "r1", "toolName": "Bash", "inputs": {}})
        with patch("click.prompt", side_effect=click.Abort()):
            assert surface.push(PERMISSION_HOOK, payload) is True
        service.handle.assert_not_called()


class TestPermissionDialog:
    def _push(self, surface: TerminalSurface, answers: list[str]) -> None:
        payload = json.dumps(
            {"channelId": "r1", "toolName": "Bash", "inputs": {"command": "ls"}}
        )
        with patch("click.prompt", side_effect=answers):
            surface.push(PERMISSION_HOOK, payload)

    def test_yes(self) -> None:
        surface, service = _make_surface()
        self._push(surface, ["y"])
        service.handle.assert_called_once_with(
            "permission_decision",
            {"channelId": "r1", "allow": True, "remember": False},
        )

    def test_always(self) -> None:
        surface, service = _make_surface()
        self._push(surface, ["a"])
        _, reply = service.handle.call_args.args
        assert reply["allow"] is True
        assert reply["remember"] is True

    def test_no_with_reason(self) -> None:
        surface, service = _make_surface()
        self._push(surface, ["n", "too risky"])
        _, reply = service.handle.call_args.args
        assert reply == {
            "channelId": "r1",
            "allow": False,
            "remember": False,
            "rejectMessage": "too risky",
        }

    def test_no_without_reason(self) -> None:
        surface, service = _make_surface()
        self._push(surface, ["n", ""])
        _, reply = service.handle.call_args.args
        assert "rejectMessage" not in reply


class TestQuestionDialog:
    def test_numbered_option_maps_to_label(self) -> None:
        surface, service = _make_surface()
        payload = {
            "requestId": "q1",
            "questions": [
                {"question": "Database?", "options": [{"label": "pg"}, {"label": "sqlite"}]},
                {"question": "Name?", "options": []},
            ],
        }
        with patch("click.prompt", side_effect=["2", "orders"]):
            surface.push(QUESTION_HOOK, json.dumps(payload))

        service.handle.assert_called_once_with(
            "ask_user_question_response",
            {"requestId": "q1", "answers": {"Database?": "sqlite", "Name?": "orders"}},
        )

    def test_out_of_range_number_kept_verbatim(self) -> None:
        surface, service = _make_surface()
        payload = {"requestId": "q1", "questions": [{"question": "N?", "options": ["a"]}]}
        with patch("click.prompt", side_effect=["7"]):
            surface.push(QUESTION_HOOK, json.dumps(payload))
        _, reply = service.handle.call_args.args
        assert reply["answers"] == {"N?": "7"}


class TestPlanDialog:
    def test_rejection(self) -> None:
        surface, service = _make_surface()
        with patch("click.confirm", return_value=False):
            surface.push(PLAN_HOOK, json.dumps({"requestId": "p1", "plan": {"steps": 2}}))
        service.handle.assert_called_once_with(
            "plan_approval_response", {"requestId": "p1", "approved": False}
        )

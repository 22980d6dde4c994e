"""Approval dialogs rendered as click prompts."""

from __future__ import annotations

import json
import logging
from typing import Any

import click

from turnbridge.approval.models import (
    PERMISSION_DECISION,
    PERMISSION_HOOK,
    PLAN_HOOK,
    PLAN_RESPONSE,
    QUESTION_HOOK,
    QUESTION_RESPONSE,
)
from turnbridge.approval.service import ApprovalService

logger = logging.getLogger(__name__)

_INPUT_PREVIEW_CHARS = 400


class TerminalSurface:
    """Asks the person at the terminal and answers through the service.

    Prompts block, so run this surface on a ``ThreadExecutor``.
    """

    def __init__(self, service: ApprovalService | None = None) -> None:
        self._service = service

    def bind(self, service: ApprovalService) -> None:
        self._service = service

    def push(self, hook: str, payload_json: str) -> bool:
        if self._service is None:
            return False
        payload: dict[str, Any] = json.loads(payload_json)
        try:
            if hook == PERMISSION_HOOK:
                self._permission(payload)
            elif hook == QUESTION_HOOK:
                self._question(payload)
            elif hook == PLAN_HOOK:
                self._plan(payload)
            else:
                logger.warning("No terminal dialog for hook %s", hook)
                return False
        except click.Abort:
            # No answer available (stdin closed); the timeout default applies.
            click.echo("\n  (no answer)", err=True)
        return True

    def _permission(self, payload: dict[str, Any]) -> None:
        assert self._service is not None
        inputs = json.dumps(payload.get("inputs", {}), ensure_ascii=False)
        if len(inputs) > _INPUT_PREVIEW_CHARS:
            inputs = inputs[:_INPUT_PREVIEW_CHARS] + "…"
        click.echo(f"\n  Tool request: {payload.get('toolName')}", err=True)
        click.echo(f"  Inputs: {inputs}", err=True)
        choice = click.prompt(
            "  Allow? [y]es / [a]lways / [n]o",
            type=click.Choice(["y", "a", "n"]),
            default="n",
            show_choices=False,
            err=True,
        )
        reply: dict[str, Any] = {
            "channelId": payload["channelId"],
            "allow": choice != "n",
            "remember": choice == "a",
        }
        if choice == "n":
            reason = click.prompt(
                "  Reason (optional)", default="", show_default=False, err=True
            )
            if reason:
                reply["rejectMessage"] = reason
        self._service.handle(PERMISSION_DECISION, reply)

    def _question(self, payload: dict[str, Any]) -> None:
        assert self._service is not None
        answers: dict[str, str] = {}
        for item in payload.get("questions", []):
            if not isinstance(item, dict) or "question" not in item:
                continue
            question = str(item["question"])
            click.echo(f"\n  {question}", err=True)
            labels = [
                str(opt.get("label", opt)) if isinstance(opt, dict) else str(opt)
                for opt in item.get("options", [])
            ]
            for index, label in enumerate(labels, start=1):
                click.echo(f"    {index}. {label}", err=True)
            raw = click.prompt("  Answer", err=True)
            if raw.isdigit() and 1 <= int(raw) <= len(labels):
                raw = labels[int(raw) - 1]
            answers[question] = raw
        self._service.handle(
            QUESTION_RESPONSE,
            {"requestId": payload["requestId"], "answers": answers},
        )

    def _plan(self, payload: dict[str, Any]) -> None:
        assert self._service is not None
        plan = payload.get("plan")
        click.echo("\n  Plan approval requested:", err=True)
        click.echo(f"  {json.dumps(plan, indent=2, ensure_ascii=False)}", err=True)
        approved = click.confirm("  Approve?", default=False, err=True)
        self._service.handle(
            PLAN_RESPONSE,
            {"requestId": payload["requestId"], "approved": approved},
        )

"""Approval request/response payloads and the decisions they resolve to."""

from __future__ import annotations

import enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

#: UI hooks that display each kind of approval dialog.
PERMISSION_HOOK = "showPermissionDialog"
QUESTION_HOOK = "showAskUserQuestionDialog"
PLAN_HOOK = "showPlanApprovalDialog"

#: Message types the UI sends back.
PERMISSION_DECISION = "permission_decision"
QUESTION_RESPONSE = "ask_user_question_response"
PLAN_RESPONSE = "plan_approval_response"


class PermissionResponse(enum.IntEnum):
    """Human answer to a tool permission request."""

    ALLOW = 1
    ALLOW_ALWAYS = 2
    DENY = 3

    @property
    def allowed(self) -> bool:
        return self is not PermissionResponse.DENY


# ------------------------------------------------------------------ #
# Decisions handed to the waiting step
# ------------------------------------------------------------------ #


class PermissionDecision(BaseModel):
    model_config = ConfigDict(frozen=True)

    response: PermissionResponse
    reject_message: str | None = None

    @property
    def allowed(self) -> bool:
        return self.response.allowed


class PlanDecision(BaseModel):
    model_config = ConfigDict(frozen=True)

    approved: bool
    target_mode: str = "default"
    message: str | None = None


# ------------------------------------------------------------------ #
# Wire payloads (camelCase on the wire)
# ------------------------------------------------------------------ #


class _WireModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


class PermissionRequest(_WireModel):
    """Pushed to the UI when a tool needs permission."""

    channel_id: str = Field(description="Request id the response must echo")
    tool_name: str
    inputs: dict[str, Any] = Field(default_factory=dict)


class PermissionReply(_WireModel):
    channel_id: str
    allow: bool
    remember: bool = False
    reject_message: str | None = None

    def to_decision(self) -> PermissionDecision:
        if not self.allow:
            return PermissionDecision(
                response=PermissionResponse.DENY,
                reject_message=self.reject_message,
            )
        response = (
            PermissionResponse.ALLOW_ALWAYS
            if self.remember
            else PermissionResponse.ALLOW
        )
        return PermissionDecision(response=response)


class QuestionRequest(_WireModel):
    """Clarifying questions the agent wants answered."""

    request_id: str
    questions: list[Any]


class QuestionReply(_WireModel):
    request_id: str
    answers: dict[str, str] = Field(default_factory=dict)


class PlanRequest(_WireModel):
    """A plan the agent wants approved before executing."""

    request_id: str
    plan: Any


class PlanReply(_WireModel):
    request_id: str
    approved: bool
    target_mode: str = "default"

    def to_decision(self) -> PlanDecision:
        return PlanDecision(approved=self.approved, target_mode=self.target_mode)

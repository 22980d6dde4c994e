"""Human-in-the-loop approvals: broker, UI delivery and typed service."""

from turnbridge.approval.broker import ApprovalBroker, PendingApproval
from turnbridge.approval.delivery import (
    InlineExecutor,
    LoopExecutor,
    RetryPolicy,
    ThreadExecutor,
    UIExecutor,
    UISurface,
)
from turnbridge.approval.ipc import PermissionWatcher
from turnbridge.approval.models import (
    PermissionDecision,
    PermissionRequest,
    PermissionResponse,
    PlanDecision,
)
from turnbridge.approval.service import ApprovalService
from turnbridge.approval.terminal import TerminalSurface

__all__ = [
    "ApprovalBroker",
    "ApprovalService",
    "InlineExecutor",
    "LoopExecutor",
    "PendingApproval",
    "PermissionDecision",
    "PermissionRequest",
    "PermissionResponse",
    "PermissionWatcher",
    "PlanDecision",
    "RetryPolicy",
    "TerminalSurface",
    "ThreadExecutor",
    "UIExecutor",
    "UISurface",
]

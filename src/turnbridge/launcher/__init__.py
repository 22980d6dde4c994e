"""Per-invocation subprocess launcher and agent command builders."""

from turnbridge.launcher.commands import (
    Attachment,
    attachments_payload,
    get_session_args,
    send_args,
    send_env,
)
from turnbridge.launcher.launcher import (
    CommandLauncher,
    InvocationResult,
    InvocationStatus,
)

__all__ = [
    "Attachment",
    "CommandLauncher",
    "InvocationResult",
    "InvocationStatus",
    "attachments_payload",
    "get_session_args",
    "send_args",
    "send_env",
]

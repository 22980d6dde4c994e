"""Shared constants and type aliases for the turnbridge runtime."""

from __future__ import annotations

from collections.abc import Callable
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from turnbridge.stream.events import FramedEvent

#: Quick metadata calls (channel startup, command lists, getSession).
QUICK_OPERATION_TIMEOUT = 30.0

#: One conversational turn.
MESSAGE_TIMEOUT = 180.0

#: Long-running tasks (indexing, bulk processing).
LONG_OPERATION_TIMEOUT = 600.0

#: Human-approval requests (permission, question, plan approval).
APPROVAL_TIMEOUT = 300.0

#: UI delivery retries before an approval request is given up on.
DELIVERY_MAX_ATTEMPTS = 30

#: Seconds between UI delivery attempts.
DELIVERY_DELAY = 0.2

#: Maximum bytes per protocol line from subprocess output (1 MB).
MAX_LINE_BYTES = 1_048_576

#: Values a host may pass for "no working directory".
EMPTY_CWD_VALUES = frozenset({"", "undefined", "null"})

#: Callback type for framed-event handlers.
EventCallback = Callable[["FramedEvent"], None]

#: Seconds between SIGTERM and SIGKILL when stopping a subprocess.
TERMINATE_GRACE = 3.0

#: Seconds to wait for the OS to reap a force-killed subprocess.
KILL_WAIT = 2.0

"""Exception taxonomy for turnbridge."""

from __future__ import annotations


class TurnbridgeError(Exception):
    """Base class for every error raised by turnbridge."""


class ParseError(TurnbridgeError):
    """One malformed protocol line.

    Raised inside the stream framer and recovered there: the line is
    logged and dropped, the stream continues.
    """

    def __init__(self, line: str, reason: str) -> None:
        self.line = line
        self.reason = reason
        super().__init__(f"{reason}: {line[:200]}")


class LaunchError(TurnbridgeError):
    """The invocation could not be started (missing executable, bad spawn)."""


class ProcessTimeout(TurnbridgeError):
    """The subprocess exceeded its hard deadline and was destroyed."""


class InterruptedInvocation(TurnbridgeError):
    """The invocation was cancelled through the channel registry."""


class ApprovalTimeout(TurnbridgeError):
    """No human response arrived before the approval deadline.

    The broker never raises this to callers; expired requests resolve to
    their safe default instead and the timeout is logged.
    """

    def __init__(self, request_id: str, timeout: float) -> None:
        self.request_id = request_id
        self.timeout = timeout
        super().__init__(f"Approval {request_id} timed out after {timeout}s")


class BridgeError(TurnbridgeError):
    """The agent script reported a failure for a metadata command."""

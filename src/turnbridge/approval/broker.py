"""Approval broker — correlates request ids with pending human decisions."""

from __future__ import annotations

import json
import logging
import threading
import time
from concurrent.futures import Future, InvalidStateError
from dataclasses import dataclass, field
from typing import Any

from pydantic import BaseModel

from turnbridge.approval.delivery import (
    Delivery,
    InlineExecutor,
    RetryPolicy,
    UIExecutor,
    UISurface,
)
from turnbridge.constants import APPROVAL_TIMEOUT
from turnbridge.errors import ApprovalTimeout

logger = logging.getLogger(__name__)


@dataclass
class PendingApproval:
    """One outstanding request: its future, default and deadline."""

    request_id: str
    hook: str
    future: Future[Any]
    default: Any
    deadline: float
    timer: threading.Timer | None = field(default=None, repr=False)
    delivery: Delivery | None = field(default=None, repr=False)

    def stop(self) -> None:
        if self.timer is not None:
            self.timer.cancel()
        if self.delivery is not None:
            self.delivery.cancel()


class ApprovalBroker:
    """Owns every pending approval and resolves each exactly once.

    A request completes on the first of: a UI response, its deadline,
    ``clear_pending`` or failed delivery.  Entries are popped under the
    lock before their future is completed, so later writers find nothing
    and become no-ops.
    """

    def __init__(
        self,
        surface: UISurface,
        executor: UIExecutor | None = None,
        policy: RetryPolicy | None = None,
        default_timeout: float = APPROVAL_TIMEOUT,
    ) -> None:
        self._surface = surface
        self._executor = executor if executor is not None else InlineExecutor()
        self._policy = policy if policy is not None else RetryPolicy()
        self._default_timeout = default_timeout
        self._lock = threading.Lock()
        self._pending: dict[str, PendingApproval] = {}

    def request(
        self,
        request_id: str,
        payload: BaseModel | dict[str, Any],
        timeout: float | None = None,
        default: Any = None,
        *,
        hook: str,
    ) -> Future[Any]:
        """Register *request_id* and push *payload* to the UI.

        Returns a future that resolves to the human decision, or to
        *default* on timeout, clear or undeliverable request.
        """
        timeout = self._default_timeout if timeout is None else timeout
        if isinstance(payload, BaseModel):
            payload_json = payload.model_dump_json(by_alias=True)
        else:
            payload_json = json.dumps(payload)

        future: Future[Any] = Future()
        entry = PendingApproval(
            request_id=request_id,
            hook=hook,
            future=future,
            default=default,
            deadline=time.monotonic() + timeout,
        )
        # Both exist before the entry is visible, so stop() can cancel them.
        entry.delivery = Delivery(
            self._surface,
            self._executor,
            self._policy,
            hook,
            payload_json,
            on_exhausted=lambda: self._complete(request_id, default, "undeliverable"),
        )
        entry.timer = threading.Timer(timeout, self._expire, args=(request_id, timeout))
        entry.timer.daemon = True
        with self._lock:
            if request_id in self._pending:
                msg = f"Approval request {request_id} is already pending"
                raise ValueError(msg)
            self._pending[request_id] = entry

        future.add_done_callback(lambda f: self._forget_cancelled(request_id, f))
        logger.info("Approval %s requested via %s (timeout %ss)", request_id, hook, timeout)
        entry.timer.start()
        entry.delivery.start()
        return future

    def resolve(self, request_id: str, decision: Any) -> bool:
        """Complete *request_id* with a human decision.

        Returns ``False`` when the id is unknown or already resolved.
        """
        return self._complete(request_id, decision, "response")

    def clear_pending(self) -> int:
        """Resolve every outstanding request to its default immediately."""
        with self._lock:
            entries = list(self._pending.values())
            self._pending.clear()
        for entry in entries:
            self._finish(entry, entry.default, "cleared")
        if entries:
            logger.info("Cleared %d pending approval(s)", len(entries))
        return len(entries)

    @property
    def pending_count(self) -> int:
        with self._lock:
            return len(self._pending)

    def is_pending(self, request_id: str) -> bool:
        with self._lock:
            return request_id in self._pending

    def shutdown(self) -> None:
        """Clear all requests and stop the UI executor if it owns a thread."""
        self.clear_pending()
        stop = getattr(self._executor, "shutdown", None)
        if callable(stop):
            stop()

    # ------------------------------------------------------------------ #
    # Internal
    # ------------------------------------------------------------------ #

    def _expire(self, request_id: str, timeout: float) -> None:
        with self._lock:
            entry = self._pending.pop(request_id, None)
        if entry is None:
            return
        logger.warning("%s; resolving to default", ApprovalTimeout(request_id, timeout))
        self._finish(entry, entry.default, "timeout")

    def _complete(self, request_id: str, value: Any, reason: str) -> bool:
        with self._lock:
            entry = self._pending.pop(request_id, None)
        if entry is None:
            logger.debug(
                "Approval %s %s ignored (missing or already resolved)",
                request_id,
                reason,
            )
            return False
        return self._finish(entry, value, reason)

    @staticmethod
    def _finish(entry: PendingApproval, value: Any, reason: str) -> bool:
        entry.stop()
        try:
            entry.future.set_result(value)
        except InvalidStateError:
            # The waiter cancelled its future.
            return False
        logger.info("Approval %s resolved by %s", entry.request_id, reason)
        return True

    def _forget_cancelled(self, request_id: str, future: Future[Any]) -> None:
        if not future.cancelled():
            return
        with self._lock:
            entry = self._pending.get(request_id)
            if entry is None or entry.future is not future:
                return
            del self._pending[request_id]
        entry.stop()
        logger.debug("Approval %s abandoned by its waiter", request_id)

"""Delivery of approval requests to the UI, with bounded retries.

The UI may not be ready when a request is raised (its dialog hooks are
registered asynchronously), so each push is retried on a fixed schedule.
Attempts run on a ``UIExecutor``; the waits between them run on timer
threads, never on the UI thread or the event loop.
"""

from __future__ import annotations

import asyncio
import logging
import queue
import threading
from collections.abc import Callable
from dataclasses import dataclass
from functools import partial
from typing import Protocol

from turnbridge.constants import DELIVERY_DELAY, DELIVERY_MAX_ATTEMPTS

logger = logging.getLogger(__name__)


class UISurface(Protocol):
    """Where approval dialogs are shown."""

    def push(self, hook: str, payload_json: str) -> bool:
        """Show *payload_json* through *hook*; ``False`` if not ready yet."""
        ...


class UIExecutor(Protocol):
    """Runs callables with the thread affinity the UI requires."""

    def submit(self, fn: Callable[[], None]) -> None: ...


class InlineExecutor:
    """Runs each callable immediately on the calling thread."""

    def submit(self, fn: Callable[[], None]) -> None:
        fn()


class LoopExecutor:
    """Runs callables on an asyncio event loop, from any thread."""

    def __init__(self, loop: asyncio.AbstractEventLoop) -> None:
        self._loop = loop

    def submit(self, fn: Callable[[], None]) -> None:
        self._loop.call_soon_threadsafe(fn)


class ThreadExecutor:
    """Runs callables in order on one daemon worker thread.

    The worker is a daemon so a callable still blocked at exit (a terminal
    prompt nobody answered) does not keep the interpreter alive.
    """

    def __init__(self, thread_name_prefix: str = "turnbridge-ui") -> None:
        self._queue: queue.SimpleQueue[Callable[[], None] | None] = (
            queue.SimpleQueue()
        )
        self._lock = threading.Lock()
        self._closed = False
        self._thread = threading.Thread(
            target=self._work, name=f"{thread_name_prefix}-0", daemon=True
        )
        self._thread.start()

    def submit(self, fn: Callable[[], None]) -> None:
        with self._lock:
            if self._closed:
                logger.debug("UI executor closed, dropping %r", fn)
                return
            self._queue.put(fn)

    def shutdown(self) -> None:
        """Stop accepting work; a callable already running is abandoned."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            self._queue.put(None)

    def _work(self) -> None:
        while True:
            fn = self._queue.get()
            # Work queued before shutdown is dropped.
            if fn is None or self._closed:
                return
            try:
                fn()
            except Exception:
                logger.exception("UI callable failed")


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = DELIVERY_MAX_ATTEMPTS
    delay: float = DELIVERY_DELAY
    backoff: float = 1.0

    def delay_before(self, attempt: int) -> float:
        """Seconds to wait before 0-based *attempt*."""
        if attempt <= 0:
            return 0.0
        return self.delay * (self.backoff ** (attempt - 1))


class Delivery:
    """Pushes one payload to the UI until it is accepted or attempts run out."""

    def __init__(
        self,
        surface: UISurface,
        executor: UIExecutor,
        policy: RetryPolicy,
        hook: str,
        payload_json: str,
        *,
        on_exhausted: Callable[[], None] | None = None,
    ) -> None:
        self._surface = surface
        self._executor = executor
        self._policy = policy
        self._hook = hook
        self._payload_json = payload_json
        self._on_exhausted = on_exhausted
        self._lock = threading.Lock()
        self._timer: threading.Timer | None = None
        self._cancelled = False
        self.attempts = 0
        self.delivered = False

    def start(self) -> None:
        self._schedule(0)

    def cancel(self) -> None:
        """Stop further attempts (the request was resolved)."""
        with self._lock:
            self._cancelled = True
            timer, self._timer = self._timer, None
        if timer is not None:
            timer.cancel()

    def _schedule(self, attempt: int) -> None:
        delay = self._policy.delay_before(attempt)
        run = partial(self._executor.submit, partial(self._attempt, attempt))
        if delay <= 0:
            run()
            return
        timer = threading.Timer(delay, run)
        timer.daemon = True
        with self._lock:
            if self._cancelled:
                return
            self._timer = timer
        timer.start()

    def _attempt(self, attempt: int) -> None:
        with self._lock:
            if self._cancelled:
                return
        self.attempts = attempt + 1
        try:
            accepted = self._surface.push(self._hook, self._payload_json)
        except Exception:
            logger.exception("UI push through %s raised", self._hook)
            accepted = False

        if accepted:
            self.delivered = True
            logger.debug("Delivered %s after %d attempt(s)", self._hook, self.attempts)
            return

        if self.attempts >= self._policy.max_attempts:
            logger.error(
                "UI never accepted %s after %d attempts", self._hook, self.attempts
            )
            if self._on_exhausted is not None:
                self._on_exhausted()
            return
        self._schedule(attempt + 1)

"""Periodic asyncio work that stops when the host begins shutting down."""

from __future__ import annotations

import asyncio
import contextlib
import logging

logger = logging.getLogger(__name__)


class BackgroundLoop:
    """Run :meth:`_tick` every *interval* seconds until *shutdown_event* fires.

    A failing tick is logged and the loop carries on; only cancellation
    or the shutdown event end it.
    """

    def __init__(
        self,
        shutdown_event: asyncio.Event,
        interval: int | float,
    ) -> None:
        self._shutdown_event = shutdown_event
        self._interval = interval
        self._task: asyncio.Task[None] | None = None

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        """Schedule the loop unless it is already running or vetoed."""
        if self.running:
            return
        if not self._should_start():
            logger.debug("%s not started", type(self).__name__)
            return
        self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        """Cancel the loop task and wait for it to unwind."""
        task, self._task = self._task, None
        if task is None or task.done():
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    # ------------------------------------------------------------------ #
    # Subclass hooks
    # ------------------------------------------------------------------ #

    def _should_start(self) -> bool:
        return True

    async def _tick(self) -> None:
        raise NotImplementedError

    # ------------------------------------------------------------------ #
    # Internal
    # ------------------------------------------------------------------ #

    async def _wait_for_shutdown(self, seconds: float) -> bool:
        """Return ``True`` if shutdown was signalled within *seconds*."""
        try:
            await asyncio.wait_for(self._shutdown_event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            return False
        return True

    async def _run(self) -> None:
        with contextlib.suppress(asyncio.CancelledError):
            while not self._shutdown_event.is_set():
                if await self._wait_for_shutdown(self._interval):
                    break
                try:
                    await self._tick()
                except Exception:
                    logger.exception("%s tick failed", type(self).__name__)

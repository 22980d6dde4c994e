"""ShutdownManager — tears the host down in four ordered steps."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Collection

import click

from turnbridge.approval.broker import ApprovalBroker
from turnbridge.registry import ChannelRegistry
from turnbridge.workspace import WorkspaceManager

logger = logging.getLogger(__name__)


def _format_duration(seconds: float) -> str:
    """Render *seconds* as ``34.2s`` below a minute and ``1m 22s`` above."""
    if seconds < 60:
        return f"{seconds:.1f}s"
    whole_minutes, rest = divmod(int(seconds), 60)
    return f"{whole_minutes}m {rest:02d}s"


class ShutdownManager:
    """Runs SIGNAL, DRAIN, KILL and CLOSE exactly once.

    SIGNAL answers every open approval with its default so blocked turns
    can finish. DRAIN gives in-flight launches ``drain_timeout`` seconds.
    KILL cancels the stragglers and force-kills tracked subprocesses.
    CLOSE sweeps stale temp files and prints a one-line summary.
    """

    DRAIN_TIMEOUT = 10.0

    def __init__(
        self,
        registry: ChannelRegistry,
        broker: ApprovalBroker,
        workspaces: WorkspaceManager,
        in_flight: Collection[asyncio.Task[object]] = (),
        drain_timeout: float | None = None,
    ) -> None:
        self._registry = registry
        self._broker = broker
        self._workspaces = workspaces
        self._in_flight = in_flight
        if drain_timeout is None:
            drain_timeout = self.DRAIN_TIMEOUT
        self._drain_timeout = drain_timeout
        self._started = time.monotonic()
        self._finished = False
        self.cleared_approvals = 0
        self.cancelled_tasks = 0
        self.killed_processes = 0
        self.stale_entries = 0

    async def execute(self, reason: str) -> None:
        """Shut down, recording *reason* in the summary line."""
        if self._finished:
            return
        self._finished = True

        await self._signal()
        if await self._drain():
            # A clean drain normally leaves nothing registered.
            self.killed_processes = self._registry.cleanup_all()
        else:
            await self._kill()
        await self._close(reason)

    # ------------------------------------------------------------------ #
    # Step 1: SIGNAL
    # ------------------------------------------------------------------ #

    async def _signal(self) -> None:
        self.cleared_approvals = self._broker.clear_pending()
        if self.cleared_approvals:
            logger.info(
                "Resolved %d pending approval(s) to defaults",
                self.cleared_approvals,
            )

    # ------------------------------------------------------------------ #
    # Step 2: DRAIN
    # ------------------------------------------------------------------ #

    async def _drain(self) -> bool:
        """Return ``False`` when some launch outlived the drain window."""
        running = [task for task in self._in_flight if not task.done()]
        if not running:
            return True

        click.echo("\nDraining in-flight invocations...", err=True)
        # asyncio.wait leaves stragglers running; KILL cancels them.
        _, stragglers = await asyncio.wait(running, timeout=self._drain_timeout)
        if stragglers:
            logger.warning(
                "Drain timeout: %d invocation(s) still running", len(stragglers)
            )
        return not stragglers

    # ------------------------------------------------------------------ #
    # Step 3: KILL
    # ------------------------------------------------------------------ #

    async def _kill(self) -> None:
        tasks = list(self._in_flight)
        for task in tasks:
            if task.done():
                continue
            task.cancel()
            self.cancelled_tasks += 1
        if self.cancelled_tasks:
            click.echo(f"Cancelled {self.cancelled_tasks} remaining task(s).", err=True)

        # Kill before awaiting so cancelled launches skip the SIGTERM grace.
        self.killed_processes = self._registry.cleanup_all()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    # ------------------------------------------------------------------ #
    # Step 4: CLOSE
    # ------------------------------------------------------------------ #

    async def _close(self, reason: str) -> None:
        try:
            self.stale_entries = self._workspaces.sweep_stale()
        except OSError:
            logger.exception("Stale temp-file sweep failed")

        parts = [
            f"Shutdown ({reason})",
            _format_duration(time.monotonic() - self._started),
            f"{self.cleared_approvals} approval(s) cleared",
            f"{self.killed_processes} process(es) killed",
        ]
        if self.stale_entries:
            parts.append(f"{self.stale_entries} stale temp entries removed")
        click.echo(" | ".join(parts), err=True)

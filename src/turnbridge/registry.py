"""Tracks the live subprocess behind each channel."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import threading
from dataclasses import dataclass, field

from turnbridge.constants import TERMINATE_GRACE
from turnbridge.workspace import TempWorkspace

logger = logging.getLogger(__name__)


@dataclass
class ProcessHandle:
    """A running invocation: its subprocess and temp workspace.

    Owned by the launcher; the registry only holds a reference so the
    invocation can be interrupted from another task or thread.
    """

    channel_id: str
    process: asyncio.subprocess.Process
    workspace: TempWorkspace | None = None
    loop: asyncio.AbstractEventLoop | None = field(default=None, repr=False)

    @property
    def pid(self) -> int:
        return self.process.pid

    @property
    def alive(self) -> bool:
        return self.process.returncode is None

    def terminate(self) -> None:
        """Send SIGTERM now and SIGKILL after a grace period.

        Safe to call from any thread.
        """
        if self.loop is not None and self.loop.is_running():
            with contextlib.suppress(RuntimeError):
                self.loop.call_soon_threadsafe(self._terminate_now)
                return
        self._terminate_now()

    def kill(self) -> None:
        """Send SIGKILL immediately.  Safe to call from any thread."""
        if self.loop is not None and self.loop.is_running():
            with contextlib.suppress(RuntimeError):
                self.loop.call_soon_threadsafe(self._kill_now)
                return
        self._kill_now()

    def _terminate_now(self) -> None:
        if not self.alive:
            return
        with contextlib.suppress(ProcessLookupError):
            self.process.terminate()
        if self.loop is not None:
            self.loop.call_later(TERMINATE_GRACE, self._kill_now)

    def _kill_now(self) -> None:
        if not self.alive:
            return
        with contextlib.suppress(ProcessLookupError):
            self.process.kill()


class ChannelRegistry:
    """Maps channel ids to live invocations and records interrupts.

    Only insert/remove happen under the lock; signals are sent after it
    is released.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._handles: dict[str, ProcessHandle] = {}
        self._interrupted: set[str] = set()

    def register(self, channel_id: str, handle: ProcessHandle) -> None:
        """Track *handle* under *channel_id*, clearing any stale interrupt."""
        with self._lock:
            previous = self._handles.get(channel_id)
            self._handles[channel_id] = handle
            self._interrupted.discard(channel_id)
        if previous is not None and previous is not handle:
            logger.warning(
                "Channel %s re-registered while pid %d was still tracked",
                channel_id,
                previous.pid,
            )
        logger.debug("Registered channel %s (pid %d)", channel_id, handle.pid)

    def unregister(self, channel_id: str, handle: ProcessHandle) -> bool:
        """Stop tracking *channel_id* if it still maps to *handle*."""
        with self._lock:
            if self._handles.get(channel_id) is not handle:
                return False
            del self._handles[channel_id]
        logger.debug("Unregistered channel %s", channel_id)
        return True

    def interrupt(self, channel_id: str) -> bool:
        """Mark *channel_id* interrupted and stop its subprocess.

        Returns ``False`` when no live process is tracked for the channel.
        """
        with self._lock:
            handle = self._handles.get(channel_id)
            if handle is None or not handle.alive:
                return False
            self._interrupted.add(channel_id)
        logger.info("Interrupting channel %s (pid %d)", channel_id, handle.pid)
        handle.terminate()
        return True

    def was_interrupted(self, channel_id: str) -> bool:
        """Report and consume the interrupt flag for *channel_id*."""
        with self._lock:
            if channel_id in self._interrupted:
                self._interrupted.discard(channel_id)
                return True
            return False

    def cleanup_all(self) -> int:
        """Kill every tracked subprocess and forget all channels.

        Idempotent; returns the number of processes signalled.
        """
        with self._lock:
            handles = list(self._handles.values())
            self._handles.clear()
            self._interrupted.clear()
        killed = 0
        for handle in handles:
            if handle.alive:
                handle.kill()
                killed += 1
        if handles:
            logger.info(
                "Cleaned up %d channel(s), killed %d process(es)",
                len(handles),
                killed,
            )
        return killed

    def get(self, channel_id: str) -> ProcessHandle | None:
        with self._lock:
            return self._handles.get(channel_id)

    @property
    def active_count(self) -> int:
        with self._lock:
            return len(self._handles)

    def __contains__(self, channel_id: object) -> bool:
        with self._lock:
            return channel_id in self._handles

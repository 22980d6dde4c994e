"""Tests for the ShutdownManager 4-step shutdown sequence."""

from __future__ import annotations

import asyncio
from unittest.mock import MagicMock

import pytest

from turnbridge.approval import ApprovalBroker, RetryPolicy
from turnbridge.registry import ChannelRegistry, ProcessHandle
from turnbridge.shutdown import ShutdownManager, _format_duration
from turnbridge.workspace import WorkspaceManager


class _AcceptAll:
    def push(self, hook: str, payload_json: str) -> bool:
        return True


def _make_manager(
    in_flight: set[asyncio.Task[object]] | None = None,
    drain_timeout: float | None = None,
) -> tuple[ShutdownManager, MagicMock, ApprovalBroker, MagicMock]:
    registry = MagicMock(spec=ChannelRegistry)
    registry.cleanup_all.return_value = 0
    broker = ApprovalBroker(_AcceptAll(), policy=RetryPolicy(max_attempts=1))
    workspaces = MagicMock(spec=WorkspaceManager)
    workspaces.sweep_stale.return_value = 0
    manager = ShutdownManager(
        registry=registry,
        broker=broker,
        workspaces=workspaces,
        in_flight=in_flight if in_flight is not None else set(),
        drain_timeout=drain_timeout,
    )
    return manager, registry, broker, workspaces


class TestFormatDuration:
    @pytest.mark.parametrize(
        ("seconds", "expected"),
        [(0.0, "0.0s"), (34.24, "34.2s"), (60.0, "1m 00s"), (82.0, "1m 22s")],
    )
    def test_format(self, seconds: float, expected: str) -> None:
        assert _format_duration(seconds) == expected


class TestSignal:
    async def test_pending_approvals_resolve_to_defaults(self) -> None:
        manager, _, broker, _ = _make_manager()
        future = broker.request("r1", {}, default="denied", hook="h")

        await manager.execute("user")

        assert future.result(timeout=1) == "denied"
        assert manager.cleared_approvals == 1


class TestDrain:
    async def test_finished_tasks_are_not_cancelled(self) -> None:
        async def quick() -> str:
            await asyncio.sleep(0.05)
            return "done"

        task = asyncio.create_task(quick())
        manager, registry, _, _ = _make_manager(in_flight={task})

        await manager.execute("complete")

        assert task.result() == "done"
        assert manager.cancelled_tasks == 0
        registry.cleanup_all.assert_called_once()

    async def test_drain_timeout_cancels_and_kills(self) -> None:
        task = asyncio.create_task(asyncio.sleep(30))
        manager, registry, _, _ = _make_manager(in_flight={task}, drain_timeout=0.1)
        registry.cleanup_all.return_value = 2

        await manager.execute("interrupt")

        assert task.cancelled()
        assert manager.cancelled_tasks == 1
        assert manager.killed_processes == 2
        registry.cleanup_all.assert_called_once()

    async def test_default_drain_timeout(self) -> None:
        manager, _, _, _ = _make_manager()
        assert manager._drain_timeout == ShutdownManager.DRAIN_TIMEOUT


class TestClose:
    async def test_sweeps_stale_entries_and_prints_summary(
        self, capsys: pytest.CaptureFixture[str]
    ) -> None:
        manager, _, _, workspaces = _make_manager()
        workspaces.sweep_stale.return_value = 3

        await manager.execute("completed")

        workspaces.sweep_stale.assert_called_once()
        assert manager.stale_entries == 3
        err = capsys.readouterr().err
        assert "Shutdown (completed)" in err
        assert "3 stale temp entries removed" in err

    async def test_sweep_failure_does_not_abort(
        self, capsys: pytest.CaptureFixture[str]
    ) -> None:
        manager, _, _, workspaces = _make_manager()
        workspaces.sweep_stale.side_effect = OSError("read-only fs")

        await manager.execute("error")

        assert "Shutdown (error)" in capsys.readouterr().err

    async def test_idempotent(self) -> None:
        manager, registry, _, workspaces = _make_manager()
        await manager.execute("first")
        await manager.execute("second")

        registry.cleanup_all.assert_called_once()
        workspaces.sweep_stale.assert_called_once()


class TestWithRealRegistry:
    async def test_nothing_left_tracked(self) -> None:
        registry = ChannelRegistry()
        process = MagicMock()
        process.pid = 1
        process.returncode = None
        registry.register("ch", ProcessHandle(channel_id="ch", process=process))
        broker = ApprovalBroker(_AcceptAll())
        workspaces = MagicMock(spec=WorkspaceManager)
        workspaces.sweep_stale.return_value = 0
        manager = ShutdownManager(registry, broker, workspaces)

        await manager.execute("done")

        assert registry.active_count == 0
        process.kill.assert_called_once()
        assert manager.killed_processes == 1

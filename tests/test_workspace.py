"""Tests for per-invocation temp workspaces and marker cleanup."""

from __future__ import annotations

import os
import time
from pathlib import Path

from turnbridge.workspace import DEFAULT_DIR_NAME, WorkspaceManager


def _touch(path: Path, age_seconds: float = 0.0) -> Path:
    path.write_text("", encoding="utf-8")
    if age_seconds:
        stamp = time.time() - age_seconds
        os.utime(path, (stamp, stamp))
    return path


class TestAllocate:
    def test_creates_dir_under_base(self, tmp_path: Path) -> None:
        manager = WorkspaceManager(base_dir=tmp_path)
        workspace = manager.allocate()

        assert workspace is not None
        assert workspace.path.is_dir()
        assert workspace.path.parent == tmp_path / DEFAULT_DIR_NAME
        assert workspace.owned
        assert workspace.snapshot == frozenset()

    def test_each_allocation_is_distinct(self, tmp_path: Path) -> None:
        manager = WorkspaceManager(base_dir=tmp_path)
        first = manager.allocate()
        second = manager.allocate()
        assert first is not None and second is not None
        assert first.path != second.path

    def test_env_points_every_variable_at_dir(self, tmp_path: Path) -> None:
        workspace = WorkspaceManager(base_dir=tmp_path).allocate()
        assert workspace is not None
        env = workspace.env()
        assert set(env) == {"TMPDIR", "TEMP", "TMP", "CLAUDE_CODE_TMPDIR"}
        assert set(env.values()) == {str(workspace.path)}

    def test_unusable_base_returns_none(self, tmp_path: Path) -> None:
        blocker = tmp_path / "file"
        blocker.write_text("not a directory", encoding="utf-8")
        manager = WorkspaceManager(base_dir=blocker)
        assert manager.allocate() is None


class TestCleanup:
    def test_only_new_markers_removed(self, tmp_path: Path) -> None:
        shared = tmp_path / "shared"
        shared.mkdir()
        _touch(shared / "claude-x-cwd")
        _touch(shared / "claude-y-cwd")
        manager = WorkspaceManager(base_dir=tmp_path)

        workspace = manager.adopt(shared)
        assert workspace.snapshot == {"claude-x-cwd", "claude-y-cwd"}

        _touch(shared / "claude-z-cwd")
        _touch(shared / "notes.txt")
        removed = manager.cleanup(workspace)

        assert removed == ["claude-z-cwd"]
        remaining = {p.name for p in shared.iterdir()}
        assert remaining == {"claude-x-cwd", "claude-y-cwd", "notes.txt"}

    def test_adopted_dir_survives(self, tmp_path: Path) -> None:
        shared = tmp_path / "shared"
        shared.mkdir()
        manager = WorkspaceManager(base_dir=tmp_path)
        manager.cleanup(manager.adopt(shared))
        assert shared.is_dir()

    def test_owned_dir_removed(self, tmp_path: Path) -> None:
        manager = WorkspaceManager(base_dir=tmp_path)
        workspace = manager.allocate()
        assert workspace is not None
        _touch(workspace.path / "claude-abc-cwd")
        (workspace.path / "nested").mkdir()
        _touch(workspace.path / "nested" / "scratch.bin")

        removed = manager.cleanup(workspace)

        assert removed == ["claude-abc-cwd"]
        assert not workspace.path.exists()

    def test_cleanup_does_not_touch_siblings(self, tmp_path: Path) -> None:
        manager = WorkspaceManager(base_dir=tmp_path)
        first = manager.allocate()
        second = manager.allocate()
        assert first is not None and second is not None
        _touch(second.path / "claude-other-cwd")

        manager.cleanup(first)

        assert (second.path / "claude-other-cwd").exists()

    def test_none_is_noop(self, tmp_path: Path) -> None:
        assert WorkspaceManager(base_dir=tmp_path).cleanup(None) == []


class TestMarkers:
    def test_marker_pattern(self) -> None:
        manager = WorkspaceManager()
        assert manager.is_marker("claude-1234-cwd")
        assert not manager.is_marker("claude-1234")
        assert not manager.is_marker("other-cwd")

    def test_custom_pattern(self) -> None:
        manager = WorkspaceManager(marker_prefix="agent-", marker_suffix=".lock")
        assert manager.is_marker("agent-1.lock")
        assert not manager.is_marker("claude-1-cwd")

    def test_snapshot_ignores_directories(self, tmp_path: Path) -> None:
        (tmp_path / "claude-dir-cwd").mkdir()
        _touch(tmp_path / "claude-file-cwd")
        manager = WorkspaceManager()
        assert manager.snapshot(tmp_path) == {"claude-file-cwd"}

    def test_snapshot_of_missing_dir_is_empty(self, tmp_path: Path) -> None:
        assert WorkspaceManager().snapshot(tmp_path / "missing") == frozenset()


class TestSweepStale:
    def test_removes_old_entries_only(self, tmp_path: Path) -> None:
        manager = WorkspaceManager(base_dir=tmp_path, stale_hours=1.0)
        base = manager.base_dir
        base.mkdir(parents=True)

        old_turn = base / "turn-old"
        old_turn.mkdir()
        _touch(base / "claude-old-cwd", age_seconds=7200)
        _touch(base / "claude-new-cwd")
        _touch(base / "unrelated.txt", age_seconds=7200)
        stamp = time.time() - 7200
        os.utime(old_turn, (stamp, stamp))
        fresh = manager.allocate()
        assert fresh is not None

        assert manager.sweep_stale() == 2

        assert not old_turn.exists()
        assert not (base / "claude-old-cwd").exists()
        assert (base / "claude-new-cwd").exists()
        assert (base / "unrelated.txt").exists()
        assert fresh.path.exists()

    def test_explicit_clock(self, tmp_path: Path) -> None:
        manager = WorkspaceManager(base_dir=tmp_path, stale_hours=1.0)
        manager.base_dir.mkdir(parents=True)
        _touch(manager.base_dir / "claude-a-cwd")

        assert manager.sweep_stale(now=time.time()) == 0
        assert manager.sweep_stale(now=time.time() + 7200) == 1

    def test_missing_base_is_noop(self, tmp_path: Path) -> None:
        assert WorkspaceManager(base_dir=tmp_path / "nope").sweep_stale() == 0

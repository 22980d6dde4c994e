"""Per-invocation scratch directories and temp-marker cleanup."""

from __future__ import annotations

import logging
import shutil
import tempfile
import time
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)

#: Directory under the system temp dir that holds every turn workspace.
DEFAULT_DIR_NAME = "claude-agent-tmp"

#: Scratch dirs allocated by the manager start with this prefix.
_TURN_DIR_PREFIX = "turn-"

#: Attempts per file when purging (files can be briefly locked on Windows).
_DELETE_ATTEMPTS = 3


@dataclass(frozen=True)
class TempWorkspace:
    """One invocation's scratch directory and its pre-start snapshot."""

    path: Path
    snapshot: frozenset[str]
    owned: bool = True

    def env(self) -> dict[str, str]:
        """Environment variables pointing the subprocess at this workspace."""
        value = str(self.path)
        return {
            "TMPDIR": value,
            "TEMP": value,
            "TMP": value,
            "CLAUDE_CODE_TMPDIR": value,
        }


class WorkspaceManager:
    """Allocates scratch dirs and purges only what an invocation created.

    The agent CLI drops marker files (``claude-*-cwd``) into its temp dir.
    A snapshot of marker names is taken before the subprocess starts so
    cleanup deletes exactly the markers created afterwards.
    """

    def __init__(
        self,
        base_dir: Path | None = None,
        dir_name: str = DEFAULT_DIR_NAME,
        marker_prefix: str = "claude-",
        marker_suffix: str = "-cwd",
        stale_hours: float = 24.0,
    ) -> None:
        root = base_dir if base_dir is not None else Path(tempfile.gettempdir())
        self._base = root / dir_name
        self._marker_prefix = marker_prefix
        self._marker_suffix = marker_suffix
        self._stale_seconds = stale_hours * 3600

    @property
    def base_dir(self) -> Path:
        return self._base

    def is_marker(self, name: str) -> bool:
        """True when *name* looks like an agent temp marker file."""
        return name.startswith(self._marker_prefix) and name.endswith(
            self._marker_suffix
        )

    # ------------------------------------------------------------------ #
    # Allocation
    # ------------------------------------------------------------------ #

    def allocate(self) -> TempWorkspace | None:
        """Create a fresh scratch dir; ``None`` if the temp root is unusable."""
        try:
            self._base.mkdir(parents=True, exist_ok=True)
            path = Path(tempfile.mkdtemp(prefix=_TURN_DIR_PREFIX, dir=self._base))
        except OSError as exc:
            logger.error("Failed to prepare temp dir under %s: %s", self._base, exc)
            return None
        return TempWorkspace(path=path, snapshot=self.snapshot(path), owned=True)

    def adopt(self, path: Path) -> TempWorkspace:
        """Track an existing directory without taking ownership of it."""
        return TempWorkspace(path=path, snapshot=self.snapshot(path), owned=False)

    def snapshot(self, path: Path) -> frozenset[str]:
        """Names of marker files currently present in *path*."""
        try:
            return frozenset(
                entry.name
                for entry in path.iterdir()
                if entry.is_file() and self.is_marker(entry.name)
            )
        except OSError:
            return frozenset()

    # ------------------------------------------------------------------ #
    # Cleanup
    # ------------------------------------------------------------------ #

    def cleanup(self, workspace: TempWorkspace | None) -> list[str]:
        """Delete marker files created since the snapshot.

        Owned scratch dirs are removed entirely afterwards.  Returns the
        names of the purged marker files.
        """
        if workspace is None:
            return []

        created = sorted(self.snapshot(workspace.path) - workspace.snapshot)
        removed = [
            name for name in created if _delete_with_retry(workspace.path / name)
        ]
        if removed:
            logger.debug(
                "Purged %d temp marker(s) from %s", len(removed), workspace.path
            )

        if workspace.owned:
            shutil.rmtree(workspace.path, onexc=_log_rmtree_error)
        return removed

    def sweep_stale(self, now: float | None = None) -> int:
        """Remove markers and turn dirs older than the stale threshold.

        Safe while other invocations run: live workspaces are younger
        than the threshold.
        """
        if not self._base.is_dir():
            return 0
        now = time.time() if now is None else now
        cleaned = 0
        for entry in self._base.iterdir():
            try:
                age = now - entry.stat().st_mtime
            except OSError:
                continue
            if age <= self._stale_seconds:
                continue
            if entry.is_dir() and entry.name.startswith(_TURN_DIR_PREFIX):
                shutil.rmtree(entry, onexc=_log_rmtree_error)
                cleaned += 1
            elif entry.is_file() and self.is_marker(entry.name):
                if _delete_with_retry(entry):
                    cleaned += 1
        if cleaned:
            logger.info("Cleaned up %d stale temp entries in %s", cleaned, self._base)
        return cleaned


def _delete_with_retry(path: Path, attempts: int = _DELETE_ATTEMPTS) -> bool:
    for attempt in range(attempts):
        try:
            path.unlink(missing_ok=True)
            return True
        except OSError as exc:
            if attempt == attempts - 1:
                logger.error("Failed to delete temp file %s: %s", path, exc)
            else:
                time.sleep(0.05)
    return False


def _log_rmtree_error(func: object, path: str, exc: BaseException) -> None:
    logger.warning("Failed to remove %s: %s", path, exc)

"""Shared helper functions for the command launcher."""

from __future__ import annotations

import logging
import shutil
from pathlib import Path

from turnbridge.constants import EMPTY_CWD_VALUES
from turnbridge.errors import LaunchError

logger = logging.getLogger(__name__)


def format_output_preview(lines: list[str], max_lines: int = 5) -> str:
    """Format the last N non-empty lines of subprocess output."""
    kept = [line for line in lines if line.strip()]
    last = kept[-max_lines:] if len(kept) > max_lines else kept
    return "\n  ".join(last)


def resolve_executable(executable: str) -> str:
    """Return the absolute path of *executable*, searching ``PATH``."""
    found = shutil.which(executable)
    if found is None:
        msg = (
            f"Executable not found: {executable}\n"
            f"Make sure '{executable}' is installed and on your PATH."
        )
        raise LaunchError(msg)
    return found


def resolve_script(script_path: str | Path) -> Path:
    """Return *script_path* as a path, raising if it is not a file."""
    script = Path(script_path)
    if not script.is_file():
        msg = f"Agent script not found: {script}"
        raise LaunchError(msg)
    return script


def resolve_working_dir(requested: str | Path | None, fallback: Path) -> Path:
    """Pick the subprocess cwd.

    The requested directory wins when it names an existing directory;
    empty placeholders and missing paths fall back to *fallback*.
    """
    if requested is None or str(requested) in EMPTY_CWD_VALUES:
        return fallback
    candidate = Path(requested)
    if candidate.is_dir():
        return candidate
    logger.debug("Working dir %s does not exist, using %s", candidate, fallback)
    return fallback

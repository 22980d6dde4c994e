"""Shared fixtures: real launcher wiring with Python scripts as the agent."""

from __future__ import annotations

import textwrap
from collections.abc import Callable
from pathlib import Path

import pytest

from turnbridge.launcher import CommandLauncher
from turnbridge.registry import ChannelRegistry
from turnbridge.workspace import WorkspaceManager


@pytest.fixture
def registry() -> ChannelRegistry:
    return ChannelRegistry()


@pytest.fixture
def workspaces(tmp_path: Path) -> WorkspaceManager:
    return WorkspaceManager(base_dir=tmp_path / "tmp")


@pytest.fixture
def project_dir(tmp_path: Path) -> Path:
    path = tmp_path / "project"
    path.mkdir()
    return path


@pytest.fixture
def launcher(
    registry: ChannelRegistry, workspaces: WorkspaceManager, project_dir: Path
) -> CommandLauncher:
    return CommandLauncher(
        registry=registry,
        workspaces=workspaces,
        default_working_dir=project_dir,
        terminate_grace=0.5,
    )


@pytest.fixture
def make_agent(tmp_path: Path) -> Callable[..., Path]:
    """Write a Python agent script and return its path."""
    counter = iter(range(1000))

    def _make(body: str, name: str | None = None) -> Path:
        path = tmp_path / (name or f"agent_{next(counter)}.py")
        path.write_text(textwrap.dedent(body), encoding="utf-8")
        return path

    return _make

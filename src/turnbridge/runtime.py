"""Wire launcher, bridge and approval components from a loaded config."""

from __future__ import annotations

import asyncio
import uuid
from dataclasses import dataclass, field
from pathlib import Path

from turnbridge.approval import (
    ApprovalBroker,
    ApprovalService,
    PermissionWatcher,
    RetryPolicy,
    ThreadExecutor,
    UIExecutor,
    UISurface,
)
from turnbridge.bridge import AgentBridge
from turnbridge.config import TurnbridgeConfig
from turnbridge.launcher import CommandLauncher
from turnbridge.registry import ChannelRegistry
from turnbridge.shutdown import ShutdownManager
from turnbridge.workspace import WorkspaceManager


@dataclass
class Runtime:
    """Every long-lived component of one host process."""

    config: TurnbridgeConfig
    registry: ChannelRegistry
    workspaces: WorkspaceManager
    launcher: CommandLauncher
    broker: ApprovalBroker
    service: ApprovalService
    watcher: PermissionWatcher
    bridge: AgentBridge
    in_flight: set[asyncio.Task[object]] = field(default_factory=set)

    def shutdown_manager(self) -> ShutdownManager:
        return ShutdownManager(
            registry=self.registry,
            broker=self.broker,
            workspaces=self.workspaces,
            in_flight=self.in_flight,
        )


def build_runtime(
    config: TurnbridgeConfig,
    surface: UISurface,
    executor: UIExecutor | None = None,
    session_id: str | None = None,
) -> Runtime:
    """Build the component graph described by *config*."""
    ws = config.workspace
    workspaces = WorkspaceManager(
        dir_name=ws.temp_dir_name,
        marker_prefix=ws.marker_prefix,
        marker_suffix=ws.marker_suffix,
        stale_hours=ws.stale_hours,
    )
    registry = ChannelRegistry()
    launcher = CommandLauncher(
        registry=registry,
        workspaces=workspaces,
        default_working_dir=Path(config.bridge.workspace_root),
    )

    delivery = config.delivery
    broker = ApprovalBroker(
        surface,
        executor if executor is not None else ThreadExecutor(),
        RetryPolicy(
            max_attempts=delivery.max_attempts,
            delay=delivery.delay,
            backoff=delivery.backoff,
        ),
        default_timeout=config.timeouts.approval,
    )
    service = ApprovalService(broker, timeout=config.timeouts.approval)

    permission_dir = config.approval.permission_dir
    watcher = PermissionWatcher(
        service,
        directory=Path(permission_dir) if permission_dir else None,
        session_id=session_id or uuid.uuid4().hex[:12],
        interval=config.approval.poll_interval,
    )

    bridge = AgentBridge(
        launcher=launcher,
        registry=registry,
        executable=config.bridge.executable,
        script=Path(config.bridge.script),
        env={**config.bridge.env, **watcher.env()},
        message_timeout=config.timeouts.message,
        quick_timeout=config.timeouts.quick,
        long_timeout=config.timeouts.long,
    )
    return Runtime(
        config=config,
        registry=registry,
        workspaces=workspaces,
        launcher=launcher,
        broker=broker,
        service=service,
        watcher=watcher,
        bridge=bridge,
    )

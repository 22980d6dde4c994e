"""Pydantic v2 models for turnbridge.yaml configuration."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, model_validator

from turnbridge.constants import (
    APPROVAL_TIMEOUT,
    DELIVERY_DELAY,
    DELIVERY_MAX_ATTEMPTS,
    LONG_OPERATION_TIMEOUT,
    MESSAGE_TIMEOUT,
    QUICK_OPERATION_TIMEOUT,
)
from turnbridge.workspace import DEFAULT_DIR_NAME


class BridgeConfig(BaseModel):
    """How to run the agent script."""

    model_config = ConfigDict(extra="forbid")

    executable: str = Field(
        default="node",
        description="Interpreter that runs the agent script, resolved via PATH",
    )
    script: str = Field(
        default="./ai-bridge/channel-manager.js",
        description="Agent script path, relative to the config file",
    )
    workspace_root: str = Field(
        default="./ai-bridge",
        description="Working directory used when a request gives none",
    )
    env: dict[str, str] = Field(
        default_factory=dict,
        description="Extra environment variables for every invocation",
    )


class TimeoutsConfig(BaseModel):
    """Hard deadlines, in seconds."""

    model_config = ConfigDict(extra="forbid")

    quick: float = Field(default=QUICK_OPERATION_TIMEOUT, gt=0)
    message: float = Field(default=MESSAGE_TIMEOUT, gt=0)
    long: float = Field(default=LONG_OPERATION_TIMEOUT, gt=0)
    approval: float = Field(default=APPROVAL_TIMEOUT, gt=0)

    @model_validator(mode="after")
    def _check_tiers(self) -> TimeoutsConfig:
        if not self.quick <= self.message <= self.long:
            msg = "Timeouts must satisfy quick <= message <= long"
            raise ValueError(msg)
        return self


class DeliveryConfig(BaseModel):
    """Retry schedule for pushing approval dialogs to the UI."""

    model_config = ConfigDict(extra="forbid")

    max_attempts: int = Field(default=DELIVERY_MAX_ATTEMPTS, ge=1)
    delay: float = Field(default=DELIVERY_DELAY, ge=0)
    backoff: float = Field(default=1.0, ge=1.0)


class ApprovalConfig(BaseModel):
    """Where the agent script exchanges approval files with the host."""

    model_config = ConfigDict(extra="forbid")

    permission_dir: str | None = Field(
        default=None,
        description="Shared request/response directory (default: <tmp>/claude-permission)",
    )
    poll_interval: float = Field(default=0.5, gt=0)


class WorkspaceConfig(BaseModel):
    """Temp directory and marker-file conventions."""

    model_config = ConfigDict(extra="forbid")

    temp_dir_name: str = Field(default=DEFAULT_DIR_NAME, min_length=1)
    marker_prefix: str = "claude-"
    marker_suffix: str = "-cwd"
    stale_hours: float = Field(default=24.0, gt=0)


class TurnbridgeConfig(BaseModel):
    """Root configuration model for turnbridge.yaml."""

    model_config = ConfigDict(extra="forbid")

    version: str = Field(description="Config schema version")
    bridge: BridgeConfig = Field(default_factory=BridgeConfig)
    timeouts: TimeoutsConfig = Field(default_factory=TimeoutsConfig)
    delivery: DeliveryConfig = Field(default_factory=DeliveryConfig)
    approval: ApprovalConfig = Field(default_factory=ApprovalConfig)
    workspace: WorkspaceConfig = Field(default_factory=WorkspaceConfig)

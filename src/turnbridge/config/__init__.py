"""Configuration models and parser for turnbridge.yaml."""

from turnbridge.config.models import (
    ApprovalConfig,
    BridgeConfig,
    DeliveryConfig,
    TimeoutsConfig,
    TurnbridgeConfig,
    WorkspaceConfig,
)
from turnbridge.config.parser import DEFAULT_CONFIG_NAME, ConfigError, load_config

__all__ = [
    "DEFAULT_CONFIG_NAME",
    "ApprovalConfig",
    "BridgeConfig",
    "ConfigError",
    "DeliveryConfig",
    "TimeoutsConfig",
    "TurnbridgeConfig",
    "WorkspaceConfig",
    "load_config",
]

"""Reading turnbridge.yaml from disk into a validated TurnbridgeConfig."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv
from pydantic import ValidationError

from turnbridge.config.models import TurnbridgeConfig
from turnbridge.errors import TurnbridgeError

DEFAULT_CONFIG_NAME = "turnbridge.yaml"

# Lower-cased pydantic message fragment -> friendlier wording.
_FRIENDLY_MESSAGES = (
    ("field required", "This field is required"),
    ("extra inputs are not permitted", "Unknown setting"),
)


class ConfigError(TurnbridgeError):
    """Raised with a message fit to show the user as-is."""


def load_config(path: Path | None = None) -> TurnbridgeConfig:
    """Locate, parse and validate the config file.

    With no *path*, ``turnbridge.yaml`` in the working directory is used.
    A ``.env`` next to the config file is loaded into the environment,
    and relative paths in the file are taken relative to its directory.
    """
    config_path = _locate(path)
    base_dir = config_path.parent
    mapping = _parse(config_path)
    env_file = base_dir / ".env"
    if env_file.is_file():
        load_dotenv(env_file)
    config = _build(mapping)
    _anchor_paths(config, base_dir)
    return config


def _locate(path: Path | None) -> Path:
    if path is None:
        candidate = Path.cwd() / DEFAULT_CONFIG_NAME
        if candidate.is_file():
            return candidate
        raise ConfigError(
            f"No {DEFAULT_CONFIG_NAME} found in {Path.cwd()}. "
            "Run `turnbridge init` to create one."
        )
    candidate = Path(path)
    if not candidate.is_file():
        raise ConfigError(f"Config file not found: {candidate}")
    return candidate


def _parse(path: Path) -> dict[str, Any]:
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except OSError as exc:
        raise ConfigError(f"Cannot read config file: {exc}") from exc
    except yaml.YAMLError as exc:
        where = ""
        mark = getattr(exc, "problem_mark", None)
        if mark is not None:
            where = f" (line {mark.line + 1}, column {mark.column + 1})"
        raise ConfigError(f"Invalid YAML in {path.name}{where}") from exc

    if not isinstance(data, dict):
        raise ConfigError(
            f"Expected a YAML mapping in {path.name}, got {type(data).__name__}"
        )
    return data


def _describe(error: dict[str, Any]) -> str:
    location = " → ".join(str(part) for part in error["loc"]) or "(root)"
    message = error["msg"]
    lowered = message.lower()
    for fragment, friendly in _FRIENDLY_MESSAGES:
        if fragment in lowered:
            message = friendly
            break
    else:
        if "input should be" in lowered:
            message = f"Invalid value: {message}"
    return f"  {location}: {message}"


def _build(mapping: dict[str, Any]) -> TurnbridgeConfig:
    try:
        return TurnbridgeConfig.model_validate(mapping)
    except ValidationError as exc:
        lines = "\n".join(_describe(err) for err in exc.errors())
        raise ConfigError(f"Config validation failed:\n{lines}") from exc


def _anchor_paths(config: TurnbridgeConfig, base_dir: Path) -> None:
    """Rewrite the file's relative paths as absolute ones under *base_dir*."""
    config.bridge.script = _absolute(config.bridge.script, base_dir)
    config.bridge.workspace_root = _absolute(config.bridge.workspace_root, base_dir)
    if config.approval.permission_dir is not None:
        config.approval.permission_dir = _absolute(
            config.approval.permission_dir, base_dir
        )


def _absolute(value: str, base_dir: Path) -> str:
    candidate = Path(value).expanduser()
    if candidate.is_absolute():
        return str(candidate)
    return str((base_dir / candidate).resolve())

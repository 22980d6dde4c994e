"""Project scaffolding for `turnbridge init`."""

from __future__ import annotations

from pathlib import Path

import click

from turnbridge.config import DEFAULT_CONFIG_NAME

ENV_EXAMPLE_FILENAME = ".env.example"

TEMPLATE_YAML = """\
# turnbridge configuration
version: "1"

# How each turn is run: <executable> <script> send|getSession ...
bridge:
  executable: node
  script: ./ai-bridge/channel-manager.js
  # Working directory when a request names none (or a missing one)
  workspace_root: ./ai-bridge
  # env:
  #   CLAUDE_CODE_USE_BEDROCK: "0"

# Hard deadlines in seconds
timeouts:
  quick: 30       # getSession and other metadata calls
  message: 180    # one conversational turn
  long: 600
  approval: 300   # unanswered approvals resolve to deny / empty / rejected

# Retries while the approval UI is not ready
# delivery:
#   max_attempts: 30
#   delay: 0.2

# approval:
#   permission_dir: /tmp/claude-permission
#   poll_interval: 0.5

# workspace:
#   temp_dir_name: claude-agent-tmp
#   stale_hours: 24
"""

TEMPLATE_ENV_EXAMPLE = """\
# Environment for the agent script.
# Copy this file to .env and fill in your keys; turnbridge loads it
# automatically and passes it on to every invocation.

ANTHROPIC_API_KEY=
# ANTHROPIC_BASE_URL=
"""


NEXT_STEPS = (
    f"Point bridge.script in {DEFAULT_CONFIG_NAME} at your agent script",
    f"Copy {ENV_EXAMPLE_FILENAME} to .env and add your API key",
    'Run `turnbridge send "hello"`',
)


def _write_template(path: Path, text: str) -> None:
    try:
        path.write_text(text, encoding="utf-8")
    except OSError as exc:
        raise click.ClickException(f"Cannot write {path.name}: {exc}") from exc
    click.echo(f"  Created {path.name}")


@click.command()
@click.option(
    "--force",
    is_flag=True,
    help=f"Replace an existing {DEFAULT_CONFIG_NAME} (and {ENV_EXAMPLE_FILENAME}).",
)
def init(force: bool) -> None:
    """Write a starter turnbridge.yaml and .env.example here."""
    here = Path.cwd()
    config_path = here / DEFAULT_CONFIG_NAME
    if config_path.exists() and not force:
        raise click.ClickException(
            f"{DEFAULT_CONFIG_NAME} already exists. Use --force to overwrite."
        )
    _write_template(config_path, TEMPLATE_YAML)

    env_example = here / ENV_EXAMPLE_FILENAME
    if force or not env_example.exists():
        _write_template(env_example, TEMPLATE_ENV_EXAMPLE)
    else:
        click.echo(f"  Skipped {ENV_EXAMPLE_FILENAME} (already exists)")

    click.echo("\nNext steps:")
    for number, step in enumerate(NEXT_STEPS, start=1):
        click.echo(f"  {number}. {step}")

"""Root CLI group and version flag."""

import signal

import click

# Keep a closed stdout pipe (e.g. `turnbridge session ... | head`) from
# killing the process mid-write.
if hasattr(signal, "SIGPIPE"):
    signal.signal(signal.SIGPIPE, signal.SIG_IGN)

from turnbridge import __version__  # noqa: E402
from turnbridge.commands.init import init  # noqa: E402
from turnbridge.commands.send import send  # noqa: E402
from turnbridge.commands.session import session  # noqa: E402


@click.group()
@click.version_option(version=__version__, prog_name="turnbridge")
def cli() -> None:
    """Drive a CLI coding agent one subprocess per turn."""


cli.add_command(init)
cli.add_command(send)
cli.add_command(session)

"""Click subcommands for the turnbridge CLI."""

from __future__ import annotations

import logging


def configure_logging(verbose: bool) -> None:
    """Route library logging to stderr; DEBUG with ``-v``."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

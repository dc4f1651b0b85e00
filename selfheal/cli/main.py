"""selfheal command group."""

from __future__ import annotations

import logging
import sys
from pathlib import Path

import click

from .. import __version__


@click.group()
@click.version_option(__version__, prog_name="selfheal")
@click.option(
    "--data-dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Data directory. Defaults to $SELFHEAL_DATA_DIR or ~/.claude/self-healing.",
)
@click.option("--verbose", "-v", is_flag=True, default=False, help="Debug logging to stderr.")
@click.pass_context
def main(ctx: click.Context, data_dir: Path | None, verbose: bool) -> None:
    """Self-healing memory for coding agents.

    Remembers failing commands, learns which edits fixed them, and feeds
    that history back at the start of the next session.
    """
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            stream=sys.stderr,
            format="%(asctime)s %(name)s %(levelname)s %(message)s",
        )

    from ..config import HealConfig

    config = HealConfig()
    if data_dir is not None:
        config.data_dir = data_dir.expanduser()
    ctx.obj = config

"""Click CLI definitions - main entry point."""

from __future__ import annotations

import logging
import sys

import click

from researchbench.commands.config_cmd import config_group
from researchbench.commands.job_cmd import jobs_group
from researchbench.commands.run_cmd import run_command


@click.group()
@click.option("--debug", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(ctx, debug: bool) -> None:
    """researchbench - automated multi-stage web research."""
    level = logging.DEBUG if debug else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        stream=sys.stderr,
    )
    ctx.ensure_object(dict)
    ctx.obj["debug"] = debug


cli.add_command(run_command, "run")
cli.add_command(jobs_group, "jobs")
cli.add_command(config_group, "config")


if __name__ == "__main__":
    cli()

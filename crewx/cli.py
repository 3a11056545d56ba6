"""Click CLI definitions - main entry point."""

from __future__ import annotations

import logging
import sys

import click

from crewx.commands.agent_cmd import execute_command, query_command
from crewx.commands.config_cmd import config_group
from crewx.commands.doctor_cmd import doctor_command


@click.group()
@click.option("--debug", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(ctx, debug: bool) -> None:
    """crewx - run prompts through AI coding CLIs and remote agents."""
    level = logging.DEBUG if debug else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        stream=sys.stderr,
    )
    ctx.ensure_object(dict)
    ctx.obj["debug"] = debug


cli.add_command(query_command, "query")
cli.add_command(execute_command, "execute")
cli.add_command(doctor_command, "doctor")
cli.add_command(config_group, "config")


if __name__ == "__main__":
    cli()

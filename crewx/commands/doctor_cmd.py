"""CLI handler for provider diagnostics."""

from __future__ import annotations

import asyncio
from pathlib import Path

import click

from crewx.config import load_config
from crewx.models.dynamic import ProviderConfigError
from crewx.services.agent_service import AgentService


@click.command("doctor")
@click.option("--config", "config_path", type=click.Path(path_type=Path), default=None)
def doctor_command(config_path: Path | None):
    """Check which providers are available."""
    config = load_config(config_path)
    try:
        service = AgentService(config)
    except ProviderConfigError as e:
        raise click.ClickException(f"Invalid provider configuration: {e}") from e

    results = asyncio.run(service.check_providers())
    click.echo(f"Config file: {config.config_path}")
    for name, available in results.items():
        click.echo(f"  {name}: {'available' if available else 'not available'}")

    click.echo("\nAgents:")
    for agent_id, agent in service.agents.items():
        click.echo(f"  {agent_id}: {agent.provider}")

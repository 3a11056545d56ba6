"""CLI handlers for config commands."""

from __future__ import annotations

from pathlib import Path

import click

from crewx.config import init_config, load_config, resolve_config_path


@click.group("config")
def config_group():
    """Manage configuration."""
    pass


@config_group.command("init")
@click.option("--config", "config_path", type=click.Path(path_type=Path), default=None)
@click.option("--force", is_flag=True, help="Overwrite an existing file")
def config_init(config_path: Path | None, force: bool):
    """Create default configuration file."""
    path = resolve_config_path(config_path)
    if path.exists() and not force:
        click.echo(f"Configuration already exists at: {path} (use --force to overwrite)")
        return
    path = init_config(path)
    click.echo(f"Configuration created at: {path}")


@config_group.command("show")
@click.option("--config", "config_path", type=click.Path(path_type=Path), default=None)
def config_show(config_path: Path | None):
    """Show current configuration."""
    config = load_config(config_path)
    t = config.timeouts
    click.echo(f"Config file: {config.config_path}")
    click.echo(f"  Logs dir: {config.resolved_logs_dir}")
    click.echo(f"  Default agent: {config.default_agent}")
    click.echo(f"  Timeouts (ms): claude={t.claude_query}/{t.claude_execute}"
               f" gemini={t.gemini_query}/{t.gemini_execute}"
               f" copilot={t.copilot_query}/{t.copilot_execute} parallel={t.parallel}")
    click.echo(f"  Log limits: prompt={config.log.prompt_max_length}"
               f" tool_result={config.log.tool_result_max_length}"
               f" conversation={config.log.conversation_max_length}")

    click.echo("\n  Agents:")
    for agent_id, agent in config.agents.items():
        model = f", model={agent.model}" if agent.model else ""
        click.echo(f"    {agent_id}: provider={agent.provider}{model}")

    click.echo("\n  Dynamic providers:")
    if not config.providers:
        click.echo("    (none)")
    for raw in config.providers:
        ident = raw.get("id") or raw.get("provider", "?")
        click.echo(f"    {raw.get('type', '?')}: {ident}")

"""CLI handlers for query and execute."""

from __future__ import annotations

import asyncio
from pathlib import Path

import click

from crewx.config import load_config
from crewx.models.provider import ExecutionMode
from crewx.services.agent_service import AgentService


def _read_piped_stdin() -> str:
    """Content piped into the process, or "" when stdin is a terminal."""
    stream = click.get_text_stream("stdin")
    if stream.isatty():
        return ""
    return stream.read()


def _run_agent(
    mode: ExecutionMode,
    prompt: tuple[str, ...],
    config_path: Path | None,
    raw: bool,
    agent_id: str | None,
    model: str,
    timeout: int | None,
) -> None:
    config = load_config(config_path)
    try:
        service = AgentService(config)
        response = asyncio.run(service.run(
            " ".join(prompt),
            mode=mode,
            agent_id=agent_id,
            model=model,
            timeout=timeout,
            piped_context=_read_piped_stdin(),
        ))
    except ValueError as e:
        raise click.ClickException(str(e)) from e

    if not response.success:
        click.echo(f"Error: {response.error}", err=True)
        raise SystemExit(1)

    if not raw:
        click.echo(f"[{response.provider}] task {response.task_id or '-'}")
    click.echo(response.content)


_config_option = click.option(
    "--config", "config_path", type=click.Path(path_type=Path), default=None,
    help="Configuration file (defaults to CREWX_CONFIG or ~/.config/crewx/config.toml)",
)


@click.command("query")
@_config_option
@click.option("--raw", is_flag=True, help="Print only the response content")
@click.option("--agent", "agent_id", default=None, help="Agent id (or lead the prompt with @agent)")
@click.option("--model", default="", help="Model override")
@click.option("--timeout", type=int, default=None, help="Timeout in milliseconds")
@click.argument("prompt", nargs=-1, required=True)
def query_command(prompt, config_path, raw, agent_id, model, timeout):
    """Ask an agent a question (read-only intent)."""
    _run_agent(ExecutionMode.QUERY, prompt, config_path, raw, agent_id, model, timeout)


@click.command("execute")
@_config_option
@click.option("--raw", is_flag=True, help="Print only the response content")
@click.option("--agent", "agent_id", default=None, help="Agent id (or lead the prompt with @agent)")
@click.option("--model", default="", help="Model override")
@click.option("--timeout", type=int, default=None, help="Timeout in milliseconds")
@click.argument("prompt", nargs=-1, required=True)
def execute_command(prompt, config_path, raw, agent_id, model, timeout):
    """Ask an agent to perform work (may modify files)."""
    _run_agent(ExecutionMode.EXECUTE, prompt, config_path, raw, agent_id, model, timeout)

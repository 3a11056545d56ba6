"""Agent resolution and dispatch for the command line."""

from __future__ import annotations

import logging
import re

from crewx.config import AppConfig
from crewx.infra.providers.base import AIProvider
from crewx.infra.providers.registry import build_providers
from crewx.infra.providers.tool_calls import ToolCallHandler
from crewx.models.provider import (
    AgentConfig,
    AIQueryOptions,
    AIResponse,
    BuiltInProvider,
    ExecutionMode,
)

logger = logging.getLogger(__name__)

_MENTION = re.compile(r"^\s*@([\w.\-/]+)\s*([\s\S]*)$")

DEFAULT_AGENTS: dict[str, AgentConfig] = {
    "claude": AgentConfig(id="claude", provider=BuiltInProvider.CLAUDE.value),
    "gemini": AgentConfig(id="gemini", provider=BuiltInProvider.GEMINI.value),
    "copilot": AgentConfig(id="copilot", provider=BuiltInProvider.COPILOT.value),
    "codex": AgentConfig(id="codex", provider=BuiltInProvider.CODEX.value),
}


def parse_mention(prompt: str) -> tuple[str | None, str]:
    """Split a leading ``@agent`` mention off ``prompt``."""
    match = _MENTION.match(prompt)
    if not match:
        return None, prompt.strip()
    return match.group(1), match.group(2).strip()


class AgentService:
    """Resolves agent ids to providers and runs query/execute calls."""

    def __init__(
        self,
        config: AppConfig,
        providers: dict[str, AIProvider] | None = None,
        tool_call_handler: ToolCallHandler | None = None,
    ) -> None:
        self._config = config
        if providers is None:
            providers = build_providers(config, tool_call_handler=tool_call_handler)
        self._providers = providers

    @property
    def providers(self) -> dict[str, AIProvider]:
        return self._providers

    @property
    def agents(self) -> dict[str, AgentConfig]:
        return {**DEFAULT_AGENTS, **self._config.agents}

    def resolve_agent(self, agent_id: str | None = None) -> AgentConfig:
        """Find an agent by id, or fall back to the configured default."""
        agent_id = agent_id or self._config.default_agent
        agent = self.agents.get(agent_id)
        if agent is None:
            # A provider name addresses that provider directly
            if agent_id in self._providers:
                return AgentConfig(id=agent_id, provider=agent_id)
            raise ValueError(f"Unknown agent: {agent_id}")
        return agent

    def get_provider(self, agent: AgentConfig) -> AIProvider:
        provider = self._providers.get(agent.provider)
        if provider is None:
            raise ValueError(f"Agent '{agent.id}' uses unknown provider: {agent.provider}")
        return provider

    async def run(
        self,
        prompt: str,
        mode: ExecutionMode = ExecutionMode.QUERY,
        agent_id: str | None = None,
        model: str = "",
        timeout: int | None = None,
        piped_context: str = "",
        task_id: str = "",
    ) -> AIResponse:
        """Run ``prompt`` on an agent.

        A leading ``@agent`` mention overrides ``agent_id``.
        """
        mentioned, text = parse_mention(prompt)
        agent = self.resolve_agent(mentioned or agent_id)
        provider = self.get_provider(agent)

        options = AIQueryOptions(
            task_id=task_id,
            agent_id=agent.id,
            model=model or agent.model,
            timeout=timeout,
            working_directory=agent.working_directory,
            additional_args=agent.additional_args,
            piped_context=piped_context,
        )
        logger.info("Dispatching %s to %s via %s", mode.value, agent.id, provider.name)
        if mode == ExecutionMode.EXECUTE:
            return await provider.execute(text, options)
        return await provider.query(text, options)

    async def check_providers(self) -> dict[str, bool]:
        """Availability of every registered provider."""
        results = {}
        for name, provider in self._providers.items():
            results[name] = await provider.is_available()
        return results

"""Plugin provider: any local CLI described entirely by configuration."""

from __future__ import annotations

import os
import re
from pathlib import Path

from crewx.config import FALLBACK_QUERY_TIMEOUT_MS
from crewx.infra.providers.engine import BaseAIProvider
from crewx.models.dynamic import PluginProviderConfig
from crewx.models.provider import AIQueryOptions, ProviderError, ProviderNamespace


class PluginProvider(BaseAIProvider):
    """Runs ``config.cli_command`` with the configured argument lists.

    ``error_patterns`` are regular expressions checked in declaration
    order against stderr (or stdout when stderr is empty) before the
    generic stdout/stderr policy applies.
    """

    def __init__(self, config: PluginProviderConfig, **kwargs) -> None:
        super().__init__(**kwargs)
        self.config = config
        self.name = f"{ProviderNamespace.PLUGIN.value}/{config.id}"
        self._error_patterns = [(re.compile(p.pattern), p) for p in config.error_patterns]

    def get_cli_command(self) -> str:
        return self.config.cli_command

    def get_default_args(self) -> list[str]:
        return list(self.config.query_args)

    def get_execute_args(self) -> list[str]:
        return list(self.config.execute_args)

    def get_default_model(self) -> str:
        return self.config.default_model or "default"

    def get_prompt_in_args(self) -> bool:
        return bool(self.config.prompt_in_args)

    def should_pipe_context(self, options: AIQueryOptions) -> bool:
        if self.get_prompt_in_args():
            return False
        return super().should_pipe_context(options)

    def get_not_installed_message(self) -> str:
        return (
            self.config.not_installed_message
            or f"{self.config.display_name or self.config.id} CLI is not installed."
        )

    def get_default_query_timeout(self) -> int:
        if self.config.timeout and self.config.timeout.query:
            return self.config.timeout.query
        return FALLBACK_QUERY_TIMEOUT_MS

    def get_default_execute_timeout(self) -> int:
        if self.config.timeout and self.config.timeout.execute:
            return self.config.timeout.execute
        return self.timeout_config.parallel

    def get_env(self) -> dict[str, str]:
        return dict(self.config.env)

    async def is_available(self) -> bool:
        command = self.get_cli_command()
        if "/" in command or "\\" in command:
            path = Path.cwd() / command
            return path.is_file() and os.access(path, os.X_OK)
        return await super().is_available()

    def parse_provider_error(self, stderr: str, stdout: str) -> ProviderError:
        combined = stderr or stdout
        for compiled, pattern in self._error_patterns:
            if match := compiled.search(combined):
                return ProviderError(error=True, message=pattern.message or match.group(0))
        return super().parse_provider_error(stderr, stdout)

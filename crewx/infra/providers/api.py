"""API provider placeholder for hosted model APIs (api/openai, api/anthropic, ...)."""

from __future__ import annotations

import logging

from crewx.config import TimeoutConfig, get_timeout_config
from crewx.models.dynamic import APIProviderFactoryConfig
from crewx.models.provider import AIQueryOptions, AIResponse

API_QUERY_TIMEOUT_MS = 60_000
NOT_IMPLEMENTED_MESSAGE = "API provider not implemented - extend DynamicProviderFactory"


class APIProvider:
    """Validated API configuration behind the provider contract.

    Calls are not wired to any vendor SDK; every query/execute returns a
    failed response so callers can fall back to another backend.
    """

    def __init__(
        self,
        config: APIProviderFactoryConfig,
        logger: logging.Logger | logging.LoggerAdapter | None = None,
        timeout_config: TimeoutConfig | None = None,
    ) -> None:
        self.config = config
        self.name = config.provider
        self.logger = logger or logging.getLogger(__name__)
        self.timeout_config = timeout_config or get_timeout_config()

    def get_default_model(self) -> str:
        return self.config.model

    def get_default_query_timeout(self) -> int:
        return API_QUERY_TIMEOUT_MS

    def get_default_execute_timeout(self) -> int:
        return self.timeout_config.parallel

    async def is_available(self) -> bool:
        return bool(self.config.model)

    async def get_tool_path(self) -> str | None:
        return None

    async def query(self, prompt: str, options: AIQueryOptions | None = None) -> AIResponse:
        return self._not_implemented("query", options or AIQueryOptions())

    async def execute(self, prompt: str, options: AIQueryOptions | None = None) -> AIResponse:
        return self._not_implemented("execute", options or AIQueryOptions())

    def _not_implemented(self, mode: str, options: AIQueryOptions) -> AIResponse:
        self.logger.warning("API provider %s %s() called but not implemented", self.name, mode)
        return AIResponse.failure(
            NOT_IMPLEMENTED_MESSAGE,
            provider=self.name,
            command=f"API call to {self.name}",
            task_id=options.task_id,
            content=f"[API Provider {self.name}] Implementation required. Model: {self.config.model}",
        )

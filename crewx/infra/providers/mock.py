"""In-process provider with canned responses, for tests and dry runs."""

from __future__ import annotations

from crewx.models.provider import AIQueryOptions, AIResponse, ProviderNamespace

MOCK_PROVIDER_NAME = f"{ProviderNamespace.MOCK.value}/default"


class MockProvider:
    name = MOCK_PROVIDER_NAME

    def __init__(self) -> None:
        self._responses: dict[str, str] = {}
        self._default_response: str | None = None

    def set_response(self, prompt: str, response: str) -> None:
        self._responses[prompt] = response

    def set_default_response(self, response: str) -> None:
        self._default_response = response

    def clear_responses(self) -> None:
        self._responses.clear()
        self._default_response = None

    async def is_available(self) -> bool:
        return True

    async def get_tool_path(self) -> str | None:
        return None

    async def query(self, prompt: str, options: AIQueryOptions | None = None) -> AIResponse:
        return self._respond(prompt, options or AIQueryOptions(), "mock query")

    async def execute(self, prompt: str, options: AIQueryOptions | None = None) -> AIResponse:
        return self._respond(prompt, options or AIQueryOptions(), "mock execute")

    def _respond(self, prompt: str, options: AIQueryOptions, command: str) -> AIResponse:
        content = self._responses.get(prompt)
        if content is None:
            content = self._default_response or f"Mock response for: {prompt}"
        return AIResponse(
            content=content,
            provider=self.name,
            command=command,
            success=True,
            task_id=options.task_id,
            model=options.model,
        )

"""AI provider protocol definition."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from crewx.models.provider import AIQueryOptions, AIResponse


@runtime_checkable
class AIProvider(Protocol):
    """Protocol every backend (built-in CLI, plugin, remote, api) honors.

    ``query`` is read-intent and ``execute`` is side-effecting; both share
    one contract and never raise. Failures come back as
    ``AIResponse(success=False, error=...)``.
    """

    name: str

    async def is_available(self) -> bool:
        """Check whether the backend can be reached. Never raises."""
        ...

    async def query(self, prompt: str, options: AIQueryOptions | None = None) -> AIResponse:
        """Ask the backend a question."""
        ...

    async def execute(self, prompt: str, options: AIQueryOptions | None = None) -> AIResponse:
        """Ask the backend to perform work."""
        ...

    async def get_tool_path(self) -> str | None:
        """Resolved executable path, or None if the backend has none."""
        ...

"""AI provider domain models."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ProviderNamespace(str, Enum):
    CLI = "cli"
    PLUGIN = "plugin"
    API = "api"
    REMOTE = "remote"
    MOCK = "mock"


class BuiltInProvider(str, Enum):
    CLAUDE = "cli/claude"
    GEMINI = "cli/gemini"
    COPILOT = "cli/copilot"
    CODEX = "cli/codex"


class ProviderFamily(str, Enum):
    """Timeout family a provider belongs to."""

    CLAUDE = "claude"
    GEMINI = "gemini"
    COPILOT = "copilot"
    GENERIC = "generic"


class ExecutionMode(str, Enum):
    QUERY = "query"
    EXECUTE = "execute"


@dataclass(frozen=True)
class StructuredMessage:
    """One conversation turn carried alongside a prompt."""

    text: str
    is_assistant: bool = False
    metadata: dict[str, Any] | None = None

    def to_dict(self) -> dict:
        d: dict = {"text": self.text, "isAssistant": self.is_assistant}
        if self.metadata:
            d["metadata"] = self.metadata
        return d

    @classmethod
    def from_dict(cls, data: dict) -> StructuredMessage:
        return cls(
            text=str(data.get("text", "")),
            is_assistant=bool(data.get("isAssistant", data.get("is_assistant", False))),
            metadata=data.get("metadata"),
        )


@dataclass(frozen=True)
class AIQueryOptions:
    """Per-call parameters for query/execute.

    ``timeout`` is in milliseconds; when absent the provider applies its
    own default for the call mode.
    """

    task_id: str = ""
    agent_id: str = ""
    model: str = ""
    timeout: int | None = None
    working_directory: str = ""
    additional_args: tuple[str, ...] = ()
    piped_context: str = ""
    messages: tuple[StructuredMessage, ...] = ()
    security_key: str = ""


@dataclass(frozen=True)
class AIResponse:
    """Normalized result of a query/execute call."""

    content: str
    provider: str
    command: str
    success: bool
    error: str = ""
    task_id: str = ""
    model: str = ""
    tool_call: dict[str, Any] | None = None

    @classmethod
    def failure(
        cls,
        error: str,
        provider: str,
        command: str,
        task_id: str = "",
        content: str = "",
    ) -> AIResponse:
        """Build a failed response; the error message is never empty."""
        return cls(
            content=content,
            provider=provider,
            command=command,
            success=False,
            error=error or "Unknown error occurred",
            task_id=task_id,
        )


@dataclass(frozen=True)
class ProviderError:
    """Verdict of a provider-specific error classifier."""

    error: bool
    message: str = ""


NO_ERROR = ProviderError(error=False)


@dataclass(frozen=True)
class AgentConfig:
    """An addressable agent: a provider plus per-agent call defaults."""

    id: str
    provider: str
    model: str = ""
    working_directory: str = ""
    additional_args: tuple[str, ...] = field(default_factory=tuple)

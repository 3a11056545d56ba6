"""Provider registry: built-ins by name plus dynamic providers from config."""

from __future__ import annotations

import logging

from crewx.config import AppConfig
from crewx.infra.providers.base import AIProvider
from crewx.infra.providers.claude import ClaudeProvider
from crewx.infra.providers.codex import CodexProvider
from crewx.infra.providers.copilot import CopilotProvider
from crewx.infra.providers.dynamic import DynamicProviderFactory
from crewx.infra.providers.engine import BaseAIProvider
from crewx.infra.providers.gemini import GeminiProvider
from crewx.infra.providers.mock import MOCK_PROVIDER_NAME, MockProvider
from crewx.models.provider import BuiltInProvider

logger = logging.getLogger(__name__)

_BUILT_INS: dict[str, type[BaseAIProvider]] = {
    BuiltInProvider.CLAUDE.value: ClaudeProvider,
    BuiltInProvider.GEMINI.value: GeminiProvider,
    BuiltInProvider.COPILOT.value: CopilotProvider,
    BuiltInProvider.CODEX.value: CodexProvider,
}


def provider_kwargs(config: AppConfig | None) -> dict:
    """Engine settings shared by every provider built from ``config``."""
    if config is None:
        return {}
    return {
        "logs_dir": config.resolved_logs_dir,
        "timeout_config": config.timeouts,
        "log_config": config.log,
    }


def _canonical(name: str) -> str:
    if "/" in name:
        return name
    if name == "mock":
        return MOCK_PROVIDER_NAME
    return f"cli/{name}"


def builtin_names() -> list[str]:
    return [*_BUILT_INS, MOCK_PROVIDER_NAME]


def get_provider(name: str, config: AppConfig | None = None, **kwargs) -> AIProvider:
    """Get a built-in provider by name ("cli/claude" or just "claude")."""
    canonical = _canonical(name)
    if canonical == MOCK_PROVIDER_NAME:
        return MockProvider()
    provider_cls = _BUILT_INS.get(canonical)
    if provider_cls is None:
        raise ValueError(f"Unknown provider: {name}")
    return provider_cls(**{**provider_kwargs(config), **kwargs})


def build_providers(config: AppConfig, **kwargs) -> dict[str, AIProvider]:
    """Every built-in plus every dynamic provider declared in ``config``.

    Raises ProviderConfigError if a declared provider is invalid.
    """
    shared = {**provider_kwargs(config), **kwargs}
    providers: dict[str, AIProvider] = {
        name: provider_cls(**shared) for name, provider_cls in _BUILT_INS.items()
    }
    providers[MOCK_PROVIDER_NAME] = MockProvider()

    factory = DynamicProviderFactory(**shared)
    for raw in config.providers:
        provider = factory.create_provider(raw)
        if provider.name in providers:
            logger.warning("Provider %s is declared more than once; keeping the last", provider.name)
        providers[provider.name] = provider

    logger.debug("Registered providers: %s", ", ".join(providers))
    return providers

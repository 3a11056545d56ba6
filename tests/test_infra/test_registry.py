"""Tests for the provider registry."""

import pytest

from crewx.config import AppConfig, LogConfig, TimeoutConfig
from crewx.infra.providers.base import AIProvider
from crewx.infra.providers.claude import ClaudeProvider
from crewx.infra.providers.mock import MOCK_PROVIDER_NAME, MockProvider
from crewx.infra.providers.plugin import PluginProvider
from crewx.infra.providers.registry import build_providers, builtin_names, get_provider
from crewx.models.dynamic import ProviderConfigError


@pytest.fixture
def config(tmp_path):
    return AppConfig(
        logs_dir=str(tmp_path / "logs"),
        timeouts=TimeoutConfig(parallel=999),
        log=LogConfig(prompt_max_length=42),
    )


class TestGetProvider:
    def test_full_and_short_names(self):
        assert isinstance(get_provider("cli/claude"), ClaudeProvider)
        assert isinstance(get_provider("claude"), ClaudeProvider)
        assert isinstance(get_provider("mock"), MockProvider)

    def test_config_applied(self, config, tmp_path):
        provider = get_provider("gemini", config)
        assert provider.timeout_config.parallel == 999
        assert provider.log_config.prompt_max_length == 42
        assert provider.task_log.logs_dir == tmp_path / "logs"

    def test_unknown_provider(self):
        with pytest.raises(ValueError, match="Unknown provider: nonexistent"):
            get_provider("nonexistent")

    def test_builtin_names(self):
        assert builtin_names() == ["cli/claude", "cli/gemini", "cli/copilot", "cli/codex", "mock/default"]

    def test_protocol_compliance(self):
        for name in builtin_names():
            assert isinstance(get_provider(name), AIProvider)


class TestBuildProviders:
    def test_builtins_only(self, config):
        providers = build_providers(config)
        assert set(providers) == set(builtin_names())

    def test_dynamic_providers_added(self, config):
        config.providers = [
            {"type": "plugin", "id": "ollama", "cli_command": "ollama", "query_args": ["run", "{model}"]},
            {"type": "remote", "id": "team", "location": "http://localhost:9000", "external_agent_id": "dev"},
            {"type": "api", "provider": "api/anthropic", "model": "claude-sonnet"},
        ]
        providers = build_providers(config)
        assert isinstance(providers["plugin/ollama"], PluginProvider)
        assert providers["plugin/ollama"].timeout_config.parallel == 999
        assert "remote/team" in providers
        assert "api/anthropic" in providers

    def test_duplicate_keeps_last(self, config):
        config.providers = [
            {"type": "plugin", "id": "dup", "cli_command": "first"},
            {"type": "plugin", "id": "dup", "cli_command": "second"},
        ]
        assert build_providers(config)["plugin/dup"].get_cli_command() == "second"

    def test_invalid_dynamic_provider_raises(self, config):
        config.providers = [{"type": "plugin", "id": "broken", "cli_command": ""}]
        with pytest.raises(ProviderConfigError):
            build_providers(config)

    def test_mock_name(self, config):
        assert build_providers(config)[MOCK_PROVIDER_NAME].name == "mock/default"

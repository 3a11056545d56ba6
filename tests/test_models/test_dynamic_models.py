"""Tests for dynamic provider config parsing."""

import pytest

from crewx.models.dynamic import (
    APIProviderFactoryConfig,
    PluginProviderConfig,
    ProviderConfigError,
    RemoteProviderConfig,
    config_from_dict,
)


class TestConfigFromDict:
    def test_plugin(self):
        config = config_from_dict({
            "type": "plugin",
            "id": "ollama",
            "cli_command": "ollama",
            "query_args": ["run", "{model}"],
            "execute_args": ["run", "{model}"],
            "prompt_in_args": False,
            "timeout": {"query": 1000, "execute": 2000},
            "error_patterns": [{"pattern": "rate", "type": "error", "message": "Rate limited"}],
            "env": {"OLLAMA_HOST": "localhost"},
        })
        assert isinstance(config, PluginProviderConfig)
        assert config.query_args == ("run", "{model}")
        assert config.timeout.query == 1000
        assert config.error_patterns[0].message == "Rate limited"
        assert config.env == {"OLLAMA_HOST": "localhost"}

    def test_plugin_keeps_invalid_args_for_validation(self):
        config = config_from_dict({"type": "plugin", "id": "x", "cli_command": "x", "query_args": "oops"})
        assert config.query_args == "oops"

    def test_remote_with_auth(self):
        config = config_from_dict({
            "type": "remote",
            "id": "backend",
            "location": "https://crewx.example.com",
            "external_agent_id": "dev",
            "auth": {"type": "bearer", "token": "tok"},
        })
        assert isinstance(config, RemoteProviderConfig)
        assert config.auth.type == "bearer"
        assert config.auth.token == "tok"

    def test_api_accepts_camel_case_max_tokens(self):
        config = config_from_dict({"type": "api", "provider": "api/openai", "model": "gpt-4o", "maxTokens": 512})
        assert isinstance(config, APIProviderFactoryConfig)
        assert config.max_tokens == 512

    def test_unknown_type(self):
        with pytest.raises(ProviderConfigError, match="Unknown provider type: shell"):
            config_from_dict({"type": "shell"})

    def test_not_a_table(self):
        with pytest.raises(ValueError):
            config_from_dict(["plugin"])

    def test_error_pattern_requires_pattern(self):
        with pytest.raises(ProviderConfigError):
            config_from_dict({"type": "plugin", "id": "x", "cli_command": "x", "error_patterns": [{"message": "m"}]})

"""Dynamic provider factory: validated configuration in, provider out."""

from __future__ import annotations

import logging
import re
from typing import Any

import httpx

from crewx.infra.providers.api import APIProvider
from crewx.infra.providers.plugin import PluginProvider
from crewx.infra.providers.remote import FILE_SCHEME, RemoteProvider
from crewx.models.dynamic import (
    API_PROVIDER_TYPES,
    REMOTE_AUTH_TYPES,
    APIProviderFactoryConfig,
    DynamicProviderConfig,
    ErrorPattern,
    PluginProviderConfig,
    ProviderConfigError,
    RemoteProviderConfig,
    TimeoutPair,
    config_from_dict,
)

logger = logging.getLogger(__name__)

_REMOTE_SCHEMES = (FILE_SCHEME, "http://", "https://")


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


class DynamicProviderFactory:
    """Builds plugin, remote and api providers from configuration.

    Validation errors raise ProviderConfigError before any provider exists.
    Keyword arguments other than ``logger`` (logs_dir, timeout_config,
    runner, ...) are forwarded to every provider created.
    """

    def __init__(self, logger: logging.Logger | logging.LoggerAdapter | None = None, **provider_kwargs) -> None:
        self.logger = logger or logging.getLogger(__name__)
        self.provider_kwargs = provider_kwargs

    def create_provider(self, config: DynamicProviderConfig | dict) -> PluginProvider | RemoteProvider | APIProvider:
        if isinstance(config, dict):
            config = config_from_dict(config)

        if isinstance(config, PluginProviderConfig):
            self.logger.info("Creating dynamic provider: %s", config.id)
            return self.create_plugin_provider(config)
        if isinstance(config, RemoteProviderConfig):
            self.logger.info("Creating dynamic provider: %s", config.id)
            return self.create_remote_provider(config)
        if isinstance(config, APIProviderFactoryConfig):
            self.logger.info("Creating dynamic provider: %s", config.provider)
            return self.create_api_provider(config)

        raise ProviderConfigError(f"Unknown provider type: {getattr(config, 'type', None)}")

    def validate_config(self, config: Any) -> bool:
        """Structural check of a raw configuration table. Never raises."""
        if not isinstance(config, dict):
            return False

        provider_type = config.get("type")
        if provider_type == "plugin":
            return (
                isinstance(config.get("id"), str) and bool(config["id"])
                and isinstance(config.get("cli_command"), str)
                and isinstance(config.get("query_args"), list)
                and isinstance(config.get("execute_args"), list)
                and isinstance(config.get("prompt_in_args"), bool)
            )
        if provider_type == "remote":
            return (
                isinstance(config.get("id"), str) and bool(config["id"])
                and isinstance(config.get("location"), str)
                and isinstance(config.get("external_agent_id"), str)
            )
        if provider_type == "api":
            return (
                config.get("provider") in API_PROVIDER_TYPES
                and isinstance(config.get("model"), str)
            )
        return False

    # --- plugin -------------------------------------------------------

    def create_plugin_provider(self, config: PluginProviderConfig) -> PluginProvider:
        self.validate_cli_command(config.cli_command)
        self.validate_cli_args(config.query_args)
        self.validate_cli_args(config.execute_args)
        self.validate_error_patterns(config.error_patterns)
        self.validate_env(config.env)
        self.validate_timeout(config.timeout)
        return PluginProvider(config, **self.provider_kwargs)

    def validate_cli_command(self, cli_command: Any) -> None:
        if not cli_command or not isinstance(cli_command, str):
            raise ProviderConfigError("Plugin provider requires a CLI command")

    def validate_cli_args(self, args: Any) -> None:
        if not isinstance(args, (list, tuple)):
            raise ProviderConfigError("CLI arguments must be an array")
        for arg in args:
            if not isinstance(arg, str):
                raise ProviderConfigError("CLI argument must be a string")

    def validate_error_patterns(self, patterns: tuple[ErrorPattern, ...]) -> None:
        for item in patterns:
            try:
                re.compile(item.pattern)
            except (re.error, TypeError) as e:
                raise ProviderConfigError(f"Invalid regex pattern '{item.pattern}': {e}") from e

    def validate_env(self, env: Any) -> None:
        if not env:
            return
        if not isinstance(env, dict) or not all(
            isinstance(k, str) and isinstance(v, str) for k, v in env.items()
        ):
            raise ProviderConfigError("Environment variables must be string key/value pairs")

    def validate_timeout(self, timeout: TimeoutPair | None) -> None:
        if timeout is None:
            return
        for mode, value in (("query", timeout.query), ("execute", timeout.execute)):
            if value is None:
                continue
            if not isinstance(value, int) or isinstance(value, bool) or value <= 0:
                raise ProviderConfigError(
                    f"Timeout {mode} must be a positive integer of milliseconds, got: {value!r}"
                )

    # --- remote -------------------------------------------------------

    def create_remote_provider(self, config: RemoteProviderConfig) -> RemoteProvider:
        self.validate_remote_config(config)
        return RemoteProvider(config, **self.provider_kwargs)

    def validate_remote_config(self, config: RemoteProviderConfig) -> None:
        if not config.location:
            raise ProviderConfigError("Remote provider requires a location (file:// or http(s):// URL)")
        if not config.external_agent_id:
            raise ProviderConfigError("Remote provider requires an external_agent_id")
        if not config.location.startswith(_REMOTE_SCHEMES):
            raise ProviderConfigError("Remote location must start with file://, http://, or https://")
        if config.location.startswith(FILE_SCHEME) and ".." in config.location[len(FILE_SCHEME):]:
            raise ProviderConfigError("Path traversal (..) is not allowed in remote file locations")
        if not config.location.startswith(FILE_SCHEME):
            try:
                httpx.URL(config.location)
            except httpx.InvalidURL as e:
                raise ProviderConfigError(f"Invalid remote URL '{config.location}': {e}") from e

        if config.auth is not None:
            if config.auth.type not in REMOTE_AUTH_TYPES:
                raise ProviderConfigError(
                    f"Invalid auth type: {config.auth.type}. "
                    f"Must be one of: {', '.join(REMOTE_AUTH_TYPES)}"
                )
            if config.auth.type != "none" and not config.auth.token:
                raise ProviderConfigError(f"Auth type '{config.auth.type}' requires a token")

        self.validate_timeout(config.timeout)

    # --- api ----------------------------------------------------------

    def create_api_provider(self, config: APIProviderFactoryConfig) -> APIProvider:
        self.validate_api_provider_config(config)
        return APIProvider(
            config,
            logger=self.provider_kwargs.get("logger"),
            timeout_config=self.provider_kwargs.get("timeout_config"),
        )

    def validate_api_provider_config(self, config: APIProviderFactoryConfig) -> None:
        if not config.provider or not isinstance(config.provider, str):
            raise ProviderConfigError("API provider requires a provider field (e.g., api/openai)")
        if config.provider not in API_PROVIDER_TYPES:
            raise ProviderConfigError(
                f"Invalid API provider '{config.provider}'. "
                f"Valid providers: {', '.join(API_PROVIDER_TYPES)}"
            )
        if not config.model or not isinstance(config.model, str):
            raise ProviderConfigError("API provider requires a model field")

        temperature = config.temperature
        if temperature is not None and (not _is_number(temperature) or not 0 <= temperature <= 2):
            raise ProviderConfigError(f"Temperature must be a number between 0 and 2, got: {temperature}")

        max_tokens = config.max_tokens
        if max_tokens is not None and (
            not _is_number(max_tokens) or max_tokens < 1 or int(max_tokens) != max_tokens
        ):
            raise ProviderConfigError(f"maxTokens must be a positive integer, got: {max_tokens}")

"""Dynamic provider configuration models.

These describe providers that are defined entirely by configuration:
plugin (an arbitrary local CLI), remote (another CrewX instance reached
through a config file or over HTTP) and api (hosted model APIs).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Union

API_PROVIDER_TYPES: tuple[str, ...] = (
    "api/openai",
    "api/anthropic",
    "api/google",
    "api/bedrock",
    "api/litellm",
    "api/ollama",
    "api/sowonai",
)

REMOTE_AUTH_TYPES: tuple[str, ...] = ("bearer", "api_key", "none")


class ProviderConfigError(ValueError):
    """Raised when a dynamic provider configuration is invalid."""


@dataclass(frozen=True)
class TimeoutPair:
    """Per-mode timeouts in milliseconds."""

    query: int | None = None
    execute: int | None = None


@dataclass(frozen=True)
class ErrorPattern:
    pattern: str
    type: str = "error"
    message: str = ""


@dataclass(frozen=True)
class RemoteAuth:
    type: str = "none"
    token: str = ""


@dataclass(frozen=True)
class PluginProviderConfig:
    id: str
    cli_command: str
    query_args: tuple[str, ...] = ()
    execute_args: tuple[str, ...] = ()
    prompt_in_args: bool = False
    display_name: str = ""
    description: str = ""
    default_model: str = ""
    timeout: TimeoutPair | None = None
    error_patterns: tuple[ErrorPattern, ...] = ()
    not_installed_message: str = ""
    env: dict[str, str] = field(default_factory=dict)
    type: str = "plugin"


@dataclass(frozen=True)
class RemoteProviderConfig:
    id: str
    location: str
    external_agent_id: str
    display_name: str = ""
    description: str = ""
    default_model: str = ""
    auth: RemoteAuth | None = None
    timeout: TimeoutPair | None = None
    headers: dict[str, str] = field(default_factory=dict)
    type: str = "remote"


@dataclass(frozen=True)
class APIProviderFactoryConfig:
    provider: str
    model: str
    url: str = ""
    api_key: str = ""
    temperature: float | None = None
    max_tokens: int | None = None
    tools: tuple[str, ...] = ()
    mcp: tuple[str, ...] = ()
    type: str = "api"


DynamicProviderConfig = Union[
    PluginProviderConfig, RemoteProviderConfig, APIProviderFactoryConfig
]


def _seq(value: Any) -> Any:
    """Lists become tuples; anything else is left for validation to reject."""
    if isinstance(value, list):
        return tuple(value)
    return value


def _parse_timeout(data: Any) -> TimeoutPair | None:
    if data is None:
        return None
    if not isinstance(data, dict):
        raise ProviderConfigError("timeout must be a table with query/execute keys")
    return TimeoutPair(query=data.get("query"), execute=data.get("execute"))


def _parse_error_patterns(data: Any) -> tuple[ErrorPattern, ...]:
    if data is None:
        return ()
    if not isinstance(data, list):
        raise ProviderConfigError("error_patterns must be a list")
    patterns = []
    for item in data:
        if not isinstance(item, dict) or "pattern" not in item:
            raise ProviderConfigError("Each error pattern requires a pattern field")
        patterns.append(ErrorPattern(
            pattern=item["pattern"],
            type=item.get("type", "error"),
            message=item.get("message", ""),
        ))
    return tuple(patterns)


def _parse_plugin(data: dict) -> PluginProviderConfig:
    return PluginProviderConfig(
        id=data.get("id", ""),
        cli_command=data.get("cli_command", ""),
        query_args=_seq(data.get("query_args", [])),
        execute_args=_seq(data.get("execute_args", [])),
        prompt_in_args=data.get("prompt_in_args", False),
        display_name=data.get("display_name", ""),
        description=data.get("description", ""),
        default_model=data.get("default_model", ""),
        timeout=_parse_timeout(data.get("timeout")),
        error_patterns=_parse_error_patterns(data.get("error_patterns")),
        not_installed_message=data.get("not_installed_message", ""),
        env=data.get("env") or {},
    )


def _parse_remote(data: dict) -> RemoteProviderConfig:
    auth_raw = data.get("auth")
    auth = None
    if auth_raw is not None:
        if not isinstance(auth_raw, dict):
            raise ProviderConfigError("auth must be a table with type/token keys")
        auth = RemoteAuth(type=auth_raw.get("type", "none"), token=auth_raw.get("token", ""))
    return RemoteProviderConfig(
        id=data.get("id", ""),
        location=data.get("location", ""),
        external_agent_id=data.get("external_agent_id", ""),
        display_name=data.get("display_name", ""),
        description=data.get("description", ""),
        default_model=data.get("default_model", ""),
        auth=auth,
        timeout=_parse_timeout(data.get("timeout")),
        headers=data.get("headers") or {},
    )


def _parse_api(data: dict) -> APIProviderFactoryConfig:
    return APIProviderFactoryConfig(
        provider=data.get("provider", ""),
        model=data.get("model", ""),
        url=data.get("url", ""),
        api_key=data.get("api_key", data.get("apiKey", "")),
        temperature=data.get("temperature"),
        max_tokens=data.get("max_tokens", data.get("maxTokens")),
        tools=_seq(data.get("tools", [])),
        mcp=_seq(data.get("mcp", [])),
    )


_PARSERS = {
    "plugin": _parse_plugin,
    "remote": _parse_remote,
    "api": _parse_api,
}


def config_from_dict(data: Any) -> DynamicProviderConfig:
    """Map a raw config table (e.g. from TOML) onto its config dataclass.

    Only the shape is checked here; value-level validation happens in
    DynamicProviderFactory.
    """
    if not isinstance(data, dict):
        raise ProviderConfigError("Provider configuration must be a table")
    provider_type = data.get("type")
    parser = _PARSERS.get(provider_type)
    if parser is None:
        raise ProviderConfigError(f"Unknown provider type: {provider_type}")
    return parser(data)

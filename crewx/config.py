"""Configuration loading: TOML file + environment variable overlay."""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path

try:
    import tomllib
except ImportError:
    import tomli as tomllib  # type: ignore[no-redef]

from crewx.models.provider import AgentConfig, ExecutionMode, ProviderFamily

DEFAULT_CONFIG_DIR = Path.home() / ".config" / "crewx"
DEFAULT_CONFIG_PATH = DEFAULT_CONFIG_DIR / "config.toml"
DEFAULT_LOGS_DIR = ".crewx/logs"

# Milliseconds
DEFAULT_TIMEOUT_MS = 1_800_000
FALLBACK_QUERY_TIMEOUT_MS = 600_000

DEFAULT_CONFIG_TOML = """\
[general]
logs_dir = ".crewx/logs"
default_agent = "claude"

[timeouts]
# Milliseconds. CREWCODE_TIMEOUT_* environment variables take precedence.
claude_query = 1800000
claude_execute = 1800000
gemini_query = 1800000
gemini_execute = 1800000
copilot_query = 1800000
copilot_execute = 1800000
parallel = 1800000

[log]
prompt_max_length = 10000
tool_result_max_length = 2000
conversation_max_length = 4000

[agents.claude]
provider = "cli/claude"

[agents.gemini]
provider = "cli/gemini"

[agents.copilot]
provider = "cli/copilot"

[agents.codex]
provider = "cli/codex"

# Dynamic providers, e.g.:
#
# [[providers]]
# type = "plugin"
# id = "ollama"
# cli_command = "ollama"
# query_args = ["run", "{model}"]
# execute_args = ["run", "{model}"]
# prompt_in_args = false
# default_model = "llama3"
#
# [[providers]]
# type = "remote"
# id = "backend-team"
# location = "https://crewx.example.com"
# external_agent_id = "backend"
# auth = { type = "bearer", token = "..." }
"""

_TIMEOUT_ENV = {
    "claude_query": "CREWCODE_TIMEOUT_CLAUDE_QUERY",
    "claude_execute": "CREWCODE_TIMEOUT_CLAUDE_EXECUTE",
    "gemini_query": "CREWCODE_TIMEOUT_GEMINI_QUERY",
    "gemini_execute": "CREWCODE_TIMEOUT_GEMINI_EXECUTE",
    "copilot_query": "CREWCODE_TIMEOUT_COPILOT_QUERY",
    "copilot_execute": "CREWCODE_TIMEOUT_COPILOT_EXECUTE",
    "parallel": "CREWCODE_TIMEOUT_PARALLEL",
}

_LOG_ENV = {
    "prompt_max_length": "CREWX_LOG_PROMPT_MAX_LENGTH",
    "tool_result_max_length": "CREWX_LOG_TOOL_RESULT_MAX_LENGTH",
    "conversation_max_length": "CREWX_LOG_CONVERSATION_MAX_LENGTH",
}


@dataclass
class TimeoutConfig:
    claude_query: int = DEFAULT_TIMEOUT_MS
    claude_execute: int = DEFAULT_TIMEOUT_MS
    gemini_query: int = DEFAULT_TIMEOUT_MS
    gemini_execute: int = DEFAULT_TIMEOUT_MS
    copilot_query: int = DEFAULT_TIMEOUT_MS
    copilot_execute: int = DEFAULT_TIMEOUT_MS
    parallel: int = DEFAULT_TIMEOUT_MS

    def query_timeout(self, family: ProviderFamily) -> int:
        if family == ProviderFamily.CLAUDE:
            return self.claude_query
        if family == ProviderFamily.GEMINI:
            return self.gemini_query
        if family == ProviderFamily.COPILOT:
            return self.copilot_query
        return FALLBACK_QUERY_TIMEOUT_MS

    def execute_timeout(self, family: ProviderFamily) -> int:
        if family == ProviderFamily.CLAUDE:
            return self.claude_execute
        if family == ProviderFamily.GEMINI:
            return self.gemini_execute
        if family == ProviderFamily.COPILOT:
            return self.copilot_execute
        return self.parallel

    def for_mode(self, family: ProviderFamily, mode: ExecutionMode) -> int:
        if mode == ExecutionMode.EXECUTE:
            return self.execute_timeout(family)
        return self.query_timeout(family)


@dataclass
class LogConfig:
    prompt_max_length: int = 10_000
    tool_result_max_length: int = 2_000
    conversation_max_length: int = 4_000


@dataclass
class AppConfig:
    logs_dir: str = DEFAULT_LOGS_DIR
    default_agent: str = "claude"
    timeouts: TimeoutConfig = field(default_factory=TimeoutConfig)
    log: LogConfig = field(default_factory=LogConfig)
    agents: dict[str, AgentConfig] = field(default_factory=dict)
    providers: list[dict] = field(default_factory=list)
    config_path: Path = DEFAULT_CONFIG_PATH

    @property
    def resolved_logs_dir(self) -> Path:
        return Path(self.logs_dir).expanduser()


def provider_family(provider_name: str) -> ProviderFamily:
    """Map a provider name onto its timeout family.

    Matching is by substring so plugin providers named after a backend
    (``plugin/claude-wrapper``) share that backend's timeouts.
    """
    lowered = provider_name.lower()
    if "claude" in lowered:
        return ProviderFamily.CLAUDE
    if "gemini" in lowered:
        return ProviderFamily.GEMINI
    if "copilot" in lowered:
        return ProviderFamily.COPILOT
    return ProviderFamily.GENERIC


def _positive_int(value: object) -> int | None:
    try:
        parsed = int(str(value).strip())
    except (TypeError, ValueError):
        return None
    return parsed if parsed > 0 else None


def get_default_timeout_config() -> TimeoutConfig:
    """Built-in timeouts, ignoring the environment."""
    return TimeoutConfig()


def get_timeout_config(env: Mapping[str, str] | None = None) -> TimeoutConfig:
    """Build timeouts from defaults plus CREWCODE_TIMEOUT_* overrides."""
    env = os.environ if env is None else env
    config = get_default_timeout_config()
    _apply_env(config, _TIMEOUT_ENV, env)
    return config


def get_log_config(env: Mapping[str, str] | None = None) -> LogConfig:
    """Build log limits from defaults plus CREWX_LOG_* overrides."""
    env = os.environ if env is None else env
    config = LogConfig()
    _apply_env(config, _LOG_ENV, env)
    return config


def _apply_env(target: object, names: dict[str, str], env: Mapping[str, str]) -> None:
    for attr, var in names.items():
        if (value := _positive_int(env.get(var, ""))) is not None:
            setattr(target, attr, value)


def _apply_table(target: object, names: dict[str, str], table: dict) -> None:
    for attr in names:
        if (value := _positive_int(table.get(attr))) is not None:
            setattr(target, attr, value)


def _env_overlay(config: AppConfig) -> None:
    """Override config values with environment variables where applicable."""
    _apply_env(config.timeouts, _TIMEOUT_ENV, os.environ)
    _apply_env(config.log, _LOG_ENV, os.environ)
    if logs_dir := os.environ.get("CREWX_LOGS_DIR"):
        config.logs_dir = logs_dir


def _parse_agent(agent_id: str, data: dict) -> AgentConfig:
    return AgentConfig(
        id=agent_id,
        provider=data.get("provider", ""),
        model=data.get("model", ""),
        working_directory=data.get("working_directory", ""),
        additional_args=tuple(data.get("additional_args", [])),
    )


def resolve_config_path(config_path: Path | None = None) -> Path:
    if config_path is not None:
        return config_path
    if env_path := os.environ.get("CREWX_CONFIG"):
        return Path(env_path).expanduser()
    return DEFAULT_CONFIG_PATH


def load_config(config_path: Path | None = None) -> AppConfig:
    """Load configuration from TOML file with env var overlay."""
    path = resolve_config_path(config_path)

    if path.exists():
        with open(path, "rb") as f:
            raw = tomllib.load(f)
    else:
        raw = tomllib.loads(DEFAULT_CONFIG_TOML)

    general = raw.get("general", {})
    timeouts_raw = raw.get("timeouts", {})
    log_raw = raw.get("log", {})
    agents_raw = raw.get("agents", {})

    timeouts = get_default_timeout_config()
    _apply_table(timeouts, _TIMEOUT_ENV, timeouts_raw)
    log = LogConfig()
    _apply_table(log, _LOG_ENV, log_raw)

    config = AppConfig(
        logs_dir=general.get("logs_dir", DEFAULT_LOGS_DIR),
        default_agent=general.get("default_agent", "claude"),
        timeouts=timeouts,
        log=log,
        agents={name: _parse_agent(name, data) for name, data in agents_raw.items()},
        providers=list(raw.get("providers", [])),
        config_path=path,
    )

    _env_overlay(config)
    return config


def init_config(config_path: Path | None = None) -> Path:
    """Create default config file."""
    path = resolve_config_path(config_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(DEFAULT_CONFIG_TOML)
    return path

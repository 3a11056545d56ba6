"""Claude Code CLI provider."""

from __future__ import annotations

import json
import re
from dataclasses import replace

from crewx.infra.providers.engine import BaseAIProvider
from crewx.models.provider import (
    NO_ERROR,
    AIQueryOptions,
    AIResponse,
    BuiltInProvider,
    ProviderError,
)

_RESET_TIME = re.compile(r"resets (\d+(?::\d+)?(?:am|pm))", re.IGNORECASE)

_ERROR_INDICATORS = [
    re.compile(r"^Error:", re.MULTILINE),
    re.compile(r"^error:", re.MULTILINE),
    re.compile(r"^Failed:", re.MULTILINE),
    re.compile(r"^Unable to", re.MULTILINE),
    re.compile(r"unknown option", re.IGNORECASE),
    re.compile(r"invalid option", re.IGNORECASE),
    re.compile(r"command not found", re.IGNORECASE),
    re.compile(r"no such file", re.IGNORECASE),
    re.compile(r"permission denied", re.IGNORECASE),
    re.compile(r"ECONNREFUSED"),
    re.compile(r"ETIMEDOUT"),
    re.compile(r"ENOTFOUND"),
    re.compile(r"EHOSTUNREACH"),
    re.compile(r"\bconnection refused\b", re.IGNORECASE),
    re.compile(r"\bnetwork error\b", re.IGNORECASE),
    re.compile(r"\brequest failed\b", re.IGNORECASE),
]

# Diagnostic chatter the CLI prints on stderr during normal runs
_DEBUG_LOG_PATTERNS = [
    re.compile(r"follow-redirects options"),
    re.compile(r"spawn-rx"),
    re.compile(r"\[Function:"),
    re.compile(r"connectionListener"),
    re.compile(r"maxRedirects:"),
    re.compile(r"\{[\s\S]*protocol:.*\}"),
]


def is_stream_json_enabled(additional_args: tuple[str, ...] | list[str]) -> bool:
    args = list(additional_args)
    for idx, arg in enumerate(args):
        if arg == "--output-format=stream-json":
            return True
        if arg == "--output-format" and idx + 1 < len(args) and args[idx + 1] == "stream-json":
            return True
    return False


class ClaudeProvider(BaseAIProvider):
    name = BuiltInProvider.CLAUDE.value

    def get_cli_command(self) -> str:
        return "claude"

    def get_default_args(self) -> list[str]:
        return []

    def get_execute_args(self) -> list[str]:
        return []

    def get_not_installed_message(self) -> str:
        return "Claude CLI is not installed. Please install it from https://claude.ai/download."

    async def query(self, prompt: str, options: AIQueryOptions | None = None) -> AIResponse:
        options = options or AIQueryOptions()
        return self._unwrap_stream(await super().query(prompt, options), options)

    async def execute(self, prompt: str, options: AIQueryOptions | None = None) -> AIResponse:
        options = options or AIQueryOptions()
        return self._unwrap_stream(await super().execute(prompt, options), options)

    def _unwrap_stream(self, response: AIResponse, options: AIQueryOptions) -> AIResponse:
        if response.success and response.content and is_stream_json_enabled(options.additional_args):
            return replace(response, content=self.parse_jsonl_response(response.content))
        return response

    def parse_jsonl_response(self, content: str) -> str:
        """Return the final ``result`` of a stream-json transcript."""
        lines = [line for line in content.split("\n") if line.strip()]
        for line in reversed(lines):
            try:
                parsed = json.loads(line)
            except ValueError:
                continue
            if isinstance(parsed, dict) and parsed.get("type") == "result" and parsed.get("result"):
                self.logger.info("Extracted final result from JSONL stream")
                return parsed["result"]

        self.logger.warning("Could not parse JSONL, returning original content")
        return content

    def parse_provider_error(self, stderr: str, stdout: str) -> ProviderError:
        # Exit code 0 does not guarantee success; stderr is checked first
        combined = stderr or stdout
        if "Session limit reached" in combined:
            match = _RESET_TIME.search(combined)
            reset_time = match.group(1) if match else "later today"
            return ProviderError(
                error=True,
                message=(
                    f"Claude Pro session limit reached. Your limit will reset at {reset_time}. "
                    "Please try again after the reset or use another AI agent "
                    "(Gemini or Copilot) in the meantime."
                ),
            )

        if stderr and ("authentication required" in stderr or "Please run `claude login`" in stderr):
            return ProviderError(
                error=True,
                message="Claude CLI authentication required. Please run `claude login` to authenticate.",
            )

        if stdout and stdout.strip():
            return NO_ERROR

        if stderr and stderr.strip():
            if any(p.search(stderr) for p in _DEBUG_LOG_PATTERNS):
                return NO_ERROR
            if any(p.search(stderr) for p in _ERROR_INDICATORS):
                first_line = stderr.split("\n")[0].strip() or stderr.strip()
                return ProviderError(error=True, message=first_line)

        return NO_ERROR

"""OpenAI Codex CLI provider."""

from __future__ import annotations

import json
from dataclasses import replace

from crewx.infra.providers.engine import BaseAIProvider
from crewx.models.provider import (
    NO_ERROR,
    AIQueryOptions,
    AIResponse,
    BuiltInProvider,
    ProviderError,
)


def _assistant_text(parsed: object) -> str | None:
    """Assistant message carried by one JSONL event, if any."""
    if not isinstance(parsed, dict):
        return None

    item = parsed.get("item")
    if isinstance(item, dict) and item.get("item_type") == "assistant_message":
        if isinstance(item.get("text"), str):
            return item["text"].strip()

    response = parsed.get("response")
    if isinstance(response, dict) and isinstance(response.get("output"), list):
        entries = [
            e for e in response["output"]
            if isinstance(e, dict) and e.get("item_type") == "assistant_message"
        ]
        if entries and entries[-1].get("text"):
            return str(entries[-1]["text"]).strip()
    return None


class CodexProvider(BaseAIProvider):
    """Codex takes the prompt as its last argument and reads nothing from stdin."""

    name = BuiltInProvider.CODEX.value

    def get_cli_command(self) -> str:
        return "codex"

    def get_default_args(self) -> list[str]:
        return []

    def get_execute_args(self) -> list[str]:
        return []

    def get_not_installed_message(self) -> str:
        return "Codex CLI is not installed. Please install it first."

    def get_prompt_in_args(self) -> bool:
        return True

    def should_pipe_context(self, options: AIQueryOptions) -> bool:
        return False

    async def query(self, prompt: str, options: AIQueryOptions | None = None) -> AIResponse:
        options = options or AIQueryOptions()
        return self._unwrap_jsonl(await super().query(prompt, options), options)

    async def execute(self, prompt: str, options: AIQueryOptions | None = None) -> AIResponse:
        options = options or AIQueryOptions()
        return self._unwrap_jsonl(await super().execute(prompt, options), options)

    def _unwrap_jsonl(self, response: AIResponse, options: AIQueryOptions) -> AIResponse:
        if response.success and response.content and "--experimental-json" in options.additional_args:
            return replace(response, content=self.parse_jsonl_response(response.content))
        return response

    def parse_jsonl_response(self, content: str) -> str:
        """Return the last assistant message of an --experimental-json transcript."""
        message = None
        for line in content.split("\n"):
            line = line.strip()
            if not line:
                continue
            try:
                parsed = json.loads(line)
            except ValueError:
                continue
            if (text := _assistant_text(parsed)) is not None:
                message = text

        if message:
            self.logger.info("Extracted assistant message from Codex JSONL stream")
            return message

        self.logger.warning("Could not parse Codex JSONL, returning original content")
        return content

    def parse_provider_error(self, stderr: str, stdout: str) -> ProviderError:
        if stderr and ("not logged in" in stderr or "authentication required" in stderr):
            return ProviderError(
                error=True,
                message="Codex CLI authentication required. Please run `codex login` to authenticate.",
            )
        if stderr and "rate limit" in stderr:
            return ProviderError(error=True, message="Codex API rate limit reached. Please try again later.")

        if stdout and stdout.strip():
            return NO_ERROR
        if stderr and stderr.strip():
            return ProviderError(error=True, message=stderr.split("\n")[0].strip() or "Unknown error")

        return super().parse_provider_error(stderr, stdout)

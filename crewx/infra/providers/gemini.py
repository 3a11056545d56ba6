"""Gemini CLI provider, with a tool-calling conversation loop."""

from __future__ import annotations

import json
from typing import Any

from crewx.infra.providers.engine import BaseAIProvider
from crewx.infra.providers.tool_calls import (
    DEFAULT_MAX_TURNS,
    XML_TOOL_CALL,
    run_tool_loop,
    tool_use_from,
)
from crewx.models.provider import AIQueryOptions, AIResponse, BuiltInProvider, ExecutionMode
from crewx.models.tool import NOT_TOOL_USE, ToolUse


class GeminiProvider(BaseAIProvider):
    """Gemini reads the prompt on stdin.

    With a tool-call handler attached, query and execute run a multi-turn
    loop: the tool catalogue is prepended to the prompt, each requested
    tool is executed, and its result is sent back as the next prompt.
    """

    name = BuiltInProvider.GEMINI.value
    max_turns = DEFAULT_MAX_TURNS

    def get_cli_command(self) -> str:
        return "gemini"

    def get_default_args(self) -> list[str]:
        return []

    def get_execute_args(self) -> list[str]:
        return []

    def get_not_installed_message(self) -> str:
        return "Gemini CLI is not installed."

    def parse_tool_use_provider_specific(self, parsed: Any) -> ToolUse:
        # --output-format json wraps the model text in {"response": "..."}
        if isinstance(parsed, dict) and isinstance(parsed.get("response"), str):
            if match := XML_TOOL_CALL.search(parsed["response"]):
                try:
                    return tool_use_from(json.loads(match.group(1).strip()))
                except ValueError:
                    return NOT_TOOL_USE
        return NOT_TOOL_USE

    async def query(self, prompt: str, options: AIQueryOptions | None = None) -> AIResponse:
        options = options or AIQueryOptions()
        if self.tool_call_handler is None:
            return await super().query(prompt, options)
        return await run_tool_loop(self, prompt, options, ExecutionMode.QUERY, self.max_turns)

    async def execute(self, prompt: str, options: AIQueryOptions | None = None) -> AIResponse:
        options = options or AIQueryOptions()
        if self.tool_call_handler is None:
            return await super().execute(prompt, options)
        return await run_tool_loop(self, prompt, options, ExecutionMode.EXECUTE, self.max_turns)

"""Tool-call protocol: detecting tool requests in free-text backend output.

Detection is best-effort. CLI backends answer in free text, so a request
may arrive XML-tagged, as bare JSON, inside a fenced code block, or
embedded in prose; each framing is tried in that order and the first
structurally valid match wins.
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Callable
from dataclasses import replace
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from crewx.models.provider import AIQueryOptions, AIResponse, ExecutionMode
from crewx.models.tool import (
    NOT_TOOL_USE,
    Tool,
    ToolExecutionContext,
    ToolExecutionResult,
    ToolUse,
)

if TYPE_CHECKING:
    from crewx.infra.providers.engine import BaseAIProvider

logger = logging.getLogger(__name__)

DEFAULT_MAX_TURNS = 5
TOOL_OPERATIONS_PLACEHOLDER = "[Tool operations completed]"
MAX_TURNS_MESSAGE = "Maximum conversation turns reached without completing the task."

XML_TOOL_CALL = re.compile(r"<crew(?:code|x)_tool_call>\s*([\s\S]*?)\s*</crew(?:code|x)_tool_call>")
_CODE_BLOCK = re.compile(r"```(?:json)?\s*\n?([\s\S]*?)\n?```")
_EMBEDDED_TOOL_USE = re.compile(r'\{[\s\S]*?"type"\s*:\s*"tool_use"[\s\S]*?\}')

_DECODER = json.JSONDecoder()
_BLANK_RUNS = re.compile(r"\n{3,}")


@runtime_checkable
class ToolCallHandler(Protocol):
    """Lists and executes the tools a backend may request."""

    def list(self) -> list[Tool]:
        ...

    async def execute(
        self,
        name: str,
        input: dict[str, Any],
        context: ToolExecutionContext | None = None,
    ) -> ToolExecutionResult:
        ...


def tool_use_from(parsed: Any) -> ToolUse:
    """Validate one decoded JSON value as a tool request."""
    if (
        isinstance(parsed, dict)
        and parsed.get("type") == "tool_use"
        and parsed.get("name")
        and "input" in parsed
    ):
        return ToolUse(is_tool_use=True, tool_name=parsed["name"], tool_input=parsed["input"])
    return NOT_TOOL_USE


def _loads(text: str) -> Any:
    try:
        return json.loads(text)
    except (TypeError, ValueError):
        return None


def parse_tool_use(
    content: str,
    provider_specific: Callable[[Any], ToolUse] | None = None,
) -> ToolUse:
    """Detect a tool request in ``content``.

    ``provider_specific`` is consulted with the decoded document when the
    whole response is JSON but not a recognized tool request.
    """
    if not content:
        return NOT_TOOL_USE

    # XML-tagged JSON
    if match := XML_TOOL_CALL.search(content):
        found = tool_use_from(_loads(match.group(1).strip()))
        if found.is_tool_use:
            logger.info("Tool use detected from XML: %s", found.tool_name)
            return found

    # The whole response as JSON
    parsed = _loads(content)
    if parsed is not None:
        found = tool_use_from(parsed)
        if found.is_tool_use:
            logger.info("Tool use detected from direct JSON: %s", found.tool_name)
            return found

        if isinstance(parsed, dict) and isinstance(parsed.get("content"), list):
            block = next(
                (c for c in parsed["content"] if isinstance(c, dict) and c.get("type") == "tool_use"),
                None,
            )
            found = tool_use_from(block)
            if found.is_tool_use:
                logger.info("Tool use detected from content array: %s", found.tool_name)
                return found

        if provider_specific is not None:
            found = provider_specific(parsed)
            if found.is_tool_use:
                return found

    # Fenced code block
    if match := _CODE_BLOCK.search(content):
        found = tool_use_from(_loads(match.group(1).strip()))
        if found.is_tool_use:
            logger.info("Tool use detected from code block: %s", found.tool_name)
            return found

    # JSON object embedded in prose
    if match := _EMBEDDED_TOOL_USE.search(content):
        found = tool_use_from(_loads(match.group(0)))
        if found.is_tool_use:
            logger.info("Tool use detected from plain text JSON: %s", found.tool_name)
            return found

    return NOT_TOOL_USE


def _is_tool_use_object(value: Any) -> bool:
    return isinstance(value, dict) and value.get("type") == "tool_use"


def _widen_to_line(content: str, start: int, end: int) -> tuple[int, int]:
    """Extend a span to its whole line(s) when nothing else shares them."""
    line_start = content.rfind("\n", 0, start) + 1
    if content[line_start:start].strip():
        return start, end
    line_end = content.find("\n", end)
    line_end = len(content) if line_end == -1 else line_end
    if content[end:line_end].strip():
        return start, end
    return line_start, min(line_end + 1, len(content))


def _strip_tool_use_objects(content: str) -> str:
    pieces = []
    kept_from = 0
    index = content.find("{")
    while index != -1:
        try:
            value, end = _DECODER.raw_decode(content, index)
        except ValueError:
            index = content.find("{", index + 1)
            continue
        if _is_tool_use_object(value):
            start, stop = _widen_to_line(content, index, end)
            start = max(start, kept_from)
            pieces.append(content[kept_from:start])
            kept_from = stop
            end = stop
        index = content.find("{", end)
    pieces.append(content[kept_from:])
    return "".join(pieces)


def filter_tool_use_from_response(content: str) -> str:
    """Strip raw tool-use JSON objects so they never reach a human reader.

    Objects are found by decoding from every ``{``, so nested ``input``
    values are removed whole.
    """
    if not content:
        return content

    filtered = _strip_tool_use_objects(content)
    filtered = _BLANK_RUNS.sub("\n\n", filtered)

    if not filtered.strip():
        return TOOL_OPERATIONS_PLACEHOLDER
    return filtered.strip()


def build_prompt_with_tools(prompt: str, tools: list[Tool]) -> str:
    """Prefix ``prompt`` with the tool catalogue and the call convention."""
    if not tools:
        return prompt

    catalogue = "\n".join(
        f"- {t.name}: {t.description}\n  Input schema: {json.dumps(t.input_schema, indent=2)}"
        for t in tools
    )
    tools_section = f"""

Available tools:
{catalogue}

To use a tool, wrap your JSON response in <crewx_tool_call> tags like this:
<crewx_tool_call>
{{
  "type": "tool_use",
  "name": "tool_name",
  "input": {{ ...tool parameters... }}
}}
</crewx_tool_call>

If you don't need to use a tool, respond normally.
"""
    return tools_section + "\n" + prompt


def build_tool_result_prompt(tool_name: str, result: ToolExecutionResult) -> str:
    """Prompt for the turn after a tool ran."""
    result_data = result.data if result.success and result.data is not None else result.to_dict()
    return f"""The {tool_name} tool has been executed successfully.

<tool_result>
{json.dumps(result_data, indent=2, default=str)}
</tool_result>

Based on the tool execution result above, please provide a clear, detailed, and user-friendly response to the user's original request. Present the information in an organized and easy-to-read format."""


async def run_tool_loop(
    provider: BaseAIProvider,
    prompt: str,
    options: AIQueryOptions,
    mode: ExecutionMode,
    max_turns: int = DEFAULT_MAX_TURNS,
) -> AIResponse:
    """Alternate backend turns and tool executions until a plain answer arrives.

    Every turn reuses one task id, so all turns land in the same task log.
    """
    handler = provider.tool_call_handler
    if handler is None:
        return await provider._invoke(prompt, options, mode)

    task_id = options.task_id or provider.generate_task_id(mode)
    options = replace(options, task_id=task_id)
    result_limit = provider.log_config.tool_result_max_length
    current_prompt = build_prompt_with_tools(prompt, handler.list())
    command = provider.get_cli_command()

    for turn in range(1, max_turns + 1):
        logger.info("%s tool loop turn %d/%d", provider.name, turn, max_turns)
        response = await provider._invoke(current_prompt, options, mode, filter_tool_use=False)
        provider.append_task_log(task_id, "INFO", f"Tool loop turn {turn}/{max_turns}")
        if not response.success:
            return response
        command = response.command

        tool_use = provider.parse_tool_use(response.content)
        if not tool_use.is_tool_use:
            return replace(response, content=provider.filter_tool_use_from_response(response.content))

        tool_input = tool_use.tool_input if isinstance(tool_use.tool_input, dict) else {}
        provider.append_task_log(
            task_id, "INFO", f"Tool call: {tool_use.tool_name} input={json.dumps(tool_input, default=str)}"
        )
        try:
            result = await handler.execute(
                tool_use.tool_name,
                tool_input,
                ToolExecutionContext(agent_id=options.agent_id, task_id=task_id),
            )
        except Exception as e:
            logger.error("Tool %s raised: %s", tool_use.tool_name, e)
            result = ToolExecutionResult(success=False, error=str(e))

        preview = json.dumps(result.to_dict(), default=str)
        if len(preview) > result_limit:
            preview = preview[:result_limit] + "...[truncated]"
        provider.append_task_log(task_id, "INFO", f"Tool result: {preview}")
        current_prompt = build_tool_result_prompt(tool_use.tool_name, result)

    provider.append_task_log(task_id, "ERROR", MAX_TURNS_MESSAGE)
    return AIResponse.failure(MAX_TURNS_MESSAGE, provider.name, command, task_id)

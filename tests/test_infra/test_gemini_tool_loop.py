"""Tests for the Gemini tool-calling loop."""

import json
from unittest.mock import AsyncMock

import pytest

from crewx.infra.providers.gemini import GeminiProvider
from crewx.infra.providers.tool_calls import MAX_TURNS_MESSAGE
from crewx.models.provider import AIQueryOptions, AIResponse, ExecutionMode
from crewx.models.tool import Tool
from crewx.services.tool_registry import ToolRegistry


def ok(content: str) -> AIResponse:
    return AIResponse(content=content, provider="cli/gemini", command="gemini", success=True, task_id="t1")


def tool_call(name: str, tool_input: dict) -> AIResponse:
    call = json.dumps({"type": "tool_use", "name": name, "input": tool_input})
    return ok(f"<crewx_tool_call>\n{call}\n</crewx_tool_call>")


@pytest.fixture
def registry():
    reg = ToolRegistry()

    async def read_file(context, tool_input):
        return {"text": f"contents of {tool_input['path']}"}

    reg.register(
        Tool(name="read_file", description="Read a file",
             input_schema={"type": "object", "properties": {"path": {"type": "string"}}}),
        read_file,
    )
    return reg


class TestGeminiToolLoop:
    @pytest.mark.asyncio
    async def test_tool_then_answer(self, tmp_path, registry):
        provider = GeminiProvider(logs_dir=tmp_path, tool_call_handler=registry)
        provider._invoke = AsyncMock(side_effect=[
            tool_call("read_file", {"path": "a.txt"}),
            ok("The file says hello."),
        ])

        resp = await provider.query("summarize a.txt", AIQueryOptions(task_id="loop-1"))

        assert resp.success
        assert resp.content == "The file says hello."
        first_prompt = provider._invoke.call_args_list[0].args[0]
        assert "Available tools:" in first_prompt
        assert first_prompt.endswith("summarize a.txt")
        second_prompt = provider._invoke.call_args_list[1].args[0]
        assert "<tool_result>" in second_prompt
        assert "contents of a.txt" in second_prompt
        for call in provider._invoke.call_args_list:
            assert call.kwargs == {"filter_tool_use": False}
            assert call.args[1].task_id == "loop-1"
            assert call.args[2] == ExecutionMode.QUERY

        log = (tmp_path / "loop-1.log").read_text()
        assert "Tool call: read_file" in log
        assert "Tool result:" in log

    @pytest.mark.asyncio
    async def test_execute_uses_loop(self, tmp_path, registry):
        provider = GeminiProvider(logs_dir=tmp_path, tool_call_handler=registry)
        provider._invoke = AsyncMock(return_value=ok("done"))
        resp = await provider.execute("do it")
        assert resp.content == "done"
        assert provider._invoke.call_args.args[2] == ExecutionMode.EXECUTE
        assert provider._invoke.call_args.args[1].task_id.startswith("cli_gemini_execute_")

    @pytest.mark.asyncio
    async def test_max_turns(self, tmp_path, registry):
        provider = GeminiProvider(logs_dir=tmp_path, tool_call_handler=registry)
        provider._invoke = AsyncMock(return_value=tool_call("read_file", {"path": "loop.txt"}))

        resp = await provider.query("never ends")

        assert not resp.success
        assert resp.error == MAX_TURNS_MESSAGE
        assert resp.content == ""
        assert provider._invoke.await_count == 5

    @pytest.mark.asyncio
    async def test_failed_turn_returned_as_is(self, tmp_path, registry):
        provider = GeminiProvider(logs_dir=tmp_path, tool_call_handler=registry)
        failure = AIResponse.failure("cli/gemini CLI timeout", "cli/gemini", "gemini", "t1")
        provider._invoke = AsyncMock(side_effect=[tool_call("read_file", {"path": "a"}), failure])
        assert await provider.query("x") is failure

    @pytest.mark.asyncio
    async def test_handler_exception_fed_back(self, tmp_path):
        class BrokenHandler:
            def list(self):
                return [Tool(name="explode", description="Always fails")]

            async def execute(self, name, input, context=None):
                raise RuntimeError("kaboom")

        provider = GeminiProvider(logs_dir=tmp_path, tool_call_handler=BrokenHandler())
        provider._invoke = AsyncMock(side_effect=[tool_call("explode", {}), ok("Sorry, the tool failed.")])

        resp = await provider.query("try it")

        assert resp.content == "Sorry, the tool failed."
        assert '"error": "kaboom"' in provider._invoke.call_args_list[1].args[0]

    @pytest.mark.asyncio
    async def test_final_answer_filtered(self, tmp_path, registry):
        provider = GeminiProvider(logs_dir=tmp_path, tool_call_handler=registry)
        provider._invoke = AsyncMock(return_value=ok('Answer\n{"type": "tool_use", "name": "x"}'))
        resp = await provider.query("q")
        assert resp.content == "Answer"

    @pytest.mark.asyncio
    async def test_without_handler_runs_once(self, tmp_path):
        provider = GeminiProvider(logs_dir=tmp_path)
        provider._invoke = AsyncMock(return_value=ok("plain"))
        resp = await provider.query("hello")
        assert resp.content == "plain"
        provider._invoke.assert_awaited_once()
        assert provider._invoke.call_args.args[0] == "hello"

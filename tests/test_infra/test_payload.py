"""Tests for structured payload construction."""

import json

from crewx.infra.providers.payload import (
    PAYLOAD_VERSION,
    build_piped_context,
    create_structured_payload,
    extract_user_query,
    format_history,
    is_structured_payload,
    wrap_user_query,
)
from crewx.models.provider import AIQueryOptions, ExecutionMode, StructuredMessage


class TestStructuredPayload:
    def test_create(self):
        options = AIQueryOptions(
            agent_id="dev",
            model="opus",
            messages=(StructuredMessage("hi"), StructuredMessage("hello", is_assistant=True)),
        )
        payload = json.loads(create_structured_payload(
            "do it", "  ctx  ", options, "cli/claude", ExecutionMode.EXECUTE
        ))
        assert payload["version"] == PAYLOAD_VERSION
        assert payload["agent"] == {"id": "dev", "provider": "cli/claude", "mode": "execute", "model": "opus"}
        assert payload["prompt"] == "do it"
        assert payload["context"] == "ctx"
        assert payload["messages"][1] == {"text": "hello", "isAssistant": True}
        assert payload["metadata"]["messageCount"] == 2
        assert payload["metadata"]["formattedHistory"] == "1. User: hi\n2. Assistant: hello"
        assert payload["metadata"]["originalContext"] == "ctx"
        assert "generatedAt" in payload["metadata"]

    def test_is_structured_payload(self):
        assert is_structured_payload('{"prompt": "x", "messages": []}')
        assert not is_structured_payload('{"prompt": "x"}')
        assert not is_structured_payload("[1, 2]")
        assert not is_structured_payload("plain text")

    def test_format_history_empty(self):
        assert format_history([]) == ""


class TestBuildPipedContext:
    def test_nothing_to_pipe(self):
        assert build_piped_context("p", AIQueryOptions(), "cli/claude") is None
        assert build_piped_context("p", AIQueryOptions(piped_context="   "), "cli/claude") is None

    def test_plain_context_is_wrapped(self):
        piped = build_piped_context("p", AIQueryOptions(piped_context="notes"), "cli/gemini")
        payload = json.loads(piped)
        assert payload["context"] == "notes"
        assert payload["agent"]["provider"] == "cli/gemini"
        assert payload["agent"]["mode"] == "query"

    def test_structured_context_passes_through(self):
        existing = json.dumps({"prompt": "orig", "messages": [{"text": "a", "isAssistant": False}]})
        options = AIQueryOptions(piped_context=existing, messages=(StructuredMessage("other"),))
        assert build_piped_context("new", options, "cli/claude") == existing

    def test_messages_only(self):
        options = AIQueryOptions(messages=(StructuredMessage("earlier"),))
        payload = json.loads(build_piped_context("p", options, "cli/claude"))
        assert payload["context"] == ""
        assert payload["messages"] == [{"text": "earlier", "isAssistant": False}]


class TestUserQueryWrapping:
    def test_wrap_and_extract(self):
        wrapped = "System rules...\n" + wrap_user_query("what is 2+2?", "k3y")
        assert '<user_query key="k3y">' in wrapped
        assert extract_user_query(wrapped) == "what is 2+2?"
        assert extract_user_query(wrapped, "k3y") == "what is 2+2?"

    def test_wrong_key_returns_whole_prompt(self):
        wrapped = wrap_user_query("secret", "right")
        assert extract_user_query(wrapped, "wrong") == wrapped.strip()

    def test_unwrapped(self):
        assert extract_user_query("  plain  ") == "plain"
        assert extract_user_query("") == ""

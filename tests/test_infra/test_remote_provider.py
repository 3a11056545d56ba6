"""Tests for the remote provider (HTTP and file:// delegation)."""

import asyncio
import json
from unittest.mock import AsyncMock

import httpx
import pytest

from crewx.infra.providers.payload import is_structured_payload, wrap_user_query
from crewx.infra.providers.remote import RemoteProvider
from crewx.models.dynamic import RemoteAuth, RemoteProviderConfig, TimeoutPair
from crewx.models.provider import AIQueryOptions, AIResponse, ExecutionMode, StructuredMessage


def make_remote(tmp_path, handler=None, **overrides) -> RemoteProvider:
    values = {"id": "team", "location": "https://crewx.example.com/", "external_agent_id": "dev"}
    values.update(overrides)
    transport = httpx.MockTransport(handler) if handler else None
    return RemoteProvider(RemoteProviderConfig(**values), transport=transport, logs_dir=tmp_path)


class Recorder:
    """MockTransport handler that records requests and replays one response."""

    def __init__(self, response: httpx.Response):
        self.response = response
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.response

    @property
    def body(self) -> dict:
        return json.loads(self.requests[-1].content)


class TestHTTPRequests:
    @pytest.mark.asyncio
    async def test_query_request_shape(self, tmp_path):
        recorder = Recorder(httpx.Response(200, json={"success": True, "content": "hi back"}))
        provider = make_remote(
            tmp_path, recorder,
            auth=RemoteAuth(type="bearer", token="secret"),
            headers={"X-Team": "core"},
        )

        resp = await provider.query("hello", AIQueryOptions(task_id="t-9", model="opus"))

        assert resp.success
        assert resp.content == "hi back"
        assert resp.provider == "remote/team"
        assert resp.task_id == "t-9"
        request = recorder.requests[0]
        assert str(request.url) == "https://crewx.example.com/mcp/query"
        assert request.headers["Authorization"] == "Bearer secret"
        assert request.headers["X-Team"] == "core"
        assert recorder.body == {
            "prompt": "hello",
            "agent_id": "dev",
            "task_id": "t-9",
            "model": "opus",
            "working_directory": None,
        }

    @pytest.mark.asyncio
    async def test_execute_endpoint_and_api_key(self, tmp_path):
        recorder = Recorder(httpx.Response(200, json={"content": "done"}))
        provider = make_remote(tmp_path, recorder, auth=RemoteAuth(type="api_key", token="k1"))
        resp = await provider.execute("build")
        assert resp.content == "done"
        assert recorder.requests[0].url.path == "/mcp/execute"
        assert recorder.requests[0].headers["Api-Key"] == "k1"
        assert recorder.body["model"] == "default"

    @pytest.mark.asyncio
    async def test_context_and_messages(self, tmp_path):
        recorder = Recorder(httpx.Response(200, json={"content": "ok"}))
        provider = make_remote(tmp_path, recorder)
        options = AIQueryOptions(
            piped_context="  background notes  ",
            messages=(StructuredMessage(text="earlier"), StructuredMessage(text="reply", is_assistant=True)),
        )

        await provider.query("now", options)

        body = recorder.body
        assert body["context"] == "background notes"
        assert body["messages"] == [
            {"text": "earlier", "isAssistant": False},
            {"text": "reply", "isAssistant": True},
        ]
        structured = json.loads(body["structured_payload"])
        assert structured["prompt"] == "now"
        assert structured["context"] == "background notes"

    @pytest.mark.asyncio
    async def test_structured_context_not_sent_as_context(self, tmp_path):
        recorder = Recorder(httpx.Response(200, json={"content": "ok"}))
        provider = make_remote(tmp_path, recorder)
        structured = provider.create_structured_payload("p", "ctx", AIQueryOptions())
        await provider.query("p", AIQueryOptions(piped_context=structured))
        assert "context" not in recorder.body
        assert recorder.body["structured_payload"] == structured

    @pytest.mark.asyncio
    async def test_auth_overrides_static_authorization(self, tmp_path):
        recorder = Recorder(httpx.Response(200, json={"content": "ok"}))
        provider = make_remote(
            tmp_path, recorder,
            auth=RemoteAuth(type="bearer", token="secret"),
            headers={"Authorization": "static", "X-Team": "core"},
        )

        await provider.query("x")
        await provider.is_available()

        post, health = recorder.requests
        assert health.url.path == "/health"
        for request in (post, health):
            assert request.headers["Authorization"] == "Bearer secret"
            assert request.headers["X-Team"] == "core"

    @pytest.mark.asyncio
    async def test_invalid_url_reported_not_raised(self, tmp_path):
        recorder = Recorder(httpx.Response(200, json={"content": "never"}))
        provider = make_remote(tmp_path, recorder, location="http://[::1")

        resp = await provider.query("x", AIQueryOptions(task_id="t-5"))

        assert not resp.success
        assert resp.error
        assert resp.task_id == "t-5"
        assert not (await provider.execute("x")).success
        assert not await provider.is_available()
        assert recorder.requests == []


class TestHTTPResponses:
    @pytest.mark.asyncio
    async def test_content_blocks_joined(self, tmp_path):
        payload = {"content": [{"type": "text", "text": "one"}, "two", {"type": "image"}]}
        provider = make_remote(tmp_path, Recorder(httpx.Response(200, json=payload)))
        assert (await provider.query("x")).content == "one\ntwo"

    @pytest.mark.asyncio
    async def test_fallback_content_keys(self, tmp_path):
        provider = make_remote(tmp_path, Recorder(httpx.Response(200, json={"implementation": "code"})))
        assert (await provider.execute("x")).content == "code"

    @pytest.mark.asyncio
    async def test_empty_success_serializes_result(self, tmp_path):
        provider = make_remote(tmp_path, Recorder(httpx.Response(200, json={"status": "queued"})))
        resp = await provider.query("x")
        assert resp.success
        assert json.loads(resp.content) == {"status": "queued"}

    @pytest.mark.asyncio
    async def test_jsonrpc_result_unwrapped(self, tmp_path):
        envelope = {"jsonrpc": "2.0", "id": 1, "result": {
            "content": "rpc answer", "task_id": "remote-7", "model": "sonnet",
            "tool_call": {"name": "ls"},
        }}
        provider = make_remote(tmp_path, Recorder(httpx.Response(200, json=envelope)))
        resp = await provider.query("x", AIQueryOptions(task_id="local-1"))
        assert resp.content == "rpc answer"
        assert resp.task_id == "remote-7"
        assert resp.model == "sonnet"
        assert resp.tool_call == {"name": "ls"}

    @pytest.mark.asyncio
    async def test_jsonrpc_error(self, tmp_path):
        envelope = {"jsonrpc": "2.0", "id": 1, "error": {"code": -32000, "message": "agent busy"}}
        provider = make_remote(tmp_path, Recorder(httpx.Response(200, json=envelope)))
        resp = await provider.query("x")
        assert not resp.success
        assert resp.error == "agent busy"

    @pytest.mark.asyncio
    async def test_error_field_means_failure(self, tmp_path):
        payload = {"success": True, "content": "partial", "error": "tool crashed"}
        provider = make_remote(tmp_path, Recorder(httpx.Response(200, json=payload)))
        resp = await provider.query("x")
        assert not resp.success
        assert resp.error == "tool crashed"
        assert resp.content == "partial"

    @pytest.mark.asyncio
    async def test_success_false_without_error(self, tmp_path):
        provider = make_remote(tmp_path, Recorder(httpx.Response(200, json={"success": False})))
        resp = await provider.query("x")
        assert not resp.success
        assert resp.error == "Unknown error occurred"

    @pytest.mark.asyncio
    async def test_http_status_error(self, tmp_path):
        provider = make_remote(tmp_path, Recorder(httpx.Response(500, text="boom")))
        resp = await provider.query("x")
        assert not resp.success
        assert resp.error == "HTTP 500: Internal Server Error"

    @pytest.mark.asyncio
    async def test_invalid_json(self, tmp_path):
        provider = make_remote(tmp_path, Recorder(httpx.Response(200, text="<html>")))
        resp = await provider.query("x")
        assert resp.error.startswith("Invalid JSON response from remote agent")

    @pytest.mark.asyncio
    async def test_connection_error(self, tmp_path):
        def refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        resp = await make_remote(tmp_path, refuse).query("x")
        assert not resp.success
        assert resp.error == "connection refused"

    @pytest.mark.asyncio
    async def test_timeout(self, tmp_path):
        async def slow(request):
            await asyncio.sleep(5)
            return httpx.Response(200, json={"content": "late"})

        resp = await make_remote(tmp_path, slow).query("x", AIQueryOptions(timeout=50))
        assert not resp.success
        assert resp.error == "remote/team remote request timeout after 50ms"

    def test_default_timeouts(self, tmp_path):
        provider = make_remote(tmp_path)
        assert provider.get_default_query_timeout() == 300_000
        assert provider.get_default_execute_timeout() == 600_000
        custom = make_remote(tmp_path, timeout=TimeoutPair(query=10, execute=20))
        assert custom._effective_timeout(AIQueryOptions(), ExecutionMode.EXECUTE) == 20


class TestHealth:
    @pytest.mark.asyncio
    async def test_healthy(self, tmp_path):
        recorder = Recorder(httpx.Response(200, json={"status": "ok"}))
        provider = make_remote(tmp_path, recorder)
        assert await provider.is_available()
        assert str(recorder.requests[0].url) == "https://crewx.example.com/health"
        assert await provider.get_tool_path() is None

    @pytest.mark.asyncio
    async def test_unhealthy(self, tmp_path):
        assert not await make_remote(tmp_path, Recorder(httpx.Response(503))).is_available()

    @pytest.mark.asyncio
    async def test_unreachable(self, tmp_path):
        def refuse(request):
            raise httpx.ConnectError("down", request=request)

        assert not await make_remote(tmp_path, refuse).is_available()


class TestFileDelegation:
    @pytest.fixture
    def remote_config(self, tmp_path):
        path = tmp_path / "other.toml"
        path.write_text("[general]\ndefault_agent = \"dev\"\n")
        return path

    def test_args(self, tmp_path, remote_config):
        provider = make_remote(tmp_path, location=f"file://{remote_config}")
        assert provider.get_default_args() == ["query", "--raw", f"--config={remote_config}"]
        assert provider.get_execute_args()[0] == "execute"
        assert provider.get_prompt_in_args()

    @pytest.mark.asyncio
    async def test_missing_config(self, tmp_path):
        missing = tmp_path / "absent.toml"
        provider = make_remote(tmp_path, location=f"file://{missing}")
        resp = await provider.query("x", AIQueryOptions(task_id="t-2"))
        assert not resp.success
        assert resp.error == f"Remote CrewX configuration not found: {missing}"
        assert resp.content == ""
        assert resp.command == f"crewx --config={missing}"
        assert resp.task_id == "t-2"
        assert not await provider.is_available()

    @pytest.mark.asyncio
    async def test_delegates_with_mention(self, tmp_path, remote_config):
        provider = make_remote(tmp_path, location=f"file://{remote_config}")
        provider._invoke = AsyncMock(return_value=AIResponse(
            content="delegated", provider="remote/team", command="crewx", success=True,
        ))

        resp = await provider.query(wrap_user_query("what changed?", "k9"),
                                    AIQueryOptions(security_key="k9", piped_context="notes"))

        assert resp.content == "delegated"
        prompt, options, mode = provider._invoke.call_args.args
        assert prompt == "@dev what changed?"
        assert mode == ExecutionMode.QUERY
        assert is_structured_payload(options.piped_context)
        assert json.loads(options.piped_context)["context"] == "notes"

    @pytest.mark.asyncio
    async def test_delegates_without_context(self, tmp_path, remote_config):
        provider = make_remote(tmp_path, location=f"file://{remote_config}")
        provider._invoke = AsyncMock(return_value=AIResponse(
            content="ok", provider="remote/team", command="crewx", success=True,
        ))
        await provider.execute("  ship it  ")
        prompt, options, mode = provider._invoke.call_args.args
        assert prompt == "@dev ship it"
        assert options.piped_context == ""
        assert mode == ExecutionMode.EXECUTE

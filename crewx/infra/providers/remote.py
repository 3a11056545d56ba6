"""Remote provider: delegate to another CrewX instance.

``file://`` locations run a local ``crewx`` against another configuration
file; ``http(s)://`` locations POST to the instance's ``/mcp/query`` and
``/mcp/execute`` endpoints.
"""

from __future__ import annotations

import asyncio
import json
import os
from dataclasses import replace
from typing import Any

import httpx

from crewx.infra.providers.engine import BaseAIProvider
from crewx.infra.providers.payload import extract_user_query
from crewx.models.dynamic import RemoteProviderConfig
from crewx.models.provider import (
    AIQueryOptions,
    AIResponse,
    ExecutionMode,
    ProviderNamespace,
)

REMOTE_QUERY_TIMEOUT_MS = 300_000
REMOTE_EXECUTE_TIMEOUT_MS = 600_000
HEALTH_TIMEOUT_S = 5.0

FILE_SCHEME = "file://"
_CONTENT_FALLBACK_KEYS = ("response", "implementation", "message", "output")


def _error_text(error: Any) -> str:
    if not error:
        return ""
    if isinstance(error, dict):
        return str(error.get("message") or json.dumps(error))
    return str(error)


def _normalize_content(result: dict) -> str:
    content = result.get("content")
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = []
        for block in content:
            if isinstance(block, str):
                parts.append(block)
            elif isinstance(block, dict) and isinstance(block.get("text"), str):
                parts.append(block["text"])
        return "\n".join(parts)
    for key in _CONTENT_FALLBACK_KEYS:
        if isinstance(result.get(key), str):
            return result[key]
    return ""


class RemoteProvider(BaseAIProvider):
    def __init__(
        self,
        config: RemoteProviderConfig,
        transport: httpx.AsyncBaseTransport | None = None,
        **kwargs,
    ) -> None:
        super().__init__(**kwargs)
        self.config = config
        self.name = f"{ProviderNamespace.REMOTE.value}/{config.id}"
        self._transport = transport

    @property
    def is_file_location(self) -> bool:
        return self.config.location.startswith(FILE_SCHEME)

    @property
    def config_path(self) -> str:
        return self.config.location[len(FILE_SCHEME):]

    @property
    def base_url(self) -> str:
        return self.config.location.rstrip("/")

    # --- file:// delegate ---------------------------------------------

    def get_cli_command(self) -> str:
        return "crewx"

    def get_default_args(self) -> list[str]:
        return ["query", "--raw", f"--config={self.config_path}"]

    def get_execute_args(self) -> list[str]:
        return ["execute", "--raw", f"--config={self.config_path}"]

    def get_default_model(self) -> str:
        return self.config.default_model or "default"

    def get_prompt_in_args(self) -> bool:
        return True

    def get_not_installed_message(self) -> str:
        if self.is_file_location:
            return f"Remote CrewX configuration not found: {self.config_path}"
        return f"Remote CrewX server not accessible: {self.config.location}"

    def get_default_query_timeout(self) -> int:
        if self.config.timeout and self.config.timeout.query:
            return self.config.timeout.query
        return REMOTE_QUERY_TIMEOUT_MS

    def get_default_execute_timeout(self) -> int:
        if self.config.timeout and self.config.timeout.execute:
            return self.config.timeout.execute
        return REMOTE_EXECUTE_TIMEOUT_MS

    def auth_headers(self) -> dict[str, str]:
        auth = self.config.auth
        if auth is None or auth.type == "none" or not auth.token:
            return {}
        if auth.type == "bearer":
            return {"Authorization": f"Bearer {auth.token}"}
        if auth.type == "api_key":
            return {"Api-Key": auth.token}
        return {}

    def request_headers(self) -> dict[str, str]:
        """Static headers from config, with auth headers taking precedence."""
        return {**self.config.headers, **self.auth_headers()}

    async def get_tool_path(self) -> str | None:
        if not self.is_file_location:
            return None
        return await super().get_tool_path()

    async def is_available(self) -> bool:
        if self.is_file_location:
            if not os.access(self.config_path, os.R_OK):
                return False
            return await super().is_available()

        try:
            async with httpx.AsyncClient(transport=self._transport, timeout=HEALTH_TIMEOUT_S) as client:
                response = await client.get(f"{self.base_url}/health", headers=self.request_headers())
            return response.is_success
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            self.logger.debug("Health check for %s failed: %s", self.name, e)
            return False

    async def query(self, prompt: str, options: AIQueryOptions | None = None) -> AIResponse:
        return await self._dispatch(prompt, options or AIQueryOptions(), ExecutionMode.QUERY)

    async def execute(self, prompt: str, options: AIQueryOptions | None = None) -> AIResponse:
        return await self._dispatch(prompt, options or AIQueryOptions(), ExecutionMode.EXECUTE)

    async def _dispatch(self, prompt: str, options: AIQueryOptions, mode: ExecutionMode) -> AIResponse:
        if not self.is_file_location:
            try:
                return await self._http_call(prompt, options, mode)
            except Exception as e:
                self.logger.error("%s %s failed: %s", self.name, mode.value, e, exc_info=True)
                return AIResponse.failure(
                    str(e), self.name, f"remote {mode.value} to {self.config.location}", options.task_id
                )

        if not os.access(self.config_path, os.R_OK):
            return AIResponse.failure(
                f"Remote CrewX configuration not found: {self.config_path}",
                self.name,
                f"crewx --config={self.config_path}",
                options.task_id,
            )

        agent = self.config.external_agent_id
        user_query = extract_user_query(prompt, options.security_key or None)
        formatted = f"@{agent} {user_query}" if user_query else f"@{agent}"
        structured = self.build_piped_context(prompt, options, mode)
        return await self._invoke(formatted, replace(options, piped_context=structured or ""), mode)

    # --- http(s) ------------------------------------------------------

    def _request_body(self, prompt: str, options: AIQueryOptions, mode: ExecutionMode) -> dict:
        body: dict[str, Any] = {
            "prompt": prompt,
            "agent_id": self.config.external_agent_id,
            "task_id": options.task_id or None,
            "model": options.model or self.get_default_model(),
            "working_directory": options.working_directory or None,
        }
        if structured := self.build_piped_context(prompt, options, mode):
            body["structured_payload"] = structured
        if options.messages:
            body["messages"] = [m.to_dict() for m in options.messages]
        if options.piped_context:
            trimmed = options.piped_context.strip()
            if trimmed and not self.is_structured_payload(trimmed):
                body["context"] = trimmed
        return body

    async def _http_call(self, prompt: str, options: AIQueryOptions, mode: ExecutionMode) -> AIResponse:
        url = f"{self.base_url}/mcp/{mode.value}"
        command = f"remote {mode.value} to {self.config.location}"
        headers = {"Content-Type": "application/json", **self.request_headers()}
        timeout_ms = self._effective_timeout(options, mode)

        def failed(message: str) -> AIResponse:
            self.logger.warning("%s %s failed: %s", self.name, mode.value, message)
            return AIResponse.failure(message, self.name, command, options.task_id)

        self.logger.info("Sending %s to %s (timeout: %dms)", mode.value, url, timeout_ms)
        try:
            async with httpx.AsyncClient(transport=self._transport, timeout=None) as client:
                response = await asyncio.wait_for(
                    client.post(url, json=self._request_body(prompt, options, mode), headers=headers),
                    timeout=timeout_ms / 1000,
                )
        except asyncio.TimeoutError:
            return failed(f"{self.name} remote request timeout after {timeout_ms}ms")
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            return failed(str(e) or type(e).__name__)

        if not response.is_success:
            return failed(f"HTTP {response.status_code}: {response.reason_phrase}")

        try:
            result = response.json()
        except ValueError as e:
            return failed(f"Invalid JSON response from remote agent: {e}")

        return self._to_response(result, options, command)

    def _to_response(self, result: Any, options: AIQueryOptions, command: str) -> AIResponse:
        # JSON-RPC envelope
        if isinstance(result, dict) and "jsonrpc" in result:
            if rpc_error := _error_text(result.get("error")):
                return AIResponse.failure(rpc_error, self.name, command, options.task_id)
            result = result.get("result")

        if not isinstance(result, dict):
            return AIResponse(
                content="" if result is None else str(result),
                provider=self.name,
                command=command,
                success=True,
                task_id=options.task_id,
            )

        error = _error_text(result.get("error"))
        success = result.get("success") is not False and not error
        content = _normalize_content(result)
        if not content and success:
            content = json.dumps(result, ensure_ascii=False)

        tool_call = result.get("tool_call")
        return AIResponse(
            content=content,
            provider=self.name,
            command=command,
            success=success,
            error="" if success else (error or "Unknown error occurred"),
            task_id=result.get("task_id") or options.task_id,
            model=result.get("model") or "",
            tool_call=tool_call if isinstance(tool_call, dict) else None,
        )

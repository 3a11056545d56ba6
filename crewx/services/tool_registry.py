"""Tool registry: maps tool names to async handler functions."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Coroutine
from typing import Any

from crewx.models.tool import Tool, ToolExecutionContext, ToolExecutionResult

logger = logging.getLogger(__name__)

# Handlers receive the call context and the decoded tool input
ToolHandler = Callable[[ToolExecutionContext, dict], Coroutine[Any, Any, Any]]


class ToolRegistry:
    """Concrete ToolCallHandler backed by a name -> handler mapping."""

    def __init__(self) -> None:
        self._tools: dict[str, Tool] = {}
        self._handlers: dict[str, ToolHandler] = {}

    def register(self, tool: Tool, handler: ToolHandler) -> None:
        if tool.name in self._tools:
            logger.warning("Replacing tool handler: %s", tool.name)
        self._tools[tool.name] = tool
        self._handlers[tool.name] = handler

    def unregister(self, name: str) -> bool:
        self._handlers.pop(name, None)
        return self._tools.pop(name, None) is not None

    def list(self) -> list[Tool]:
        return list(self._tools.values())

    def has(self, name: str) -> bool:
        return name in self._handlers

    async def execute(
        self,
        name: str,
        input: dict[str, Any],
        context: ToolExecutionContext | None = None,
    ) -> ToolExecutionResult:
        handler = self._handlers.get(name)
        if handler is None:
            return ToolExecutionResult(
                success=False,
                error=f"Unknown tool: {name}",
                metadata={"tool_name": name, "execution_time": 0},
            )

        started = time.monotonic()
        try:
            data = await handler(context or ToolExecutionContext(), input or {})
        except Exception as e:
            logger.error("Tool %s failed: %s", name, e, exc_info=True)
            return ToolExecutionResult(
                success=False,
                error=str(e) or type(e).__name__,
                metadata={"tool_name": name, "execution_time": _elapsed_ms(started)},
            )

        return ToolExecutionResult(
            success=True,
            data=data,
            metadata={"tool_name": name, "execution_time": _elapsed_ms(started)},
        )


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)

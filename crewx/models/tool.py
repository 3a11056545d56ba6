"""Tool calling domain models."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class Tool:
    """A tool a backend may ask to invoke.

    ``input_schema`` and ``output_schema`` are JSON-schema objects
    (``{"type": "object", "properties": {...}, "required": [...]}``).
    """

    name: str
    description: str
    input_schema: dict[str, Any] = field(
        default_factory=lambda: {"type": "object", "properties": {}}
    )
    output_schema: dict[str, Any] | None = None

    def to_dict(self) -> dict:
        d: dict = {
            "name": self.name,
            "description": self.description,
            "input_schema": self.input_schema,
        }
        if self.output_schema:
            d["output_schema"] = self.output_schema
        return d


@dataclass(frozen=True)
class ToolExecutionContext:
    run_id: str = ""
    thread_id: str = ""
    resource_id: str = ""
    agent_id: str = ""
    task_id: str = ""


@dataclass(frozen=True)
class ToolExecutionResult:
    success: bool
    data: Any = None
    error: str = ""
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict:
        d: dict = {"success": self.success}
        if self.data is not None:
            d["data"] = self.data
        if self.error:
            d["error"] = self.error
        if self.metadata:
            d["metadata"] = self.metadata
        return d


@dataclass(frozen=True)
class ToolUse:
    """Result of scanning a backend response for a tool request."""

    is_tool_use: bool
    tool_name: str = ""
    tool_input: Any = None


NOT_TOOL_USE = ToolUse(is_tool_use=False)

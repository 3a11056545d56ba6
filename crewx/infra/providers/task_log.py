"""Per-task log files: one human-readable trace per query/execute call."""

from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path

logger = logging.getLogger(__name__)


def _timestamp() -> str:
    return datetime.now().strftime("%Y-%m-%d %H:%M:%S")


class TaskLog:
    """Writes ``<logs_dir>/<task_id>.log``.

    Write failures are reported through ``logging`` and otherwise ignored;
    a task log must never fail the call it traces.
    """

    def __init__(self, logs_dir: Path | str, version: str = "unknown") -> None:
        self.logs_dir = Path(logs_dir)
        self.version = version

    def path_for(self, task_id: str) -> Path:
        return self.logs_dir / f"{task_id.replace('/', '_')}.log"

    def create(
        self,
        task_id: str,
        provider: str,
        command: str,
        agent_id: str = "",
        model: str | None = None,
    ) -> Path:
        """Write the header block for a task."""
        lines = [
            f"=== TASK LOG: {task_id} ===",
            f"CrewX Version: {self.version}",
            f"Provider: {provider}",
            f"Agent: {agent_id or 'N/A'}",
        ]
        if model:
            lines.append(f"Model: {model}")
        lines.append(f"Command: {command}")
        lines.append(f"Started: {_timestamp()}")
        self._write("\n".join(lines) + "\n\n", task_id)
        return self.path_for(task_id)

    def append(self, task_id: str, level: str, message: str) -> None:
        self._write(f"[{_timestamp()}] {level}: {message}\n", task_id)

    def _write(self, text: str, task_id: str) -> None:
        try:
            self.logs_dir.mkdir(parents=True, exist_ok=True)
            with open(self.path_for(task_id), "a", encoding="utf-8") as f:
                f.write(text)
        except OSError as e:
            logger.error("Failed to write task log %s: %s", task_id, e)

"""Process execution engine shared by every CLI-backed provider.

A concrete provider only supplies backend facts (executable, argument
lists, how the prompt is delivered, how errors are phrased). This module
owns the rest of the call: argument assembly, the structured payload, the
per-task log, spawning, the timeout, and normalizing the outcome into an
AIResponse.
"""

from __future__ import annotations

import errno
import logging
import os
import shutil
import time
import uuid
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

from crewx.config import (
    DEFAULT_LOGS_DIR,
    LogConfig,
    TimeoutConfig,
    get_log_config,
    get_timeout_config,
    provider_family,
)
from crewx.infra.providers import payload as payload_mod
from crewx.infra.providers.task_log import TaskLog
from crewx.infra.providers.tool_calls import (
    ToolCallHandler,
    filter_tool_use_from_response,
    parse_tool_use,
)
from crewx.infra.subprocess_mgr import ProcessRunner
from crewx.models.process import CommandSpec, ProcessResult
from crewx.models.provider import (
    NO_ERROR,
    AIQueryOptions,
    AIResponse,
    ExecutionMode,
    ProviderError,
    ProviderFamily,
    ProviderNamespace,
)
from crewx.models.tool import NOT_TOOL_USE, ToolUse
from crewx.version import __version__

EXECUTE_PROMPT_PREVIEW = 500
PROMPT_PLACEHOLDER = "<prompt>"


def _truncate(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    return text[:limit] + "...[truncated]"


class BaseAIProvider(ABC):
    """Drives one child-process invocation of a local executable per call."""

    # Format: {namespace}/{id}, e.g. "cli/claude", "plugin/ollama"
    name: str = ""

    def __init__(
        self,
        *,
        logger: logging.Logger | logging.LoggerAdapter | None = None,
        tool_call_handler: ToolCallHandler | None = None,
        logs_dir: Path | str | None = None,
        timeout_config: TimeoutConfig | None = None,
        log_config: LogConfig | None = None,
        version: str = __version__,
        runner: ProcessRunner | None = None,
    ) -> None:
        self.logger = logger or logging.getLogger(type(self).__module__)
        self.tool_call_handler = tool_call_handler
        self.timeout_config = timeout_config or get_timeout_config()
        self.log_config = log_config or get_log_config()
        self.task_log = TaskLog(logs_dir or Path.cwd() / DEFAULT_LOGS_DIR, version)
        self._runner = runner or ProcessRunner()
        self._cached_path: str | None = None

    # --- backend facts -------------------------------------------------

    @abstractmethod
    def get_cli_command(self) -> str:
        """Executable name or path."""

    @abstractmethod
    def get_default_args(self) -> list[str]:
        """Arguments for query mode."""

    @abstractmethod
    def get_execute_args(self) -> list[str]:
        """Arguments for execute mode."""

    @abstractmethod
    def get_not_installed_message(self) -> str:
        ...

    def get_prompt_in_args(self) -> bool:
        """Pass the prompt as the last argument instead of on stdin."""
        return False

    def should_pipe_context(self, options: AIQueryOptions) -> bool:
        return True

    def get_default_model(self) -> str | None:
        return None

    def get_env(self) -> dict[str, str]:
        return {}

    @property
    def family(self) -> ProviderFamily:
        return provider_family(self.name)

    def get_default_query_timeout(self) -> int:
        return self.timeout_config.query_timeout(self.family)

    def get_default_execute_timeout(self) -> int:
        return self.timeout_config.execute_timeout(self.family)

    # --- output interpretation -----------------------------------------

    def parse_tool_use(self, content: str) -> ToolUse:
        return parse_tool_use(content, self.parse_tool_use_provider_specific)

    def parse_tool_use_provider_specific(self, parsed: Any) -> ToolUse:
        return NOT_TOOL_USE

    def filter_tool_use_from_response(self, content: str) -> str:
        return filter_tool_use_from_response(content)

    def parse_provider_error(self, stderr: str, stdout: str) -> ProviderError:
        """Generic policy: stdout present means success, stderr alone means failure."""
        lowered = stderr.lower()
        if stderr and ("unknown option" in lowered or "invalid option" in lowered):
            first_line = stderr.split("\n")[0].strip()
            return ProviderError(error=True, message=first_line or "Invalid CLI option")

        if stderr and not stdout:
            return ProviderError(error=True, message=stderr)
        return NO_ERROR

    # --- availability --------------------------------------------------

    async def get_tool_path(self) -> str | None:
        if self._cached_path is not None:
            return self._cached_path or None

        cli_command = self.get_cli_command()
        path = shutil.which(cli_command)
        if path:
            self.logger.info("Found %s CLI at: %s", self.name, path)
            self._cached_path = path
            return path

        self.logger.warning("%s not found in PATH (%s)", self.name, cli_command)
        self._cached_path = ""
        return None

    async def is_available(self) -> bool:
        return bool(await self.get_tool_path())

    # --- structured payload --------------------------------------------

    def is_structured_payload(self, value: str) -> bool:
        return payload_mod.is_structured_payload(value)

    def create_structured_payload(
        self,
        prompt: str,
        context: str | None,
        options: AIQueryOptions,
        mode: ExecutionMode = ExecutionMode.QUERY,
    ) -> str:
        return payload_mod.create_structured_payload(prompt, context, options, self.name, mode)

    def build_piped_context(
        self,
        prompt: str,
        options: AIQueryOptions,
        mode: ExecutionMode = ExecutionMode.QUERY,
    ) -> str | None:
        return payload_mod.build_piped_context(prompt, options, self.name, mode)

    # --- task log ------------------------------------------------------

    def generate_task_id(self, mode: ExecutionMode) -> str:
        safe_name = self.name.replace("/", "_")
        return f"{safe_name}_{mode.value}_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"

    def append_task_log(self, task_id: str, level: str, message: str) -> None:
        self.task_log.append(task_id, level, message)

    # --- calls ---------------------------------------------------------

    async def query(self, prompt: str, options: AIQueryOptions | None = None) -> AIResponse:
        return await self._invoke(prompt, options or AIQueryOptions(), ExecutionMode.QUERY)

    async def execute(self, prompt: str, options: AIQueryOptions | None = None) -> AIResponse:
        return await self._invoke(prompt, options or AIQueryOptions(), ExecutionMode.EXECUTE)

    def _build_args(self, options: AIQueryOptions, mode: ExecutionMode) -> tuple[list[str], str | None]:
        model = options.model or self.get_default_model()
        base_args = self.get_execute_args() if mode == ExecutionMode.EXECUTE else self.get_default_args()
        args = [*options.additional_args, *base_args]

        if model:
            args = [arg.replace("{model}", model) for arg in args]

        # Plugin providers place the model through {model}; built-ins get a flag
        is_builtin = self.name.startswith(f"{ProviderNamespace.CLI.value}/")
        has_model_flag = any("--model" in arg or "{model}" in arg for arg in args)
        if is_builtin and options.model and not has_model_flag:
            args.insert(0, f"--model={options.model}")

        return args, model

    def _effective_timeout(self, options: AIQueryOptions, mode: ExecutionMode) -> int:
        if options.timeout and options.timeout > 0:
            return int(options.timeout)
        if mode == ExecutionMode.EXECUTE:
            return self.get_default_execute_timeout()
        return self.get_default_query_timeout()

    async def _invoke(
        self,
        prompt: str,
        options: AIQueryOptions,
        mode: ExecutionMode,
        *,
        filter_tool_use: bool = True,
    ) -> AIResponse:
        task_id = options.task_id or self.generate_task_id(mode)
        program = self.get_cli_command()
        is_execute = mode == ExecutionMode.EXECUTE
        command = f"{program} (error)" if not is_execute else f"{program} execute (error)"

        try:
            args, model = self._build_args(options, mode)
            prompt_in_args = self.get_prompt_in_args()
            display_args = [*args, PROMPT_PLACEHOLDER] if prompt_in_args else args
            command = CommandSpec(program=program, args=tuple(display_args)).full_command
            if prompt_in_args:
                args.append(prompt)

            self.task_log.create(task_id, self.name, command, options.agent_id, model)
            if is_execute:
                self.append_task_log(task_id, "INFO", f"Additional Args: {list(options.additional_args)}")
                self.append_task_log(task_id, "INFO", f"Execute Args: {self.get_execute_args()}")
                self.append_task_log(task_id, "INFO", f"Final Args: {display_args}")
            self.append_task_log(task_id, "INFO", f"Starting {self.name} {mode.value} mode")
            self.append_task_log(task_id, "INFO", f"Prompt length: {len(prompt)} characters")
            if is_execute:
                preview = _truncate(prompt, EXECUTE_PROMPT_PREVIEW)
            else:
                preview = _truncate(prompt, self.log_config.prompt_max_length)
            self.append_task_log(task_id, "INFO", f"Prompt content:\n{preview}")

            if options.working_directory and not os.path.isdir(options.working_directory):
                message = f"Working directory not found: {options.working_directory}"
                self.append_task_log(task_id, "ERROR", message)
                return AIResponse.failure(message, self.name, command, task_id)

            stdin_parts: list[str] = []
            piped = self.build_piped_context(prompt, options, mode)
            if piped and self.should_pipe_context(options):
                self.append_task_log(
                    task_id,
                    "INFO",
                    f"Piped context:\n{_truncate(piped, self.log_config.conversation_max_length)}",
                )
                stdin_parts.append(piped if piped.endswith("\n") else piped + "\n")
            if not prompt_in_args:
                stdin_parts.append(prompt)

            timeout_ms = self._effective_timeout(options, mode)
            self.logger.info(
                "Executing %s in %s mode (prompt length: %d, timeout: %dms)",
                self.name, mode.value, len(prompt), timeout_ms,
            )

            def on_output(level: str, text: str) -> None:
                self.append_task_log(task_id, level, text)

            result = await self._runner.run(
                CommandSpec(
                    program=program,
                    args=tuple(args),
                    env=self.get_env() or None,
                    cwd=options.working_directory or None,
                ),
                stdin_data="".join(stdin_parts),
                timeout=timeout_ms / 1000,
                on_output=on_output,
            )
            return self._classify(result, task_id, command, mode, model, filter_tool_use)
        except Exception as e:
            self.logger.error("%s %s failed: %s", self.name, mode.value, e, exc_info=True)
            return AIResponse.failure(str(e), self.name, command, task_id)

    def _classify(
        self,
        result: ProcessResult,
        task_id: str,
        command: str,
        mode: ExecutionMode,
        model: str | None,
        filter_tool_use: bool,
    ) -> AIResponse:
        is_execute = mode == ExecutionMode.EXECUTE

        if not result.spawned:
            err = result.spawn_error
            self.append_task_log(task_id, "ERROR", f"Process error: {err}")
            missing = isinstance(err, FileNotFoundError) or getattr(err, "errno", None) == errno.ENOENT
            message = self.get_not_installed_message() if missing else str(err)
            return AIResponse.failure(message, self.name, command, task_id)

        if result.timed_out:
            message = f"{self.name} CLI execute timeout" if is_execute else f"{self.name} CLI timeout"
            self.append_task_log(task_id, "ERROR", message)
            return AIResponse.failure(message, self.name, command, task_id)

        exit_code = result.exit_code
        stdout, stderr = result.stdout, result.stderr
        self.append_task_log(task_id, "INFO", f"Process closed with exit code: {exit_code}")
        if stderr:
            self.logger.warning("[%s] %s stderr: %s", task_id, self.name, stderr)

        if exit_code == 0 and stdout.strip():
            content = stdout.strip()
            if filter_tool_use:
                content = self.filter_tool_use_from_response(content)
            self.append_task_log(task_id, "INFO", f"{self.name} {mode.value} completed successfully")
            return AIResponse(
                content=content,
                provider=self.name,
                command=command,
                success=True,
                task_id=task_id,
                model=model or "",
            )

        verdict = self.parse_provider_error(stderr, stdout)
        if exit_code != 0 or verdict.error:
            detail = verdict.message or stderr or f"Exit code {exit_code}"
            self.append_task_log(task_id, "ERROR", f"{self.name} CLI failed: {detail}")
            prefix = "CLI execute failed" if is_execute else "CLI failed"
            return AIResponse.failure(f"{self.name} {prefix}: {detail}", self.name, command, task_id)

        content = stdout.strip()
        if filter_tool_use:
            content = self.filter_tool_use_from_response(content)
        self.append_task_log(task_id, "INFO", f"{self.name} {mode.value} completed successfully")
        return AIResponse(
            content=content,
            provider=self.name,
            command=command,
            success=True,
            task_id=task_id,
            model=model or "",
        )

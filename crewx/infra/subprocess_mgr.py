"""Subprocess manager: spawn, stdin delivery, output capture, timeout."""

from __future__ import annotations

import asyncio
import codecs
import logging
import os
from collections.abc import Callable

from crewx.models.process import CommandSpec, ProcessResult

logger = logging.getLogger(__name__)

READ_CHUNK_SIZE = 4096

# Called with ("STDOUT" | "STDERR", decoded text) for every chunk read.
OutputCallback = Callable[[str, str], None]


class ProcessRunner:
    """Runs one backend subprocess to completion or until its deadline.

    The run resolves exactly once: either every pipe is drained and the
    process has exited, or the deadline expires first, in which case the
    process is killed once and whatever output was captured is returned
    with ``timed_out`` set.
    """

    def __init__(self, read_chunk_size: int = READ_CHUNK_SIZE) -> None:
        self.read_chunk_size = read_chunk_size

    async def run(
        self,
        command: CommandSpec,
        stdin_data: str = "",
        timeout: float | None = None,
        on_output: OutputCallback | None = None,
    ) -> ProcessResult:
        """Spawn ``command``, feed ``stdin_data`` and collect its output.

        ``timeout`` is in seconds. Spawn failures are returned in
        ``spawn_error`` rather than raised.
        """
        env = os.environ.copy()
        if command.env:
            env.update(command.env)

        try:
            proc = await asyncio.create_subprocess_exec(
                command.program,
                *command.args,
                cwd=command.cwd,
                env=env,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            logger.debug("Failed to spawn %s: %s", command.program, e)
            return ProcessResult(spawn_error=e)

        stdout_parts: list[str] = []
        stderr_parts: list[str] = []

        async def pump(stream: asyncio.StreamReader, parts: list[str], label: str) -> None:
            decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
            while True:
                chunk = await stream.read(self.read_chunk_size)
                text = decoder.decode(chunk, final=not chunk)
                if text:
                    parts.append(text)
                    if on_output:
                        on_output(label, text)
                if not chunk:
                    return

        async def feed() -> None:
            assert proc.stdin is not None
            try:
                if stdin_data:
                    proc.stdin.write(stdin_data.encode("utf-8"))
                    await proc.stdin.drain()
            except (BrokenPipeError, ConnectionResetError):
                # The backend exited or closed stdin without reading it all
                logger.debug("stdin closed early by %s (pid %s)", command.program, proc.pid)
            finally:
                proc.stdin.close()

        async def communicate() -> int:
            assert proc.stdout is not None and proc.stderr is not None
            await asyncio.gather(
                feed(),
                pump(proc.stdout, stdout_parts, "STDOUT"),
                pump(proc.stderr, stderr_parts, "STDERR"),
            )
            return await proc.wait()

        try:
            exit_code = await asyncio.wait_for(communicate(), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning(
                "%s (pid %s) exceeded %.1fs, killing", command.program, proc.pid, timeout
            )
            self.kill(proc)
            await proc.wait()
            return ProcessResult(
                exit_code=proc.returncode,
                stdout="".join(stdout_parts),
                stderr="".join(stderr_parts),
                timed_out=True,
                pid=proc.pid,
            )

        return ProcessResult(
            exit_code=exit_code,
            stdout="".join(stdout_parts),
            stderr="".join(stderr_parts),
            pid=proc.pid,
        )

    @staticmethod
    def kill(proc: asyncio.subprocess.Process) -> bool:
        """Kill a running process. Returns False if it had already exited."""
        try:
            proc.kill()
            return True
        except ProcessLookupError:
            return False


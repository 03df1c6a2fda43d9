"""Command-execution transport capability."""

from __future__ import annotations

import abc
import asyncio
import logging
import os
from typing import Dict, Optional, Sequence

from commdash.errors import CommandFailedError, CommandNotFoundError, CommandTimeoutError

logger = logging.getLogger(__name__)

Environment = Optional[Dict[str, str]]

_EXIT_COMMAND_NOT_FOUND = 127


class ShellExecutor(abc.ABC):
    """Abstract command runner.

    Returns the command's stdout or raises an
    :class:`~commdash.errors.ExecError` subclass.
    """

    @abc.abstractmethod
    async def execute(
        self,
        command: str,
        *,
        working_directory: Optional[str] = None,
        environment: Environment = None,
    ) -> str:
        """Run *command* and return its stdout."""

    @abc.abstractmethod
    async def execute_interactive(
        self,
        command: str,
        inputs: Sequence[str],
        *,
        working_directory: Optional[str] = None,
        environment: Environment = None,
    ) -> str:
        """Run *command*, feeding *inputs* line by line on stdin."""


class SubprocessShellExecutor(ShellExecutor):
    """:class:`ShellExecutor` running commands through the system shell.

    *environment* entries are layered over the current process environment.
    """

    def __init__(self, *, timeout: float = 60.0) -> None:
        self.timeout = float(timeout)

    async def execute(
        self,
        command: str,
        *,
        working_directory: Optional[str] = None,
        environment: Environment = None,
    ) -> str:
        return await self._run(command, None, working_directory, environment)

    async def execute_interactive(
        self,
        command: str,
        inputs: Sequence[str],
        *,
        working_directory: Optional[str] = None,
        environment: Environment = None,
    ) -> str:
        stdin = "".join(f"{line}\n" for line in inputs)
        return await self._run(command, stdin, working_directory, environment)

    async def _run(
        self,
        command: str,
        stdin: Optional[str],
        working_directory: Optional[str],
        environment: Environment,
    ) -> str:
        env = {**os.environ, **environment} if environment else None
        try:
            proc = await asyncio.create_subprocess_shell(
                command,
                stdin=asyncio.subprocess.PIPE if stdin is not None else asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=working_directory,
                env=env,
            )
        except FileNotFoundError as exc:
            raise CommandNotFoundError(command) from exc

        try:
            stdout, stderr = await asyncio.wait_for(
                proc.communicate(stdin.encode("utf-8") if stdin is not None else None),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError:
            self._kill(proc)
            await proc.wait()
            raise CommandTimeoutError(self.timeout)
        except asyncio.CancelledError:
            self._kill(proc)
            raise

        stdout_str = stdout.decode("utf-8", errors="replace")
        stderr_str = stderr.decode("utf-8", errors="replace")
        logger.debug("[shell] %r exited with %s", command, proc.returncode)

        if proc.returncode == _EXIT_COMMAND_NOT_FOUND:
            raise CommandNotFoundError(command)
        if proc.returncode != 0:
            raise CommandFailedError(proc.returncode, stderr_str.strip())
        return stdout_str

    @staticmethod
    def _kill(proc: asyncio.subprocess.Process) -> None:
        try:
            proc.kill()
        except ProcessLookupError:
            pass

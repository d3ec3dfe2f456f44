"""Shell process runner with process group isolation and reliable termination.

This module provides:
- ShellProcess, the default runner used by the executor
- Stdout/stderr streaming into the process's LineWriter
- Interruption through the run context (SIGTERM -> timeout -> SIGKILL)
- Cancel-safe cleanup using asyncio.shield

Key design points:
- POSIX: start_new_session=True to create new process group
- Windows: CREATE_NEW_PROCESS_GROUP for signal isolation
- Interruption terminates the process group, not just the shell
"""

from __future__ import annotations

import asyncio
import codecs
import logging
import os
import signal
import subprocess
import sys
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from ..config import get_config
from ..errors import LaunchError, ProcessExitError, ProcessInterrupted
from ..process import ProcessDefinition

if TYPE_CHECKING:
    from ..context import RunContext
    from ..output.multiplexer import LineWriter

__all__ = [
    "ShellProcess",
    "IS_WINDOWS",
]

logger = logging.getLogger(__name__)

# Platform detection
IS_WINDOWS = sys.platform == "win32"

DEFAULT_KILL_TIMEOUT = 1.0  # seconds to wait after SIGKILL

# Read size of the stdout/stderr pumps
CHUNK_SIZE = 4096


def _default_term_timeout() -> float:
    return get_config().term_timeout


@dataclass
class ShellProcess:
    """Runs the command line of a ProcessDefinition through the shell.

    The process is started in its own session/process group with the
    definition's environment. Its stdout and stderr are both forwarded line by
    line to the output writer.

    Example:
        runner = ShellProcess(definition)
        await runner.run(ctx, output.next(definition.name, 8), logger)

    Attributes:
        definition: What to run
        term_timeout: Seconds to wait after SIGTERM before SIGKILL
        kill_timeout: Seconds to wait after SIGKILL
    """

    definition: ProcessDefinition
    term_timeout: float = field(default_factory=_default_term_timeout)
    kill_timeout: float = DEFAULT_KILL_TIMEOUT

    @property
    def name(self) -> str:
        return self.definition.name

    @property
    def command_line(self) -> str:
        return self.definition.command_line

    def argv(self) -> list[str]:
        if IS_WINDOWS:
            return ["cmd", "/c", self.command_line]
        return ["sh", "-c", self.command_line]

    async def run(
        self,
        ctx: "RunContext",
        output: "LineWriter",
        logger: logging.Logger,
    ) -> None:
        """Run the process until it exits or ``ctx`` is cancelled.

        The process counts as finished once the shell exited and stdout and
        stderr reached EOF, so background children still holding the pipes
        keep it running.

        Args:
            ctx: Run context, cancellation interrupts the process
            output: Writer receiving stdout and stderr lines
            logger: Logger named after the process

        Raises:
            LaunchError: If the shell could not be started
            ProcessExitError: If the process exited with a non-zero status
            ProcessInterrupted: If ``ctx`` was cancelled first
        """
        if ctx.cancelled:
            raise ProcessInterrupted(self.name)

        process: asyncio.subprocess.Process | None = None
        pumps: list[asyncio.Task[None]] = []
        tasks: list[asyncio.Task[Any]] = []

        try:
            try:
                process = await asyncio.create_subprocess_exec(
                    *self.argv(),
                    stdin=asyncio.subprocess.DEVNULL,
                    stdout=asyncio.subprocess.PIPE,
                    stderr=asyncio.subprocess.PIPE,
                    **self._build_subprocess_kwargs(),
                )
            except OSError as e:
                raise LaunchError(self.name, self.command_line, str(e)) from e

            logger.debug(f"Started subprocess pid={process.pid} script={self.command_line!r}")

            # One writer per stream so partial lines of stdout and stderr
            # are never joined
            pumps = [
                asyncio.create_task(self._pump(process.stdout, output.fork())),
                asyncio.create_task(self._pump(process.stderr, output.fork())),
            ]
            finished = asyncio.create_task(self._wait_finished(process, pumps))
            cancelled = asyncio.create_task(ctx.wait())
            tasks = [*pumps, finished, cancelled]

            await asyncio.wait({finished, cancelled}, return_when=asyncio.FIRST_COMPLETED)

            if not finished.done():
                logger.info(f"Interrupting process pid={process.pid}")
                await self._terminate_process(process, pumps, logger)
                raise ProcessInterrupted(self.name)

            finished.result()
            logger.debug(f"Subprocess completed pid={process.pid} returncode={process.returncode}")

            if process.returncode != 0:
                raise ProcessExitError(self.name, process.returncode)

        finally:
            # Ensure cleanup with shield to prevent cancel interruption
            await self._safe_cleanup(process, pumps, tasks, logger)

    def _build_subprocess_kwargs(self) -> dict[str, Any]:
        """Build platform-specific subprocess kwargs."""
        kwargs: dict[str, Any] = {}

        # An empty environment means "inherit"
        if self.definition.env:
            kwargs["env"] = dict(self.definition.env)

        if IS_WINDOWS:
            kwargs["creationflags"] = subprocess.CREATE_NEW_PROCESS_GROUP
        else:
            kwargs["start_new_session"] = True

        return kwargs

    @staticmethod
    async def _pump(stream: asyncio.StreamReader | None, output: "LineWriter") -> None:
        """Forward ``stream`` to ``output`` in chunks until EOF.

        Lines are split by the writer, so a line may be of any length.
        """
        if stream is None:
            return
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        try:
            while True:
                chunk = await stream.read(CHUNK_SIZE)
                if not chunk:
                    break
                output.write(decoder.decode(chunk))
            output.write(decoder.decode(b"", final=True))
        finally:
            output.flush()

    @staticmethod
    async def _wait_finished(
        process: asyncio.subprocess.Process,
        pumps: list[asyncio.Task[None]],
    ) -> None:
        await process.wait()
        await asyncio.gather(*pumps)

    async def _safe_cleanup(
        self,
        process: asyncio.subprocess.Process | None,
        pumps: list[asyncio.Task[None]],
        tasks: list[asyncio.Task[Any]],
        logger: logging.Logger,
    ) -> None:
        """Cleanup subprocess and helper tasks, shielded from cancellation."""
        try:
            await asyncio.shield(self._do_cleanup(process, pumps, tasks, logger))
        except asyncio.CancelledError:
            # If shield itself is cancelled, still try cleanup
            await self._do_cleanup(process, pumps, tasks, logger)
            raise

    async def _do_cleanup(
        self,
        process: asyncio.subprocess.Process | None,
        pumps: list[asyncio.Task[None]],
        tasks: list[asyncio.Task[Any]],
        logger: logging.Logger,
    ) -> None:
        # The shell may be gone while children of its group are still alive
        if process is not None:
            await self._terminate_process(process, pumps, logger)

        for task in tasks:
            if not task.done():
                task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def _terminate_process(
        self,
        process: asyncio.subprocess.Process,
        pumps: list[asyncio.Task[None]],
        logger: logging.Logger,
    ) -> None:
        """Terminate the process group gracefully, then forcefully if needed.

        Termination strategy:
        1. Send SIGTERM (or CTRL_BREAK_EVENT on Windows) to the process group
        2. Wait up to term_timeout for the shell to exit and the pipes to close
        3. If still running, send SIGKILL (or kill() on Windows)
        4. Wait up to kill_timeout for forced exit

        Nothing is sent when the group has no members left.
        """
        pid = process.pid

        if not self._send_signal(process, graceful=True, logger=logger):
            return
        logger.debug(f"Terminating subprocess pid={pid}")

        if await self._wait_stopped(process, pumps, self.term_timeout):
            logger.debug(f"Subprocess terminated gracefully pid={pid} returncode={process.returncode}")
            return

        logger.warning(f"Process did not stop within {self.term_timeout}s, killing pid={pid}")
        if not self._send_signal(process, graceful=False, logger=logger):
            return

        if not await self._wait_stopped(process, pumps, self.kill_timeout):
            logger.warning(f"Subprocess did not exit after kill pid={pid}")

    @staticmethod
    async def _wait_stopped(
        process: asyncio.subprocess.Process,
        pumps: list[asyncio.Task[None]],
        timeout: float,
    ) -> bool:
        """Wait until the shell exited and its pipes closed, at most ``timeout``."""
        exited = asyncio.ensure_future(process.wait())
        try:
            _, pending = await asyncio.wait({exited, *pumps}, timeout=timeout)
        finally:
            if not exited.done():
                exited.cancel()
        return not pending

    def _send_signal(
        self,
        process: asyncio.subprocess.Process,
        graceful: bool,
        logger: logging.Logger,
    ) -> bool:
        """Signal the whole process group.

        Returns:
            False if there was nothing left to signal
        """
        if IS_WINDOWS:
            if process.returncode is not None:
                return False
            self._windows_signal(process, graceful, logger)
            return True
        return self._posix_signal(process, signal.SIGTERM if graceful else signal.SIGKILL, logger)

    @staticmethod
    def _posix_signal(
        process: asyncio.subprocess.Process,
        sig: signal.Signals,
        logger: logging.Logger,
    ) -> bool:
        """Send ``sig`` to the process group on POSIX systems.

        The shell was started with start_new_session, so its pid is the
        process group id, also after the shell itself has exited.
        """
        try:
            os.killpg(process.pid, sig)
            logger.debug(f"Sent {sig.name} to process group pgid={process.pid}")
            return True
        except ProcessLookupError:
            return False
        except OSError as e:
            if process.returncode is not None:
                return False
            logger.debug(f"killpg failed, falling back to send_signal: {e}")
            process.send_signal(sig)
            return True

    @staticmethod
    def _windows_signal(
        process: asyncio.subprocess.Process,
        graceful: bool,
        logger: logging.Logger,
    ) -> None:
        if graceful:
            try:
                os.kill(process.pid, signal.CTRL_BREAK_EVENT)
                return
            except (ProcessLookupError, OSError) as e:
                logger.debug(f"CTRL_BREAK_EVENT failed, falling back: {e}")
        process.kill()

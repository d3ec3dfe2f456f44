"""Concurrent process supervisor.

The Executor runs all processes of one run concurrently and waits until every
one of them has finished. When a process fails, the remaining processes are
interrupted through the shared run context. The first failure is raised to
the caller once all processes have stopped.

Fan-out / fan-in:
- one task per process, started eagerly inside an anyio task group
- every task sends exactly one CompletionMessage to a memory object stream
- a single consumer loop drains the stream and owns all bookkeeping
"""

from __future__ import annotations

import itertools
import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from enum import Enum

import anyio
from anyio.streams.memory import MemoryObjectSendStream

from .context import RunContext
from .errors import ProcessFailedError, ProcessInterrupted
from .output.multiplexer import Output, longest_name
from .process import ProcessDefinition, Runnable
from .runtime.process_runner import ShellProcess

__all__ = [
    "Executor",
    "RunStatus",
    "CompletionMessage",
    "RunnerFactory",
]

logger = logging.getLogger(__name__)

RunnerFactory = Callable[[ProcessDefinition], Runnable]


class RunStatus(str, Enum):
    """Terminal state of one process."""

    SUCCESS = "success"
    ERROR = "error"
    INTERRUPTED = "interrupted"


@dataclass(frozen=True)
class CompletionMessage:
    """Sent once by every execution unit when its process has finished.

    Attributes:
        run_id: Run-scoped identifier assigned at launch
        process_name: Display name of the process
        status: How the process finished
        error: Exception raised by the runner, None on success
    """

    run_id: int
    process_name: str
    status: RunStatus
    error: BaseException | None = None


def status_of(error: BaseException | None) -> RunStatus:
    """Map the outcome of a runner call to a RunStatus."""
    if error is None:
        return RunStatus.SUCCESS
    if isinstance(error, ProcessInterrupted):
        return RunStatus.INTERRUPTED
    return RunStatus.ERROR


class Executor:
    """Runs a set of processes and waits until all of them have finished.

    Example:
        ```python
        executor = Executor()
        ctx = RunContext()
        try:
            await executor.run(ctx, processes)
        except ProcessFailedError as e:
            print(f"{e.process_name} crashed: {e.__cause__}")
        ```

    Attributes:
        output: Multiplexer that hands out one writer per process
    """

    def __init__(
        self,
        runner_factory: RunnerFactory | None = None,
        output: Output | None = None,
        log: logging.Logger | None = None,
    ) -> None:
        """Create an executor.

        Args:
            runner_factory: Builds the runner of a definition (default: ShellProcess)
            output: Console multiplexer (default: colored stdout)
            log: Logger passed down to every process (default: module logger)
        """
        self._log = log or logger
        self._runner_factory = runner_factory or ShellProcess
        self.output = output or Output(log=self._log)
        self._ids = itertools.count(1)

    async def run(
        self,
        ctx: RunContext,
        processes: Sequence[ProcessDefinition],
    ) -> list[CompletionMessage]:
        """Start all processes and block until every one of them has finished.

        If a process fails or ``ctx`` is cancelled, all running processes are
        interrupted. The call still waits for every process to report back.

        Args:
            ctx: Caller's context, cancelling it interrupts the run
            processes: Definitions to launch

        Returns:
            Completion messages in arrival order

        Raises:
            ProcessFailedError: For the first process that failed, chained to
                the runner's exception
        """
        run_ctx = ctx.child()
        padding = longest_name(p.name for p in processes)
        running: dict[int, ProcessDefinition] = {}
        completions: list[CompletionMessage] = []
        failure: CompletionMessage | None = None

        self._log.info(f"Starting processes amount={len(processes)}")

        send, receive = anyio.create_memory_object_stream[CompletionMessage](len(processes))

        async with anyio.create_task_group() as tg, receive:
            async with send:
                for definition in processes:
                    run_id = next(self._ids)
                    running[run_id] = definition
                    tg.start_soon(
                        self._run_one,
                        run_ctx,
                        run_id,
                        definition,
                        padding,
                        send.clone(),
                        name=f"prox-{definition.name}-{run_id}",
                    )

            while running:
                self._log.debug(f"Waiting for processes to complete amount={len(running)}")
                message = await receive.receive()
                del running[message.run_id]
                completions.append(message)

                if message.status is RunStatus.SUCCESS:
                    self._log.info(f"Task finished successfully name={message.process_name}")
                elif message.status is RunStatus.INTERRUPTED:
                    self._log.info(f"Task was interrupted name={message.process_name}")
                else:
                    self._log.error(f"Task error name={message.process_name}: {message.error}")
                    if failure is None:
                        failure = message
                    if run_ctx.cancel(f"process {message.process_name!r} failed"):
                        self._log.info("Interrupting all remaining processes")

        if failure is not None:
            assert failure.error is not None
            raise ProcessFailedError(failure.process_name, failure.error, completions) from failure.error

        if ctx.cancelled:
            self._log.info(f"Run interrupted by caller reason={ctx.reason}")
        return completions

    async def _run_one(
        self,
        ctx: RunContext,
        run_id: int,
        definition: ProcessDefinition,
        padding: int,
        completions: MemoryObjectSendStream[CompletionMessage],
    ) -> None:
        """Execution unit of a single process."""
        name = definition.name
        self._log.info(f"Starting process name={name}")

        async with completions:
            writer = self.output.next(name, padding, definition.structured_output)
            error: BaseException | None = None
            try:
                runner = self._runner_factory(definition)
                await runner.run(ctx, writer, self._log.getChild(name))
            except anyio.get_cancelled_exc_class():
                raise
            except Exception as e:
                error = e
            finally:
                writer.flush()

            await completions.send(
                CompletionMessage(
                    run_id=run_id,
                    process_name=name,
                    status=status_of(error),
                    error=error,
                )
            )

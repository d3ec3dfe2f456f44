"""Exception hierarchy for prox.

Process failures are split by how the executor classifies them:
LaunchError and ProcessExitError become an ERROR completion, while
ProcessInterrupted becomes an INTERRUPTED completion.
"""

from __future__ import annotations

__all__ = [
    "ProxError",
    "LaunchError",
    "ProcessExitError",
    "ProcessInterrupted",
    "ProcessFailedError",
    "ConfigError",
    "ProxfileError",
    "ProcfileError",
    "EnvFileError",
]


class ProxError(Exception):
    """Base exception for prox."""
    pass


class LaunchError(ProxError):
    """The process could not be started.

    Attributes:
        process_name: Name of the process
        command_line: Command that failed to start
    """

    def __init__(self, process_name: str, command_line: str, reason: str) -> None:
        self.process_name = process_name
        self.command_line = command_line
        super().__init__(f"failed to start {process_name!r} ({command_line}): {reason}")


class ProcessExitError(ProxError):
    """The process exited with a non-zero return code.

    Attributes:
        process_name: Name of the process
        returncode: Exit status reported by the OS (negative for signals)
    """

    def __init__(self, process_name: str, returncode: int) -> None:
        self.process_name = process_name
        self.returncode = returncode
        super().__init__(f"process {process_name!r} exited with status {returncode}")


class ProcessInterrupted(ProxError):
    """The process was stopped because its run context was cancelled."""

    def __init__(self, process_name: str) -> None:
        self.process_name = process_name
        super().__init__(f"process {process_name!r} was interrupted")


class ProcessFailedError(ProxError):
    """Raised by Executor.run for the first process that failed.

    The runner's original exception is available as ``__cause__``.

    Attributes:
        process_name: Name of the process that triggered group cancellation
        completions: Completion messages of the run in arrival order
    """

    def __init__(
        self,
        process_name: str,
        cause: BaseException,
        completions: list | None = None,
    ) -> None:
        self.process_name = process_name
        self.completions = completions or []
        super().__init__(f"process {process_name!r} failed: {cause}")


class ConfigError(ProxError):
    """Configuration could not be loaded."""
    pass


class ProxfileError(ConfigError):
    """Proxfile is not valid YAML or does not match the schema."""
    pass


class ProcfileError(ConfigError):
    """Procfile contains a malformed line.

    Attributes:
        line_number: 1-based line number of the offending line
    """

    def __init__(self, line_number: int, message: str) -> None:
        self.line_number = line_number
        super().__init__(f"line {line_number}: {message}")


class EnvFileError(ConfigError):
    """Env file could not be read."""
    pass

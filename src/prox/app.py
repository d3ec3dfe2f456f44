"""prox command line entry point.

Contains logging setup, the ``start`` and ``show`` commands and the exit
code policy.

Usage:
    prox                      # run every process of the Proxfile/Procfile
    prox start web worker     # run a subset
    prox show web             # print the command line of one process
    prox show --all           # list all processes
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from collections.abc import Sequence
from functools import partial
from pathlib import Path

from . import __version__
from .config import Config, get_config
from .context import RunContext
from .environment import Environment, system_env
from .errors import ConfigError, EnvFileError, ProcessFailedError
from .executor import Executor
from .output.multiplexer import Output
from .process import ProcessDefinition
from .proxfile import load_processes
from .runtime.process_runner import ShellProcess
from .signal_manager import SignalManager

__all__ = [
    "main",
    "run_processes",
    "build_parser",
    "EXIT_OK",
    "EXIT_FAILED_PROCESS",
    "EXIT_BAD_ENV_FILE",
    "EXIT_BAD_PROC_FILE",
    "EXIT_MISSING_ARGS",
]

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILED_PROCESS = 1
EXIT_BAD_ENV_FILE = 2
EXIT_BAD_PROC_FILE = 3
EXIT_MISSING_ARGS = 4
EXIT_FORCED = 130  # 128 + SIGINT

COMMANDS = ("start", "show")


def configure_logging(verbose: bool) -> None:
    """Log to stderr; only the prox namespace logs below WARNING."""
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")
    )
    # Root logger (third-party libraries) stays at WARNING
    logging.basicConfig(level=logging.WARNING, handlers=[handler])
    logging.getLogger("prox").setLevel(logging.DEBUG if verbose else logging.INFO)


def build_parser(config: Config) -> argparse.ArgumentParser:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "-v", "--verbose", action="store_true", default=config.verbose,
        help="enable detailed log output for debugging",
    )
    common.add_argument(
        "-e", "--env", default=config.env_file,
        help=f"path to the env file (default {config.env_file!r})",
    )
    common.add_argument(
        "-f", "--procfile", default=config.procfile,
        help='path to the Proxfile or Procfile (default "Proxfile" or "Procfile")',
    )

    parser = argparse.ArgumentParser(
        prog="prox",
        description="A process runner for Procfile-based applications",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    commands = parser.add_subparsers(dest="command")

    start = commands.add_parser("start", parents=[common], help="run processes (default)")
    start.add_argument(
        "--no-color", dest="color", action="store_false", default=config.color,
        help="disable colored output",
    )
    start.add_argument("names", nargs="*", metavar="NAME", help="only run these processes")

    show = commands.add_parser("show", parents=[common], help="show run configuration of a single process")
    show.add_argument("name", nargs="?", help="process name as written in the Procfile or Proxfile")
    show.add_argument(
        "-a", "--all", action="store_true",
        help="show run configuration of all processes (ignoring any arguments)",
    )

    return parser


def _normalize_argv(argv: Sequence[str]) -> list[str]:
    """Make ``start`` the default command."""
    argv = list(argv)
    if not argv or argv[0] not in (*COMMANDS, "-h", "--help", "--version"):
        argv.insert(0, "start")
    return argv


def load_environment(path: str) -> Environment:
    """System environment merged with the env file, if it exists."""
    if not path:
        raise EnvFileError("env file path cannot be empty")

    env = system_env()
    if not Path(path).exists():
        logger.debug(f"Did not find env file. Using system env instead path={path}")
        return env

    logger.debug(f"Reading env file path={path}")
    env.parse_env_file(path)
    return env


def select_processes(
    processes: list[ProcessDefinition],
    names: Sequence[str],
) -> list[ProcessDefinition]:
    """Keep only the named processes, in file order.

    Raises:
        KeyError: If a name does not exist
    """
    if not names:
        return processes

    known = {p.name for p in processes}
    unknown = [n for n in names if n not in known]
    if unknown:
        raise KeyError(", ".join(unknown))

    wanted = set(names)
    return [p for p in processes if p.name in wanted]


async def run_processes(
    processes: Sequence[ProcessDefinition],
    *,
    color: bool = True,
    term_timeout: float | None = None,
) -> int:
    """Run ``processes`` until they finish, fail or prox is interrupted.

    Returns:
        Process exit code for prox
    """
    ctx = RunContext()
    runner_factory = ShellProcess
    if term_timeout is not None:
        runner_factory = partial(ShellProcess, term_timeout=term_timeout)

    executor = Executor(runner_factory=runner_factory, output=Output(color=color))

    task = asyncio.current_task()
    signal_manager = SignalManager(ctx, on_force_exit=task.cancel if task else None)
    await signal_manager.start()

    try:
        await executor.run(ctx, processes)
    except ProcessFailedError as e:
        logger.error(f"Stopped after process {e.process_name!r} failed: {e.__cause__}")
        return EXIT_FAILED_PROCESS
    except asyncio.CancelledError:
        if signal_manager.is_force_exit:
            logger.warning("Forced exit")
            return EXIT_FORCED
        raise
    finally:
        await signal_manager.stop()

    return EXIT_OK


def _print_run_configuration(args: argparse.Namespace, processes: list[ProcessDefinition]) -> int:
    if args.all:
        width = max([len("NAME"), *(len(p.name) for p in processes)]) + 2
        print(f"{'NAME'.ljust(width)}SCRIPT")
        for p in processes:
            print(f"{p.name.ljust(width)}{Environment(p.env).expand(p.command_line)}")
        return EXIT_OK

    process = next((p for p in processes if p.name == args.name), None)
    if process is None:
        logger.error(f"No such process {args.name!r}. Use `prox show --all` to see a list of all available processes")
        return EXIT_MISSING_ARGS

    if args.verbose:
        print(json.dumps(process.to_dict(), indent=4))
    else:
        print(Environment(process.env).expand(process.command_line))
    return EXIT_OK


def main(argv: Sequence[str] | None = None) -> int:
    """Main entry point."""
    config = get_config()
    parser = build_parser(config)
    args = parser.parse_args(_normalize_argv(sys.argv[1:] if argv is None else argv))

    configure_logging(args.verbose)

    if args.command == "show" and not args.all and not args.name:
        logger.error("prox show requires exactly one argument - the process name as written in the Procfile or Proxfile")
        parser.print_usage()
        return EXIT_MISSING_ARGS

    try:
        env = load_environment(args.env)
    except EnvFileError as e:
        logger.error(f"Failed to parse env file: {e}")
        return EXIT_BAD_ENV_FILE

    try:
        processes = load_processes(env, args.procfile)
    except ConfigError as e:
        logger.error(f"Failed to parse Procfile: {e}")
        return EXIT_BAD_PROC_FILE

    if args.command == "show":
        return _print_run_configuration(args, processes)

    try:
        processes = select_processes(processes, args.names)
    except KeyError as e:
        logger.error(f"Unknown process name(s): {e.args[0]}")
        return EXIT_MISSING_ARGS

    logger.debug(f"Loaded configuration: {config}")
    return asyncio.run(
        run_processes(processes, color=args.color, term_timeout=config.term_timeout)
    )


if __name__ == "__main__":
    sys.exit(main())

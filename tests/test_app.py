"""Command line tests.

Test coverage:
- Argument normalization and parsing
- ``prox show``
- Process selection
- Exit codes of ``prox start``
- Forced exit on a double SIGINT
"""

from __future__ import annotations

import asyncio
import json
import os
import signal
from pathlib import Path

import pytest

from prox.app import (
    EXIT_BAD_ENV_FILE,
    EXIT_BAD_PROC_FILE,
    EXIT_FAILED_PROCESS,
    EXIT_FORCED,
    EXIT_MISSING_ARGS,
    EXIT_OK,
    _normalize_argv,
    build_parser,
    load_environment,
    main,
    run_processes,
    select_processes,
)
from prox.config import Config
from prox.errors import EnvFileError
from prox.output.multiplexer import SEPARATOR
from prox.process import ProcessDefinition
from prox.runtime.process_runner import IS_WINDOWS


@pytest.fixture
def project(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Empty project directory used as the working directory."""
    monkeypatch.chdir(tmp_path)
    return tmp_path


# =============================================================================
# Argument parsing
# =============================================================================


class TestArguments:
    """Argument normalization and parsing."""

    @pytest.mark.parametrize(
        "argv,expected",
        [
            ([], ["start"]),
            (["web"], ["start", "web"]),
            (["-v", "web"], ["start", "-v", "web"]),
            (["show", "web"], ["show", "web"]),
            (["start"], ["start"]),
            (["--version"], ["--version"]),
        ],
    )
    def test_start_is_default(self, argv: list[str], expected: list[str]):
        assert _normalize_argv(argv) == expected

    def test_defaults_from_config(self):
        config = Config(verbose=True, color=False, env_file="dev.env", procfile="Procfile.dev")
        args = build_parser(config).parse_args(["start"])

        assert args.verbose is True
        assert args.color is False
        assert args.env == "dev.env"
        assert args.procfile == "Procfile.dev"
        assert args.names == []

    def test_flags_override_config(self):
        args = build_parser(Config()).parse_args(
            ["start", "-v", "-e", "x.env", "-f", "Proxfile.test", "--no-color", "web", "db"]
        )

        assert args.verbose is True
        assert args.env == "x.env"
        assert args.procfile == "Proxfile.test"
        assert args.color is False
        assert args.names == ["web", "db"]


# =============================================================================
# Environment and selection
# =============================================================================


class TestLoadEnvironment:
    """System environment plus env file."""

    def test_missing_env_file_uses_system_env(self, project: Path, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("PROX_TEST_VAR", "system")
        env = load_environment(".env")
        assert env.get("PROX_TEST_VAR") == "system"

    def test_env_file_overrides_system_env(self, project: Path, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("PROX_TEST_VAR", "system")
        (project / ".env").write_text("PROX_TEST_VAR=file\n")
        assert load_environment(".env").get("PROX_TEST_VAR") == "file"

    def test_empty_path(self):
        with pytest.raises(EnvFileError):
            load_environment("")


class TestSelectProcesses:
    """Running a subset of processes."""

    @pytest.fixture
    def processes(self) -> list[ProcessDefinition]:
        return [ProcessDefinition(name=n, command_line=f"./{n}") for n in ("db", "web", "worker")]

    def test_no_names_selects_all(self, processes: list[ProcessDefinition]):
        assert select_processes(processes, []) == processes

    def test_file_order_is_kept(self, processes: list[ProcessDefinition]):
        selected = select_processes(processes, ["worker", "db"])
        assert [p.name for p in selected] == ["db", "worker"]

    def test_unknown_name(self, processes: list[ProcessDefinition]):
        with pytest.raises(KeyError, match="cache"):
            select_processes(processes, ["web", "cache"])


# =============================================================================
# prox show
# =============================================================================


class TestShow:
    """``prox show``."""

    @pytest.fixture(autouse=True)
    def procfile(self, project: Path) -> None:
        (project / ".env").write_text("PORT=5000\n")
        (project / "Procfile").write_text("web: ./server --port $PORT\nworker: ./worker\n")

    def test_show_one(self, capsys: pytest.CaptureFixture[str]):
        assert main(["show", "web"]) == EXIT_OK
        assert capsys.readouterr().out == "./server --port 5000\n"

    def test_show_all(self, capsys: pytest.CaptureFixture[str]):
        assert main(["show", "--all"]) == EXIT_OK
        assert capsys.readouterr().out.splitlines() == [
            "NAME    SCRIPT",
            "web     ./server --port 5000",
            "worker  ./worker",
        ]

    def test_show_verbose(self, capsys: pytest.CaptureFixture[str]):
        assert main(["show", "-v", "web"]) == EXIT_OK
        data = json.loads(capsys.readouterr().out)
        assert data["name"] == "web"
        assert data["script"] == "./server --port $PORT"
        assert data["env"]["PORT"] == "5000"
        assert data["structured_output"]["format"] == "auto"

    def test_show_without_name(self):
        assert main(["show"]) == EXIT_MISSING_ARGS

    def test_show_unknown(self):
        assert main(["show", "nope"]) == EXIT_MISSING_ARGS


# =============================================================================
# Exit codes
# =============================================================================


class TestExitCodes:
    """Configuration errors."""

    def test_bad_env_file(self, project: Path):
        (project / "envdir").mkdir()
        (project / "Procfile").write_text("web: ./web\n")
        assert main(["show", "--all", "-e", "envdir"]) == EXIT_BAD_ENV_FILE

    def test_missing_process_file(self, project: Path):
        assert main(["show", "--all"]) == EXIT_BAD_PROC_FILE

    def test_bad_procfile(self, project: Path):
        (project / "Procfile").write_text("not a process line\n")
        assert main(["start"]) == EXIT_BAD_PROC_FILE

    def test_bad_proxfile(self, project: Path):
        (project / "Proxfile").write_text("processes:\n  web:\n    format: json\n")
        assert main(["start"]) == EXIT_BAD_PROC_FILE

    def test_unknown_process_name(self, project: Path):
        (project / "Procfile").write_text("web: ./web\n")
        assert main(["start", "db"]) == EXIT_MISSING_ARGS


@pytest.mark.integration
@pytest.mark.skipif(IS_WINDOWS, reason="POSIX shell required")
class TestStart:
    """``prox start`` with real processes."""

    @pytest.mark.timeout(20)
    def test_success(self, project: Path, capsys: pytest.CaptureFixture[str]):
        (project / "Procfile").write_text("hello: echo hello\nbye: echo bye\n")

        assert main(["--no-color"]) == EXIT_OK

        lines = sorted(capsys.readouterr().out.splitlines())
        assert lines == [f"bye  {SEPARATOR}bye", f"hello{SEPARATOR}hello"]

    @pytest.mark.timeout(20)
    def test_subset(self, project: Path, capsys: pytest.CaptureFixture[str]):
        (project / "Procfile").write_text("hello: echo hello\nbroken: exit 1\n")

        assert main(["start", "--no-color", "hello"]) == EXIT_OK
        assert capsys.readouterr().out.splitlines() == [f"hello{SEPARATOR}hello"]

    @pytest.mark.timeout(20)
    def test_failed_process(self, project: Path, caplog: pytest.LogCaptureFixture):
        (project / "Procfile").write_text("broken: sleep 0.2; exit 3\nserver: sleep 10\n")

        assert main(["--no-color"]) == EXIT_FAILED_PROCESS
        assert "Stopped after process 'broken' failed" in caplog.text

    @pytest.mark.asyncio
    @pytest.mark.timeout(20)
    async def test_double_sigint_forces_exit(self):
        processes = [ProcessDefinition(name="server", command_line="sleep 10")]

        def interrupt_twice() -> None:
            os.kill(os.getpid(), signal.SIGINT)
            os.kill(os.getpid(), signal.SIGINT)

        asyncio.get_running_loop().call_later(0.3, interrupt_twice)

        code = await run_processes(processes, color=False, term_timeout=1.0)
        assert code == EXIT_FORCED

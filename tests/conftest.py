"""Pytest configuration and fixtures."""

from __future__ import annotations

import io
import sys
from pathlib import Path

import pytest

# Project root
PROJECT_ROOT = Path(__file__).parent.parent

# Add src directory to the Python path
SRC_DIR = PROJECT_ROOT / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

FIXTURES_DIR = PROJECT_ROOT / "tests" / "fixtures"

from prox.output.multiplexer import Output  # noqa: E402


@pytest.fixture
def console() -> io.StringIO:
    """In-memory console stream."""
    return io.StringIO()


@pytest.fixture
def plain_output(console: io.StringIO) -> Output:
    """Output multiplexer without ANSI colors writing to ``console``."""
    return Output(console, color=False)


@pytest.fixture
def json_service() -> Path:
    """Script emitting JSON log lines until it is stopped."""
    return FIXTURES_DIR / "json_service.py"


@pytest.fixture
def python() -> str:
    """Interpreter running the test suite, for spawning fixture scripts."""
    return sys.executable

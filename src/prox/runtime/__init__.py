"""Runtime module for subprocess management.

This module provides the shell process runner used by the executor, with
process group isolation and reliable termination.
"""

from __future__ import annotations

from .process_runner import IS_WINDOWS, ShellProcess

__all__ = [
    "IS_WINDOWS",
    "ShellProcess",
]

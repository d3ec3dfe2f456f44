"""prox - a process runner for Procfile-based applications.

Runs every process of a Proxfile or Procfile concurrently, prefixes and
colors their output, and stops the whole group when one process fails.

Environment variables:
    PROX_VERBOSE: debug logging (default false)
    PROX_NO_COLOR: disable colored output (default false)
    PROX_ENV: env file path (default .env)
    PROX_PROCFILE: process file path (default Proxfile, then Procfile)
    PROX_TERM_TIMEOUT: seconds between SIGTERM and SIGKILL (default 5)

Usage:
    prox
"""

__version__ = "0.1.0"

from .app import main

__all__ = ["__version__", "main"]

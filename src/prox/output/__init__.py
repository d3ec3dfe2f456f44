"""Console output: line classification, colors and multiplexing."""

from __future__ import annotations

from .classifier import ClassifiedLine, classify_line
from .multiplexer import LineWriter, Output, longest_name

__all__ = [
    "ClassifiedLine",
    "classify_line",
    "LineWriter",
    "Output",
    "longest_name",
]

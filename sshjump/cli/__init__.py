"""CLI argument parsing and handling."""

from __future__ import annotations

from sshjump.cli.parsing import USAGE, normalize_argv, wants_help

__all__ = [
    "USAGE",
    "normalize_argv",
    "wants_help",
]

"""Coloured console output for the profiler command-line tools.

Falls back to plain text when stdout is not a terminal or when
``NO_COLOR`` / ``PROFILER_NO_COLOR=1`` is set.
"""

from __future__ import annotations

import os
import sys
from typing import TextIO

_RESET = "\033[0m"
_BOLD = "\033[1m"
_DIM = "\033[2m"

_FG_RED = "\033[31m"
_FG_GREEN = "\033[32m"
_FG_YELLOW = "\033[33m"
_FG_CYAN = "\033[36m"
_FG_WHITE = "\033[37m"


def _supports_color(stream: TextIO) -> bool:
    if os.getenv("PROFILER_NO_COLOR", "").strip().lower() in {"1", "true", "yes"}:
        return False
    if os.getenv("NO_COLOR"):
        return False
    return hasattr(stream, "isatty") and stream.isatty()


class ConsoleLogger:
    """Prefixed console printer with one colour per level."""

    _MODULE_COLORS: dict[str, str] = {
        "Storage": _FG_CYAN,
        "Sweep": _FG_YELLOW,
    }

    def __init__(self, module: str, stream: TextIO | None = None) -> None:
        self.module = module
        self.stream = stream if stream is not None else sys.stdout
        self._prefix_color = self._MODULE_COLORS.get(module, _FG_WHITE)
        self._color = _supports_color(self.stream)

    def _format(self, level_color: str, level: str, message: str) -> str:
        if self._color:
            return (
                f"{self._prefix_color}{_BOLD}[{self.module}]{_RESET} "
                f"{level_color}{level}{_RESET} {message}"
            )
        return f"[{self.module}] {level} {message}"

    def _emit(self, line: str) -> None:
        print(line, file=self.stream)

    def info(self, message: str) -> None:
        self._emit(self._format(_FG_GREEN, ">", message))

    def warn(self, message: str) -> None:
        self._emit(self._format(_FG_YELLOW, "!", message))

    def error(self, message: str) -> None:
        self._emit(self._format(_FG_RED, "X", message))

    def status(self, message: str) -> None:
        """Dimmed line for secondary details."""
        if self._color:
            self._emit(f"{self._prefix_color}{_BOLD}[{self.module}]{_RESET} {_DIM}{message}{_RESET}")
        else:
            self._emit(f"[{self.module}] {message}")

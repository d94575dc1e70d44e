"""Console output handler used for optional execution diagnostics."""
from __future__ import annotations

from typing import Protocol, TextIO, runtime_checkable
import sys


@runtime_checkable
class ExecutionConsole(Protocol):
    """Minimal console interface accepted by :class:`ProcessExecutor`."""

    def info(self, message: str) -> None:
        ...

    def error(self, message: str) -> None:
        ...

    def debug(self, message: str) -> None:
        ...


class Console:
    """Simple console output handler with configurable log level.

    Levels: none < error < info < debug
    Default: 'none' (no output)
    """

    LEVELS = {
        "none": 0,
        "error": 1,
        "info": 2,
        "debug": 3,
    }

    def __init__(self, level: str = "none", stream: TextIO | None = None):
        if level not in self.LEVELS:
            raise ValueError(f"Unknown log level: {level}. Supported: {', '.join(self.LEVELS)}")
        self.level_name = level
        self.level = self.LEVELS[level]
        self._stream = stream

    def _emit(self, message: str, *, default: TextIO) -> None:
        print(message, file=self._stream or default)

    def info(self, message: str) -> None:
        if self.level >= self.LEVELS["info"]:
            self._emit(f"[INFO] {message}", default=sys.stderr)

    def error(self, message: str) -> None:
        if self.level >= self.LEVELS["error"]:
            self._emit(f"[ERROR] {message}", default=sys.stderr)

    def debug(self, message: str) -> None:
        if self.level >= self.LEVELS["debug"]:
            self._emit(f"[DEBUG] {message}", default=sys.stderr)

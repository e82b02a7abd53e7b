"""
Logger Utility
==============

Console logging for the agent core.

Every component owns a context-tagged logger so a single task can be
followed from the model stream, through the parser and tool registry,
down to the retrieval index:

    [2024-05-02T10:30:00] [INFO] [AgentLoop] Starting task: Tidy up my inbox
    [2024-05-02T10:30:01] [DEBUG] [AgentLoop:Planner] Plan created with 3 steps

Environment:
    LOG_LEVEL   debug | info | warning | error (default info). Read when a
                logger is created, so tests can change it with monkeypatch
                before building the component under test.
    NO_COLOR    any value turns ANSI colors off. Colors are also off when
                the stream is not a terminal (piped CLI output, CI logs).

Usage:
    from lumina.utils.logger import Logger

    logger = Logger("VectorStore")
    logger.info("Loaded index", {"chunks": 120})
    logger.error("Could not write index", exc)
"""

import json
import os
import sys
import traceback
from datetime import datetime
from enum import IntEnum
from typing import Any, TextIO


class LogLevel(IntEnum):
    DEBUG = 10
    INFO = 20
    WARNING = 30
    ERROR = 40

    @classmethod
    def from_env(cls) -> "LogLevel":
        """LOG_LEVEL as a level; unknown values mean INFO."""
        name = os.getenv("LOG_LEVEL", "INFO").strip().upper()
        if name == "WARN":
            name = "WARNING"
        return cls.__members__.get(name, cls.INFO)


# Label and ANSI color per level
_STYLES = {
    LogLevel.DEBUG: ("DEBUG", "\033[36m"),
    LogLevel.INFO: ("INFO", "\033[32m"),
    LogLevel.WARNING: ("WARN", "\033[33m"),
    LogLevel.ERROR: ("ERROR", "\033[31m"),
}
_RESET = "\033[0m"
_DIM = "\033[2m"


def _colors_enabled(stream: TextIO) -> bool:
    if os.getenv("NO_COLOR"):
        return False
    isatty = getattr(stream, "isatty", None)
    return bool(isatty and isatty())


class Logger:
    """
    A context-aware console logger.

    Debug, info and warning lines go to stdout; errors go to stderr so they
    survive redirecting the agent's streamed output to a file.

    Example:
        logger = Logger("RAG")
        indexing = logger.child("Index")
        indexing.debug("Chunked file", {"path": "notes/a.md", "chunks": 4})
    """

    def __init__(self, context: str = ""):
        self.context = context
        self._min_level = LogLevel.from_env()

    def child(self, child_context: str) -> "Logger":
        """Logger for a sub-component; its lines read [Parent:Child]."""
        return Logger(f"{self.context}:{child_context}" if self.context else child_context)

    def is_enabled_for(self, level: LogLevel) -> bool:
        return level >= self._min_level

    def _render(self, level: LogLevel, message: str, colored: bool) -> str:
        label, color = _STYLES[level]
        timestamp = datetime.now().isoformat(timespec="seconds")
        context = f"[{self.context}] " if self.context else ""
        if not colored:
            return f"[{timestamp}] [{label}] {context}{message}"
        return f"{_DIM}[{timestamp}]{_RESET} {color}[{label}]{_RESET} {context}{message}"

    def _log(self, level: LogLevel, message: str, data: dict[str, Any] | None = None) -> None:
        if not self.is_enabled_for(level):
            return

        stream = sys.stderr if level >= LogLevel.ERROR else sys.stdout
        colored = _colors_enabled(stream)
        lines = [self._render(level, message, colored)]

        if data:
            # Payloads may hold paths, ToolCalls or enums, hence default=str
            payload = json.dumps(data, indent=2, default=str, ensure_ascii=False)
            lines.append(f"{_DIM}{payload}{_RESET}" if colored else payload)

        print("\n".join(lines), file=stream, flush=level >= LogLevel.WARNING)

    def debug(self, message: str, data: dict[str, Any] | None = None) -> None:
        """Log a debug message (only shown with LOG_LEVEL=debug)."""
        self._log(LogLevel.DEBUG, message, data)

    def info(self, message: str, data: dict[str, Any] | None = None) -> None:
        self._log(LogLevel.INFO, message, data)

    def warning(self, message: str, data: dict[str, Any] | None = None) -> None:
        self._log(LogLevel.WARNING, message, data)

    def error(self, message: str, error: BaseException | None = None) -> None:
        """
        Log an error message.

        Args:
            message: What went wrong
            error: Optional exception; its type and message are attached,
                and with LOG_LEVEL=debug its traceback too
        """
        data = None
        if error is not None:
            data = {"error_type": type(error).__name__, "error_message": str(error)}
            if self.is_enabled_for(LogLevel.DEBUG) and error.__traceback__ is not None:
                data["traceback"] = "".join(traceback.format_tb(error.__traceback__))
        self._log(LogLevel.ERROR, message, data)

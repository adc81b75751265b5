from __future__ import annotations

from collections import deque
from collections.abc import Callable
import json
import logging
from typing import Any

from textlint_client.core.logger import logger as root_logger

DEFAULT_MAX_LINES = 1000


class OutputChannel:
    """User-facing log of the language client.

    Every line is also written to the package log file. Errors reveal the
    channel through the ``on_show`` listeners.
    """

    def __init__(
        self,
        name: str = "textlint",
        *,
        max_lines: int = DEFAULT_MAX_LINES,
        reveal_on_error: bool = True,
    ) -> None:
        self.name = name
        self.reveal_on_error = reveal_on_error
        self._lines: deque[str] = deque(maxlen=max_lines)
        self._show_listeners: list[Callable[[OutputChannel], None]] = []
        self._logger = root_logger.getChild(f"output.{name}")

    @property
    def lines(self) -> list[str]:
        return list(self._lines)

    def on_show(self, listener: Callable[[OutputChannel], None]) -> None:
        self._show_listeners.append(listener)

    def show(self) -> None:
        for listener in self._show_listeners:
            listener(self)

    def info(self, message: str, data: Any = None) -> None:
        self._write(logging.INFO, message, data)

    def warn(self, message: str, data: Any = None) -> None:
        self._write(logging.WARNING, message, data)

    def error(self, message: str, data: Any = None) -> None:
        self._write(logging.ERROR, message, data)
        if self.reveal_on_error:
            self.show()

    def clear(self) -> None:
        self._lines.clear()

    def dispose(self) -> None:
        self._show_listeners.clear()

    def _write(self, level: int, message: str, data: Any) -> None:
        text = self._format(message, data)
        self._lines.append(f"[{logging.getLevelName(level).title()}] {text}")
        self._logger.log(level, text)

    @staticmethod
    def _format(message: str, data: Any) -> str:
        if data is None or data == "":
            return message
        if isinstance(data, BaseException):
            return f"{message}\n{type(data).__name__}: {data}"
        if isinstance(data, str):
            return f"{message}\n{data}"
        try:
            return f"{message}\n{json.dumps(data, indent=4, default=str)}"
        except (TypeError, ValueError):
            return f"{message}\n{data!r}"

from __future__ import annotations

from collections.abc import Callable
from enum import StrEnum, auto
import logging
import time
from typing import Protocol

from textlint_client.core.lsp.types import LSPMessage
from textlint_client.core.output import OutputChannel

logger = logging.getLogger(__name__)

MAX_CONSECUTIVE_ERRORS = 3
MAX_RESTARTS = 5
RESTART_WINDOW_SECONDS = 3 * 60


class ErrorAction(StrEnum):
    CONTINUE = auto()
    SHUTDOWN = auto()


class CloseAction(StrEnum):
    DO_NOT_RESTART = auto()
    RESTART = auto()


class ErrorHandler(Protocol):
    def error(self, error: BaseException, message: LSPMessage | None, count: int) -> ErrorAction: ...
    def closed(self) -> CloseAction: ...


class DefaultErrorHandler:
    """Bounded recovery: tolerate a few protocol errors and a few crashes."""

    def __init__(
        self,
        name: str,
        output: OutputChannel | None = None,
        *,
        clock: Callable[[], float] = time.monotonic,
        max_restarts: int = MAX_RESTARTS,
        restart_window: float = RESTART_WINDOW_SECONDS,
    ) -> None:
        self.name = name
        self.output = output
        self._clock = clock
        self._max_restarts = max_restarts
        self._restart_window = restart_window
        self.restarts: list[float] = []

    def error(self, error: BaseException, message: LSPMessage | None, count: int) -> ErrorAction:
        if count and count <= MAX_CONSECUTIVE_ERRORS:
            return ErrorAction.CONTINUE
        return ErrorAction.SHUTDOWN

    def closed(self) -> CloseAction:
        self.restarts.append(self._clock())
        if len(self.restarts) < self._max_restarts:
            return CloseAction.RESTART

        diff = self.restarts[-1] - self.restarts[0]
        if diff <= self._restart_window:
            message = (
                f"The {self.name} server crashed {self._max_restarts} times in the last "
                f"{int(self._restart_window // 60)} minutes. The server will not be restarted."
            )
            logger.error(message)
            if self.output is not None:
                self.output.error(message)
            return CloseAction.DO_NOT_RESTART

        self.restarts.pop(0)
        return CloseAction.RESTART

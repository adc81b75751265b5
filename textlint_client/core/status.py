from __future__ import annotations

from collections.abc import Callable, Iterable
import logging
from typing import Any

from pydantic import BaseModel, ConfigDict

from textlint_client.core.output import OutputChannel
from textlint_client.core.types import Severity, StatusEvent

logger = logging.getLogger(__name__)


class StatusSnapshot(BaseModel):
    model_config = ConfigDict(frozen=True)

    severity: Severity
    busy: bool
    server_running: bool


class StatusAggregator:
    """Reduces status and progress notifications to one observable state.

    The latest status wins; nothing is merged with earlier severities.
    """

    def __init__(self, languages: Iterable[str], output: OutputChannel | None = None) -> None:
        self.languages: frozenset[str] = frozenset(languages)
        self.output = output
        self._severity = Severity.OK
        self._busy = False
        self._server_running = False
        self._listeners: list[Callable[[StatusSnapshot], None]] = []

    @property
    def severity(self) -> Severity:
        return self._severity

    @property
    def busy(self) -> bool:
        return self._busy

    @property
    def server_running(self) -> bool:
        return self._server_running

    @server_running.setter
    def server_running(self, running: bool) -> None:
        if running != self._server_running:
            self._server_running = running
            self._emit()

    def is_enabled_for(self, language_id: str) -> bool:
        return language_id in self.languages

    def apply(self, event: StatusEvent) -> None:
        self.set_status(event.severity, event.message, event.cause)

    def set_status(self, severity: Severity, message: str | None = None, cause: Any = None) -> None:
        changed = severity is not self._severity
        self._severity = severity
        if message or cause:
            self.log(severity, message or "", cause)
        if changed:
            self._emit()

    def start_progress(self) -> None:
        if not self._busy:
            self._busy = True
            self._emit()

    def stop_progress(self) -> None:
        if self._busy:
            self._busy = False
            self._emit()

    def log(self, severity: Severity, message: str, cause: Any = None) -> None:
        if self.output is None:
            logger.log(_LOG_LEVELS[severity], message)
            return
        match severity:
            case Severity.OK:
                self.output.info(message, cause)
            case Severity.WARN:
                self.output.warn(message, cause)
            case Severity.ERROR:
                self.output.error(message, cause)

    def snapshot(self) -> StatusSnapshot:
        return StatusSnapshot(
            severity=self._severity,
            busy=self._busy,
            server_running=self._server_running,
        )

    def on_change(self, listener: Callable[[StatusSnapshot], None]) -> Callable[[], None]:
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    def _emit(self) -> None:
        snapshot = self.snapshot()
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception as e:
                logger.error(f"Status listener failed: {e}", exc_info=True)


_LOG_LEVELS = {
    Severity.OK: logging.INFO,
    Severity.WARN: logging.WARNING,
    Severity.ERROR: logging.ERROR,
}

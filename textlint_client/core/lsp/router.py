from __future__ import annotations

from collections.abc import Callable
import logging

from textlint_client.core.lsp.connection import LintConnection
from textlint_client.core.lsp.protocol import (
    ExitNotification,
    LogTraceNotification,
    MalformedNotificationError,
    NoConfigNotification,
    NoLibraryNotification,
    ServerNotification,
    StartProgressNotification,
    StatusNotification,
    StopProgressNotification,
    decode_notification,
)
from textlint_client.core.lsp.types import LSPNotificationParams
from textlint_client.core.output import OutputChannel
from textlint_client.core.status import StatusAggregator
from textlint_client.core.types import Severity, StatusEvent

logger = logging.getLogger(__name__)

NO_CONFIG_MESSAGE = """
No textlint configuration (e.g .textlintrc) found.
File will not be validated. Consider running the 'Create .textlintrc file' command."""

NO_LIBRARY_MESSAGE = """
Failed to load the textlint library.
To use textlint in this workspace please install textlint using 'npm install textlint' or globally using 'npm install -g textlint'.
You need to reopen the workspace after installing textlint."""


class NotificationRouter:
    def __init__(
        self,
        connection: LintConnection,
        status: StatusAggregator,
        output: OutputChannel,
    ) -> None:
        self.connection = connection
        self.status = status
        self.output = output
        self._unsubscribe: Callable[[], None] | None = None

    @property
    def installed(self) -> bool:
        return self._unsubscribe is not None

    def install(self) -> None:
        if self._unsubscribe is None:
            self._unsubscribe = self.connection.on_notification(self.handle)

    def dispose(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def handle(self, method: str, params: LSPNotificationParams | None) -> None:
        try:
            notification = decode_notification(method, params)
        except MalformedNotificationError as e:
            logger.debug(str(e))
            return

        if notification is None:
            logger.debug(f"Ignoring unknown notification: {method}")
            return

        self.dispatch(notification)

    def dispatch(self, notification: ServerNotification) -> None:
        match notification:
            case StatusNotification():
                self.status.apply(notification.to_event())
            case NoConfigNotification():
                self.status.apply(StatusEvent(severity=Severity.WARN, message=NO_CONFIG_MESSAGE))
            case NoLibraryNotification():
                self.status.apply(StatusEvent(severity=Severity.ERROR, message=NO_LIBRARY_MESSAGE))
            case StartProgressNotification():
                self.status.start_progress()
            case StopProgressNotification():
                self.status.stop_progress()
            case ExitNotification():
                self.connection.mark_server_exit()
            case LogTraceNotification():
                self.output.info(notification.message, notification.verbose)
            case _:
                logger.debug(f"No handler for notification: {type(notification).__name__}")

from __future__ import annotations

from typing import Any, ClassVar

from pydantic import BaseModel, ConfigDict, ValidationError
from pydantic.alias_generators import to_camel

from textlint_client.core.types import (
    FixRequest,
    FixResult,
    Severity,
    StatusEvent,
)

ALL_FIXES_REQUEST = "textDocument/textlint/allFixes"
DID_CHANGE_CONFIGURATION = "workspace/didChangeConfiguration"
DID_CHANGE_WATCHED_FILES = "workspace/didChangeWatchedFiles"


class ServerNotification(BaseModel):
    """Base for every notification the textlint server pushes to the client."""

    method: ClassVar[str]

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, frozen=True, extra="ignore"
    )


class StatusNotification(ServerNotification):
    method: ClassVar[str] = "textlint/status"

    status: Any = None
    message: str | None = None
    cause: Any = None

    @property
    def severity(self) -> Severity:
        return Severity.from_wire(self.status)

    def to_event(self) -> StatusEvent:
        return StatusEvent(severity=self.severity, message=self.message, cause=self.cause)


class NoConfigNotification(ServerNotification):
    method: ClassVar[str] = "textlint/noconfig"

    workspace_folder: str | None = None


class NoLibraryNotification(ServerNotification):
    method: ClassVar[str] = "textlint/nolibrary"


class StartProgressNotification(ServerNotification):
    method: ClassVar[str] = "textlint/progress/start"


class StopProgressNotification(ServerNotification):
    method: ClassVar[str] = "textlint/progress/stop"


class ExitNotification(ServerNotification):
    method: ClassVar[str] = "textlint/exit"


class LogTraceNotification(ServerNotification):
    method: ClassVar[str] = "$/logTrace"

    message: str = ""
    verbose: str | None = None


NOTIFICATION_TYPES: dict[str, type[ServerNotification]] = {
    notification.method: notification
    for notification in (
        StatusNotification,
        NoConfigNotification,
        NoLibraryNotification,
        StartProgressNotification,
        StopProgressNotification,
        ExitNotification,
        LogTraceNotification,
    )
}


class MalformedNotificationError(ValueError):
    def __init__(self, method: str, error: ValidationError) -> None:
        super().__init__(f"Malformed '{method}' notification: {error}")
        self.method = method
        self.error = error


def decode_notification(
    method: str, params: dict[str, Any] | None
) -> ServerNotification | None:
    """Return the typed notification for ``method`` or None for unknown kinds."""
    notification_type = NOTIFICATION_TYPES.get(method)
    if notification_type is None:
        return None
    try:
        return notification_type.model_validate(params or {})
    except ValidationError as e:
        raise MalformedNotificationError(method, e) from e


def all_fixes_params(document_uri: str) -> dict[str, Any]:
    return FixRequest(document_uri=document_uri).to_wire()


def decode_all_fixes_result(result: Any) -> FixResult | None:
    """The server answers null (or an empty object) when it has nothing to fix."""
    if not result:
        return None
    return FixResult.model_validate(result)

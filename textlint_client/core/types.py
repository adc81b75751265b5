from __future__ import annotations

from enum import IntEnum, StrEnum, auto
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

CONFIGURATION_SECTION = "textlint"

SUPPORT_LANGUAGES: tuple[str, ...] = (
    "plaintext",
    "markdown",
    "html",
    "tex",
    "latex",
    "doctex",
)


class ConnectionState(StrEnum):
    STOPPED = auto()
    STARTING = auto()
    RUNNING = auto()


class Severity(IntEnum):
    OK = 1
    WARN = 2
    ERROR = 3

    @classmethod
    def from_wire(cls, value: Any) -> Severity:
        """Unknown values map to ERROR so that problems stay visible."""
        try:
            return cls(value)
        except (ValueError, TypeError):
            return cls.ERROR


class SaveReason(IntEnum):
    MANUAL = 1
    AFTER_DELAY = 2
    FOCUS_OUT = 3


class RunMode(StrEnum):
    ON_SAVE = "onSave"
    ON_TYPE = "onType"


class TraceLevel(StrEnum):
    OFF = "off"
    MESSAGES = "messages"
    VERBOSE = "verbose"


class FixOutcome(StrEnum):
    APPLIED = auto()
    STALE = auto()
    FAILED = auto()


class _WireModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, frozen=True
    )

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class StatusEvent(_WireModel):
    severity: Severity
    message: str | None = None
    cause: Any = None


class DocumentRef(_WireModel):
    uri: str
    version: int


class Position(_WireModel):
    line: int = Field(ge=0)
    character: int = Field(ge=0)


class Range(_WireModel):
    start: Position
    end: Position


class TextEdit(_WireModel):
    range: Range
    new_text: str


class FixRequest(_WireModel):
    document_uri: str

    def to_wire(self) -> dict[str, Any]:
        return {"textDocument": {"uri": self.document_uri}}


class FixResult(_WireModel):
    document_version: int
    edits: list[TextEdit] = Field(default_factory=list)


class FileChangeType(IntEnum):
    CREATED = 1
    CHANGED = 2
    DELETED = 3


class FileEvent(_WireModel):
    uri: str
    type: FileChangeType

from __future__ import annotations

from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from typing import Protocol

from textlint_client.core.types import SaveReason, TextEdit


class Disposable(Protocol):
    def dispose(self) -> None: ...


class CallbackDisposable:
    """Runs its callback on the first dispose only."""

    def __init__(self, callback: Callable[[], None]) -> None:
        self._callback: Callable[[], None] | None = callback

    @property
    def disposed(self) -> bool:
        return self._callback is None

    def dispose(self) -> None:
        callback, self._callback = self._callback, None
        if callback is not None:
            callback()


@dataclass
class WillSaveEvent:
    uri: str
    language_id: str
    version: int
    reason: SaveReason
    _pending: list[Awaitable[Sequence[TextEdit]]] = field(default_factory=list, repr=False)

    def wait_until(self, edits: Awaitable[Sequence[TextEdit]]) -> None:
        """Hold the save until ``edits`` resolves; the edits are applied before writing."""
        self._pending.append(edits)

    @property
    def pending(self) -> list[Awaitable[Sequence[TextEdit]]]:
        return list(self._pending)


WillSaveHook = Callable[[WillSaveEvent], None]


class DocumentSurface(Protocol):
    def current_version(self, uri: str) -> int | None: ...
    def language_id(self, uri: str) -> str | None: ...
    def active_document(self) -> str | None: ...
    async def apply_edits(self, uri: str, edits: Sequence[TextEdit]) -> bool: ...


class SaveInterception(Protocol):
    def on_will_save(self, hook: WillSaveHook) -> Disposable: ...


class MessagePort(Protocol):
    def show_information_message(self, message: str) -> None: ...
    def show_error_message(self, message: str) -> None: ...

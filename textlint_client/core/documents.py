from __future__ import annotations

import asyncio
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from enum import StrEnum, auto
import logging
from pathlib import Path
import re

import anyio

from textlint_client.core.editor import CallbackDisposable, WillSaveEvent, WillSaveHook
from textlint_client.core.types import (
    FileChangeType,
    FileEvent,
    Position,
    SaveReason,
    TextEdit,
)

logger = logging.getLogger(__name__)

WILL_SAVE_TIMEOUT = 1.5
_LINE_BREAK = re.compile(r"\r\n|\r|\n")


class EditConflictError(ValueError):
    pass


class TextDocument:
    """Text buffer with a version bumped once per change or edit batch.

    Positions follow LSP: only LF, CRLF and CR end a line and characters
    count UTF-16 code units.
    """

    def __init__(self, uri: str, language_id: str, text: str, version: int = 1, path: Path | None = None) -> None:
        self.uri = uri
        self.language_id = language_id
        self.text = text
        self.version = version
        self.path = path
        self.dirty = False

    def offset_at(self, position: Position) -> int:
        line_start = 0
        for _ in range(position.line):
            match = _LINE_BREAK.search(self.text, line_start)
            if match is None:
                return len(self.text)
            line_start = match.end()

        match = _LINE_BREAK.search(self.text, line_start)
        line_end = match.start() if match else len(self.text)

        offset = line_start
        units = 0
        while offset < line_end and units < position.character:
            units += 2 if ord(self.text[offset]) > 0xFFFF else 1
            offset += 1
        return offset

    def replace_text(self, text: str) -> None:
        self.text = text
        self.version += 1
        self.dirty = True

    def apply(self, edits: Sequence[TextEdit]) -> None:
        """Apply every edit against the current text as one batch.

        Overlapping ranges reject the whole batch and leave the text untouched.
        """
        if not edits:
            return

        spans = sorted(
            (
                (self.offset_at(edit.range.start), self.offset_at(edit.range.end), edit.new_text)
                for edit in edits
            ),
            key=lambda span: (span[0], span[1]),
        )
        for (start, end, _), (next_start, _, _) in zip(spans, spans[1:]):
            if end > next_start:
                raise EditConflictError(f"Overlapping edits at offset {next_start} in {self.uri}")

        text = self.text
        for start, end, new_text in reversed(spans):
            if start > end:
                raise EditConflictError(f"Edit range end precedes start at offset {start} in {self.uri}")
            text = text[:start] + new_text + text[end:]
        self.replace_text(text)


class DocumentEventKind(StrEnum):
    OPEN = auto()
    CHANGE = auto()
    SAVE = auto()
    CLOSE = auto()


@dataclass(frozen=True)
class DocumentEvent:
    kind: DocumentEventKind
    document: TextDocument


DocumentListener = Callable[[DocumentEvent], None]
FileListener = Callable[[FileEvent], None]


class Workspace:
    """In-memory editor: open documents, one active document, will-save hooks."""

    def __init__(self, root: Path | None = None) -> None:
        self.root = root
        self.documents: dict[str, TextDocument] = {}
        self.active_uri: str | None = None
        self.information_messages: list[str] = []
        self.error_messages: list[str] = []
        self._will_save_hooks: list[WillSaveHook] = []
        self._listeners: list[DocumentListener] = []
        self._file_listeners: list[FileListener] = []

    def get(self, uri: str) -> TextDocument | None:
        return self.documents.get(uri)

    def open_document(self, uri: str, language_id: str, text: str, *, path: Path | None = None) -> TextDocument:
        document = TextDocument(uri, language_id, text, path=path)
        self.documents[uri] = document
        self.active_uri = uri
        self._emit(DocumentEventKind.OPEN, document)
        return document

    async def open_file(self, path: Path, language_id: str) -> TextDocument:
        text = await anyio.Path(path).read_text(encoding="utf-8")
        resolved = path.resolve()
        return self.open_document(resolved.as_uri(), language_id, text, path=resolved)

    def change_document(self, uri: str, text: str) -> TextDocument:
        document = self._require(uri)
        document.replace_text(text)
        self._emit(DocumentEventKind.CHANGE, document)
        return document

    def close_document(self, uri: str) -> None:
        document = self.documents.pop(uri, None)
        if document is None:
            return
        if self.active_uri == uri:
            self.active_uri = None
        self._emit(DocumentEventKind.CLOSE, document)

    def focus(self, uri: str | None) -> None:
        if uri is not None:
            self._require(uri)
        self.active_uri = uri

    def current_version(self, uri: str) -> int | None:
        document = self.documents.get(uri)
        return document.version if document else None

    def language_id(self, uri: str) -> str | None:
        document = self.documents.get(uri)
        return document.language_id if document else None

    def active_document(self) -> str | None:
        return self.active_uri

    async def apply_edits(self, uri: str, edits: Sequence[TextEdit]) -> bool:
        document = self.documents.get(uri)
        if document is None:
            return False
        try:
            document.apply(edits)
        except EditConflictError as e:
            logger.warning(f"Rejected edit batch: {e}")
            return False
        self._emit(DocumentEventKind.CHANGE, document)
        return True

    def on_will_save(self, hook: WillSaveHook) -> CallbackDisposable:
        self._will_save_hooks.append(hook)

        def remove() -> None:
            if hook in self._will_save_hooks:
                self._will_save_hooks.remove(hook)

        return CallbackDisposable(remove)

    @property
    def will_save_hook_count(self) -> int:
        return len(self._will_save_hooks)

    def on_document_event(self, listener: DocumentListener) -> CallbackDisposable:
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return CallbackDisposable(remove)

    def on_file_event(self, listener: FileListener) -> CallbackDisposable:
        self._file_listeners.append(listener)

        def remove() -> None:
            if listener in self._file_listeners:
                self._file_listeners.remove(listener)

        return CallbackDisposable(remove)

    def notify_file_changed(self, path: Path, change_type: FileChangeType = FileChangeType.CHANGED) -> None:
        event = FileEvent(uri=path.resolve().as_uri(), type=change_type)
        for listener in list(self._file_listeners):
            try:
                listener(event)
            except Exception as e:
                logger.error(f"File listener failed: {e}", exc_info=True)

    async def save(self, uri: str, reason: SaveReason = SaveReason.MANUAL) -> TextDocument:
        """Run will-save hooks, apply the edits they produce, then write the file."""
        document = self._require(uri)
        event = WillSaveEvent(uri, document.language_id, document.version, reason)
        for hook in list(self._will_save_hooks):
            try:
                hook(event)
            except Exception as e:
                logger.error(f"Will-save hook failed for {uri}: {e}", exc_info=True)

        for pending in event.pending:
            try:
                edits = await asyncio.wait_for(pending, timeout=WILL_SAVE_TIMEOUT)
            except TimeoutError:
                logger.warning(f"Will-save participant timed out for {uri}")
                continue
            except Exception as e:
                logger.error(f"Will-save participant failed for {uri}: {e}", exc_info=True)
                continue
            if edits:
                await self.apply_edits(uri, edits)

        if document.path is not None:
            await anyio.Path(document.path).write_text(document.text, encoding="utf-8")
        document.dirty = False
        self._emit(DocumentEventKind.SAVE, document)
        if document.path is not None:
            self.notify_file_changed(document.path)
        return document

    def show_information_message(self, message: str) -> None:
        logger.info(message)
        self.information_messages.append(message)

    def show_error_message(self, message: str) -> None:
        logger.error(message)
        self.error_messages.append(message)

    def _require(self, uri: str) -> TextDocument:
        document = self.documents.get(uri)
        if document is None:
            raise KeyError(f"Document is not open: {uri}")
        return document

    def _emit(self, kind: DocumentEventKind, document: TextDocument) -> None:
        event = DocumentEvent(kind, document)
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception as e:
                logger.error(f"Document listener failed: {e}", exc_info=True)

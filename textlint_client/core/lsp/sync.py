from __future__ import annotations

import asyncio
from collections.abc import Iterable
import logging
from pathlib import PurePosixPath
from urllib.parse import unquote, urlparse

from textlint_client.core.documents import DocumentEvent, DocumentEventKind, TextDocument
from textlint_client.core.lsp.connection import LintConnection
from textlint_client.core.lsp.errors import LSPError
from textlint_client.core.lsp.protocol import DID_CHANGE_WATCHED_FILES
from textlint_client.core.types import DocumentRef, FileEvent

logger = logging.getLogger(__name__)

WATCHED_FILE_NAMES = frozenset(
    {
        "package.json",
        ".textlintrc",
        ".textlintrc.js",
        ".textlintrc.json",
        ".textlintrc.yml",
        ".textlintrc.yaml",
    }
)

_METHODS = {
    DocumentEventKind.OPEN: "textDocument/didOpen",
    DocumentEventKind.CHANGE: "textDocument/didChange",
    DocumentEventKind.SAVE: "textDocument/didSave",
    DocumentEventKind.CLOSE: "textDocument/didClose",
}


class DocumentSynchronizer:
    """Mirrors open documents of the supported languages to the server.

    Notifications are queued and sent in event order by one worker task.
    """

    def __init__(self, connection: LintConnection, languages: Iterable[str]) -> None:
        self.connection = connection
        self.languages = frozenset(languages)
        self._queue: asyncio.Queue[tuple[str, dict]] = asyncio.Queue()
        self._worker: asyncio.Task[None] | None = None

    def __call__(self, event: DocumentEvent) -> None:
        document = event.document
        if document.language_id not in self.languages:
            return

        identifier = {"uri": document.uri}
        match event.kind:
            case DocumentEventKind.OPEN:
                params = {
                    "textDocument": {
                        **identifier,
                        "languageId": document.language_id,
                        "version": document.version,
                        "text": document.text,
                    }
                }
            case DocumentEventKind.CHANGE:
                params = {
                    "textDocument": DocumentRef(uri=document.uri, version=document.version).to_wire(),
                    "contentChanges": [{"text": document.text}],
                }
            case DocumentEventKind.SAVE | DocumentEventKind.CLOSE:
                params = {"textDocument": identifier}

        self._enqueue(_METHODS[event.kind], params)

    def open(self, document: TextDocument) -> None:
        self(DocumentEvent(DocumentEventKind.OPEN, document))

    def file_changed(self, event: FileEvent) -> None:
        """Forward changes to textlint configuration files and package.json."""
        if not is_watched_file(event.uri):
            return
        self._enqueue(DID_CHANGE_WATCHED_FILES, {"changes": [event.to_wire()]})

    def _enqueue(self, method: str, params: dict) -> None:
        self._queue.put_nowait((method, params))
        if self._worker is None or self._worker.done():
            self._worker = asyncio.create_task(self._drain())

    async def flush(self) -> None:
        await self._queue.join()

    async def _drain(self) -> None:
        while not self._queue.empty():
            method, params = await self._queue.get()
            try:
                await self.connection.send_notification(method, params)
            except LSPError as e:
                logger.debug(f"Dropping {method}: {e}")
            finally:
                self._queue.task_done()

    def dispose(self) -> None:
        if self._worker is not None:
            self._worker.cancel()
            self._worker = None


def is_watched_file(uri: str) -> bool:
    return PurePosixPath(unquote(urlparse(uri).path)).name in WATCHED_FILE_NAMES

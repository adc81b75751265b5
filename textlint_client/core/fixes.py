from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Callable, Sequence
from contextlib import asynccontextmanager
import logging
from typing import Protocol

from textlint_client.core.editor import DocumentSurface, MessagePort
from textlint_client.core.lsp.errors import LSPError
from textlint_client.core.lsp.protocol import (
    ALL_FIXES_REQUEST,
    all_fixes_params,
    decode_all_fixes_result,
)
from textlint_client.core.lsp.types import LSPRequestParams, LSPResponse
from textlint_client.core.output import OutputChannel
from textlint_client.core.types import FixOutcome, FixResult, TextEdit

logger = logging.getLogger(__name__)

AllFixesCompleteObserver = Callable[[str, Sequence[TextEdit], bool], None]


class FixRequester(Protocol):
    async def send_request(self, method: str, params: LSPRequestParams | None = None) -> LSPResponse: ...


class VersionedFixWorkflow:
    """Requests all auto-fixes for a document and applies them if still current.

    A fix batch targets the document version the server saw. The current
    version is re-read after the reply arrives and immediately before the
    document is mutated, so edits never land on text they were not computed
    for. Completion observers run once per apply attempt, in registration
    order.
    """

    def __init__(
        self,
        connection: FixRequester,
        documents: DocumentSurface,
        messages: MessagePort,
        output: OutputChannel,
    ) -> None:
        self.connection = connection
        self.documents = documents
        self.messages = messages
        self.output = output
        self._observers: list[AllFixesCompleteObserver] = []
        self._locks: dict[str, asyncio.Lock] = {}
        self._lock_users: dict[str, int] = {}

    def on_all_fixes_complete(self, observer: AllFixesCompleteObserver) -> Callable[[], None]:
        self._observers.append(observer)

        def remove() -> None:
            if observer in self._observers:
                self._observers.remove(observer)

        return remove

    async def request_fixes(self, uri: str) -> FixResult | None:
        """Ask the server for every fix of ``uri``. Transport failures propagate."""
        response = await self.connection.send_request(ALL_FIXES_REQUEST, all_fixes_params(uri))
        return decode_all_fixes_result(response)

    async def execute_autofix(self) -> FixOutcome | None:
        uri = self.documents.active_document()
        if uri is None:
            return None
        return await self.fix_document(uri)

    async def fix_document(self, uri: str) -> FixOutcome | None:
        async with self._exclusive(uri):
            try:
                result = await self.request_fixes(uri)
            except (LSPError, TimeoutError, ValueError) as e:
                self.output.error("Failed to apply textlint fixes to the document.", e)
                return None

            if result is None:
                return None
            return await self._apply(uri, result.document_version, result.edits)

    async def apply_text_edits(self, uri: str, document_version: int, edits: Sequence[TextEdit]) -> FixOutcome:
        async with self._exclusive(uri):
            return await self._apply(uri, document_version, edits)

    async def compute_save_edits(self, uri: str, version: int) -> list[TextEdit]:
        """Fixes to fold into a save of ``uri`` at ``version``; empty when stale or failed."""
        async with self._exclusive(uri):
            try:
                result = await self.request_fixes(uri)
            except (LSPError, TimeoutError, ValueError) as e:
                self.output.error("Failed to compute textlint fixes on save.", e)
                return []

        if result is None or result.document_version != version:
            return []
        return list(result.edits)

    async def _apply(self, uri: str, document_version: int, edits: Sequence[TextEdit]) -> FixOutcome:
        current_version = self.documents.current_version(uri)
        if current_version != document_version:
            self.messages.show_information_message(
                f"textlint fixes are outdated and can't be applied to {uri}"
            )
            self._notify(uri, [], True)
            return FixOutcome.STALE

        if self.documents.active_document() != uri:
            self.output.error(f"Can't apply textlint fixes: {uri} is no longer the active document.")
            self._notify(uri, edits, False)
            return FixOutcome.FAILED

        try:
            ok = await self.documents.apply_edits(uri, edits)
        except Exception as e:
            self.output.error(f"Failed to apply textlint fixes to {uri}.", e)
            self._notify(uri, edits, False)
            return FixOutcome.FAILED

        if not ok:
            self.output.error(f"Failed to apply textlint fixes to {uri}.")
            self._notify(uri, edits, False)
            return FixOutcome.FAILED

        self.output.info("AllFixesComplete")
        self._notify(uri, edits, True)
        return FixOutcome.APPLIED

    def _notify(self, uri: str, edits: Sequence[TextEdit], ok: bool) -> None:
        for observer in list(self._observers):
            try:
                observer(uri, edits, ok)
            except Exception as e:
                logger.error(f"All-fixes observer failed: {e}", exc_info=True)

    @asynccontextmanager
    async def _exclusive(self, uri: str) -> AsyncIterator[None]:
        """Serialize work on ``uri``; the lock is dropped once nobody holds or awaits it."""
        lock = self._locks.get(uri)
        if lock is None:
            lock = self._locks[uri] = asyncio.Lock()
        self._lock_users[uri] = self._lock_users.get(uri, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[uri] -= 1
            if not self._lock_users[uri]:
                del self._lock_users[uri]
                del self._locks[uri]

    @property
    def busy_documents(self) -> list[str]:
        return list(self._locks)

from __future__ import annotations

from textlint_client.core.lsp.client import LSPClient
from textlint_client.core.lsp.connection import LintConnection, ReadyHandle
from textlint_client.core.lsp.error_handler import (
    CloseAction,
    DefaultErrorHandler,
    ErrorAction,
)
from textlint_client.core.lsp.errors import (
    ConnectionClosedError,
    InitializationFailedError,
    LSPError,
    LSPRequestError,
)
from textlint_client.core.lsp.router import NotificationRouter
from textlint_client.core.lsp.server import TextlintServer

__all__ = [
    "LSPClient",
    "LintConnection",
    "ReadyHandle",
    "CloseAction",
    "DefaultErrorHandler",
    "ErrorAction",
    "ConnectionClosedError",
    "InitializationFailedError",
    "LSPError",
    "LSPRequestError",
    "NotificationRouter",
    "TextlintServer",
]

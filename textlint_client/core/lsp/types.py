from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any, Protocol, TypedDict

if TYPE_CHECKING:
    from textlint_client.core.lsp.server import TextlintServer

# Type aliases for LSP protocol messages
LSPRequestParams = dict[str, Any]
LSPNotificationParams = dict[str, Any]
LSPResponse = Any
LSPMessage = dict[str, Any]


class LSPServerHandle(TypedDict):
    command: list[str]
    initialization: dict[str, object] | None


class LSPTransportListener(Protocol):
    """Receives server-pushed traffic from a transport, one message at a time."""

    def handle_notification(self, method: str, params: LSPNotificationParams | None) -> None: ...
    def handle_error(self, error: BaseException, message: LSPMessage | None, count: int) -> None: ...
    def handle_close(self) -> None: ...


class LSPTransport(Protocol):
    async def start(self) -> None: ...
    async def send_request(self, method: str, params: LSPRequestParams | None = None) -> LSPResponse: ...
    async def send_notification(self, method: str, params: LSPNotificationParams | None = None) -> None: ...
    async def initialize(self, init_params: LSPRequestParams | None = None) -> LSPResponse: ...
    async def initialized(self) -> None: ...
    async def shutdown(self) -> LSPResponse: ...
    async def exit(self) -> None: ...
    async def close(self) -> None: ...


TransportFactory = Callable[["TextlintServer", LSPTransportListener], Awaitable[LSPTransport]]

from __future__ import annotations

from typing import Any


class LSPError(RuntimeError):
    pass


class LSPRequestError(LSPError):
    def __init__(self, method: str, code: int, message: str, data: Any = None) -> None:
        super().__init__(f"Request {method} failed with code {code}: {message}")
        self.method = method
        self.code = code
        self.message = message
        self.data = data


class ConnectionClosedError(LSPError):
    def __init__(self, reason: str = "Connection to server got closed") -> None:
        super().__init__(reason)
        self.reason = reason


class InitializationFailedError(LSPError):
    def __init__(self, cause: BaseException) -> None:
        super().__init__(f"Server initialization failed: {cause}")
        self.cause = cause

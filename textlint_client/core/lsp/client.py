from __future__ import annotations

import asyncio
import json
import logging
import re
import time
from typing import Any

from textlint_client.core.lsp.errors import ConnectionClosedError, LSPRequestError
from textlint_client.core.lsp.types import (
    LSPMessage,
    LSPNotificationParams,
    LSPRequestParams,
    LSPResponse,
    LSPTransportListener,
)
from textlint_client.core.output import OutputChannel
from textlint_client.core.types import TraceLevel

logger = logging.getLogger(__name__)

DEFAULT_REQUEST_TIMEOUT = 30.0
_INTERNAL_ERROR = -32603
_CONTENT_LENGTH = re.compile(rb"Content-Length:\s*(\d+)", re.IGNORECASE)


class _PendingRequest:
    def __init__(self, method: str, future: asyncio.Future[LSPResponse]) -> None:
        self.method = method
        self.future = future
        self.started = time.monotonic()


class LSPClient:
    """JSON-RPC transport to a language server speaking over stdio."""

    def __init__(
        self,
        process: asyncio.subprocess.Process,
        listener: LSPTransportListener,
        *,
        trace: TraceLevel = TraceLevel.OFF,
        output: OutputChannel | None = None,
        request_timeout: float = DEFAULT_REQUEST_TIMEOUT,
    ) -> None:
        self.process = process
        self.stdin = process.stdin
        self.stdout = process.stdout
        self.stderr = process.stderr
        self.listener = listener
        self.trace = trace
        self.output = output
        self.request_timeout = request_timeout
        self.message_id = 0
        self.pending_requests: dict[int, _PendingRequest] = {}
        self.error_count = 0
        self._tasks: list[asyncio.Task[None]] = []
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def _check_server_alive(self) -> bool:
        """Check if the LSP server process is still alive."""
        if self._closed:
            return False

        if self.process.returncode is not None:
            logger.debug(f"LSP server process exited with code: {self.process.returncode}")
            return False

        return True

    async def _write(self, message: LSPMessage) -> None:
        if not self._check_server_alive() or self.stdin is None:
            raise ConnectionClosedError()

        body = json.dumps(message).encode("utf-8")
        # Content-Length counts bytes, not characters
        self.stdin.write(f"Content-Length: {len(body)}\r\n\r\n".encode("ascii") + body)
        try:
            await self.stdin.drain()
        except (ConnectionError, BrokenPipeError) as e:
            raise ConnectionClosedError(f"Failed to write to server: {e}") from e

    async def send_request(self, method: str, params: LSPRequestParams | None = None) -> LSPResponse:
        self.message_id += 1
        request_id = self.message_id

        request: LSPMessage = {
            "jsonrpc": "2.0",
            "id": request_id,
            "method": method,
        }
        if params is not None:
            request["params"] = params

        future: asyncio.Future[LSPResponse] = asyncio.get_running_loop().create_future()
        self.pending_requests[request_id] = _PendingRequest(method, future)

        logger.debug(f"LSP Request: {method} with params: {params}")
        self._trace(f"Sending request '{method} - ({request_id})'.", params)

        try:
            await self._write(request)
            return await asyncio.wait_for(future, timeout=self.request_timeout)
        except TimeoutError:
            logger.debug(f"LSP Request {method} timed out")
            raise
        finally:
            self.pending_requests.pop(request_id, None)

    async def send_notification(self, method: str, params: LSPNotificationParams | None = None) -> None:
        notification: LSPMessage = {
            "jsonrpc": "2.0",
            "method": method,
        }
        if params is not None:
            notification["params"] = params

        logger.debug(f"LSP Notification: {method} with params: {params}")
        self._trace(f"Sending notification '{method}'.", params)
        await self._write(notification)

    async def initialize(self, init_params: LSPRequestParams | None = None) -> LSPResponse:
        capabilities: LSPRequestParams = {
            "workspace": {
                "configuration": False,
                "didChangeConfiguration": {"dynamicRegistration": False},
                "didChangeWatchedFiles": {"dynamicRegistration": False},
            },
            "textDocument": {
                "synchronization": {
                    "dynamicRegistration": False,
                    "willSave": False,
                    "willSaveWaitUntil": False,
                    "didSave": True,
                },
                "publishDiagnostics": {"relatedInformation": True},
            },
        }

        params: LSPRequestParams = {
            "processId": None,
            "rootUri": None,
            "capabilities": capabilities,
            "trace": self.trace.value,
        }

        if init_params:
            params.update(init_params)

        return await self.send_request("initialize", params)

    async def initialized(self) -> None:
        await self.send_notification("initialized", {})

    async def shutdown(self) -> LSPResponse:
        return await self.send_request("shutdown")

    async def exit(self) -> None:
        await self.send_notification("exit")

    async def _handle_message(self, message: LSPMessage) -> None:
        method = message.get("method")
        if method is not None and "id" in message:
            await self._handle_server_request(message)
            return

        if method is not None:
            self._trace(f"Received notification '{method}'.", message.get("params"))
            self.listener.handle_notification(method, message.get("params"))
            return

        request_id = message.get("id")
        pending = self.pending_requests.get(request_id) if isinstance(request_id, int) else None
        if pending is None:
            logger.debug(f"LSP Response for unknown request ID {request_id}")
            return

        elapsed_ms = int((time.monotonic() - pending.started) * 1000)
        if "error" in message:
            error = message.get("error")
            logger.debug(f"LSP Request {request_id} returned error: {error}")
            if not isinstance(error, dict):
                malformed = ValueError(f"Malformed error in response to request {request_id}: {error!r}")
                if not pending.future.done():
                    pending.future.set_exception(LSPRequestError(pending.method, _INTERNAL_ERROR, str(malformed)))
                self._handle_protocol_error(malformed, message)
                return

            code = error.get("code")
            self._trace(
                f"Received response '{pending.method} - ({request_id})' in {elapsed_ms}ms. Request failed: {error.get('message')}",
                error.get("data"),
            )
            if not pending.future.done():
                pending.future.set_exception(
                    LSPRequestError(
                        pending.method,
                        code if isinstance(code, int) else _INTERNAL_ERROR,
                        str(error.get("message", "Unknown error")),
                        error.get("data"),
                    )
                )
        else:
            result = message.get("result")
            self._trace(f"Received response '{pending.method} - ({request_id})' in {elapsed_ms}ms.", result)
            if not pending.future.done():
                pending.future.set_result(result)

    async def _handle_server_request(self, message: LSPMessage) -> None:
        method = message["method"]
        self._trace(f"Received request '{method} - ({message['id']})'.", message.get("params"))
        result: Any = None
        if method == "workspace/configuration":
            items = (message.get("params") or {}).get("items", [])
            result = [None for _ in items]
        try:
            await self._write({"jsonrpc": "2.0", "id": message["id"], "result": result})
        except ConnectionClosedError:
            logger.debug(f"Could not answer server request {method}: connection closed")

    def _handle_protocol_error(self, error: BaseException, message: LSPMessage | None) -> None:
        self.error_count += 1
        logger.warning(f"LSP protocol error ({self.error_count}): {error}")
        self.listener.handle_error(error, message, self.error_count)

    async def _read_messages(self) -> None:
        # Read messages from server with Content-Length headers
        buffer = b""

        logger.debug("LSP Client: Starting message reader")

        try:
            while self.stdout is not None:
                chunk = await self.stdout.read(4096)
                if not chunk:
                    logger.debug("LSP Client: No more data from server, stopping reader")
                    break

                buffer += chunk
                buffer = await self._process_buffer(buffer)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.debug(f"LSP Client: Error reading from stdout: {e}")
        finally:
            self._notify_closed()

    async def _process_buffer(self, buffer: bytes) -> bytes:
        """Handle every complete message in ``buffer`` and return the unconsumed tail."""
        while buffer:
            extracted = self._extract_message_from_buffer(buffer)
            if extracted is None:
                break

            content, buffer = extracted
            if content is None:
                continue

            try:
                message = json.loads(content.decode("utf-8"))
            except (json.JSONDecodeError, UnicodeDecodeError) as e:
                logger.debug(f"Raw message content: {content[:500]!r}")
                self._handle_protocol_error(e, None)
                continue

            if not isinstance(message, dict):
                self._handle_protocol_error(ValueError("LSP message is not an object"), None)
                continue

            try:
                await self._handle_message(message)
            except Exception as e:
                self._handle_protocol_error(e, message)
        return buffer

    def _extract_message_from_buffer(self, buffer: bytes) -> tuple[bytes | None, bytes] | None:
        """Split one frame off ``buffer``.

        Returns None when the frame is incomplete, ``(None, rest)`` when a
        header without Content-Length was dropped.
        """
        header_end = buffer.find(b"\r\n\r\n")
        if header_end == -1:
            return None

        header = buffer[:header_end]
        body_start = header_end + 4
        match = _CONTENT_LENGTH.search(header)
        if not match:
            self._handle_protocol_error(ValueError(f"Header must provide a Content-Length property: {header!r}"), None)
            return None, buffer[body_start:]

        content_length = int(match.group(1))
        total_message_length = body_start + content_length
        if len(buffer) < total_message_length:
            return None

        return buffer[body_start:total_message_length], buffer[total_message_length:]

    async def _monitor_server_process(self) -> None:
        """Monitor the server process and detect when it exits."""
        logger.debug("LSP Client: Starting server process monitor")
        await self.process.wait()
        logger.debug(f"LSP Client: Server process exited with code: {self.process.returncode}")
        self._notify_closed()

    async def _read_stderr(self) -> None:
        """Read stderr from the LSP server and log it as debug information."""
        if not self.stderr:
            logger.debug("LSP Client: No stderr available")
            return

        while True:
            line = await self.stderr.readline()
            if not line:
                break

            line_str = line.decode("utf-8", errors="replace").strip()
            if line_str:
                logger.debug(f"LSP Server stderr: {line_str}")

    def _notify_closed(self) -> None:
        if self._closed:
            return
        self._closed = True

        for pending in list(self.pending_requests.values()):
            if not pending.future.done():
                pending.future.set_exception(ConnectionClosedError())
        self.pending_requests.clear()

        self.listener.handle_close()

    def _trace(self, message: str, data: Any = None) -> None:
        if self.trace is TraceLevel.OFF or self.output is None:
            return
        stamp = time.strftime("%H:%M:%S")
        payload = data if self.trace is TraceLevel.VERBOSE else None
        self.output.info(f"[Trace - {stamp}] {message}", payload)

    async def start(self) -> None:
        logger.debug("LSP Client: Starting server communication")

        self._tasks = [
            asyncio.create_task(self._monitor_server_process()),
            asyncio.create_task(self._read_stderr()),
            asyncio.create_task(self._read_messages()),
        ]

    async def close(self) -> None:
        """Tear the transport down without reporting it as an unexpected closure."""
        self._closed = True
        for pending in list(self.pending_requests.values()):
            if not pending.future.done():
                pending.future.set_exception(ConnectionClosedError())
        self.pending_requests.clear()

        if self.process.returncode is None:
            try:
                self.process.terminate()
                await asyncio.wait_for(self.process.wait(), timeout=5.0)
            except ProcessLookupError:
                pass
            except TimeoutError:
                self.process.kill()

        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []

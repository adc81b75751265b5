from __future__ import annotations

import asyncio
from collections.abc import Callable, Coroutine
import logging
from pathlib import Path
from typing import Any

from textlint_client.core.config import SettingsStore, TextlintSettings
from textlint_client.core.lsp.client import LSPClient
from textlint_client.core.lsp.error_handler import (
    CloseAction,
    DefaultErrorHandler,
    ErrorAction,
    ErrorHandler,
)
from textlint_client.core.lsp.errors import (
    ConnectionClosedError,
    InitializationFailedError,
    LSPError,
)
from textlint_client.core.lsp.protocol import DID_CHANGE_CONFIGURATION
from textlint_client.core.lsp.server import TextlintServer
from textlint_client.core.lsp.types import (
    LSPMessage,
    LSPNotificationParams,
    LSPRequestParams,
    LSPResponse,
    LSPServerHandle,
    LSPTransport,
    LSPTransportListener,
    TransportFactory,
)
from textlint_client.core.output import OutputChannel
from textlint_client.core.types import CONFIGURATION_SECTION, ConnectionState

logger = logging.getLogger(__name__)

StateChangeHandler = Callable[[ConnectionState, ConnectionState], None]
NotificationHandler = Callable[[str, LSPNotificationParams | None], None]

SHUTDOWN_TIMEOUT = 2.0


def decide_close_action(server_called_process_exit: bool, error_handler: ErrorHandler) -> CloseAction:
    """A server that announced its own exit is never restarted."""
    if server_called_process_exit:
        return CloseAction.DO_NOT_RESTART
    return error_handler.closed()


class ReadyHandle:
    def __init__(self, connection: LintConnection, ready: asyncio.Future[None]) -> None:
        self._connection = connection
        self._ready = ready

    @property
    def done(self) -> bool:
        return self._ready.done()

    async def ready(self) -> None:
        await asyncio.shield(self._ready)

    async def dispose(self) -> None:
        await self._connection.stop()


class LintConnection:
    """Owns the server process and the only writable copy of its ConnectionState."""

    def __init__(
        self,
        settings: SettingsStore,
        output: OutputChannel,
        *,
        root: Path | None = None,
        transport_factory: TransportFactory | None = None,
        error_handler: ErrorHandler | None = None,
    ) -> None:
        self.name = TextlintServer.name
        self.settings = settings
        self.output = output
        self.root = root
        self.server_called_process_exit = False
        self.error_handler: ErrorHandler = error_handler or DefaultErrorHandler(self.name, output)
        self.handle: LSPServerHandle | None = None
        self._transport_factory = transport_factory or self._spawn_transport
        self._transport: LSPTransport | None = None
        self._state = ConnectionState.STOPPED
        self._state_handlers: list[StateChangeHandler] = []
        self._notification_handlers: list[NotificationHandler] = []
        self._ready: asyncio.Future[None] | None = None
        self._ready_handle: ReadyHandle | None = None
        self._restart_task: asyncio.Task[None] | None = None
        self._stopping = False
        self._background: set[asyncio.Task[Any]] = set()

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._state is ConnectionState.RUNNING

    def on_state_change(self, handler: StateChangeHandler) -> Callable[[], None]:
        self._state_handlers.append(handler)
        return lambda: self._remove(self._state_handlers, handler)

    def on_notification(self, handler: NotificationHandler) -> Callable[[], None]:
        self._notification_handlers.append(handler)
        return lambda: self._remove(self._notification_handlers, handler)

    def mark_server_exit(self) -> None:
        if not self.server_called_process_exit:
            logger.info("textlint server announced its exit")
        self.server_called_process_exit = True

    def start(self) -> ReadyHandle:
        if self._ready_handle is not None:
            return self._ready_handle

        self._ready = asyncio.get_running_loop().create_future()
        self._ready.add_done_callback(_consume_exception)
        self._ready_handle = ReadyHandle(self, self._ready)
        self._set_state(ConnectionState.STARTING)
        self._restart_task = asyncio.create_task(self._launch_and_resolve())
        return self._ready_handle

    async def on_ready(self) -> None:
        if self._ready_handle is None:
            raise ConnectionClosedError(f"{self.name} client has not been started")
        await self._ready_handle.ready()

    async def stop(self) -> None:
        self._stopping = True
        try:
            if self._restart_task is not None and not self._restart_task.done():
                self._restart_task.cancel()
                await asyncio.gather(self._restart_task, return_exceptions=True)

            transport, self._transport = self._transport, None
            if transport is not None:
                try:
                    await asyncio.wait_for(transport.shutdown(), timeout=SHUTDOWN_TIMEOUT)
                    await transport.exit()
                except (LSPError, TimeoutError) as e:
                    logger.warning(f"Error shutting down {self.name} server: {e}")
                finally:
                    await transport.close()

            if self._ready is not None and not self._ready.done():
                self._ready.set_exception(ConnectionClosedError(f"{self.name} client was stopped"))
            self._ready_handle = None
            self.handle = None
            self._set_state(ConnectionState.STOPPED)
        finally:
            self._stopping = False

    async def send_request(self, method: str, params: LSPRequestParams | None = None) -> LSPResponse:
        if self._transport is None or not self.is_running:
            raise ConnectionClosedError(f"{self.name} client is not running")
        return await self._transport.send_request(method, params)

    async def send_notification(self, method: str, params: LSPNotificationParams | None = None) -> None:
        if self._transport is None or not self.is_running:
            raise ConnectionClosedError(f"{self.name} client is not running")
        await self._transport.send_notification(method, params)

    async def notify_configuration_changed(self, settings: TextlintSettings) -> None:
        if not self.is_running:
            return
        await self.send_notification(
            DID_CHANGE_CONFIGURATION,
            {"settings": {CONFIGURATION_SECTION: settings.to_wire()}},
        )

    def handle_notification(self, method: str, params: LSPNotificationParams | None) -> None:
        for handler in list(self._notification_handlers):
            try:
                handler(method, params)
            except Exception as e:
                self.output.error(f"Notification handler '{method}' failed.", e)

    def handle_error(self, error: BaseException, message: LSPMessage | None, count: int) -> None:
        action = self.error_handler.error(error, message, count)
        if action is ErrorAction.SHUTDOWN:
            self.output.error(
                f"Client {self.name}: connection to server is erroring. Shutting down server.",
                error,
            )
            self._spawn(self.stop())

    def handle_close(self) -> None:
        # A launch in progress reports its own failure
        if self._stopping or self._state is not ConnectionState.RUNNING:
            return

        transport, self._transport = self._transport, None
        self._set_state(ConnectionState.STOPPED)
        if transport is not None:
            self._spawn(transport.close())

        action = decide_close_action(self.server_called_process_exit, self.error_handler)
        if action is CloseAction.DO_NOT_RESTART:
            self.output.error("Connection to server got closed. Server will not be restarted.")
            return

        self.output.error("Connection to server got closed. Server will restart.")
        self._set_state(ConnectionState.STARTING)
        self._restart_task = asyncio.create_task(self._restart())

    async def _launch_and_resolve(self) -> None:
        assert self._ready is not None
        try:
            await self._launch()
        except InitializationFailedError as e:
            if not self._ready.done():
                self._ready.set_exception(e)
            return
        if not self._ready.done():
            self._ready.set_result(None)

    async def _restart(self) -> None:
        try:
            await self._launch()
        except InitializationFailedError:
            logger.warning(f"Restarting {self.name} server failed")
            return
        if self._ready is not None and not self._ready.done():
            self._ready.set_result(None)

    async def _launch(self) -> None:
        server = TextlintServer(self.settings.settings)
        command = server.get_command()
        logger.info(f"Starting {self.name} server: {command}")

        transport: LSPTransport | None = None
        try:
            transport = await self._transport_factory(server, self)
            self._transport = transport
            await transport.start()
            initialization = await transport.initialize(server.get_initialization_params(self.root))
            await transport.initialized()
        except asyncio.CancelledError:
            if transport is not None:
                await transport.close()
            self._transport = None
            raise
        except Exception as e:
            self.output.error("Server initialization failed.", e)
            if transport is not None:
                await transport.close()
            self._transport = None
            self._set_state(ConnectionState.STOPPED)
            raise InitializationFailedError(e) from e

        self.handle = {
            "command": command,
            "initialization": initialization if isinstance(initialization, dict) else None,
        }
        logger.info(f"{self.name} server started successfully")
        self._set_state(ConnectionState.RUNNING)

    async def _spawn_transport(
        self, server: TextlintServer, listener: LSPTransportListener
    ) -> LSPTransport:
        process = await asyncio.create_subprocess_exec(
            *server.get_command(),
            stdin=asyncio.subprocess.PIPE,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            env=server.get_env(),
            cwd=self.root,
        )
        return LSPClient(
            process,
            listener,
            trace=self.settings.settings.trace,
            output=self.output,
        )

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> asyncio.Task[None]:
        task = asyncio.create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    def _set_state(self, new_state: ConnectionState) -> None:
        old_state = self._state
        if old_state is new_state:
            return
        self._state = new_state
        logger.debug(f"{self.name} client state: {old_state} -> {new_state}")
        for handler in list(self._state_handlers):
            try:
                handler(old_state, new_state)
            except Exception as e:
                logger.error(f"State change handler failed: {e}", exc_info=True)

    @staticmethod
    def _remove(handlers: list[Any], handler: Any) -> None:
        if handler in handlers:
            handlers.remove(handler)


def _consume_exception(future: asyncio.Future[None]) -> None:
    if not future.cancelled():
        future.exception()

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
import json
import logging
from pathlib import Path
from typing import Any

from textlint_client.core.autofix import AutoFixOnSavePolicy
from textlint_client.core.config import SettingsStore, TextlintSettings
from textlint_client.core.documents import Workspace
from textlint_client.core.editor import Disposable
from textlint_client.core.fixes import AllFixesCompleteObserver, VersionedFixWorkflow
from textlint_client.core.lsp.connection import LintConnection
from textlint_client.core.lsp.errors import LSPError
from textlint_client.core.lsp.router import NotificationRouter
from textlint_client.core.lsp.sync import DocumentSynchronizer
from textlint_client.core.lsp.types import TransportFactory
from textlint_client.core.output import OutputChannel
from textlint_client.core.status import StatusAggregator
from textlint_client.core.types import (
    SUPPORT_LANGUAGES,
    ConnectionState,
    FileChangeType,
    FixOutcome,
    TextEdit,
)

logger = logging.getLogger(__name__)

CREATE_CONFIG_COMMAND = "textlint.createConfig"
APPLY_TEXT_EDITS_COMMAND = "textlint.applyTextEdits"
EXECUTE_AUTOFIX_COMMAND = "textlint.executeAutofix"
SHOW_OUTPUT_CHANNEL_COMMAND = "textlint.showOutputChannel"

TEXTLINTRC = ".textlintrc"
DEFAULT_TEXTLINTRC: dict[str, Any] = {"filters": {}, "rules": {}}
NO_WORKSPACE_MESSAGE = (
    "An textlint configuration can only be generated if opened on a workspace folder."
)

Command = Callable[..., Any]


@dataclass
class ExtensionContext:
    workspace: Workspace
    settings: SettingsStore
    output: OutputChannel = field(default_factory=OutputChannel)
    transport_factory: TransportFactory | None = None
    commands: dict[str, Command] = field(default_factory=dict)
    subscriptions: list[Disposable | Callable[[], Any]] = field(default_factory=list)

    def register_command(self, name: str, command: Command) -> None:
        if name in self.commands:
            raise ValueError(f"Command '{name}' is already registered")
        self.commands[name] = command

    def execute_command(self, name: str, *args: Any) -> Any:
        try:
            command = self.commands[name]
        except KeyError:
            raise ValueError(f"Command '{name}' not found") from None
        return command(*args)


@dataclass
class ExtensionInternal:
    connection: LintConnection
    status: StatusAggregator
    workflow: VersionedFixWorkflow
    autofix: AutoFixOnSavePolicy
    router: NotificationRouter
    synchronizer: DocumentSynchronizer
    ready: asyncio.Task[None]

    def on_all_fixes_complete(self, observer: AllFixesCompleteObserver) -> Callable[[], None]:
        return self.workflow.on_all_fixes_complete(observer)


def activate(context: ExtensionContext) -> ExtensionInternal:
    """Wire the client into ``context``; must be called from a running event loop."""
    workspace = context.workspace
    output = context.output
    connection = LintConnection(
        context.settings,
        output,
        root=workspace.root,
        transport_factory=context.transport_factory,
    )
    status = StatusAggregator(SUPPORT_LANGUAGES, output)
    router = NotificationRouter(connection, status, output)
    workflow = VersionedFixWorkflow(connection, workspace, workspace, output)
    autofix = AutoFixOnSavePolicy(workflow, workspace, SUPPORT_LANGUAGES)
    synchronizer = DocumentSynchronizer(connection, SUPPORT_LANGUAGES)

    context.register_command(CREATE_CONFIG_COMMAND, lambda: create_config(workspace))
    context.register_command(APPLY_TEXT_EDITS_COMMAND, make_apply_fix_fn(workflow))
    context.register_command(EXECUTE_AUTOFIX_COMMAND, make_auto_fix_fn(workflow))
    context.register_command(SHOW_OUTPUT_CHANNEL_COMMAND, output.show)

    handle = connection.start()
    context.subscriptions.append(handle.dispose)
    pushes: set[asyncio.Task[None]] = set()

    async def when_ready() -> None:
        await handle.ready()

        context.subscriptions.append(
            connection.on_state_change(
                lambda old, new: setattr(status, "server_running", new is ConnectionState.RUNNING)
            )
        )
        status.server_running = connection.is_running
        router.install()
        context.subscriptions.append(router.dispose)

        context.subscriptions.append(workspace.on_document_event(synchronizer))
        context.subscriptions.append(workspace.on_file_event(synchronizer.file_changed))
        for document in list(workspace.documents.values()):
            synchronizer.open(document)
        context.subscriptions.append(synchronizer.dispose)

        def change_config_handler(settings: TextlintSettings) -> None:
            autofix.configure(settings)
            task = asyncio.create_task(_push_configuration(connection, settings))
            pushes.add(task)
            task.add_done_callback(pushes.discard)

        context.subscriptions.append(context.settings.on_did_change(change_config_handler))
        autofix.configure(context.settings.settings)

    ready = asyncio.create_task(when_ready())
    ready.add_done_callback(_report_activation_failure)

    return ExtensionInternal(
        connection=connection,
        status=status,
        workflow=workflow,
        autofix=autofix,
        router=router,
        synchronizer=synchronizer,
        ready=ready,
    )


async def deactivate(context: ExtensionContext, internal: ExtensionInternal) -> None:
    internal.autofix.dispose()
    for subscription in reversed(context.subscriptions):
        result = subscription.dispose() if hasattr(subscription, "dispose") else subscription()
        if isinstance(result, Awaitable):
            await result
    context.subscriptions.clear()


def create_config(workspace: Workspace) -> Path | None:
    if workspace.root is None:
        workspace.show_error_message(NO_WORKSPACE_MESSAGE)
        return None

    rc = workspace.root / TEXTLINTRC
    if not rc.exists():
        rc.write_text(json.dumps(DEFAULT_TEXTLINTRC, indent=2) + "\n", encoding="utf-8")
        workspace.notify_file_changed(rc, FileChangeType.CREATED)
    return rc


def make_auto_fix_fn(workflow: VersionedFixWorkflow) -> Callable[[], Awaitable[FixOutcome | None]]:
    async def execute_autofix() -> FixOutcome | None:
        return await workflow.execute_autofix()

    return execute_autofix


def make_apply_fix_fn(
    workflow: VersionedFixWorkflow,
) -> Callable[[str, int, Sequence[TextEdit | dict[str, Any]]], Awaitable[FixOutcome]]:
    async def apply_text_edits(
        uri: str, document_version: int, edits: Sequence[TextEdit | dict[str, Any]]
    ) -> FixOutcome:
        parsed = [edit if isinstance(edit, TextEdit) else TextEdit.model_validate(edit) for edit in edits]
        return await workflow.apply_text_edits(uri, document_version, parsed)

    return apply_text_edits


async def _push_configuration(connection: LintConnection, settings: TextlintSettings) -> None:
    try:
        await connection.notify_configuration_changed(settings)
    except LSPError as e:
        logger.debug(f"Could not push configuration change: {e}")


def _report_activation_failure(task: asyncio.Task[None]) -> None:
    if task.cancelled():
        return
    if (error := task.exception()) is not None:
        logger.warning(f"textlint client did not become ready: {error}")

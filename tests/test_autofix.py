from __future__ import annotations

from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock

import pytest

from textlint_client.core.autofix import AutoFixOnSavePolicy
from textlint_client.core.config import TextlintSettings
from textlint_client.core.documents import TextDocument, Workspace
from textlint_client.core.fixes import VersionedFixWorkflow
from textlint_client.core.output import OutputChannel
from textlint_client.core.types import SUPPORT_LANGUAGES, SaveReason

FIX = {
    "range": {"start": {"line": 0, "character": 6}, "end": {"line": 0, "character": 10}},
    "newText": "world",
}


@pytest.fixture
def connection() -> AsyncMock:
    return AsyncMock()


@pytest.fixture
def policy(connection: AsyncMock, workspace: Workspace, output: OutputChannel) -> AutoFixOnSavePolicy:
    workflow = VersionedFixWorkflow(connection, workspace, workspace, output)
    return AutoFixOnSavePolicy(workflow, workspace, SUPPORT_LANGUAGES)


async def open_file(workspace: Workspace, tmp_path: Path, name: str, language_id: str) -> TextDocument:
    path = tmp_path / name
    path.write_text("Hello wrld\n", encoding="utf-8")
    return await workspace.open_file(path, language_id)


def reply_for(document: TextDocument, version_offset: int = 0):
    def reply(method: str, params: dict[str, Any]) -> dict[str, Any]:
        return {"documentVersion": document.version + version_offset, "edits": [FIX]}

    return reply


def test_configure_toggles_the_hook(policy: AutoFixOnSavePolicy, workspace: Workspace) -> None:
    policy.configure(TextlintSettings(auto_fix_on_save=True))
    policy.configure(TextlintSettings(auto_fix_on_save=True))
    assert policy.enabled
    assert workspace.will_save_hook_count == 1

    policy.configure(TextlintSettings(auto_fix_on_save=False))
    assert not policy.enabled
    assert workspace.will_save_hook_count == 0


def test_dispose_is_idempotent(policy: AutoFixOnSavePolicy, workspace: Workspace) -> None:
    policy.enable()

    policy.dispose()
    policy.dispose()

    assert workspace.will_save_hook_count == 0


@pytest.mark.asyncio
async def test_save_applies_current_fixes(
    policy: AutoFixOnSavePolicy, connection: AsyncMock, workspace: Workspace, tmp_path: Path
) -> None:
    document = await open_file(workspace, tmp_path, "a.md", "markdown")
    connection.send_request.side_effect = reply_for(document)
    policy.enable()

    await workspace.save(document.uri, SaveReason.MANUAL)

    assert (tmp_path / "a.md").read_text(encoding="utf-8") == "Hello world\n"


@pytest.mark.asyncio
async def test_stale_fixes_are_not_folded_into_the_save(
    policy: AutoFixOnSavePolicy, connection: AsyncMock, workspace: Workspace, tmp_path: Path
) -> None:
    document = await open_file(workspace, tmp_path, "a.md", "markdown")
    connection.send_request.side_effect = reply_for(document, version_offset=-1)
    policy.enable()

    await workspace.save(document.uri)

    assert (tmp_path / "a.md").read_text(encoding="utf-8") == "Hello wrld\n"


@pytest.mark.asyncio
async def test_delayed_saves_are_skipped(
    policy: AutoFixOnSavePolicy, connection: AsyncMock, workspace: Workspace, tmp_path: Path
) -> None:
    document = await open_file(workspace, tmp_path, "a.md", "markdown")
    policy.enable()

    await workspace.save(document.uri, SaveReason.AFTER_DELAY)

    connection.send_request.assert_not_awaited()


@pytest.mark.asyncio
async def test_unsupported_languages_are_skipped(
    policy: AutoFixOnSavePolicy, connection: AsyncMock, workspace: Workspace, tmp_path: Path
) -> None:
    document = await open_file(workspace, tmp_path, "a.py", "python")
    policy.enable()

    await workspace.save(document.uri)

    connection.send_request.assert_not_awaited()


@pytest.mark.asyncio
async def test_disabled_policy_does_not_fix(
    policy: AutoFixOnSavePolicy, connection: AsyncMock, workspace: Workspace, tmp_path: Path
) -> None:
    document = await open_file(workspace, tmp_path, "a.md", "markdown")
    policy.enable()
    policy.dispose()

    await workspace.save(document.uri)

    connection.send_request.assert_not_awaited()
    assert (tmp_path / "a.md").read_text(encoding="utf-8") == "Hello wrld\n"

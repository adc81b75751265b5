from __future__ import annotations

import json
from pathlib import Path

import pytest

from tests.conftest import build_test_settings
from tests.stubs.fake_transport import FakeTransportFactory
from textlint_client.cli.cli import (
    bootstrap_config_files,
    language_for_path,
    main,
    parse_arguments,
    run_fix,
    run_init,
)
from textlint_client.core.lsp.connection import LintConnection

FIX = {
    "range": {"start": {"line": 0, "character": 6}, "end": {"line": 0, "character": 10}},
    "newText": "world",
}


@pytest.fixture
def fake_server(monkeypatch: pytest.MonkeyPatch) -> FakeTransportFactory:
    factory = FakeTransportFactory()

    async def spawn(self: LintConnection, server, listener):
        return await factory(server, listener)

    monkeypatch.setattr(LintConnection, "_spawn_transport", spawn)
    return factory


@pytest.fixture
def draft(tmp_working_directory: Path) -> Path:
    path = tmp_working_directory / "draft.md"
    path.write_text("Hello wrld\n", encoding="utf-8")
    return path


@pytest.mark.parametrize(
    ("name", "language_id"),
    [
        ("README.md", "markdown"),
        ("notes.TXT", "plaintext"),
        ("paper.tex", "latex"),
        ("index.htm", "html"),
        ("package.dtx", "doctex"),
        ("Makefile", "plaintext"),
    ],
)
def test_language_for_path(name: str, language_id: str) -> None:
    assert language_for_path(Path(name)) == language_id


def test_parse_fix_arguments() -> None:
    args = parse_arguments(["fix", "draft.md", "--language", "markdown"])

    assert args.command == "fix"
    assert args.file == Path("draft.md")
    assert args.language == "markdown"


def test_a_command_is_required() -> None:
    with pytest.raises(SystemExit):
        parse_arguments([])


def test_fix_applies_and_saves(fake_server: FakeTransportFactory, draft: Path, capsys: pytest.CaptureFixture) -> None:
    fake_server.responses["textDocument/textlint/allFixes"] = {"documentVersion": 1, "edits": [FIX]}

    with pytest.raises(SystemExit) as exc_info:
        main(["fix", str(draft)])

    assert exc_info.value.code == 0
    assert draft.read_text(encoding="utf-8") == "Hello world\n"
    assert "Fixed" in capsys.readouterr().out
    init_params = fake_server.transports[0].init_params
    assert init_params is not None
    assert init_params["initializationOptions"]["run"] == "onSave"


def test_fix_leaves_file_alone_when_fixes_are_stale(
    fake_server: FakeTransportFactory, draft: Path, capsys: pytest.CaptureFixture
) -> None:
    fake_server.responses["textDocument/textlint/allFixes"] = {"documentVersion": 7, "edits": [FIX]}

    with pytest.raises(SystemExit) as exc_info:
        main(["fix", str(draft)])

    assert exc_info.value.code == 0
    assert draft.read_text(encoding="utf-8") == "Hello wrld\n"
    assert "outdated" in capsys.readouterr().out


@pytest.mark.asyncio
async def test_fix_with_nothing_to_fix(fake_server: FakeTransportFactory, draft: Path) -> None:
    assert await run_fix(draft, "markdown", build_test_settings()) == 0
    assert draft.read_text(encoding="utf-8") == "Hello wrld\n"
    assert fake_server.last.shutdown_called


@pytest.mark.asyncio
async def test_fix_reports_server_start_failure(
    fake_server: FakeTransportFactory, draft: Path, capsys: pytest.CaptureFixture
) -> None:
    fake_server.fail_times = 1

    assert await run_fix(draft, "markdown", build_test_settings()) == 1
    assert "Could not start the textlint server" in capsys.readouterr().out


@pytest.mark.asyncio
async def test_fix_missing_file(tmp_path: Path) -> None:
    assert await run_fix(tmp_path / "missing.md", "markdown", build_test_settings()) == 1


def test_init_creates_textlintrc(tmp_working_directory: Path) -> None:
    assert run_init() == 0

    rc = tmp_working_directory / ".textlintrc"
    assert json.loads(rc.read_text(encoding="utf-8")) == {"filters": {}, "rules": {}}

    with pytest.raises(SystemExit) as exc_info:
        main(["init"])
    assert exc_info.value.code == 0


def test_bootstrap_creates_missing_config(config_dir: Path) -> None:
    config_file = config_dir / "config.toml"
    config_file.unlink()

    bootstrap_config_files()

    assert "[textlint]" in config_file.read_text(encoding="utf-8")

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import pytest
import tomli_w

from tests.stubs.fake_transport import FakeTransportFactory
from textlint_client.core.config import SettingsStore, TextlintSettings
from textlint_client.core.documents import Workspace
from textlint_client.core.output import OutputChannel
from textlint_client.core.paths import global_paths


def get_base_config() -> dict[str, Any]:
    return {
        "textlint": {
            "run": "onSave",
            "autoFixOnSave": False,
            "trace": "off",
            "server_command": ["textlint-server", "--stdio"],
        }
    }


@pytest.fixture(autouse=True)
def tmp_working_directory(
    monkeypatch: pytest.MonkeyPatch, tmp_path_factory: pytest.TempPathFactory
) -> Path:
    tmp_working_directory = tmp_path_factory.mktemp("test_cwd")
    monkeypatch.chdir(tmp_working_directory)
    return tmp_working_directory


@pytest.fixture(autouse=True)
def config_dir(
    monkeypatch: pytest.MonkeyPatch, tmp_path_factory: pytest.TempPathFactory
) -> Path:
    tmp_path = tmp_path_factory.mktemp("textlint_client")
    config_dir = tmp_path / ".textlint_client"
    config_dir.mkdir(parents=True, exist_ok=True)
    config_file = config_dir / "config.toml"
    config_file.write_text(tomli_w.dumps(get_base_config()), encoding="utf-8")

    monkeypatch.delenv("TEXTLINT_CLIENT_HOME", raising=False)
    monkeypatch.setattr(global_paths, "_DEFAULT_TEXTLINT_CLIENT_HOME", config_dir)
    return config_dir


@pytest.fixture(autouse=True)
def _clear_textlint_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for key in list(os.environ):
        if key.startswith("TEXTLINT_"):
            monkeypatch.delenv(key)


@pytest.fixture
def output() -> OutputChannel:
    return OutputChannel(reveal_on_error=False)


@pytest.fixture
def settings() -> SettingsStore:
    return build_test_settings()


@pytest.fixture
def transport_factory() -> FakeTransportFactory:
    return FakeTransportFactory()


@pytest.fixture
def workspace(tmp_working_directory: Path) -> Workspace:
    return Workspace(tmp_working_directory)


def build_test_settings(**kwargs: Any) -> SettingsStore:
    kwargs.setdefault("server_command", ["fake-textlint-server", "--stdio"])
    return SettingsStore(
        TextlintSettings(**kwargs), loader=lambda: TextlintSettings(**kwargs)
    )

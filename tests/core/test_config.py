from __future__ import annotations

from pathlib import Path
import tomllib

from pydantic import ValidationError
import pytest
import tomli_w

from textlint_client.core.config import (
    SettingsStore,
    TextlintSettings,
    load_dotenv_values,
)
from textlint_client.core.types import RunMode, TraceLevel


def write_config(config_dir: Path, data: dict) -> None:
    (config_dir / "config.toml").write_text(tomli_w.dumps(data), encoding="utf-8")


class TestTextlintSettings:
    def test_reads_defaults_from_config_file(self) -> None:
        settings = TextlintSettings()

        assert settings.run is RunMode.ON_SAVE
        assert settings.auto_fix_on_save is False
        assert settings.trace is TraceLevel.OFF
        assert settings.config_path is None
        assert settings.server_command == ["textlint-server", "--stdio"]

    def test_accepts_camel_case_keys(self, config_dir: Path) -> None:
        write_config(
            config_dir,
            {
                "textlint": {
                    "configPath": "/work/.textlintrc",
                    "nodePath": "/work/node_modules",
                    "autoFixOnSave": True,
                    "run": "onType",
                    "trace": "verbose",
                }
            },
        )

        settings = TextlintSettings()

        assert settings.config_path == "/work/.textlintrc"
        assert settings.node_path == "/work/node_modules"
        assert settings.auto_fix_on_save is True
        assert settings.run is RunMode.ON_TYPE
        assert settings.trace is TraceLevel.VERBOSE

    def test_top_level_keys_without_section(self, config_dir: Path) -> None:
        write_config(config_dir, {"auto_fix_on_save": True})

        assert TextlintSettings().auto_fix_on_save is True

    def test_env_overrides_file_and_init_overrides_env(
        self, config_dir: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        write_config(config_dir, {"textlint": {"trace": "messages"}})
        monkeypatch.setenv("TEXTLINT_TRACE", "verbose")

        assert TextlintSettings().trace is TraceLevel.VERBOSE
        assert TextlintSettings(trace=TraceLevel.OFF).trace is TraceLevel.OFF

    def test_missing_config_file_uses_defaults(self, config_dir: Path) -> None:
        (config_dir / "config.toml").unlink()

        settings = TextlintSettings()

        assert settings.auto_fix_on_save is False
        assert settings.server_command == ["textlint-server", "--stdio"]

    def test_invalid_toml_is_reported(self, config_dir: Path) -> None:
        (config_dir / "config.toml").write_text("[textlint\nrun = ", encoding="utf-8")

        with pytest.raises(RuntimeError, match="Invalid TOML"):
            TextlintSettings()

    def test_blank_paths_are_unset(self) -> None:
        settings = TextlintSettings(config_path="  ", node_path="")

        assert settings.config_path is None
        assert settings.node_path is None

    def test_server_command_must_not_be_empty(self) -> None:
        with pytest.raises(ValidationError):
            TextlintSettings(server_command=[])

    def test_unknown_run_mode_is_rejected(self) -> None:
        with pytest.raises(ValidationError):
            TextlintSettings(run="onIdle")

    def test_initialization_options_use_editor_keys(self) -> None:
        settings = TextlintSettings(config_path="/work/.textlintrc", run=RunMode.ON_TYPE)

        assert settings.initialization_options() == {
            "configPath": "/work/.textlintrc",
            "nodePath": None,
            "run": "onType",
            "trace": "off",
        }
        assert settings.to_wire()["autoFixOnSave"] is False

    def test_save_updates_keeps_other_tables(self, config_dir: Path) -> None:
        write_config(config_dir, {"other": {"keep": 1}, "textlint": {"run": "onSave"}})

        TextlintSettings.save_updates({"auto_fix_on_save": True, "config_path": None})

        with (config_dir / "config.toml").open("rb") as f:
            data = tomllib.load(f)
        assert data["other"] == {"keep": 1}
        assert data["textlint"] == {"run": "onSave", "auto_fix_on_save": True}

    def test_create_default_round_trips_through_the_file(self, config_dir: Path) -> None:
        (config_dir / "config.toml").unlink()

        TextlintSettings.save_updates(TextlintSettings.create_default())

        with (config_dir / "config.toml").open("rb") as f:
            data = tomllib.load(f)
        assert data["textlint"]["run"] == "onSave"
        assert "config_path" not in data["textlint"]
        assert TextlintSettings().auto_fix_on_save is False


class TestLoadDotenvValues:
    def test_loads_non_empty_values(self, tmp_path: Path) -> None:
        env_file = tmp_path / ".env"
        env_file.write_text("TEXTLINT_TRACE=messages\nEMPTY=\n", encoding="utf-8")
        environ: dict[str, str] = {}

        load_dotenv_values(env_file, environ)

        assert environ == {"TEXTLINT_TRACE": "messages"}

    def test_missing_file_is_ignored(self, tmp_path: Path) -> None:
        environ: dict[str, str] = {}

        load_dotenv_values(tmp_path / "missing.env", environ)

        assert environ == {}


class TestSettingsStore:
    def test_get_maps_editor_section_names(self) -> None:
        store = SettingsStore(TextlintSettings(auto_fix_on_save=True))

        assert store.get("autoFixOnSave") is True
        assert store.get("run") is RunMode.ON_SAVE
        assert store.get("configPath", "fallback") == "fallback"

    def test_replace_notifies_listeners(self) -> None:
        store = SettingsStore(TextlintSettings())
        seen: list[TextlintSettings] = []
        store.on_did_change(seen.append)
        updated = TextlintSettings(auto_fix_on_save=True)

        store.replace(updated)

        assert seen == [updated]
        assert store.settings is updated

    def test_failing_listener_does_not_block_others(self) -> None:
        store = SettingsStore(TextlintSettings())
        seen: list[TextlintSettings] = []

        def broken(_: TextlintSettings) -> None:
            raise RuntimeError("listener failed")

        store.on_did_change(broken)
        store.on_did_change(seen.append)

        store.replace(TextlintSettings(trace=TraceLevel.MESSAGES))

        assert len(seen) == 1

    def test_removed_listener_is_not_called(self) -> None:
        store = SettingsStore(TextlintSettings())
        seen: list[TextlintSettings] = []
        remove = store.on_did_change(seen.append)

        remove()
        store.replace(TextlintSettings())

        assert seen == []

    def test_reload_reads_the_config_file_again(self, config_dir: Path) -> None:
        store = SettingsStore(TextlintSettings(), loader=TextlintSettings)
        write_config(config_dir, {"textlint": {"autoFixOnSave": True}})

        reloaded = store.reload()

        assert reloaded.auto_fix_on_save is True
        assert store.settings is reloaded

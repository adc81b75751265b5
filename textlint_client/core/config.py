from __future__ import annotations

from collections.abc import Callable, MutableMapping
import logging
import os
from pathlib import Path
import tomllib
from typing import Any

from dotenv import dotenv_values
from pydantic import Field, field_validator
from pydantic.alias_generators import to_snake
from pydantic.fields import FieldInfo
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)
import tomli_w

from textlint_client.core.paths.global_paths import GLOBAL_CONFIG_FILE, GLOBAL_ENV_FILE
from textlint_client.core.types import CONFIGURATION_SECTION, RunMode, TraceLevel

logger = logging.getLogger(__name__)

DEFAULT_SERVER_COMMAND = ["textlint-server", "--stdio"]


def load_dotenv_values(
    env_path: Path | None = None,
    environ: MutableMapping[str, str] = os.environ,
) -> None:
    env_path = env_path or GLOBAL_ENV_FILE.path
    if not env_path.is_file() and not env_path.is_fifo():
        return

    env_vars = dotenv_values(env_path)
    for key, value in env_vars.items():
        if not value:
            continue
        environ.update({key: value})


class TomlFileSettingsSource(PydanticBaseSettingsSource):
    def __init__(self, settings_cls: type[BaseSettings]) -> None:
        super().__init__(settings_cls)
        self.toml_data = self._load_toml()

    def _load_toml(self) -> dict[str, Any]:
        file = GLOBAL_CONFIG_FILE.path
        try:
            with file.open("rb") as f:
                data = tomllib.load(f)
        except FileNotFoundError:
            return {}
        except tomllib.TOMLDecodeError as e:
            raise RuntimeError(f"Invalid TOML in {file}: {e}") from e
        except OSError as e:
            raise RuntimeError(f"Cannot read {file}: {e}") from e

        section = data.get(CONFIGURATION_SECTION)
        table = section if isinstance(section, dict) else data
        # Accept the camelCase keys used by editor settings (autoFixOnSave)
        return {to_snake(key): value for key, value in table.items()}

    def get_field_value(
        self, field: FieldInfo, field_name: str
    ) -> tuple[Any, str, bool]:
        return self.toml_data.get(field_name), field_name, False

    def __call__(self) -> dict[str, Any]:
        return self.toml_data


class TextlintSettings(BaseSettings):
    config_path: str | None = Field(
        default=None,
        description="An absolute path to the textlint config file.",
    )
    node_path: str | None = Field(
        default=None,
        description="A path added to NODE_PATH when resolving the textlint module.",
    )
    run: RunMode = Field(
        default=RunMode.ON_SAVE,
        description="Run the linter on save (onSave) or on type (onType).",
    )
    auto_fix_on_save: bool = Field(
        default=False,
        description="Turns auto fix on save on or off.",
    )
    trace: TraceLevel = Field(
        default=TraceLevel.OFF,
        description="Traces the communication between the client and the textlint server.",
    )
    server_command: list[str] = Field(
        default_factory=lambda: list(DEFAULT_SERVER_COMMAND),
        description="Command line launching the textlint language server over stdio.",
    )

    model_config = SettingsConfigDict(
        env_prefix="TEXTLINT_", case_sensitive=False, extra="ignore"
    )

    @field_validator("config_path", "node_path", mode="before")
    @classmethod
    def _empty_as_unset(cls, v: Any) -> Any:
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @field_validator("server_command", mode="after")
    @classmethod
    def _non_empty_command(cls, v: list[str]) -> list[str]:
        if not v:
            raise ValueError("server_command must not be empty")
        return v

    def initialization_options(self) -> dict[str, Any]:
        return {
            "configPath": self.config_path,
            "nodePath": self.node_path,
            "run": self.run.value,
            "trace": self.trace.value,
        }

    def to_wire(self) -> dict[str, Any]:
        return {
            **self.initialization_options(),
            "autoFixOnSave": self.auto_fix_on_save,
        }

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """Init kwargs win over TEXTLINT_* env vars, which win over the TOML file.

        dotenv_settings is excluded; the .env file is loaded into os.environ
        by load_dotenv_values instead.
        """
        return (
            init_settings,
            env_settings,
            TomlFileSettingsSource(settings_cls),
            file_secret_settings,
        )

    @classmethod
    def load(cls, **overrides: Any) -> TextlintSettings:
        load_dotenv_values()
        return cls(**overrides)

    @classmethod
    def create_default(cls) -> dict[str, Any]:
        config = cls.model_construct()
        return config.model_dump(mode="json", exclude_none=True)

    @classmethod
    def save_updates(cls, updates: dict[str, Any]) -> None:
        path = GLOBAL_CONFIG_FILE.path
        current: dict[str, Any] = {}
        if path.exists():
            with path.open("rb") as f:
                current = tomllib.load(f)

        section = current.setdefault(CONFIGURATION_SECTION, {})
        section.update({key: value for key, value in updates.items() if value is not None})

        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("wb") as f:
            tomli_w.dump(current, f)


class SettingsStore:
    """Holds the active settings and signals every reload as one change event."""

    _FIELD_BY_SECTION = {
        "configPath": "config_path",
        "nodePath": "node_path",
        "run": "run",
        "autoFixOnSave": "auto_fix_on_save",
        "trace": "trace",
        "serverCommand": "server_command",
    }

    def __init__(
        self,
        settings: TextlintSettings | None = None,
        loader: Callable[[], TextlintSettings] = TextlintSettings.load,
    ) -> None:
        self._loader = loader
        self._settings = settings if settings is not None else loader()
        self._listeners: list[Callable[[TextlintSettings], None]] = []

    @property
    def settings(self) -> TextlintSettings:
        return self._settings

    def get(self, section: str, default: Any = None) -> Any:
        field_name = self._FIELD_BY_SECTION.get(section, section)
        value = getattr(self._settings, field_name, None)
        return default if value is None else value

    def on_did_change(self, listener: Callable[[TextlintSettings], None]) -> Callable[[], None]:
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    def reload(self) -> TextlintSettings:
        return self.replace(self._loader())

    def replace(self, settings: TextlintSettings) -> TextlintSettings:
        self._settings = settings
        for listener in list(self._listeners):
            try:
                listener(settings)
            except Exception as e:
                logger.error(f"Configuration change listener failed: {e}", exc_info=True)
        return settings

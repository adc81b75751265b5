from __future__ import annotations

from collections.abc import Callable
import os
from pathlib import Path


class GlobalPath:
    def __init__(self, resolver: Callable[[], Path]) -> None:
        self._resolver = resolver

    @property
    def path(self) -> Path:
        return self._resolver()


_DEFAULT_TEXTLINT_CLIENT_HOME = Path.home() / ".textlint_client"


def _get_textlint_client_home() -> Path:
    if home := os.getenv("TEXTLINT_CLIENT_HOME"):
        return Path(home).expanduser().resolve()
    return _DEFAULT_TEXTLINT_CLIENT_HOME


TEXTLINT_CLIENT_HOME = GlobalPath(_get_textlint_client_home)
GLOBAL_CONFIG_FILE = GlobalPath(lambda: TEXTLINT_CLIENT_HOME.path / "config.toml")
GLOBAL_ENV_FILE = GlobalPath(lambda: TEXTLINT_CLIENT_HOME.path / ".env")
LOG_DIR = GlobalPath(lambda: TEXTLINT_CLIENT_HOME.path / "logs")
LOG_FILE = GlobalPath(lambda: TEXTLINT_CLIENT_HOME.path / "logs" / "textlint_client.log")

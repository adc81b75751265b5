from __future__ import annotations

import os
from pathlib import Path
from typing import Any

from textlint_client.core.config import TextlintSettings


class TextlintServer:
    """How to launch and initialize the textlint language server."""

    name = "textlint"

    def __init__(self, settings: TextlintSettings) -> None:
        self.settings = settings

    def get_command(self) -> list[str]:
        return list(self.settings.server_command)

    def get_env(self) -> dict[str, str] | None:
        if not self.settings.node_path:
            return None
        env = dict(os.environ)
        node_path = str(Path(self.settings.node_path).expanduser())
        existing = env.get("NODE_PATH")
        env["NODE_PATH"] = f"{node_path}{os.pathsep}{existing}" if existing else node_path
        return env

    def get_initialization_params(self, root: Path | None = None) -> dict[str, Any]:
        params: dict[str, Any] = {
            "initializationOptions": self.settings.initialization_options(),
        }
        if root is not None:
            params["rootUri"] = root.resolve().as_uri()
            params["workspaceFolders"] = [
                {"uri": root.resolve().as_uri(), "name": root.resolve().name}
            ]
        return params

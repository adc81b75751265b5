from __future__ import annotations

import argparse
import asyncio
from pathlib import Path
import sys

from pydantic import ValidationError
from rich import print as rprint

from textlint_client import __version__
from textlint_client.core.config import SettingsStore, TextlintSettings
from textlint_client.core.documents import Workspace
from textlint_client.core.extension import (
    EXECUTE_AUTOFIX_COMMAND,
    TEXTLINTRC,
    ExtensionContext,
    activate,
    create_config,
    deactivate,
)
from textlint_client.core.logger import logger
from textlint_client.core.lsp.errors import LSPError
from textlint_client.core.output import OutputChannel
from textlint_client.core.paths.global_paths import GLOBAL_CONFIG_FILE
from textlint_client.core.types import FixOutcome, SaveReason, Severity

LANGUAGE_BY_SUFFIX = {
    ".txt": "plaintext",
    ".md": "markdown",
    ".markdown": "markdown",
    ".html": "html",
    ".htm": "html",
    ".tex": "latex",
    ".dtx": "doctex",
}


def language_for_path(path: Path) -> str:
    return LANGUAGE_BY_SUFFIX.get(path.suffix.lower(), "plaintext")


def parse_arguments(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="textlint-client",
        description="Run the textlint language server and apply its fixes",
    )
    parser.add_argument(
        "-v", "--version", action="version", version=f"%(prog)s {__version__}"
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    fix = subparsers.add_parser("fix", help="Apply every auto-fixable problem to a file")
    fix.add_argument("file", type=Path)
    fix.add_argument("--language", help="Document language id (detected from the suffix by default)")

    subparsers.add_parser("init", help="Create a .textlintrc file in the current directory")
    return parser.parse_args(argv)


def bootstrap_config_files() -> None:
    if not GLOBAL_CONFIG_FILE.path.exists():
        try:
            TextlintSettings.save_updates(TextlintSettings.create_default())
        except OSError as e:
            rprint(f"[yellow]Could not create default config file: {e}[/]")


def load_settings_or_exit() -> SettingsStore:
    try:
        return SettingsStore(TextlintSettings.load())
    except (ValidationError, RuntimeError) as e:
        rprint(f"[yellow]{e}[/]")
        sys.exit(1)


def show_output(channel: OutputChannel) -> None:
    for line in channel.lines[-20:]:
        rprint(f"[dim]{line}[/]", file=sys.stderr)


async def run_fix(path: Path, language_id: str, settings: SettingsStore) -> int:
    if not path.is_file():
        rprint(f"[red]No such file: {path}[/]")
        return 1

    workspace = Workspace(Path.cwd())
    output = OutputChannel()
    output.on_show(show_output)
    context = ExtensionContext(workspace=workspace, settings=settings, output=output)
    internal = activate(context)
    try:
        try:
            await internal.ready
        except LSPError as e:
            rprint(f"[red]Could not start the textlint server: {e}[/]")
            return 1

        document = await workspace.open_file(path, language_id)
        await internal.synchronizer.flush()
        outcome = await context.execute_command(EXECUTE_AUTOFIX_COMMAND)

        if internal.status.severity is not Severity.OK:
            rprint(f"[yellow]textlint status: {internal.status.severity.name}[/]")

        match outcome:
            case FixOutcome.APPLIED:
                await workspace.save(document.uri, SaveReason.MANUAL)
                rprint(f"[green]Fixed {path}[/]")
            case FixOutcome.STALE:
                rprint(f"[yellow]Fixes for {path} were outdated and not applied[/]")
            case FixOutcome.FAILED:
                rprint(f"[red]Failed to apply fixes to {path}[/]")
                return 1
            case None:
                rprint(f"Nothing to fix in {path}")
        return 0
    finally:
        await deactivate(context, internal)


def run_init() -> int:
    workspace = Workspace(Path.cwd())
    existed = (Path.cwd() / TEXTLINTRC).exists()
    created = create_config(workspace)
    if created is None:
        for message in workspace.error_messages:
            rprint(f"[red]{message}[/]")
        return 1
    rprint(f"{created} already exists" if existed else f"[green]Created {created}[/]")
    return 0


def main(argv: list[str] | None = None) -> None:
    args = parse_arguments(argv)

    if args.command == "init":
        sys.exit(run_init())

    bootstrap_config_files()
    settings = load_settings_or_exit()
    language_id = args.language or language_for_path(args.file)
    try:
        sys.exit(asyncio.run(run_fix(args.file, language_id, settings)))
    except KeyboardInterrupt:
        logger.info("Interrupted")
        sys.exit(130)


if __name__ == "__main__":
    main()

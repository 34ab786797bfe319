"""Command line interface for docsync."""

from __future__ import annotations

from typing import Annotated

import anyio
import typer as t

from docsync import log
from docsync.config import SyncConfig
from docsync.engine import SyncEngine
from docsync.exceptions import ReadError, WriteError


logger = log.get_logger(__name__)

cli = t.Typer(help="Debounced document saving with change reconciliation", no_args_is_help=True)

CONFIG_HELP = "Path to a YAML sync configuration (defaults to the user config file)"
VERBOSE_HELP = "Enable debug logging"
VERBOSE_CMDS = "-v", "--verbose"
JSON_HELP = "Write log events as JSON lines"

config_opt = t.Option("--config", "-c", help=CONFIG_HELP)
verbose_opt = t.Option(False, *VERBOSE_CMDS, help=VERBOSE_HELP)
json_opt = t.Option(False, "--json", help=JSON_HELP)


@cli.callback()
def setup_logging(verbose: bool = verbose_opt, json_logs: bool = json_opt) -> None:
    """Configure logging for every command."""
    log.configure_logging("DEBUG" if verbose else "WARNING", json_logs=json_logs)


def load_config(path: str | None) -> SyncConfig:
    try:
        return SyncConfig.from_file(path) if path else SyncConfig.load_default()
    except ValueError as e:
        raise t.BadParameter(str(e)) from e


@cli.command("watch")
def watch_document(
    path: Annotated[str, t.Argument(help="Document to keep in sync")],
    config: Annotated[str | None, config_opt] = None,
) -> None:
    """Open a document and report whenever it is reloaded from disk.

    Runs until interrupted.
    """
    sync_config = load_config(config)

    def on_change(content: str) -> None:
        t.echo(f"Reloaded {path} ({len(content)} chars)")

    async def main() -> None:
        async with SyncEngine(sync_config) as engine:
            await engine.open(path, on_content_changed=on_change)
            t.echo(f"Watching {path}, press Ctrl+C to stop")
            await anyio.sleep_forever()

    try:
        anyio.run(main)
    except KeyboardInterrupt:
        logger.info("Watch stopped", path=path)
    except ReadError as e:
        t.echo(str(e), err=True)
        raise t.Exit(1) from e


@cli.command("write")
def write_document(
    path: Annotated[str, t.Argument(help="Existing document to write to")],
    content: Annotated[str, t.Argument(help="New content of the document")],
    config: Annotated[str | None, config_opt] = None,
) -> None:
    """Replace the content of a document through a sync session."""
    sync_config = load_config(config)

    async def main() -> None:
        async with SyncEngine(sync_config) as engine:
            session = await engine.open(path)
            try:
                await session.save_now(content)
            except WriteError:
                await session.close(force=True)
                raise

    try:
        anyio.run(main)
    except (ReadError, WriteError) as e:
        t.echo(str(e), err=True)
        raise t.Exit(1) from e
    t.echo(f"Saved {path}")


if __name__ == "__main__":
    cli()

"""Run the docsync CLI via `python -m docsync`."""

from __future__ import annotations

from docsync.cli import cli


if __name__ == "__main__":
    cli()

"""Persistence service implementations."""

from __future__ import annotations

from dataclasses import dataclass, field

import anyio

from docsync.exceptions import ReadError, WriteError
from docsync.log import get_logger


logger = get_logger(__name__)


@dataclass
class FileSystemPersistence:
    """Stores documents as text files on the local filesystem."""

    encoding: str = "utf-8"
    """Text encoding for reads and writes."""

    create_parents: bool = True
    """Create missing parent directories on write."""

    async def read(self, path: str) -> str:
        try:
            return await anyio.Path(path).read_text(encoding=self.encoding)
        except (OSError, UnicodeDecodeError) as exc:
            raise ReadError(path, str(exc)) from exc

    async def write(self, path: str, content: str) -> None:
        target = anyio.Path(path)
        try:
            if self.create_parents:
                await target.parent.mkdir(parents=True, exist_ok=True)
            await target.write_text(content, encoding=self.encoding)
        except (OSError, UnicodeEncodeError) as exc:
            raise WriteError(path, str(exc)) from exc
        logger.debug("Wrote document", path=path, size=len(content))


@dataclass
class MemoryPersistence:
    """Dict-backed store that records every write.

    Useful for tests and for running the engine without touching disk.
    """

    files: dict[str, str] = field(default_factory=dict)
    """Current content by path."""

    writes: list[tuple[str, str]] = field(default_factory=list)
    """Chronological log of (path, content) writes."""

    async def read(self, path: str) -> str:
        try:
            return self.files[path]
        except KeyError as exc:
            raise ReadError(path, "no such document") from exc

    async def write(self, path: str, content: str) -> None:
        self.files[path] = content
        self.writes.append((path, content))

    def writes_for(self, path: str) -> list[str]:
        """Get the contents written to a path, oldest first."""
        return [content for p, content in self.writes if p == path]

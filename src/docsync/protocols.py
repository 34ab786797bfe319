"""Interfaces of the storage and notification transports."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol


if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from docsync.models import ChangeEvent

    ChangeListener = Callable[[ChangeEvent], Awaitable[Any]]


class PersistenceService(Protocol):
    """Reads and writes resource content by path."""

    async def read(self, path: str) -> str:
        """Return the stored content, raising ReadError on failure."""
        ...

    async def write(self, path: str, content: str) -> None:
        """Replace the stored content, raising WriteError on failure."""
        ...


class ChangeNotificationService(Protocol):
    """Per-folder subscriptions emitting batches of changed paths."""

    async def watch(self, watch_id: str, folder_path: str) -> None:
        """Start emitting change events for a folder on the `watch_id` channel."""
        ...

    async def stop_watch(self, watch_id: str) -> None:
        """Stop the watch started under `watch_id`."""
        ...

    def subscribe(self, watch_id: str, listener: ChangeListener) -> Callable[[], None]:
        """Listen on the `watch_id` channel, returning an unsubscribe function."""
        ...

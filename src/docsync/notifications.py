"""Change notification service implementations."""

from __future__ import annotations

import asyncio
import contextlib
from dataclasses import dataclass, field
from functools import partial
import os
from pathlib import Path
from typing import TYPE_CHECKING

from watchfiles import awatch

from docsync.exceptions import WatchError
from docsync.log import get_logger
from docsync.models import ChangeEvent


if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

    from docsync.protocols import ChangeListener


logger = get_logger(__name__)


class BaseNotificationService:
    """Keeps listener channels keyed by watch id and dispatches events to them."""

    def __init__(self) -> None:
        self._listeners: dict[str, list[ChangeListener]] = {}

    def subscribe(self, watch_id: str, listener: ChangeListener) -> Callable[[], None]:
        """Listen on the `watch_id` channel, returning an unsubscribe function."""
        self._listeners.setdefault(watch_id, []).append(listener)

        def unsubscribe() -> None:
            listeners = self._listeners.get(watch_id, [])
            if listener in listeners:
                listeners.remove(listener)
            if not listeners:
                self._listeners.pop(watch_id, None)

        return unsubscribe

    async def _dispatch(self, watch_id: str, event: ChangeEvent) -> None:
        # Listener failures must not kill the watch
        for listener in list(self._listeners.get(watch_id, [])):
            try:
                await listener(event)
            except Exception:
                logger.exception("Change listener failed", watch_id=watch_id)


@dataclass
class FolderWatch:
    """Background task feeding watchfiles batches for one folder into a channel."""

    watch_id: str
    """Channel identifier."""

    folder_path: str
    """Folder being watched (non-recursive)."""

    callback: ChangeListener
    """Async callback invoked with each change batch."""

    debounce: int = 100
    """Debounce time in milliseconds."""

    _task: asyncio.Task[None] | None = field(default=None, repr=False)
    """Background watch task."""

    _stop_event: asyncio.Event = field(default_factory=asyncio.Event, repr=False)
    """Event to signal stop."""

    def start(self) -> None:
        if self._task is not None:
            return
        self._stop_event.clear()
        self._task = asyncio.create_task(self._watch_loop())

    async def stop(self) -> None:
        if self._task is None:
            return
        self._stop_event.set()
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None

    async def _watch_loop(self) -> None:
        try:
            async for changes in awatch(
                self.folder_path,
                debounce=self.debounce,
                stop_event=self._stop_event,
                recursive=False,
            ):
                paths = frozenset(os.path.abspath(path) for _change, path in changes)
                event = ChangeEvent(folder_path=self.folder_path, changed_paths=paths)
                await self.callback(event)
        except OSError:
            # e.g. the folder was removed while watched
            logger.exception("Folder watch ended", watch_id=self.watch_id)


class WatchfilesNotificationService(BaseNotificationService):
    """Watches folders on the local filesystem using watchfiles.

    Example:
        ```python
        service = WatchfilesNotificationService()

        async def on_change(event: ChangeEvent):
            print(event.changed_paths)

        service.subscribe("notes", on_change)
        await service.watch("notes", "/path/to/notes")
        ...
        await service.stop_watch("notes")
        ```
    """

    def __init__(self, debounce: int = 100) -> None:
        super().__init__()
        self.debounce = debounce
        self._watches: dict[str, FolderWatch] = {}

    async def watch(self, watch_id: str, folder_path: str) -> None:
        if watch_id in self._watches:
            return
        if not Path(folder_path).is_dir():
            raise WatchError(watch_id, f"{folder_path} is not a directory")
        folder_watch = FolderWatch(
            watch_id=watch_id,
            folder_path=folder_path,
            callback=partial(self._dispatch, watch_id),
            debounce=self.debounce,
        )
        folder_watch.start()
        self._watches[watch_id] = folder_watch
        logger.debug("Started folder watch", watch_id=watch_id, folder=folder_path)

    async def stop_watch(self, watch_id: str) -> None:
        folder_watch = self._watches.pop(watch_id, None)
        if folder_watch is None:
            raise WatchError(watch_id, "not running")
        await folder_watch.stop()
        logger.debug("Stopped folder watch", watch_id=watch_id)

    async def aclose(self) -> None:
        """Stop every running watch."""
        for watch_id in list(self._watches):
            await self.stop_watch(watch_id)


class MemoryNotificationService(BaseNotificationService):
    """Notification channel driven by hand through `emit`."""

    def __init__(self) -> None:
        super().__init__()
        self.watched: dict[str, str] = {}
        self.calls: list[tuple[str, str]] = []

    async def watch(self, watch_id: str, folder_path: str) -> None:
        self.calls.append(("watch", watch_id))
        self.watched[watch_id] = folder_path

    async def stop_watch(self, watch_id: str) -> None:
        self.calls.append(("stop", watch_id))
        if self.watched.pop(watch_id, None) is None:
            raise WatchError(watch_id, "not running")

    async def emit(self, watch_id: str, changed_paths: Iterable[str] = ()) -> None:
        """Deliver a change batch on a channel, if that channel is being watched."""
        folder_path = self.watched.get(watch_id)
        if folder_path is None:
            return
        event = ChangeEvent(folder_path=folder_path, changed_paths=frozenset(changed_paths))
        await self._dispatch(watch_id, event)

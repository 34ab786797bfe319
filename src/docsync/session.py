"""Lifecycle of one open document."""

from __future__ import annotations

import asyncio
import os
from typing import TYPE_CHECKING, Self

from docsync.config import SyncConfig
from docsync.exceptions import SessionClosedError
from docsync.log import get_logger
from docsync.save_coordinator import SaveCoordinator


if TYPE_CHECKING:
    from collections.abc import Callable

    from docsync.exceptions import WriteError
    from docsync.models import SaveState, SaveStatus
    from docsync.protocols import PersistenceService
    from docsync.reconciler import ChangeReconciler
    from docsync.watchers import WatcherRegistry

    ContentChangedCallback = Callable[[str], None]


logger = get_logger(__name__)


class DocumentSession:
    """Binds saving, watching and reconciliation of one open document.

    The view layer calls `save` on every edit and `save_now` on an explicit save,
    and reads `content` / `status` for display. When the document changes on
    disk and has no unsaved edits, `on_content_changed` is called with the new
    content.

    Switching or closing flushes pending edits first. If that write fails, the
    error propagates and the current document stays open with its edits. Pass
    `force=True` to discard pending edits instead.

    Example:
        ```python
        async with engine.session(on_content_changed=render) as session:
            await session.open("/notes/todo.md")
            session.save("- [ ] write docs")
        ```
    """

    def __init__(
        self,
        persistence: PersistenceService,
        watchers: WatcherRegistry,
        reconciler: ChangeReconciler,
        *,
        config: SyncConfig | None = None,
        on_content_changed: ContentChangedCallback | None = None,
        on_save_success: Callable[[], None] | None = None,
        on_save_error: Callable[[WriteError], None] | None = None,
    ):
        self.persistence = persistence
        self.watchers = watchers
        self.reconciler = reconciler
        self.config = config or SyncConfig()
        self.on_content_changed = on_content_changed
        self.on_save_success = on_save_success
        self.on_save_error = on_save_error
        self._coordinator: SaveCoordinator | None = None
        self._lifecycle_lock = asyncio.Lock()

    def __repr__(self) -> str:
        return f"DocumentSession(path={self.path!r})"

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.close()

    @property
    def coordinator(self) -> SaveCoordinator | None:
        """Save coordinator of the open document, None when closed."""
        return self._coordinator

    @property
    def is_open(self) -> bool:
        return self._coordinator is not None

    @property
    def path(self) -> str | None:
        return self._coordinator.path if self._coordinator else None

    @property
    def content(self) -> str:
        """Content to display: latest edit, or what storage holds."""
        return self._require_open().current_content

    @property
    def status(self) -> SaveStatus:
        return self._require_open().status

    @property
    def state(self) -> SaveState:
        return self._require_open().state

    @property
    def is_dirty(self) -> bool:
        return self._coordinator is not None and self._coordinator.is_dirty

    async def open(self, path: str, *, force: bool = False) -> str:
        """Open a document, replacing the current one if any.

        Returns:
            The content loaded from storage

        Raises:
            ReadError: If the initial read fails (the session is left closed)
            WriteError: If pending edits of the previous document cannot be saved
        """
        async with self._lifecycle_lock:
            if self._coordinator is not None:
                await self._teardown(force=force)
            return await self._establish(os.path.abspath(path))

    async def switch(self, new_path: str, *, force: bool = False) -> str:
        """Close the current document and open another one."""
        return await self.open(new_path, force=force)

    async def close(self, *, force: bool = False) -> None:
        """Close the current document, saving pending edits first."""
        async with self._lifecycle_lock:
            if self._coordinator is not None:
                await self._teardown(force=force)

    def save(self, content: str) -> None:
        """Record an edit, written after the debounce delay."""
        self._require_open().save(content)

    async def save_now(self, content: str) -> None:
        """Write content immediately.

        Raises:
            WriteError: If the write fails
        """
        await self._require_open().save_now(content)

    async def flush(self) -> None:
        """Write pending edits immediately, if any."""
        await self._require_open().flush()

    def cancel(self) -> None:
        """Drop the scheduled write, keeping the edit as unsaved."""
        self._require_open().cancel()

    def apply_reload(self, content: str) -> bool:
        """Replace displayed content with content freshly read from storage.

        Returns:
            Whether the content actually changed
        """
        coordinator = self._require_open()
        if content == coordinator.last_saved_content:
            return False
        coordinator.mark_loaded(content)
        logger.info("Reloaded document changed on disk", path=coordinator.path)
        if self.on_content_changed is not None:
            try:
                self.on_content_changed(content)
            except Exception:
                logger.exception("Content change callback failed", path=coordinator.path)
        return True

    def _require_open(self) -> SaveCoordinator:
        if self._coordinator is None:
            raise SessionClosedError
        return self._coordinator

    async def _establish(self, path: str) -> str:
        content = await self.persistence.read(path)
        self._coordinator = SaveCoordinator(
            path,
            self.persistence,
            delay=self.config.debounce_delay,
            autosave=self.config.autosave,
            clock=self.reconciler.clock,
            on_save_success=self._handle_save_success,
            on_save_error=self._handle_save_error,
            initial_content=content,
        )
        await self.watchers.register_folder(os.path.dirname(path))
        self.reconciler.track(self)
        logger.info("Opened document", path=path)
        return content

    async def _teardown(self, *, force: bool) -> None:
        coordinator = self._require_open()
        if force:
            coordinator.cancel()
            if coordinator.is_dirty:
                logger.warning(
                    "Discarding unsaved content",
                    path=coordinator.path,
                    size=len(coordinator.current_content),
                )
        else:
            # Edits may keep arriving while the flush is suspended
            while coordinator.is_dirty:
                await coordinator.flush()
        await coordinator.aclose()

        path = coordinator.path
        self.reconciler.untrack(self, path)
        self._coordinator = None
        await self.watchers.unregister_folder(os.path.dirname(path))
        logger.info("Closed document", path=path)

    def _handle_save_success(self) -> None:
        if self.on_save_success is not None:
            self.on_save_success()

    def _handle_save_error(self, error: WriteError) -> None:
        if self.on_save_error is not None:
            self.on_save_error(error)

"""Entry point wiring storage, notifications and sessions together."""

from __future__ import annotations

import time
from typing import TYPE_CHECKING, Self

from docsync.config import SyncConfig
from docsync.log import get_logger
from docsync.notifications import WatchfilesNotificationService
from docsync.reconciler import ChangeReconciler
from docsync.session import DocumentSession
from docsync.storage import FileSystemPersistence
from docsync.watchers import WatcherRegistry


if TYPE_CHECKING:
    from collections.abc import Callable

    from docsync.exceptions import WriteError
    from docsync.protocols import ChangeNotificationService, PersistenceService


logger = get_logger(__name__)


class SyncEngine:
    """Owns the shared services of all open document sessions.

    Sessions created by one engine share a single watch registry, so documents
    in the same folder share one folder subscription.

    Example:
        ```python
        async with SyncEngine() as engine:
            session = engine.session()
            await session.open("/notes/todo.md")
            session.save("updated")
        # pending edits flushed, watches stopped
        ```
    """

    def __init__(
        self,
        config: SyncConfig | None = None,
        *,
        persistence: PersistenceService | None = None,
        notifications: ChangeNotificationService | None = None,
        clock: Callable[[], float] = time.time,
    ):
        """Initialize the engine.

        Args:
            config: Sync settings (defaults if not given)
            persistence: Storage backend (local filesystem by default)
            notifications: Change notification backend (watchfiles by default)
            clock: Time source for save timestamps and the protection window
        """
        self.config = config or SyncConfig()
        self.persistence = persistence or FileSystemPersistence(encoding=self.config.encoding)
        self.notifications = notifications or WatchfilesNotificationService(
            debounce=self.config.watch_debounce_ms
        )
        self.watchers = WatcherRegistry(self.notifications)
        self.reconciler = ChangeReconciler(
            self.watchers,
            self.persistence,
            protection_window=self.config.protection_window,
            clock=clock,
        )
        self._sessions: list[DocumentSession] = []

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.aclose()

    @property
    def sessions(self) -> list[DocumentSession]:
        return list(self._sessions)

    def session(
        self,
        *,
        on_content_changed: Callable[[str], None] | None = None,
        on_save_success: Callable[[], None] | None = None,
        on_save_error: Callable[[WriteError], None] | None = None,
    ) -> DocumentSession:
        """Create a session bound to this engine's services."""
        session = DocumentSession(
            self.persistence,
            self.watchers,
            self.reconciler,
            config=self.config,
            on_content_changed=on_content_changed,
            on_save_success=on_save_success,
            on_save_error=on_save_error,
        )
        self._sessions.append(session)
        return session

    async def open(
        self,
        path: str,
        *,
        on_content_changed: Callable[[str], None] | None = None,
        on_save_success: Callable[[], None] | None = None,
        on_save_error: Callable[[WriteError], None] | None = None,
    ) -> DocumentSession:
        """Create a session and open a document in it.

        Raises:
            ReadError: If the document cannot be read
        """
        session = self.session(
            on_content_changed=on_content_changed,
            on_save_success=on_save_success,
            on_save_error=on_save_error,
        )
        try:
            await session.open(path)
        except Exception:
            self._sessions.remove(session)
            raise
        return session

    async def aclose(self) -> None:
        """Close all sessions, then stop every watch.

        Raises:
            WriteError: If pending edits of a session cannot be saved; that
                session and the watches stay open
        """
        for session in list(self._sessions):
            await session.close()
            self._sessions.remove(session)
        await self.watchers.aclose()
        self.reconciler.close()
        logger.debug("Sync engine closed")

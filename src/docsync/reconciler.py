"""Reconciliation of open documents against change notifications."""

from __future__ import annotations

import os
import time
from typing import TYPE_CHECKING

from docsync.exceptions import ReadError
from docsync.log import get_logger
from docsync.models import SaveStatus


if TYPE_CHECKING:
    from collections.abc import Callable

    from docsync.models import ChangeEvent
    from docsync.protocols import PersistenceService
    from docsync.session import DocumentSession
    from docsync.watchers import WatcherRegistry


logger = get_logger(__name__)

DEFAULT_PROTECTION_WINDOW = 2.0


class ChangeReconciler:
    """Decides whether a change notification should reload an open document.

    A document is reloaded only if it has no unsaved edits and its last save is
    older than the protection window. Notifications arriving sooner are treated
    as the echo of our own write.
    """

    def __init__(
        self,
        watchers: WatcherRegistry,
        persistence: PersistenceService,
        *,
        protection_window: float = DEFAULT_PROTECTION_WINDOW,
        clock: Callable[[], float] = time.time,
    ):
        """Initialize the reconciler and start listening on the registry.

        Args:
            watchers: Registry dispatching folder change events
            persistence: Storage fresh content is read from
            protection_window: Seconds after a save during which events are ignored
            clock: Time source, must match the one used by the save coordinators
        """
        self.watchers = watchers
        self.persistence = persistence
        self.protection_window = protection_window
        self.clock = clock
        self._tracked: dict[str, list[DocumentSession]] = {}
        watchers.add_listener(self.handle_event)

    def track(self, session: DocumentSession) -> None:
        """Start reconciling an open session."""
        folder = os.path.dirname(session.path)
        sessions = self._tracked.setdefault(folder, [])
        if session not in sessions:
            sessions.append(session)

    def untrack(self, session: DocumentSession, path: str | None = None) -> None:
        """Stop reconciling a session (optionally for a path it no longer has open)."""
        folder = os.path.dirname(path or session.path)
        sessions = self._tracked.get(folder, [])
        if session in sessions:
            sessions.remove(session)
        if not sessions:
            self._tracked.pop(folder, None)

    def tracked_paths(self) -> list[str]:
        return [s.path for sessions in self._tracked.values() for s in sessions]

    def close(self) -> None:
        """Stop listening for change events."""
        self.watchers.remove_listener(self.handle_event)
        self._tracked.clear()

    async def handle_event(self, event: ChangeEvent) -> list[str]:
        """Reconcile every tracked session affected by a change batch.

        Returns:
            Paths of the documents that were reloaded
        """
        folder = os.path.abspath(event.folder_path)
        affected = [s for s in self._tracked.get(folder, []) if event.affects(s.path)]
        reloaded: list[str] = []
        for session in affected:
            if await self._reconcile(session):
                reloaded.append(session.path)
        return reloaded

    def _in_protection_window(self, last_save_timestamp: float) -> bool:
        if last_save_timestamp <= 0:
            return False
        return self.clock() - last_save_timestamp < self.protection_window

    async def _reconcile(self, session: DocumentSession) -> bool:
        coordinator = session.coordinator
        if coordinator is None:
            return False
        path = coordinator.path
        if coordinator.status is not SaveStatus.SAVED:
            logger.debug("Skipping reload of edited document", path=path)
            return False
        saved_at = coordinator.last_save_timestamp
        if self._in_protection_window(saved_at):
            logger.debug("Ignoring probable echo of own save", path=path)
            return False

        try:
            content = await self.persistence.read(path)
        except ReadError as exc:
            logger.warning("Reload failed, keeping current content", path=path, error=str(exc))
            return False

        # The read suspended: an edit, a save, or a switch may have happened meanwhile
        if (
            session.coordinator is not coordinator
            or coordinator.status is not SaveStatus.SAVED
            or coordinator.last_save_timestamp != saved_at
        ):
            logger.debug("Document changed during reload, dropping result", path=path)
            return False
        return session.apply_reload(content)

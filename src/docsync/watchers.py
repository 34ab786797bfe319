"""Reference-counted folder watch registrations."""

from __future__ import annotations

import asyncio
import hashlib
import os
import re
from typing import TYPE_CHECKING

from docsync.exceptions import WatchError
from docsync.log import get_logger
from docsync.models import WatchRegistration


if TYPE_CHECKING:
    from docsync.models import ChangeEvent
    from docsync.protocols import ChangeListener, ChangeNotificationService


logger = get_logger(__name__)

WATCH_ID_PREFIX = "folder-changed-"
ID_DIGEST_LENGTH = 8
_UNSAFE_CHARS = re.compile(r"[/\\:. ]")


def watch_id_for(folder_path: str) -> str:
    """Derive the deterministic watch identifier of a folder.

    The readable part replaces path separators, dots and spaces with `_`, so
    `my notes` and `my_notes` would share it. A short digest of the full path
    keeps the identifiers of distinct folders apart.

    Example:
        >>> watch_id_for("/home/me/notes.d")
        'folder-changed-_home_me_notes_d-cc4bc69d'
    """
    readable = _UNSAFE_CHARS.sub("_", folder_path)
    digest = hashlib.sha256(folder_path.encode()).hexdigest()[:ID_DIGEST_LENGTH]
    return f"{WATCH_ID_PREFIX}{readable}-{digest}"


class WatcherRegistry:
    """Shares one folder subscription between all open resources in that folder.

    The subscription is started on the first registration of a folder and
    stopped when the last registration is released. Transitions are serialized,
    so rapid register/unregister sequences never double-start a watch or stop it
    while another resource still needs it.
    """

    def __init__(self, notifications: ChangeNotificationService):
        self.notifications = notifications
        self._registrations: dict[str, WatchRegistration] = {}
        self._listeners: list[ChangeListener] = []
        self._lock = asyncio.Lock()

    def add_listener(self, listener: ChangeListener) -> None:
        """Receive change events of every registered folder."""
        self._listeners.append(listener)

    def remove_listener(self, listener: ChangeListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def ref_count(self, folder_path: str) -> int:
        registration = self._registrations.get(os.path.abspath(folder_path))
        return registration.ref_count if registration else 0

    def registrations(self) -> list[WatchRegistration]:
        return list(self._registrations.values())

    def health(self) -> dict[str, bool]:
        """Map each registered watch id to whether its subscription is active."""
        return {reg.watch_id: reg.active for reg in self._registrations.values()}

    async def register_folder(self, folder_path: str) -> WatchRegistration:
        """Take a reference on a folder watch, starting it if needed."""
        folder = os.path.abspath(folder_path)
        async with self._lock:
            registration = self._registrations.get(folder)
            if registration is None:
                registration = WatchRegistration(folder, watch_id_for(folder))
                self._registrations[folder] = registration
            registration.ref_count += 1
            if not registration.active:
                # First reference, or an earlier start failed
                await self._start(registration)
            return registration

    async def unregister_folder(self, folder_path: str) -> None:
        """Release a reference on a folder watch, stopping it at zero."""
        folder = os.path.abspath(folder_path)
        async with self._lock:
            registration = self._registrations.get(folder)
            if registration is None:
                logger.warning("Unregistering unknown folder", folder=folder)
                return
            registration.ref_count -= 1
            if registration.ref_count > 0:
                return
            del self._registrations[folder]
            await self._stop(registration)

    async def aclose(self) -> None:
        """Stop every watch regardless of outstanding references."""
        async with self._lock:
            registrations = list(self._registrations.values())
            self._registrations.clear()
            for registration in registrations:
                await self._stop(registration)

    async def _start(self, registration: WatchRegistration) -> None:
        watch_id = registration.watch_id
        unsubscribe = self.notifications.subscribe(watch_id, self._dispatch)
        try:
            await self.notifications.watch(watch_id, registration.folder_path)
        except (WatchError, OSError) as exc:
            unsubscribe()
            logger.warning(
                "Failed to start folder watch",
                folder=registration.folder_path,
                watch_id=watch_id,
                error=str(exc),
            )
            return
        registration.handle = watch_id
        registration.unsubscribe = unsubscribe
        logger.info("Watching folder", folder=registration.folder_path, watch_id=watch_id)

    async def _stop(self, registration: WatchRegistration) -> None:
        if registration.unsubscribe is not None:
            registration.unsubscribe()
            registration.unsubscribe = None
        if registration.handle is None:
            return
        registration.handle = None
        try:
            await self.notifications.stop_watch(registration.watch_id)
        except (WatchError, OSError) as exc:
            logger.warning(
                "Failed to stop folder watch",
                folder=registration.folder_path,
                watch_id=registration.watch_id,
                error=str(exc),
            )
            return
        logger.info("Stopped watching folder", folder=registration.folder_path)

    async def _dispatch(self, event: ChangeEvent) -> None:
        for listener in list(self._listeners):
            await listener(event)

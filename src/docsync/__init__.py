"""Document synchronization engine.

This package provides:
- Debounced saving of in-memory edits (SaveCoordinator)
- Reference-counted folder watches shared by open documents (WatcherRegistry)
- Reconciliation of open documents against change notifications,
  with self-echo suppression (ChangeReconciler)
- One lifecycle object per open document for the view layer (DocumentSession)
"""

from __future__ import annotations

from docsync.config import SyncConfig
from docsync.engine import SyncEngine
from docsync.exceptions import (
    DocSyncError,
    ReadError,
    SessionClosedError,
    WatchError,
    WriteError,
)
from docsync.models import ChangeEvent, SaveState, SaveStatus, WatchRegistration
from docsync.notifications import MemoryNotificationService, WatchfilesNotificationService
from docsync.protocols import ChangeNotificationService, PersistenceService
from docsync.reconciler import ChangeReconciler
from docsync.save_coordinator import SaveCoordinator
from docsync.session import DocumentSession
from docsync.storage import FileSystemPersistence, MemoryPersistence
from docsync.watchers import WatcherRegistry, watch_id_for

__all__ = [
    # Models
    "ChangeEvent",
    # Protocols
    "ChangeNotificationService",
    # Core
    "ChangeReconciler",
    # Errors
    "DocSyncError",
    "DocumentSession",
    # Storage
    "FileSystemPersistence",
    # Notifications
    "MemoryNotificationService",
    "MemoryPersistence",
    "PersistenceService",
    "ReadError",
    "SaveCoordinator",
    "SaveState",
    "SaveStatus",
    "SessionClosedError",
    # Config
    "SyncConfig",
    "SyncEngine",
    "WatchError",
    "WatchRegistration",
    "WatcherRegistry",
    "WatchfilesNotificationService",
    "WriteError",
    "watch_id_for",
]

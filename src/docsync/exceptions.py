"""Shared docsync exceptions."""

from __future__ import annotations


class DocSyncError(Exception):
    """Base class for document sync errors."""


class ReadError(DocSyncError):
    """Raised when a resource cannot be read from storage."""

    def __init__(self, path: str, reason: str | None = None):
        self.path = path
        msg = f"Failed to read {path}"
        if reason:
            msg = f"{msg}: {reason}"
        super().__init__(msg)


class WriteError(DocSyncError):
    """Raised when a resource cannot be written to storage."""

    def __init__(self, path: str, reason: str | None = None):
        self.path = path
        msg = f"Failed to write {path}"
        if reason:
            msg = f"{msg}: {reason}"
        super().__init__(msg)


class WatchError(DocSyncError):
    """Raised when a folder watch cannot be started or stopped."""

    def __init__(self, watch_id: str, reason: str | None = None):
        self.watch_id = watch_id
        msg = f"Watch {watch_id!r} failed"
        if reason:
            msg = f"{msg}: {reason}"
        super().__init__(msg)


class SessionClosedError(RuntimeError):
    """Raised when a session is used without an open document."""

    def __init__(self):
        super().__init__("No document open - call open() first")

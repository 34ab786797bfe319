"""Core models for document sync state."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING


if TYPE_CHECKING:
    from collections.abc import Callable

    from docsync.exceptions import WriteError


class SaveStatus(Enum):
    """Save indicator state of an open resource."""

    SAVED = "saved"
    """Persisted content matches the displayed content."""

    SAVING = "saving"
    """A write is in flight."""

    UNSAVED = "unsaved"
    """Edits are waiting for the debounce timer or an explicit save."""

    ERROR = "error"
    """The last write failed, pending edits are retained."""


@dataclass
class SaveState:
    """Save state of one open resource."""

    status: SaveStatus = SaveStatus.SAVED
    """Current save status."""

    last_saved_content: str = ""
    """Content of the most recent successful write or load."""

    last_save_timestamp: float = 0.0
    """Clock value of the last successful write (0.0 if never written)."""

    pending_content: str | None = None
    """Latest edit not yet persisted."""

    error: WriteError | None = None
    """Error of the last failed write."""

    @property
    def is_dirty(self) -> bool:
        """Whether there are edits that have not been persisted."""
        return self.pending_content is not None


@dataclass(frozen=True)
class ChangeEvent:
    """A single notification batch for a watched folder.

    An empty `changed_paths` means "something changed", without details.
    """

    folder_path: str
    """Absolute path of the watched folder."""

    changed_paths: frozenset[str] = field(default_factory=frozenset)
    """Absolute paths reported as changed."""

    def affects(self, path: str) -> bool:
        """Check whether this batch concerns the given resource."""
        return not self.changed_paths or path in self.changed_paths


@dataclass
class WatchRegistration:
    """Reference-counted subscription to a folder's change notifications."""

    folder_path: str
    """Absolute path of the watched folder."""

    watch_id: str
    """Deterministic identifier used with the notification service."""

    ref_count: int = 0
    """Number of open resources relying on this watch."""

    handle: str | None = None
    """Watch id while the subscription is active, None if not started."""

    unsubscribe: Callable[[], None] | None = field(default=None, repr=False)
    """Detaches the registry from the notification channel."""

    @property
    def active(self) -> bool:
        """Whether the underlying subscription is running."""
        return self.handle is not None

"""Debounced saving of one open resource."""

from __future__ import annotations

import asyncio
from dataclasses import replace
import time
from typing import TYPE_CHECKING

from docsync.exceptions import WriteError
from docsync.log import get_logger
from docsync.models import SaveState, SaveStatus


if TYPE_CHECKING:
    from collections.abc import Callable

    from docsync.protocols import PersistenceService

    SaveSuccessCallback = Callable[[], None]
    SaveErrorCallback = Callable[[WriteError], None]


DEFAULT_DEBOUNCE_DELAY = 1.0


class SaveCoordinator:
    """Coalesces edits of one resource into debounced writes.

    State machine:

        SAVED --edit--> UNSAVED --timer fires--> SAVING --success--> SAVED
                                                 SAVING --failure--> ERROR
        ERROR --edit--> UNSAVED

    Further edits while UNSAVED restart the timer, so only the latest content is
    ever written. All writes go through a single lock: there is never more than
    one write in flight for the resource.
    """

    def __init__(
        self,
        path: str,
        persistence: PersistenceService,
        *,
        delay: float = DEFAULT_DEBOUNCE_DELAY,
        autosave: bool = True,
        clock: Callable[[], float] = time.time,
        on_save_success: SaveSuccessCallback | None = None,
        on_save_error: SaveErrorCallback | None = None,
        initial_content: str = "",
    ):
        """Initialize the coordinator.

        Args:
            path: Absolute path of the resource
            persistence: Storage the content is written to
            delay: Debounce delay in seconds
            autosave: Whether edits start the debounce timer
            clock: Time source for save timestamps
            on_save_success: Called after every successful write
            on_save_error: Called with the error after every failed write
            initial_content: Content loaded from storage
        """
        self.path = path
        self.persistence = persistence
        self.delay = delay
        self.autosave = autosave
        self.clock = clock
        self.on_save_success = on_save_success
        self.on_save_error = on_save_error
        self._log = get_logger(__name__, path=path)

        self._state = SaveState(last_saved_content=initial_content)
        self._timer: asyncio.TimerHandle | None = None
        """Pending debounce timer."""
        self._flush_task: asyncio.Task[None] | None = None
        """Debounced write started by the timer."""
        self._write_lock = asyncio.Lock()
        self._writing = False

    def __repr__(self) -> str:
        return f"SaveCoordinator(path={self.path!r}, status={self.status.value})"

    @property
    def state(self) -> SaveState:
        """Snapshot of the current save state."""
        return replace(self._state)

    @property
    def status(self) -> SaveStatus:
        return self._state.status

    @property
    def is_dirty(self) -> bool:
        return self._state.is_dirty

    @property
    def last_saved_content(self) -> str:
        return self._state.last_saved_content

    @property
    def last_save_timestamp(self) -> float:
        return self._state.last_save_timestamp

    @property
    def error(self) -> WriteError | None:
        return self._state.error

    @property
    def timer_pending(self) -> bool:
        """Whether a debounced write is scheduled."""
        return self._timer is not None

    @property
    def current_content(self) -> str:
        """Latest known content: the pending edit if any, else the saved content."""
        pending = self._state.pending_content
        return pending if pending is not None else self._state.last_saved_content

    def save(self, content: str) -> None:
        """Record an edit and (re)start the debounce timer."""
        state = self._state
        if content == state.last_saved_content and not self._writing:
            self._revert()
            return

        state.pending_content = content
        state.status = SaveStatus.UNSAVED
        self._clear_timer()
        if self.autosave:
            loop = asyncio.get_running_loop()
            self._timer = loop.call_later(self.delay, self._on_timer)

    async def save_now(self, content: str) -> None:
        """Write content immediately, bypassing the debounce timer.

        Waits for a write already in flight, then writes the latest content if it
        still differs from what was just persisted.

        Raises:
            WriteError: If the write fails
        """
        state = self._state
        if content == state.last_saved_content and not self._writing:
            self._revert()
            return

        self._clear_timer()
        state.pending_content = content
        state.status = SaveStatus.UNSAVED
        await self._write_pending(raise_errors=True)

    async def flush(self) -> None:
        """Write pending content now, if there is any.

        Raises:
            WriteError: If the write fails
        """
        pending = self._state.pending_content
        if pending is None:
            self._clear_timer()
            await self._wait_for_flush_task()
            return
        await self.save_now(pending)

    def cancel(self) -> None:
        """Drop the scheduled write without discarding the pending edit."""
        self._clear_timer()

    def mark_loaded(self, content: str) -> None:
        """Adopt content freshly read from storage as the saved content."""
        if self._state.status is not SaveStatus.SAVED:
            msg = f"Cannot replace content of {self.path} while {self.status.value}"
            raise RuntimeError(msg)
        self._state.last_saved_content = content

    async def aclose(self) -> None:
        """Cancel the timer and wait for a debounced write in flight."""
        self._clear_timer()
        await self._wait_for_flush_task()

    def _revert(self) -> None:
        """Content is back to what storage holds, nothing left to write."""
        self._clear_timer()
        state = self._state
        if state.pending_content is not None:
            state.pending_content = None
            state.status = SaveStatus.SAVED
            state.error = None

    def _clear_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _on_timer(self) -> None:
        self._timer = None
        self._flush_task = asyncio.create_task(self._write_pending(raise_errors=False))

    async def _wait_for_flush_task(self) -> None:
        task = self._flush_task
        if task is not None and not task.done():
            await asyncio.shield(task)

    async def _write_pending(self, *, raise_errors: bool) -> None:
        async with self._write_lock:
            state = self._state
            content = state.pending_content
            if content is None:
                return
            if content == state.last_saved_content:
                state.pending_content = None
                state.status = SaveStatus.SAVED
                state.error = None
                return

            state.status = SaveStatus.SAVING
            self._writing = True
            try:
                await self._persist(content)
            except WriteError as exc:
                self._handle_failure(exc)
                if raise_errors:
                    raise
                return
            finally:
                self._writing = False

            state.last_saved_content = content
            state.last_save_timestamp = self.clock()
            state.error = None
            if state.pending_content == content:
                state.pending_content = None
                state.status = SaveStatus.SAVED
            else:
                # Edited while the write was in flight
                state.status = SaveStatus.UNSAVED
            self._log.info("Saved document", size=len(content))
            self._notify_success()

    async def _persist(self, content: str) -> None:
        try:
            await self.persistence.write(self.path, content)
        except WriteError:
            raise
        except Exception as exc:
            raise WriteError(self.path, str(exc)) from exc

    def _handle_failure(self, exc: WriteError) -> None:
        state = self._state
        state.status = SaveStatus.ERROR
        state.error = exc
        self._log.error("Save failed", error=str(exc))
        if self.on_save_error is not None:
            try:
                self.on_save_error(exc)
            except Exception:
                self._log.exception("Save error callback failed")

    def _notify_success(self) -> None:
        if self.on_save_success is not None:
            try:
                self.on_save_success()
            except Exception:
                self._log.exception("Save success callback failed")

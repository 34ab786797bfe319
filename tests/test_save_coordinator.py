"""Tests for debounced saving."""

from __future__ import annotations

import asyncio

from conftest import DEBOUNCE, DOC_A, ControlledPersistence, ManualClock
import pytest

from docsync import SaveCoordinator, SaveStatus, WriteError


def make_coordinator(
    persistence: ControlledPersistence,
    clock: ManualClock,
    **kwargs,
) -> SaveCoordinator:
    return SaveCoordinator(
        DOC_A,
        persistence,
        delay=DEBOUNCE,
        clock=clock,
        initial_content="alpha",
        **kwargs,
    )


async def settle(factor: float = 3) -> None:
    """Wait well past the debounce delay."""
    await asyncio.sleep(DEBOUNCE * factor)


class ReadOnlyPersistence(ControlledPersistence):
    """Backend failing with a plain OS error rather than WriteError."""

    async def write(self, path: str, content: str) -> None:
        raise PermissionError(13, "Permission denied", path)


class TestDebounce:
    """Coalescing of edits into one write."""

    async def test_edits_within_window_write_once(self, persistence, clock):
        """Test that rapid edits produce exactly one write with the last content."""
        coordinator = make_coordinator(persistence, clock)

        coordinator.save("a")
        coordinator.save("ab")
        coordinator.save("abc")
        assert coordinator.status is SaveStatus.UNSAVED
        assert persistence.writes == []

        await settle()

        assert persistence.writes_for(DOC_A) == ["abc"]
        assert coordinator.status is SaveStatus.SAVED
        assert coordinator.last_saved_content == "abc"
        assert coordinator.last_save_timestamp == clock.now
        assert not coordinator.is_dirty

    async def test_edit_restarts_timer(self, persistence, clock):
        """Test that each edit pushes the write further out."""
        coordinator = make_coordinator(persistence, clock)

        coordinator.save("one")
        await asyncio.sleep(DEBOUNCE * 0.6)
        coordinator.save("two")
        await asyncio.sleep(DEBOUNCE * 0.6)
        assert persistence.writes == []

        await settle()
        assert persistence.writes_for(DOC_A) == ["two"]

    async def test_saving_unchanged_content_is_noop(self, persistence, clock):
        coordinator = make_coordinator(persistence, clock)

        coordinator.save("alpha")

        assert coordinator.status is SaveStatus.SAVED
        assert not coordinator.timer_pending
        await settle()
        assert persistence.writes == []

    async def test_reverting_edit_drops_pending_write(self, persistence, clock):
        coordinator = make_coordinator(persistence, clock)

        coordinator.save("changed")
        coordinator.save("alpha")

        assert coordinator.status is SaveStatus.SAVED
        assert coordinator.state.pending_content is None
        await settle()
        assert persistence.writes == []

    async def test_edit_during_write_is_written_afterwards(self, persistence, clock):
        persistence.write_delay = DEBOUNCE * 2
        coordinator = make_coordinator(persistence, clock)

        coordinator.save("first")
        await asyncio.sleep(DEBOUNCE * 1.5)
        assert coordinator.status is SaveStatus.SAVING

        coordinator.save("second")
        assert coordinator.status is SaveStatus.UNSAVED

        await asyncio.sleep(DEBOUNCE * 8)
        assert persistence.writes_for(DOC_A) == ["first", "second"]
        assert coordinator.status is SaveStatus.SAVED
        assert persistence.max_concurrent_writes == 1

    async def test_autosave_disabled_waits_for_flush(self, persistence, clock):
        coordinator = make_coordinator(persistence, clock, autosave=False)

        coordinator.save("draft")
        await settle()
        assert persistence.writes == []
        assert coordinator.status is SaveStatus.UNSAVED

        await coordinator.flush()
        assert persistence.writes_for(DOC_A) == ["draft"]
        assert coordinator.status is SaveStatus.SAVED


class TestSaveNow:
    """Immediate saves and their interaction with the debounce timer."""

    async def test_save_now_cancels_timer(self, persistence, clock):
        coordinator = make_coordinator(persistence, clock)

        coordinator.save("debounced")
        await coordinator.save_now("manual")
        await settle()

        assert persistence.writes_for(DOC_A) == ["manual"]
        assert coordinator.status is SaveStatus.SAVED

    async def test_consecutive_save_now_persists_latest(self, persistence, clock):
        coordinator = make_coordinator(persistence, clock)

        await coordinator.save_now("v1")
        await coordinator.save_now("v2")

        assert persistence.files[DOC_A] == "v2"
        writes = persistence.writes_for(DOC_A)
        assert len(writes) == len(set(writes))

    async def test_concurrent_save_now_never_overlaps(self, persistence, clock):
        persistence.write_delay = DEBOUNCE
        coordinator = make_coordinator(persistence, clock)

        await asyncio.gather(coordinator.save_now("v1"), coordinator.save_now("v2"))

        assert persistence.files[DOC_A] == "v2"
        assert persistence.max_concurrent_writes == 1
        writes = persistence.writes_for(DOC_A)
        assert len(writes) == len(set(writes))

    async def test_save_now_while_debounced_write_in_flight(self, persistence, clock):
        """Test that save_now waits for the running write, then writes once more."""
        persistence.write_delay = DEBOUNCE * 2
        coordinator = make_coordinator(persistence, clock)

        coordinator.save("debounced")
        await asyncio.sleep(DEBOUNCE * 1.5)
        assert coordinator.status is SaveStatus.SAVING

        await coordinator.save_now("manual")

        assert persistence.writes_for(DOC_A) == ["debounced", "manual"]
        assert persistence.max_concurrent_writes == 1
        assert coordinator.status is SaveStatus.SAVED

    async def test_save_now_with_in_flight_content_skips_duplicate(self, persistence, clock):
        persistence.write_delay = DEBOUNCE * 2
        coordinator = make_coordinator(persistence, clock)

        coordinator.save("same")
        await asyncio.sleep(DEBOUNCE * 1.5)
        await coordinator.save_now("same")

        assert persistence.writes_for(DOC_A) == ["same"]

    async def test_success_callback(self, persistence, clock):
        calls: list[str] = []
        coordinator = make_coordinator(
            persistence, clock, on_save_success=lambda: calls.append("ok")
        )

        await coordinator.save_now("text")

        assert calls == ["ok"]


class TestCancel:
    async def test_cancel_keeps_dirty_state(self, persistence, clock):
        coordinator = make_coordinator(persistence, clock)

        coordinator.save("draft")
        coordinator.cancel()
        await settle()

        assert persistence.writes == []
        assert coordinator.status is SaveStatus.UNSAVED
        assert coordinator.state.pending_content == "draft"
        assert coordinator.current_content == "draft"

    async def test_resume_after_cancel(self, persistence, clock):
        coordinator = make_coordinator(persistence, clock)

        coordinator.save("draft")
        coordinator.cancel()
        await coordinator.flush()

        assert persistence.writes_for(DOC_A) == ["draft"]
        assert coordinator.status is SaveStatus.SAVED


class TestFailures:
    async def test_failed_debounced_write_keeps_content(self, persistence, clock):
        errors: list[WriteError] = []
        persistence.fail_writes = True
        coordinator = make_coordinator(persistence, clock, on_save_error=errors.append)

        coordinator.save("precious")
        await settle()

        state = coordinator.state
        assert state.status is SaveStatus.ERROR
        assert state.pending_content == "precious"
        assert isinstance(state.error, WriteError)
        assert state.last_saved_content == "alpha"
        assert state.last_save_timestamp == 0.0
        assert errors == [state.error]

    async def test_edit_after_error_retries(self, persistence, clock):
        persistence.fail_writes = True
        coordinator = make_coordinator(persistence, clock)
        coordinator.save("first")
        await settle()
        assert coordinator.status is SaveStatus.ERROR

        persistence.fail_writes = False
        coordinator.save("second")
        assert coordinator.status is SaveStatus.UNSAVED
        await settle()

        assert persistence.writes_for(DOC_A) == ["second"]
        assert coordinator.status is SaveStatus.SAVED
        assert coordinator.error is None

    async def test_save_now_raises_write_error(self, persistence, clock):
        persistence.fail_writes = True
        coordinator = make_coordinator(persistence, clock)

        with pytest.raises(WriteError, match="disk full"):
            await coordinator.save_now("precious")

        assert coordinator.status is SaveStatus.ERROR
        assert coordinator.state.pending_content == "precious"

    async def test_unexpected_backend_error_becomes_write_error(self, clock):
        errors: list[WriteError] = []
        persistence = ReadOnlyPersistence(files={DOC_A: "alpha"})
        coordinator = make_coordinator(persistence, clock, on_save_error=errors.append)

        coordinator.save("precious")
        await settle()

        state = coordinator.state
        assert state.status is SaveStatus.ERROR
        assert state.pending_content == "precious"
        assert isinstance(state.error, WriteError)
        assert isinstance(state.error.__cause__, PermissionError)
        assert errors == [state.error]

    async def test_save_now_wraps_unexpected_backend_error(self, clock):
        coordinator = make_coordinator(ReadOnlyPersistence(files={DOC_A: "alpha"}), clock)

        with pytest.raises(WriteError, match="Permission denied"):
            await coordinator.save_now("precious")

        assert coordinator.status is SaveStatus.ERROR

    async def test_failing_callback_does_not_break_save(self, persistence, clock):
        def explode() -> None:
            raise RuntimeError("boom")

        coordinator = make_coordinator(persistence, clock, on_save_success=explode)

        await coordinator.save_now("text")

        assert coordinator.status is SaveStatus.SAVED


class TestMarkLoaded:
    def test_replaces_saved_content(self, persistence, clock):
        coordinator = make_coordinator(persistence, clock)

        coordinator.mark_loaded("external")

        assert coordinator.last_saved_content == "external"
        assert coordinator.current_content == "external"
        assert coordinator.last_save_timestamp == 0.0

    async def test_refuses_while_dirty(self, persistence, clock):
        coordinator = make_coordinator(persistence, clock)
        coordinator.save("draft")

        with pytest.raises(RuntimeError):
            coordinator.mark_loaded("external")
        coordinator.cancel()

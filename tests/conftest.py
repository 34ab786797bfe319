"""Test configuration and shared fixtures."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field

import pytest

from docsync import (
    ChangeReconciler,
    DocumentSession,
    MemoryNotificationService,
    MemoryPersistence,
    SyncConfig,
    SyncEngine,
    WatcherRegistry,
    WriteError,
)
from docsync.exceptions import ReadError


DEBOUNCE = 0.05
"""Debounce delay used throughout the tests, in seconds."""

FOLDER = "/workspace/notes"
DOC_A = f"{FOLDER}/a.md"
DOC_B = f"{FOLDER}/b.md"
OTHER_FOLDER = "/workspace/diagrams"
DOC_C = f"{OTHER_FOLDER}/c.mmd"


@dataclass
class ManualClock:
    """Clock that only moves when told to."""

    now: float = 1_000.0

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@dataclass
class ControlledPersistence(MemoryPersistence):
    """Memory persistence with adjustable latency and injectable failures."""

    write_delay: float = 0.0
    fail_writes: bool = False
    fail_reads: bool = False
    read_gate: asyncio.Event | None = None
    """If set, reads block until the event is set."""

    active_writes: int = 0
    max_concurrent_writes: int = 0
    reads: list[str] = field(default_factory=list)

    async def read(self, path: str) -> str:
        self.reads.append(path)
        if self.read_gate is not None:
            await self.read_gate.wait()
        if self.fail_reads:
            raise ReadError(path, "permission denied")
        return await super().read(path)

    async def write(self, path: str, content: str) -> None:
        self.active_writes += 1
        self.max_concurrent_writes = max(self.max_concurrent_writes, self.active_writes)
        try:
            if self.write_delay:
                await asyncio.sleep(self.write_delay)
            if self.fail_writes:
                raise WriteError(path, "disk full")
            await super().write(path, content)
        finally:
            self.active_writes -= 1


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def persistence() -> ControlledPersistence:
    """Storage seeded with a few documents."""
    return ControlledPersistence(
        files={DOC_A: "alpha", DOC_B: "bravo", DOC_C: "graph TD"},
    )


@pytest.fixture
def notifications() -> MemoryNotificationService:
    return MemoryNotificationService()


@pytest.fixture
def config() -> SyncConfig:
    return SyncConfig(debounce_delay=DEBOUNCE, protection_window=2.0)


@pytest.fixture
def watchers(notifications: MemoryNotificationService) -> WatcherRegistry:
    return WatcherRegistry(notifications)


@pytest.fixture
def reconciler(
    watchers: WatcherRegistry,
    persistence: ControlledPersistence,
    clock: ManualClock,
) -> ChangeReconciler:
    return ChangeReconciler(watchers, persistence, protection_window=2.0, clock=clock)


@pytest.fixture
def session(
    persistence: ControlledPersistence,
    watchers: WatcherRegistry,
    reconciler: ChangeReconciler,
    config: SyncConfig,
) -> DocumentSession:
    return DocumentSession(persistence, watchers, reconciler, config=config)


@pytest.fixture
async def engine(
    config: SyncConfig,
    persistence: ControlledPersistence,
    notifications: MemoryNotificationService,
    clock: ManualClock,
):
    """Engine running on in-memory services."""
    async with SyncEngine(
        config,
        persistence=persistence,
        notifications=notifications,
        clock=clock,
    ) as engine:
        yield engine

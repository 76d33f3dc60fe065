"""Pytest configuration and fixtures."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest
import pytest_asyncio

from pgmq_client import InMemoryStore, QueueClient, create_client


class FakeClock:
    """Clock for InMemoryStore that only moves when told to."""

    def __init__(self, now: datetime | None = None) -> None:
        self.now = now or datetime.now(UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, delta: timedelta | float) -> None:
        if not isinstance(delta, timedelta):
            delta = timedelta(seconds=delta)
        self.now += delta


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store(clock: FakeClock) -> InMemoryStore:
    return InMemoryStore(clock=clock)


@pytest.fixture
def client(store: InMemoryStore) -> QueueClient:
    return create_client(store)


@pytest_asyncio.fixture
async def queue(client: QueueClient) -> str:
    """A freshly created queue name."""
    await client.create_queue("jobs")
    return "jobs"

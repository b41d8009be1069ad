"""
Shared fixtures for the message board tests.

Stores run against a deterministic clock, and the security manager uses the
minimum bcrypt cost so hashing stays fast.
"""

import pytest
import pytest_asyncio

from database import SQLiteThreadStore
from forum import ThreadService
from security import SecurityManager
from threads import MemoryThreadStore


class FakeClock:
    """Clock that advances by a fixed step on every reading."""

    def __init__(self, start: float = 1_700_000_000.0, step: float = 1.0):
        self.now = start
        self.step = step

    def __call__(self) -> float:
        current = self.now
        self.now += self.step
        return current


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def security_manager():
    return SecurityManager(rounds=4)


@pytest_asyncio.fixture(params=["memory", "sqlite"])
async def store(request, clock, tmp_path):
    """Each store test runs once per backend."""
    if request.param == "memory":
        backend = MemoryThreadStore(clock=clock)
    else:
        backend = SQLiteThreadStore(str(tmp_path / "board.db"), clock=clock)
    await backend.initialize()
    yield backend
    await backend.close()


@pytest_asyncio.fixture
async def service(store, security_manager):
    return ThreadService(store, security_manager)

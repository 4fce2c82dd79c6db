"""pairsync 测试配置 -- 共享 fixture"""

import pytest
import pytest_asyncio
from pairsync.core.cache import SnapshotCache
from pairsync.core.config import SyncConfig
from pairsync.remote.memory import InMemoryBackend


class FakeClock:
    """可手动推进的单调时钟"""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def sync_config() -> SyncConfig:
    return SyncConfig()


@pytest.fixture
def cache(clock: FakeClock) -> SnapshotCache:
    return SnapshotCache(clock=clock)


@pytest.fixture
def backend() -> InMemoryBackend:
    return InMemoryBackend()


@pytest_asyncio.fixture
async def seeded_backend(backend: InMemoryBackend) -> InMemoryBackend:
    """p1 (alice) 与 p2 (bob) 已注册，p1 已发起会话 p1:p2"""
    await backend.create_profile("p1", "alice", "Alice")
    await backend.create_profile("p2", "bob", "Bob")
    await backend.add_conversation("p1", "p1:p2")
    return backend

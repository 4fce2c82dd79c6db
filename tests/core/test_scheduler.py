"""ReconciliationScheduler 单元测试

时钟与拉取函数均为测试替身，通过 tick() + wait_idle() 确定性驱动。
"""

import asyncio
from unittest.mock import AsyncMock

from pairsync.core.cache import SnapshotCache
from pairsync.core.config import SyncConfig
from pairsync.core.exceptions import TransportError
from pairsync.core.models import FetchState, ResourceKey
from pairsync.core.scheduler import ReconciliationScheduler

CONVERSATIONS = ResourceKey.conversations("p1")
MESSAGES = ResourceKey.messages("p1:p2")


def _scheduler(cache, loader, clock, config=None) -> ReconciliationScheduler:
    return ReconciliationScheduler(cache, loader, config or SyncConfig(), clock=clock)


class TestScheduling:
    """进入 FETCHING 的条件"""

    async def test_no_subscribers_no_fetch(self, cache, clock):
        loader = AsyncMock(return_value=[])
        scheduler = _scheduler(cache, loader, clock)

        assert scheduler.tick() == []
        loader.assert_not_awaited()

    async def test_subscribed_key_fetched_on_tick(self, cache, clock):
        loader = AsyncMock(return_value=["p1:p2"])
        scheduler = _scheduler(cache, loader, clock)

        scheduler.add_subscriber(CONVERSATIONS)
        assert scheduler.tick() == [CONVERSATIONS]
        assert scheduler.state_of(CONVERSATIONS) == FetchState.FETCHING
        await scheduler.wait_idle()

        assert cache.read(CONVERSATIONS) == ["p1:p2"]
        assert cache.entry(CONVERSATIONS).fetched_at == clock()
        assert scheduler.state_of(CONVERSATIONS) == FetchState.IDLE

    async def test_refetch_after_ttl(self, cache, clock):
        loader = AsyncMock(return_value=[])
        scheduler = _scheduler(cache, loader, clock)
        scheduler.add_subscriber(CONVERSATIONS)
        scheduler.tick()
        await scheduler.wait_idle()

        clock.advance(4.9)
        assert scheduler.tick() == []

        clock.advance(0.1)
        assert scheduler.tick() == [CONVERSATIONS]
        await scheduler.wait_idle()
        assert loader.await_count == 2

    async def test_messages_use_shorter_ttl(self, cache, clock):
        loader = AsyncMock(return_value=[])
        scheduler = _scheduler(cache, loader, clock)
        scheduler.add_subscriber(MESSAGES)
        scheduler.add_subscriber(CONVERSATIONS)
        scheduler.tick()
        await scheduler.wait_idle()

        clock.advance(3)
        assert scheduler.tick() == [MESSAGES]
        await scheduler.wait_idle()

    async def test_search_has_staleness_floor(self, cache, clock):
        key = ResourceKey.search("abc")
        loader = AsyncMock(return_value=[])
        scheduler = _scheduler(cache, loader, clock)
        scheduler.add_subscriber(key)
        scheduler.tick()
        await scheduler.wait_idle()

        clock.advance(299)
        assert scheduler.tick() == []
        clock.advance(1)
        assert scheduler.tick() == [key]
        await scheduler.wait_idle()
        assert loader.await_count == 2

    async def test_search_without_ttl_never_stale(self, cache, clock):
        key = ResourceKey.search("abc")
        loader = AsyncMock(return_value=[])
        scheduler = _scheduler(cache, loader, clock, SyncConfig(search_ttl_s=None))
        scheduler.add_subscriber(key)
        scheduler.tick()
        await scheduler.wait_idle()

        clock.advance(10_000)
        assert scheduler.tick() == []
        assert loader.await_count == 1

    async def test_independent_keys_fetch_concurrently(self, cache, clock):
        gate = asyncio.Event()

        async def loader(key):
            await gate.wait()
            return []

        scheduler = _scheduler(cache, loader, clock)
        scheduler.add_subscriber(CONVERSATIONS)
        scheduler.add_subscriber(MESSAGES)

        assert set(scheduler.tick()) == {CONVERSATIONS, MESSAGES}
        assert scheduler.is_fetching(CONVERSATIONS)
        assert scheduler.is_fetching(MESSAGES)
        gate.set()
        await scheduler.wait_idle()

    async def test_held_key_not_fetched(self, cache, clock):
        loader = AsyncMock(return_value=[])
        scheduler = _scheduler(cache, loader, clock)
        scheduler.add_subscriber(CONVERSATIONS)

        cache.hold(CONVERSATIONS)
        assert scheduler.tick() == []
        cache.release(CONVERSATIONS)
        assert scheduler.tick() == [CONVERSATIONS]
        await scheduler.wait_idle()


class TestBackoff:
    """失败 -> BACKOFF -> IDLE"""

    async def test_failure_enters_backoff(self, cache, clock):
        loader = AsyncMock(side_effect=[TransportError("memory://x"), ["p1:p2"]])
        scheduler = _scheduler(cache, loader, clock)
        scheduler.add_subscriber(CONVERSATIONS)

        scheduler.tick()
        await scheduler.wait_idle()

        assert scheduler.state_of(CONVERSATIONS) == FetchState.BACKOFF
        assert cache.entry(CONVERSATIONS).error is not None
        assert cache.read(CONVERSATIONS, None) is None

        # 退避期内不重试
        clock.advance(4)
        assert scheduler.tick() == []

        clock.advance(1)
        assert scheduler.tick() == [CONVERSATIONS]
        await scheduler.wait_idle()
        assert cache.read(CONVERSATIONS) == ["p1:p2"]
        assert scheduler.state_of(CONVERSATIONS) == FetchState.IDLE

    async def test_failure_keeps_cached_value(self, cache, clock):
        loader = AsyncMock(side_effect=[["p1:p2"], RuntimeError("down")])
        scheduler = _scheduler(cache, loader, clock)
        scheduler.add_subscriber(CONVERSATIONS)
        scheduler.tick()
        await scheduler.wait_idle()

        clock.advance(5)
        scheduler.tick()
        await scheduler.wait_idle()

        assert cache.read(CONVERSATIONS) == ["p1:p2"]
        assert scheduler.state_of(CONVERSATIONS) == FetchState.BACKOFF

    async def test_untimed_resource_uses_backoff_floor(self, cache, clock):
        key = ResourceKey.search("abc")
        loader = AsyncMock(side_effect=[TransportError("memory://search"), []])
        config = SyncConfig(search_ttl_s=None, backoff_floor_s=7)
        scheduler = _scheduler(cache, loader, clock, config)
        scheduler.add_subscriber(key)
        scheduler.tick()
        await scheduler.wait_idle()

        clock.advance(6)
        assert scheduler.tick() == []
        clock.advance(1)
        assert scheduler.tick() == [key]
        await scheduler.wait_idle()


class TestUnsubscribe:
    """订阅归零后的行为"""

    async def test_no_pulls_after_unsubscribe(self, cache, clock):
        """取消订阅后连续 3 个 TTL 都不再拉取"""
        loader = AsyncMock(return_value=[])
        scheduler = _scheduler(cache, loader, clock)
        scheduler.add_subscriber(CONVERSATIONS)
        scheduler.tick()
        await scheduler.wait_idle()
        scheduler.remove_subscriber(CONVERSATIONS)

        for _ in range(30):
            clock.advance(0.5)
            scheduler.tick()
        await scheduler.wait_idle()

        assert loader.await_count == 1
        assert not scheduler.is_scheduled(CONVERSATIONS)

    async def test_in_flight_result_still_written(self, cache, clock):
        gate = asyncio.Event()

        async def loader(key):
            await gate.wait()
            return ["late"]

        scheduler = _scheduler(cache, loader, clock)
        scheduler.add_subscriber(CONVERSATIONS)
        scheduler.tick()
        scheduler.remove_subscriber(CONVERSATIONS)

        gate.set()
        await scheduler.wait_idle()
        assert cache.read(CONVERSATIONS) == ["late"]

    async def test_subscriber_counting(self, cache, clock):
        scheduler = _scheduler(cache, AsyncMock(return_value=[]), clock)
        scheduler.add_subscriber(CONVERSATIONS)
        scheduler.add_subscriber(CONVERSATIONS)
        scheduler.remove_subscriber(CONVERSATIONS)
        assert scheduler.subscriber_count(CONVERSATIONS) == 1
        scheduler.remove_subscriber(CONVERSATIONS)
        assert scheduler.subscriber_count(CONVERSATIONS) == 0

    async def test_unobserved_key_evicted(self, cache, clock):
        loader = AsyncMock(return_value=["p1:p2"])
        scheduler = _scheduler(cache, loader, clock)
        scheduler.add_subscriber(CONVERSATIONS)
        scheduler.tick()
        await scheduler.wait_idle()
        scheduler.remove_subscriber(CONVERSATIONS)

        clock.advance(299)
        scheduler.tick()
        assert cache.read(CONVERSATIONS) == ["p1:p2"]

        clock.advance(1)
        scheduler.tick()
        assert cache.entry(CONVERSATIONS) is None


class TestForcedRefresh:
    """request_refresh()"""

    async def test_refresh_fresh_key(self, cache, clock):
        loader = AsyncMock(return_value=[])
        scheduler = _scheduler(cache, loader, clock)
        scheduler.add_subscriber(CONVERSATIONS)
        scheduler.tick()
        await scheduler.wait_idle()

        assert scheduler.request_refresh(CONVERSATIONS)
        await scheduler.wait_idle()
        assert loader.await_count == 2

    async def test_refresh_during_fetch_runs_after(self, cache, clock):
        gate = asyncio.Event()
        calls = []

        async def loader(key):
            calls.append(key)
            await gate.wait()
            return []

        scheduler = _scheduler(cache, loader, clock)
        scheduler.add_subscriber(CONVERSATIONS)
        scheduler.tick()
        assert not scheduler.request_refresh(CONVERSATIONS)

        gate.set()
        await scheduler.wait_idle()
        assert len(calls) == 2

    async def test_refresh_unscheduled_key_only_invalidates(self, cache, clock):
        loader = AsyncMock(return_value=[])
        scheduler = _scheduler(cache, loader, clock)
        cache.write(CONVERSATIONS, [], fetched_at=clock())

        assert not scheduler.request_refresh(CONVERSATIONS)
        assert cache.is_stale(CONVERSATIONS, 5.0)
        loader.assert_not_awaited()


class TestLifecycle:
    async def test_start_and_stop(self, cache, clock):
        loader = AsyncMock(return_value=[])
        scheduler = _scheduler(cache, loader, clock, SyncConfig(tick_interval_s=0.01))
        scheduler.add_subscriber(CONVERSATIONS)

        scheduler.start()
        for _ in range(50):
            if loader.await_count:
                break
            await asyncio.sleep(0.01)
        await scheduler.stop()

        assert loader.await_count >= 1

"""Reconciliation Scheduler -- 按 ResourceKey 周期性拉取快照

远端只提供请求/响应式读取，没有订阅原语，新鲜度靠按间隔轮询近似。
每个 key 一个状态机：

    IDLE -> FETCHING -> IDLE              (成功)
    IDLE -> FETCHING -> BACKOFF -> IDLE   (失败，退避一个 TTL 间隔)

进入 FETCHING 的条件：订阅者 >= 1、IDLE、未被变更引擎 hold，
且缓存陈旧或有强制刷新请求。订阅者归零的 key 立即退出调度；
已在途的拉取不取消，结果照常写入缓存。
"""

import asyncio
import contextlib
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

import structlog

from .cache import SnapshotCache
from .config import SyncConfig
from .models.enums import FetchState
from .models.resource import ResourceKey

log = structlog.get_logger()

Loader = Callable[[ResourceKey], Awaitable[Any]]


@dataclass
class _KeySchedule:
    """单个 key 的调度信息"""

    subscribers: int = 0
    # 非 None 表示处于 BACKOFF，到期后回到 IDLE
    backoff_until: float | None = None
    # 有待执行的强制刷新
    force: bool = False


class ReconciliationScheduler:
    """轮询调度器

    时钟可注入，tick() 执行一轮调度，便于在测试中确定性地驱动。
    """

    def __init__(
        self,
        cache: SnapshotCache,
        loader: Loader,
        config: SyncConfig | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._cache = cache
        self._loader = loader
        self._config = config or SyncConfig()
        self._clock = clock
        self._keys: dict[ResourceKey, _KeySchedule] = {}
        self._in_flight: dict[ResourceKey, asyncio.Task] = {}
        # 无订阅者的 key -> 失去最后一个订阅者的时刻（用于缓存淘汰）
        self._unobserved_since: dict[ResourceKey, float] = {}
        self._runner: asyncio.Task | None = None

    # ---- 订阅管理 ----

    def add_subscriber(self, key: ResourceKey) -> None:
        schedule = self._keys.setdefault(key, _KeySchedule())
        schedule.subscribers += 1
        self._unobserved_since.pop(key, None)
        if schedule.subscribers == 1:
            log.debug("key_scheduled", key=str(key))

    def remove_subscriber(self, key: ResourceKey) -> None:
        schedule = self._keys.get(key)
        if schedule is None:
            return
        schedule.subscribers -= 1
        if schedule.subscribers <= 0:
            # 退出调度；在途拉取不取消
            del self._keys[key]
            self._unobserved_since[key] = self._clock()
            log.debug("key_unscheduled", key=str(key), in_flight=key in self._in_flight)

    def mark_unobserved(self, key: ResourceKey) -> None:
        """登记一个不经订阅读取的 key（如搜索结果），gc_after_s 后淘汰"""
        if key not in self._keys:
            self._unobserved_since[key] = self._clock()

    def subscriber_count(self, key: ResourceKey) -> int:
        schedule = self._keys.get(key)
        return schedule.subscribers if schedule else 0

    def is_scheduled(self, key: ResourceKey) -> bool:
        return key in self._keys

    def state_of(self, key: ResourceKey) -> FetchState:
        if key in self._in_flight:
            return FetchState.FETCHING
        schedule = self._keys.get(key)
        if schedule is not None and schedule.backoff_until is not None:
            return FetchState.BACKOFF
        return FetchState.IDLE

    def is_fetching(self, key: ResourceKey) -> bool:
        return key in self._in_flight

    # ---- 调度 ----

    def request_refresh(self, key: ResourceKey) -> bool:
        """强制刷新：标记缓存陈旧，key 在调度中则尽快拉取

        Returns:
            True 表示已立即发起拉取
        """
        self._cache.invalidate(key)
        schedule = self._keys.get(key)
        if schedule is None:
            return False
        schedule.force = True
        return self._maybe_start(key, self._clock())

    def tick(self) -> list[ResourceKey]:
        """执行一轮调度

        Returns:
            本轮发起拉取的 key 列表
        """
        now = self._clock()
        started = [key for key in list(self._keys) if self._maybe_start(key, now)]
        self._collect_unobserved(now)
        return started

    def _maybe_start(self, key: ResourceKey, now: float) -> bool:
        schedule = self._keys.get(key)
        if schedule is None or schedule.subscribers <= 0:
            return False
        if key in self._in_flight or self._cache.is_held(key):
            return False

        if schedule.backoff_until is not None:
            if now < schedule.backoff_until:
                return False
            # BACKOFF -> IDLE
            schedule.backoff_until = None

        ttl = self._config.ttl_for(key.resource)
        if not (schedule.force or self._cache.is_stale(key, ttl, now)):
            return False

        schedule.force = False
        ticket = self._cache.begin_fetch(key)
        self._in_flight[key] = asyncio.create_task(self._fetch(key, now, ticket))
        return True

    async def _fetch(self, key: ResourceKey, started_at: float, ticket: int) -> None:
        """拉取单个 key；失败只记录，不向消费者抛出"""
        self._cache.set_in_flight(key, True)
        try:
            value = await self._loader(key)
        except Exception as e:
            schedule = self._keys.get(key)
            backoff_s = self._config.backoff_for(key.resource)
            if schedule is not None:
                schedule.backoff_until = self._clock() + backoff_s
            self._cache.record_failure(key, str(e))
            log.warning(
                "resource_fetch_failed",
                key=str(key),
                error=str(e),
                error_type=type(e).__name__,
                backoff_s=backoff_s,
            )
        else:
            written = self._cache.write(key, value, started_at, ticket=ticket)
            log.debug("resource_fetched", key=str(key), written=written)
        finally:
            self._in_flight.pop(key, None)
            self._cache.set_in_flight(key, False)

        # 拉取期间收到的强制刷新
        schedule = self._keys.get(key)
        if schedule is not None and schedule.force:
            self._maybe_start(key, self._clock())

    def _collect_unobserved(self, now: float) -> None:
        """淘汰长时间无人观察的缓存条目"""
        for key, since in list(self._unobserved_since.items()):
            if now - since >= self._config.gc_after_s:
                del self._unobserved_since[key]
                self._cache.evict(key)

    async def wait_idle(self) -> None:
        """等待所有在途拉取（含其触发的后续拉取）完成"""
        while self._in_flight:
            await asyncio.gather(*list(self._in_flight.values()), return_exceptions=True)

    # ---- 生命周期 ----

    async def _run(self) -> None:
        while True:
            self.tick()
            await asyncio.sleep(self._config.tick_interval_s)

    def start(self) -> None:
        """启动后台调度循环"""
        if self._runner is None or self._runner.done():
            self._runner = asyncio.create_task(self._run())
            log.info("scheduler_started", tick_interval_s=self._config.tick_interval_s)

    async def stop(self) -> None:
        """停止调度循环并取消在途拉取"""
        tasks = [t for t in (self._runner, *self._in_flight.values()) if t is not None]
        for task in tasks:
            task.cancel()
        for task in tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._runner = None
        self._in_flight.clear()
        log.info("scheduler_stopped")

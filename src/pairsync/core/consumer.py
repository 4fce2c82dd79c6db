"""SyncClient -- 面向消费者的同步接口

组装 SnapshotCache / ChangeHub / ReconciliationScheduler / 变更引擎：

    subscribe(key)      -> Subscription（订阅期间该 key 被周期性拉取）
    current_value(key)  -> Snapshot（从不阻塞在拉取上）
    mutate(kind, ...)   -> MutationOutcome（预期内的失败不抛异常）
"""

import asyncio
import time
from collections.abc import AsyncIterator, Callable, Mapping
from typing import Any

import structlog
from pydantic import BaseModel

from pairsync.remote.protocols import RemoteStore

from .cache import SnapshotCache
from .config import SyncConfig
from .exceptions import InvalidInput, MutationInProgress
from .hub import ChangeHub
from .identity import canonicalize
from .loaders import ResourceLoader
from .models import (
    MutationKind,
    MutationOutcome,
    MutationStatus,
    ResourceKey,
    Snapshot,
    SnapshotStatus,
    UserProfile,
)
from .mutations import OptimisticMutationEngine, SendMessagePayload
from .scheduler import ReconciliationScheduler

log = structlog.get_logger()

# updates() 的结束标记
_CLOSED = object()


class Subscription:
    """单个 key 的订阅句柄"""

    def __init__(self, client: "SyncClient", key: ResourceKey) -> None:
        self.key = key
        self._client = client
        self._queue: asyncio.Queue = client.hub.subscribe(key)
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def current(self) -> Snapshot:
        return self._client.current_value(self.key)

    def unsubscribe(self) -> None:
        """取消订阅；重复调用无副作用"""
        if not self._active:
            return
        self._active = False
        self._client.hub.unsubscribe(self.key, self._queue)
        self._client.scheduler.remove_subscriber(self.key)
        if self._queue.full():
            self._queue.get_nowait()
        self._queue.put_nowait(_CLOSED)

    async def updates(self) -> AsyncIterator[Snapshot]:
        """逐个产出缓存变化后的 Snapshot，取消订阅后结束"""
        while True:
            item = await self._queue.get()
            if item is _CLOSED:
                return
            yield item

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.unsubscribe()


class SyncClient:
    """会话同步客户端，绑定一个本地参与者身份"""

    def __init__(
        self,
        remote: RemoteStore,
        self_id: str,
        config: SyncConfig | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.self_id = self_id
        self.config = config or SyncConfig()
        self.hub = ChangeHub()
        self.cache = SnapshotCache(clock=clock, on_change=self._publish)
        self._loader = ResourceLoader(
            remote, self.cache, self_id, search_min_length=self.config.search_min_length
        )
        self.scheduler = ReconciliationScheduler(
            self.cache, self._loader, config=self.config, clock=clock
        )
        self.engine = OptimisticMutationEngine(remote, self.cache, self.scheduler, self_id)
        self._clock = clock

    # ---- 读 ----

    def subscribe(self, key: ResourceKey) -> Subscription:
        """订阅 key；首次拉取在下一轮调度发生"""
        subscription = Subscription(self, key)
        self.scheduler.add_subscriber(key)
        return subscription

    def current_value(self, key: ResourceKey) -> Snapshot:
        entry = self.cache.entry(key)
        if entry is None:
            return Snapshot(key=key, status=SnapshotStatus.ABSENT)
        if entry.has_value:
            return Snapshot(
                key=key,
                status=SnapshotStatus.READY,
                value=entry.value,
                fetched_at=entry.fetched_at,
                is_fetching=entry.in_flight,
            )
        if entry.error is not None:
            return Snapshot(
                key=key,
                status=SnapshotStatus.ERROR,
                error=entry.error,
                is_fetching=entry.in_flight,
            )
        return Snapshot(key=key, status=SnapshotStatus.ABSENT, is_fetching=entry.in_flight)

    def _publish(self, key: ResourceKey) -> None:
        if self.hub.has_subscribers(key):
            self.hub.publish(key, self.current_value(key))

    def refresh(self, key: ResourceKey) -> bool:
        """强制刷新 key"""
        return self.scheduler.request_refresh(key)

    async def search_users(self, query: str) -> list[UserProfile]:
        """按用户名搜索

        查询词先本地校验，不足最小长度时抛出 QueryTooShort，不触达远端。
        同一查询的结果在 search_ttl_s 内复用缓存；搜索 key 无人订阅，
        每次查询后登记给调度器，gc_after_s 后淘汰。
        """
        key = ResourceKey.search(query, self.config.search_min_length)
        if not self.cache.is_stale(key, self.config.ttl_for(key.resource)):
            self.scheduler.mark_unobserved(key)
            return self.cache.read(key)
        started_at = self._clock()
        results = await self._loader(key)
        self.cache.write(key, results, started_at)
        self.scheduler.mark_unobserved(key)
        return results

    # ---- 写 ----

    async def mutate(
        self,
        kind: MutationKind,
        payload: BaseModel | Mapping[str, Any],
    ) -> MutationOutcome:
        """执行乐观变更

        本地校验失败返回 REJECTED，同 key 变更在途返回 IN_PROGRESS，均不发送远端。
        """
        try:
            return await self.engine.execute(kind, payload)
        except InvalidInput as e:
            log.info("mutation_invalid_input", kind=kind, error=str(e))
            return MutationOutcome(
                kind=kind, status=MutationStatus.REJECTED, notice=str(e), error=str(e)
            )
        except MutationInProgress as e:
            return MutationOutcome(
                kind=kind, status=MutationStatus.IN_PROGRESS, error=str(e)
            )

    async def start_conversation(self, other: str) -> MutationOutcome:
        """与 other 建立会话；result 为 ConversationId"""
        try:
            conversation_id = canonicalize(self.self_id, other)
        except InvalidInput as e:
            return MutationOutcome(
                kind=MutationKind.ADD_CONVERSATION,
                status=MutationStatus.REJECTED,
                notice=str(e),
                error=str(e),
            )
        return await self.mutate(
            MutationKind.ADD_CONVERSATION, {"conversation_id": conversation_id}
        )

    async def send_message(self, conversation_id: str, text: str) -> MutationOutcome:
        return await self.mutate(
            MutationKind.SEND_MESSAGE,
            SendMessagePayload(conversation_id=conversation_id, text=text),
        )

    # ---- 生命周期 ----

    def start(self) -> None:
        self.scheduler.start()

    async def aclose(self) -> None:
        await self.scheduler.stop()

    async def __aenter__(self) -> "SyncClient":
        self.start()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

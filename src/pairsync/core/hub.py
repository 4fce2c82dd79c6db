"""ChangeHub -- 缓存变化的内存广播器

每个订阅者持有一个 asyncio.Queue，缓存写入后推送最新 Snapshot。
队列满的订阅者丢弃最旧的一条，保证总能拿到最新状态。
"""

import asyncio
from collections import defaultdict

from .models.resource import ResourceKey
from .models.snapshot import Snapshot


class ChangeHub:
    """基于 asyncio.Queue 的发布/订阅"""

    def __init__(self, queue_maxsize: int = 16) -> None:
        # key -> set of asyncio.Queue
        self._subscribers: dict[ResourceKey, set[asyncio.Queue]] = defaultdict(set)
        self._queue_maxsize = queue_maxsize

    def subscribe(self, key: ResourceKey) -> asyncio.Queue:
        """订阅指定 key 的变化，返回接收 Snapshot 的队列"""
        queue: asyncio.Queue = asyncio.Queue(maxsize=self._queue_maxsize)
        self._subscribers[key].add(queue)
        return queue

    def unsubscribe(self, key: ResourceKey, queue: asyncio.Queue) -> None:
        subscribers = self._subscribers.get(key)
        if subscribers is None:
            return
        subscribers.discard(queue)
        if not subscribers:
            del self._subscribers[key]

    def has_subscribers(self, key: ResourceKey) -> bool:
        return bool(self._subscribers.get(key))

    def publish(self, key: ResourceKey, snapshot: Snapshot) -> None:
        """向 key 的所有订阅者推送 snapshot"""
        for queue in self._subscribers.get(key, set()):
            if queue.full():
                # 丢弃最旧的一条
                queue.get_nowait()
            queue.put_nowait(snapshot)

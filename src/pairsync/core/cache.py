"""Snapshot Cache -- 每个 ResourceKey 最近一次服务端确认的状态

写入规则：
- write() 整体覆盖，不做局部合并
- fetched_at 更晚的写入胜出，防止慢的旧拉取覆盖新结果
- 被 evict 的 key，fetched_at 不晚于淘汰时刻的在途结果直接丢弃
- 被变更引擎 hold 的 key，拉取结果丢弃（相当于变更期间取消查询）；
  在 hold 之前发起、release 之后才返回的拉取同样丢弃

拉取的先后用 begin_fetch() 发放的序号判断，不依赖时钟精度。
局部 patch / restore 只供乐观变更引擎使用。
"""

import itertools
import time
from collections.abc import Callable
from dataclasses import dataclass, replace
from typing import Any

import structlog

from .models.resource import ResourceKey

log = structlog.get_logger()


class _Absent:
    """缓存中没有值的标记（区别于值本身为 None，如 profile 不存在）"""

    def __repr__(self) -> str:
        return "ABSENT"


ABSENT: Any = _Absent()


@dataclass(frozen=True)
class CacheEntry:
    """单个 key 的缓存条目"""

    value: Any = ABSENT
    fetched_at: float | None = None
    in_flight: bool = False
    invalidated: bool = False
    error: str | None = None

    @property
    def has_value(self) -> bool:
        return self.value is not ABSENT


class SnapshotCache:
    """内存快照缓存

    on_change 回调在任何可见变化后被调用（值、错误、在途标记）。
    """

    def __init__(
        self,
        clock: Callable[[], float] = time.monotonic,
        on_change: Callable[[ResourceKey], None] | None = None,
    ) -> None:
        self._clock = clock
        self._entries: dict[ResourceKey, CacheEntry] = {}
        # key -> 最近一次淘汰时刻
        self._evicted_at: dict[ResourceKey, float] = {}
        # key -> hold 计数
        self._holds: dict[ResourceKey, int] = {}
        # 拉取、hold、本地改写共用的单调序号
        self._seq = itertools.count(1)
        # key -> 最近一次 hold 时的序号，更早发起的拉取结果一律丢弃
        self._held_since: dict[ResourceKey, int] = {}
        # key -> 最近一次改写值时的序号
        self._versions: dict[ResourceKey, int] = {}
        self._on_change = on_change

    def set_on_change(self, callback: Callable[[ResourceKey], None] | None) -> None:
        self._on_change = callback

    def _notify(self, key: ResourceKey) -> None:
        if self._on_change is not None:
            self._on_change(key)

    def keys(self) -> list[ResourceKey]:
        return list(self._entries)

    def entry(self, key: ResourceKey) -> CacheEntry | None:
        """返回完整条目（用作乐观变更的 pre-image）"""
        return self._entries.get(key)

    def read(self, key: ResourceKey, default: Any = ABSENT) -> Any:
        """读取缓存值，无值时返回 default"""
        entry = self._entries.get(key)
        if entry is None or not entry.has_value:
            return default
        return entry.value

    def begin_fetch(self, key: ResourceKey) -> int:
        """登记一次拉取的发起，返回其序号，写入时交回 write()"""
        return next(self._seq)

    def version(self, key: ResourceKey) -> int:
        """key 的值最近一次被改写时的序号（从未改写为 0）"""
        return self._versions.get(key, 0)

    def _bump(self, key: ResourceKey) -> None:
        self._versions[key] = next(self._seq)

    def write(
        self,
        key: ResourceKey,
        value: Any,
        fetched_at: float,
        ticket: int | None = None,
    ) -> bool:
        """写入拉取结果

        Args:
            key: 资源 key
            value: 拉取到的完整值
            fetched_at: 拉取发起时刻
            ticket: begin_fetch() 返回的序号；None 表示不做 hold 先后检查

        Returns:
            True 表示已写入；False 表示被丢弃（已有更新的结果、已淘汰或被 hold）
        """
        if self.is_held(key):
            log.debug("cache_write_discarded", key=str(key), reason="held")
            return False

        held_since = self._held_since.get(key)
        if ticket is not None and held_since is not None and ticket < held_since:
            log.debug("cache_write_discarded", key=str(key), reason="started_before_hold")
            return False

        evicted_at = self._evicted_at.get(key)
        if evicted_at is not None and fetched_at <= evicted_at:
            log.debug("cache_write_discarded", key=str(key), reason="evicted")
            return False

        current = self._entries.get(key)
        if (
            current is not None
            and current.fetched_at is not None
            and current.fetched_at > fetched_at
        ):
            log.debug(
                "cache_write_discarded",
                key=str(key),
                reason="older_than_current",
                current_fetched_at=current.fetched_at,
                fetched_at=fetched_at,
            )
            return False

        self._entries[key] = CacheEntry(
            value=value,
            fetched_at=fetched_at,
            in_flight=current.in_flight if current else False,
        )
        self._bump(key)
        self._notify(key)
        return True

    def is_stale(self, key: ResourceKey, ttl: float | None, now: float | None = None) -> bool:
        """无值、已失效或超过 ttl 即为陈旧；ttl 为 None 时拉取一次后不再陈旧"""
        entry = self._entries.get(key)
        if entry is None or not entry.has_value or entry.fetched_at is None:
            return True
        if entry.invalidated:
            return True
        if ttl is None:
            return False
        now = self._clock() if now is None else now
        return now - entry.fetched_at >= ttl

    def invalidate(self, key: ResourceKey) -> None:
        """标记为陈旧，保留现有值供读取"""
        entry = self._entries.get(key)
        if entry is not None:
            self._entries[key] = replace(entry, invalidated=True)

    def evict(self, key: ResourceKey) -> None:
        """移除条目；淘汰前发起的在途拉取结果将被丢弃"""
        self._evicted_at[key] = self._clock()
        if self._entries.pop(key, None) is not None:
            self._bump(key)
            log.debug("cache_entry_evicted", key=str(key))
            self._notify(key)

    def set_in_flight(self, key: ResourceKey, in_flight: bool) -> None:
        entry = self._entries.get(key) or CacheEntry()
        if entry.in_flight == in_flight and key in self._entries:
            return
        self._entries[key] = replace(entry, in_flight=in_flight)
        self._notify(key)

    def record_failure(self, key: ResourceKey, error: str) -> None:
        """记录拉取失败；只有在没有缓存值时才会被消费者看到"""
        entry = self._entries.get(key) or CacheEntry()
        self._entries[key] = replace(entry, error=error)
        if not entry.has_value:
            self._notify(key)

    # ---- 乐观变更支持 ----

    def hold(self, key: ResourceKey) -> None:
        self._holds[key] = self._holds.get(key, 0) + 1
        self._held_since[key] = next(self._seq)

    def release(self, key: ResourceKey) -> None:
        count = self._holds.get(key, 0) - 1
        if count > 0:
            self._holds[key] = count
        else:
            self._holds.pop(key, None)

    def is_held(self, key: ResourceKey) -> bool:
        return self._holds.get(key, 0) > 0

    def patch(self, key: ResourceKey, fn: Callable[[Any], Any]) -> None:
        """对当前值做本地合成更新，保留 fetched_at

        fn 接收当前值（无值时为 ABSENT），返回 ABSENT 表示保持无值。
        """
        entry = self._entries.get(key) or CacheEntry()
        new_value = fn(entry.value)
        if new_value is ABSENT and not entry.has_value:
            return
        self._entries[key] = replace(entry, value=new_value, error=None)
        self._bump(key)
        self._notify(key)

    def restore(self, key: ResourceKey, pre_image: CacheEntry | None) -> None:
        """精确恢复 pre-image（None 表示变更前没有条目）"""
        current = self._entries.get(key)
        in_flight = current.in_flight if current else False
        if pre_image is None:
            if in_flight:
                self._entries[key] = CacheEntry(in_flight=True)
            else:
                self._entries.pop(key, None)
        else:
            self._entries[key] = replace(pre_image, in_flight=in_flight)
        self._bump(key)
        self._notify(key)

"""消费者可见的数据形态：Snapshot（读）与 MutationOutcome（写）"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from .enums import MutationKind, MutationStatus, SnapshotStatus
from .resource import ResourceKey


class Snapshot(BaseModel):
    """某个 ResourceKey 的当前缓存视图

    - READY: 有缓存值（即使最近一次轮询失败也不暴露错误）
    - ERROR: 无缓存值且最近一次拉取失败
    - ABSENT: 尚未拉取
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    key: ResourceKey
    status: SnapshotStatus
    value: Any = None
    error: str | None = None
    fetched_at: float | None = Field(default=None, description="拉取发起时刻（调度时钟）")
    is_fetching: bool = False

    @property
    def is_ready(self) -> bool:
        return self.status == SnapshotStatus.READY


class MutationOutcome(BaseModel):
    """一次变更的结算结果

    notice 为面向用户的提示文本；静默成功时为 None。
    """

    kind: MutationKind
    status: MutationStatus
    notice: str | None = None
    error: str | None = None
    result: Any = None

    @property
    def succeeded(self) -> bool:
        return self.status in (MutationStatus.CONFIRMED, MutationStatus.ALREADY_SATISFIED)

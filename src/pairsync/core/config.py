"""配置模块 -- 可通过环境变量覆盖

同步引擎的 TTL / 调度参数，以及数据目录、偏好数据库路径。

环境变量:
    PAIRSYNC_DATA_DIR: 数据根目录（默认 data）
    PAIRSYNC_DB_PATH: 偏好 SQLite 路径
    PAIRSYNC_CONVERSATIONS_TTL_S / PAIRSYNC_MESSAGES_TTL_S /
    PAIRSYNC_CALL_HISTORY_TTL_S / PAIRSYNC_PROFILE_TTL_S /
    PAIRSYNC_SEARCH_TTL_S: 各资源类 TTL（秒）
    PAIRSYNC_TICK_INTERVAL_S: 调度循环间隔（秒）
    PAIRSYNC_GC_AFTER_S: 无人观察的 key 多久后从缓存淘汰（秒）
"""

import os
from pathlib import Path

import structlog
from pydantic import BaseModel, Field

from .models.enums import ResourceClass
from .models.resource import SEARCH_MIN_LENGTH

log = structlog.get_logger()

# 会话预览截断长度
MESSAGE_PREVIEW_LENGTH: int = 200


def _get_base_dir() -> Path:
    """获取数据基础目录"""
    return Path(os.environ.get("PAIRSYNC_DATA_DIR", "data"))


def get_db_path() -> str:
    """获取偏好 SQLite 数据库路径"""
    return os.environ.get(
        "PAIRSYNC_DB_PATH",
        str(_get_base_dir() / "sqlite" / "pairsync.db"),
    )


class SyncConfig(BaseModel):
    """同步引擎配置

    TTL 单位为秒。消息列表刷新最勤（聊天界面对陈旧最敏感），
    profile 与搜索结果有 5 分钟的陈旧下限。
    """

    conversations_ttl_s: float = Field(default=5.0, gt=0, description="会话列表刷新间隔")
    call_history_ttl_s: float = Field(default=5.0, gt=0, description="通话记录刷新间隔")
    messages_ttl_s: float = Field(default=3.0, gt=0, description="消息列表刷新间隔")
    profile_ttl_s: float = Field(default=300.0, gt=0, description="profile 陈旧下限")
    search_ttl_s: float | None = Field(
        default=300.0, description="搜索结果陈旧下限，None 表示拉取一次后不再刷新"
    )
    backoff_floor_s: float = Field(default=5.0, gt=0, description="无 TTL 资源的失败退避时长")
    tick_interval_s: float = Field(default=0.5, gt=0, description="调度循环间隔")
    gc_after_s: float = Field(default=300.0, ge=0, description="无订阅 key 的缓存保留时长")
    search_min_length: int = Field(default=SEARCH_MIN_LENGTH, ge=1)

    def ttl_for(self, resource: ResourceClass) -> float | None:
        """按资源类返回 TTL"""
        return {
            ResourceClass.CONVERSATIONS: self.conversations_ttl_s,
            ResourceClass.CALL_HISTORY: self.call_history_ttl_s,
            ResourceClass.MESSAGES: self.messages_ttl_s,
            ResourceClass.PROFILE: self.profile_ttl_s,
            ResourceClass.SEARCH: self.search_ttl_s,
        }[resource]

    def backoff_for(self, resource: ResourceClass) -> float:
        """失败后退避一个 TTL 间隔；无 TTL 的资源使用 backoff_floor_s"""
        ttl = self.ttl_for(resource)
        return ttl if ttl is not None else self.backoff_floor_s


_ENV_FLOAT_FIELDS = {
    "PAIRSYNC_CONVERSATIONS_TTL_S": "conversations_ttl_s",
    "PAIRSYNC_CALL_HISTORY_TTL_S": "call_history_ttl_s",
    "PAIRSYNC_MESSAGES_TTL_S": "messages_ttl_s",
    "PAIRSYNC_PROFILE_TTL_S": "profile_ttl_s",
    "PAIRSYNC_SEARCH_TTL_S": "search_ttl_s",
    "PAIRSYNC_TICK_INTERVAL_S": "tick_interval_s",
    "PAIRSYNC_GC_AFTER_S": "gc_after_s",
}


def load_sync_config() -> SyncConfig:
    """从环境变量加载同步配置

    非法数值记录 warning 并使用默认值，不阻塞启动。
    """
    kwargs: dict = {}
    for env_var, field_name in _ENV_FLOAT_FIELDS.items():
        val = os.environ.get(env_var)
        if not val:
            continue
        try:
            kwargs[field_name] = float(val)
        except ValueError:
            log.warning(
                "invalid_sync_config",
                env_var=env_var,
                value=val,
                fallback=SyncConfig.model_fields[field_name].default,
            )
    return SyncConfig(**kwargs)

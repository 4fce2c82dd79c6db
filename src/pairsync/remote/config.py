"""RemoteConfig -- 远端连接配置加载

从环境变量加载配置，非法数值记录 warning 后使用默认值。
"""

import os

import structlog
from pydantic import BaseModel, Field

log = structlog.get_logger()


class RemoteConfig(BaseModel):
    """远端存储连接配置

    环境变量:
        PAIRSYNC_REMOTE_URL: 网关地址（默认 http://localhost:8000）
        PAIRSYNC_PRINCIPAL: 当前参与者身份
        PAIRSYNC_REMOTE_TIMEOUT_S: 请求超时（秒，默认 10）
    """

    base_url: str = Field(
        default="http://localhost:8000",
        description="网关基础 URL",
    )
    principal: str = Field(
        default="",
        description="随请求发送的调用方身份（X-Principal）",
    )
    timeout_s: float = Field(
        default=10.0,
        gt=0,
        description="单次请求超时（秒），超时视为传输失败",
    )


def load_remote_config() -> RemoteConfig:
    """从环境变量加载远端配置"""
    kwargs: dict = {}

    if val := os.environ.get("PAIRSYNC_REMOTE_URL"):
        kwargs["base_url"] = val

    if val := os.environ.get("PAIRSYNC_PRINCIPAL"):
        kwargs["principal"] = val

    if val := os.environ.get("PAIRSYNC_REMOTE_TIMEOUT_S"):
        try:
            kwargs["timeout_s"] = float(val)
        except ValueError:
            log.warning(
                "invalid_timeout_config",
                env_var="PAIRSYNC_REMOTE_TIMEOUT_S",
                value=val,
                fallback=10.0,
            )

    return RemoteConfig(**kwargs)

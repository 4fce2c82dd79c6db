"""依赖注入模块 -- 通过 FastAPI Depends 注入 backend 与调用方身份

InMemoryBackend 通过 app.state 管理，在 lifespan 中初始化。
调用方身份取自 X-Principal 请求头（开发网关不做认证握手）。
"""

from fastapi import Request

from pairsync.remote.http_client import PRINCIPAL_HEADER
from pairsync.remote.memory import InMemoryBackend, InMemoryRemoteStore


class MissingPrincipal(Exception):
    """请求缺少调用方身份"""


def get_backend(request: Request) -> InMemoryBackend:
    """从 app.state 获取 InMemoryBackend 实例"""
    return request.app.state.backend


def get_caller(request: Request) -> InMemoryRemoteStore:
    """按 X-Principal 绑定调用方身份"""
    principal = request.headers.get(PRINCIPAL_HEADER, "").strip()
    if not principal:
        raise MissingPrincipal()
    return get_backend(request).as_caller(principal)

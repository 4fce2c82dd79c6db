"""FastAPI 应用主文件 -- 开发网关

app 创建 + lifespan 管理：InMemoryBackend 初始化 + 路由注册。
HttpRemoteStore 按同一 REST 契约访问本网关。
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI

from pairsync.core.logging_config import setup_logging
from pairsync.remote.memory import InMemoryBackend

from .errors import register_error_handlers
from .middleware.logging_mw import LoggingMiddleware
from .middleware.trace_mw import TraceMiddleware
from .routes import calls, conversations, health, profiles

log = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """应用生命周期管理：启动时初始化权威存储"""
    if getattr(app.state, "backend", None) is None:
        app.state.backend = InMemoryBackend()
    log.info("gateway_started", backend=type(app.state.backend).__name__)

    yield

    log.info("gateway_stopped")


def create_app(backend: InMemoryBackend | None = None) -> FastAPI:
    """创建 FastAPI 应用实例

    Args:
        backend: 预置的权威存储；None 时在 lifespan 中创建
    """
    app = FastAPI(
        title="pairsync Gateway",
        version="0.1.0",
        description="pairsync 开发网关：以 HTTP 暴露进程内权威存储",
        lifespan=lifespan,
    )
    app.state.backend = backend

    # 注册中间件（顺序：先 Trace 后 Logging）
    app.add_middleware(TraceMiddleware)
    app.add_middleware(LoggingMiddleware)

    setup_logging()
    register_error_handlers(app)

    app.include_router(conversations.router, tags=["conversations"])
    app.include_router(calls.router, tags=["calls"])
    app.include_router(profiles.router, tags=["profiles"])
    app.include_router(health.router, tags=["health"])

    return app


# 默认 app 实例（uvicorn 入口）
app = create_app()

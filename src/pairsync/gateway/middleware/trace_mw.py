"""TraceMiddleware -- 为会话操作绑定 conversation_id

从 /api/conversations/{conversation_id}/... 路径中提取会话 ID。
"""

import structlog
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response


def conversation_id_from_path(path: str) -> str | None:
    parts = path.split("/")
    for i, part in enumerate(parts):
        if part == "conversations" and i + 1 < len(parts) and parts[i + 1]:
            return parts[i + 1]
    return None


class TraceMiddleware(BaseHTTPMiddleware):
    """会话级追踪中间件"""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        conversation_id = conversation_id_from_path(request.url.path)
        if conversation_id:
            structlog.contextvars.bind_contextvars(conversation_id=conversation_id)

        return await call_next(request)

"""错误响应 -- 统一为 {"error": {"code", "message"}}

RemoteRejection 的 message 原样返回，客户端的拒绝分类依赖这段文本。
"""

from fastapi import FastAPI, Request
from starlette.responses import JSONResponse

from pairsync.core.exceptions import RemoteRejection, TransportError

from .deps import MissingPrincipal


def error_response(status_code: int, code: str, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error": {"code": code, "message": message}},
    )


def rejection_status(message: str) -> tuple[int, str]:
    """按错误文本选择 HTTP 状态码"""
    lowered = message.lower()
    if "not found" in lowered or lowered.startswith("no conversations"):
        return 404, "NOT_FOUND"
    if "already exists" in lowered:
        return 409, "CONFLICT"
    if message.startswith("Unauthorized") or "started" in lowered:
        return 403, "FORBIDDEN"
    return 400, "REJECTED"


async def _handle_rejection(request: Request, exc: RemoteRejection) -> JSONResponse:
    status_code, code = rejection_status(exc.message)
    return error_response(status_code, code, exc.message)


async def _handle_missing_principal(request: Request, exc: MissingPrincipal) -> JSONResponse:
    return error_response(401, "UNAUTHENTICATED", "Unauthorized: missing X-Principal header")


async def _handle_transport(request: Request, exc: TransportError) -> JSONResponse:
    return error_response(503, "UNAVAILABLE", exc.message)


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(RemoteRejection, _handle_rejection)
    app.add_exception_handler(MissingPrincipal, _handle_missing_principal)
    app.add_exception_handler(TransportError, _handle_transport)

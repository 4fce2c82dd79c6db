"""HttpRemoteStore -- 基于 httpx 的 RemoteStore 实现

REST 契约与开发网关（pairsync.gateway）一致：
- 调用方身份放在 X-Principal 请求头
- 4xx + {"error": {"code", "message"}} -> RemoteRejection(message)
- 连接失败 / 超时 / 5xx -> TransportError（轮询下一轮自动重试）
"""

from typing import Any

import httpx
import structlog

from pairsync.core.exceptions import RemoteRejection, TransportError
from pairsync.core.models import (
    CallLogEntry,
    CallType,
    Message,
    MessageReply,
    MessageRequest,
    UserProfile,
)

from .config import RemoteConfig

log = structlog.get_logger()

PRINCIPAL_HEADER = "X-Principal"

# 视为远端不可达的异常类型（httpx.TimeoutException 是 httpx.TransportError 的子类）
_UNREACHABLE_ERROR_TYPES = (
    httpx.TransportError,
    ConnectionError,
    TimeoutError,
)


def _rejection_message(response: httpx.Response) -> str:
    """从错误响应体提取人类可读文本"""
    try:
        return response.json()["error"]["message"]
    except (ValueError, KeyError, TypeError):
        return response.text or f"HTTP {response.status_code}"


class HttpRemoteStore:
    """通过 HTTP 访问远端权威存储"""

    def __init__(
        self,
        base_url: str,
        principal: str,
        timeout_s: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """
        Args:
            base_url: 网关基础 URL
            principal: 调用方身份
            timeout_s: 请求超时（秒）
            transport: 可注入的 httpx 传输层（测试中使用 ASGITransport）
        """
        self.principal = principal
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers={PRINCIPAL_HEADER: principal},
            timeout=timeout_s,
            transport=transport,
        )

    @classmethod
    def from_config(
        cls,
        config: RemoteConfig,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> "HttpRemoteStore":
        return cls(config.base_url, config.principal, config.timeout_s, transport=transport)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "HttpRemoteStore":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        target = f"{method} {path}"
        try:
            response = await self._client.request(method, path, **kwargs)
        except _UNREACHABLE_ERROR_TYPES as e:
            log.warning("remote_unreachable", target=target, error=str(e))
            raise TransportError(target, e) from e

        if response.status_code >= 500:
            log.warning("remote_server_error", target=target, status=response.status_code)
            raise TransportError(f"{target} (HTTP {response.status_code})")
        if response.status_code >= 400:
            message = _rejection_message(response)
            log.debug("remote_rejected", target=target, status=response.status_code, error=message)
            raise RemoteRejection(message)
        return response

    # ---- 会话 ----

    async def list_conversations(self, participant: str) -> list[str]:
        response = await self._request(
            "GET", "/api/conversations", params={"participant": participant}
        )
        return list(response.json()["conversations"])

    async def has_conversation(self, conversation_id: str) -> bool:
        response = await self._request("GET", f"/api/conversations/{conversation_id}/exists")
        return bool(response.json()["exists"])

    async def add_conversation(self, conversation_id: str) -> None:
        await self._request(
            "POST", "/api/conversations", json={"conversation_id": conversation_id}
        )

    async def remove_conversation(self, conversation_id: str) -> None:
        await self._request("DELETE", f"/api/conversations/{conversation_id}")

    # ---- 消息 ----

    async def list_messages(self, conversation_id: str) -> list[Message]:
        response = await self._request(
            "GET", f"/api/conversations/{conversation_id}/messages"
        )
        return [Message.model_validate(m) for m in response.json()["messages"]]

    async def send_message(self, request: MessageRequest) -> MessageReply:
        response = await self._request(
            "POST",
            f"/api/conversations/{request.conversation_id}/messages",
            json=request.model_dump(mode="json"),
        )
        return MessageReply.model_validate(response.json())

    async def delete_message(self, conversation_id: str, message_id: int) -> None:
        await self._request(
            "DELETE", f"/api/conversations/{conversation_id}/messages/{message_id}"
        )

    # ---- 通话记录 ----

    async def get_call_history(self) -> list[CallLogEntry]:
        response = await self._request("GET", "/api/calls")
        return [CallLogEntry.model_validate(c) for c in response.json()["calls"]]

    async def record_call(
        self,
        from_user: str | None,
        to_user: str | None,
        call_type: CallType,
        duration_seconds: int,
        notes: str,
    ) -> None:
        await self._request(
            "POST",
            "/api/calls",
            json={
                "from_user": from_user,
                "to_user": to_user,
                "call_type": CallType(call_type).value,
                "duration_seconds": duration_seconds,
                "notes": notes,
            },
        )

    async def delete_call_entry(self, call_id: int) -> None:
        await self._request("DELETE", f"/api/calls/{call_id}")

    # ---- profile ----

    async def get_profile(self, principal: str) -> UserProfile | None:
        response = await self._request("GET", f"/api/profiles/{principal}")
        profile = response.json()["profile"]
        return UserProfile.model_validate(profile) if profile is not None else None

    async def create_profile(self, username: str, display_name: str) -> None:
        await self._request(
            "POST",
            "/api/profile",
            json={"username": username, "display_name": display_name},
        )

    async def update_profile(self, username: str | None, display_name: str | None) -> None:
        await self._request(
            "PATCH",
            "/api/profile",
            json={"username": username, "display_name": display_name},
        )

    async def search_users(self, text: str) -> list[UserProfile]:
        response = await self._request("GET", "/api/users/search", params={"q": text})
        return [UserProfile.model_validate(u) for u in response.json()["users"]]

"""RemoteStore Protocol -- 权威存储的请求/响应边界

实例绑定调用方身份（相当于已认证的 actor），同步引擎不关心具体传输。
业务拒绝抛出 RemoteRejection(message)，不可达/超时抛出 TransportError。
"""

from typing import Protocol

from pairsync.core.models import (
    CallLogEntry,
    CallType,
    Message,
    MessageReply,
    MessageRequest,
    UserProfile,
)


class RemoteStore(Protocol):
    """远端权威存储接口"""

    async def list_conversations(self, participant: str) -> list[str]:
        """列出参与者的 ConversationId"""
        ...

    async def has_conversation(self, conversation_id: str) -> bool:
        ...

    async def add_conversation(self, conversation_id: str) -> None:
        """会话已存在或调用方无权时拒绝"""
        ...

    async def remove_conversation(self, conversation_id: str) -> None:
        """调用方不是发起方或会话不存在时拒绝"""
        ...

    async def list_messages(self, conversation_id: str) -> list[Message]:
        """按 message_id 升序返回"""
        ...

    async def send_message(self, request: MessageRequest) -> MessageReply:
        ...

    async def delete_message(self, conversation_id: str, message_id: int) -> None:
        ...

    async def get_call_history(self) -> list[CallLogEntry]:
        ...

    async def record_call(
        self,
        from_user: str | None,
        to_user: str | None,
        call_type: CallType,
        duration_seconds: int,
        notes: str,
    ) -> None:
        ...

    async def delete_call_entry(self, call_id: int) -> None:
        ...

    async def get_profile(self, principal: str) -> UserProfile | None:
        ...

    async def create_profile(self, username: str, display_name: str) -> None:
        ...

    async def update_profile(self, username: str | None, display_name: str | None) -> None:
        ...

    async def search_users(self, text: str) -> list[UserProfile]:
        """调用方契约：不足 3 个字符的查询不得发送"""
        ...

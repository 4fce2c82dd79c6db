"""ResourceKey -- 订阅、拉取、失效的基本单位

(resource-class, scope) 二元组，例如 (messages, "p1:p2")。
"""

from pydantic import BaseModel, ConfigDict, Field

from ..exceptions import QueryTooShort
from ..identity import decode
from .enums import ResourceClass

# 搜索词最小长度（远端契约：不足时不得发送）
SEARCH_MIN_LENGTH: int = 3


class ResourceKey(BaseModel):
    """资源键（不可变、可哈希）"""

    model_config = ConfigDict(frozen=True)

    resource: ResourceClass = Field(description="资源类")
    scope: str = Field(default="", description="作用域参数，如 participantId / conversationId")

    def __str__(self) -> str:
        return f"{self.resource.value}/{self.scope}" if self.scope else self.resource.value

    @classmethod
    def conversations(cls, participant: str) -> "ResourceKey":
        return cls(resource=ResourceClass.CONVERSATIONS, scope=participant)

    @classmethod
    def messages(cls, conversation_id: str) -> "ResourceKey":
        """消息列表 key，conversation_id 非法时抛出 MalformedId"""
        decode(conversation_id)
        return cls(resource=ResourceClass.MESSAGES, scope=conversation_id)

    @classmethod
    def call_history(cls) -> "ResourceKey":
        return cls(resource=ResourceClass.CALL_HISTORY)

    @classmethod
    def profile(cls, principal: str) -> "ResourceKey":
        return cls(resource=ResourceClass.PROFILE, scope=principal)

    @classmethod
    def search(cls, query: str, min_length: int = SEARCH_MIN_LENGTH) -> "ResourceKey":
        """搜索结果 key

        Raises:
            QueryTooShort: 去除首尾空白后不足 min_length 个字符
        """
        normalized = query.strip()
        if len(normalized) < min_length:
            raise QueryTooShort(normalized, min_length)
        return cls(resource=ResourceClass.SEARCH, scope=normalized)

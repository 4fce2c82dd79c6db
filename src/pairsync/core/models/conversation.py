"""ConversationSummary -- 会话列表条目

由 Snapshot Cache 持有，每次成功拉取会话列表后整体替换；
本地增删只能通过乐观变更引擎。
"""

from pydantic import BaseModel, Field


class ParticipantRef(BaseModel):
    """会话对方"""

    id: str = Field(description="对方 ParticipantId")
    display_handle: str = Field(description="显示名（@username 或截断 id）")


class MessagePreview(BaseModel):
    """最后一条消息预览"""

    text: str
    timestamp_nanos: int = Field(ge=0)
    is_video: bool = False


class ConversationSummary(BaseModel):
    id: str = Field(description="ConversationId")
    other_participant: ParticipantRef
    last_message: MessagePreview | None = None
    unread_count: int = Field(default=0, ge=0)
    pending: bool = Field(default=False, description="是否为未确认的乐观条目")

"""Message Domain Model

服务端分配的 message_id 在会话内单调递增；本地临时消息 message_id 为 None，
用 temp_id 标识，待远端确认后替换。
"""

from pydantic import BaseModel, Field

from .enums import MessageKind


class Message(BaseModel):
    """会话消息"""

    message_id: int | None = Field(default=None, description="服务端分配 ID，临时消息为 None")
    conversation_id: str = Field(description="所属会话")
    sender_id: str = Field(description="发送者 ParticipantId")
    text: str = Field(description="文本内容")
    timestamp_nanos: int = Field(default=0, ge=0, description="时间戳（纳秒）")
    kind: MessageKind = Field(default=MessageKind.TEXT, description="消息类型")
    media_url: str | None = Field(default=None, description="视频等媒体引用")
    temp_id: str | None = Field(default=None, description="客户端临时 ID")
    pending: bool = Field(default=False, description="是否为未确认的乐观消息")

    @property
    def is_video(self) -> bool:
        return self.kind == MessageKind.VIDEO


def message_sort_key(message: Message) -> tuple[bool, int, int]:
    """会话内排序：按 message_id 升序，缺失时按时间戳；临时消息排在最后"""
    return (
        message.message_id is None,
        message.message_id or 0,
        message.timestamp_nanos,
    )


def sort_messages(messages: list[Message]) -> list[Message]:
    return sorted(messages, key=message_sort_key)


class MessageRequest(BaseModel):
    """sendMessage 请求体"""

    conversation_id: str
    sender: str
    text: str
    kind: MessageKind = MessageKind.TEXT
    media_url: str | None = None


class MessageReply(BaseModel):
    """sendMessage 响应体"""

    message_id: int = Field(ge=0)
    timestamp_nanos: int = Field(ge=0)

"""pairsync Core Domain Models -- 公共类型导出

所有公共模型类型从此入口导入。
"""

from .call import CallLogEntry
from .conversation import ConversationSummary, MessagePreview, ParticipantRef
from .enums import (
    CallType,
    FetchState,
    MessageKind,
    MutationKind,
    MutationStatus,
    RejectionClass,
    ResourceClass,
    SnapshotStatus,
    ThemeMode,
)
from .message import Message, MessageReply, MessageRequest, message_sort_key, sort_messages
from .preference import DEFAULT_COLOR_THEME, THEME_PRESETS, ThemePreference
from .profile import UserProfile, display_name_problem, username_problem
from .resource import SEARCH_MIN_LENGTH, ResourceKey
from .snapshot import MutationOutcome, Snapshot

__all__ = [
    # 枚举
    "ResourceClass",
    "FetchState",
    "MessageKind",
    "CallType",
    "MutationKind",
    "MutationStatus",
    "RejectionClass",
    "SnapshotStatus",
    "ThemeMode",
    # 资源
    "ResourceKey",
    "SEARCH_MIN_LENGTH",
    # 会话 / 消息
    "ConversationSummary",
    "ParticipantRef",
    "MessagePreview",
    "Message",
    "MessageRequest",
    "MessageReply",
    "message_sort_key",
    "sort_messages",
    # 通话 / profile
    "CallLogEntry",
    "UserProfile",
    "username_problem",
    "display_name_problem",
    # 消费者视图
    "Snapshot",
    "MutationOutcome",
    # 偏好
    "ThemePreference",
    "THEME_PRESETS",
    "DEFAULT_COLOR_THEME",
]

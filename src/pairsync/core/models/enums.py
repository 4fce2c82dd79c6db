"""枚举定义

资源类、调度状态机、变更类型与结果、消息/通话类型、主题模式。
"""

from enum import StrEnum


class ResourceClass(StrEnum):
    """ResourceKey 的资源类，决定 TTL 与拉取方式"""

    CONVERSATIONS = "conversations"
    MESSAGES = "messages"
    CALL_HISTORY = "callHistory"
    PROFILE = "profile"
    SEARCH = "search"


class FetchState(StrEnum):
    """单个 ResourceKey 的调度状态"""

    IDLE = "IDLE"
    FETCHING = "FETCHING"
    BACKOFF = "BACKOFF"


class MessageKind(StrEnum):
    TEXT = "text"
    VIDEO = "video"


class CallType(StrEnum):
    AUDIO = "audio"
    WEBCAM = "webcam"
    STREAM = "stream"


class MutationKind(StrEnum):
    """乐观变更类型"""

    ADD_CONVERSATION = "add_conversation"
    REMOVE_CONVERSATION = "remove_conversation"
    SEND_MESSAGE = "send_message"
    DELETE_MESSAGE = "delete_message"
    DELETE_CALL_ENTRY = "delete_call_entry"
    RECORD_CALL = "record_call"
    CREATE_PROFILE = "create_profile"
    UPDATE_PROFILE = "update_profile"


class MutationStatus(StrEnum):
    """变更结算结果"""

    # 远端确认
    CONFIRMED = "confirmed"
    # 远端拒绝但目标状态已成立（benign-duplicate），视为成功
    ALREADY_SATISFIED = "already_satisfied"
    # 远端拒绝或传输失败，已回滚
    FAILED = "failed"
    # 本地校验失败，未发送
    REJECTED = "rejected"
    # 同类变更在途，未发送
    IN_PROGRESS = "in_progress"


class RejectionClass(StrEnum):
    BENIGN_DUPLICATE = "benign_duplicate"
    GENUINE_FAILURE = "genuine_failure"


class SnapshotStatus(StrEnum):
    ABSENT = "absent"
    READY = "ready"
    ERROR = "error"


class ThemeMode(StrEnum):
    LIGHT = "light"
    DARK = "dark"
    SYSTEM = "system"

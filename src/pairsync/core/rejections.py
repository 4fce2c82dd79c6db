"""远端拒绝分类 -- 基于错误文本的子串匹配

远端通过人类可读的错误文本表达业务错误，没有结构化错误码。
这里保留一组固定的子串契约：

- benign-duplicate：目标状态已经成立，视为成功（刷新而不回滚）
- genuine-failure：回滚并向用户展示 notice

注意：子串匹配依赖远端错误文案，文案变化会改变分类结果。
"""

from typing import NamedTuple

from .models import MutationKind, RejectionClass

# 视为成功的拒绝子串（仅 add_conversation：Unauthorized 意味着对方已发起该会话）
BENIGN_MARKERS: dict[MutationKind, tuple[str, ...]] = {
    MutationKind.ADD_CONVERSATION: ("already exists", "Unauthorized"),
}

# 已识别的失败子串 -> 用户提示，按顺序匹配
GENUINE_MARKERS: dict[MutationKind, tuple[tuple[str, str], ...]] = {
    MutationKind.REMOVE_CONVERSATION: (
        ("started", "Only the participant who started this conversation can remove it"),
        ("No conversations", "Conversation not found"),
    ),
    MutationKind.SEND_MESSAGE: (
        ("not found", "Conversation not found"),
    ),
    MutationKind.DELETE_MESSAGE: (
        ("not found", "Message not found"),
    ),
    MutationKind.DELETE_CALL_ENTRY: (
        ("not found", "Call entry not found"),
    ),
    MutationKind.CREATE_PROFILE: (
        ("already exists", "Username is already taken"),
        ("must be between 3 and 32", "Username must be between 3 and 32 characters"),
        ("cannot include", "Username cannot include restricted terms"),
        ("cannot contain", "Username contains characters that are not allowed"),
    ),
    MutationKind.UPDATE_PROFILE: (
        ("already exists", "Username is already taken"),
        ("must be between 3 and 32", "Username must be between 3 and 32 characters"),
        ("display name must be between 1 and 32", "Display name must be between 1 and 32 characters"),
        ("cannot include", "Input contains restricted terms"),
        ("cannot contain", "Input contains restricted terms"),
        ("not found", "Profile not found, complete onboarding first"),
    ),
}

# 未识别拒绝的兜底提示
FALLBACK_NOTICES: dict[MutationKind, str] = {
    MutationKind.ADD_CONVERSATION: "Failed to start conversation",
    MutationKind.REMOVE_CONVERSATION: "Failed to remove conversation",
    MutationKind.SEND_MESSAGE: "Failed to send message",
    MutationKind.DELETE_MESSAGE: "Failed to delete message",
    MutationKind.DELETE_CALL_ENTRY: "Failed to delete call entry",
    MutationKind.RECORD_CALL: "Failed to record call",
    MutationKind.CREATE_PROFILE: "Failed to create profile",
    MutationKind.UPDATE_PROFILE: "Failed to update profile",
}

# profile 相关错误按小写匹配
_CASE_INSENSITIVE_KINDS = {MutationKind.CREATE_PROFILE, MutationKind.UPDATE_PROFILE}


class Classification(NamedTuple):
    rejection_class: RejectionClass
    notice: str | None
    marker: str | None


def classify_rejection(kind: MutationKind, message: str) -> Classification:
    """将远端拒绝文本分类

    Args:
        kind: 被拒绝的变更类型
        message: 远端错误文本

    Returns:
        Classification；benign 时 notice 为 None（静默成功）
    """
    haystack = message.lower() if kind in _CASE_INSENSITIVE_KINDS else message

    for marker in BENIGN_MARKERS.get(kind, ()):
        if marker in haystack:
            return Classification(RejectionClass.BENIGN_DUPLICATE, None, marker)

    for marker, notice in GENUINE_MARKERS.get(kind, ()):
        if marker in haystack:
            return Classification(RejectionClass.GENUINE_FAILURE, notice, marker)

    return Classification(RejectionClass.GENUINE_FAILURE, FALLBACK_NOTICES[kind], None)

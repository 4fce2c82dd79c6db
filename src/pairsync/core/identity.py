"""Identity Codec -- 参与者对 <-> ConversationId

ConversationId 形如 "A:B"，A < B（字典序）。由两端 ParticipantId 推导，
不存储，因此同一对参与者的 id 终身稳定。
"""

import re

from .exceptions import InvalidArgument, MalformedId, NotAParticipant

SEPARATOR = ":"

# principal 文本形式：字母数字开头，允许 _ - .，不含分隔符
_PARTICIPANT_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.\-]{0,63}$")

# 显示标签截断长度
LABEL_PREFIX_LENGTH = 8


def is_valid_participant(text: str) -> bool:
    """判断文本是否为合法的 ParticipantId"""
    return bool(_PARTICIPANT_RE.match(text))


def canonicalize(a: str, b: str) -> str:
    """将无序参与者对映射为唯一的 ConversationId

    Raises:
        InvalidArgument: a == b，或任一 id 格式非法
    """
    if a == b:
        raise InvalidArgument(f"Cannot start a conversation with oneself: {a!r}")
    for participant in (a, b):
        if not is_valid_participant(participant):
            raise InvalidArgument(f"Invalid participant id: {participant!r}")
    low, high = sorted((a, b))
    return f"{low}{SEPARATOR}{high}"


def decode(conversation_id: str) -> tuple[str, str]:
    """将 ConversationId 解码为两个参与者

    Raises:
        MalformedId: 分隔符数量不为 1、任一半不是合法 ParticipantId，
            或两半未按字典序排列（同一对参与者只有一个合法 id）
    """
    parts = conversation_id.split(SEPARATOR)
    if len(parts) != 2:
        raise MalformedId(conversation_id, "expected exactly one separator")
    a, b = parts
    if not is_valid_participant(a) or not is_valid_participant(b):
        raise MalformedId(conversation_id, "invalid participant id")
    if a == b:
        raise MalformedId(conversation_id, "self conversation")
    if a > b:
        raise MalformedId(conversation_id, "participants not in canonical order")
    return a, b


def is_participant(conversation_id: str, participant: str) -> bool:
    """participant 是否为该会话的一方（id 非法时返回 False）"""
    try:
        return participant in decode(conversation_id)
    except MalformedId:
        return False


def other_participant(conversation_id: str, self_id: str) -> str:
    """返回会话中不是 self_id 的那一方

    Raises:
        MalformedId: id 格式非法
        NotAParticipant: self_id 不属于该会话
    """
    a, b = decode(conversation_id)
    if self_id == a:
        return b
    if self_id == b:
        return a
    raise NotAParticipant(conversation_id, self_id)


def display_label(conversation_id: str, self_id: str, fallback: str = "Chat") -> str:
    """会话的兜底显示标签：对方 id 前 8 位 + "..." """
    try:
        other = other_participant(conversation_id, self_id)
    except (MalformedId, NotAParticipant):
        return fallback
    return other[:LABEL_PREFIX_LENGTH] + "..."

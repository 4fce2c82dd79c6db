"""ResourceLoader -- 将 ResourceKey 映射为远端读取

会话列表远端只返回 ConversationId，这里补全为 ConversationSummary：
对方 handle 优先取缓存中的 profile，最后一条消息取缓存中的消息列表。
"""

from typing import Any

import structlog

from pairsync.remote.protocols import RemoteStore

from .cache import SnapshotCache
from .config import MESSAGE_PREVIEW_LENGTH
from .exceptions import InvalidInput, QueryTooShort
from .identity import display_label, other_participant
from .models import (
    ConversationSummary,
    MessagePreview,
    ParticipantRef,
    ResourceClass,
    ResourceKey,
    UserProfile,
    sort_messages,
)
from .models.resource import SEARCH_MIN_LENGTH

log = structlog.get_logger()


def summarize_conversation(
    conversation_id: str,
    self_id: str,
    cache: SnapshotCache,
    pending: bool = False,
) -> ConversationSummary:
    """由 ConversationId 与缓存内容构建会话摘要

    Raises:
        MalformedId / NotAParticipant: id 非法或 self_id 不属于该会话
    """
    other = other_participant(conversation_id, self_id)

    profile = cache.read(ResourceKey.profile(other), None)
    if isinstance(profile, UserProfile):
        handle = f"@{profile.username}"
    else:
        handle = display_label(conversation_id, self_id)

    last_message = None
    messages = cache.read(ResourceKey.messages(conversation_id), None)
    if messages:
        last = messages[-1]
        last_message = MessagePreview(
            text=last.text[:MESSAGE_PREVIEW_LENGTH],
            timestamp_nanos=last.timestamp_nanos,
            is_video=last.is_video,
        )

    return ConversationSummary(
        id=conversation_id,
        other_participant=ParticipantRef(id=other, display_handle=handle),
        last_message=last_message,
        pending=pending,
    )


class ResourceLoader:
    """调度器使用的拉取函数"""

    def __init__(
        self,
        remote: RemoteStore,
        cache: SnapshotCache,
        self_id: str,
        search_min_length: int = SEARCH_MIN_LENGTH,
    ) -> None:
        self._remote = remote
        self._cache = cache
        self._self_id = self_id
        self._search_min_length = search_min_length

    async def __call__(self, key: ResourceKey) -> Any:
        resource = key.resource
        if resource == ResourceClass.CONVERSATIONS:
            return await self.load_conversations(key.scope)
        if resource == ResourceClass.MESSAGES:
            return sort_messages(await self._remote.list_messages(key.scope))
        if resource == ResourceClass.CALL_HISTORY:
            return await self._remote.get_call_history()
        if resource == ResourceClass.PROFILE:
            return await self._remote.get_profile(key.scope)
        if resource == ResourceClass.SEARCH:
            return await self.load_search(key.scope)
        raise ValueError(f"unsupported resource class: {resource}")

    async def load_conversations(self, participant: str) -> list[ConversationSummary]:
        conversation_ids = await self._remote.list_conversations(participant)
        summaries = []
        for conversation_id in conversation_ids:
            try:
                summaries.append(
                    summarize_conversation(conversation_id, self._self_id, self._cache)
                )
            except InvalidInput as e:
                # 远端返回了无法解码的 id，跳过而不是让整次拉取失败
                log.warning(
                    "conversation_id_skipped",
                    conversation_id=conversation_id,
                    error=str(e),
                )
        return summaries

    async def load_search(self, query: str) -> list[UserProfile]:
        normalized = query.strip()
        if len(normalized) < self._search_min_length:
            raise QueryTooShort(normalized, self._search_min_length)
        return await self._remote.search_users(normalized)

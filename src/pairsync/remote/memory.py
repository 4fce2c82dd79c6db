"""进程内权威存储 -- RemoteStore 的参考实现

InMemoryBackend 持有共享状态并执行业务规则，错误文本即拒绝分类器依赖的契约；
InMemoryRemoteStore 将 backend 绑定到某个调用方身份（相当于已认证的 actor）。

开发网关与测试都使用它。latency_s / set_reachable 用于模拟慢网络与分区。
"""

import asyncio
import time
from dataclasses import dataclass, field

import structlog

from pairsync.core.exceptions import InvalidInput, RemoteRejection, TransportError
from pairsync.core.identity import decode
from pairsync.core.models import (
    SEARCH_MIN_LENGTH,
    CallLogEntry,
    CallType,
    Message,
    MessageReply,
    MessageRequest,
    UserProfile,
    display_name_problem,
    username_problem,
)

log = structlog.get_logger()

# username 中不允许出现的保留词
RESERVED_TERMS: tuple[str, ...] = ("admin", "root", "system", "moderator", "support")


@dataclass
class _ConversationRecord:
    originator: str
    messages: list[Message] = field(default_factory=list)
    next_message_id: int = 0


@dataclass
class _CallRecord:
    owner: str
    entry: CallLogEntry


class InMemoryBackend:
    """共享状态 + 业务规则"""

    def __init__(self, latency_s: float = 0.0) -> None:
        self._conversations: dict[str, _ConversationRecord] = {}
        self._calls: dict[int, _CallRecord] = {}
        self._next_call_id = 0
        self._profiles: dict[str, UserProfile] = {}
        self._latency_s = latency_s
        self._reachable = True

    def as_caller(self, principal: str) -> "InMemoryRemoteStore":
        """返回绑定 principal 身份的 RemoteStore"""
        return InMemoryRemoteStore(self, principal)

    def set_reachable(self, reachable: bool) -> None:
        """模拟网络分区：不可达时所有调用抛出 TransportError"""
        self._reachable = reachable

    async def _enter(self, operation: str) -> None:
        if self._latency_s > 0:
            await asyncio.sleep(self._latency_s)
        if not self._reachable:
            raise TransportError(f"memory://{operation}")

    # ---- 会话 ----

    def _require_participant(self, conversation_id: str, caller: str) -> tuple[str, str]:
        try:
            pair = decode(conversation_id)
        except InvalidInput as e:
            raise RemoteRejection(f"Invalid conversation id: {e}") from e
        if caller not in pair:
            raise RemoteRejection("Unauthorized: caller is not a participant")
        return pair

    def _conversation(self, conversation_id: str) -> _ConversationRecord:
        record = self._conversations.get(conversation_id)
        if record is None:
            raise RemoteRejection("Conversation not found")
        return record

    async def list_conversations(self, caller: str, participant: str) -> list[str]:
        await self._enter("list_conversations")
        if participant != caller:
            raise RemoteRejection("Unauthorized: can only list your own conversations")
        return sorted(cid for cid in self._conversations if caller in cid.split(":"))

    async def has_conversation(self, caller: str, conversation_id: str) -> bool:
        await self._enter("has_conversation")
        return conversation_id in self._conversations

    async def add_conversation(self, caller: str, conversation_id: str) -> None:
        await self._enter("add_conversation")
        self._require_participant(conversation_id, caller)
        existing = self._conversations.get(conversation_id)
        if existing is not None:
            if existing.originator == caller:
                raise RemoteRejection("Conversation already exists")
            raise RemoteRejection(
                "Unauthorized: conversation was started by the other participant"
            )
        self._conversations[conversation_id] = _ConversationRecord(originator=caller)
        log.info("conversation_added", conversation_id=conversation_id, originator=caller)

    async def remove_conversation(self, caller: str, conversation_id: str) -> None:
        await self._enter("remove_conversation")
        self._require_participant(conversation_id, caller)
        if not any(caller in cid.split(":") for cid in self._conversations):
            raise RemoteRejection("No conversations found for caller")
        record = self._conversation(conversation_id)
        if record.originator != caller:
            raise RemoteRejection(
                "Only the participant who started this conversation can remove it"
            )
        del self._conversations[conversation_id]
        log.info("conversation_removed", conversation_id=conversation_id)

    # ---- 消息 ----

    async def list_messages(self, caller: str, conversation_id: str) -> list[Message]:
        await self._enter("list_messages")
        self._require_participant(conversation_id, caller)
        record = self._conversations.get(conversation_id)
        if record is None:
            return []
        return list(record.messages)

    async def send_message(self, caller: str, request: MessageRequest) -> MessageReply:
        await self._enter("send_message")
        self._require_participant(request.conversation_id, caller)
        if request.sender != caller:
            raise RemoteRejection("Unauthorized: sender does not match caller")
        record = self._conversation(request.conversation_id)

        message_id = record.next_message_id
        record.next_message_id += 1
        timestamp = time.time_ns()
        record.messages.append(
            Message(
                message_id=message_id,
                conversation_id=request.conversation_id,
                sender_id=caller,
                text=request.text,
                timestamp_nanos=timestamp,
                kind=request.kind,
                media_url=request.media_url,
            )
        )
        return MessageReply(message_id=message_id, timestamp_nanos=timestamp)

    async def delete_message(self, caller: str, conversation_id: str, message_id: int) -> None:
        await self._enter("delete_message")
        self._require_participant(conversation_id, caller)
        record = self._conversation(conversation_id)
        for index, message in enumerate(record.messages):
            if message.message_id == message_id:
                if message.sender_id != caller:
                    raise RemoteRejection("Unauthorized: only the sender can delete a message")
                del record.messages[index]
                return
        raise RemoteRejection("Message not found")

    # ---- 通话记录 ----

    async def get_call_history(self, caller: str) -> list[CallLogEntry]:
        await self._enter("get_call_history")
        entries = [r.entry for r in self._calls.values() if r.owner == caller]
        return sorted(entries, key=lambda e: (e.timestamp_nanos, e.id), reverse=True)

    async def record_call(
        self,
        caller: str,
        from_user: str | None,
        to_user: str | None,
        call_type: CallType,
        duration_seconds: int,
        notes: str,
    ) -> None:
        await self._enter("record_call")
        call_id = self._next_call_id
        self._next_call_id += 1
        self._calls[call_id] = _CallRecord(
            owner=caller,
            entry=CallLogEntry(
                id=call_id,
                from_user=from_user,
                to_user=to_user,
                call_type=call_type,
                duration_seconds=duration_seconds,
                notes=notes,
                timestamp_nanos=time.time_ns(),
            ),
        )

    async def delete_call_entry(self, caller: str, call_id: int) -> None:
        await self._enter("delete_call_entry")
        record = self._calls.get(call_id)
        if record is None or record.owner != caller:
            raise RemoteRejection("Call entry not found")
        del self._calls[call_id]

    # ---- profile ----

    def _check_username(self, caller: str, username: str) -> None:
        problem = username_problem(username)
        if problem:
            raise RemoteRejection(problem)
        lowered = username.lower()
        if any(term in lowered for term in RESERVED_TERMS):
            raise RemoteRejection("Username cannot include reserved terms")
        for principal, profile in self._profiles.items():
            if principal != caller and profile.username.lower() == lowered:
                raise RemoteRejection("Username already exists")

    def _check_display_name(self, display_name: str) -> None:
        problem = display_name_problem(display_name)
        if problem:
            raise RemoteRejection(problem)

    async def get_profile(self, caller: str, principal: str) -> UserProfile | None:
        await self._enter("get_profile")
        return self._profiles.get(principal)

    async def create_profile(self, caller: str, username: str, display_name: str) -> None:
        await self._enter("create_profile")
        if caller in self._profiles:
            raise RemoteRejection("User profile already exists")
        self._check_username(caller, username)
        self._check_display_name(display_name)
        self._profiles[caller] = UserProfile(
            principal_id=caller, username=username, display_name=display_name
        )

    async def update_profile(
        self,
        caller: str,
        username: str | None,
        display_name: str | None,
    ) -> None:
        await self._enter("update_profile")
        profile = self._profiles.get(caller)
        if profile is None:
            raise RemoteRejection("User profile not found")
        update = {}
        if username is not None:
            self._check_username(caller, username)
            update["username"] = username
        if display_name is not None:
            self._check_display_name(display_name)
            update["display_name"] = display_name
        self._profiles[caller] = profile.model_copy(update=update)

    async def search_users(self, caller: str, text: str) -> list[UserProfile]:
        await self._enter("search_users")
        needle = text.strip().lower()
        if len(needle) < SEARCH_MIN_LENGTH:
            raise RemoteRejection(
                f"Search text must be at least {SEARCH_MIN_LENGTH} characters"
            )
        return [
            profile
            for principal, profile in sorted(self._profiles.items())
            if principal != caller
            and (needle in profile.username.lower() or needle in profile.display_name.lower())
        ]


class InMemoryRemoteStore:
    """绑定调用方身份的 RemoteStore"""

    def __init__(self, backend: InMemoryBackend, principal: str) -> None:
        self._backend = backend
        self.principal = principal

    async def list_conversations(self, participant: str) -> list[str]:
        return await self._backend.list_conversations(self.principal, participant)

    async def has_conversation(self, conversation_id: str) -> bool:
        return await self._backend.has_conversation(self.principal, conversation_id)

    async def add_conversation(self, conversation_id: str) -> None:
        await self._backend.add_conversation(self.principal, conversation_id)

    async def remove_conversation(self, conversation_id: str) -> None:
        await self._backend.remove_conversation(self.principal, conversation_id)

    async def list_messages(self, conversation_id: str) -> list[Message]:
        return await self._backend.list_messages(self.principal, conversation_id)

    async def send_message(self, request: MessageRequest) -> MessageReply:
        return await self._backend.send_message(self.principal, request)

    async def delete_message(self, conversation_id: str, message_id: int) -> None:
        await self._backend.delete_message(self.principal, conversation_id, message_id)

    async def get_call_history(self) -> list[CallLogEntry]:
        return await self._backend.get_call_history(self.principal)

    async def record_call(
        self,
        from_user: str | None,
        to_user: str | None,
        call_type: CallType,
        duration_seconds: int,
        notes: str,
    ) -> None:
        await self._backend.record_call(
            self.principal, from_user, to_user, call_type, duration_seconds, notes
        )

    async def delete_call_entry(self, call_id: int) -> None:
        await self._backend.delete_call_entry(self.principal, call_id)

    async def get_profile(self, principal: str) -> UserProfile | None:
        return await self._backend.get_profile(self.principal, principal)

    async def create_profile(self, username: str, display_name: str) -> None:
        await self._backend.create_profile(self.principal, username, display_name)

    async def update_profile(self, username: str | None, display_name: str | None) -> None:
        await self._backend.update_profile(self.principal, username, display_name)

    async def search_users(self, text: str) -> list[UserProfile]:
        return await self._backend.search_users(self.principal, text)

"""Optimistic Mutation Engine -- 乐观本地变更 + 远端确认/回滚

每次变更的流程：
1. 解析并本地校验 payload（失败直接抛出，不触达远端）
2. 在途保护：同一 (kind, 目标) 已有变更时抛出 MutationInProgress
   （目标由 handler.guard_id 决定，如 ConversationId、call_id）
3. 记录受影响 key 的 pre-image，hold 住这些 key（丢弃期间的拉取结果）
4. 写入合成更新（临时消息、移除条目等）
5. 发送远端请求
6. 成功：用权威数据替换合成条目；benign 拒绝：保留并刷新；
   genuine 拒绝或传输失败：精确恢复 pre-image；若期间 key 被其他变更
   改写过，只撤销本次的合成更新（handler.revert）
7. 无论结果如何，对受影响 key 发起强制刷新

失败的变更不会自动重发。
"""

import time
from abc import ABC, abstractmethod
from collections.abc import Callable, Hashable, Mapping
from dataclasses import dataclass
from typing import Any

import pydantic
import structlog
from pydantic import BaseModel, Field
from ulid import ULID

from pairsync.remote.protocols import RemoteStore

from .cache import ABSENT, CacheEntry, SnapshotCache
from .exceptions import (
    InvalidPayload,
    MutationInProgress,
    NotAParticipant,
    RemoteRejection,
    TransportError,
)
from .identity import decode
from .loaders import summarize_conversation
from .models import (
    CallType,
    Message,
    MessageKind,
    MessageReply,
    MessageRequest,
    MutationKind,
    MutationOutcome,
    MutationStatus,
    RejectionClass,
    ResourceKey,
    UserProfile,
    display_name_problem,
    sort_messages,
    username_problem,
)
from .rejections import classify_rejection
from .scheduler import ReconciliationScheduler

log = structlog.get_logger()

# 传输失败的用户提示
TRANSPORT_NOTICE = "Network error, please try again"


# ---- payload ----


class AddConversationPayload(BaseModel):
    conversation_id: str


class RemoveConversationPayload(BaseModel):
    conversation_id: str


class SendMessagePayload(BaseModel):
    conversation_id: str
    text: str
    kind: MessageKind = MessageKind.TEXT
    media_url: str | None = None


class DeleteMessagePayload(BaseModel):
    conversation_id: str
    message_id: int = Field(ge=0)


class DeleteCallEntryPayload(BaseModel):
    call_id: int = Field(ge=0)


class RecordCallPayload(BaseModel):
    from_user: str | None = None
    to_user: str | None = None
    call_type: CallType
    duration_seconds: int = Field(ge=0)
    notes: str = ""


class CreateProfilePayload(BaseModel):
    username: str
    display_name: str


class UpdateProfilePayload(BaseModel):
    username: str | None = None
    display_name: str | None = None


@dataclass
class MutationContext:
    """单次变更的上下文"""

    self_id: str
    cache: SnapshotCache
    temp_id: str
    now_nanos: int


def _require_participant(conversation_id: str, self_id: str) -> None:
    if self_id not in decode(conversation_id):
        raise NotAParticipant(conversation_id, self_id)


def _put_back(current: Any, previous: Any, match: Callable[[Any], bool]) -> Any:
    """把 previous 中被本次变更移除的条目放回 current 的原位置"""
    if current is ABSENT or previous is ABSENT:
        return current
    if any(match(item) for item in current):
        return current
    for index, item in enumerate(previous):
        if match(item):
            return [*current[:index], item, *current[index:]]
    return current


# ---- handler ----


class MutationHandler(ABC):
    """单一变更类型的规则"""

    kind: MutationKind
    payload_model: type[BaseModel]
    success_notice: str | None = None

    def parse(self, payload: BaseModel | Mapping[str, Any]) -> Any:
        if isinstance(payload, self.payload_model):
            return payload
        try:
            if isinstance(payload, BaseModel):
                payload = payload.model_dump()
            return self.payload_model.model_validate(payload)
        except pydantic.ValidationError as e:
            raise InvalidPayload(f"Invalid {self.kind} payload: {e}") from e

    def validate(self, payload: Any, self_id: str) -> None:
        """本地形状校验，默认无额外规则"""

    @abstractmethod
    def primary_key(self, payload: Any, self_id: str) -> ResourceKey:
        """合成更新作用的 key"""

    def guard_id(self, payload: Any, self_id: str) -> Hashable:
        """在途保护的粒度，默认与 primary key 相同"""
        return self.primary_key(payload, self_id)

    def patched_keys(self, payload: Any, self_id: str) -> list[ResourceKey]:
        return [self.primary_key(payload, self_id)]

    def refresh_keys(self, payload: Any, self_id: str) -> list[ResourceKey]:
        return self.patched_keys(payload, self_id)

    def apply(self, key: ResourceKey, current: Any, payload: Any, ctx: MutationContext) -> Any:
        """合成更新，默认不改动"""
        return current

    @abstractmethod
    async def dispatch(self, remote: RemoteStore, payload: Any, ctx: MutationContext) -> Any:
        """发送远端请求"""

    def confirm(
        self,
        key: ResourceKey,
        current: Any,
        payload: Any,
        ctx: MutationContext,
        result: Any,
    ) -> Any:
        """用远端响应替换合成条目，默认保持现状等待刷新"""
        return current

    def revert(
        self,
        key: ResourceKey,
        current: Any,
        previous: Any,
        payload: Any,
        ctx: MutationContext,
    ) -> Any:
        """只撤销本次合成更新

        仅在 key 于变更期间被其他变更改写过时使用；否则精确恢复 pre-image。
        previous 为变更前的值（无值时为 ABSENT）。
        """
        return previous

    def result_of(self, payload: Any, result: Any) -> Any:
        return result


class AddConversationHandler(MutationHandler):
    kind = MutationKind.ADD_CONVERSATION
    payload_model = AddConversationPayload

    def validate(self, payload: AddConversationPayload, self_id: str) -> None:
        _require_participant(payload.conversation_id, self_id)

    def primary_key(self, payload, self_id):
        return ResourceKey.conversations(self_id)

    def guard_id(self, payload, self_id):
        return payload.conversation_id

    def apply(self, key, current, payload, ctx):
        summaries = list(current) if current is not ABSENT else []
        if any(s.id == payload.conversation_id for s in summaries):
            return current
        summaries.append(
            summarize_conversation(payload.conversation_id, ctx.self_id, ctx.cache, pending=True)
        )
        return summaries

    async def dispatch(self, remote, payload, ctx):
        await remote.add_conversation(payload.conversation_id)

    def confirm(self, key, current, payload, ctx, result):
        if current is ABSENT:
            return current
        return [
            s.model_copy(update={"pending": False}) if s.id == payload.conversation_id else s
            for s in current
        ]

    def revert(self, key, current, previous, payload, ctx):
        if current is ABSENT:
            return current
        if previous is not ABSENT and any(s.id == payload.conversation_id for s in previous):
            return current
        return [s for s in current if s.id != payload.conversation_id]

    def result_of(self, payload, result):
        return payload.conversation_id


class RemoveConversationHandler(MutationHandler):
    kind = MutationKind.REMOVE_CONVERSATION
    payload_model = RemoveConversationPayload
    success_notice = "Conversation removed"

    def validate(self, payload: RemoveConversationPayload, self_id: str) -> None:
        _require_participant(payload.conversation_id, self_id)

    def primary_key(self, payload, self_id):
        return ResourceKey.conversations(self_id)

    def guard_id(self, payload, self_id):
        return payload.conversation_id

    def apply(self, key, current, payload, ctx):
        if current is ABSENT:
            return current
        return [s for s in current if s.id != payload.conversation_id]

    async def dispatch(self, remote, payload, ctx):
        await remote.remove_conversation(payload.conversation_id)

    def revert(self, key, current, previous, payload, ctx):
        return _put_back(current, previous, lambda s: s.id == payload.conversation_id)

    def result_of(self, payload, result):
        return payload.conversation_id


class SendMessageHandler(MutationHandler):
    kind = MutationKind.SEND_MESSAGE
    payload_model = SendMessagePayload

    def validate(self, payload: SendMessagePayload, self_id: str) -> None:
        _require_participant(payload.conversation_id, self_id)
        if payload.kind == MessageKind.VIDEO:
            if not payload.media_url:
                raise InvalidPayload("Video messages require a media_url")
        elif not payload.text.strip():
            raise InvalidPayload("Message text must not be empty")

    def primary_key(self, payload, self_id):
        return ResourceKey.messages(payload.conversation_id)

    def refresh_keys(self, payload, self_id):
        return [
            ResourceKey.messages(payload.conversation_id),
            ResourceKey.conversations(self_id),
        ]

    def apply(self, key, current, payload, ctx):
        provisional = Message(
            conversation_id=payload.conversation_id,
            sender_id=ctx.self_id,
            text=payload.text,
            timestamp_nanos=ctx.now_nanos,
            kind=payload.kind,
            media_url=payload.media_url,
            temp_id=ctx.temp_id,
            pending=True,
        )
        messages = list(current) if current is not ABSENT else []
        messages.append(provisional)
        return messages

    async def dispatch(self, remote, payload, ctx) -> MessageReply:
        return await remote.send_message(
            MessageRequest(
                conversation_id=payload.conversation_id,
                sender=ctx.self_id,
                text=payload.text,
                kind=payload.kind,
                media_url=payload.media_url,
            )
        )

    def confirm(self, key, current, payload, ctx, result: MessageReply):
        if current is ABSENT:
            return current
        confirmed = [
            m.model_copy(
                update={
                    "message_id": result.message_id,
                    "timestamp_nanos": result.timestamp_nanos,
                    "temp_id": None,
                    "pending": False,
                }
            )
            if m.temp_id == ctx.temp_id
            else m
            for m in current
        ]
        return sort_messages(confirmed)

    def revert(self, key, current, previous, payload, ctx):
        if current is ABSENT:
            return current
        return [m for m in current if m.temp_id != ctx.temp_id]

    def result_of(self, payload, result: MessageReply | None):
        return result.message_id if result is not None else None


class DeleteMessageHandler(MutationHandler):
    kind = MutationKind.DELETE_MESSAGE
    payload_model = DeleteMessagePayload

    def validate(self, payload: DeleteMessagePayload, self_id: str) -> None:
        _require_participant(payload.conversation_id, self_id)

    def primary_key(self, payload, self_id):
        return ResourceKey.messages(payload.conversation_id)

    def guard_id(self, payload, self_id):
        return (payload.conversation_id, payload.message_id)

    def apply(self, key, current, payload, ctx):
        if current is ABSENT:
            return current
        return [m for m in current if m.message_id != payload.message_id]

    async def dispatch(self, remote, payload, ctx):
        await remote.delete_message(payload.conversation_id, payload.message_id)

    def revert(self, key, current, previous, payload, ctx):
        restored = _put_back(current, previous, lambda m: m.message_id == payload.message_id)
        return restored if restored is ABSENT else sort_messages(restored)


class DeleteCallEntryHandler(MutationHandler):
    kind = MutationKind.DELETE_CALL_ENTRY
    payload_model = DeleteCallEntryPayload
    success_notice = "Call entry has been removed from your history"

    def primary_key(self, payload, self_id):
        return ResourceKey.call_history()

    def guard_id(self, payload, self_id):
        return payload.call_id

    def apply(self, key, current, payload, ctx):
        if current is ABSENT:
            return []
        return [c for c in current if c.id != payload.call_id]

    async def dispatch(self, remote, payload, ctx):
        await remote.delete_call_entry(payload.call_id)

    def revert(self, key, current, previous, payload, ctx):
        if previous is ABSENT:
            return current
        return _put_back(current, previous, lambda c: c.id == payload.call_id)


class RecordCallHandler(MutationHandler):
    """通话记录由远端分配 ID，不做合成更新，只在结算后刷新"""

    kind = MutationKind.RECORD_CALL
    payload_model = RecordCallPayload

    def primary_key(self, payload, self_id):
        return ResourceKey.call_history()

    async def dispatch(self, remote, payload, ctx):
        await remote.record_call(
            payload.from_user,
            payload.to_user,
            payload.call_type,
            payload.duration_seconds,
            payload.notes,
        )


class CreateProfileHandler(MutationHandler):
    kind = MutationKind.CREATE_PROFILE
    payload_model = CreateProfilePayload
    success_notice = "Profile created"

    def validate(self, payload: CreateProfilePayload, self_id: str) -> None:
        problem = username_problem(payload.username) or display_name_problem(
            payload.display_name
        )
        if problem:
            raise InvalidPayload(problem)

    def primary_key(self, payload, self_id):
        return ResourceKey.profile(self_id)

    def apply(self, key, current, payload, ctx):
        return UserProfile(
            principal_id=ctx.self_id,
            username=payload.username,
            display_name=payload.display_name,
        )

    async def dispatch(self, remote, payload, ctx):
        await remote.create_profile(payload.username, payload.display_name)


class UpdateProfileHandler(MutationHandler):
    kind = MutationKind.UPDATE_PROFILE
    payload_model = UpdateProfilePayload
    success_notice = "Profile updated successfully"

    def validate(self, payload: UpdateProfilePayload, self_id: str) -> None:
        if payload.username is None and payload.display_name is None:
            raise InvalidPayload("Nothing to update")
        problem = None
        if payload.username is not None:
            problem = username_problem(payload.username)
        if problem is None and payload.display_name is not None:
            problem = display_name_problem(payload.display_name)
        if problem:
            raise InvalidPayload(problem)

    def primary_key(self, payload, self_id):
        return ResourceKey.profile(self_id)

    def apply(self, key, current, payload, ctx):
        if not isinstance(current, UserProfile):
            return current
        update = {}
        if payload.username is not None:
            update["username"] = payload.username
        if payload.display_name is not None:
            update["display_name"] = payload.display_name
        return current.model_copy(update=update)

    async def dispatch(self, remote, payload, ctx):
        await remote.update_profile(payload.username, payload.display_name)

    def revert(self, key, current, previous, payload, ctx):
        if not isinstance(current, UserProfile) or not isinstance(previous, UserProfile):
            return previous
        fields = [
            name
            for name in ("username", "display_name")
            if getattr(payload, name) is not None
        ]
        return current.model_copy(update={name: getattr(previous, name) for name in fields})


DEFAULT_HANDLERS: tuple[MutationHandler, ...] = (
    AddConversationHandler(),
    RemoveConversationHandler(),
    SendMessageHandler(),
    DeleteMessageHandler(),
    DeleteCallEntryHandler(),
    RecordCallHandler(),
    CreateProfileHandler(),
    UpdateProfileHandler(),
)


# ---- engine ----


class OptimisticMutationEngine:
    """乐观变更引擎"""

    def __init__(
        self,
        remote: RemoteStore,
        cache: SnapshotCache,
        scheduler: ReconciliationScheduler,
        self_id: str,
        handlers: tuple[MutationHandler, ...] = DEFAULT_HANDLERS,
    ) -> None:
        self._remote = remote
        self._cache = cache
        self._scheduler = scheduler
        self._self_id = self_id
        self._handlers = {handler.kind: handler for handler in handlers}
        self._in_flight: set[tuple[MutationKind, Hashable]] = set()

    def is_pending(self, kind: MutationKind, guard_id: Hashable) -> bool:
        """guard_id 与 handler.guard_id() 一致（如 ConversationId、call_id）"""
        return (kind, guard_id) in self._in_flight

    async def execute(
        self,
        kind: MutationKind,
        payload: BaseModel | Mapping[str, Any],
    ) -> MutationOutcome:
        """执行一次乐观变更

        Raises:
            InvalidInput: 本地校验失败（未发送）
            MutationInProgress: 同一目标上同类变更在途（未发送）
        """
        handler = self._handlers[MutationKind(kind)]
        parsed = handler.parse(payload)
        handler.validate(parsed, self._self_id)

        guard_id = handler.guard_id(parsed, self._self_id)
        guard = (handler.kind, guard_id)
        if guard in self._in_flight:
            log.info("mutation_rejected_in_progress", kind=handler.kind, target=str(guard_id))
            raise MutationInProgress(handler.kind, guard_id)
        self._in_flight.add(guard)

        patched = handler.patched_keys(parsed, self._self_id)
        ctx = MutationContext(
            self_id=self._self_id,
            cache=self._cache,
            temp_id=f"tmp-{ULID()}",
            now_nanos=time.time_ns(),
        )
        pre_images = {k: self._cache.entry(k) for k in patched}
        for k in patched:
            self._cache.hold(k)

        try:
            for k in patched:
                self._cache.patch(
                    k, lambda current, k=k: handler.apply(k, current, parsed, ctx)
                )
            versions = {k: self._cache.version(k) for k in patched}
            return await self._settle(handler, parsed, ctx, pre_images, versions)
        finally:
            for k in patched:
                self._cache.release(k)
            self._in_flight.discard(guard)
            for k in handler.refresh_keys(parsed, self._self_id):
                self._scheduler.request_refresh(k)

    async def _settle(
        self,
        handler: MutationHandler,
        payload: Any,
        ctx: MutationContext,
        pre_images: dict[ResourceKey, CacheEntry | None],
        versions: dict[ResourceKey, int],
    ) -> MutationOutcome:
        try:
            result = await handler.dispatch(self._remote, payload, ctx)
        except RemoteRejection as e:
            classification = classify_rejection(handler.kind, e.message)
            if classification.rejection_class == RejectionClass.BENIGN_DUPLICATE:
                # 目标状态已成立：保留合成更新，等待刷新
                log.info(
                    "mutation_already_satisfied",
                    kind=handler.kind,
                    marker=classification.marker,
                    error=e.message,
                )
                return MutationOutcome(
                    kind=handler.kind,
                    status=MutationStatus.ALREADY_SATISFIED,
                    result=handler.result_of(payload, None),
                )
            self._rollback(handler, payload, ctx, pre_images, versions)
            log.warning(
                "mutation_rejected",
                kind=handler.kind,
                marker=classification.marker,
                error=e.message,
            )
            return MutationOutcome(
                kind=handler.kind,
                status=MutationStatus.FAILED,
                notice=classification.notice,
                error=e.message,
            )
        except TransportError as e:
            self._rollback(handler, payload, ctx, pre_images, versions)
            log.warning("mutation_transport_failed", kind=handler.kind, error=str(e))
            return MutationOutcome(
                kind=handler.kind,
                status=MutationStatus.FAILED,
                notice=TRANSPORT_NOTICE,
                error=str(e),
            )
        except Exception:
            self._rollback(handler, payload, ctx, pre_images, versions)
            raise

        for k in pre_images:
            self._cache.patch(
                k, lambda current, k=k: handler.confirm(k, current, payload, ctx, result)
            )
        log.info("mutation_confirmed", kind=handler.kind)
        return MutationOutcome(
            kind=handler.kind,
            status=MutationStatus.CONFIRMED,
            notice=handler.success_notice,
            result=handler.result_of(payload, result),
        )

    def _rollback(
        self,
        handler: MutationHandler,
        payload: Any,
        ctx: MutationContext,
        pre_images: dict[ResourceKey, CacheEntry | None],
        versions: dict[ResourceKey, int],
    ) -> None:
        """撤销合成更新

        key 自本次 patch 后未被改写：精确恢复 pre-image。
        期间有其他变更改写过：只撤销本次的改动，保留其他变更的结果。
        """
        for k, pre_image in pre_images.items():
            if self._cache.version(k) == versions[k]:
                self._cache.restore(k, pre_image)
                continue
            previous = pre_image.value if pre_image is not None else ABSENT
            log.info("mutation_partial_rollback", kind=handler.kind, key=str(k))
            self._cache.patch(
                k,
                lambda current, k=k, previous=previous: handler.revert(
                    k, current, previous, payload, ctx
                ),
            )

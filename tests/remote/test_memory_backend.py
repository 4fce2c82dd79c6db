"""InMemoryBackend 业务规则测试

拒绝文本是客户端分类器依赖的契约，这里按原文断言。
"""

import pytest
from pairsync.core.exceptions import RemoteRejection, TransportError
from pairsync.core.models import CallType, MessageRequest
from pairsync.remote.memory import InMemoryBackend


class TestConversationRules:
    """会话建立与移除"""

    async def test_add_and_list(self, backend: InMemoryBackend):
        await backend.add_conversation("p1", "p1:p2")
        assert await backend.list_conversations("p1", "p1") == ["p1:p2"]
        assert await backend.list_conversations("p2", "p2") == ["p1:p2"]
        assert await backend.has_conversation("p3", "p1:p2")

    async def test_duplicate_by_originator(self, seeded_backend: InMemoryBackend):
        with pytest.raises(RemoteRejection, match="already exists"):
            await seeded_backend.add_conversation("p1", "p1:p2")

    async def test_duplicate_by_other_side(self, seeded_backend: InMemoryBackend):
        with pytest.raises(RemoteRejection, match="^Unauthorized"):
            await seeded_backend.add_conversation("p2", "p1:p2")

    async def test_stranger_cannot_add(self, backend: InMemoryBackend):
        with pytest.raises(RemoteRejection, match="not a participant"):
            await backend.add_conversation("p3", "p1:p2")

    async def test_only_originator_removes(self, seeded_backend: InMemoryBackend):
        with pytest.raises(RemoteRejection, match="started"):
            await seeded_backend.remove_conversation("p2", "p1:p2")
        await seeded_backend.remove_conversation("p1", "p1:p2")
        assert await seeded_backend.list_conversations("p1", "p1") == []

    async def test_remove_without_conversations(self, backend: InMemoryBackend):
        with pytest.raises(RemoteRejection, match="No conversations"):
            await backend.remove_conversation("p1", "p1:p2")

    async def test_list_other_participant_rejected(self, backend: InMemoryBackend):
        with pytest.raises(RemoteRejection):
            await backend.list_conversations("p1", "p2")


class TestMessages:
    """消息 ID 单调递增与删除规则"""

    async def test_ids_monotonic(self, seeded_backend: InMemoryBackend):
        for text in ("a", "b", "c"):
            await seeded_backend.send_message(
                "p1", MessageRequest(conversation_id="p1:p2", sender="p1", text=text)
            )
        messages = await seeded_backend.list_messages("p2", "p1:p2")
        assert [m.message_id for m in messages] == [0, 1, 2]
        assert [m.text for m in messages] == ["a", "b", "c"]

    async def test_send_to_missing_conversation(self, backend: InMemoryBackend):
        with pytest.raises(RemoteRejection, match="not found"):
            await backend.send_message(
                "p1", MessageRequest(conversation_id="p1:p2", sender="p1", text="hi")
            )

    async def test_only_sender_deletes(self, seeded_backend: InMemoryBackend):
        reply = await seeded_backend.send_message(
            "p1", MessageRequest(conversation_id="p1:p2", sender="p1", text="hi")
        )
        with pytest.raises(RemoteRejection, match="Unauthorized"):
            await seeded_backend.delete_message("p2", "p1:p2", reply.message_id)
        await seeded_backend.delete_message("p1", "p1:p2", reply.message_id)
        with pytest.raises(RemoteRejection, match="not found"):
            await seeded_backend.delete_message("p1", "p1:p2", reply.message_id)


class TestCalls:
    async def test_record_and_delete(self, backend: InMemoryBackend):
        await backend.record_call("p1", "alice", "bob", CallType.AUDIO, 30, "")
        await backend.record_call("p1", "alice", "bob", CallType.WEBCAM, 60, "weekly")
        history = await backend.get_call_history("p1")
        assert [e.call_type for e in history] == [CallType.WEBCAM, CallType.AUDIO]
        assert await backend.get_call_history("p2") == []

        await backend.delete_call_entry("p1", history[0].id)
        with pytest.raises(RemoteRejection, match="Call entry not found"):
            await backend.delete_call_entry("p1", history[0].id)

    async def test_cannot_delete_others_entry(self, backend: InMemoryBackend):
        await backend.record_call("p1", None, None, CallType.STREAM, 5, "")
        with pytest.raises(RemoteRejection, match="not found"):
            await backend.delete_call_entry("p2", 0)


class TestProfiles:
    """profile 校验文本"""

    async def test_username_taken(self, seeded_backend: InMemoryBackend):
        with pytest.raises(RemoteRejection, match="Username already exists"):
            await seeded_backend.create_profile("p3", "Alice", "Other")

    @pytest.mark.parametrize(
        ("username", "fragment"),
        [
            ("ab", "must be between 3 and 32"),
            ("bad name", "cannot contain"),
            ("superadmin", "cannot include"),
        ],
    )
    async def test_username_rules(self, backend, username, fragment):
        with pytest.raises(RemoteRejection, match=fragment):
            await backend.create_profile("p1", username, "Name")

    async def test_update_requires_profile(self, backend: InMemoryBackend):
        with pytest.raises(RemoteRejection, match="User profile not found"):
            await backend.update_profile("p1", None, "Name")

    async def test_update_keeps_own_username(self, seeded_backend: InMemoryBackend):
        await seeded_backend.update_profile("p1", "alice", "Alice 2")
        profile = await seeded_backend.get_profile("p2", "p1")
        assert profile.display_name == "Alice 2"

    async def test_search(self, seeded_backend: InMemoryBackend):
        results = await seeded_backend.search_users("p1", "bob")
        assert [p.username for p in results] == ["bob"]
        with pytest.raises(RemoteRejection, match="at least 3"):
            await seeded_backend.search_users("p1", "bo")


class TestReachability:
    async def test_unreachable(self, backend: InMemoryBackend):
        backend.set_reachable(False)
        with pytest.raises(TransportError):
            await backend.get_call_history("p1")

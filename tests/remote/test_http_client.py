"""HttpRemoteStore 测试

经 ASGITransport 直连开发网关；传输失败用 httpx.MockTransport 模拟。
"""

import httpx
import pytest
import pytest_asyncio
from pairsync.core.exceptions import RemoteRejection, TransportError
from pairsync.core.models import CallType, MessageRequest
from pairsync.gateway.main import create_app
from pairsync.remote.config import load_remote_config
from pairsync.remote.http_client import HttpRemoteStore


@pytest_asyncio.fixture
async def transport(seeded_backend):
    return httpx.ASGITransport(app=create_app(seeded_backend))


@pytest_asyncio.fixture
async def alice_http(transport):
    async with HttpRemoteStore("http://test", "p1", transport=transport) as store:
        yield store


@pytest_asyncio.fixture
async def bob_http(transport):
    async with HttpRemoteStore("http://test", "p2", transport=transport) as store:
        yield store


class TestRoundTrip:
    """REST 契约"""

    async def test_conversations(self, alice_http, bob_http):
        assert await alice_http.list_conversations("p1") == ["p1:p2"]
        assert await bob_http.has_conversation("p1:p2")
        assert not await bob_http.has_conversation("p2:p3")

    async def test_messages(self, alice_http, bob_http):
        reply = await alice_http.send_message(
            MessageRequest(conversation_id="p1:p2", sender="p1", text="hello")
        )
        assert reply.message_id == 0

        [message] = await bob_http.list_messages("p1:p2")
        assert message.text == "hello"
        assert message.sender_id == "p1"

        await alice_http.delete_message("p1:p2", reply.message_id)
        assert await bob_http.list_messages("p1:p2") == []

    async def test_calls(self, alice_http):
        await alice_http.record_call("alice", "bob", CallType.WEBCAM, 12, "")
        [entry] = await alice_http.get_call_history()
        assert entry.call_type == CallType.WEBCAM
        await alice_http.delete_call_entry(entry.id)
        assert await alice_http.get_call_history() == []

    async def test_profiles(self, alice_http, transport):
        profile = await alice_http.get_profile("p2")
        assert profile.username == "bob"
        assert await alice_http.get_profile("nobody") is None

        await alice_http.update_profile(None, "Alice L.")
        assert (await alice_http.get_profile("p1")).display_name == "Alice L."

        async with HttpRemoteStore("http://test", "p3", transport=transport) as carol:
            await carol.create_profile("carol", "Carol")
            assert [p.username for p in await carol.search_users("car")] == []
            assert [p.username for p in await alice_http.search_users("car")] == ["carol"]


class TestRejections:
    """4xx -> RemoteRejection，原文保留"""

    async def test_rejection_text_preserved(self, bob_http):
        with pytest.raises(RemoteRejection) as exc_info:
            await bob_http.remove_conversation("p1:p2")
        assert exc_info.value.message == (
            "Only the participant who started this conversation can remove it"
        )

    async def test_benign_text_preserved(self, bob_http):
        with pytest.raises(RemoteRejection, match="^Unauthorized"):
            await bob_http.add_conversation("p1:p2")

    async def test_missing_principal(self, transport):
        async with HttpRemoteStore("http://test", "", transport=transport) as anonymous:
            with pytest.raises(RemoteRejection, match="Unauthorized"):
                await anonymous.get_call_history()


class TestTransportFailures:
    """不可达 / 超时 / 5xx -> TransportError"""

    async def test_backend_unavailable(self, seeded_backend, alice_http):
        seeded_backend.set_reachable(False)
        with pytest.raises(TransportError) as exc_info:
            await alice_http.list_conversations("p1")
        assert exc_info.value.recoverable

    @pytest.mark.parametrize("error_type", [httpx.ConnectError, httpx.ReadTimeout])
    async def test_connection_errors(self, error_type):
        def handler(request: httpx.Request) -> httpx.Response:
            raise error_type("boom", request=request)

        async with HttpRemoteStore(
            "http://test", "p1", transport=httpx.MockTransport(handler)
        ) as store:
            with pytest.raises(TransportError) as exc_info:
                await store.get_call_history()
        assert isinstance(exc_info.value.original_error, error_type)

    async def test_non_json_error_body(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(400, text="plain failure")

        async with HttpRemoteStore(
            "http://test", "p1", transport=httpx.MockTransport(handler)
        ) as store:
            with pytest.raises(RemoteRejection, match="plain failure"):
                await store.get_call_history()


class TestRemoteConfig:
    def test_defaults(self, monkeypatch):
        for var in ("PAIRSYNC_REMOTE_URL", "PAIRSYNC_PRINCIPAL", "PAIRSYNC_REMOTE_TIMEOUT_S"):
            monkeypatch.delenv(var, raising=False)
        config = load_remote_config()
        assert config.base_url == "http://localhost:8000"
        assert config.timeout_s == 10.0

    def test_env_override(self, monkeypatch):
        monkeypatch.setenv("PAIRSYNC_REMOTE_URL", "http://gw:9000")
        monkeypatch.setenv("PAIRSYNC_PRINCIPAL", "p1")
        monkeypatch.setenv("PAIRSYNC_REMOTE_TIMEOUT_S", "2.5")
        config = load_remote_config()
        assert (config.base_url, config.principal, config.timeout_s) == ("http://gw:9000", "p1", 2.5)

    def test_invalid_timeout_falls_back(self, monkeypatch):
        monkeypatch.setenv("PAIRSYNC_REMOTE_TIMEOUT_S", "soon")
        assert load_remote_config().timeout_s == 10.0

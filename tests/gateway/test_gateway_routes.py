"""开发网关路由测试

测试内容：
1. 健康检查与 X-Request-ID 响应头
2. 会话/消息/通话/profile 路由
3. 业务拒绝映射为 4xx + {"error": {"code", "message"}}
"""

from httpx import ASGITransport, AsyncClient
from pairsync.gateway.errors import rejection_status
from pairsync.gateway.main import create_app, lifespan
from pairsync.gateway.middleware.trace_mw import conversation_id_from_path


class TestHealth:
    async def test_health(self, client: AsyncClient):
        resp = await client.get("/health")
        assert resp.status_code == 200
        assert resp.json() == {"status": "ok"}

    async def test_request_id_header(self, client: AsyncClient):
        resp = await client.get("/health")
        assert len(resp.headers["X-Request-ID"]) == 26  # ULID


class TestConversationRoutes:
    """会话路由"""

    async def test_list(self, client: AsyncClient):
        resp = await client.get("/api/conversations", params={"participant": "p1"})
        assert resp.status_code == 200
        assert resp.json() == {"conversations": ["p1:p2"]}

    async def test_add(self, client: AsyncClient):
        resp = await client.post("/api/conversations", json={"conversation_id": "p1:p3"})
        assert resp.status_code == 201
        resp = await client.get("/api/conversations/p1:p3/exists")
        assert resp.json() == {"exists": True}

    async def test_duplicate_conflict(self, client: AsyncClient):
        resp = await client.post("/api/conversations", json={"conversation_id": "p1:p2"})
        assert resp.status_code == 409
        assert resp.json() == {
            "error": {"code": "CONFLICT", "message": "Conversation already exists"}
        }

    async def test_remove_by_non_originator_forbidden(self, app):
        async with AsyncClient(
            transport=ASGITransport(app=app),
            base_url="http://test",
            headers={"X-Principal": "p2"},
        ) as bob:
            resp = await bob.delete("/api/conversations/p1:p2")
        assert resp.status_code == 403
        assert "started" in resp.json()["error"]["message"]

    async def test_missing_principal(self, app):
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
            resp = await ac.get("/api/calls")
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "UNAUTHENTICATED"


class TestMessageRoutes:
    async def test_send_and_list(self, client: AsyncClient):
        resp = await client.post(
            "/api/conversations/p1:p2/messages",
            json={"conversation_id": "p1:p2", "sender": "p1", "text": "hi"},
        )
        assert resp.status_code == 201
        assert resp.json()["message_id"] == 0

        resp = await client.get("/api/conversations/p1:p2/messages")
        [message] = resp.json()["messages"]
        assert message["text"] == "hi"
        assert message["kind"] == "text"

    async def test_path_body_mismatch(self, client: AsyncClient):
        resp = await client.post(
            "/api/conversations/p1:p2/messages",
            json={"conversation_id": "p1:p3", "sender": "p1", "text": "hi"},
        )
        assert resp.status_code == 400

    async def test_delete_missing_message(self, client: AsyncClient):
        resp = await client.delete("/api/conversations/p1:p2/messages/99")
        assert resp.status_code == 404


class TestCallAndProfileRoutes:
    async def test_calls(self, client: AsyncClient):
        resp = await client.post(
            "/api/calls", json={"to_user": "bob", "call_type": "audio", "duration_seconds": 3}
        )
        assert resp.status_code == 201
        [entry] = (await client.get("/api/calls")).json()["calls"]
        assert entry["to_user"] == "bob"

        resp = await client.delete(f"/api/calls/{entry['id']}")
        assert resp.status_code == 200
        resp = await client.delete(f"/api/calls/{entry['id']}")
        assert resp.status_code == 404

    async def test_profile(self, client: AsyncClient):
        resp = await client.get("/api/profiles/p2")
        assert resp.json()["profile"]["username"] == "bob"

        resp = await client.patch("/api/profile", json={"username": "bob"})
        assert resp.status_code == 409
        assert resp.json()["error"]["message"] == "Username already exists"

    async def test_search_too_short(self, client: AsyncClient):
        resp = await client.get("/api/users/search", params={"q": "bo"})
        assert resp.status_code == 400

    async def test_lifespan_creates_backend(self):
        app = create_app()
        async with lifespan(app):
            assert app.state.backend is not None


class TestHelpers:
    def test_rejection_status(self):
        assert rejection_status("Call entry not found") == (404, "NOT_FOUND")
        assert rejection_status("No conversations found for caller") == (404, "NOT_FOUND")
        assert rejection_status("Unauthorized: caller is not a participant") == (403, "FORBIDDEN")
        assert rejection_status("Username must be between 3 and 32 characters") == (
            400,
            "REJECTED",
        )

    def test_conversation_id_from_path(self):
        assert conversation_id_from_path("/api/conversations/p1:p2/messages") == "p1:p2"
        assert conversation_id_from_path("/api/conversations") is None
        assert conversation_id_from_path("/api/calls/1") is None

"""gateway 测试配置 -- 绕过 lifespan，直接注入 backend"""

from collections.abc import AsyncGenerator

import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from pairsync.gateway.main import create_app


@pytest_asyncio.fixture
async def app(seeded_backend):
    return create_app(seeded_backend)


@pytest_asyncio.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    """以 p1 身份访问网关"""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
        headers={"X-Principal": "p1"},
    ) as ac:
        yield ac

"""Profile 与用户搜索路由

GET   /api/profiles/{principal}: 查询 profile（不存在时 profile 为 null）
POST  /api/profile: 为调用方创建 profile
PATCH /api/profile: 更新调用方 profile
GET   /api/users/search?q=: 按 username / displayName 搜索
"""

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from starlette.responses import JSONResponse

from pairsync.remote.memory import InMemoryRemoteStore

from ..deps import get_caller

router = APIRouter()


class CreateProfileRequest(BaseModel):
    username: str
    display_name: str


class UpdateProfileRequest(BaseModel):
    username: str | None = None
    display_name: str | None = None


@router.get("/api/profiles/{principal}")
async def get_profile(
    principal: str,
    caller: InMemoryRemoteStore = Depends(get_caller),
):
    profile = await caller.get_profile(principal)
    return {"profile": profile.model_dump(mode="json") if profile is not None else None}


@router.post("/api/profile")
async def create_profile(
    body: CreateProfileRequest,
    caller: InMemoryRemoteStore = Depends(get_caller),
):
    await caller.create_profile(body.username, body.display_name)
    return JSONResponse(status_code=201, content={"principal_id": caller.principal})


@router.patch("/api/profile")
async def update_profile(
    body: UpdateProfileRequest,
    caller: InMemoryRemoteStore = Depends(get_caller),
):
    await caller.update_profile(body.username, body.display_name)
    return {"principal_id": caller.principal}


@router.get("/api/users/search")
async def search_users(
    q: str = Query(default="", description="搜索词，至少 3 个字符"),
    caller: InMemoryRemoteStore = Depends(get_caller),
):
    users = await caller.search_users(q)
    return {"users": [u.model_dump(mode="json") for u in users]}

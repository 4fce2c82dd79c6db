"""通话记录路由

GET    /api/calls: 调用方的通话记录（新的在前）
POST   /api/calls: 记录一次已结束的通话
DELETE /api/calls/{call_id}
"""

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from starlette.responses import JSONResponse

from pairsync.core.models import CallType
from pairsync.remote.memory import InMemoryRemoteStore

from ..deps import get_caller

router = APIRouter()


class RecordCallRequest(BaseModel):
    from_user: str | None = None
    to_user: str | None = None
    call_type: CallType
    duration_seconds: int = Field(ge=0)
    notes: str = ""


@router.get("/api/calls")
async def get_call_history(caller: InMemoryRemoteStore = Depends(get_caller)):
    entries = await caller.get_call_history()
    return {"calls": [e.model_dump(mode="json") for e in entries]}


@router.post("/api/calls")
async def record_call(
    body: RecordCallRequest,
    caller: InMemoryRemoteStore = Depends(get_caller),
):
    await caller.record_call(
        body.from_user, body.to_user, body.call_type, body.duration_seconds, body.notes
    )
    return JSONResponse(status_code=201, content={"recorded": True})


@router.delete("/api/calls/{call_id}")
async def delete_call_entry(
    call_id: int,
    caller: InMemoryRemoteStore = Depends(get_caller),
):
    await caller.delete_call_entry(call_id)
    return {"deleted": call_id}

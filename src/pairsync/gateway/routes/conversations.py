"""会话与消息路由

GET    /api/conversations?participant=: 参与者的 ConversationId 列表
POST   /api/conversations: 建立会话
DELETE /api/conversations/{conversation_id}: 移除会话（仅发起方）
GET    /api/conversations/{conversation_id}/exists
GET    /api/conversations/{conversation_id}/messages
POST   /api/conversations/{conversation_id}/messages
DELETE /api/conversations/{conversation_id}/messages/{message_id}
"""

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from starlette.responses import JSONResponse

from pairsync.core.exceptions import RemoteRejection
from pairsync.core.models import MessageReply, MessageRequest
from pairsync.remote.memory import InMemoryRemoteStore

from ..deps import get_caller

router = APIRouter()


class AddConversationRequest(BaseModel):
    conversation_id: str


@router.get("/api/conversations")
async def list_conversations(
    participant: str = Query(description="参与者 ID，必须是调用方自己"),
    caller: InMemoryRemoteStore = Depends(get_caller),
):
    return {"conversations": await caller.list_conversations(participant)}


@router.post("/api/conversations")
async def add_conversation(
    body: AddConversationRequest,
    caller: InMemoryRemoteStore = Depends(get_caller),
):
    await caller.add_conversation(body.conversation_id)
    return JSONResponse(status_code=201, content={"conversation_id": body.conversation_id})


@router.delete("/api/conversations/{conversation_id}")
async def remove_conversation(
    conversation_id: str,
    caller: InMemoryRemoteStore = Depends(get_caller),
):
    await caller.remove_conversation(conversation_id)
    return {"removed": conversation_id}


@router.get("/api/conversations/{conversation_id}/exists")
async def has_conversation(
    conversation_id: str,
    caller: InMemoryRemoteStore = Depends(get_caller),
):
    return {"exists": await caller.has_conversation(conversation_id)}


@router.get("/api/conversations/{conversation_id}/messages")
async def list_messages(
    conversation_id: str,
    caller: InMemoryRemoteStore = Depends(get_caller),
):
    messages = await caller.list_messages(conversation_id)
    return {"messages": [m.model_dump(mode="json") for m in messages]}


@router.post("/api/conversations/{conversation_id}/messages", response_model=MessageReply)
async def send_message(
    conversation_id: str,
    body: MessageRequest,
    caller: InMemoryRemoteStore = Depends(get_caller),
):
    if body.conversation_id != conversation_id:
        raise RemoteRejection("Conversation id in body does not match path")
    reply = await caller.send_message(body)
    return JSONResponse(status_code=201, content=reply.model_dump(mode="json"))


@router.delete("/api/conversations/{conversation_id}/messages/{message_id}")
async def delete_message(
    conversation_id: str,
    message_id: int,
    caller: InMemoryRemoteStore = Depends(get_caller),
):
    await caller.delete_message(conversation_id, message_id)
    return {"deleted": message_id}

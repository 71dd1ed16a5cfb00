"""Streaming advice chat."""

from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse

from moneyminder.api.dependencies import get_components, get_current_user
from moneyminder.api.schemas import ChatRequest
from moneyminder.models.user import UserProfile
from moneyminder.orchestrator import AppComponents


router = APIRouter(prefix="/api", tags=["chat"])


@router.post("/chat")
async def chat(
    body: ChatRequest,
    user: UserProfile = Depends(get_current_user),
    components: AppComponents = Depends(get_components),
):
    stream = await components.chat.reply(user, body.messages)
    return StreamingResponse(stream, media_type="text/plain; charset=utf-8")

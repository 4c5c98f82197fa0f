import logging
from typing import Dict, Optional

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from ..config import settings
from ..core.agent import get_agent
from ..providers.llm.base import LLMProviderError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api")

INVALID_MESSAGE_REPLIES: Dict[str, str] = {
    "en": "Please send a valid message.",
    "id": "Mohon kirim pesan yang valid.",
}

UNAVAILABLE_REPLIES: Dict[str, str] = {
    "en": "Sorry, the system is having trouble. Please try again in a moment.",
    "id": "Maaf, sistem sedang bermasalah. Silakan coba lagi beberapa saat lagi.",
}


class AgentRequest(BaseModel):
    message: Optional[str] = Field(default=None, description="User message for the assistant")


class AgentReply(BaseModel):
    reply: str = Field(description="Assistant reply, possibly ending in a transaction directive")


def _localized(replies: Dict[str, str]) -> str:
    return replies.get(settings.directive_language, replies["en"])


@router.post("/agent", response_model=AgentReply)
async def agent_endpoint(request: AgentRequest):
    """Single-turn chat with the financial assistant"""

    message = (request.message or "").strip()
    if not message:
        return JSONResponse(status_code=400, content={"reply": _localized(INVALID_MESSAGE_REPLIES)})

    try:
        agent = get_agent()
        reply = await agent.reply(message)
    except (LLMProviderError, ValueError) as exc:
        # ValueError: provider not configured (missing key / model)
        logger.error(f"/api/agent failed: {exc}")
        return AgentReply(reply=_localized(UNAVAILABLE_REPLIES))

    return AgentReply(reply=reply)

"""
Concierge Chat API

Conversational offer search and creation. Conversation history is kept by
the Strands session manager under the returned session_id.
"""
from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from typing import Optional
import uuid
import logging

from ..agents.concierge_strands import create_concierge_agent
from ..exceptions import DependencyError
from ..services.session_manager_factory import create_session_manager
from .deps import get_current_user_id, get_session_factory

logger = logging.getLogger(__name__)

router = APIRouter()


class ChatRequest(BaseModel):
    """Chat message request."""
    message: str = Field(min_length=1, max_length=4000)
    session_id: Optional[str] = None


class ChatResponse(BaseModel):
    """Chat message response."""
    session_id: str
    response: str


@router.post("/concierge/chat", response_model=ChatResponse)
async def concierge_chat(
    payload: ChatRequest,
    user_id: str = Depends(get_current_user_id),
    session_factory=Depends(get_session_factory)
) -> ChatResponse:
    """
    Send one message to the concierge.

    Example:
        POST /api/concierge/chat
        {"message": "Any flights to Miami next week under $6000?"}
    """
    session_id = payload.session_id or f"concierge_{uuid.uuid4().hex[:16]}"
    session_manager = create_session_manager(session_id)

    agent = create_concierge_agent(
        user_id=user_id,
        session_factory=session_factory,
        session_manager=session_manager,
    )

    logger.info(f"Concierge message from {user_id} in session {session_id}")
    try:
        result = await agent.invoke_async(payload.message)
    except Exception as e:
        logger.error(f"Concierge agent failed for session {session_id}: {e}", exc_info=True)
        raise DependencyError("The concierge is unavailable right now", details={"session_id": session_id}) from e

    return ChatResponse(session_id=session_id, response=str(result))

"""
Tickets API Endpoints
"""
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Dict, Any, Optional

from ..db.init_db import get_db
from ..exceptions import ForbiddenError
from ..services.offer_service import load_offer
from ..services.ticket_service import list_tickets
from .deps import get_current_user_id

router = APIRouter()


@router.get("/tickets")
async def list_tickets_endpoint(
    offer_id: Optional[str] = Query(None, description="Tickets of one offer"),
    user_id: Optional[str] = Query(None, description="Ticket holder"),
    caller_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db)
) -> Dict[str, Any]:
    """
    Tickets visible to the caller.

    With offer_id: the offer's tickets, for its participants only. Without:
    the caller's own tickets; asking for another holder's tickets is refused.
    """
    if offer_id:
        offer = await load_offer(db, offer_id)
        if caller_id not in (offer.user_id, offer.matched_user_id):
            raise ForbiddenError("Only offer participants can view its tickets", details={"offer_id": offer_id})
    else:
        if user_id and user_id != caller_id:
            raise ForbiddenError("You can only view your own tickets")
        user_id = caller_id

    tickets = await list_tickets(db, offer_id=offer_id, user_id=user_id)
    return {"count": len(tickets), "tickets": tickets}

"""
Pydantic Ticket Model
"""
from datetime import datetime
from typing import List, Literal, Optional
from pydantic import BaseModel

from .offers import Offer


class Ticket(BaseModel):
    """Boarding credential for one participant of a completed offer."""
    id: str
    offer_id: str
    user_id: str
    ticket_code: str
    passenger_name: Optional[str] = None
    seat_number: str
    boarding_time: datetime
    gate: str
    status: Literal["active", "used", "void"]
    created_at: datetime

    model_config = {"from_attributes": True}


class OfferCompletion(BaseModel):
    """Offer state after the completion path ran, with its tickets."""
    offer: Offer
    tickets: List[Ticket]

"""
Pydantic Offer Models

Offer status is a closed enum; the allowed transitions between statuses are
defined here and nowhere else.
"""
from datetime import datetime
from enum import Enum
from typing import Optional, Dict, FrozenSet
from pydantic import BaseModel, Field


class OfferStatus(str, Enum):
    """Lifecycle status of a JetShare offer."""
    OPEN = "open"
    ACCEPTED = "accepted"
    PAID = "paid"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


ALLOWED_TRANSITIONS: Dict[OfferStatus, FrozenSet[OfferStatus]] = {
    OfferStatus.OPEN: frozenset({OfferStatus.ACCEPTED}),
    OfferStatus.ACCEPTED: frozenset({OfferStatus.PAID, OfferStatus.FAILED, OfferStatus.CANCELLED}),
    OfferStatus.PAID: frozenset({OfferStatus.COMPLETED, OfferStatus.FAILED, OfferStatus.CANCELLED}),
    OfferStatus.COMPLETED: frozenset(),
    OfferStatus.FAILED: frozenset(),
    OfferStatus.CANCELLED: frozenset(),
}


def can_transition(current: OfferStatus, target: OfferStatus) -> bool:
    """Whether an offer in `current` status may move to `target`."""
    return target in ALLOWED_TRANSITIONS[current]


class OfferCreate(BaseModel):
    """
    Caller-supplied offer fields.

    Business rules (non-empty locations, share within total) are checked by
    the offer service so they surface as JetShare validation errors.
    """
    flight_date: datetime
    departure_location: str
    arrival_location: str
    aircraft_model: Optional[str] = None
    total_seats: Optional[int] = None
    available_seats: Optional[int] = None
    total_flight_cost_cents: int
    requested_share_amount_cents: int

    model_config = {
        "json_schema_extra": {
            "example": {
                "flight_date": "2026-12-01T14:00:00",
                "departure_location": "KTEB",
                "arrival_location": "KMIA",
                "aircraft_model": "Gulfstream G650",
                "total_seats": 8,
                "available_seats": 4,
                "total_flight_cost_cents": 1000000,
                "requested_share_amount_cents": 500000
            }
        }
    }


class OfferUpdate(BaseModel):
    """Partial update of an open offer; omitted fields keep their value."""
    flight_date: Optional[datetime] = None
    departure_location: Optional[str] = None
    arrival_location: Optional[str] = None
    aircraft_model: Optional[str] = None
    total_seats: Optional[int] = None
    available_seats: Optional[int] = None
    total_flight_cost_cents: Optional[int] = None
    requested_share_amount_cents: Optional[int] = None


class Offer(BaseModel):
    """Offer as stored and returned by the API."""
    id: str
    user_id: str
    flight_date: datetime
    departure_location: str
    arrival_location: str
    aircraft_model: Optional[str] = None
    total_seats: Optional[int] = None
    available_seats: Optional[int] = None
    total_flight_cost_cents: int = Field(gt=0)
    requested_share_amount_cents: int = Field(gt=0)
    status: OfferStatus
    matched_user_id: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class UserStats(BaseModel):
    """Dashboard counters for one user."""
    user_id: str
    total_offers: int
    total_bookings: int
    total_spent_cents: int
    total_earned_cents: int

"""
Concierge Service

Plain async functions behind the concierge agent's tools: searching open
offers and creating an offer from conversational input. Both go through the
offer lifecycle manager, so the same validation applies as over the API.
"""
import logging
import re
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..db.models import OfferModel
from ..exceptions import ValidationError
from ..models.offers import Offer, OfferCreate, OfferStatus
from .offer_service import create_offer

logger = logging.getLogger(__name__)

MAX_SEARCH_RESULTS = 10
DEFAULT_SHARE_RATIO = 0.5

_CLOCK_PATTERN = re.compile(r"^(?P<hour>[01]?\d|2[0-3]):(?P<minute>[0-5]\d)\s*(?P<period>am|pm)?$", re.IGNORECASE)


def parse_flight_date(value: str, time_of_day: Optional[str] = None, now: Optional[datetime] = None) -> datetime:
    """
    Read a flight date the way people say it.

    Accepts ISO-8601 dates or datetimes, "today", "tomorrow" and "next week";
    an optional "HH:MM" / "H:MM pm" time overrides the default of noon.

    Raises:
        ValidationError: If the date cannot be understood
    """
    now = now or datetime.utcnow()
    text = (value or "").strip().lower()

    if text == "today":
        flight_date = now.replace(hour=12, minute=0, second=0, microsecond=0)
    elif text == "tomorrow":
        flight_date = (now + timedelta(days=1)).replace(hour=12, minute=0, second=0, microsecond=0)
    elif text == "next week":
        flight_date = (now + timedelta(days=7)).replace(hour=12, minute=0, second=0, microsecond=0)
    else:
        try:
            flight_date = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError:
            raise ValidationError(f"Could not understand flight date '{value}'", details={"flight_date": value})
        if len(value.strip()) == 10:
            flight_date = flight_date.replace(hour=12)

    if time_of_day:
        match = _CLOCK_PATTERN.match(time_of_day.strip())
        if not match:
            raise ValidationError(f"Could not understand departure time '{time_of_day}'", details={"time": time_of_day})
        hour = int(match.group("hour"))
        period = (match.group("period") or "").lower()
        if period == "pm" and hour < 12:
            hour += 12
        elif period == "am" and hour == 12:
            hour = 0
        flight_date = flight_date.replace(hour=hour, minute=int(match.group("minute")))

    return flight_date


def summarize_offer(offer: OfferModel) -> Dict[str, Any]:
    """Offer fields the agent presents to the user."""
    return {
        "id": offer.id,
        "departure": offer.departure_location,
        "arrival": offer.arrival_location,
        "flight_date": offer.flight_date.isoformat(),
        "aircraft_model": offer.aircraft_model or "Not specified",
        "total_flight_cost_cents": offer.total_flight_cost_cents,
        "requested_share_amount_cents": offer.requested_share_amount_cents,
        "available_seats": offer.available_seats,
    }


async def find_jetshare_offers(
    db: AsyncSession,
    viewer_id: str,
    location: Optional[str] = None,
    max_share_cents: Optional[int] = None,
    within_days: Optional[int] = None,
    now: Optional[datetime] = None
) -> List[Dict[str, Any]]:
    """
    Open offers from other users departing in the future.

    Args:
        db: Database session
        viewer_id: User asking; their own offers are excluded
        location: Substring of the departure or arrival location
        max_share_cents: Upper bound on the requested share
        within_days: Only flights departing in the next N days
    """
    now = now or datetime.utcnow()
    query = select(OfferModel).where(
        OfferModel.status == OfferStatus.OPEN.value,
        OfferModel.user_id != viewer_id,
        OfferModel.flight_date >= now,
    )

    if location and location.strip():
        pattern = f"%{location.strip()}%"
        query = query.where(or_(
            OfferModel.departure_location.ilike(pattern),
            OfferModel.arrival_location.ilike(pattern),
        ))
    if max_share_cents is not None:
        query = query.where(OfferModel.requested_share_amount_cents <= max_share_cents)
    if within_days is not None:
        query = query.where(OfferModel.flight_date <= now + timedelta(days=within_days))

    result = await db.execute(query.order_by(OfferModel.flight_date.asc()).limit(MAX_SEARCH_RESULTS))
    offers = [summarize_offer(row) for row in result.scalars().all()]
    logger.info(f"Concierge search for {viewer_id} (location={location!r}) returned {len(offers)} offers")
    return offers


async def create_jetshare_offer(
    db: AsyncSession,
    creator_id: str,
    departure_location: str,
    arrival_location: str,
    flight_date: str,
    total_flight_cost_cents: int,
    requested_share_amount_cents: Optional[int] = None,
    departure_time: Optional[str] = None,
    aircraft_model: Optional[str] = None,
    total_seats: Optional[int] = None,
    available_seats: Optional[int] = None
) -> Offer:
    """
    Create an open offer from conversational input.

    The requested share defaults to half of the total cost.

    Raises:
        ValidationError: Unreadable date/time or invalid offer fields
        DependencyError: Profile or offer could not be written
    """
    if requested_share_amount_cents is None:
        requested_share_amount_cents = int(total_flight_cost_cents * DEFAULT_SHARE_RATIO)

    payload = OfferCreate(
        flight_date=parse_flight_date(flight_date, departure_time),
        departure_location=departure_location,
        arrival_location=arrival_location,
        aircraft_model=aircraft_model,
        total_seats=total_seats,
        available_seats=available_seats,
        total_flight_cost_cents=total_flight_cost_cents,
        requested_share_amount_cents=requested_share_amount_cents,
    )
    return await create_offer(db, creator_id, payload)

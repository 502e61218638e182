"""
Ticket Service

Issues boarding tickets once an offer is paid. One ticket per participant:
the creator sits in 1A, the matched user in 1B, both at the same gate.
Issuance is idempotent; an existing set of tickets is returned unchanged.
"""
import logging
import secrets
import string
import uuid
from datetime import datetime
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..db.models import TicketModel
from ..exceptions import DependencyError, StateError
from ..models.tickets import Ticket
from .offer_service import load_offer
from .profile_service import get_display_name

logger = logging.getLogger(__name__)

TICKET_CODE_ALPHABET = string.ascii_uppercase + string.digits
TICKET_CODE_LENGTH = 6
GATE_COUNT = 20
ISSUE_ATTEMPTS = 3

CREATOR_SEAT = "1A"
MATCHED_USER_SEAT = "1B"


def generate_ticket_code() -> str:
    """Human-readable ticket code, e.g. JS-7KQ2ZD."""
    return "JS-" + "".join(secrets.choice(TICKET_CODE_ALPHABET) for _ in range(TICKET_CODE_LENGTH))


def assign_gate() -> str:
    """Gate A1..A20."""
    return f"A{secrets.randbelow(GATE_COUNT) + 1}"


async def _tickets_for_offer(db: AsyncSession, offer_id: str) -> List[TicketModel]:
    result = await db.execute(
        select(TicketModel)
        .where(TicketModel.offer_id == offer_id)
        .order_by(TicketModel.seat_number)
        .execution_options(populate_existing=True)
    )
    return list(result.scalars().all())


async def issue_tickets(db: AsyncSession, offer_id: str) -> List[Ticket]:
    """
    Create tickets for both participants of an offer, or return existing ones.

    A concurrent issuer that loses the (offer_id, user_id) unique constraint
    rolls back and returns the winner's tickets.

    Raises:
        NotFoundError: Unknown offer
        StateError: Offer has no matched user
        DependencyError: Tickets could not be written
    """
    existing = await _tickets_for_offer(db, offer_id)
    if existing:
        logger.info(f"Offer {offer_id}: tickets already issued")
        return [Ticket.model_validate(ticket) for ticket in existing]

    offer = await load_offer(db, offer_id)
    if offer.matched_user_id is None:
        raise StateError("Offer has no matched user to ticket", details={"offer_id": offer_id})

    participants = [
        (offer.user_id, CREATOR_SEAT),
        (offer.matched_user_id, MATCHED_USER_SEAT),
    ]
    passenger_names = {user_id: await get_display_name(db, user_id) for user_id, _ in participants}

    for attempt in range(1, ISSUE_ATTEMPTS + 1):
        gate = assign_gate()
        now = datetime.utcnow()
        for user_id, seat in participants:
            db.add(TicketModel(
                id=str(uuid.uuid4()),
                offer_id=offer_id,
                user_id=user_id,
                ticket_code=generate_ticket_code(),
                passenger_name=passenger_names[user_id],
                seat_number=seat,
                boarding_time=offer.flight_date,
                gate=gate,
                status="active",
                created_at=now,
            ))
        try:
            await db.commit()
            logger.info(f"Offer {offer_id}: issued {len(participants)} tickets at gate {gate}")
            break
        except IntegrityError:
            await db.rollback()
            logger.info(f"Offer {offer_id}: ticket insert conflicted (attempt {attempt}/{ISSUE_ATTEMPTS})")
            existing = await _tickets_for_offer(db, offer_id)
            if existing:
                return [Ticket.model_validate(ticket) for ticket in existing]
            # Otherwise a ticket code collided; retry with fresh codes
    else:
        raise DependencyError("Could not issue tickets", details={"offer_id": offer_id})

    return [Ticket.model_validate(ticket) for ticket in await _tickets_for_offer(db, offer_id)]


async def list_tickets(
    db: AsyncSession,
    offer_id: Optional[str] = None,
    user_id: Optional[str] = None
) -> List[Ticket]:
    """Tickets filtered by offer and/or holder, newest first."""
    query = select(TicketModel)
    if offer_id:
        query = query.where(TicketModel.offer_id == offer_id)
    if user_id:
        query = query.where(TicketModel.user_id == user_id)

    result = await db.execute(query.order_by(TicketModel.created_at.desc(), TicketModel.seat_number))
    return [Ticket.model_validate(ticket) for ticket in result.scalars().all()]

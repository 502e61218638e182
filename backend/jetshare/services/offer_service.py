"""
Offer Service

Offer lifecycle manager for JetShare offers.

Lifecycle:
- open -> accepted -> paid -> completed
- accepted / paid -> failed or cancelled
- open offers may be deleted by their creator

Every operation re-reads the offer before validating it, and every status
change is a single conditional UPDATE keyed on the expected prior status.
No other concurrency control is used: concurrent accepts resolve first writer
wins, concurrent updates of an open offer resolve last writer wins.
"""
import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..db.models import OfferModel, TransactionModel
from ..exceptions import (
    ConflictError,
    DependencyError,
    ForbiddenError,
    NotFoundError,
    StateError,
    ValidationError,
)
from ..models.offers import (
    Offer,
    OfferCreate,
    OfferStatus,
    OfferUpdate,
    UserStats,
    can_transition,
)
from ..models.transactions import PaymentStatus
from .profile_service import ensure_profile, remove_profile
from .saga import Saga

logger = logging.getLogger(__name__)

MUTABLE_FIELDS = (
    "flight_date",
    "departure_location",
    "arrival_location",
    "aircraft_model",
    "total_seats",
    "available_seats",
    "total_flight_cost_cents",
    "requested_share_amount_cents",
)


# ============================================================================
# Validation
# ============================================================================

def validate_offer_fields(fields: Dict[str, Any]) -> Dict[str, Any]:
    """
    Check offer fields and return them normalized.

    Raises:
        ValidationError: On empty locations, non-positive cost, share out of
            range or inconsistent seat counts
    """
    errors: Dict[str, str] = {}
    normalized = dict(fields)

    for key in ("departure_location", "arrival_location"):
        value = (normalized.get(key) or "").strip()
        if not value:
            errors[key] = "must not be empty"
        normalized[key] = value

    flight_date = normalized.get("flight_date")
    if flight_date is None:
        errors["flight_date"] = "is required"
    elif flight_date.tzinfo is not None:
        # Stored as naive UTC
        normalized["flight_date"] = flight_date.astimezone(timezone.utc).replace(tzinfo=None)

    aircraft_model = normalized.get("aircraft_model")
    normalized["aircraft_model"] = aircraft_model.strip() or None if aircraft_model else None

    total = normalized.get("total_flight_cost_cents")
    share = normalized.get("requested_share_amount_cents")
    if total is None or total <= 0:
        errors["total_flight_cost_cents"] = "must be greater than 0"
    if share is None or share <= 0:
        errors["requested_share_amount_cents"] = "must be greater than 0"
    elif total is not None and share > total:
        errors["requested_share_amount_cents"] = "must not exceed the total flight cost"

    total_seats = normalized.get("total_seats")
    available_seats = normalized.get("available_seats")
    if total_seats is not None and total_seats <= 0:
        errors["total_seats"] = "must be greater than 0"
    if available_seats is not None:
        if available_seats < 0:
            errors["available_seats"] = "must not be negative"
        elif total_seats is not None and available_seats > total_seats:
            errors["available_seats"] = "must not exceed total seats"

    if errors:
        raise ValidationError("Invalid offer details", details={"fields": errors})

    return normalized


# ============================================================================
# Store Access
# ============================================================================

async def load_offer(db: AsyncSession, offer_id: str) -> OfferModel:
    """
    Read the current offer row from the store, bypassing the session cache.

    Raises:
        NotFoundError: If the offer does not exist
    """
    result = await db.execute(
        select(OfferModel)
        .where(OfferModel.id == offer_id)
        .execution_options(populate_existing=True)
    )
    offer = result.scalar_one_or_none()
    if offer is None:
        raise NotFoundError(f"No offer found with ID: {offer_id}", details={"offer_id": offer_id})
    return offer


async def transition_offer(
    db: AsyncSession,
    offer_id: str,
    current: OfferStatus,
    target: OfferStatus,
    **values: Any
) -> bool:
    """
    Move an offer from `current` to `target` with one conditional UPDATE.

    Args:
        db: Database session
        offer_id: Offer identifier
        current: Status the caller observed
        target: Status to move to
        **values: Extra columns written with the status

    Returns:
        True if this call won the update, False if the offer was no longer
        in `current` status

    Raises:
        StateError: If the transition is not allowed at all
    """
    if not can_transition(current, target):
        raise StateError(
            f"Cannot move offer from {current.value} to {target.value}",
            details={"offer_id": offer_id, "from": current.value, "to": target.value}
        )

    result = await db.execute(
        update(OfferModel)
        .where(OfferModel.id == offer_id, OfferModel.status == current.value)
        .values(status=target.value, updated_at=datetime.utcnow(), **values)
        .execution_options(synchronize_session=False)
    )
    await db.commit()

    won = result.rowcount == 1
    if won:
        logger.info(f"Offer {offer_id}: {current.value} -> {target.value}")
    else:
        logger.info(f"Offer {offer_id}: transition {current.value} -> {target.value} lost (status changed)")
    return won


# ============================================================================
# Operations
# ============================================================================

async def create_offer(db: AsyncSession, creator_id: str, payload: OfferCreate) -> Offer:
    """
    Create an open offer.

    Args:
        db: Database session
        creator_id: Offering user
        payload: Flight details, total cost and requested share

    Returns:
        Created Offer with status=open

    Raises:
        ValidationError: Bad input
        DependencyError: Profile creation or offer insert failed
    """
    fields = validate_offer_fields(payload.model_dump())
    offer_id = str(uuid.uuid4())

    async def _insert_offer() -> OfferModel:
        now = datetime.utcnow()
        offer = OfferModel(
            id=offer_id,
            user_id=creator_id,
            status=OfferStatus.OPEN.value,
            matched_user_id=None,
            created_at=now,
            updated_at=now,
            **{key: fields.get(key) for key in MUTABLE_FIELDS},
        )
        db.add(offer)
        try:
            await db.commit()
        except SQLAlchemyError as e:
            await db.rollback()
            logger.error(f"Inserting offer for user {creator_id} failed: {e}")
            raise DependencyError("Could not create offer", details={"error_type": type(e).__name__})
        await db.refresh(offer)
        return offer

    async def _undo_profile(created: bool) -> None:
        if created:
            await remove_profile(db, creator_id)

    async with Saga("create_offer") as saga:
        await saga.step("ensure_profile", lambda: ensure_profile(db, creator_id), compensate=_undo_profile)
        offer = await saga.step("insert_offer", _insert_offer)

    logger.info(
        f"Created offer {offer.id} by {creator_id}: {offer.departure_location} -> {offer.arrival_location}, "
        f"share={offer.requested_share_amount_cents}/{offer.total_flight_cost_cents}"
    )
    return Offer.model_validate(offer)


async def get_offer(db: AsyncSession, offer_id: str) -> Offer:
    """Retrieve one offer or raise NotFoundError."""
    return Offer.model_validate(await load_offer(db, offer_id))


async def list_offers(
    db: AsyncSession,
    viewer_id: Optional[str] = None,
    view_mode: str = "marketplace",
    status: Optional[OfferStatus] = None,
    user_id: Optional[str] = None,
    matched_user_id: Optional[str] = None,
    limit: int = 50,
    offset: int = 0
) -> List[Offer]:
    """
    List offers.

    Marketplace view: open, unmatched offers created by someone other than the
    viewer, soonest flight first. Dashboard view: the explicit filters,
    newest first.

    Raises:
        ValidationError: Dashboard filters passed with the marketplace view
    """
    query = select(OfferModel)

    if view_mode == "marketplace":
        filters = {"status": status, "user_id": user_id, "matched_user_id": matched_user_id}
        ignored = sorted(key for key, value in filters.items() if value is not None)
        if ignored:
            raise ValidationError(
                "Filters are only available in the dashboard view",
                details={"view_mode": view_mode, "filters": ignored}
            )
        query = query.where(
            OfferModel.status == OfferStatus.OPEN.value,
            OfferModel.matched_user_id.is_(None),
        )
        if viewer_id:
            query = query.where(OfferModel.user_id != viewer_id)
        query = query.order_by(OfferModel.flight_date.asc())
    else:
        if status is not None:
            query = query.where(OfferModel.status == status.value)
        if user_id:
            query = query.where(OfferModel.user_id == user_id)
        if matched_user_id:
            query = query.where(OfferModel.matched_user_id == matched_user_id)
        query = query.order_by(OfferModel.created_at.desc())

    result = await db.execute(query.limit(limit).offset(offset))
    return [Offer.model_validate(row) for row in result.scalars().all()]


async def accept_offer(db: AsyncSession, offer_id: str, matched_user_id: str) -> Offer:
    """
    Commit a second user to an open offer.

    Only the conditional update whose WHERE clause still sees status=open
    succeeds; a racing loser gets ConflictError and the matched user is left
    unchanged.

    Raises:
        NotFoundError: Unknown offer
        ValidationError: Creator trying to accept their own offer
        ConflictError: Offer already taken or no longer open
    """
    offer = await load_offer(db, offer_id)

    if matched_user_id == offer.user_id:
        raise ValidationError("You cannot accept your own offer", details={"offer_id": offer_id})

    if offer.status != OfferStatus.OPEN.value:
        raise ConflictError(details={"offer_id": offer_id, "status": offer.status})

    await ensure_profile(db, matched_user_id)

    if not await transition_offer(
        db, offer_id, OfferStatus.OPEN, OfferStatus.ACCEPTED, matched_user_id=matched_user_id
    ):
        raise ConflictError(details={"offer_id": offer_id})

    logger.info(f"Offer {offer_id} accepted by {matched_user_id}")
    return await get_offer(db, offer_id)


async def update_offer(
    db: AsyncSession,
    offer_id: str,
    requester_id: str,
    payload: OfferUpdate
) -> Offer:
    """
    Overwrite mutable fields of an open offer.

    Raises:
        NotFoundError: Unknown offer
        StateError: Offer is not open
        ForbiddenError: Requester is not the creator
        ValidationError: Merged fields fail offer validation
    """
    offer = await load_offer(db, offer_id)

    if offer.status != OfferStatus.OPEN.value:
        raise StateError("Only open offers can be edited", details={"offer_id": offer_id, "status": offer.status})
    if offer.user_id != requester_id:
        raise ForbiddenError("Only the creator can edit this offer", details={"offer_id": offer_id})

    merged = {key: getattr(offer, key) for key in MUTABLE_FIELDS}
    merged.update(payload.model_dump(exclude_unset=True))
    fields = validate_offer_fields(merged)

    result = await db.execute(
        update(OfferModel)
        .where(
            OfferModel.id == offer_id,
            OfferModel.user_id == requester_id,
            OfferModel.status == OfferStatus.OPEN.value,
        )
        .values(updated_at=datetime.utcnow(), **{key: fields[key] for key in MUTABLE_FIELDS})
        .execution_options(synchronize_session=False)
    )
    await db.commit()

    if result.rowcount != 1:
        raise StateError("Offer is no longer open", details={"offer_id": offer_id})

    logger.info(f"Updated offer {offer_id}")
    return await get_offer(db, offer_id)


async def delete_offer(db: AsyncSession, offer_id: str, requester_id: str) -> None:
    """
    Delete an open offer.

    Raises:
        NotFoundError: Unknown offer
        StateError: Offer is not open, whoever asks
        ForbiddenError: Requester is not the creator
    """
    offer = await load_offer(db, offer_id)

    if offer.status != OfferStatus.OPEN.value:
        raise StateError("Only open offers can be deleted", details={"offer_id": offer_id, "status": offer.status})
    if offer.user_id != requester_id:
        raise ForbiddenError("Only the creator can delete this offer", details={"offer_id": offer_id})

    result = await db.execute(
        delete(OfferModel)
        .where(
            OfferModel.id == offer_id,
            OfferModel.user_id == requester_id,
            OfferModel.status == OfferStatus.OPEN.value,
        )
        .execution_options(synchronize_session=False)
    )
    await db.commit()

    if result.rowcount != 1:
        raise StateError("Offer is no longer open", details={"offer_id": offer_id})

    logger.info(f"Deleted offer {offer_id}")


async def cancel_offer(db: AsyncSession, offer_id: str, requester_id: str) -> Offer:
    """
    Cancel an accepted offer before it is paid.

    Either participant may cancel. Pending payments for the offer are marked
    failed so a late provider confirmation cannot complete it.

    Raises:
        NotFoundError: Unknown offer
        ForbiddenError: Requester is not a participant
        StateError: Offer is not accepted
    """
    offer = await load_offer(db, offer_id)

    if requester_id not in (offer.user_id, offer.matched_user_id):
        raise ForbiddenError("Only offer participants can cancel this offer", details={"offer_id": offer_id})
    if offer.status != OfferStatus.ACCEPTED.value:
        raise StateError("Only accepted offers can be cancelled", details={"offer_id": offer_id, "status": offer.status})

    if not await transition_offer(db, offer_id, OfferStatus.ACCEPTED, OfferStatus.CANCELLED):
        raise StateError("Offer changed while cancelling", details={"offer_id": offer_id})

    result = await db.execute(
        update(TransactionModel)
        .where(
            TransactionModel.offer_id == offer_id,
            TransactionModel.payment_status == PaymentStatus.PENDING.value,
        )
        .values(payment_status=PaymentStatus.FAILED.value)
        .execution_options(synchronize_session=False)
    )
    await db.commit()
    if result.rowcount:
        logger.info(f"Offer {offer_id}: marked {result.rowcount} pending transaction(s) failed on cancel")

    logger.info(f"Offer {offer_id} cancelled by {requester_id}")
    return await get_offer(db, offer_id)


async def get_user_stats(db: AsyncSession, user_id: str) -> UserStats:
    """
    Dashboard counters for a user.

    Spent counts amount plus handling fee of completed payments made by the
    user; earned counts the share amount of completed payments received.
    """
    total_offers = await db.scalar(
        select(func.count()).select_from(OfferModel).where(OfferModel.user_id == user_id)
    )
    total_bookings = await db.scalar(
        select(func.count()).select_from(OfferModel).where(OfferModel.matched_user_id == user_id)
    )
    total_spent = await db.scalar(
        select(func.coalesce(func.sum(TransactionModel.amount_cents + TransactionModel.handling_fee_cents), 0))
        .where(
            TransactionModel.payer_user_id == user_id,
            TransactionModel.payment_status == PaymentStatus.COMPLETED.value,
        )
    )
    total_earned = await db.scalar(
        select(func.coalesce(func.sum(TransactionModel.amount_cents), 0))
        .where(
            TransactionModel.recipient_user_id == user_id,
            TransactionModel.payment_status == PaymentStatus.COMPLETED.value,
        )
    )

    return UserStats(
        user_id=user_id,
        total_offers=total_offers or 0,
        total_bookings=total_bookings or 0,
        total_spent_cents=total_spent or 0,
        total_earned_cents=total_earned or 0,
    )

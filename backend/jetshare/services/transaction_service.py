"""
Transaction Service

Payment half of the offer lifecycle: starting a payment with a gateway,
applying provider confirmations, and the completion path that moves a paid
offer to completed with tickets issued.

Completion path (idempotent, safe to re-run after any partial failure):
    accepted -> paid -> issue tickets -> completed
"""
import logging
import uuid
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import List, Optional

from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import settings
from ..db.models import TransactionModel
from ..exceptions import (
    DependencyError,
    ForbiddenError,
    NotFoundError,
    StateError,
    ValidationError,
    WrongPayerError,
)
from ..gateways.base import PaymentGateway
from ..models.offers import OfferStatus
from ..models.tickets import OfferCompletion, Ticket
from ..models.transactions import (
    PaymentHandle,
    PaymentInitiation,
    PaymentMethod,
    PaymentOutcome,
    PaymentStatus,
    Transaction,
)
from .offer_service import get_offer, load_offer, transition_offer
from .saga import Saga
from .ticket_service import issue_tickets

logger = logging.getLogger(__name__)

# Offer states in which a provider success still completes the offer
PAYABLE_STATUSES = (OfferStatus.ACCEPTED.value, OfferStatus.PAID.value, OfferStatus.COMPLETED.value)


def compute_handling_fee(amount_cents: int, percentage: Optional[float] = None) -> int:
    """
    Handling fee in cents: percentage of the amount, rounded half-up.

    >>> compute_handling_fee(500000, 7.5)
    37500
    """
    percentage = settings.handling_fee_percentage if percentage is None else percentage
    fee = Decimal(amount_cents) * Decimal(str(percentage)) / Decimal(100)
    return int(fee.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _method_enabled(method: PaymentMethod) -> bool:
    if method == PaymentMethod.CARD:
        return settings.allow_card_payments
    return settings.allow_crypto_payments


# ============================================================================
# Store Access
# ============================================================================

async def _load_by_reference(db: AsyncSession, provider_reference: str) -> Optional[TransactionModel]:
    result = await db.execute(
        select(TransactionModel)
        .where(TransactionModel.transaction_reference == provider_reference)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def _set_payment_status(
    db: AsyncSession,
    transaction_id: str,
    current: List[PaymentStatus],
    target: PaymentStatus
) -> bool:
    """Conditional status write; True if this call changed the row."""
    result = await db.execute(
        update(TransactionModel)
        .where(
            TransactionModel.id == transaction_id,
            TransactionModel.payment_status.in_([status.value for status in current]),
        )
        .values(payment_status=target.value)
        .execution_options(synchronize_session=False)
    )
    await db.commit()
    return result.rowcount == 1


async def _reload(db: AsyncSession, transaction_id: str) -> Transaction:
    result = await db.execute(
        select(TransactionModel)
        .where(TransactionModel.id == transaction_id)
        .execution_options(populate_existing=True)
    )
    return Transaction.model_validate(result.scalar_one())


async def _count_completed(db: AsyncSession, offer_id: str) -> int:
    return await db.scalar(
        select(func.count())
        .select_from(TransactionModel)
        .where(
            TransactionModel.offer_id == offer_id,
            TransactionModel.payment_status == PaymentStatus.COMPLETED.value,
        )
    )


# ============================================================================
# Payment Initiation
# ============================================================================

async def initiate_payment(
    db: AsyncSession,
    gateway: PaymentGateway,
    offer_id: str,
    payer_id: str,
    method: PaymentMethod,
    amount_cents: Optional[int] = None
) -> PaymentInitiation:
    """
    Start paying for an accepted offer.

    The provider is asked for share + handling fee; a pending transaction
    records the provider reference. Each call creates a new provider payment.

    Args:
        db: Database session
        gateway: Gateway serving `method`
        offer_id: Offer being paid
        payer_id: Calling user, must be the matched user
        method: card or crypto
        amount_cents: Share amount; defaults to the offer's requested share

    Returns:
        PaymentInitiation with the pending transaction and provider handle

    Raises:
        NotFoundError: Unknown offer
        ValidationError: Method disabled or amount differs from the share
        StateError: Offer is not accepted
        WrongPayerError: Caller is not the matched user
        GatewayError: Provider call failed (no transaction written)
        DependencyError: Transaction row could not be written (provider
            payment cancelled)
    """
    method = PaymentMethod(method)
    if not _method_enabled(method):
        raise ValidationError(
            f"{method.value} payments are not available",
            details={"payment_method": method.value}
        )

    offer = await load_offer(db, offer_id)

    if offer.status != OfferStatus.ACCEPTED.value:
        raise StateError(
            "Only accepted offers can be paid",
            details={"offer_id": offer_id, "status": offer.status}
        )
    if offer.matched_user_id != payer_id:
        raise WrongPayerError(details={"offer_id": offer_id})

    share_cents = offer.requested_share_amount_cents
    if amount_cents is None:
        amount_cents = share_cents
    elif amount_cents != share_cents:
        raise ValidationError(
            "Payment amount must equal the requested share",
            details={"offer_id": offer_id, "amount_cents": amount_cents, "expected_cents": share_cents}
        )

    fee_cents = compute_handling_fee(amount_cents)
    total_cents = amount_cents + fee_cents
    currency = settings.default_currency
    transaction_id = f"txn_{uuid.uuid4().hex[:16]}"

    metadata = {
        "offerId": offer_id,
        "userId": payer_id,
        "recipientId": offer.user_id,
        "transactionId": transaction_id,
        "shareAmountCents": str(amount_cents),
        "handlingFeeCents": str(fee_cents),
    }

    async def _create_payment() -> PaymentHandle:
        return await gateway.create_payment(total_cents, currency, metadata)

    async def _cancel_payment(handle: PaymentHandle) -> None:
        await gateway.cancel_payment(handle.provider_reference)

    async def _insert_transaction(handle: PaymentHandle) -> TransactionModel:
        row = TransactionModel(
            id=transaction_id,
            offer_id=offer_id,
            payer_user_id=payer_id,
            recipient_user_id=offer.user_id,
            amount_cents=amount_cents,
            handling_fee_cents=fee_cents,
            currency=currency,
            payment_method=method.value,
            payment_status=PaymentStatus.PENDING.value,
            transaction_reference=handle.provider_reference,
            transaction_date=datetime.utcnow(),
        )
        db.add(row)
        try:
            await db.commit()
        except SQLAlchemyError as e:
            await db.rollback()
            logger.error(f"Failed to record transaction for offer {offer_id}: {e}")
            raise DependencyError("Could not record payment", details={"offer_id": offer_id})
        return row

    async with Saga("initiate_payment") as saga:
        handle = await saga.step("create_provider_payment", _create_payment, compensate=_cancel_payment)
        await saga.step("insert_transaction", lambda: _insert_transaction(handle))

    logger.info(
        f"Payment {transaction_id} started for offer {offer_id}: "
        f"{amount_cents} + fee {fee_cents} {currency} via {gateway.name} ({handle.provider_reference})"
    )

    return PaymentInitiation(
        transaction=await _reload(db, transaction_id),
        payment=handle,
        total_charge_cents=total_cents,
    )


# ============================================================================
# Completion
# ============================================================================

async def _run_completion(db: AsyncSession, offer_id: str) -> List[Ticket]:
    """
    Drive an offer along accepted -> paid -> completed, issuing tickets.

    Each step re-reads the offer, so a concurrent run that already made a step
    simply lets this one move on.
    """
    offer = await load_offer(db, offer_id)
    if offer.status == OfferStatus.ACCEPTED.value:
        await transition_offer(db, offer_id, OfferStatus.ACCEPTED, OfferStatus.PAID)
        offer = await load_offer(db, offer_id)

    if offer.status not in (OfferStatus.PAID.value, OfferStatus.COMPLETED.value):
        logger.warning(f"Offer {offer_id}: completion stopped, offer is {offer.status}")
        return []

    tickets = await issue_tickets(db, offer_id)

    if offer.status == OfferStatus.PAID.value:
        await transition_offer(db, offer_id, OfferStatus.PAID, OfferStatus.COMPLETED)

    return tickets


async def confirm_payment(
    db: AsyncSession,
    provider_reference: Optional[str],
    outcome: PaymentOutcome
) -> Optional[Transaction]:
    """
    Apply a provider's verdict to the transaction it references.

    Safe under duplicate and reordered deliveries: a replayed success only
    re-runs the idempotent completion path.

    Args:
        db: Database session
        provider_reference: Provider payment id from the webhook
        outcome: Normalized event outcome

    Returns:
        The transaction after the update, or None for an unknown reference
    """
    if not provider_reference:
        logger.warning("Payment event without a provider reference ignored")
        return None

    row = await _load_by_reference(db, provider_reference)
    if row is None:
        logger.warning(f"Payment event for unknown reference {provider_reference} ignored")
        return None

    transaction_id = row.id
    offer_id = row.offer_id

    if outcome == PaymentOutcome.IGNORED:
        return Transaction.model_validate(row)

    if outcome == PaymentOutcome.SUCCEEDED:
        # A provider success is money received, even after a local failure mark
        changed = await _set_payment_status(
            db, transaction_id, [PaymentStatus.PENDING, PaymentStatus.FAILED], PaymentStatus.COMPLETED
        )
        if changed:
            logger.info(f"Transaction {transaction_id} completed")
        else:
            logger.info(f"Transaction {transaction_id} already completed, re-running completion")

        offer = await load_offer(db, offer_id)
        if offer.status not in PAYABLE_STATUSES:
            logger.error(
                f"Payment {transaction_id} succeeded for offer {offer_id} in status {offer.status}; "
                f"manual refund required"
            )
            return await _reload(db, transaction_id)

        if changed and await _count_completed(db, offer_id) > 1:
            logger.error(
                f"Offer {offer_id} has more than one completed payment ({transaction_id} is a duplicate); "
                f"manual refund required"
            )

        await _run_completion(db, offer_id)
        return await _reload(db, transaction_id)

    # PaymentOutcome.FAILED
    if row.payment_status == PaymentStatus.COMPLETED.value:
        logger.warning(f"Failure event for completed transaction {transaction_id} ignored")
        return Transaction.model_validate(row)

    if await _set_payment_status(db, transaction_id, [PaymentStatus.PENDING], PaymentStatus.FAILED):
        logger.info(f"Transaction {transaction_id} failed")

    offer = await load_offer(db, offer_id)
    if offer.status == OfferStatus.PAID.value:
        if await _count_completed(db, offer_id):
            logger.info(f"Offer {offer_id} is paid by another payment; failure of {transaction_id} not applied")
        else:
            await transition_offer(db, offer_id, OfferStatus.PAID, OfferStatus.FAILED)
    elif offer.status == OfferStatus.ACCEPTED.value:
        logger.info(f"Offer {offer_id} stays accepted; payer may retry")

    return await _reload(db, transaction_id)


async def finalize_offer(db: AsyncSession, offer_id: str, requester_id: str) -> OfferCompletion:
    """
    Re-run the completion path for a paid offer (recovery after a partial
    failure). Either participant may call it.

    Raises:
        NotFoundError: Unknown offer
        ForbiddenError: Requester is not a participant
        StateError: Offer not paid/completed, or no completed payment
    """
    offer = await load_offer(db, offer_id)

    if requester_id not in (offer.user_id, offer.matched_user_id):
        raise ForbiddenError("Only offer participants can finalize this offer", details={"offer_id": offer_id})
    if offer.status not in (OfferStatus.PAID.value, OfferStatus.COMPLETED.value):
        raise StateError(
            "Only paid offers can be finalized",
            details={"offer_id": offer_id, "status": offer.status}
        )
    if not await _count_completed(db, offer_id):
        raise StateError("Offer has no completed payment", details={"offer_id": offer_id})

    tickets = await _run_completion(db, offer_id)
    logger.info(f"Offer {offer_id} finalized by {requester_id}")
    return OfferCompletion(offer=await get_offer(db, offer_id), tickets=tickets)


# ============================================================================
# Transaction Retrieval
# ============================================================================

async def get_offer_transaction(
    db: AsyncSession,
    offer_id: str,
    requester_id: Optional[str] = None
) -> Transaction:
    """
    Most relevant payment for an offer: the completed one if any, otherwise
    the most recent attempt.

    Raises:
        NotFoundError: Unknown offer or no payment yet
        ForbiddenError: requester_id given and not a participant
    """
    offer = await load_offer(db, offer_id)
    if requester_id is not None and requester_id not in (offer.user_id, offer.matched_user_id):
        raise ForbiddenError("Only offer participants can view its payment", details={"offer_id": offer_id})

    result = await db.execute(
        select(TransactionModel)
        .where(TransactionModel.offer_id == offer_id)
        .order_by(
            (TransactionModel.payment_status == PaymentStatus.COMPLETED.value).desc(),
            TransactionModel.transaction_date.desc(),
        )
        .limit(1)
    )
    row = result.scalar_one_or_none()
    if row is None:
        raise NotFoundError(f"No transaction found for offer: {offer_id}", details={"offer_id": offer_id})
    return Transaction.model_validate(row)

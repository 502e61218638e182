"""
Payment lifecycle: fee computation, initiating a payment, applying provider
confirmations (including duplicates and failures) and finalization.
"""
from typing import Dict

import pytest
from sqlalchemy import func, select

from conftest import CREATOR, MATCHED_USER, STRANGER
from jetshare.config import settings
from jetshare.db.models import TicketModel, TransactionModel
from jetshare.exceptions import (
    DependencyError,
    ForbiddenError,
    GatewayError,
    NotFoundError,
    StateError,
    ValidationError,
    WrongPayerError,
)
from jetshare.gateways import MockGateway
from jetshare.models.offers import OfferStatus
from jetshare.models.transactions import PaymentHandle, PaymentMethod, PaymentOutcome, PaymentStatus
from jetshare.services import offer_service, transaction_service


class FixedReferenceGateway(MockGateway):
    """Returns the same provider reference every time."""

    async def create_payment(self, amount_cents: int, currency: str, metadata: Dict[str, str]) -> PaymentHandle:
        return PaymentHandle(provider_reference="mock_fixed_reference")


@pytest.fixture
def card_gateway():
    return MockGateway(PaymentMethod.CARD, secret="card_test_secret")


@pytest.fixture
async def accepted_offer(db, offer_payload):
    offer = await offer_service.create_offer(db, CREATOR, offer_payload())
    return await offer_service.accept_offer(db, offer.id, MATCHED_USER)


async def _count(db, model, *criteria) -> int:
    return await db.scalar(select(func.count()).select_from(model).where(*criteria))


class TestHandlingFee:

    def test_default_percentage(self):
        assert transaction_service.compute_handling_fee(500000) == 37500

    @pytest.mark.parametrize(
        "amount,percentage,expected",
        [
            (10, 7.5, 1),  # 0.75 rounds up
            (6, 7.5, 0),  # 0.45 rounds down
            (20, 2.5, 1),  # 0.5 rounds half-up
            (500000, 0, 0),
        ],
    )
    def test_rounds_half_up_to_the_cent(self, amount, percentage, expected):
        assert transaction_service.compute_handling_fee(amount, percentage) == expected


class TestInitiatePayment:

    async def test_creates_pending_transaction_and_charges_share_plus_fee(self, db, accepted_offer, card_gateway):
        result = await transaction_service.initiate_payment(
            db, card_gateway, accepted_offer.id, MATCHED_USER, PaymentMethod.CARD
        )

        transaction = result.transaction
        assert transaction.payment_status == PaymentStatus.PENDING
        assert transaction.amount_cents == 500000
        assert transaction.handling_fee_cents == 37500
        assert transaction.payer_user_id == MATCHED_USER
        assert transaction.recipient_user_id == CREATOR
        assert transaction.transaction_reference == result.payment.provider_reference
        assert result.total_charge_cents == 537500

        reference, charged, currency, metadata = card_gateway.created[0]
        assert charged == 537500
        assert currency == "USD"
        assert metadata["offerId"] == accepted_offer.id
        assert metadata["userId"] == MATCHED_USER

        # Offer does not move until the provider confirms
        assert (await offer_service.get_offer(db, accepted_offer.id)).status == OfferStatus.ACCEPTED

    async def test_wrong_payer(self, db, accepted_offer, card_gateway):
        for payer in (CREATOR, STRANGER):
            with pytest.raises(WrongPayerError):
                await transaction_service.initiate_payment(
                    db, card_gateway, accepted_offer.id, payer, PaymentMethod.CARD
                )
        assert card_gateway.created == []

    async def test_wrong_payer_is_a_state_error(self):
        assert issubclass(WrongPayerError, StateError)
        assert WrongPayerError.status_code == 403

    async def test_open_offer_cannot_be_paid(self, db, offer_payload, card_gateway):
        offer = await offer_service.create_offer(db, CREATOR, offer_payload())

        with pytest.raises(StateError):
            await transaction_service.initiate_payment(db, card_gateway, offer.id, MATCHED_USER, PaymentMethod.CARD)

    async def test_unknown_offer(self, db, card_gateway):
        with pytest.raises(NotFoundError):
            await transaction_service.initiate_payment(db, card_gateway, "missing", MATCHED_USER, PaymentMethod.CARD)

    async def test_amount_must_match_share(self, db, accepted_offer, card_gateway):
        with pytest.raises(ValidationError):
            await transaction_service.initiate_payment(
                db, card_gateway, accepted_offer.id, MATCHED_USER, PaymentMethod.CARD, amount_cents=400000
            )

    async def test_disabled_method_is_rejected(self, db, accepted_offer, monkeypatch):
        monkeypatch.setattr(settings, "allow_crypto_payments", False)
        gateway = MockGateway(PaymentMethod.CRYPTO)

        with pytest.raises(ValidationError):
            await transaction_service.initiate_payment(
                db, gateway, accepted_offer.id, MATCHED_USER, PaymentMethod.CRYPTO
            )

    async def test_provider_failure_writes_nothing(self, db, accepted_offer):
        gateway = MockGateway(PaymentMethod.CARD, decline="card_declined")

        with pytest.raises(GatewayError) as exc_info:
            await transaction_service.initiate_payment(
                db, gateway, accepted_offer.id, MATCHED_USER, PaymentMethod.CARD
            )

        assert exc_info.value.message == "Your card was declined."
        assert await _count(db, TransactionModel) == 0

    async def test_failed_insert_cancels_provider_payment(self, db, accepted_offer):
        gateway = FixedReferenceGateway(PaymentMethod.CARD)
        await transaction_service.initiate_payment(db, gateway, accepted_offer.id, MATCHED_USER, PaymentMethod.CARD)

        # Same provider reference again violates the unique reference
        with pytest.raises(DependencyError):
            await transaction_service.initiate_payment(
                db, gateway, accepted_offer.id, MATCHED_USER, PaymentMethod.CARD
            )

        assert gateway.cancelled == ["mock_fixed_reference"]
        assert await _count(db, TransactionModel) == 1

    async def test_each_call_starts_a_new_payment(self, db, accepted_offer, card_gateway):
        first = await transaction_service.initiate_payment(
            db, card_gateway, accepted_offer.id, MATCHED_USER, PaymentMethod.CARD
        )
        second = await transaction_service.initiate_payment(
            db, card_gateway, accepted_offer.id, MATCHED_USER, PaymentMethod.CARD
        )

        assert first.transaction.id != second.transaction.id
        assert await _count(db, TransactionModel) == 2


class TestConfirmPayment:

    async def _pay(self, db, offer_id, gateway):
        result = await transaction_service.initiate_payment(db, gateway, offer_id, MATCHED_USER, PaymentMethod.CARD)
        return result.transaction.transaction_reference

    async def test_success_completes_offer_and_issues_tickets(self, db, accepted_offer, card_gateway):
        reference = await self._pay(db, accepted_offer.id, card_gateway)

        transaction = await transaction_service.confirm_payment(db, reference, PaymentOutcome.SUCCEEDED)

        assert transaction.payment_status == PaymentStatus.COMPLETED
        assert (await offer_service.get_offer(db, accepted_offer.id)).status == OfferStatus.COMPLETED

        tickets = (await db.execute(
            select(TicketModel).where(TicketModel.offer_id == accepted_offer.id).order_by(TicketModel.seat_number)
        )).scalars().all()
        assert [(ticket.user_id, ticket.seat_number) for ticket in tickets] == [(CREATOR, "1A"), (MATCHED_USER, "1B")]
        assert tickets[0].gate == tickets[1].gate

    async def test_duplicate_success_is_idempotent(self, db, accepted_offer, card_gateway):
        reference = await self._pay(db, accepted_offer.id, card_gateway)

        await transaction_service.confirm_payment(db, reference, PaymentOutcome.SUCCEEDED)
        await transaction_service.confirm_payment(db, reference, PaymentOutcome.SUCCEEDED)

        assert await _count(
            db, TransactionModel,
            TransactionModel.offer_id == accepted_offer.id,
            TransactionModel.payment_status == "completed",
        ) == 1
        assert await _count(db, TicketModel, TicketModel.offer_id == accepted_offer.id) == 2
        assert (await offer_service.get_offer(db, accepted_offer.id)).status == OfferStatus.COMPLETED

    async def test_unknown_reference_returns_none(self, db):
        assert await transaction_service.confirm_payment(db, "mock_unknown", PaymentOutcome.SUCCEEDED) is None
        assert await transaction_service.confirm_payment(db, None, PaymentOutcome.FAILED) is None

    async def test_failure_keeps_offer_accepted_for_retry(self, db, accepted_offer, card_gateway):
        reference = await self._pay(db, accepted_offer.id, card_gateway)

        transaction = await transaction_service.confirm_payment(db, reference, PaymentOutcome.FAILED)

        assert transaction.payment_status == PaymentStatus.FAILED
        assert (await offer_service.get_offer(db, accepted_offer.id)).status == OfferStatus.ACCEPTED

        retry = await self._pay(db, accepted_offer.id, card_gateway)
        await transaction_service.confirm_payment(db, retry, PaymentOutcome.SUCCEEDED)
        assert (await offer_service.get_offer(db, accepted_offer.id)).status == OfferStatus.COMPLETED

    async def test_failure_after_completion_is_ignored(self, db, accepted_offer, card_gateway):
        reference = await self._pay(db, accepted_offer.id, card_gateway)
        await transaction_service.confirm_payment(db, reference, PaymentOutcome.SUCCEEDED)

        transaction = await transaction_service.confirm_payment(db, reference, PaymentOutcome.FAILED)

        assert transaction.payment_status == PaymentStatus.COMPLETED
        assert (await offer_service.get_offer(db, accepted_offer.id)).status == OfferStatus.COMPLETED

    async def test_failure_of_paid_offer_marks_it_failed(self, db, accepted_offer, card_gateway):
        reference = await self._pay(db, accepted_offer.id, card_gateway)
        await offer_service.transition_offer(db, accepted_offer.id, OfferStatus.ACCEPTED, OfferStatus.PAID)

        await transaction_service.confirm_payment(db, reference, PaymentOutcome.FAILED)

        assert (await offer_service.get_offer(db, accepted_offer.id)).status == OfferStatus.FAILED

    async def test_success_for_cancelled_offer_leaves_offer_unchanged(self, db, accepted_offer, card_gateway):
        reference = await self._pay(db, accepted_offer.id, card_gateway)
        await offer_service.cancel_offer(db, accepted_offer.id, MATCHED_USER)

        transaction = await transaction_service.confirm_payment(db, reference, PaymentOutcome.SUCCEEDED)

        assert transaction.payment_status == PaymentStatus.COMPLETED
        assert (await offer_service.get_offer(db, accepted_offer.id)).status == OfferStatus.CANCELLED
        assert await _count(db, TicketModel, TicketModel.offer_id == accepted_offer.id) == 0

    async def test_ignored_outcome_changes_nothing(self, db, accepted_offer, card_gateway):
        reference = await self._pay(db, accepted_offer.id, card_gateway)

        transaction = await transaction_service.confirm_payment(db, reference, PaymentOutcome.IGNORED)

        assert transaction.payment_status == PaymentStatus.PENDING
        assert (await offer_service.get_offer(db, accepted_offer.id)).status == OfferStatus.ACCEPTED


class TestFinalizeOffer:

    async def test_finalize_completes_paid_offer(self, db, accepted_offer, card_gateway):
        result = await transaction_service.initiate_payment(
            db, card_gateway, accepted_offer.id, MATCHED_USER, PaymentMethod.CARD
        )
        # Simulate a crash right after the payment was recorded and the offer marked paid
        await db.execute(
            TransactionModel.__table__.update()
            .where(TransactionModel.id == result.transaction.id)
            .values(payment_status="completed")
        )
        await db.commit()
        await offer_service.transition_offer(db, accepted_offer.id, OfferStatus.ACCEPTED, OfferStatus.PAID)

        completion = await transaction_service.finalize_offer(db, accepted_offer.id, CREATOR)

        assert completion.offer.status == OfferStatus.COMPLETED
        assert len(completion.tickets) == 2

        again = await transaction_service.finalize_offer(db, accepted_offer.id, MATCHED_USER)
        assert {ticket.id for ticket in again.tickets} == {ticket.id for ticket in completion.tickets}

    async def test_finalize_requires_participant(self, db, accepted_offer):
        with pytest.raises(ForbiddenError):
            await transaction_service.finalize_offer(db, accepted_offer.id, STRANGER)

    async def test_finalize_requires_paid_offer(self, db, accepted_offer):
        with pytest.raises(StateError):
            await transaction_service.finalize_offer(db, accepted_offer.id, CREATOR)

    async def test_finalize_requires_completed_payment(self, db, accepted_offer):
        await offer_service.transition_offer(db, accepted_offer.id, OfferStatus.ACCEPTED, OfferStatus.PAID)

        with pytest.raises(StateError):
            await transaction_service.finalize_offer(db, accepted_offer.id, CREATOR)


class TestOfferTransaction:

    async def test_prefers_completed_payment(self, db, accepted_offer, card_gateway):
        failed = await transaction_service.initiate_payment(
            db, card_gateway, accepted_offer.id, MATCHED_USER, PaymentMethod.CARD
        )
        await transaction_service.confirm_payment(db, failed.transaction.transaction_reference, PaymentOutcome.FAILED)
        paid = await transaction_service.initiate_payment(
            db, card_gateway, accepted_offer.id, MATCHED_USER, PaymentMethod.CARD
        )
        await transaction_service.confirm_payment(db, paid.transaction.transaction_reference, PaymentOutcome.SUCCEEDED)

        transaction = await transaction_service.get_offer_transaction(db, accepted_offer.id, requester_id=CREATOR)

        assert transaction.id == paid.transaction.id

    async def test_no_payment_yet(self, db, accepted_offer):
        with pytest.raises(NotFoundError):
            await transaction_service.get_offer_transaction(db, accepted_offer.id)

    async def test_stranger_cannot_view(self, db, accepted_offer):
        with pytest.raises(ForbiddenError):
            await transaction_service.get_offer_transaction(db, accepted_offer.id, requester_id=STRANGER)


class TestUserStats:

    async def test_counts_completed_payments(self, db, accepted_offer, card_gateway):
        result = await transaction_service.initiate_payment(
            db, card_gateway, accepted_offer.id, MATCHED_USER, PaymentMethod.CARD
        )
        await transaction_service.confirm_payment(db, result.transaction.transaction_reference, PaymentOutcome.SUCCEEDED)

        creator_stats = await offer_service.get_user_stats(db, CREATOR)
        payer_stats = await offer_service.get_user_stats(db, MATCHED_USER)

        assert creator_stats.total_offers == 1
        assert creator_stats.total_earned_cents == 500000
        assert payer_stats.total_bookings == 1
        assert payer_stats.total_spent_cents == 537500

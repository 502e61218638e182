"""
Pydantic Transaction Models

Represents payment events tied to an offer and the normalized payment
objects exchanged with the gateway package.
"""
from datetime import datetime
from enum import Enum
from typing import Optional, Dict, Any
from pydantic import BaseModel, Field


class PaymentMethod(str, Enum):
    CARD = "card"
    CRYPTO = "crypto"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class PaymentOutcome(str, Enum):
    """Normalized result of a provider webhook event."""
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    IGNORED = "ignored"


class Transaction(BaseModel):
    """
    One payment for an offer.

    - payer_user_id is always the offer's matched user
    - recipient_user_id is always the offer's creator
    - All monetary values in cents
    """
    id: str = Field(pattern="^txn_")
    offer_id: str
    payer_user_id: str
    recipient_user_id: str
    amount_cents: int = Field(gt=0)
    handling_fee_cents: int = Field(ge=0)
    currency: str = "USD"
    payment_method: PaymentMethod
    payment_status: PaymentStatus
    transaction_reference: str
    transaction_date: datetime

    model_config = {
        "from_attributes": True,
        "json_schema_extra": {
            "example": {
                "id": "txn_abc123",
                "offer_id": "6f1c2a9e-0d7b-4f43-9c55-2b7f2f0f1a10",
                "payer_user_id": "user_b",
                "recipient_user_id": "user_a",
                "amount_cents": 500000,
                "handling_fee_cents": 37500,
                "currency": "USD",
                "payment_method": "card",
                "payment_status": "pending",
                "transaction_reference": "pi_3Nabc",
                "transaction_date": "2026-10-17T14:35:00Z"
            }
        }
    }


class PaymentHandle(BaseModel):
    """What the client needs to finish a payment with the provider."""
    provider_reference: str
    client_handle: Optional[str] = None  # Stripe client secret, Coinbase hosted URL, ...
    redirect_url: Optional[str] = None
    expires_at: Optional[datetime] = None


class PaymentEvent(BaseModel):
    """Provider webhook event reduced to what the lifecycle manager needs."""
    event_type: str
    provider_reference: Optional[str] = None
    outcome: PaymentOutcome
    raw: Dict[str, Any] = Field(default_factory=dict)


class PaymentInitiation(BaseModel):
    """Result of starting a payment: the pending row plus the provider handle."""
    transaction: Transaction
    payment: PaymentHandle
    total_charge_cents: int

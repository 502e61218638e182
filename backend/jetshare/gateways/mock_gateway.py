"""
Mock Payment Gateway

In-process stand-in for Stripe and Coinbase used in demo mode and tests.
Payments are never charged; the demo checkout page (or a test) completes a
payment by posting a signed webhook built with build_webhook().

Decline scenarios mirror common provider rejections: a gateway constructed
with one of DECLINE_REASONS fails every create_payment call with it.
"""
import json
import logging
import secrets
from datetime import datetime, timedelta
from typing import Dict, List, Mapping, Optional, Tuple

from ..config import settings
from ..exceptions import GatewayError, ValidationError
from ..models.transactions import PaymentEvent, PaymentHandle, PaymentMethod, PaymentOutcome
from ..services.signature_service import sign_base64, verify_base64_signature
from .base import PaymentGateway, load_event_json, require_reference

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "X-Mockpay-Signature"

DECLINE_REASONS = {
    "card_declined": "Your card was declined.",
    "insufficient_funds": "Your card has insufficient funds.",
    "expired_charge": "The charge expired before it was paid.",
}

EVENT_OUTCOMES = {
    "payment.succeeded": PaymentOutcome.SUCCEEDED,
    "payment.failed": PaymentOutcome.FAILED,
}


class MockGateway(PaymentGateway):
    """Mock gateway; remembers created and cancelled references for inspection."""

    name = "mockpay"

    def __init__(
        self,
        method: PaymentMethod = PaymentMethod.CARD,
        secret: Optional[str] = None,
        decline: Optional[str] = None
    ):
        super().__init__(method)
        self.secret = secret or settings.mock_payment_secret
        self.decline = decline
        self.created: List[Tuple[str, int, str, Dict[str, str]]] = []
        self.cancelled: List[str] = []

    async def create_payment(
        self,
        amount_cents: int,
        currency: str,
        metadata: Dict[str, str]
    ) -> PaymentHandle:
        if self.decline:
            logger.info(f"Mock payment declined ({self.decline})")
            raise GatewayError(
                DECLINE_REASONS.get(self.decline, "Payment was declined"),
                details={"provider": self.name, "reason": self.decline}
            )

        reference = f"mock_{secrets.token_hex(12)}"
        self.created.append((reference, amount_cents, currency, dict(metadata)))
        logger.info(f"Mock {self.method.value} payment {reference} created for {amount_cents} {currency}")

        return PaymentHandle(
            provider_reference=reference,
            client_handle=f"{reference}_secret",
            redirect_url=f"{settings.payment_redirect_base_url.rstrip('/')}/{reference}",
            expires_at=datetime.utcnow() + timedelta(hours=1),
        )

    async def cancel_payment(self, provider_reference: str) -> None:
        self.cancelled.append(provider_reference)
        logger.info(f"Mock payment {provider_reference} voided")

    def verify_webhook(self, raw_body: bytes, headers: Mapping[str, str]) -> bool:
        return verify_base64_signature(self.secret, raw_body, headers.get(SIGNATURE_HEADER))

    def parse_event(self, raw_body: bytes) -> PaymentEvent:
        event = load_event_json(raw_body)
        event_type = event.get("type")
        data = event.get("data")
        if not isinstance(event_type, str) or not isinstance(data, dict):
            raise ValidationError("Webhook event lacks type or data", error_code="malformed_payload")

        return PaymentEvent(
            event_type=event_type,
            provider_reference=require_reference(data.get("id")),
            outcome=EVENT_OUTCOMES.get(event_type, PaymentOutcome.IGNORED),
            raw=event,
        )

    def build_webhook(self, provider_reference: str, succeeded: bool = True) -> Tuple[bytes, Dict[str, str]]:
        """Signed webhook body and headers completing a mock payment."""
        body = json.dumps({
            "type": "payment.succeeded" if succeeded else "payment.failed",
            "data": {"id": provider_reference},
        }).encode("utf-8")
        return body, {SIGNATURE_HEADER: sign_base64(self.secret, body)}

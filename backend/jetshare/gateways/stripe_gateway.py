"""
Stripe Gateway (card payments)

Creates and cancels PaymentIntents through the Stripe SDK and verifies
`Stripe-Signature` webhooks with stripe.WebhookSignature.
"""
import logging
from typing import Any, Dict, Mapping, Optional

import stripe

from ..config import settings
from ..exceptions import GatewayError, ValidationError
from ..models.transactions import PaymentEvent, PaymentHandle, PaymentMethod, PaymentOutcome
from .base import PaymentGateway, load_event_json, require_reference

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "Stripe-Signature"

EVENT_OUTCOMES = {
    "payment_intent.succeeded": PaymentOutcome.SUCCEEDED,
    "payment_intent.payment_failed": PaymentOutcome.FAILED,
    "payment_intent.canceled": PaymentOutcome.FAILED,
}


def build_stripe_client(secret_key: str, base_url: Optional[str] = None, timeout: Optional[float] = None) -> stripe.StripeClient:
    """StripeClient using the async httpx transport, without SDK-level retries."""
    return stripe.StripeClient(
        secret_key,
        base_addresses={"api": (base_url or settings.stripe_api_base).rstrip("/")},
        http_client=stripe.HTTPXClient(timeout=timeout or settings.gateway_timeout_seconds),
        max_network_retries=0,
    )


class StripeGateway(PaymentGateway):
    name = "stripe"

    def __init__(
        self,
        secret_key: str,
        webhook_secret: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        tolerance_seconds: Optional[int] = None,
        client: Optional[Any] = None
    ):
        super().__init__(PaymentMethod.CARD)
        self.webhook_secret = webhook_secret or settings.stripe_webhook_secret
        self.tolerance_seconds = (
            settings.webhook_tolerance_seconds if tolerance_seconds is None else tolerance_seconds
        )
        self.client = client or build_stripe_client(secret_key, base_url, timeout)

    def _gateway_error(self, action: str, error: stripe.StripeError) -> GatewayError:
        if isinstance(error, stripe.APIConnectionError):
            logger.error(f"stripe: {action} failed to reach Stripe: {error}")
            return GatewayError("Payment provider is unreachable", details={"provider": self.name})

        logger.warning(f"stripe: {action} rejected ({error.http_status}): {error.user_message or error}")
        return GatewayError(
            error.user_message or "Payment provider rejected the request",
            details={"provider": self.name, "status_code": error.http_status}
        )

    async def create_payment(
        self,
        amount_cents: int,
        currency: str,
        metadata: Dict[str, str]
    ) -> PaymentHandle:
        try:
            intent = await self.client.payment_intents.create_async(params={
                "amount": amount_cents,
                "currency": currency.lower(),
                "automatic_payment_methods": {"enabled": True},
                "metadata": {key: str(value) for key, value in metadata.items()},
            })
        except stripe.StripeError as e:
            raise self._gateway_error("create PaymentIntent", e) from e

        intent_id = getattr(intent, "id", None)
        if not isinstance(intent_id, str) or not intent_id:
            logger.error("stripe: PaymentIntent response has no id")
            raise GatewayError("Payment provider returned an unreadable response", details={"provider": self.name})

        logger.info(f"Stripe PaymentIntent {intent_id} created for {amount_cents} {currency}")
        return PaymentHandle(
            provider_reference=intent_id,
            client_handle=getattr(intent, "client_secret", None),
        )

    async def cancel_payment(self, provider_reference: str) -> None:
        try:
            await self.client.payment_intents.cancel_async(provider_reference)
        except stripe.StripeError as e:
            raise self._gateway_error(f"cancel {provider_reference}", e) from e
        logger.info(f"Stripe PaymentIntent {provider_reference} cancelled")

    def verify_webhook(self, raw_body: bytes, headers: Mapping[str, str]) -> bool:
        header = headers.get(SIGNATURE_HEADER)
        if not header:
            return False
        try:
            # Signature only; a signed but unparseable body is reported by parse_event
            stripe.WebhookSignature.verify_header(
                raw_body.decode("utf-8"),
                header,
                self.webhook_secret,
                tolerance=self.tolerance_seconds or None,
            )
        except (stripe.SignatureVerificationError, UnicodeDecodeError, ValueError):
            return False
        return True

    def parse_event(self, raw_body: bytes) -> PaymentEvent:
        event = load_event_json(raw_body)
        event_type = event.get("type")
        data = event.get("data")
        if not isinstance(event_type, str) or not isinstance(data, dict) or not isinstance(data.get("object"), dict):
            raise ValidationError("Stripe event lacks type or data.object", error_code="malformed_payload")

        return PaymentEvent(
            event_type=event_type,
            provider_reference=require_reference(data["object"].get("id")),
            outcome=EVENT_OUTCOMES.get(event_type, PaymentOutcome.IGNORED),
            raw=event,
        )

"""
Coinbase Commerce Gateway (crypto payments)

Creates fixed-price charges and verifies `X-CC-Webhook-Signature` webhooks.
"""
import logging
from typing import Any, Dict, Mapping, Optional

import httpx

from ..config import settings
from ..exceptions import GatewayError, ValidationError
from ..models.transactions import PaymentEvent, PaymentHandle, PaymentMethod, PaymentOutcome
from ..services.signature_service import verify_hex_signature
from .base import HttpPaymentGateway, format_amount, load_event_json, parse_timestamp, require_reference

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "X-CC-Webhook-Signature"
API_VERSION = "2018-03-22"

EVENT_OUTCOMES = {
    "charge:confirmed": PaymentOutcome.SUCCEEDED,
    "charge:resolved": PaymentOutcome.SUCCEEDED,
    "charge:failed": PaymentOutcome.FAILED,
}


class CoinbaseGateway(HttpPaymentGateway):
    name = "coinbase"

    def __init__(
        self,
        api_key: str,
        webhook_secret: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        super().__init__(
            PaymentMethod.CRYPTO,
            base_url or settings.coinbase_api_base,
            timeout or settings.gateway_timeout_seconds,
            transport,
        )
        self.api_key = api_key
        self.webhook_secret = webhook_secret or settings.coinbase_webhook_secret

    def _headers(self) -> Dict[str, str]:
        return {"X-CC-Api-Key": self.api_key, "X-CC-Version": API_VERSION}

    def _error_message(self, body: Any) -> Optional[str]:
        if isinstance(body, dict) and isinstance(body.get("error"), dict):
            return body["error"].get("message")
        return None

    async def create_payment(
        self,
        amount_cents: int,
        currency: str,
        metadata: Dict[str, str]
    ) -> PaymentHandle:
        offer_id = metadata.get("offerId", "")
        redirect_base = settings.payment_redirect_base_url.rstrip("/")
        payload = {
            "name": "JetShare flight share",
            "description": f"Flight share payment for offer {offer_id}",
            "pricing_type": "fixed_price",
            "local_price": {"amount": format_amount(amount_cents), "currency": currency.upper()},
            "metadata": dict(metadata),
            "redirect_url": f"{redirect_base}/success?offer_id={offer_id}",
            "cancel_url": f"{redirect_base}/cancel?offer_id={offer_id}",
        }

        body = await self._request("POST", "/charges", json=payload)
        charge = body.get("data")
        if not isinstance(charge, dict) or not isinstance(charge.get("id"), str):
            raise GatewayError("Payment provider returned an unreadable response", details={"provider": self.name})

        logger.info(f"Coinbase charge {charge['id']} created for {amount_cents} {currency}")
        return PaymentHandle(
            provider_reference=charge["id"],
            client_handle=charge.get("hosted_url"),
            redirect_url=charge.get("hosted_url"),
            expires_at=parse_timestamp(charge.get("expires_at")),
        )

    async def cancel_payment(self, provider_reference: str) -> None:
        await self._request("POST", f"/charges/{provider_reference}/cancel")
        logger.info(f"Coinbase charge {provider_reference} cancelled")

    def verify_webhook(self, raw_body: bytes, headers: Mapping[str, str]) -> bool:
        return verify_hex_signature(self.webhook_secret, raw_body, headers.get(SIGNATURE_HEADER))

    def parse_event(self, raw_body: bytes) -> PaymentEvent:
        body = load_event_json(raw_body)
        event = body.get("event")
        if not isinstance(event, dict) or not isinstance(event.get("type"), str):
            raise ValidationError("Coinbase webhook lacks event.type", error_code="malformed_payload")
        data = event.get("data")
        if not isinstance(data, dict):
            raise ValidationError("Coinbase webhook lacks event.data", error_code="malformed_payload")

        return PaymentEvent(
            event_type=event["type"],
            provider_reference=require_reference(data.get("id")),
            outcome=EVENT_OUTCOMES.get(event["type"], PaymentOutcome.IGNORED),
            raw=body,
        )

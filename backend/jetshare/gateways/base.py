"""
Payment Gateway Interface

Translates "charge this amount for offer X" into a provider-specific call and
turns provider webhooks back into normalized PaymentEvents. Provider error
shapes never leave this package: every failure surfaces as GatewayError.
"""
import json
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Dict, Mapping, Optional

import httpx

from ..exceptions import GatewayError, ValidationError
from ..models.transactions import PaymentEvent, PaymentHandle, PaymentMethod

logger = logging.getLogger(__name__)


def format_amount(amount_cents: int) -> str:
    """Cents to a decimal string ("5375.00")."""
    return f"{amount_cents // 100}.{amount_cents % 100:02d}"


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Provider ISO-8601 timestamp as naive UTC, or None when absent or unreadable."""
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        logger.warning(f"Unparseable provider timestamp: {value}")
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def load_event_json(raw_body: bytes) -> Dict[str, Any]:
    """
    Parse a webhook body.

    Raises:
        ValidationError: If the body is not a JSON object
    """
    try:
        event = json.loads(raw_body)
    except (ValueError, UnicodeDecodeError):
        raise ValidationError("Webhook payload is not valid JSON", error_code="malformed_payload")
    if not isinstance(event, dict):
        raise ValidationError("Webhook payload must be a JSON object", error_code="malformed_payload")
    return event


def require_reference(value: Any) -> str:
    """
    Payment reference carried by a webhook event.

    Raises:
        ValidationError: If the reference is missing or not a string
    """
    if not isinstance(value, str) or not value:
        raise ValidationError(
            "Webhook event lacks a payment reference",
            details={"reference_type": type(value).__name__},
            error_code="malformed_payload",
        )
    return value


class PaymentGateway(ABC):
    """Provider-neutral payment operations used by the lifecycle manager."""

    name: str = "gateway"

    def __init__(self, method: PaymentMethod):
        self.method = method

    @abstractmethod
    async def create_payment(
        self,
        amount_cents: int,
        currency: str,
        metadata: Dict[str, str]
    ) -> PaymentHandle:
        """
        Create a provider-side payment object.

        Raises:
            GatewayError: Provider call failed
        """

    @abstractmethod
    async def cancel_payment(self, provider_reference: str) -> None:
        """Void a payment object created by create_payment."""

    @abstractmethod
    def verify_webhook(self, raw_body: bytes, headers: Mapping[str, str]) -> bool:
        """Constant-time signature check over the raw body; never raises."""

    @abstractmethod
    def parse_event(self, raw_body: bytes) -> PaymentEvent:
        """
        Normalize a verified webhook body.

        Raises:
            ValidationError: Malformed payload (error_code "malformed_payload")
        """


class HttpPaymentGateway(PaymentGateway):
    """
    Base for providers reached over HTTPS.

    A custom httpx transport can be injected (tests use httpx.MockTransport).
    """

    def __init__(
        self,
        method: PaymentMethod,
        base_url: str,
        timeout: float,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        super().__init__(method)
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.transport = transport

    def _headers(self) -> Dict[str, str]:
        return {}

    def _error_message(self, body: Any) -> Optional[str]:
        """Human-readable message from a provider error body, if any."""
        return None

    async def _request(self, method: str, path: str, **kwargs: Any) -> Dict[str, Any]:
        """
        Send one request and return the decoded JSON body.

        Raises:
            GatewayError: On timeout, transport failure, non-2xx status or a
                body that is not JSON
        """
        try:
            async with httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                headers=self._headers(),
                transport=self.transport,
            ) as client:
                response = await client.request(method, path, **kwargs)
        except httpx.TimeoutException:
            logger.error(f"{self.name}: {method} {path} timed out")
            raise GatewayError("Payment provider did not respond in time", details={"provider": self.name})
        except httpx.HTTPError as e:
            logger.error(f"{self.name}: {method} {path} failed: {e}")
            raise GatewayError("Payment provider is unreachable", details={"provider": self.name})

        try:
            body = response.json()
        except ValueError:
            body = None

        if response.status_code >= 400:
            provider_message = self._error_message(body) if body is not None else None
            logger.warning(f"{self.name}: {method} {path} returned {response.status_code}: {provider_message}")
            raise GatewayError(
                provider_message or "Payment provider rejected the request",
                details={"provider": self.name, "status_code": response.status_code}
            )

        if not isinstance(body, dict):
            logger.error(f"{self.name}: {method} {path} returned a non-JSON body")
            raise GatewayError("Payment provider returned an unreadable response", details={"provider": self.name})

        return body

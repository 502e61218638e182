"""
Payment gateways.

card -> Stripe, crypto -> Coinbase Commerce. In demo mode, or when a
provider key is not configured, the method is served by MockGateway.
"""
import logging
from functools import lru_cache
from typing import Callable

from ..config import settings
from ..models.transactions import PaymentMethod
from .base import PaymentGateway
from .coinbase_gateway import CoinbaseGateway
from .mock_gateway import MockGateway
from .stripe_gateway import StripeGateway

logger = logging.getLogger(__name__)

GatewayResolver = Callable[[PaymentMethod], PaymentGateway]


@lru_cache(maxsize=None)
def get_gateway(method: PaymentMethod) -> PaymentGateway:
    """Gateway instance serving a payment method (one per method per process)."""
    method = PaymentMethod(method)

    if method == PaymentMethod.CARD and not settings.demo_mode and settings.stripe_secret_key:
        return StripeGateway(settings.stripe_secret_key)
    if method == PaymentMethod.CRYPTO and not settings.demo_mode and settings.coinbase_api_key:
        return CoinbaseGateway(settings.coinbase_api_key)

    if not settings.demo_mode:
        logger.warning(f"No provider key configured for {method.value} payments, using mock gateway")
    return MockGateway(method)


def get_gateway_resolver() -> GatewayResolver:
    """FastAPI dependency; tests override it to inject gateways."""
    return get_gateway


__all__ = [
    "PaymentGateway",
    "StripeGateway",
    "CoinbaseGateway",
    "MockGateway",
    "GatewayResolver",
    "get_gateway",
    "get_gateway_resolver",
]

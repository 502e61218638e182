"""
Payment Webhook Receiver

Providers post payment outcomes here. Each request is verified against the
raw body before anything is parsed; events for unknown references or of
uninteresting types are acknowledged with 200 so providers stop retrying.
"""
from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Dict, Any
import logging

from ..db.init_db import get_db
from ..exceptions import InvalidSignatureError
from ..gateways import GatewayResolver, get_gateway_resolver
from ..models.transactions import PaymentMethod, PaymentOutcome
from ..services.transaction_service import confirm_payment

logger = logging.getLogger(__name__)

router = APIRouter()


async def _receive(
    method: PaymentMethod,
    request: Request,
    resolve_gateway: GatewayResolver,
    db: AsyncSession
) -> Dict[str, Any]:
    gateway = resolve_gateway(method)
    raw_body = await request.body()

    if not gateway.verify_webhook(raw_body, request.headers):
        logger.warning(f"Rejected {method.value} webhook with invalid signature")
        raise InvalidSignatureError(details={"provider": gateway.name})

    event = gateway.parse_event(raw_body)
    logger.info(f"{gateway.name} webhook: {event.event_type} for {event.provider_reference}")

    if event.outcome == PaymentOutcome.IGNORED:
        return {"received": True, "handled": False}

    transaction = await confirm_payment(db, event.provider_reference, event.outcome)
    return {"received": True, "handled": transaction is not None}


@router.post("/card")
async def card_webhook(
    request: Request,
    resolve_gateway: GatewayResolver = Depends(get_gateway_resolver),
    db: AsyncSession = Depends(get_db)
) -> Dict[str, Any]:
    """Card provider (Stripe) events."""
    return await _receive(PaymentMethod.CARD, request, resolve_gateway, db)


@router.post("/crypto")
async def crypto_webhook(
    request: Request,
    resolve_gateway: GatewayResolver = Depends(get_gateway_resolver),
    db: AsyncSession = Depends(get_db)
) -> Dict[str, Any]:
    """Crypto provider (Coinbase Commerce) events."""
    return await _receive(PaymentMethod.CRYPTO, request, resolve_gateway, db)

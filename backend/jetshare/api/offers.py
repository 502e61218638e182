"""
Offers API Endpoints

Offer lifecycle over HTTP: create, browse, edit, delete, accept, cancel,
pay and finalize. The caller is identified by the X-User-Id header; all
business rules live in the services.
"""
from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Dict, Any, Literal, Optional
import logging

from ..db.init_db import get_db
from ..gateways import GatewayResolver, get_gateway_resolver
from ..models.offers import Offer, OfferCreate, OfferStatus, OfferUpdate, UserStats
from ..models.tickets import OfferCompletion
from ..models.transactions import PaymentInitiation, PaymentMethod, Transaction
from ..services import offer_service, transaction_service
from .deps import get_current_user_id

logger = logging.getLogger(__name__)

router = APIRouter()


class PaymentRequest(BaseModel):
    """Body of POST /offers/{id}/pay."""
    payment_method: PaymentMethod
    amount_cents: Optional[int] = None


@router.post("/offers", response_model=Offer)
async def create_offer_endpoint(
    payload: OfferCreate,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db)
) -> Offer:
    """
    Create an open offer for the calling user.

    Example:
        POST /api/offers
        {
            "flight_date": "2026-12-01T14:00:00",
            "departure_location": "KTEB",
            "arrival_location": "KMIA",
            "total_flight_cost_cents": 1000000,
            "requested_share_amount_cents": 500000
        }
    """
    return await offer_service.create_offer(db, user_id, payload)


@router.get("/offers")
async def list_offers_endpoint(
    view_mode: Literal["marketplace", "dashboard"] = Query("marketplace"),
    status: Optional[OfferStatus] = Query(None, description="Dashboard view only; rejected in marketplace view"),
    user_id: Optional[str] = Query(None, description="Dashboard view only: creator"),
    matched_user_id: Optional[str] = Query(None, description="Dashboard view only: matched user"),
    limit: int = Query(50, ge=1, le=100, description="Max results"),
    offset: int = Query(0, ge=0, description="Pagination offset"),
    viewer_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db)
) -> Dict[str, Any]:
    """
    List offers.

    Marketplace view shows open offers from other users, soonest flight
    first, and takes no filters. Dashboard view applies the explicit filters.
    """
    offers = await offer_service.list_offers(
        db,
        viewer_id=viewer_id,
        view_mode=view_mode,
        status=status,
        user_id=user_id,
        matched_user_id=matched_user_id,
        limit=limit,
        offset=offset,
    )
    return {"count": len(offers), "offers": offers}


@router.get("/offers/stats", response_model=UserStats)
async def get_user_stats_endpoint(
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db)
) -> UserStats:
    """Dashboard counters for the calling user."""
    return await offer_service.get_user_stats(db, user_id)


@router.get("/offers/{offer_id}", response_model=Offer)
async def get_offer_endpoint(
    offer_id: str,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db)
) -> Offer:
    return await offer_service.get_offer(db, offer_id)


@router.post("/offers/{offer_id}", response_model=Offer)
async def update_offer_endpoint(
    offer_id: str,
    payload: OfferUpdate,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db)
) -> Offer:
    """Edit an open offer (creator only). Omitted fields keep their value."""
    return await offer_service.update_offer(db, offer_id, user_id, payload)


@router.post("/offers/{offer_id}/delete")
async def delete_offer_endpoint(
    offer_id: str,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db)
) -> Dict[str, Any]:
    await offer_service.delete_offer(db, offer_id, user_id)
    return {"deleted": True, "offer_id": offer_id}


@router.post("/offers/{offer_id}/accept", response_model=Offer)
async def accept_offer_endpoint(
    offer_id: str,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db)
) -> Offer:
    """
    Accept an open offer as the calling user.

    Returns 409 if another user accepted it first.
    """
    return await offer_service.accept_offer(db, offer_id, user_id)


@router.post("/offers/{offer_id}/cancel", response_model=Offer)
async def cancel_offer_endpoint(
    offer_id: str,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db)
) -> Offer:
    return await offer_service.cancel_offer(db, offer_id, user_id)


@router.post("/offers/{offer_id}/pay", response_model=PaymentInitiation)
async def pay_offer_endpoint(
    offer_id: str,
    payload: PaymentRequest,
    user_id: str = Depends(get_current_user_id),
    resolve_gateway: GatewayResolver = Depends(get_gateway_resolver),
    db: AsyncSession = Depends(get_db)
) -> PaymentInitiation:
    """
    Start paying for an accepted offer (matched user only).

    Returns the pending transaction and what the client needs to complete the
    payment with the provider (client secret or hosted checkout URL). The
    offer moves on only when the provider's webhook confirms the payment.
    """
    gateway = resolve_gateway(payload.payment_method)
    return await transaction_service.initiate_payment(
        db,
        gateway,
        offer_id,
        user_id,
        payload.payment_method,
        amount_cents=payload.amount_cents,
    )


@router.get("/offers/{offer_id}/transaction", response_model=Transaction)
async def get_offer_transaction_endpoint(
    offer_id: str,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db)
) -> Transaction:
    return await transaction_service.get_offer_transaction(db, offer_id, requester_id=user_id)


@router.post("/offers/{offer_id}/finalize", response_model=OfferCompletion)
async def finalize_offer_endpoint(
    offer_id: str,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db)
) -> OfferCompletion:
    """
    Re-run completion for a paid offer whose tickets or final status are
    missing after a partial failure. Idempotent.
    """
    logger.info(f"Finalize requested for offer {offer_id} by {user_id}")
    return await transaction_service.finalize_offer(db, offer_id, user_id)

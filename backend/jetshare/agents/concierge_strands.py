"""
JetShare Concierge Agent using Strands SDK

Helps a user find a flight to share or list their own flight for sharing.
Tools delegate to services/concierge_service.py, each with its own database
session, so an agent turn never holds a request's session open.
"""
from typing import Any, Callable, Optional
import json
import logging

from strands import Agent, tool
from strands.models import BedrockModel
from strands.session import SessionManager

from ..config import settings
from ..exceptions import JetShareError
from ..services import concierge_service

logger = logging.getLogger(__name__)


CONCIERGE_SYSTEM_PROMPT = """You are the JetShare concierge. JetShare lets a traveller who has booked a private jet flight offer part of the cost to another traveller, who takes a seat in exchange.

## Tools Available

- `find_jetshare_offers(location, max_share_dollars, within_days)` - Search open offers by airport or city
- `create_jetshare_offer(...)` - List the user's own flight for cost sharing

## How to Help

- When the user wants to fly somewhere, search first and present the options with date, route, aircraft and the share price in dollars.
- Accepting and paying for an offer happens in the JetShare app, not in this chat. Tell the user the offer ID so they can find it there.
- Before creating an offer, confirm departure, arrival, date and total cost. If the user does not say what share they want covered, the default is half the total.
- If a tool returns an error, explain it plainly and ask for what is missing.

Be concise and friendly. Amounts from tools are in cents; always speak in dollars.
"""


def _dollars_to_cents(amount: Optional[float]) -> Optional[int]:
    return None if amount is None else int(round(amount * 100))


def create_concierge_agent(
    user_id: str,
    session_factory: Callable[[], Any],
    session_manager: Optional[SessionManager] = None,
    model_id: Optional[str] = None,
    region_name: Optional[str] = None
) -> Agent:
    """
    Create the concierge agent for one user.

    Args:
        user_id: Caller; offers are searched and created on their behalf
        session_factory: Async sessionmaker used by the tools
        session_manager: Strands session manager holding conversation history
        model_id: Bedrock model ID (defaults to settings.aws_bedrock_model_id)
        region_name: AWS region (defaults to settings.aws_region)

    Returns:
        Strands Agent with the offer search/create tools
    """

    @tool
    async def find_jetshare_offers(
        location: Optional[str] = None,
        max_share_dollars: Optional[float] = None,
        within_days: Optional[int] = None
    ) -> str:
        """
        Search open JetShare offers from other users.

        Args:
            location: Airport code or city matched against departure and arrival
            max_share_dollars: Highest share price the user will pay, in dollars
            within_days: Only flights departing within this many days

        Returns:
            JSON string with matching offers (amounts in cents)
        """
        async with session_factory() as db:
            offers = await concierge_service.find_jetshare_offers(
                db,
                viewer_id=user_id,
                location=location,
                max_share_cents=_dollars_to_cents(max_share_dollars),
                within_days=within_days,
            )
        return json.dumps({"success": True, "count": len(offers), "offers": offers})

    @tool
    async def create_jetshare_offer(
        departure_location: str,
        arrival_location: str,
        flight_date: str,
        total_cost_dollars: float,
        share_dollars: Optional[float] = None,
        departure_time: Optional[str] = None,
        aircraft_model: Optional[str] = None,
        total_seats: Optional[int] = None,
        available_seats: Optional[int] = None
    ) -> str:
        """
        List the user's flight so another traveller can share its cost.

        Args:
            departure_location: Departure airport or city
            arrival_location: Arrival airport or city
            flight_date: ISO date (2026-12-01), "today", "tomorrow" or "next week"
            total_cost_dollars: Full cost of the flight in dollars
            share_dollars: Amount the other traveller should pay; defaults to half
            departure_time: Optional time such as "14:30" or "2:30 pm"
            aircraft_model: Optional aircraft, e.g. "Gulfstream G650"
            total_seats: Optional seat count on the aircraft
            available_seats: Optional seats offered

        Returns:
            JSON string with the created offer or an error message
        """
        try:
            async with session_factory() as db:
                offer = await concierge_service.create_jetshare_offer(
                    db,
                    creator_id=user_id,
                    departure_location=departure_location,
                    arrival_location=arrival_location,
                    flight_date=flight_date,
                    total_flight_cost_cents=_dollars_to_cents(total_cost_dollars),
                    requested_share_amount_cents=_dollars_to_cents(share_dollars),
                    departure_time=departure_time,
                    aircraft_model=aircraft_model,
                    total_seats=total_seats,
                    available_seats=available_seats,
                )
        except JetShareError as e:
            logger.info(f"Concierge offer creation rejected for {user_id}: {e.error_code}")
            return json.dumps({"success": False, "error": e.message, "details": e.details})

        logger.info(f"Concierge created offer {offer.id} for {user_id}")
        return json.dumps({"success": True, "offer": offer.model_dump(mode="json")})

    bedrock_model = BedrockModel(
        model_id=model_id or settings.aws_bedrock_model_id,
        region_name=region_name or settings.aws_region,
        temperature=0.3
    )

    return Agent(
        model=bedrock_model,
        tools=[find_jetshare_offers, create_jetshare_offer],
        system_prompt=CONCIERGE_SYSTEM_PROMPT,
        session_manager=session_manager,
    )

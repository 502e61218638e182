"""
Shared fixtures: a fresh SQLite file database per test, sessions bound to
it, mock payment gateways, and an ASGI client wired to both.
"""
from datetime import datetime
from typing import Any, Callable, Dict

import pytest
from httpx import ASGITransport, AsyncClient

from jetshare.api.deps import get_session_factory
from jetshare.db.init_db import build_engine, build_sessionmaker, get_db, initialize_database
from jetshare.gateways import MockGateway, get_gateway_resolver
from jetshare.main import app
from jetshare.models.offers import OfferCreate
from jetshare.models.transactions import PaymentMethod

CREATOR = "user_a"
MATCHED_USER = "user_b"
STRANGER = "user_c"

FLIGHT_DATE = datetime(2030, 1, 15, 14, 0)


@pytest.fixture
def database_path(tmp_path) -> str:
    path = tmp_path / "jetshare_test.db"
    initialize_database(str(path))
    return str(path)


@pytest.fixture
async def engine(database_path):
    engine = build_engine(database_path)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_sessionmaker(engine)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def offer_payload() -> Callable[..., OfferCreate]:
    """Factory for a valid offer: 10,000.00 total, 5,000.00 requested."""

    def _build(**overrides: Any) -> OfferCreate:
        fields: Dict[str, Any] = {
            "flight_date": FLIGHT_DATE,
            "departure_location": "KTEB",
            "arrival_location": "KMIA",
            "aircraft_model": "Gulfstream G650",
            "total_seats": 8,
            "available_seats": 4,
            "total_flight_cost_cents": 1000000,
            "requested_share_amount_cents": 500000,
        }
        fields.update(overrides)
        return OfferCreate(**fields)

    return _build


@pytest.fixture
def gateways() -> Dict[PaymentMethod, MockGateway]:
    return {
        PaymentMethod.CARD: MockGateway(PaymentMethod.CARD, secret="card_test_secret"),
        PaymentMethod.CRYPTO: MockGateway(PaymentMethod.CRYPTO, secret="crypto_test_secret"),
    }


@pytest.fixture
async def client(session_factory, gateways):
    async def _get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_gateway_resolver] = lambda: gateways.__getitem__
    app.dependency_overrides[get_session_factory] = lambda: session_factory

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as http_client:
        yield http_client

    app.dependency_overrides.clear()

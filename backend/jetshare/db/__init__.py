"""
Database package for JetShare.

Exports database initialization, models, and session management.
"""
from .init_db import (
    initialize_database,
    build_engine,
    build_sessionmaker,
    get_db,
    get_async_session,
    AsyncSessionLocal,
)
from .models import (
    Base,
    ProfileModel,
    OfferModel,
    TransactionModel,
    TicketModel
)

__all__ = [
    "initialize_database",
    "build_engine",
    "build_sessionmaker",
    "get_db",
    "get_async_session",
    "AsyncSessionLocal",
    "Base",
    "ProfileModel",
    "OfferModel",
    "TransactionModel",
    "TicketModel",
]

"""
Database Initialization Script

Creates SQLite database tables for the JetShare marketplace.
Tables: profiles, offers, transactions, tickets

Schema matches db/models.py. Every status column carries a CHECK constraint
and foreign keys are enforced on every connection.
"""
import logging
import sqlite3
from pathlib import Path
from typing import AsyncGenerator, Optional

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine, AsyncSession, async_sessionmaker

from ..config import settings

logger = logging.getLogger(__name__)


def create_tables(conn: sqlite3.Connection) -> None:
    """
    Create all database tables with indexes.

    Tables:
    - profiles: Minimal user records referenced by every other table
    - offers: JetShare offers with lifecycle status
    - transactions: Payment events correlated to the provider reference
    - tickets: Boarding credentials, one per (offer, participant)

    Also enables WAL mode for better concurrency.
    """
    cursor = conn.cursor()

    # Enable WAL mode for better concurrency (prevents most locking issues)
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA busy_timeout=30000")  # 30 second timeout
    cursor.execute("PRAGMA synchronous=NORMAL")
    cursor.execute("PRAGMA foreign_keys=ON")

    cursor.execute("""
        CREATE TABLE IF NOT EXISTS profiles (
            id TEXT PRIMARY KEY,
            email TEXT,
            first_name TEXT,
            last_name TEXT,
            created_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP
        )
    """)

    cursor.execute("""
        CREATE TABLE IF NOT EXISTS offers (
            id TEXT PRIMARY KEY,
            user_id TEXT NOT NULL,
            flight_date TIMESTAMP NOT NULL,
            departure_location TEXT NOT NULL,
            arrival_location TEXT NOT NULL,
            aircraft_model TEXT,
            total_seats INTEGER,
            available_seats INTEGER,
            total_flight_cost_cents INTEGER NOT NULL CHECK(total_flight_cost_cents > 0),
            requested_share_amount_cents INTEGER NOT NULL,
            status TEXT NOT NULL DEFAULT 'open'
                CHECK(status IN ('open', 'accepted', 'paid', 'completed', 'failed', 'cancelled')),
            matched_user_id TEXT,
            created_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
            updated_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
            CHECK(requested_share_amount_cents > 0 AND requested_share_amount_cents <= total_flight_cost_cents),
            CHECK(matched_user_id IS NULL OR matched_user_id <> user_id),
            FOREIGN KEY (user_id) REFERENCES profiles(id),
            FOREIGN KEY (matched_user_id) REFERENCES profiles(id)
        )
    """)

    cursor.execute("CREATE INDEX IF NOT EXISTS idx_offers_user_id ON offers(user_id)")
    cursor.execute("CREATE INDEX IF NOT EXISTS idx_offers_matched_user_id ON offers(matched_user_id)")
    cursor.execute("CREATE INDEX IF NOT EXISTS idx_offers_status ON offers(status)")
    cursor.execute("CREATE INDEX IF NOT EXISTS idx_offers_flight_date ON offers(flight_date)")

    cursor.execute("""
        CREATE TABLE IF NOT EXISTS transactions (
            id TEXT PRIMARY KEY,
            offer_id TEXT NOT NULL,
            payer_user_id TEXT NOT NULL,
            recipient_user_id TEXT NOT NULL,
            amount_cents INTEGER NOT NULL CHECK(amount_cents > 0),
            handling_fee_cents INTEGER NOT NULL DEFAULT 0,
            currency TEXT NOT NULL DEFAULT 'USD',
            payment_method TEXT NOT NULL CHECK(payment_method IN ('card', 'crypto')),
            payment_status TEXT NOT NULL DEFAULT 'pending'
                CHECK(payment_status IN ('pending', 'completed', 'failed')),
            transaction_reference TEXT NOT NULL UNIQUE,
            transaction_date TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
            FOREIGN KEY (offer_id) REFERENCES offers(id),
            FOREIGN KEY (payer_user_id) REFERENCES profiles(id),
            FOREIGN KEY (recipient_user_id) REFERENCES profiles(id)
        )
    """)

    cursor.execute("CREATE INDEX IF NOT EXISTS idx_transactions_offer_id ON transactions(offer_id)")
    cursor.execute("CREATE INDEX IF NOT EXISTS idx_transactions_payer ON transactions(payer_user_id)")
    cursor.execute("CREATE INDEX IF NOT EXISTS idx_transactions_recipient ON transactions(recipient_user_id)")
    cursor.execute("CREATE INDEX IF NOT EXISTS idx_transactions_status ON transactions(payment_status)")

    cursor.execute("""
        CREATE TABLE IF NOT EXISTS tickets (
            id TEXT PRIMARY KEY,
            offer_id TEXT NOT NULL,
            user_id TEXT NOT NULL,
            ticket_code TEXT NOT NULL UNIQUE,
            passenger_name TEXT,
            seat_number TEXT NOT NULL,
            boarding_time TIMESTAMP NOT NULL,
            gate TEXT NOT NULL,
            status TEXT NOT NULL DEFAULT 'active' CHECK(status IN ('active', 'used', 'void')),
            created_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
            UNIQUE (offer_id, user_id),
            FOREIGN KEY (offer_id) REFERENCES offers(id),
            FOREIGN KEY (user_id) REFERENCES profiles(id)
        )
    """)

    cursor.execute("CREATE INDEX IF NOT EXISTS idx_tickets_offer_id ON tickets(offer_id)")
    cursor.execute("CREATE INDEX IF NOT EXISTS idx_tickets_user_id ON tickets(user_id)")

    conn.commit()
    logger.info("All tables created successfully")


def initialize_database(database_path: Optional[str] = None) -> None:
    """
    Initialize the database with all required tables.

    This function is called during FastAPI startup.

    Args:
        database_path: Override for settings.database_path
    """
    db_path = Path(database_path or settings.database_path)

    logger.info(f"Initializing database at: {db_path}")

    # Create database directory if it doesn't exist
    db_path.parent.mkdir(parents=True, exist_ok=True)

    conn = sqlite3.connect(db_path)
    try:
        create_tables(conn)
        logger.info(f"Database initialized successfully at {db_path}")
    finally:
        conn.close()


# ============================================================================
# SQLAlchemy Async Session Setup for FastAPI
# ============================================================================

def build_engine(database_path: str) -> AsyncEngine:
    """
    Create an async engine for the given SQLite file.

    Each pooled connection gets foreign keys enforced and a busy timeout,
    so concurrent conditional updates wait for each other instead of failing.
    """
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{database_path}",
        echo=False,
        connect_args={
            "timeout": 30,  # 30 second timeout for lock acquisition
            "check_same_thread": False
        },
        pool_pre_ping=True,
    )

    @event.listens_for(engine.sync_engine, "connect")
    def _set_sqlite_pragmas(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.execute("PRAGMA busy_timeout=30000")
        cursor.close()

    return engine


def build_sessionmaker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory; objects stay usable after commit."""
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False
    )


engine = build_engine(settings.database_path)
AsyncSessionLocal = build_sessionmaker(engine)


async def get_async_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Dependency for getting async database sessions in FastAPI.

    Usage:
        @app.get("/endpoint")
        async def endpoint(db: AsyncSession = Depends(get_async_session)):
            ...
    """
    async with AsyncSessionLocal() as session:
        yield session


# Alias for FastAPI Depends
get_db = get_async_session


def main():
    """CLI entry point for initializing database."""
    logging.basicConfig(level=logging.INFO)
    initialize_database()


if __name__ == "__main__":
    main()

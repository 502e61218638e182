"""
SQLAlchemy ORM Models for JetShare

Defines database models matching the schema in init_db.py.
Status columns are guarded by check constraints so an out-of-enum value is
rejected at the store boundary.
"""
from datetime import datetime
from sqlalchemy import (
    Column, String, Integer, DateTime, ForeignKey, CheckConstraint, UniqueConstraint
)
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class ProfileModel(Base):
    """
    ORM model for profiles table.

    Minimal user record referenced by offers, transactions and tickets.
    """
    __tablename__ = "profiles"

    id = Column(String, primary_key=True)
    email = Column(String)
    first_name = Column(String)
    last_name = Column(String)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)


class OfferModel(Base):
    """
    ORM model for offers table.

    One shareable flight-cost listing. Amounts are integer cents.
    """
    __tablename__ = "offers"

    id = Column(String, primary_key=True)
    user_id = Column(String, ForeignKey("profiles.id"), nullable=False, index=True)
    flight_date = Column(DateTime, nullable=False, index=True)
    departure_location = Column(String, nullable=False)
    arrival_location = Column(String, nullable=False)
    aircraft_model = Column(String)
    total_seats = Column(Integer)
    available_seats = Column(Integer)
    total_flight_cost_cents = Column(Integer, nullable=False)
    requested_share_amount_cents = Column(Integer, nullable=False)
    status = Column(String, nullable=False, default="open", index=True)
    matched_user_id = Column(String, ForeignKey("profiles.id"), index=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        CheckConstraint(
            "status IN ('open', 'accepted', 'paid', 'completed', 'failed', 'cancelled')",
            name="offer_status_check"
        ),
        CheckConstraint("total_flight_cost_cents > 0", name="offer_total_cost_check"),
        CheckConstraint(
            "requested_share_amount_cents > 0 AND requested_share_amount_cents <= total_flight_cost_cents",
            name="offer_share_amount_check"
        ),
        CheckConstraint(
            "matched_user_id IS NULL OR matched_user_id <> user_id",
            name="offer_matched_user_check"
        ),
    )


class TransactionModel(Base):
    """
    ORM model for transactions table.

    One payment event tied to an offer, correlated to the provider by
    transaction_reference.
    """
    __tablename__ = "transactions"

    id = Column(String, primary_key=True)
    offer_id = Column(String, ForeignKey("offers.id"), nullable=False, index=True)
    payer_user_id = Column(String, ForeignKey("profiles.id"), nullable=False, index=True)
    recipient_user_id = Column(String, ForeignKey("profiles.id"), nullable=False, index=True)
    amount_cents = Column(Integer, nullable=False)
    handling_fee_cents = Column(Integer, nullable=False, default=0)
    currency = Column(String, nullable=False, default="USD")
    payment_method = Column(String, nullable=False)
    payment_status = Column(String, nullable=False, default="pending", index=True)
    transaction_reference = Column(String, nullable=False, unique=True)
    transaction_date = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)

    __table_args__ = (
        CheckConstraint("payment_method IN ('card', 'crypto')", name="payment_method_check"),
        CheckConstraint("payment_status IN ('pending', 'completed', 'failed')", name="payment_status_check"),
        CheckConstraint("amount_cents > 0", name="transaction_amount_check"),
    )


class TicketModel(Base):
    """
    ORM model for tickets table.

    Boarding credential for one participant of a completed offer.
    """
    __tablename__ = "tickets"

    id = Column(String, primary_key=True)
    offer_id = Column(String, ForeignKey("offers.id"), nullable=False, index=True)
    user_id = Column(String, ForeignKey("profiles.id"), nullable=False, index=True)
    ticket_code = Column(String, nullable=False, unique=True)
    passenger_name = Column(String)
    seat_number = Column(String, nullable=False)
    boarding_time = Column(DateTime, nullable=False)
    gate = Column(String, nullable=False)
    status = Column(String, nullable=False, default="active")
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint("offer_id", "user_id", name="ticket_offer_holder_unique"),
        CheckConstraint("status IN ('active', 'used', 'void')", name="ticket_status_check"),
    )

"""FIHolding model - an immutable position snapshot inside a linked account."""

from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import JSON, Column, Date, DateTime, ForeignKey, Numeric, String
from sqlalchemy.orm import relationship

from database import Base
from models.utils import generate_uuid


class FIHolding(Base):
    """A holding as of one date.

    ``idempotency_key`` is globally unique and is the only guard against
    storing the same fact twice. A later snapshot of the same instrument
    hashes to a new key, so history accumulates instead of being overwritten.
    """

    __tablename__ = "fi_holdings"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    account_id = Column(String(36), ForeignKey("fi_accounts.id", ondelete="CASCADE"), nullable=False, index=True)
    batch_id = Column(String, nullable=True)  # session id that first reported it
    fi_type = Column(String, nullable=False)
    instrument_name = Column(String, nullable=False)
    instrument_id = Column(String, nullable=True)
    quantity = Column(Numeric(20, 6), nullable=False, default=Decimal("0"))
    average_price = Column(Numeric(20, 6), nullable=False, default=Decimal("0"))
    current_value = Column(Numeric(20, 2), nullable=False, default=Decimal("0"))
    invested_amount = Column(Numeric(20, 2), nullable=False, default=Decimal("0"))
    holding_details = Column(JSON, nullable=True)
    as_of_date = Column(Date, nullable=False)
    idempotency_key = Column(String(64), nullable=False, unique=True)
    fetched_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))

    # Relationships
    account = relationship("LinkedAccount", back_populates="holdings")

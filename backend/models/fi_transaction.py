"""FITransaction model - one ledger entry for a linked account."""

from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import JSON, Column, Date, DateTime, ForeignKey, Numeric, String, Text
from sqlalchemy.orm import relationship

from database import Base
from models.utils import generate_uuid


class FITransaction(Base):
    """A transaction reported by an FIP, deduplicated by ``idempotency_key``."""

    __tablename__ = "fi_transactions"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    account_id = Column(String(36), ForeignKey("fi_accounts.id", ondelete="CASCADE"), nullable=False, index=True)
    batch_id = Column(String, nullable=True)
    fi_type = Column(String, nullable=False)
    transaction_ref = Column(String, nullable=True)  # institution txn id, when supplied
    transaction_type = Column(String, nullable=False)  # CREDIT, DEBIT, BUY, SELL, ...
    transaction_date = Column(Date, nullable=False)
    amount = Column(Numeric(20, 2), nullable=False, default=Decimal("0"))
    narration = Column(Text, nullable=True)
    reference = Column(String, nullable=True)
    transaction_details = Column(JSON, nullable=True)
    idempotency_key = Column(String(64), nullable=False, unique=True)
    fetched_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))

    # Relationships
    account = relationship("LinkedAccount", back_populates="transactions")

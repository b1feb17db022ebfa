"""LinkedAccount model - an institution account linked through a consent."""

from datetime import datetime, timezone

from sqlalchemy import JSON, Column, DateTime, ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import relationship

from database import Base
from models.utils import generate_uuid


class LinkedAccount(Base):
    """One account at one FIP, created on first ingestion and refreshed after.

    The same external account cannot be linked twice for the same user under
    the same FI category.
    """

    __tablename__ = "fi_accounts"
    __table_args__ = (
        UniqueConstraint(
            "user_id", "account_ref", "fi_type",
            name="uix_fi_account_user_ref_type",
        ),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid)
    user_id = Column(String, nullable=False, index=True)
    consent_id = Column(String(36), ForeignKey("aa_consents.id"), nullable=True, index=True)
    fip_id = Column(String, nullable=False)
    account_ref = Column(String, nullable=False)  # institution-assigned account id
    masked_account_number = Column(String, nullable=True)
    fi_type = Column(String, nullable=False)
    account_type = Column(String, nullable=True)
    account_status = Column(String, nullable=False, default="ACTIVE")  # ACTIVE, INACTIVE, CLOSED
    link_ref_number = Column(String, nullable=True)
    metadata_json = Column(JSON, nullable=True)  # profile/summary/balance, carried opaque
    linked_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))
    last_fetched_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(
        DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    # Relationships
    consent = relationship("Consent", back_populates="linked_accounts")
    holdings = relationship("FIHolding", back_populates="account", cascade="all, delete-orphan")
    transactions = relationship("FITransaction", back_populates="account", cascade="all, delete-orphan")

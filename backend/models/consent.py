"""Consent model - one user's data-sharing grant through an AA provider."""

from datetime import datetime, timezone

from sqlalchemy import JSON, Column, DateTime, Integer, String, Text
from sqlalchemy.orm import relationship

from database import Base
from models.utils import generate_uuid

CONSENT_STATUSES = frozenset({"PENDING", "ACTIVE", "PAUSED", "REVOKED", "EXPIRED", "REJECTED"})
TERMINAL_STATUSES = frozenset({"REVOKED", "EXPIRED", "REJECTED"})


class Consent(Base):
    """A consent request and its lifecycle at the Account Aggregator.

    ``consent_handle`` is issued by the provider at creation and is globally
    unique. ``consent_id`` only exists after the user approves; once assigned
    it is unique and never moves to a different consent.
    """

    __tablename__ = "aa_consents"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    user_id = Column(String, nullable=False, index=True)
    consent_handle = Column(String, nullable=False, unique=True)
    consent_id = Column(String, nullable=True, unique=True)
    fiu_id = Column(String, nullable=True)
    provider_name = Column(String, nullable=False)
    status = Column(String, nullable=False, default="PENDING")  # PENDING, ACTIVE, PAUSED, REVOKED, EXPIRED, REJECTED
    consent_mode = Column(String, nullable=False, default="STORE")
    fetch_type = Column(String, nullable=False, default="PERIODIC")
    fi_types = Column(JSON, nullable=False, default=list)
    purpose = Column(Text, nullable=True)
    consent_start = Column(DateTime, nullable=True)
    consent_expiry = Column(DateTime, nullable=True)
    data_range_from = Column(DateTime, nullable=True)
    data_range_to = Column(DateTime, nullable=True)
    frequency_unit = Column(String, nullable=True)
    frequency_value = Column(Integer, nullable=True)
    data_life_unit = Column(String, nullable=True)
    data_life_value = Column(Integer, nullable=True)
    metadata_json = Column(JSON, nullable=True)
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(
        DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    # Relationships
    linked_accounts = relationship("LinkedAccount", back_populates="consent")
    batches = relationship("FIBatch", back_populates="consent")

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

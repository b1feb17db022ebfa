"""FIBatch model - one data-ready notification and its ingestion state."""

from datetime import datetime, timezone

from sqlalchemy import JSON, Column, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import relationship

from database import Base
from models.utils import generate_uuid


class FIBatch(Base):
    """An ingestion unit keyed by the provider session id.

    Redelivery of the same data-ready webhook updates this row (and bumps
    ``delivery_count``) instead of creating another. Retained for replay.
    """

    __tablename__ = "fi_batches"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    session_id = Column(String, nullable=False, unique=True)
    consent_handle = Column(String, nullable=True, index=True)
    consent_id = Column(String(36), ForeignKey("aa_consents.id"), nullable=True, index=True)
    user_id = Column(String, nullable=True)
    fi_type = Column(String, nullable=True)
    status = Column(String, nullable=False, default="READY")  # READY, PENDING, PROCESSING, COMPLETED, FAILED
    records_fetched = Column(Integer, nullable=False, default=0)
    records_processed = Column(Integer, nullable=False, default=0)
    raw_payload = Column(JSON, nullable=True)
    error_details = Column(JSON, nullable=True)
    delivery_count = Column(Integer, nullable=False, default=1)
    fetch_started_at = Column(DateTime, nullable=True)
    fetch_completed_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(
        DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    # Relationships
    consent = relationship("Consent", back_populates="batches")

"""ConsentEvent model - insert-only audit trail of consent lifecycle events."""

from datetime import datetime, timezone

from sqlalchemy import JSON, Column, DateTime, String

from database import Base
from models.utils import generate_uuid


class ConsentEvent(Base):
    """An immutable record of one observed consent status change.

    Keyed by ``consent_handle`` rather than a foreign key: the first events
    for a consent (and events for handles we have never seen) can be recorded
    before any local ``Consent`` row or provider consent id exists.
    """

    __tablename__ = "aa_consent_events"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    consent_handle = Column(String, nullable=False, index=True)
    event_type = Column(String, nullable=False)  # e.g. "approved", "revoked", "CONSENT_NOT_FOUND"
    event_source = Column(String, nullable=False)  # USER, SYSTEM, WEBHOOK, API
    previous_status = Column(String, nullable=True)
    new_status = Column(String, nullable=True)
    metadata_json = Column(JSON, nullable=True)
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))

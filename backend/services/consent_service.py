"""Consent lifecycle: creation, status polling, revocation and FI requests."""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from config import settings
from integrations.aa_protocol import AAClient, ConsentRequest, ConsentResult
from integrations.exceptions import InvalidConsentRequestError
from integrations.parsing_utils import parse_iso_datetime
from integrations.provider_registry import get_aa_client
from models import Consent, ConsentEvent, FIBatch
from models.consent import CONSENT_STATUSES
from services.fi_store import FIStore

logger = logging.getLogger(__name__)

# Event types derive from the new status alone
EVENT_TYPE_BY_STATUS = {
    "ACTIVE": "approved",
    "REJECTED": "rejected",
    "REVOKED": "revoked",
    "EXPIRED": "expired",
    "PAUSED": "paused",
}
STATUS_UPDATED_EVENT = "status_updated"

__all__ = [
    "ConsentNotFoundError",
    "ConsentService",
    "InvalidConsentRequestError",
    "event_type_for_status",
]


class ConsentNotFoundError(Exception):
    """No consent matches the key (or it belongs to another user)."""

    def __init__(self, key: str):
        self.key = key
        super().__init__(f"Consent not found: {key}")


def event_type_for_status(status: str | None) -> str:
    return EVENT_TYPE_BY_STATUS.get((status or "").upper(), STATUS_UPDATED_EVENT)


class ConsentService:
    """Service owning consent persistence around AA client calls."""

    def __init__(self, client: Optional[AAClient] = None):
        """Initialize with an optional AA client for dependency injection.

        Args:
            client: AA client to use. If None, the configured provider's
                    client is used on first access.
        """
        self._client = client

    @property
    def client(self) -> AAClient:
        if self._client is None:
            self._client = get_aa_client()
        return self._client

    @staticmethod
    def lookup(db: Session, key: str, user_id: str | None = None) -> Consent | None:
        """Find a consent by local id, provider consent id or handle."""
        query = db.query(Consent).filter(
            or_(Consent.id == key, Consent.consent_id == key, Consent.consent_handle == key)
        )
        if user_id is not None:
            query = query.filter(Consent.user_id == user_id)
        return query.first()

    @staticmethod
    def find(db: Session, consent_handle: str | None, consent_id: str | None) -> Consent | None:
        """Resolve a consent by handle first, then by provider consent id."""
        if consent_handle:
            consent = db.query(Consent).filter(Consent.consent_handle == consent_handle).first()
            if consent is not None:
                return consent
        if consent_id:
            return db.query(Consent).filter(Consent.consent_id == consent_id).first()
        return None

    @staticmethod
    def get_owned(db: Session, user_id: str, key: str) -> Consent:
        """Like :meth:`lookup` but raises for unknown or foreign consents."""
        consent = ConsentService.lookup(db, key, user_id)
        if consent is None:
            raise ConsentNotFoundError(key)
        return consent

    @staticmethod
    def list_for_user(db: Session, user_id: str) -> list[Consent]:
        return (
            db.query(Consent)
            .filter(Consent.user_id == user_id)
            .order_by(Consent.created_at.desc())
            .all()
        )

    @staticmethod
    def list_events(db: Session, consent_handle: str) -> list[ConsentEvent]:
        return (
            db.query(ConsentEvent)
            .filter(ConsentEvent.consent_handle == consent_handle)
            .order_by(ConsentEvent.created_at)
            .all()
        )

    @staticmethod
    def apply_status(
        db: Session,
        consent: Consent,
        status: str | None,
        consent_id: str | None = None,
        consent_start: datetime | None = None,
        consent_expiry: datetime | None = None,
    ) -> bool:
        """Apply provider-reported state to a consent.

        The provider consent id is only assigned when the consent has none
        and no other consent already holds it. REVOKED, EXPIRED and REJECTED
        consents are final: nothing reported afterwards changes them, and
        an unrecognised status leaves the consent untouched.

        Returns:
            True if the status changed.
        """
        if consent.is_terminal:
            logger.warning(
                "Ignoring status %s for %s: consent is already %s",
                status, consent.consent_handle, consent.status,
            )
            return False
        if status and status.upper() not in CONSENT_STATUSES:
            logger.warning("Ignoring unknown status %r for %s", status, consent.consent_handle)
            return False

        changed = False
        if status and status.upper() != consent.status:
            consent.status = status.upper()
            changed = True
        if consent_start is not None:
            consent.consent_start = consent_start
        if consent_expiry is not None:
            consent.consent_expiry = consent_expiry

        if consent_id and consent_id != consent.consent_id:
            if consent.consent_id:
                logger.warning(
                    "Ignoring consent id %s for %s: already assigned %s",
                    consent_id, consent.consent_handle, consent.consent_id,
                )
            elif db.query(Consent.id).filter(Consent.consent_id == consent_id).first():
                logger.warning(
                    "Ignoring consent id %s for %s: held by another consent",
                    consent_id, consent.consent_handle,
                )
            else:
                consent.consent_id = consent_id
        db.flush()
        return changed

    def initiate(self, db: Session, user_id: str, request: ConsentRequest) -> tuple[Consent, ConsentResult]:
        """Create a consent at the provider and persist it as PENDING.

        Raises:
            InvalidConsentRequestError, InvalidCustomerError, ProviderError:
                Propagated from the client; nothing is persisted.
        """
        result = self.client.initiate_consent(request)

        consent = Consent(
            user_id=user_id,
            consent_handle=result.consent_handle,
            consent_id=result.consent_id,
            fiu_id=settings.AA_FIU_ID or None,
            provider_name=self.client.provider_name,
            status="PENDING",
            consent_mode=request.consent_mode,
            fetch_type=request.fetch_type,
            fi_types=[t.upper() for t in request.fi_types],
            purpose=request.purpose,
            consent_start=result.consent_start,
            consent_expiry=result.consent_expiry,
            data_range_from=request.data_range_from,
            data_range_to=request.data_range_to,
            frequency_unit=request.frequency_unit,
            frequency_value=request.frequency_value,
            data_life_unit=request.data_life_unit,
            data_life_value=request.data_life_value,
            metadata_json={"approval_url": result.approval_url, "provider_response": result.raw_data},
        )
        db.add(consent)
        db.flush()
        FIStore.record_event(
            db, consent.consent_handle, "CONSENT_CREATED", "USER",
            previous_status=None, new_status="PENDING",
            metadata={"fi_types": consent.fi_types},
        )
        logger.info("Consent %s created for user %s", consent.consent_handle, user_id)
        return consent, result

    def refresh_status(self, db: Session, user_id: str, key: str) -> Consent:
        """Poll the provider for status, for when a webhook may have been missed."""
        consent = self.get_owned(db, user_id, key)
        result = self.client.get_consent_status(consent.consent_handle)

        previous = consent.status
        changed = self.apply_status(
            db, consent, result.status, result.consent_id, result.consent_start, result.consent_expiry
        )
        FIStore.record_event(
            db, consent.consent_handle, "status_polled", "API",
            previous_status=previous, new_status=consent.status,
            metadata={"changed": changed},
        )
        return consent

    def revoke(self, db: Session, user_id: str, key: str) -> Consent:
        """Revoke a consent. Consents already in a final state are returned unchanged."""
        consent = self.get_owned(db, user_id, key)
        if consent.is_terminal:
            logger.info("Consent %s already %s", consent.consent_handle, consent.status)
            return consent

        # A consent the user never approved has no provider id to revoke
        if consent.consent_id:
            self.client.revoke_consent(consent.consent_id)

        previous = consent.status
        consent.status = "REVOKED"
        db.flush()
        FIStore.record_event(
            db, consent.consent_handle, event_type_for_status("REVOKED"), "USER",
            previous_status=previous, new_status="REVOKED",
        )
        logger.info("Consent %s revoked", consent.consent_handle)
        return consent

    def request_fi_data(
        self,
        db: Session,
        user_id: str,
        key: str,
        data_range_from: datetime | None = None,
        data_range_to: datetime | None = None,
    ) -> FIBatch:
        """Start an FI data session and record a PENDING batch for it."""
        consent = self.get_owned(db, user_id, key)
        if consent.status != "ACTIVE" or not consent.consent_id:
            raise InvalidConsentRequestError(
                f"Consent must be ACTIVE to request data (status {consent.status})"
            )

        # Stored datetimes come back naive from SQLite
        range_from = parse_iso_datetime(data_range_from or consent.data_range_from)
        range_to = parse_iso_datetime(data_range_to or consent.data_range_to)
        if range_from is None or range_to is None or range_from >= range_to:
            raise InvalidConsentRequestError("A valid data range is required")

        result = self.client.request_fi_data(consent.consent_id, range_from, range_to)
        batch, _ = FIStore.upsert_batch(
            db,
            result.session_id,
            status="PENDING",
            consent_handle=consent.consent_handle,
            consent_id=consent.id,
            user_id=consent.user_id,
            count_delivery=False,
        )
        FIStore.record_event(
            db, consent.consent_handle, "fi_data_requested", "API",
            previous_status=consent.status, new_status=consent.status,
            metadata={"session_id": result.session_id},
        )
        return batch

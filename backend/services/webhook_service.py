"""Handling for verified AA webhook notifications.

Both handlers assume the signature has already been checked. A consent
notification for an unknown consent is recorded and reported, never raised;
a data-ready notification always produces a batch, whether or not its
consent is known locally.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.orm import Session

from integrations.parsing_utils import parse_iso_datetime
from models import Consent, FIBatch
from models.consent import CONSENT_STATUSES
from services.consent_service import STATUS_UPDATED_EVENT, ConsentService, event_type_for_status
from services.fi_parser import has_fi_data
from services.fi_store import FIStore, UpsertOutcome
from services.ingestion_service import IngestionResult, IngestionService

logger = logging.getLogger(__name__)

CONSENT_NOT_FOUND_EVENT = "CONSENT_NOT_FOUND"
FI_DATA_READY_EVENT = "fi_data_ready"


class MissingIdentifierError(ValueError):
    """A notification lacks the identifier needed to process it."""


@dataclass
class ConsentNotificationResult:
    identifier: str
    consent: Consent | None = None
    event_type: str | None = None
    changed: bool = False

    @property
    def found(self) -> bool:
        return self.consent is not None


@dataclass
class FIDataNotificationResult:
    batch: FIBatch
    outcome: UpsertOutcome
    consent: Consent | None = None
    ingestion: IngestionResult | None = None


class WebhookService:
    """Apply verified webhook payloads to consents and batches."""

    def __init__(self, ingestion_service: Optional[IngestionService] = None):
        self.ingestion = ingestion_service or IngestionService()

    def handle_consent_notification(self, db: Session, payload: dict) -> ConsentNotificationResult:
        """Update a consent from a consent-status notification.

        Every delivery appends an event, including repeats of a status the
        consent already has.

        Raises:
            MissingIdentifierError: Neither ``consentHandle`` nor ``consentId``.
        """
        handle = payload.get("consentHandle")
        consent_id = payload.get("consentId")
        identifier = handle or consent_id
        if not identifier:
            raise MissingIdentifierError("consentHandle or consentId is required")

        status = payload.get("status")
        status = str(status).upper() if status else None
        consent = ConsentService.find(db, handle, consent_id)
        if consent is None:
            logger.warning("Consent notification for unknown consent %s (status=%s)", identifier, status)
            FIStore.record_event(
                db, identifier, CONSENT_NOT_FOUND_EVENT, "WEBHOOK",
                new_status=status,
                metadata=payload,
            )
            db.commit()
            return ConsentNotificationResult(identifier=identifier)

        previous = consent.status
        # Final consents and unrecognised statuses are audited but not applied
        accepted = not consent.is_terminal and (status is None or status in CONSENT_STATUSES)
        changed = ConsentService.apply_status(
            db,
            consent,
            status,
            consent_id=consent_id,
            consent_start=parse_iso_datetime(payload.get("consentStart")),
            consent_expiry=parse_iso_datetime(payload.get("consentExpiry")),
        )
        event_type = event_type_for_status(status) if accepted else STATUS_UPDATED_EVENT
        FIStore.record_event(
            db, consent.consent_handle, event_type, "WEBHOOK",
            previous_status=previous, new_status=consent.status,
            metadata=payload,
        )
        db.commit()

        if changed:
            logger.info("Consent %s: %s -> %s", consent.consent_handle, previous, consent.status)
        elif not accepted:
            logger.info("Consent %s: kept %s, reported %s", consent.consent_handle, consent.status, status)
        else:
            logger.info("Consent %s: repeated %s notification", consent.consent_handle, consent.status)
        return ConsentNotificationResult(
            identifier=identifier, consent=consent, event_type=event_type, changed=changed
        )

    def handle_fi_data_notification(self, db: Session, payload: dict) -> FIDataNotificationResult:
        """Record a data-ready notification as a batch and ingest it if possible.

        The batch is committed before ingestion starts, so a failed
        ingestion leaves a READY or FAILED batch that can be replayed.

        Raises:
            MissingIdentifierError: No ``sessionId``.
        """
        session_id = payload.get("sessionId")
        if not session_id:
            raise MissingIdentifierError("sessionId is required")

        consent = ConsentService.find(db, payload.get("consentHandle"), payload.get("consentId"))
        if consent is None and (payload.get("consentHandle") or payload.get("consentId")):
            logger.info("Data-ready notification %s references an unknown consent", session_id)

        batch, outcome = FIStore.upsert_batch(
            db,
            session_id,
            status="READY",
            raw_payload=payload,
            consent_handle=consent.consent_handle if consent else payload.get("consentHandle"),
            consent_id=consent.id if consent else None,
            user_id=consent.user_id if consent else None,
            fi_type=payload.get("fiType"),
        )
        if consent is not None:
            FIStore.record_event(
                db, consent.consent_handle, FI_DATA_READY_EVENT, "WEBHOOK",
                previous_status=consent.status, new_status=consent.status,
                metadata={
                    "session_id": session_id,
                    "status": payload.get("status"),
                    "delivery_count": batch.delivery_count,
                },
            )
        db.commit()

        result = FIDataNotificationResult(batch=batch, outcome=outcome, consent=consent)
        if not has_fi_data(payload):
            logger.info("Batch %s stored as READY, no FI data in notification", session_id)
            return result
        if not batch.user_id:
            logger.info("Batch %s stored as READY, owning user not known yet", session_id)
            return result

        try:
            with db.begin_nested():
                result.ingestion = self.ingestion.ingest_payload(
                    db, batch, payload, batch.user_id, batch.consent_id
                )
        except Exception as e:
            # Safety net: the batch stays recorded for replay
            logger.error("Inline ingestion failed for batch %s: %s", session_id, e, exc_info=True)
            batch.status = "FAILED"
            batch.error_details = [f"Ingestion failed: {type(e).__name__}"]
        db.commit()
        return result

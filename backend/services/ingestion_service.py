"""FI batch ingestion: parse a payload and upsert its records exactly once."""

import logging
from dataclasses import asdict, dataclass, field
from datetime import date, datetime, timezone
from typing import Optional

from sqlalchemy.orm import Session

from integrations.aa_protocol import AAClient
from integrations.parsing_utils import get_path, parse_date
from integrations.provider_registry import get_aa_client
from models import FIBatch
from services.consent_service import ConsentService
from services.fi_parser import has_fi_data, parse_fi_payload
from services.fi_store import FIStore, UpsertOutcome

logger = logging.getLogger(__name__)


class BatchNotFoundError(Exception):
    """No batch exists for the session id."""

    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__(f"Batch not found: {session_id}")


@dataclass
class IngestionResult:
    """Counts and errors for one ingestion run.

    ``*_attempted`` counts every record found in the payload; ``*_processed``
    counts those that parsed and were stored or matched an existing key.
    """

    session_id: str
    batch_id: str | None = None
    accounts_attempted: int = 0
    accounts_processed: int = 0
    holdings_attempted: int = 0
    holdings_processed: int = 0
    holdings_inserted: int = 0
    holdings_duplicate: int = 0
    transactions_attempted: int = 0
    transactions_processed: int = 0
    transactions_inserted: int = 0
    transactions_duplicate: int = 0
    errors: list[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.errors

    def to_dict(self) -> dict:
        data = asdict(self)
        data["success"] = self.success
        return data


def default_as_of_date(batch: FIBatch, payload: dict) -> date:
    """Date for records without their own, stable across redeliveries.

    Uses the end of the reported FI data range when present, else the day
    the batch was first recorded.
    """
    range_to = parse_date(get_path(payload, "fiDataRange.to") or get_path(payload, "FIDataRange.to"))
    if range_to is not None:
        return range_to
    if batch.created_at is not None:
        return batch.created_at.date()
    return datetime.now(timezone.utc).date()


class IngestionService:
    """Runs the Batch Ingestor against stored or freshly delivered batches."""

    def __init__(self, client: Optional[AAClient] = None):
        self._client = client

    @property
    def client(self) -> AAClient:
        if self._client is None:
            self._client = get_aa_client()
        return self._client

    def ingest_payload(
        self,
        db: Session,
        batch: FIBatch,
        payload: dict,
        user_id: str,
        consent_id: str | None = None,
    ) -> IngestionResult:
        """Parse ``payload`` and upsert its accounts, holdings and transactions.

        Parse failures are collected on the result; they never abort the
        batch. The batch row is updated with status, counts and errors.
        """
        result = IngestionResult(session_id=batch.session_id, batch_id=batch.id)
        batch.status = "PROCESSING"
        batch.fetch_started_at = datetime.now(timezone.utc)
        db.flush()

        parsed = parse_fi_payload(payload, default_as_of_date(batch, payload))
        result.accounts_attempted = parsed.accounts_attempted
        result.errors.extend(str(e) for e in parsed.errors)
        if parsed.accounts_attempted == 0:
            result.errors.append("No account data found in FI payload")

        for account in parsed.accounts:
            linked = FIStore.upsert_account(db, user_id, consent_id, account)
            result.accounts_processed += 1
            result.holdings_attempted += account.holdings_attempted
            result.transactions_attempted += account.transactions_attempted

            for holding in account.holdings:
                outcome = FIStore.upsert_holding(db, linked, holding, batch.session_id)
                result.holdings_processed += 1
                if outcome == UpsertOutcome.INSERTED:
                    result.holdings_inserted += 1
                else:
                    result.holdings_duplicate += 1

            for txn in account.transactions:
                outcome = FIStore.upsert_transaction(db, linked, txn, batch.session_id)
                result.transactions_processed += 1
                if outcome == UpsertOutcome.INSERTED:
                    result.transactions_inserted += 1
                else:
                    result.transactions_duplicate += 1

        batch.records_fetched = result.holdings_attempted + result.transactions_attempted
        batch.records_processed = result.holdings_processed + result.transactions_processed
        batch.status = "COMPLETED" if result.success else "FAILED"
        batch.error_details = result.errors or None
        batch.fetch_completed_at = datetime.now(timezone.utc)
        if parsed.accounts and not batch.fi_type:
            batch.fi_type = parsed.accounts[0].fi_type
        db.flush()

        logger.info(
            "Batch %s ingested: %d/%d accounts, holdings %d new %d duplicate, "
            "transactions %d new %d duplicate, %d errors",
            batch.session_id,
            result.accounts_processed, result.accounts_attempted,
            result.holdings_inserted, result.holdings_duplicate,
            result.transactions_inserted, result.transactions_duplicate,
            len(result.errors),
        )
        return result

    @staticmethod
    def _attach_consent(db: Session, batch: FIBatch) -> None:
        """Link a batch that arrived before its consent was known locally."""
        payload = batch.raw_payload or {}
        consent = ConsentService.find(db, batch.consent_handle, payload.get("consentId"))
        if consent is None:
            return
        batch.consent = consent
        batch.consent_handle = consent.consent_handle
        batch.user_id = batch.user_id or consent.user_id
        db.flush()
        logger.info("Batch %s linked to consent %s", batch.session_id, consent.consent_handle)

    def ingest_batch(self, db: Session, session_id: str) -> IngestionResult:
        """Re-run ingestion for a stored batch (replay).

        When the stored payload has no FI records, they are fetched from the
        provider first and kept on the batch for later replays.

        Raises:
            BatchNotFoundError: Unknown session id.
            ValueError: The batch has no owning user to attach accounts to.
        """
        batch = FIStore.get_batch(db, session_id)
        if batch is None:
            raise BatchNotFoundError(session_id)

        if batch.consent is None:
            self._attach_consent(db, batch)
        user_id = batch.user_id or (batch.consent.user_id if batch.consent else None)
        if not user_id:
            raise ValueError(f"Batch {session_id} has no owning user")

        payload = batch.raw_payload or {}
        if not has_fi_data(payload):
            fetched = self.client.fetch_fi_data(session_id)
            payload = {**payload, **fetched}
            batch.raw_payload = payload
            db.flush()

        return self.ingest_payload(db, batch, payload, user_id, batch.consent_id)

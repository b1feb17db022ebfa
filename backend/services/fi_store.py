"""Upsert operations for consents' events, FI accounts, holdings and batches.

Every write here is keyed on a unique constraint. Inserts run inside a
SAVEPOINT so a concurrent writer that wins the race only rolls back this
one record; the losing call reports a duplicate instead of failing.
"""

import logging
from datetime import datetime, timezone
from enum import Enum

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from models import ConsentEvent, FIBatch, FIHolding, FITransaction, LinkedAccount
from services.fi_parser import ParsedAccount, ParsedHolding, ParsedTransaction
from services.idempotency import holding_key, transaction_key

logger = logging.getLogger(__name__)


class UpsertOutcome(str, Enum):
    """Result of an idempotent insert."""

    INSERTED = "inserted"
    DUPLICATE = "duplicate"


class FIStore:
    """Storage operations for the FI ingestion pipeline."""

    @staticmethod
    def record_event(
        db: Session,
        consent_handle: str,
        event_type: str,
        event_source: str,
        previous_status: str | None = None,
        new_status: str | None = None,
        metadata: dict | None = None,
    ) -> ConsentEvent:
        """Append an audit event. Events are never updated."""
        event = ConsentEvent(
            consent_handle=consent_handle,
            event_type=event_type,
            event_source=event_source,
            previous_status=previous_status,
            new_status=new_status,
            metadata_json=metadata,
        )
        db.add(event)
        db.flush()
        return event

    @staticmethod
    def upsert_account(
        db: Session,
        user_id: str,
        consent_id: str | None,
        parsed: ParsedAccount,
    ) -> LinkedAccount:
        """Create the linked account, or refresh its mutable fields."""
        now = datetime.now(timezone.utc)
        account = FIStore._find_account(db, user_id, parsed)
        if account is None:
            account = LinkedAccount(
                user_id=user_id,
                account_ref=parsed.account_ref,
                fi_type=parsed.fi_type,
                fip_id=parsed.fip_id,
                linked_at=now,
            )
            FIStore._apply_account_fields(account, consent_id, parsed, now)
            try:
                with db.begin_nested():
                    db.add(account)
            except IntegrityError:
                account = FIStore._find_account(db, user_id, parsed)
                logger.info("Linked account created concurrently: %s", parsed.account_ref)
            else:
                logger.info("Linked account created: %s (%s)", parsed.account_ref, parsed.fi_type)
                return account

        FIStore._apply_account_fields(account, consent_id, parsed, now)
        db.flush()
        return account

    @staticmethod
    def _find_account(db: Session, user_id: str, parsed: ParsedAccount) -> LinkedAccount | None:
        return db.query(LinkedAccount).filter(
            LinkedAccount.user_id == user_id,
            LinkedAccount.account_ref == parsed.account_ref,
            LinkedAccount.fi_type == parsed.fi_type,
        ).first()

    @staticmethod
    def _apply_account_fields(
        account: LinkedAccount, consent_id: str | None, parsed: ParsedAccount, now: datetime
    ) -> None:
        if consent_id:
            account.consent_id = consent_id
        if parsed.fip_id:
            account.fip_id = parsed.fip_id
        account.masked_account_number = parsed.masked_account_number
        account.account_type = parsed.account_type
        account.account_status = parsed.account_status
        account.link_ref_number = parsed.link_ref_number
        account.metadata_json = parsed.metadata
        account.last_fetched_at = now

    @staticmethod
    def _insert_once(db: Session, model, record, kind: str) -> UpsertOutcome:
        exists = db.query(model.id).filter(model.idempotency_key == record.idempotency_key).first()
        if exists is not None:
            logger.debug("Duplicate %s suppressed (key=%s)", kind, record.idempotency_key[:16])
            return UpsertOutcome.DUPLICATE
        try:
            with db.begin_nested():
                db.add(record)
        except IntegrityError:
            logger.debug("Duplicate %s suppressed on insert (key=%s)", kind, record.idempotency_key[:16])
            return UpsertOutcome.DUPLICATE
        return UpsertOutcome.INSERTED

    @staticmethod
    def upsert_holding(
        db: Session,
        account: LinkedAccount,
        parsed: ParsedHolding,
        batch_id: str | None = None,
    ) -> UpsertOutcome:
        """Store a holding unless its idempotency key already exists."""
        key = holding_key(account.id, parsed.instrument_id, parsed.as_of_date, parsed.details)
        holding = FIHolding(
            account_id=account.id,
            batch_id=batch_id,
            fi_type=account.fi_type,
            instrument_name=parsed.instrument_name,
            instrument_id=parsed.instrument_id,
            quantity=parsed.quantity,
            average_price=parsed.average_price,
            current_value=parsed.current_value,
            invested_amount=parsed.invested_amount,
            holding_details=parsed.details,
            as_of_date=parsed.as_of_date,
            idempotency_key=key,
        )
        return FIStore._insert_once(db, FIHolding, holding, "holding")

    @staticmethod
    def upsert_transaction(
        db: Session,
        account: LinkedAccount,
        parsed: ParsedTransaction,
        batch_id: str | None = None,
    ) -> UpsertOutcome:
        """Store a transaction unless its idempotency key already exists."""
        key = transaction_key(
            account.id, parsed.transaction_ref, parsed.transaction_date, parsed.amount, parsed.details
        )
        txn = FITransaction(
            account_id=account.id,
            batch_id=batch_id,
            fi_type=account.fi_type,
            transaction_ref=parsed.transaction_ref,
            transaction_type=parsed.transaction_type,
            transaction_date=parsed.transaction_date,
            amount=parsed.amount,
            narration=parsed.narration,
            reference=parsed.reference,
            transaction_details=parsed.details,
            idempotency_key=key,
        )
        return FIStore._insert_once(db, FITransaction, txn, "transaction")

    @staticmethod
    def get_batch(db: Session, session_id: str) -> FIBatch | None:
        return db.query(FIBatch).filter(FIBatch.session_id == session_id).first()

    @staticmethod
    def upsert_batch(
        db: Session,
        session_id: str,
        status: str = "READY",
        raw_payload: dict | None = None,
        consent_handle: str | None = None,
        consent_id: str | None = None,
        user_id: str | None = None,
        fi_type: str | None = None,
        count_delivery: bool = True,
    ) -> tuple[FIBatch, UpsertOutcome]:
        """Create the batch for a session, or record another delivery of it.

        A redelivery refreshes status and payload and bumps
        ``delivery_count``; it never creates a second row. Consent and user
        references are only filled in, never cleared.
        """
        batch = FIStore.get_batch(db, session_id)
        if batch is None:
            batch = FIBatch(
                session_id=session_id,
                status=status,
                raw_payload=raw_payload,
                consent_handle=consent_handle,
                consent_id=consent_id,
                user_id=user_id,
                fi_type=fi_type,
                delivery_count=1 if count_delivery else 0,
            )
            try:
                with db.begin_nested():
                    db.add(batch)
            except IntegrityError:
                batch = FIStore.get_batch(db, session_id)
                logger.info("Batch %s created concurrently, treating as redelivery", session_id)
            else:
                logger.info("Batch created for session %s", session_id)
                return batch, UpsertOutcome.INSERTED

        if count_delivery:
            batch.delivery_count = (batch.delivery_count or 0) + 1
        batch.status = status
        if raw_payload is not None:
            batch.raw_payload = raw_payload
        if consent_handle and not batch.consent_handle:
            batch.consent_handle = consent_handle
        if consent_id and not batch.consent_id:
            batch.consent_id = consent_id
        if user_id and not batch.user_id:
            batch.user_id = user_id
        if fi_type and not batch.fi_type:
            batch.fi_type = fi_type
        db.flush()
        logger.info("Batch %s redelivered (delivery %d)", session_id, batch.delivery_count)
        return batch, UpsertOutcome.DUPLICATE

"""Tests for FIStore upserts."""

from datetime import date
from decimal import Decimal
from unittest.mock import patch

from sqlalchemy.orm import Query

from models import ConsentEvent, FIBatch, FIHolding, FITransaction, LinkedAccount
from services.fi_parser import ParsedAccount, ParsedHolding, ParsedTransaction
from services.fi_store import FIStore, UpsertOutcome
from tests.fixtures import TEST_USER_ID


def _parsed_account(**overrides) -> ParsedAccount:
    values = dict(
        fip_id="CAMS",
        account_ref="MF-XXXX5678",
        masked_account_number="MF-XXXX5678",
        fi_type="MUTUAL_FUNDS",
        account_type="MUTUAL_FUND",
    )
    values.update(overrides)
    return ParsedAccount(**values)


def _parsed_holding(**overrides) -> ParsedHolding:
    values = dict(
        instrument_name="Index Fund",
        instrument_id="INF123",
        quantity=Decimal("10.5"),
        average_price=Decimal("142.85"),
        current_value=Decimal("1500"),
        invested_amount=Decimal("1200"),
        as_of_date=date(2024, 1, 15),
        details={"schemeName": "Index Fund", "units": "10.5"},
    )
    values.update(overrides)
    return ParsedHolding(**values)


def _parsed_transaction(**overrides) -> ParsedTransaction:
    values = dict(
        transaction_ref="T1",
        transaction_type="CREDIT",
        transaction_date=date(2024, 1, 15),
        amount=Decimal("50000"),
        narration="Salary",
        reference="T1",
        details={"txnId": "T1"},
    )
    values.update(overrides)
    return ParsedTransaction(**values)


class TestRecordEvent:
    def test_appends_event(self, db):
        event = FIStore.record_event(db, "CH_1", "approved", "WEBHOOK", "PENDING", "ACTIVE", {"a": 1})
        db.commit()
        stored = db.query(ConsentEvent).one()
        assert stored.id == event.id
        assert stored.previous_status == "PENDING"
        assert stored.new_status == "ACTIVE"
        assert stored.metadata_json == {"a": 1}

    def test_event_for_unknown_handle(self, db):
        """Events are keyed by handle, so no consent row is needed."""
        FIStore.record_event(db, "CH_UNKNOWN", "CONSENT_NOT_FOUND", "WEBHOOK")
        db.commit()
        assert db.query(ConsentEvent).filter_by(consent_handle="CH_UNKNOWN").count() == 1


class TestUpsertAccount:
    def test_creates_account(self, db, active_consent):
        account = FIStore.upsert_account(db, TEST_USER_ID, active_consent.id, _parsed_account())
        db.commit()
        assert account.id is not None
        assert account.consent_id == active_consent.id
        assert account.last_fetched_at is not None
        assert db.query(LinkedAccount).count() == 1

    def test_second_call_updates_same_row(self, db, active_consent):
        first = FIStore.upsert_account(db, TEST_USER_ID, active_consent.id, _parsed_account())
        second = FIStore.upsert_account(
            db, TEST_USER_ID, None, _parsed_account(account_status="CLOSED", balance={"amount": "1"})
        )
        db.commit()
        assert first.id == second.id
        assert second.account_status == "CLOSED"
        assert second.consent_id == active_consent.id
        assert second.metadata_json["balance"] == {"amount": "1"}
        assert db.query(LinkedAccount).count() == 1

    def test_same_ref_different_category_is_separate(self, db):
        FIStore.upsert_account(db, TEST_USER_ID, None, _parsed_account())
        FIStore.upsert_account(db, TEST_USER_ID, None, _parsed_account(fi_type="SIP"))
        db.commit()
        assert db.query(LinkedAccount).count() == 2


class TestUpsertHolding:
    def test_insert_then_duplicate(self, db, linked_account):
        assert FIStore.upsert_holding(db, linked_account, _parsed_holding(), "S1") == UpsertOutcome.INSERTED
        assert FIStore.upsert_holding(db, linked_account, _parsed_holding(), "S2") == UpsertOutcome.DUPLICATE
        db.commit()
        holding = db.query(FIHolding).one()
        assert holding.batch_id == "S1"
        assert holding.fi_type == "MUTUAL_FUNDS"
        assert holding.quantity == Decimal("10.5")

    def test_new_snapshot_date_accumulates(self, db, linked_account):
        FIStore.upsert_holding(db, linked_account, _parsed_holding(), "S1")
        outcome = FIStore.upsert_holding(db, linked_account, _parsed_holding(as_of_date=date(2024, 2, 15)), "S2")
        db.commit()
        assert outcome == UpsertOutcome.INSERTED
        assert db.query(FIHolding).count() == 2

    def test_duplicate_key_race_reports_duplicate(self, db, linked_account):
        """An insert that loses on the unique constraint is a duplicate, not an error."""
        FIStore.upsert_holding(db, linked_account, _parsed_holding(), "S1")
        existing = db.query(FIHolding).one()
        racing = FIHolding(
            account_id=linked_account.id,
            fi_type="MUTUAL_FUNDS",
            instrument_name="x",
            as_of_date=date(2024, 1, 15),
            idempotency_key=existing.idempotency_key,
        )
        # Pre-check misses, as it would for a concurrent writer
        with patch.object(Query, "first", return_value=None):
            outcome = FIStore._insert_once(db, FIHolding, racing, "holding")
        assert outcome == UpsertOutcome.DUPLICATE
        db.commit()
        assert db.query(FIHolding).count() == 1


class TestUpsertTransaction:
    def test_insert_then_duplicate(self, db, linked_account):
        assert FIStore.upsert_transaction(db, linked_account, _parsed_transaction()) == UpsertOutcome.INSERTED
        assert FIStore.upsert_transaction(db, linked_account, _parsed_transaction()) == UpsertOutcome.DUPLICATE
        db.commit()
        assert db.query(FITransaction).count() == 1

    def test_missing_ref_distinct_from_given_ref(self, db, linked_account):
        FIStore.upsert_transaction(db, linked_account, _parsed_transaction())
        FIStore.upsert_transaction(db, linked_account, _parsed_transaction(transaction_ref=None))
        db.commit()
        assert db.query(FITransaction).count() == 2


class TestUpsertBatch:
    def test_creates_batch(self, db, active_consent):
        batch, outcome = FIStore.upsert_batch(
            db, "S9", raw_payload={"sessionId": "S9"}, consent_handle="CH_1",
            consent_id=active_consent.id, user_id=TEST_USER_ID, fi_type="DEPOSIT",
        )
        db.commit()
        assert outcome == UpsertOutcome.INSERTED
        assert batch.delivery_count == 1
        assert batch.status == "READY"
        assert batch.consent_id == active_consent.id

    def test_redelivery_updates_same_row(self, db):
        FIStore.upsert_batch(db, "S9", raw_payload={"v": 1})
        batch, outcome = FIStore.upsert_batch(db, "S9", status="READY", raw_payload={"v": 2}, user_id=TEST_USER_ID)
        db.commit()
        assert outcome == UpsertOutcome.DUPLICATE
        assert batch.delivery_count == 2
        assert batch.raw_payload == {"v": 2}
        assert batch.user_id == TEST_USER_ID
        assert db.query(FIBatch).count() == 1

    def test_references_never_cleared_or_replaced(self, db):
        FIStore.upsert_batch(db, "S9", consent_handle="CH_1", user_id=TEST_USER_ID)
        batch, _ = FIStore.upsert_batch(db, "S9", consent_handle="CH_OTHER", user_id="someone-else")
        assert batch.consent_handle == "CH_1"
        assert batch.user_id == TEST_USER_ID

    def test_uncounted_delivery(self, db):
        batch, _ = FIStore.upsert_batch(db, "S9", status="PENDING", count_delivery=False)
        assert batch.delivery_count == 0
        batch, _ = FIStore.upsert_batch(db, "S9", status="READY")
        assert batch.delivery_count == 1

    def test_get_batch(self, db):
        assert FIStore.get_batch(db, "missing") is None
        FIStore.upsert_batch(db, "S9")
        assert FIStore.get_batch(db, "S9").session_id == "S9"

"""Test fixtures and sample data."""
import pytest
from datetime import datetime, timezone

from sqlalchemy.orm import Session

from models import Consent, FIBatch, LinkedAccount

TEST_USER_ID = "user-1"
OTHER_USER_ID = "user-2"


def create_consent(
    db: Session,
    consent_handle: str = "CH_1",
    status: str = "PENDING",
    consent_id: str | None = None,
    user_id: str = TEST_USER_ID,
    fi_types: list[str] | None = None,
) -> Consent:
    """Create a consent row directly, bypassing the provider.

    This is a helper function (not a fixture) for tests that need several
    consents or non-default values.
    """
    consent = Consent(
        user_id=user_id,
        consent_handle=consent_handle,
        consent_id=consent_id,
        provider_name="Fake",
        status=status,
        fi_types=fi_types or ["DEPOSIT", "MUTUAL_FUNDS"],
        purpose="Wealth management service",
        data_range_from=datetime(2023, 1, 1, tzinfo=timezone.utc),
        data_range_to=datetime(2024, 1, 1, tzinfo=timezone.utc),
    )
    db.add(consent)
    db.flush()
    return consent


@pytest.fixture
def consent(db: Session) -> Consent:
    """A PENDING consent for TEST_USER_ID with handle CH_1."""
    consent = create_consent(db)
    db.commit()
    return consent


@pytest.fixture
def active_consent(db: Session) -> Consent:
    """An approved consent (handle CH_1, provider id CID_1)."""
    consent = create_consent(db, status="ACTIVE", consent_id="CID_1")
    db.commit()
    return consent


@pytest.fixture
def linked_account(db: Session, active_consent: Consent) -> LinkedAccount:
    account = LinkedAccount(
        user_id=TEST_USER_ID,
        consent_id=active_consent.id,
        fip_id="CAMS",
        account_ref="MF-XXXX5678",
        masked_account_number="MF-XXXX5678",
        fi_type="MUTUAL_FUNDS",
        account_type="MUTUAL_FUND",
    )
    db.add(account)
    db.commit()
    return account


@pytest.fixture
def ready_batch(db: Session, active_consent: Consent) -> FIBatch:
    """A READY batch for session S1 whose payload has no FI records yet."""
    batch = FIBatch(
        session_id="S1",
        consent_handle=active_consent.consent_handle,
        consent_id=active_consent.id,
        user_id=active_consent.user_id,
        status="READY",
        raw_payload={"sessionId": "S1", "consentHandle": "CH_1", "status": "READY"},
    )
    db.add(batch)
    db.commit()
    return batch

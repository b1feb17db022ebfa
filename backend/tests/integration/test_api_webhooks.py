"""Integration tests for the AA webhook endpoints."""

from api.webhooks import get_signature_verifier
from integrations.jws import b64url_encode, sign_detached_jws
from main import app
from models import ConsentEvent, FIBatch, FIHolding, FITransaction
from services.signature_verifier import WebhookSignatureVerifier
from tests.fixtures import create_consent
from tests.fixtures.mocks import SAMPLE_DEPOSIT_ACCOUNT, encode_body, mutual_fund_payload, signed_request

CONSENT_URL = "/consent-notification"
FI_DATA_URL = "/fi-data-notification"


def _events(db, handle="CH_1", event_type=None):
    query = db.query(ConsentEvent).filter(ConsentEvent.consent_handle == handle)
    if event_type:
        query = query.filter(ConsentEvent.event_type == event_type)
    return query.all()


class TestConsentNotification:
    """Tests for POST /consent-notification."""

    def test_approval_via_api_created_consent(self, client, db, rsa_key):
        """A consent created through the API becomes ACTIVE with one approved event."""
        response = client.post(
            "/api/aa/consents",
            json={"mobile": "9876543210", "fi_types": ["DEPOSIT", "MUTUAL_FUNDS"]},
            headers={"X-User-Id": "user-1"},
        )
        assert response.status_code == 200
        assert response.json()["consent_handle"] == "CH_1"

        body, headers = signed_request(
            {"consentHandle": "CH_1", "consentId": "CID_1", "status": "ACTIVE"}, rsa_key
        )
        response = client.post(CONSENT_URL, content=body, headers=headers)

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["status"] == "ACTIVE"
        assert data["event_type"] == "approved"
        assert data["changed"] is True
        assert len(_events(db, event_type="approved")) == 1

        detail = client.get("/api/aa/consents/CH_1", headers={"X-User-Id": "user-1"}).json()
        assert detail["status"] == "ACTIVE"
        assert detail["consent_id"] == "CID_1"

    def test_repeated_notification_is_not_a_change(self, client, db, consent, rsa_key):
        body, headers = signed_request({"consentHandle": "CH_1", "status": "ACTIVE"}, rsa_key)
        client.post(CONSENT_URL, content=body, headers=headers)
        response = client.post(CONSENT_URL, content=body, headers=headers)

        assert response.status_code == 200
        assert response.json()["changed"] is False
        assert response.json()["status"] == "ACTIVE"

    def test_active_after_revoked_is_ignored(self, client, db, rsa_key):
        create_consent(db, status="REVOKED", consent_id="CID_1")
        db.commit()

        body, headers = signed_request({"consentHandle": "CH_1", "status": "ACTIVE"}, rsa_key)
        response = client.post(CONSENT_URL, content=body, headers=headers)

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "REVOKED"
        assert data["changed"] is False
        assert len(_events(db, event_type="status_updated")) == 1
        assert _events(db, event_type="approved") == []

    def test_unknown_consent_acknowledged(self, client, db, rsa_key):
        body, headers = signed_request({"consentHandle": "CH_UNKNOWN", "status": "ACTIVE"}, rsa_key)
        response = client.post(CONSENT_URL, content=body, headers=headers)

        assert response.status_code == 404
        data = response.json()
        assert data["success"] is False
        assert data["error"] == "CONSENT_NOT_FOUND"
        assert len(_events(db, "CH_UNKNOWN", "CONSENT_NOT_FOUND")) == 1

    def test_missing_identifier(self, client, rsa_key):
        body, headers = signed_request({"status": "ACTIVE"}, rsa_key)
        response = client.post(CONSENT_URL, content=body, headers=headers)
        assert response.status_code == 400


class TestSignatureEnforcement:
    """Nothing is acted on unless the detached JWS covers the exact body."""

    def test_missing_signature(self, client, db, consent):
        response = client.post(
            CONSENT_URL,
            content=encode_body({"consentHandle": "CH_1", "status": "ACTIVE"}),
            headers={"Content-Type": "application/json"},
        )
        assert response.status_code == 401
        db.refresh(consent)
        assert consent.status == "PENDING"
        assert _events(db) == []

    def test_body_changed_by_one_byte(self, client, db, active_consent, rsa_key):
        body, headers = signed_request(mutual_fund_payload(), rsa_key)
        response = client.post(FI_DATA_URL, content=body + b" ", headers=headers)
        assert response.status_code == 401
        assert db.query(FIBatch).count() == 0

    def test_unconfigured_key(self, client, db, active_consent, ec_key):
        body, headers = signed_request(mutual_fund_payload(), ec_key, alg="ES256")
        response = client.post(FI_DATA_URL, content=body, headers=headers)
        assert response.status_code == 401
        assert db.query(FIBatch).count() == 0

    def test_attached_payload_segment(self, client, db, consent, rsa_key):
        body, headers = signed_request({"consentHandle": "CH_1", "status": "ACTIVE"}, rsa_key)
        protected, _, signature = headers["x-jws-signature"].split(".")
        headers["x-jws-signature"] = f"{protected}.{b64url_encode(body)}.{signature}"

        response = client.post(CONSENT_URL, content=body, headers=headers)
        assert response.status_code == 401

    def test_unsigned_invalid_json_is_unauthorized(self, client):
        response = client.post(FI_DATA_URL, content=b"{not json", headers={"Content-Type": "application/json"})
        assert response.status_code == 401

    def test_signed_invalid_json(self, client, rsa_key):
        body = b"{not json"
        headers = {"x-jws-signature": sign_detached_jws(body, rsa_key, alg="RS256")}
        response = client.post(FI_DATA_URL, content=body, headers=headers)
        assert response.status_code == 400

    def test_signed_json_array(self, client, rsa_key):
        body, headers = signed_request([{"sessionId": "S1"}], rsa_key)
        response = client.post(FI_DATA_URL, content=body, headers=headers)
        assert response.status_code == 400

    def test_verification_disabled_in_development(self, client, db, consent):
        app.dependency_overrides[get_signature_verifier] = lambda: WebhookSignatureVerifier(
            verification="disabled", environment="development"
        )
        response = client.post(CONSENT_URL, content=encode_body({"consentHandle": "CH_1", "status": "ACTIVE"}))
        assert response.status_code == 200
        assert response.json()["status"] == "ACTIVE"


class TestFIDataNotification:
    """Tests for POST /fi-data-notification."""

    def test_inline_data_ingested(self, client, db, active_consent, rsa_key):
        body, headers = signed_request(mutual_fund_payload(), rsa_key)
        response = client.post(FI_DATA_URL, content=body, headers=headers)

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["session_id"] == "S1"
        assert data["status"] == "COMPLETED"
        assert data["consent_found"] is True
        assert data["ingestion"]["holdings_inserted"] == 1

        holding = db.query(FIHolding).one()
        assert holding.instrument_id == "INF123"
        assert str(holding.as_of_date) == "2024-01-15"
        assert len(_events(db, event_type="fi_data_ready")) == 1

    def test_replayed_request_is_idempotent(self, client, db, active_consent, rsa_key):
        """The same signature and bytes delivered twice store one batch and one set of rows."""
        payload = mutual_fund_payload()
        payload["FI"].append({"fipId": "HDFC", "data": {"account": SAMPLE_DEPOSIT_ACCOUNT}})
        body, headers = signed_request(payload, rsa_key)

        first = client.post(FI_DATA_URL, content=body, headers=headers)
        second = client.post(FI_DATA_URL, content=body, headers=headers)

        assert first.status_code == 200
        assert second.status_code == 200
        assert second.json()["delivery_count"] == 2
        assert second.json()["ingestion"]["holdings_inserted"] == 0
        assert second.json()["ingestion"]["holdings_duplicate"] == 1
        assert second.json()["ingestion"]["transactions_duplicate"] == 2
        assert db.query(FIBatch).count() == 1
        assert db.query(FIHolding).count() == 1
        assert db.query(FITransaction).count() == 2

    def test_two_deliveries_of_same_holding(self, client, db, active_consent, rsa_key):
        """Differently-encoded deliveries for S1 with the same holding store one row."""
        first_payload = mutual_fund_payload()
        second_payload = mutual_fund_payload()
        second_payload["status"] = "DELIVERED"

        for payload in (first_payload, second_payload):
            body, headers = signed_request(payload, rsa_key)
            assert client.post(FI_DATA_URL, content=body, headers=headers).status_code == 200

        assert db.query(FIHolding).count() == 1
        assert db.query(FIBatch).one().delivery_count == 2

    def test_unknown_consent_still_records_batch(self, client, db, rsa_key):
        body, headers = signed_request(mutual_fund_payload(consent_handle="CH_OTHER"), rsa_key)
        response = client.post(FI_DATA_URL, content=body, headers=headers)

        assert response.status_code == 200
        data = response.json()
        assert data["consent_found"] is False
        assert data["status"] == "READY"
        assert data["ingestion"] is None
        assert db.query(FIHolding).count() == 0

    def test_notification_without_data(self, client, db, active_consent, rsa_key):
        body, headers = signed_request({"sessionId": "S2", "consentHandle": "CH_1", "status": "READY"}, rsa_key)
        response = client.post(FI_DATA_URL, content=body, headers=headers)

        assert response.status_code == 200
        assert response.json()["status"] == "READY"
        assert response.json()["ingestion"] is None

    def test_malformed_holding_does_not_discard_batch(self, client, db, active_consent, rsa_key):
        holdings = [
            {"schemeName": "Fund A", "instrumentId": "INF1", "units": "1", "asOfDate": "2024-01-15"},
            {"schemeName": "Fund B", "instrumentId": "INF2", "units": "lots", "asOfDate": "2024-01-15"},
            {"schemeName": "Fund C", "instrumentId": "INF3", "units": "3", "asOfDate": "2024-01-15"},
        ]
        body, headers = signed_request(mutual_fund_payload(holdings=holdings), rsa_key)
        response = client.post(FI_DATA_URL, content=body, headers=headers)

        assert response.status_code == 200
        ingestion = response.json()["ingestion"]
        assert ingestion["holdings_attempted"] == 3
        assert ingestion["holdings_inserted"] == 2
        assert len(ingestion["errors"]) == 1
        assert db.query(FIHolding).count() == 2

    def test_missing_session_id(self, client, db, rsa_key):
        body, headers = signed_request({"consentHandle": "CH_1", "status": "READY"}, rsa_key)
        response = client.post(FI_DATA_URL, content=body, headers=headers)
        assert response.status_code == 400
        assert db.query(FIBatch).count() == 0

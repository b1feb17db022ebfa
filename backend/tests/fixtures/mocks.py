"""Mock implementations for external services."""

import copy
import json
from datetime import datetime, timezone

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec, rsa

from integrations.aa_protocol import ConsentRequest, ConsentResult, FIRequestResult, validate_consent_request
from integrations.exceptions import ProviderAuthError, ProviderProtocolError, ProviderUnavailableError
from integrations.jws import sign_detached_jws


class FakeAAClient:
    """AAClient stand-in that records calls and returns canned results.

    ``failure_type`` makes every provider call raise: "auth",
    "unavailable", "protocol" or "generic".
    """

    def __init__(
        self,
        consent_handle: str = "CH_1",
        status: str = "PENDING",
        consent_id: str | None = None,
        session_id: str = "S1",
        fi_data: dict | None = None,
        should_fail: bool = False,
        failure_type: str = "generic",
        name: str = "Fake",
    ):
        self.consent_handle = consent_handle
        self.status = status
        self.consent_id = consent_id
        self.session_id = session_id
        self.fi_data = fi_data if fi_data is not None else {}
        self._should_fail = should_fail
        self._failure_type = failure_type
        self._name = name
        self.calls: list[tuple] = []

    @property
    def provider_name(self) -> str:
        return self._name

    def is_configured(self) -> bool:
        return True

    def _maybe_fail(self) -> None:
        if not self._should_fail:
            return
        if self._failure_type == "auth":
            raise ProviderAuthError("Mock auth failure", provider_name=self._name)
        if self._failure_type == "unavailable":
            raise ProviderUnavailableError("Mock timeout", provider_name=self._name)
        if self._failure_type == "protocol":
            raise ProviderProtocolError("Mock bad response", provider_name=self._name)
        raise Exception("Mock provider exploded with internal detail")

    def initiate_consent(self, request: ConsentRequest) -> ConsentResult:
        self.calls.append(("initiate_consent", request))
        validate_consent_request(request, self._name)
        self._maybe_fail()
        return ConsentResult(
            consent_handle=self.consent_handle,
            status="PENDING",
            consent_start=datetime(2024, 1, 1, tzinfo=timezone.utc),
            consent_expiry=datetime(2025, 1, 1, tzinfo=timezone.utc),
            approval_url=f"https://aa.example/#/login?consentHandle={self.consent_handle}",
            raw_data={"ConsentHandle": self.consent_handle},
        )

    def get_consent_status(self, consent_handle: str) -> ConsentResult:
        self.calls.append(("get_consent_status", consent_handle))
        self._maybe_fail()
        return ConsentResult(consent_handle=consent_handle, status=self.status, consent_id=self.consent_id)

    def get_consent_details(self, consent_id: str) -> ConsentResult:
        self.calls.append(("get_consent_details", consent_id))
        self._maybe_fail()
        return ConsentResult(consent_handle=self.consent_handle, status=self.status, consent_id=consent_id)

    def revoke_consent(self, consent_id: str) -> bool:
        self.calls.append(("revoke_consent", consent_id))
        self._maybe_fail()
        return True

    def request_fi_data(self, consent_id: str, data_range_from: datetime, data_range_to: datetime) -> FIRequestResult:
        self.calls.append(("request_fi_data", consent_id, data_range_from, data_range_to))
        self._maybe_fail()
        return FIRequestResult(session_id=self.session_id, consent_id=consent_id)

    def fetch_fi_data(self, session_id: str) -> dict:
        self.calls.append(("fetch_fi_data", session_id))
        self._maybe_fail()
        return copy.deepcopy(self.fi_data)

    def call_names(self) -> list[str]:
        return [call[0] for call in self.calls]


# ---------------------------------------------------------------------------
# Signing helpers
# ---------------------------------------------------------------------------


def generate_rsa_key() -> rsa.RSAPrivateKey:
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


def generate_ec_key(curve=ec.SECP256R1) -> ec.EllipticCurvePrivateKey:
    return ec.generate_private_key(curve())


def public_pem(private_key) -> str:
    return private_key.public_key().public_bytes(
        serialization.Encoding.PEM,
        serialization.PublicFormat.SubjectPublicKeyInfo,
    ).decode("ascii")


def encode_body(payload: dict) -> bytes:
    """Serialize a webhook body the way a provider would put it on the wire."""
    return json.dumps(payload, separators=(",", ":")).encode("utf-8")


def signed_request(payload: dict, private_key, alg: str = "RS256") -> tuple[bytes, dict]:
    """Return ``(raw_body, headers)`` for a webhook signed with ``private_key``."""
    raw_body = encode_body(payload)
    signature = sign_detached_jws(raw_body, private_key, alg=alg, kid="test-key")
    return raw_body, {"x-jws-signature": signature, "Content-Type": "application/json"}


# ---------------------------------------------------------------------------
# Sample FI payloads
# ---------------------------------------------------------------------------


def mutual_fund_payload(
    session_id: str = "S1",
    consent_handle: str | None = "CH_1",
    holdings: list[dict] | None = None,
) -> dict:
    """Data-ready body carrying one CAMS mutual-fund account inline."""
    if holdings is None:
        holdings = [
            {
                "schemeName": "Index Fund - Growth",
                "instrumentId": "INF123",
                "units": "10.5",
                "currentValue": "1500.00",
                "costValue": "1200.00",
                "nav": "142.85",
                "asOfDate": "2024-01-15",
            }
        ]
    payload = {
        "sessionId": session_id,
        "status": "READY",
        "fiDataRange": {"from": "2023-01-01T00:00:00Z", "to": "2024-01-31T00:00:00Z"},
        "FI": [
            {
                "fipId": "CAMS",
                "data": {
                    "account": {
                        "maskedAccNumber": "MF-XXXX5678",
                        "type": "MUTUAL_FUND",
                        "Holdings": {"Holding": holdings},
                    }
                },
            }
        ],
    }
    if consent_handle:
        payload["consentHandle"] = consent_handle
    return payload


SAMPLE_DEPOSIT_ACCOUNT: dict = {
    "maskedAccNumber": "XXXX1234",
    "type": "SAVINGS",
    "linkRefNumber": "LINK-1",
    "Profile": {"Holders": {"Holder": {"name": "A Customer"}}},
    "Summary": {"currentBalance": "1,25,000.50", "currency": "INR", "status": "ACTIVE"},
    "Transactions": {
        "Transaction": [
            {
                "txnId": "T1",
                "type": "CREDIT",
                "amount": "50000.00",
                "transactionTimestamp": "2024-01-15T10:00:00+05:30",
                "narration": "Salary",
            },
            {
                "txnId": "T2",
                "type": "DEBIT",
                "amount": "1500",
                "transactionTimestamp": "2024-01-20T18:30:00+05:30",
                "narration": "Bill Payment",
            },
        ]
    },
}

SAMPLE_EQUITY_ACCOUNT: dict = {
    "maskedAccNumber": "IN30XXXX1234",
    "type": "DEMAT",
    "Holdings": {
        "Holding": [
            {
                "companyName": "Reliance Industries Ltd",
                "isin": "INE002A01018",
                "quantity": "50",
                "currentValue": "145000",
                "costValue": "120000",
                "averagePrice": "2400",
                "asOfDate": "2024-01-15",
            }
        ]
    },
}

SAMPLE_TERM_DEPOSIT_ACCOUNT: dict = {
    "maskedAccNumber": "FD-XXXX9999",
    "type": "FIXED",
    "currentValue": "105000",
    "openingBalance": "100000",
    "interestRate": "7.1",
    "maturityDate": "2025-06-30",
}

SAMPLE_INSURANCE_ACCOUNT: dict = {
    "maskedAccNumber": "POL-XXXX4321",
    "type": "INSURANCE",
    "policyName": "Term Life Plan",
    "policyNumber": "P-4321",
    "sumAssured": "10000000",
    "premium": "12000",
    "premiumFrequency": "ANNUAL",
}

"""Finvu Account Aggregator client (ReBIT v1.1.3 API).

This module implements the AAClient protocol against Finvu's FIU API.
Requests carry the ``client_api_key`` header and, when a private key is
configured, a detached JWS over the exact request body bytes.
"""

import logging
import uuid
from datetime import datetime, timedelta, timezone

from config import settings
from integrations.aa_http import encode_json_body, request_json
from integrations.aa_protocol import (
    ConsentRequest,
    ConsentResult,
    FIRequestResult,
    build_approval_url,
    compute_validity_window,
    to_iso,
    validate_consent_request,
)
from integrations.exceptions import ProviderAPIError, ProviderAuthError, ProviderProtocolError
from integrations.jws import load_private_key, sign_detached_jws
from integrations.parsing_utils import parse_iso_datetime

logger = logging.getLogger(__name__)

REBIT_VERSION = "1.1.3"
PURPOSE_CODE = "101"
PURPOSE_REF_URI = "https://api.rebit.org.in/aa/purpose/101.xml"
CONSENT_TYPES = ["TRANSACTIONS", "PROFILE", "SUMMARY"]

# ReBIT FI type names for our category tags
REBIT_FI_TYPES = {
    "DEPOSIT": "DEPOSIT",
    "TERM_DEPOSIT": "TERM_DEPOSIT",
    "MUTUAL_FUNDS": "MUTUAL_FUNDS",
    "SIP": "SIP",
    "EQUITIES": "EQUITIES",
    "SECURITIES": "EQUITIES",
    "INSURANCE": "INSURANCE_POLICIES",
}


def build_consent_envelope(
    request: ConsentRequest,
    fiu_id: str,
    customer_handle: str,
    txn_id: str,
    timestamp: datetime,
    consent_start: datetime,
    consent_expiry: datetime,
) -> dict:
    """Build the ReBIT ``POST /Consent`` body."""
    fi_types = []
    for fi_type in request.fi_types:
        rebit = REBIT_FI_TYPES.get(fi_type.upper(), fi_type.upper())
        if rebit not in fi_types:
            fi_types.append(rebit)

    return {
        "ver": REBIT_VERSION,
        "timestamp": to_iso(timestamp),
        "txnid": txn_id,
        "ConsentDetail": {
            "consentStart": to_iso(consent_start),
            "consentExpiry": to_iso(consent_expiry),
            "consentMode": request.consent_mode,
            "fetchType": request.fetch_type,
            "consentTypes": CONSENT_TYPES,
            "fiTypes": fi_types,
            "DataConsumer": {"id": fiu_id},
            "Customer": {"id": customer_handle},
            "Purpose": {
                "code": PURPOSE_CODE,
                "refUri": PURPOSE_REF_URI,
                "text": request.purpose,
                "Category": {"type": "string"},
            },
            "FIDataRange": {
                "from": to_iso(request.data_range_from),
                "to": to_iso(request.data_range_to),
            },
            "DataLife": {"unit": request.data_life_unit, "value": request.data_life_value},
            "Frequency": {"unit": request.frequency_unit, "value": request.frequency_value},
        },
    }


class FinvuClient:
    """Finvu AA client implementing the AAClient protocol."""

    def __init__(
        self,
        api_base_url: str | None = None,
        fiu_id: str | None = None,
        client_api_key: str | None = None,
        private_key_pem: str | None = None,
        key_id: str | None = None,
        web_url: str | None = None,
        timeout: float | None = None,
    ):
        self._base_url = api_base_url or settings.AA_API_BASE_URL
        self._fiu_id = fiu_id or settings.AA_FIU_ID
        self._client_api_key = client_api_key or settings.AA_CLIENT_API_KEY
        self._private_key_pem = private_key_pem or settings.AA_PRIVATE_KEY
        self._key_id = key_id or settings.AA_KEY_ID
        self._web_url = web_url or settings.AA_WEB_URL
        self._timeout = timeout or settings.AA_HTTP_TIMEOUT_SECONDS
        self._private_key = None

    @property
    def provider_name(self) -> str:
        """Return the provider name for database storage."""
        return "Finvu"

    def is_configured(self) -> bool:
        return bool(self._base_url and self._fiu_id and self._client_api_key)

    def _signing_key(self):
        if self._private_key is None and self._private_key_pem:
            try:
                self._private_key = load_private_key(self._private_key_pem)
            except ValueError as exc:
                raise ProviderAuthError(
                    "AA_PRIVATE_KEY is not a valid PEM private key",
                    provider_name=self.provider_name,
                ) from exc
        return self._private_key

    def _request(self, method: str, path: str, body: dict | None = None) -> dict:
        headers = {}
        if self._client_api_key:
            headers["client_api_key"] = self._client_api_key

        content = None
        if body is not None:
            content = encode_json_body(body)
            key = self._signing_key()
            if key is not None:
                headers["x-jws-signature"] = sign_detached_jws(content, key, "RS256", self._key_id)

        return request_json(
            self._base_url, method, path, self.provider_name, self._timeout, headers, content
        )

    def initiate_consent(self, request: ConsentRequest) -> ConsentResult:
        customer = validate_consent_request(request, self.provider_name)
        now = datetime.now(timezone.utc)
        consent_start, consent_expiry = compute_validity_window(request, now)
        envelope = build_consent_envelope(
            request, self._fiu_id, customer.handle, str(uuid.uuid4()), now, consent_start, consent_expiry
        )

        response = self._request("POST", "/Consent", envelope)

        handle = response.get("ConsentHandle") or response.get("consentHandle")
        if not handle:
            logger.error("Finvu: consent response missing handle: %s", response)
            raise ProviderProtocolError(
                "Consent response did not include a consent handle",
                provider_name=self.provider_name,
            )

        logger.info("Finvu: consent created (handle=%s)", handle)
        return ConsentResult(
            consent_handle=handle,
            status="PENDING",
            consent_id=None,
            consent_start=consent_start,
            consent_expiry=consent_expiry,
            approval_url=build_approval_url(self._web_url, handle, customer.mobile),
            raw_data=response,
        )

    def get_consent_status(self, consent_handle: str) -> ConsentResult:
        response = self._request("GET", f"/Consent/handle/{consent_handle}")
        status_block = response.get("ConsentStatus") or {}
        status = status_block.get("status")
        if not status:
            raise ProviderProtocolError(
                "Consent status response did not include a status",
                provider_name=self.provider_name,
            )
        return ConsentResult(
            consent_handle=response.get("ConsentHandle") or consent_handle,
            status=status.upper(),
            consent_id=status_block.get("id"),
            raw_data=response,
        )

    def get_consent_details(self, consent_id: str) -> ConsentResult:
        response = self._request("GET", f"/Consent/{consent_id}")
        detail = response.get("ConsentDetail") or {}
        return ConsentResult(
            consent_handle=response.get("consentHandle") or response.get("ConsentHandle") or "",
            status=(response.get("status") or "ACTIVE").upper(),
            consent_id=response.get("consentId") or consent_id,
            consent_start=parse_iso_datetime(detail.get("consentStart") or response.get("createTimestamp")),
            consent_expiry=parse_iso_datetime(detail.get("consentExpiry")),
            raw_data=response,
        )

    def revoke_consent(self, consent_id: str) -> bool:
        try:
            self._request("DELETE", f"/Consent/{consent_id}")
        except ProviderAPIError as exc:
            # Already revoked (or never approved): revocation is idempotent
            if exc.status_code in (404, 409):
                logger.info("Finvu: consent %s already revoked (HTTP %s)", consent_id, exc.status_code)
                return True
            raise
        logger.info("Finvu: consent %s revoked", consent_id)
        return True

    def request_fi_data(
        self, consent_id: str, data_range_from: datetime, data_range_to: datetime
    ) -> FIRequestResult:
        now = datetime.now(timezone.utc)
        # Key exchange material is sent as placeholders; payload decryption
        # happens at the AA side for this integration.
        payload = {
            "ver": REBIT_VERSION,
            "timestamp": to_iso(now),
            "txnid": str(uuid.uuid4()),
            "FIDataRange": {"from": to_iso(data_range_from), "to": to_iso(data_range_to)},
            "Consent": {"id": consent_id},
            "KeyMaterial": {
                "cryptoAlg": "ECDH",
                "curve": "Curve25519",
                "params": "params",
                "DHPublicKey": {
                    "expiry": to_iso(now + timedelta(days=1)),
                    "Parameters": "",
                    "KeyValue": "",
                },
                "Nonce": str(uuid.uuid4()),
            },
        }
        response = self._request("POST", "/FI/request", payload)
        session_id = response.get("sessionId") or response.get("SessionId")
        if not session_id:
            raise ProviderProtocolError(
                "FI request response did not include a session id",
                provider_name=self.provider_name,
            )
        logger.info("Finvu: FI data requested (consent=%s session=%s)", consent_id, session_id)
        return FIRequestResult(session_id=session_id, consent_id=consent_id, raw_data=response)

    def fetch_fi_data(self, session_id: str) -> dict:
        response = self._request("GET", f"/FI/fetch/{session_id}")
        logger.info("Finvu: FI data fetched for session %s", session_id)
        return response

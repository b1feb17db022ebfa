"""In-process Account Aggregator stand-in for development.

Selected only with ``AA_PROVIDER=mock``. Consent and session state lives in
memory, and FI data is a fixed sample shaped like a ReBIT FI fetch response
so the real parser handles it.
"""

import copy
import logging
import uuid
from datetime import datetime

from config import settings
from integrations.aa_protocol import (
    ConsentRequest,
    ConsentResult,
    FIRequestResult,
    build_approval_url,
    compute_validity_window,
    validate_consent_request,
)
from integrations.exceptions import ProviderAPIError

logger = logging.getLogger(__name__)

SAMPLE_FI_DATA: dict = {
    "FI": [
        {
            "fipId": "BARB0KIMXXX",
            "data": {
                "account": {
                    "maskedAccNumber": "XXXX1234",
                    "type": "SAVINGS",
                    "linkRefNumber": "LINK-ACC001",
                    "Summary": {"currentBalance": "250000.00", "currency": "INR", "status": "ACTIVE"},
                    "Transactions": {
                        "Transaction": [
                            {
                                "txnId": "TXN001",
                                "type": "CREDIT",
                                "amount": "50000.00",
                                "transactionTimestamp": "2024-01-15T10:00:00+05:30",
                                "narration": "Salary Credit",
                            },
                            {
                                "txnId": "TXN002",
                                "type": "DEBIT",
                                "amount": "15000.00",
                                "transactionTimestamp": "2024-01-20T18:30:00+05:30",
                                "narration": "Bill Payment",
                            },
                        ]
                    },
                }
            },
        },
        {
            "fipId": "CAMS",
            "data": {
                "account": {
                    "maskedAccNumber": "MF-XXXX5678",
                    "type": "MUTUAL_FUND",
                    "Holdings": {
                        "Holding": [
                            {
                                "schemeName": "HDFC Equity Fund - Growth",
                                "isin": "INF179K01997",
                                "units": "100.5",
                                "currentValue": "175000",
                                "costValue": "150000",
                                "nav": "1492.54",
                                "navDate": "2024-01-15",
                                "folioNo": "F12345678",
                            },
                            {
                                "schemeName": "ICICI Prudential Bluechip Fund",
                                "isin": "INF109K01Z88",
                                "units": "200",
                                "currentValue": "125000",
                                "costValue": "100000",
                                "nav": "500",
                                "navDate": "2024-01-15",
                                "folioNo": "F87654321",
                            },
                        ]
                    },
                }
            },
        },
        {
            "fipId": "NSDL",
            "data": {
                "account": {
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
            },
        },
    ]
}


class MockAAClient:
    """AAClient implementation that never leaves the process."""

    def __init__(self, web_url: str | None = None):
        self._web_url = web_url or settings.AA_WEB_URL
        self._consents: dict[str, ConsentResult] = {}
        self._sessions: dict[str, str] = {}

    @property
    def provider_name(self) -> str:
        return "Mock"

    def is_configured(self) -> bool:
        return True

    def initiate_consent(self, request: ConsentRequest) -> ConsentResult:
        customer = validate_consent_request(request, self.provider_name)
        handle = f"mock-{uuid.uuid4().hex[:12]}"
        consent_start, consent_expiry = compute_validity_window(request)
        result = ConsentResult(
            consent_handle=handle,
            status="PENDING",
            consent_start=consent_start,
            consent_expiry=consent_expiry,
            approval_url=build_approval_url(self._web_url, handle, customer.mobile),
        )
        self._consents[handle] = result
        logger.info("Mock AA: consent created (handle=%s)", handle)
        return result

    def approve(self, consent_handle: str) -> ConsentResult:
        """Simulate the user approving a consent at the AA."""
        result = self._get(consent_handle)
        result.status = "ACTIVE"
        result.consent_id = result.consent_id or f"mock-consent-{uuid.uuid4().hex[:12]}"
        return result

    def _get(self, consent_handle: str) -> ConsentResult:
        if consent_handle not in self._consents:
            raise ProviderAPIError(
                f"Unknown consent handle {consent_handle}",
                provider_name=self.provider_name,
                status_code=404,
            )
        return self._consents[consent_handle]

    def get_consent_status(self, consent_handle: str) -> ConsentResult:
        return copy.copy(self._get(consent_handle))

    def get_consent_details(self, consent_id: str) -> ConsentResult:
        for result in self._consents.values():
            if result.consent_id == consent_id:
                return copy.copy(result)
        raise ProviderAPIError(
            f"Unknown consent id {consent_id}",
            provider_name=self.provider_name,
            status_code=404,
        )

    def revoke_consent(self, consent_id: str) -> bool:
        for result in self._consents.values():
            if result.consent_id == consent_id:
                result.status = "REVOKED"
        return True

    def request_fi_data(
        self, consent_id: str, data_range_from: datetime, data_range_to: datetime
    ) -> FIRequestResult:
        session_id = f"mock-session-{uuid.uuid4().hex[:12]}"
        self._sessions[session_id] = consent_id
        return FIRequestResult(session_id=session_id, consent_id=consent_id)

    def fetch_fi_data(self, session_id: str) -> dict:
        return copy.deepcopy(SAMPLE_FI_DATA)

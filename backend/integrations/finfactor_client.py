"""Finfactor FIU V2 API client.

Consent creation uses Finfactor's ``/ConsentRequests`` endpoint with
template-based consents. Status, revocation and FI data calls use the ReBIT
resource paths inherited from :class:`FinvuClient`, sent to the Finfactor
base URL with a bearer token instead of a client API key.
"""

import logging
import uuid
from datetime import datetime, timezone

from config import settings
from integrations.aa_http import encode_json_body, request_json
from integrations.aa_protocol import (
    ConsentRequest,
    ConsentResult,
    build_approval_url,
    compute_validity_window,
    to_iso,
    validate_consent_request,
)
from integrations.exceptions import ProviderAuthError, ProviderProtocolError
from integrations.finvu_client import FinvuClient
from integrations.token_cache import TokenCache

logger = logging.getLogger(__name__)

DEFAULT_TEMPLATE = "STATEMENT_PERIODIC_OTHER"

# FI category tag -> Finfactor consent templates. Add a row for a new category.
CONSENT_TEMPLATE_MAP: dict[str, list[str]] = {
    "DEPOSIT": ["BANK_STATEMENT_SEBI"],
    "TERM_DEPOSIT": ["BANK_STATEMENT_SEBI"],
    "MUTUAL_FUNDS": ["STATEMENT_PERIODIC_OTHER"],
    "SIP": ["STATEMENT_PERIODIC_OTHER"],
    "INSURANCE": ["STATEMENT_PERIODIC_OTHER"],
    "SECURITIES": ["STATEMENT_PERIODIC_OTHER"],
    "EQUITIES": ["STATEMENT_PERIODIC_OTHER"],
}


def map_consent_templates(fi_types: list[str]) -> list[str]:
    """Map category tags to templates, deduplicated in first-seen order."""
    templates: list[str] = []
    for fi_type in fi_types:
        for template in CONSENT_TEMPLATE_MAP.get(fi_type.upper(), [DEFAULT_TEMPLATE]):
            if template not in templates:
                templates.append(template)
    return templates


class FinfactorClient(FinvuClient):
    """Finfactor AA client implementing the AAClient protocol."""

    def __init__(
        self,
        api_base_url: str | None = None,
        user_id: str | None = None,
        password: str | None = None,
        channel_id: str | None = None,
        web_url: str | None = None,
        timeout: float | None = None,
        token_cache: TokenCache | None = None,
    ):
        super().__init__(
            api_base_url=api_base_url or settings.FINFACTOR_API_BASE_URL,
            web_url=web_url,
            timeout=timeout,
        )
        # Finfactor authenticates with a bearer token, not an API key or JWS
        self._client_api_key = ""
        self._private_key_pem = ""
        self._user_id = user_id or settings.FINFACTOR_USER_ID
        self._password = password or settings.FINFACTOR_PASSWORD
        self._channel_id = channel_id or settings.FINFACTOR_CHANNEL_ID
        self._tokens = token_cache or TokenCache(self._login)

    @property
    def provider_name(self) -> str:
        """Return the provider name for database storage."""
        return "Finfactor"

    def is_configured(self) -> bool:
        return bool(self._base_url and self._user_id and self._password)

    def _envelope(self, body: dict) -> dict:
        return {
            "header": {
                "rid": str(uuid.uuid4()),
                "ts": to_iso(datetime.now(timezone.utc)),
                "channelId": self._channel_id,
            },
            "body": body,
        }

    def _login(self) -> str:
        """Log in and return a bearer token (used as the TokenCache fetch)."""
        if not self.is_configured():
            raise ProviderAuthError(
                "Finfactor credentials not configured. Set FINFACTOR_API_BASE_URL, "
                "FINFACTOR_USER_ID and FINFACTOR_PASSWORD.",
                provider_name=self.provider_name,
            )
        payload = self._envelope({"userId": self._user_id, "password": self._password})
        data = request_json(
            self._base_url, "POST", "/User/Login", self.provider_name, self._timeout,
            content=encode_json_body(payload),
        )
        body = data.get("body") or {}
        token = body.get("token") or body.get("accessToken") or data.get("token") or data.get("accessToken")
        if not token:
            raise ProviderAuthError(
                "Finfactor login response did not include a token",
                provider_name=self.provider_name,
            )
        logger.info("Finfactor: login successful")
        return token

    def _send(self, method: str, path: str, token: str, content: bytes | None) -> dict:
        return request_json(
            self._base_url, method, path, self.provider_name, self._timeout,
            headers={"Authorization": f"Bearer {token}"},
            content=content,
        )

    def _request(self, method: str, path: str, body: dict | None = None) -> dict:
        content = encode_json_body(body) if body is not None else None
        token = self._tokens.get()
        try:
            return self._send(method, path, token, content)
        except ProviderAuthError:
            logger.info("Finfactor: token rejected, logging in again")
            self._tokens.invalidate()
        return self._send(method, path, self._tokens.get(), content)

    def initiate_consent(self, request: ConsentRequest) -> ConsentResult:
        customer = validate_consent_request(request, self.provider_name)
        consent_start, consent_expiry = compute_validity_window(request)
        payload = self._envelope(
            {
                "custId": customer.handle,
                "consentDescription": request.purpose or "Wealth Management Service",
                "consentTemplates": map_consent_templates(request.fi_types),
                "userSessionId": f"session_{uuid.uuid4().hex[:16]}",
                "redirectUrl": "noredirect",
            }
        )

        response = self._request("POST", "/ConsentRequests", payload)

        body = response.get("body") or {}
        handle = body.get("consentHandle") or response.get("consentHandle")
        if not handle:
            logger.error("Finfactor: consent response missing handle: %s", response)
            raise ProviderProtocolError(
                "Consent response did not include a consent handle",
                provider_name=self.provider_name,
            )

        approval_url = body.get("redirectUrl") or body.get("webviewUrl")
        if not approval_url or approval_url == "noredirect":
            approval_url = build_approval_url(self._web_url, handle, customer.mobile)

        logger.info("Finfactor: consent created (handle=%s)", handle)
        return ConsentResult(
            consent_handle=handle,
            status="PENDING",
            consent_id=body.get("consentId") or response.get("consentId"),
            consent_start=consent_start,
            consent_expiry=consent_expiry,
            approval_url=approval_url,
            raw_data=response,
        )

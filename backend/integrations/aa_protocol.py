"""Account Aggregator client protocol and shared request/response types.

This module defines the normalized consent and FI-session data every AA
provider client (Finvu, Finfactor, mock) maps its responses into, plus the
provider-independent request validation that must run before any network
call.
"""

import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Protocol
from urllib.parse import urlencode

from integrations.exceptions import InvalidConsentRequestError, InvalidCustomerError

CUSTOMER_HANDLE_SUFFIX = "@finvu"

_HANDLE_RE = re.compile(r"^[^@\s]+@[^@\s]+$")

# Approximate calendar-unit lengths for computing a consent's validity window
_UNIT_DAYS = {
    "HOUR": 1 / 24,
    "DAY": 1,
    "MONTH": 30,
    "YEAR": 365,
}


@dataclass
class ConsentRequest:
    """An internal consent request, before it is shaped for a provider."""

    customer_id: str  # 10-digit mobile (optionally +91) or an existing "x@aa" handle
    purpose: str
    fi_types: list[str]
    data_range_from: datetime
    data_range_to: datetime
    frequency_unit: str = "MONTH"
    frequency_value: int = 1
    data_life_unit: str = "MONTH"
    data_life_value: int = 12
    consent_mode: str = "STORE"
    fetch_type: str = "PERIODIC"


@dataclass
class ConsentResult:
    """Normalized consent state returned by every provider client."""

    consent_handle: str
    status: str = "PENDING"
    consent_id: str | None = None  # Only known once the user has approved
    consent_start: datetime | None = None
    consent_expiry: datetime | None = None
    approval_url: str | None = None
    raw_data: dict | None = None  # Raw provider response for debugging


@dataclass
class FIRequestResult:
    """A started FI data session; the data itself arrives later."""

    session_id: str
    consent_id: str
    status: str = "PENDING"
    raw_data: dict | None = field(default=None, repr=False)


@dataclass
class CustomerHandle:
    """A customer identifier resolved to the AA's addressing scheme."""

    handle: str  # e.g. "9876543210@finvu"
    mobile: str | None = None  # Bare 10-digit mobile, when derivable


def normalize_mobile(value: str | None) -> str | None:
    """Strip formatting and a leading 91 country code from a phone number.

    Returns the bare digits when at least 10 remain, else ``None``.
    """
    if not value:
        return None
    digits = re.sub(r"\D", "", value)
    if len(digits) == 12 and digits.startswith("91"):
        digits = digits[2:]
    return digits if len(digits) >= 10 else None


def resolve_customer_handle(customer_id: str, provider_name: str = "") -> CustomerHandle:
    """Resolve a mobile number or AA handle into a :class:`CustomerHandle`.

    Raises:
        InvalidCustomerError: If the identifier is neither a 10-digit mobile
            nor an ``x@y`` handle.
    """
    value = (customer_id or "").strip()
    if _HANDLE_RE.match(value):
        local = value.split("@", 1)[0]
        return CustomerHandle(handle=value, mobile=normalize_mobile(local))

    mobile = normalize_mobile(value)
    if mobile is None or len(mobile) != 10:
        raise InvalidCustomerError(
            "Customer identifier must be a 10-digit mobile number or an AA handle",
            provider_name,
        )
    return CustomerHandle(handle=f"{mobile}{CUSTOMER_HANDLE_SUFFIX}", mobile=mobile)


def validate_consent_request(request: ConsentRequest, provider_name: str = "") -> CustomerHandle:
    """Check a consent request before it reaches a provider.

    Returns:
        The resolved customer handle.

    Raises:
        InvalidConsentRequestError: On empty categories or an inverted range.
        InvalidCustomerError: If the customer id cannot become a handle.
    """
    if not request.fi_types:
        raise InvalidConsentRequestError("At least one FI type is required")
    if request.data_range_from >= request.data_range_to:
        raise InvalidConsentRequestError("Data range 'from' must be before 'to'")
    if request.data_life_value <= 0:
        raise InvalidConsentRequestError("Consent validity must be positive")
    return resolve_customer_handle(request.customer_id, provider_name)


def compute_validity_window(
    request: ConsentRequest, start: datetime | None = None
) -> tuple[datetime, datetime]:
    """Return ``(consent_start, consent_expiry)`` from the request's data life."""
    start = start or datetime.now(timezone.utc)
    days = _UNIT_DAYS.get(request.data_life_unit.upper(), 30) * request.data_life_value
    return start, start + timedelta(days=days)


def build_approval_url(web_url: str, consent_handle: str, mobile: str | None = None) -> str:
    """Build the AA web-portal URL where the user approves the consent."""
    params = {"consentHandle": consent_handle}
    clean_mobile = normalize_mobile(mobile)
    if clean_mobile:
        params["mobile"] = clean_mobile
    return f"{web_url.rstrip('/')}/#/login?{urlencode(params)}"


def to_iso(value: datetime) -> str:
    """Format a datetime as the UTC ISO-8601 string AA APIs expect."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class AAClient(Protocol):
    """Protocol that all Account Aggregator clients must implement.

    Every method raises the typed errors from
    :mod:`integrations.exceptions`; none of them persist anything.
    """

    @property
    def provider_name(self) -> str:
        """Return the provider name stored on consents (e.g. 'Finvu')."""
        ...

    def is_configured(self) -> bool:
        """Check if this provider has the credentials it needs."""
        ...

    def initiate_consent(self, request: ConsentRequest) -> ConsentResult:
        """Create a consent at the provider.

        Raises:
            InvalidConsentRequestError: Malformed input (before any network call).
            InvalidCustomerError: Customer id not recognised.
            ProviderUnavailableError: Network failure or timeout.
            ProviderProtocolError: Success response without a consent handle.
        """
        ...

    def get_consent_status(self, consent_handle: str) -> ConsentResult:
        """Poll the provider for a consent's current status by handle."""
        ...

    def get_consent_details(self, consent_id: str) -> ConsentResult:
        """Fetch an approved consent's details by provider consent id."""
        ...

    def revoke_consent(self, consent_id: str) -> bool:
        """Revoke a consent. Revoking an already-revoked consent succeeds."""
        ...

    def request_fi_data(
        self, consent_id: str, data_range_from: datetime, data_range_to: datetime
    ) -> FIRequestResult:
        """Start an FI data session for an approved consent."""
        ...

    def fetch_fi_data(self, session_id: str) -> dict:
        """Fetch the raw FI payload for a session (``{"FI": [...]}`` shape)."""
        ...

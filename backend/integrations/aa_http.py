"""Shared JSON-over-HTTPS transport for Account Aggregator clients.

Maps httpx failures onto the typed provider exceptions so Finvu and
Finfactor clients raise the same errors for the same conditions.
"""

import json
import logging

import httpx

from integrations.exceptions import (
    InvalidCustomerError,
    ProviderAPIError,
    ProviderAuthError,
    ProviderProtocolError,
    ProviderUnavailableError,
)

logger = logging.getLogger(__name__)

# Fragments AA providers use in error bodies when the customer id is unknown
_INVALID_CUSTOMER_MARKERS = ("invalid cust id", "invalid customer", "custid")


def encode_json_body(body: dict) -> bytes:
    """Serialize a request body once; these exact bytes are signed and sent."""
    return json.dumps(body, separators=(",", ":"), default=str).encode("utf-8")


def request_json(
    base_url: str,
    method: str,
    path: str,
    provider_name: str,
    timeout: float,
    headers: dict[str, str] | None = None,
    content: bytes | None = None,
) -> dict:
    """Send one request and return the decoded JSON object.

    Raises:
        ProviderAuthError: HTTP 401/403.
        InvalidCustomerError: HTTP 4xx whose body rejects the customer id.
        ProviderAPIError: Any other HTTP error status.
        ProviderUnavailableError: Connection failures and timeouts.
        ProviderProtocolError: A 2xx body that is not a JSON object.
    """
    request_headers = {"Content-Type": "application/json", "Accept": "application/json"}
    if headers:
        request_headers.update(headers)

    logger.debug("%s: %s %s", provider_name, method, path)
    try:
        with httpx.Client(base_url=base_url, timeout=timeout) as client:
            response = client.request(method, path, headers=request_headers, content=content)
            response.raise_for_status()
    except httpx.HTTPStatusError as exc:
        status = exc.response.status_code
        body_text = exc.response.text or ""
        logger.warning("%s: %s %s failed (HTTP %d)", provider_name, method, path, status)
        if status in (401, 403):
            raise ProviderAuthError(
                f"{provider_name} authentication failed (HTTP {status})",
                provider_name=provider_name,
            ) from exc
        if 400 <= status < 500 and any(m in body_text.lower() for m in _INVALID_CUSTOMER_MARKERS):
            raise InvalidCustomerError(
                f"{provider_name} rejected the customer identifier",
                provider_name=provider_name,
            ) from exc
        raise ProviderAPIError(
            f"{provider_name} API error (HTTP {status})",
            provider_name=provider_name,
            status_code=status,
        ) from exc
    except httpx.TimeoutException as exc:
        raise ProviderUnavailableError(
            f"{provider_name} request timed out: {exc}",
            provider_name=provider_name,
        ) from exc
    except httpx.TransportError as exc:
        # Refused, reset mid-response, or a malformed HTTP exchange
        raise ProviderUnavailableError(
            f"{provider_name} connection failed: {exc}",
            provider_name=provider_name,
        ) from exc

    if not response.content:
        return {}
    try:
        data = response.json()
    except ValueError as exc:
        raise ProviderProtocolError(
            f"{provider_name} returned a non-JSON response",
            provider_name=provider_name,
        ) from exc
    if not isinstance(data, dict):
        raise ProviderProtocolError(
            f"{provider_name} returned {type(data).__name__}, expected a JSON object",
            provider_name=provider_name,
        )
    return data

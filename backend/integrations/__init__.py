"""External API integrations.

This package contains:
- AA protocol: Common interface and request/response types for Account Aggregators
- Provider registry: Selects the configured AA client once at startup
- Finvu and Finfactor clients, plus an in-process mock
- JWS: Detached-signature signing and verification
"""

from integrations.aa_protocol import (
    AAClient,
    ConsentRequest,
    ConsentResult,
    FIRequestResult,
)
from integrations.provider_registry import create_aa_client, get_aa_client

__all__ = [
    "AAClient",
    "ConsentRequest",
    "ConsentResult",
    "FIRequestResult",
    "create_aa_client",
    "get_aa_client",
]

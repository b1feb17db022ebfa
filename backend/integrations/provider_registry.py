"""Account Aggregator provider selection.

The provider is chosen once, from ``AA_PROVIDER``. A real provider whose
credentials are missing is a startup error. The mock provider is the
development default and is refused in production.
"""

import importlib
import logging
from functools import lru_cache

from config import ProviderMode, settings
from integrations.aa_protocol import AAClient
from integrations.exceptions import ProviderAuthError

logger = logging.getLogger(__name__)

# Each tuple is (mode, module_path, class_name).
# Adding a new provider only requires appending one entry here.
PROVIDER_DEFINITIONS: list[tuple[ProviderMode, str, str]] = [
    (ProviderMode.FINVU, "integrations.finvu_client", "FinvuClient"),
    (ProviderMode.FINFACTOR, "integrations.finfactor_client", "FinfactorClient"),
    (ProviderMode.MOCK, "integrations.mock_aa_client", "MockAAClient"),
]

ALL_PROVIDER_MODES: list[ProviderMode] = [mode for mode, _, _ in PROVIDER_DEFINITIONS]


def create_aa_client(mode: ProviderMode | str | None = None) -> AAClient:
    """Instantiate the client for ``mode`` (defaults to ``settings.AA_PROVIDER``).

    Raises:
        ValueError: Unknown provider mode.
        ProviderAuthError: A real provider is selected without credentials.
        RuntimeError: The mock provider is selected in production.
    """
    mode = ProviderMode(mode or settings.AA_PROVIDER)
    if mode == ProviderMode.MOCK and settings.is_production:
        raise RuntimeError(
            "AA_PROVIDER=mock is not allowed when ENVIRONMENT=production; "
            "set AA_PROVIDER to finvu or finfactor"
        )
    for defined_mode, module_path, class_name in PROVIDER_DEFINITIONS:
        if defined_mode == mode:
            cls = getattr(importlib.import_module(module_path), class_name)
            break
    else:
        raise ValueError(f"No AA client registered for mode {mode.value!r}")

    client = cls()
    if mode != ProviderMode.MOCK and not client.is_configured():
        raise ProviderAuthError(
            f"AA_PROVIDER={mode.value} but {client.provider_name} credentials are missing",
            provider_name=client.provider_name,
        )

    if mode == ProviderMode.MOCK:
        logger.warning("AA provider: MOCK. No real Account Aggregator calls will be made.")
    else:
        logger.info("AA provider: %s", client.provider_name)
    return client


@lru_cache
def get_aa_client() -> AAClient:
    """Return the process-wide AA client (FastAPI dependency)."""
    return create_aa_client()

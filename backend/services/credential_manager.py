"""OS keychain storage for Account Aggregator secrets.

Each secret lives under the ``aa-pipeline`` keyring service with its
settings field name as the username, so ``KeychainSettingsSource`` can read
it back as that field. PEM secrets (the FIU signing key and the AA's
webhook public key) are normalised on the way in: a key copied from a
shell export with literal ``\\n`` sequences is stored as a real PEM block,
and anything that is not a PEM block is refused.
"""

import logging

import keyring
from keyring.errors import KeyringError

logger = logging.getLogger(__name__)

SERVICE_NAME = "aa-pipeline"

PEM_CREDENTIAL_KEYS: frozenset[str] = frozenset({"AA_PRIVATE_KEY", "AA_WEBHOOK_PUBLIC_KEY"})

CREDENTIAL_KEYS: frozenset[str] = PEM_CREDENTIAL_KEYS | {
    "AA_CLIENT_API_KEY",
    "FINFACTOR_USER_ID",
    "FINFACTOR_PASSWORD",
}


class CredentialValueError(ValueError):
    """A value that must not be stored for its key."""


def normalize_credential(key: str, value: str | None) -> str:
    """Return ``value`` in the form it is stored under ``key``.

    Raises:
        CredentialValueError: Empty value, or a PEM key whose value is not
            a complete PEM block.
    """
    value = (value or "").strip()
    if not value:
        raise CredentialValueError(f"{key} is empty")
    if key not in PEM_CREDENTIAL_KEYS:
        return value

    value = value.replace("\\n", "\n").strip()
    if not value.startswith("-----BEGIN ") or "\n-----END " not in value:
        raise CredentialValueError(f"{key} is not a PEM block")
    return value + "\n"


def get_credential(key: str) -> str | None:
    """Read ``key`` from the keychain; None when absent or unreadable."""
    try:
        return keyring.get_password(SERVICE_NAME, key)
    except KeyringError:
        logger.debug("keyring lookup failed for %s", key, exc_info=True)
        return None


def set_credential(key: str, value: str) -> bool:
    """Normalise and store a secret.

    Returns:
        ``True`` if stored, ``False`` for a key outside
        :data:`CREDENTIAL_KEYS`, an invalid value, or a keyring failure.
    """
    if key not in CREDENTIAL_KEYS:
        logger.warning("Refusing to store non-secret setting %s in keychain", key)
        return False
    try:
        value = normalize_credential(key, value)
    except CredentialValueError as e:
        logger.warning("Not storing %s: %s", key, e)
        return False

    try:
        keyring.set_password(SERVICE_NAME, key, value)
    except KeyringError:
        logger.warning("Failed to store %s in keychain", key, exc_info=True)
        return False
    logger.info("Stored %s in keychain", key)
    return True

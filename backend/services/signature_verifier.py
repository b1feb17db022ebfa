"""Authentication gate for inbound AA webhooks.

Nothing from a webhook body is trusted until :meth:`WebhookSignatureVerifier.verify`
has checked the detached JWS in ``x-jws-signature`` against the raw request
bytes. Every rejection logs a ``SECURITY:`` line and returns None.
"""

import logging
from pathlib import Path

from config import PRODUCTION_ENVIRONMENTS, WebhookVerification, settings
from integrations.jws import SignatureInvalidError, load_public_key, verify_detached_jws

logger = logging.getLogger(__name__)


class WebhookSignatureVerifier:
    """Verify webhook signatures with the provider's configured public key.

    Args:
        public_key: A loaded ``cryptography`` public key. When None, the key
            is read from ``AA_WEBHOOK_PUBLIC_KEY`` or
            ``AA_WEBHOOK_PUBLIC_KEY_FILE`` on first use.
        allowed_algorithms: JWS algorithms to accept. Defaults to
            ``AA_WEBHOOK_ALGORITHMS``.
        verification: ``enabled`` (default) or ``disabled``. Disabling is an
            explicit development switch and is refused in production.
        environment: Deployment environment name. Defaults to ``ENVIRONMENT``.
    """

    def __init__(
        self,
        public_key=None,
        allowed_algorithms: list[str] | None = None,
        verification: WebhookVerification | str | None = None,
        environment: str | None = None,
    ):
        mode = WebhookVerification(verification or settings.AA_WEBHOOK_VERIFICATION)
        if environment is None:
            production = settings.is_production
        else:
            production = environment.lower() in PRODUCTION_ENVIRONMENTS
        self._bypass = mode == WebhookVerification.DISABLED
        if self._bypass:
            if production:
                raise RuntimeError(
                    "AA_WEBHOOK_VERIFICATION=disabled is not allowed when ENVIRONMENT=production"
                )
            logger.warning(
                "SECURITY: webhook signature verification is DISABLED "
                "(AA_WEBHOOK_VERIFICATION=disabled). Never use this outside development."
            )
        self._algorithms = allowed_algorithms or settings.webhook_algorithms
        self._public_key = public_key

    @property
    def bypassed(self) -> bool:
        return self._bypass

    def _get_public_key(self):
        if self._public_key is not None:
            return self._public_key

        material = settings.AA_WEBHOOK_PUBLIC_KEY
        if not material and settings.AA_WEBHOOK_PUBLIC_KEY_FILE:
            try:
                material = Path(settings.AA_WEBHOOK_PUBLIC_KEY_FILE).read_text()
            except OSError as e:
                logger.error("SECURITY: cannot read AA_WEBHOOK_PUBLIC_KEY_FILE: %s", e)
                return None
        if not material:
            return None

        try:
            self._public_key = load_public_key(material)
        except ValueError as e:
            logger.error("SECURITY: webhook public key is invalid: %s", e)
            return None
        return self._public_key

    def verify(self, signature_header: str | None, raw_body: bytes | None, parsed_body):
        """Return ``parsed_body`` if the signature covers ``raw_body``, else None.

        Args:
            signature_header: Value of the ``x-jws-signature`` header.
            raw_body: Request body bytes exactly as received.
            parsed_body: The body already parsed from ``raw_body``.
        """
        if self._bypass:
            logger.warning("SECURITY: accepting webhook WITHOUT signature verification")
            return parsed_body

        if not signature_header:
            logger.error("SECURITY: missing x-jws-signature header, rejecting webhook")
            return None
        if not raw_body:
            logger.error("SECURITY: missing or empty raw request body, rejecting webhook")
            return None

        public_key = self._get_public_key()
        if public_key is None:
            logger.error("SECURITY: webhook public key not configured, rejecting webhook")
            return None

        try:
            header = verify_detached_jws(signature_header, raw_body, public_key, self._algorithms)
        except SignatureInvalidError as e:
            logger.error("SECURITY: webhook signature rejected: %s", e)
            return None

        logger.debug("Webhook signature verified (alg=%s kid=%s)", header.get("alg"), header.get("kid"))
        return parsed_body

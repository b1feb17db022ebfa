"""Logging setup for the AA pipeline.

Everything goes to stderr at ``LOG_LEVEL``. Webhook rejections are logged
by the signature verifier with a ``SECURITY:`` prefix; when
``SECURITY_LOG_FILE`` is set those lines are also appended to that file,
whichever logger emitted them.
"""

import logging

from config import settings

LOG_FORMAT = "%(asctime)s %(levelname)-8s %(name)s  %(message)s"
SECURITY_LOG_FORMAT = "%(asctime)s %(name)s  %(message)s"
SECURITY_PREFIX = "SECURITY:"

# Loggers that flood DEBUG/INFO with per-request or per-statement output
QUIET_LOGGERS = (
    "sqlalchemy.engine",
    "sqlalchemy.pool",
    "httpx",
    "httpcore",
    "keyring",
)


class SecurityEventFilter(logging.Filter):
    """Pass only records whose message starts with ``SECURITY:``."""

    def filter(self, record: logging.LogRecord) -> bool:
        return record.getMessage().startswith(SECURITY_PREFIX)


def _security_handler(path: str) -> logging.Handler:
    handler = logging.FileHandler(path, encoding="utf-8")
    handler.setLevel(logging.WARNING)
    handler.setFormatter(logging.Formatter(SECURITY_LOG_FORMAT))
    handler.addFilter(SecurityEventFilter())
    return handler


def setup_logging(log_level: str | None = None, security_log_file: str | None = None) -> None:
    """Configure root logging.

    Args:
        log_level: Overrides ``settings.LOG_LEVEL`` (used by scripts'
            ``--verbose`` flags).
        security_log_file: Overrides ``settings.SECURITY_LOG_FILE``.

    Safe to call more than once: ``force=True`` closes the handlers from
    any earlier call, including a previous security file handler.
    """
    level_name = (log_level or settings.LOG_LEVEL).upper()
    logging.basicConfig(
        format=LOG_FORMAT,
        datefmt="%H:%M:%S",
        level=getattr(logging, level_name),
        force=True,
    )

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    path = security_log_file or settings.SECURITY_LOG_FILE
    if path:
        logging.getLogger().addHandler(_security_handler(path))

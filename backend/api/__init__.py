"""API route handlers."""
from . import consents, webhooks

__all__ = ["consents", "webhooks"]

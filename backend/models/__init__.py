"""SQLAlchemy ORM models."""

from .consent import Consent
from .consent_event import ConsentEvent
from .fi_batch import FIBatch
from .fi_holding import FIHolding
from .fi_transaction import FITransaction
from .linked_account import LinkedAccount
from .utils import generate_uuid

__all__ = ["Consent", "ConsentEvent", "FIBatch", "FIHolding", "FITransaction", "LinkedAccount", "generate_uuid"]

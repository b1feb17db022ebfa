"""Deterministic deduplication keys for FI holdings and transactions.

A key identifies one financial fact. It is built only from the fact itself
(never from processing time, random ids or the delivering session), so the
same holding reported by a redelivered webhook, a re-fetch, or a later
session hashes to the same key.
"""

import hashlib
import json
from datetime import date, datetime
from decimal import Decimal

NO_INSTRUMENT_ID = "__NO_INSTRUMENT_ID__"
NO_TRANSACTION_ID = "__NO_TRANSACTION_ID__"


def canonical_json(value) -> str:
    """Serialize with sorted keys and compact separators.

    ``default=str`` renders Decimal and date values the same way on every run.
    """
    return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=True, default=str)


def _day(value: date | datetime) -> str:
    if isinstance(value, datetime):
        value = value.date()
    return value.isoformat()


def _amount(value) -> str:
    # normalize() makes 100, 100.0 and "100.00" hash alike
    amount = Decimal(str(value)).normalize()
    return format(amount, "f")


def _digest(parts: list[str]) -> str:
    return hashlib.sha256("|".join(parts).encode("utf-8")).hexdigest()


def holding_key(
    account_id: str,
    instrument_id: str | None,
    as_of_date: date | datetime,
    raw_details,
) -> str:
    """Key for one holding snapshot.

    A missing instrument id hashes as an explicit placeholder so it can never
    collide with an empty or real id.
    """
    return _digest(
        [
            account_id,
            NO_INSTRUMENT_ID if instrument_id is None else instrument_id,
            _day(as_of_date),
            canonical_json(raw_details),
        ]
    )


def transaction_key(
    account_id: str,
    transaction_id: str | None,
    transaction_date: date | datetime,
    amount,
    raw_details,
) -> str:
    """Key for one transaction; adds the transaction id and amount."""
    return _digest(
        [
            account_id,
            NO_TRANSACTION_ID if transaction_id is None else transaction_id,
            _day(transaction_date),
            _amount(amount),
            canonical_json(raw_details),
        ]
    )

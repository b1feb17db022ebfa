"""FI payload classifier and parser.

Turns one provider FI-data payload into normalized accounts, holdings and
transactions using the tables in :mod:`services.fi_field_mappings`. A record
that cannot be mapped produces a :class:`RecordParseError` entry and parsing
carries on with the next record; nothing here touches the database.
"""

import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal

from integrations.parsing_utils import as_list, first_value, get_path, parse_amount, parse_date
from services.fi_field_mappings import (
    ACCOUNT_MAPPING,
    ACCOUNT_SELF,
    ACCOUNT_STATUSES,
    ACCOUNT_TYPE_KEYWORDS,
    CATEGORY_MAPPINGS,
    DEFAULT_FI_TYPE,
    FI_TYPE_ALIASES,
    FIP_ID_KEYWORDS,
    TRANSACTION_DETAIL_FIELDS,
    TRANSACTION_MAPPING,
    TRANSACTION_TYPE_KEYWORDS,
    HoldingMapping,
)

logger = logging.getLogger(__name__)

FI_DATA_KEYS = ("FI", "fi", "data")


class RecordParseError(Exception):
    """One account, holding or transaction could not be normalized."""

    def __init__(self, message: str, account_ref: str | None = None, record: str | None = None):
        self.account_ref = account_ref
        self.record = record
        super().__init__(message)

    def __str__(self) -> str:
        context = []
        if self.account_ref:
            context.append(f"account {self.account_ref}")
        if self.record:
            context.append(self.record)
        prefix = f"[{', '.join(context)}] " if context else ""
        return f"{prefix}{self.args[0]}"


@dataclass
class ParsedHolding:
    instrument_name: str
    instrument_id: str | None
    quantity: Decimal
    average_price: Decimal
    current_value: Decimal
    invested_amount: Decimal
    as_of_date: date
    details: dict


@dataclass
class ParsedTransaction:
    transaction_ref: str | None
    transaction_type: str
    transaction_date: date
    amount: Decimal
    narration: str | None
    reference: str | None
    details: dict


@dataclass
class ParsedAccount:
    """A normalized account plus whatever of its records could be parsed."""

    fip_id: str
    account_ref: str
    masked_account_number: str
    fi_type: str
    account_type: str
    account_status: str = "ACTIVE"
    link_ref_number: str | None = None
    profile: dict | None = None
    summary: dict | None = None
    balance: dict | None = None
    holdings: list[ParsedHolding] = field(default_factory=list)
    transactions: list[ParsedTransaction] = field(default_factory=list)
    holdings_attempted: int = 0
    transactions_attempted: int = 0
    errors: list[RecordParseError] = field(default_factory=list)

    @property
    def metadata(self) -> dict:
        """Profile/summary/balance, carried opaque onto the linked account."""
        return {
            "profile": self.profile,
            "summary": self.summary,
            "balance": self.balance,
        }


@dataclass
class ParsedPayload:
    accounts: list[ParsedAccount] = field(default_factory=list)
    accounts_attempted: int = 0
    errors: list[RecordParseError] = field(default_factory=list)


def has_fi_data(payload) -> bool:
    """True if a payload carries FI records under one of the known keys."""
    return isinstance(payload, dict) and any(payload.get(k) for k in FI_DATA_KEYS)


def _match_keywords(value: str, table) -> str | None:
    for keywords, fi_type in table:
        if any(keyword in value for keyword in keywords):
            return fi_type
    return None


def normalize_fi_type(tag) -> str | None:
    """Map an explicit FI type tag through the alias table, or None."""
    if not isinstance(tag, str) or not tag.strip():
        return None
    normalized = tag.upper().replace("_", "").replace("-", "")
    return _match_keywords(normalized, FI_TYPE_ALIASES)


def classify_account(account: dict, fip_id: str | None) -> str:
    """Decide an account's FI category.

    Stages run in order and the first one that recognises something wins:
    explicit ``fiType`` tag, then account-type keywords, then FIP-id
    keywords, then the default category.
    """
    explicit = normalize_fi_type(first_value(account, ACCOUNT_MAPPING.explicit_fi_type))
    if explicit:
        return explicit

    account_type = str(first_value(account, ACCOUNT_MAPPING.account_type) or "").upper()
    if account_type:
        by_type = _match_keywords(account_type, ACCOUNT_TYPE_KEYWORDS)
        if by_type:
            return by_type

    if fip_id:
        by_fip = _match_keywords(fip_id.lower(), FIP_ID_KEYWORDS)
        if by_fip:
            return by_fip

    return DEFAULT_FI_TYPE


def normalize_transaction_type(value) -> str:
    """Collapse provider transaction types onto CREDIT/DEBIT/BUY/SELL/...."""
    normalized = str(value or "UNKNOWN").strip().upper()
    return _match_keywords(normalized, TRANSACTION_TYPE_KEYWORDS) or normalized


def _decimal(record: dict, candidates: tuple[str, ...], label: str) -> Decimal:
    value = first_value(record, candidates)
    try:
        return parse_amount(value)
    except ValueError as e:
        raise RecordParseError(f"Invalid {label}: {e}") from e


def _record_date(record: dict, candidates: tuple[str, ...], default: date, label: str) -> date:
    value = first_value(record, candidates)
    if value is None:
        return default
    parsed = parse_date(value)
    if parsed is None:
        raise RecordParseError(f"Invalid {label}: {value!r}")
    return parsed


def _optional_str(value) -> str | None:
    if value is None:
        return None
    return str(value)


def _holding_records(account: dict, mapping: HoldingMapping) -> list:
    for path in mapping.holding_paths:
        if path == ACCOUNT_SELF:
            return [account]
        found = get_path(account, path)
        if found is not None:
            return as_list(found)
    return []


def parse_holding(record, fi_type: str, mapping: HoldingMapping, default_as_of: date) -> ParsedHolding:
    """Map one raw holding record; raises :class:`RecordParseError`."""
    if not isinstance(record, dict):
        raise RecordParseError(f"Holding must be an object, got {type(record).__name__}")

    name = first_value(record, mapping.instrument_name) or mapping.default_instrument_name
    if mapping.fixed_quantity is not None:
        quantity = mapping.fixed_quantity
    else:
        quantity = _decimal(record, mapping.quantity, "quantity")

    details = dict(record)
    details["fiType"] = fi_type
    for key, candidates in mapping.detail_fields.items():
        details[key] = first_value(record, candidates)

    return ParsedHolding(
        instrument_name=mapping.name_format.format(name),
        instrument_id=_optional_str(first_value(record, mapping.instrument_id)),
        quantity=quantity,
        average_price=_decimal(record, mapping.average_price, "average price"),
        current_value=_decimal(record, mapping.current_value, "current value"),
        invested_amount=_decimal(record, mapping.invested_amount, "invested amount"),
        as_of_date=_record_date(record, mapping.as_of_date, default_as_of, "as-of date"),
        details=details,
    )


def parse_transaction(record, fi_type: str, default_date: date) -> ParsedTransaction:
    """Map one raw transaction record; raises :class:`RecordParseError`."""
    if not isinstance(record, dict):
        raise RecordParseError(f"Transaction must be an object, got {type(record).__name__}")

    m = TRANSACTION_MAPPING
    details = dict(record)
    details["fiType"] = fi_type
    for key in TRANSACTION_DETAIL_FIELDS.get(fi_type, ()):
        details[key] = record.get(key)

    return ParsedTransaction(
        transaction_ref=_optional_str(first_value(record, m.transaction_ref)),
        transaction_type=normalize_transaction_type(first_value(record, m.transaction_type)),
        transaction_date=_record_date(record, m.transaction_date, default_date, "transaction date"),
        amount=_decimal(record, m.amount, "amount"),
        narration=_optional_str(first_value(record, m.narration)),
        reference=_optional_str(first_value(record, m.reference)),
        details=details,
    )


def _balance(summary) -> dict | None:
    if not isinstance(summary, dict):
        return None
    raw = first_value(summary, ACCOUNT_MAPPING.balance)
    if raw is None:
        return None
    try:
        amount = parse_amount(raw)
    except ValueError:
        logger.debug("Ignoring non-numeric balance %r", raw)
        return None
    return {"amount": str(amount), "currency": summary.get("currency") or "INR"}


def parse_account(account, fip_id: str | None, default_as_of: date) -> ParsedAccount:
    """Normalize one account and every holding/transaction nested in it.

    Raises:
        RecordParseError: Only when the account itself is unusable (no
            identifier). Bad holdings/transactions are collected on the
            returned account instead.
    """
    if not isinstance(account, dict):
        raise RecordParseError(f"Account must be an object, got {type(account).__name__}")

    account_ref = first_value(account, ACCOUNT_MAPPING.account_ref)
    if account_ref is None:
        raise RecordParseError("Account has no identifier", record=f"fip {fip_id or 'unknown'}")
    account_ref = str(account_ref)

    fi_type = classify_account(account, fip_id)
    summary = account.get("Summary") if isinstance(account.get("Summary"), dict) else None
    status = str((summary or {}).get("status") or account.get("status") or "ACTIVE").upper()

    parsed = ParsedAccount(
        fip_id=fip_id or "",
        account_ref=account_ref,
        masked_account_number=str(first_value(account, ACCOUNT_MAPPING.masked_account_number) or "XXXX"),
        fi_type=fi_type,
        account_type=str(first_value(account, ACCOUNT_MAPPING.account_type) or "UNKNOWN"),
        account_status=status if status in ACCOUNT_STATUSES else "ACTIVE",
        link_ref_number=_optional_str(first_value(account, ACCOUNT_MAPPING.link_ref_number)),
        profile=account.get("Profile"),
        summary=summary,
        balance=_balance(summary),
    )

    mapping = CATEGORY_MAPPINGS.get(fi_type, CATEGORY_MAPPINGS[DEFAULT_FI_TYPE])
    for index, record in enumerate(_holding_records(account, mapping)):
        parsed.holdings_attempted += 1
        try:
            parsed.holdings.append(parse_holding(record, fi_type, mapping, default_as_of))
        except RecordParseError as e:
            e.account_ref = account_ref
            e.record = f"holding #{index}"
            parsed.errors.append(e)
            logger.warning("Skipping unparseable record: %s", e)

    txn_records = []
    for path in TRANSACTION_MAPPING.transaction_paths:
        found = get_path(account, path)
        if found is not None:
            txn_records = as_list(found)
            break
    for index, record in enumerate(txn_records):
        parsed.transactions_attempted += 1
        try:
            parsed.transactions.append(parse_transaction(record, fi_type, default_as_of))
        except RecordParseError as e:
            e.account_ref = account_ref
            e.record = f"transaction #{index}"
            parsed.errors.append(e)
            logger.warning("Skipping unparseable record: %s", e)

    return parsed


def parse_fi_payload(payload, default_as_of: date) -> ParsedPayload:
    """Parse a whole FI payload (``{"FI": [{"fipId": ..., "data": {"account": ...}}]}``).

    Args:
        payload: The raw FI JSON as delivered by the provider.
        default_as_of: Date used for records that carry no date of their own.
            Must be stable for a given batch so replays hash identically.
    """
    result = ParsedPayload()
    if not isinstance(payload, dict):
        result.errors.append(RecordParseError("FI payload must be a JSON object"))
        return result

    entries = None
    for key in FI_DATA_KEYS:
        if payload.get(key):
            entries = payload[key]
            break
    if entries is None:
        entries = [payload]

    for entry in as_list(entries):
        if not isinstance(entry, dict):
            result.accounts_attempted += 1
            result.errors.append(RecordParseError("FI entry must be an object"))
            continue
        fip_id = _optional_str(first_value(entry, ACCOUNT_MAPPING.fip_id))
        accounts = None
        for path in ACCOUNT_MAPPING.account_paths:
            accounts = get_path(entry, path)
            if accounts is not None:
                break

        for account in as_list(accounts):
            result.accounts_attempted += 1
            try:
                parsed = parse_account(account, fip_id, default_as_of)
            except RecordParseError as e:
                result.errors.append(e)
                logger.warning("Skipping unparseable account: %s", e)
                continue
            result.accounts.append(parsed)
            result.errors.extend(parsed.errors)

    return result

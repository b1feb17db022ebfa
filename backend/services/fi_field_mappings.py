"""Declarative field mappings for FI data from AA providers.

FIPs name and nest the same facts differently per instrument category.
Everything category-specific lives in the tables below; the parser in
:mod:`services.fi_parser` only walks them. Supporting a new category means
adding a row here.
"""

from dataclasses import dataclass, field
from decimal import Decimal

DEFAULT_FI_TYPE = "DEPOSIT"

# Marker in ``HoldingMapping.holding_paths``: the account record itself is the holding
ACCOUNT_SELF = "@account"


@dataclass(frozen=True)
class HoldingMapping:
    """Where one category keeps its holdings and what each field is called.

    Every tuple of names is a candidate list: the first key present with a
    non-empty value wins.
    """

    holding_paths: tuple[str, ...]
    instrument_name: tuple[str, ...] = ()
    instrument_id: tuple[str, ...] = ()
    quantity: tuple[str, ...] = ()
    current_value: tuple[str, ...] = ()
    invested_amount: tuple[str, ...] = ()
    average_price: tuple[str, ...] = ()
    as_of_date: tuple[str, ...] = ("asOfDate",)
    default_instrument_name: str = "Unknown"
    name_format: str = "{}"
    fixed_quantity: Decimal | None = None
    detail_fields: dict[str, tuple[str, ...]] = field(default_factory=dict)


CATEGORY_MAPPINGS: dict[str, HoldingMapping] = {
    "DEPOSIT": HoldingMapping(holding_paths=()),
    "MUTUAL_FUNDS": HoldingMapping(
        holding_paths=("Transactions.Transaction.schemeData", "Holdings.Holding", "holdings"),
        instrument_name=("schemeName", "issuerName", "name"),
        instrument_id=("isin", "instrumentId", "schemeCode", "amfi"),
        quantity=("units", "holding"),
        current_value=("currentValue", "closingValue"),
        invested_amount=("costValue", "investedValue"),
        average_price=("nav", "purchaseNav"),
        as_of_date=("asOfDate", "navDate"),
        default_instrument_name="Unknown Scheme",
        detail_fields={
            "folioNo": ("folioNo",),
            "amcName": ("amc", "amcName"),
            "schemeType": ("schemeType", "category"),
        },
    ),
    "EQUITIES": HoldingMapping(
        holding_paths=("Holdings.Holding", "Securities.Security", "holdings"),
        instrument_name=("companyName", "issuerName", "name"),
        instrument_id=("isin", "instrumentId", "symbol", "scripCode"),
        quantity=("quantity", "freeBalance", "holding"),
        current_value=("currentValue", "closingValue"),
        invested_amount=("costValue", "investedValue"),
        average_price=("averagePrice", "purchasePrice"),
        default_instrument_name="Unknown Stock",
        detail_fields={
            "exchange": ("exchange",),
            "sector": ("sector", "industry"),
            "dpId": ("dpId",),
            "clientId": ("clientId",),
        },
    ),
    "INSURANCE": HoldingMapping(
        holding_paths=("Policies.Policy", "policies", ACCOUNT_SELF),
        instrument_name=("policyName", "planName", "productName"),
        instrument_id=("policyNumber", "policyNo"),
        current_value=("sumAssured", "maturityValue"),
        invested_amount=("premium", "totalPremiumPaid"),
        average_price=("premium",),
        default_instrument_name="Unknown Policy",
        fixed_quantity=Decimal("1"),
        detail_fields={
            "policyType": ("policyType", "type"),
            "policyStatus": ("policyStatus", "status"),
            "maturityDate": ("maturityDate",),
            "premiumFrequency": ("premiumFrequency", "mode"),
            "coverageAmount": ("coverageAmount", "sumAssured"),
            "nominees": ("nominees",),
        },
    ),
    "TERM_DEPOSIT": HoldingMapping(
        holding_paths=(ACCOUNT_SELF,),
        instrument_name=("type",),
        instrument_id=("accountNumber", "fdNumber", "maskedAccNumber"),
        current_value=("currentValue", "maturityAmount"),
        invested_amount=("openingBalance", "principal"),
        default_instrument_name="Fixed",
        name_format="{} Deposit",
        fixed_quantity=Decimal("1"),
        detail_fields={
            "interestRate": ("interestRate", "rate"),
            "maturityDate": ("maturityDate",),
            "tenureMonths": ("tenureMonths", "tenure"),
            "interestPayout": ("interestPayoutFrequency", "payoutFrequency"),
        },
    ),
}
# SIPs are reported in mutual-fund statements
CATEGORY_MAPPINGS["SIP"] = CATEGORY_MAPPINGS["MUTUAL_FUNDS"]


@dataclass(frozen=True)
class TransactionMapping:
    """Transaction field candidates, shared by every category."""

    transaction_paths: tuple[str, ...] = ("Transactions.Transaction", "transactions")
    transaction_ref: tuple[str, ...] = ("txnId", "transactionId", "reference")
    transaction_type: tuple[str, ...] = ("type", "transactionType")
    amount: tuple[str, ...] = ("amount", "transactionAmount")
    transaction_date: tuple[str, ...] = ("transactionTimestamp", "transactionDate", "valueDate", "date")
    narration: tuple[str, ...] = ("narration", "description", "remarks")
    reference: tuple[str, ...] = ("reference", "txnId")


TRANSACTION_MAPPING = TransactionMapping()

# Extra per-category keys copied into transaction details
TRANSACTION_DETAIL_FIELDS: dict[str, tuple[str, ...]] = {
    "MUTUAL_FUNDS": ("units", "nav", "schemeName", "folioNo"),
    "SIP": ("units", "nav", "schemeName", "folioNo"),
    "EQUITIES": ("quantity", "price", "exchange", "symbol"),
}


@dataclass(frozen=True)
class AccountMapping:
    """Field candidates for the account record inside an FI entry."""

    account_paths: tuple[str, ...] = ("data.account", "Account", "account")
    fip_id: tuple[str, ...] = ("fipId", "FipId", "fipID")
    account_ref: tuple[str, ...] = ("maskedAccNumber", "accountId", "linkedAccRef")
    masked_account_number: tuple[str, ...] = ("maskedAccNumber",)
    account_type: tuple[str, ...] = ("type", "accountType")
    explicit_fi_type: tuple[str, ...] = ("fiType", "FIType")
    link_ref_number: tuple[str, ...] = ("linkRefNumber", "linkedAccRef")
    balance: tuple[str, ...] = ("currentBalance", "closingBalance", "balance")


ACCOUNT_MAPPING = AccountMapping()

# Ordered classifier tables: the first matching row wins within each stage.
# Stage 1: explicit fiType tag, matched on the tag with "_"/"-" removed.
FI_TYPE_ALIASES: tuple[tuple[tuple[str, ...], str], ...] = (
    (("TERM", "FIXED", "FD"), "TERM_DEPOSIT"),
    (("MUTUAL", "MF"), "MUTUAL_FUNDS"),
    (("EQUIT", "SECURITIES", "DEMAT"), "EQUITIES"),
    (("INSURANCE",), "INSURANCE"),
    (("SIP",), "SIP"),
    (("DEPOSIT",), "DEPOSIT"),
)

# Stage 2: account type, upper-cased.
ACCOUNT_TYPE_KEYWORDS: tuple[tuple[tuple[str, ...], str], ...] = (
    (("SAVINGS", "CURRENT", "OVERDRAFT"), "DEPOSIT"),
    (("FIXED", "TERM", "FD"), "TERM_DEPOSIT"),
    (("MUTUAL", "MF", "SIP"), "MUTUAL_FUNDS"),
    (("DEMAT", "EQUITY", "SECURITIES"), "EQUITIES"),
    (("INSURANCE", "POLICY"), "INSURANCE"),
)

# Stage 3: FIP identifier, lower-cased.
FIP_ID_KEYWORDS: tuple[tuple[tuple[str, ...], str], ...] = (
    (("cams", "kfintech", "mutual", "amc", "mf"), "MUTUAL_FUNDS"),
    (("nsdl", "cdsl", "demat"), "EQUITIES"),
    (("lic", "insurance"), "INSURANCE"),
    (("bank", "barb"), "DEPOSIT"),
)

# Ordered transaction type keywords; unmatched types are kept upper-cased.
TRANSACTION_TYPE_KEYWORDS: tuple[tuple[tuple[str, ...], str], ...] = (
    (("CREDIT", "DEPOSIT", "PURCHASE"), "CREDIT"),
    (("DEBIT", "WITHDRAW", "REDEMPTION"), "DEBIT"),
    (("BUY",), "BUY"),
    (("SELL",), "SELL"),
    (("DIVIDEND",), "DIVIDEND"),
    (("INTEREST",), "INTEREST"),
    (("SIP",), "SIP"),
    (("SWITCH",), "SWITCH"),
)

ACCOUNT_STATUSES = frozenset({"ACTIVE", "INACTIVE", "CLOSED"})

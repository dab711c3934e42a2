"""Pattern tables: the tunable surface of the extraction engine.

Every table is ordered and read-only after import. Extractors walk a pattern
list front to back and take the first usable capture, so more specific
(currency-tagged, labelled) patterns sit before generic numeric ones.

To extend bank or language coverage, build a new :class:`PatternTables`
(``dataclasses.replace(DEFAULT_TABLES, ...)``) and hand it to a
``TransactionParser``. The algorithm itself stays untouched.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass
from types import MappingProxyType

from .models import TransactionType

_I = re.IGNORECASE

# Digits with optional thousands separators and an optional 2-digit fraction.
_NUMBER = r"(\d+(?:,\d+)*(?:\.\d{2})?)"

AMOUNT_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"Rs\.?\s*" + _NUMBER, _I),
    re.compile(r"₹\s*" + _NUMBER, _I),
    re.compile(r"INR\s*" + _NUMBER, _I),
    re.compile(_NUMBER + r"\s*(?:rupees|rs)", _I),
)

_VPA = r"([a-zA-Z0-9._-]+@[a-zA-Z0-9.-]+)"

UPI_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"UPI\s*ID:?\s*" + _VPA, _I),
    re.compile(_VPA, _I),
)

# ``reference`` precedes ``ref`` so the label word is never split.
REFERENCE_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(
        r"(?:reference|ref|txn|transaction|utr)\.?\s*(?:no\.?|id\.?|#)?\s*:?\s*([a-zA-Z0-9]+)",
        _I,
    ),
    re.compile(r"([0-9]{12,16})"),
)

ACCOUNT_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"(?:a/c|account|acc)\.?\s*(?:no\.?|#)?\s*:?\s*([x*]*\d{4,})", _I),
    re.compile(r"([x*]+\d{4,})", _I),
)

_DATE_NUMERIC = r"\d{1,2}[/-]\d{1,2}[/-]\d{2,4}"
_DATE_MONTH_NAME = r"\d{1,2}[/-][a-z]{3}[/-]\d{2,4}"
_TIME = r"\d{1,2}:\d{2}(?::\d{2})?(?:\s*[AP]M)?"

DATETIME_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(rf"({_DATE_NUMERIC}|{_DATE_MONTH_NAME})\s*(?:at\s*)?({_TIME})", _I),
    re.compile(rf"({_DATE_NUMERIC}|{_DATE_MONTH_NAME})", _I),
    re.compile(rf"({_TIME})", _I),
)

# Declared order is the tie-break: income, then expense, then transfer.
TYPE_KEYWORDS: Mapping[TransactionType, tuple[str, ...]] = MappingProxyType(
    {
        TransactionType.INCOME: (
            "received",
            "credited",
            "deposit",
            "salary",
            "refund",
            "cashback",
            "bonus",
            "dividend",
            "interest",
            "payment received",
            "money added",
        ),
        TransactionType.EXPENSE: (
            "debited",
            "paid",
            "withdrawn",
            "purchase",
            "bought",
            "spending",
            "bill payment",
            "transfer to",
            "sent",
            "payment made",
            "charged",
        ),
        TransactionType.TRANSFER: (
            "transferred",
            "transfer",
            "moved",
            "fund transfer",
        ),
    }
)

DEFAULT_CATEGORY = "Other"

CATEGORY_KEYWORDS: Mapping[str, tuple[str, ...]] = MappingProxyType(
    {
        "Food": (
            "zomato",
            "swiggy",
            "ubereats",
            "foodpanda",
            "dominos",
            "starbucks",
            "pizza",
            "restaurant",
            "cafe",
            "coffee",
            "food",
        ),
        "Transport": ("uber", "ola", "metro", "bus", "taxi", "petrol", "fuel", "parking"),
        "Shopping": ("amazon", "flipkart", "myntra", "jabong", "shop", "store", "mall"),
        "Entertainment": ("netflix", "spotify", "youtube", "movie", "cinema", "bookmyshow"),
        "Bills": ("electricity", "water", "gas", "mobile", "broadband", "wifi", "recharge"),
        "Investment": ("sip", "mutual fund", "share", "stock", "trading", "zerodha", "groww"),
        "Salary": ("salary", "payroll", "stipend"),
        "Health": ("pharmacy", "hospital", "clinic", "apollo", "medplus"),
        "Education": ("school", "college", "tuition", "udemy", "coursera"),
    }
)

# Common SMS vocabulary that is never a merchant name.
MERCHANT_STOPWORDS: frozenset[str] = frozenset(
    {
        "account",
        "amount",
        "available",
        "balance",
        "bank",
        "been",
        "card",
        "credited",
        "customer",
        "date",
        "dated",
        "dear",
        "debited",
        "done",
        "from",
        "have",
        "info",
        "into",
        "paid",
        "payment",
        "received",
        "rupees",
        "sent",
        "successful",
        "successfully",
        "this",
        "through",
        "thru",
        "towards",
        "transaction",
        "transfer",
        "transferred",
        "using",
        "with",
        "your",
    }
)

TRANSACTION_INDICATORS: tuple[str, ...] = (
    "rs.",
    "₹",
    "inr",
    "debited",
    "credited",
    "paid",
    "received",
    "upi",
    "transfer",
    "transaction",
    "bank",
    "account",
)

MIN_REFERENCE_LENGTH = 8
MIN_INDICATOR_HITS = 2
MAX_KEYWORDS = 5


@dataclass(frozen=True, slots=True)
class PatternTables:
    """Bundle of every table the engine consults."""

    amount: tuple[re.Pattern[str], ...] = AMOUNT_PATTERNS
    upi: tuple[re.Pattern[str], ...] = UPI_PATTERNS
    reference: tuple[re.Pattern[str], ...] = REFERENCE_PATTERNS
    account: tuple[re.Pattern[str], ...] = ACCOUNT_PATTERNS
    date_time: tuple[re.Pattern[str], ...] = DATETIME_PATTERNS
    type_keywords: Mapping[TransactionType, tuple[str, ...]] = TYPE_KEYWORDS
    category_keywords: Mapping[str, tuple[str, ...]] = CATEGORY_KEYWORDS
    merchant_stopwords: frozenset[str] = MERCHANT_STOPWORDS
    transaction_indicators: tuple[str, ...] = TRANSACTION_INDICATORS
    min_reference_length: int = MIN_REFERENCE_LENGTH
    min_indicator_hits: int = MIN_INDICATOR_HITS

    @property
    def category_names(self) -> tuple[str, ...]:
        return tuple(self.category_keywords)


DEFAULT_TABLES = PatternTables()


__all__ = [
    "ACCOUNT_PATTERNS",
    "AMOUNT_PATTERNS",
    "CATEGORY_KEYWORDS",
    "DATETIME_PATTERNS",
    "DEFAULT_CATEGORY",
    "DEFAULT_TABLES",
    "MAX_KEYWORDS",
    "MERCHANT_STOPWORDS",
    "PatternTables",
    "REFERENCE_PATTERNS",
    "TRANSACTION_INDICATORS",
    "TYPE_KEYWORDS",
    "UPI_PATTERNS",
]

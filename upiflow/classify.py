"""Keyword-driven classification: transaction type, merchant/category, description.

All lookups are case-insensitive substring scans in the declared order of
the keyword tables; the first hit wins.
"""

from __future__ import annotations

import re
from collections.abc import Mapping

from .extractors import tokenize
from .models import MerchantInfo, TransactionType
from .patterns import DEFAULT_CATEGORY

# Characters of context taken on each side of a matched merchant keyword.
MERCHANT_WINDOW = 20
# Longest original-message prefix kept in a fallback description.
DESCRIPTION_MAX_CHARS = 50

UNKNOWN_DESCRIPTION = "Unknown transaction"


def classify_type(
    text: str, type_keywords: Mapping[TransactionType, tuple[str, ...]]
) -> TransactionType:
    """Return the first category whose keyword occurs in ``text``.

    Categories are checked in table order (income, expense, transfer), so a
    message carrying both "credited" and "debited" is income. With no hit the
    result is ``EXPENSE``: most unlabeled UPI alerts are debits.
    """

    lowered = text.lower()
    for txn_type, keywords in type_keywords.items():
        for keyword in keywords:
            if keyword in lowered:
                return txn_type
    return TransactionType.EXPENSE


def _merchant_name_near(
    text: str, index: int, keyword: str, stopwords: frozenset[str]
) -> str:
    start = max(0, index - MERCHANT_WINDOW)
    end = min(len(text), index + len(keyword) + MERCHANT_WINDOW)
    for token in tokenize(text[start:end]):
        if len(token) > 3 and token.isalpha() and token.lower() not in stopwords:
            return token.upper()
    return keyword.upper()


def infer_merchant(
    text: str,
    category_keywords: Mapping[str, tuple[str, ...]],
    *,
    stopwords: frozenset[str] = frozenset(),
) -> MerchantInfo:
    """Guess the merchant and its category from a category keyword hit.

    On the first keyword found, the merchant is the first alphabetic token
    longer than three characters (ignoring ``stopwords``) within
    ``MERCHANT_WINDOW`` characters of the keyword, upper-cased; failing that,
    the keyword itself. Without any hit the result is ``(None, "Other")``.
    Substring hits inside unrelated words ("bus" in "business") are an
    accepted limitation.
    """

    for category, keywords in category_keywords.items():
        for keyword in keywords:
            # Lower-casing can change length ("İ"), so indices come from ``text``.
            match = re.search(re.escape(keyword), text, re.IGNORECASE)
            if match is not None:
                return MerchantInfo(
                    name=_merchant_name_near(text, match.start(), keyword, stopwords),
                    category=category,
                )
    return MerchantInfo(name=None, category=DEFAULT_CATEGORY)


def synthesize_description(
    text: str, merchant: MerchantInfo, txn_type: TransactionType | None
) -> str:
    """Build a short human-readable summary; never returns an empty string."""

    if merchant.name is not None:
        match txn_type:
            case TransactionType.INCOME:
                return f"Money received from {merchant.name}"
            case TransactionType.EXPENSE:
                return f"Payment to {merchant.name}"
            case TransactionType.TRANSFER:
                return f"Transfer to {merchant.name}"
            case _:
                return f"Transaction with {merchant.name}"

    category = merchant.category
    if category and category != DEFAULT_CATEGORY:
        match txn_type:
            case TransactionType.INCOME:
                return f"{category} income"
            case TransactionType.EXPENSE:
                return f"{category} expense"
            case TransactionType.TRANSFER:
                return f"{category} transfer"
            case _:
                return f"{category} transaction"

    if not text:
        return UNKNOWN_DESCRIPTION
    if len(text) > DESCRIPTION_MAX_CHARS:
        return text[: DESCRIPTION_MAX_CHARS - 3] + "..."
    return text


__all__ = [
    "UNKNOWN_DESCRIPTION",
    "classify_type",
    "infer_merchant",
    "synthesize_description",
]

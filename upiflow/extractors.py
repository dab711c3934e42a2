"""Text normalization and per-field extractors.

Each extractor applies an ordered pattern list to normalized text and returns
the first usable capture, or ``None``. Extractors never raise for a missing
match; absence is the common case and is represented as ``None``.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Sequence
from datetime import UTC, datetime
from decimal import Decimal, InvalidOperation

from .logging_setup import get_logger
from .patterns import MAX_KEYWORDS, MIN_REFERENCE_LENGTH

type Clock = Callable[[], datetime]

_WHITESPACE_RE = re.compile(r"\s+")
_TOKEN_SPLIT_RE = re.compile(r"[\W_]+")

_logger = get_logger("upiflow.extractors")


def utc_now() -> datetime:
    return datetime.now(UTC)


def normalize_text(text: str) -> str:
    """Collapse whitespace runs to one space and trim both ends."""

    return _WHITESPACE_RE.sub(" ", text).strip()


def tokenize(text: str) -> list[str]:
    """Split on runs of punctuation/whitespace, dropping empty pieces."""

    return [t for t in _TOKEN_SPLIT_RE.split(text) if t]


def _first_capture(patterns: Sequence[re.Pattern[str]], text: str) -> str | None:
    for pattern in patterns:
        match = pattern.search(text)
        if match is not None and match.group(1):
            return match.group(1)
    return None


# ---------------------------------------------------------------------------
# Field extractors
# ---------------------------------------------------------------------------


def extract_amount(text: str, patterns: Sequence[re.Pattern[str]]) -> Decimal | None:
    """Return the first currency-tagged amount as a non-negative ``Decimal``.

    The first pattern that matches decides; if its capture does not parse as
    a finite, non-negative number the result is ``None``.
    """

    raw = _first_capture(patterns, text)
    if raw is None:
        return None
    try:
        value = Decimal(raw.replace(",", ""))
    except InvalidOperation:
        _logger.debug("amount capture %r is not numeric", raw)
        return None
    if not value.is_finite() or value < 0:
        return None
    return value


def extract_upi_id(text: str, patterns: Sequence[re.Pattern[str]]) -> str | None:
    """Return the first ``local@handle`` token; a result always contains ``@``."""

    candidate = _first_capture(patterns, text)
    if candidate is None or "@" not in candidate:
        return None
    return candidate


def extract_reference_number(
    text: str,
    patterns: Sequence[re.Pattern[str]],
    *,
    min_length: int = MIN_REFERENCE_LENGTH,
) -> str | None:
    """Return the first reference/UTR capture that is at least ``min_length`` long.

    The length guard is applied per pattern: a short capture from a labelled
    pattern (e.g. ``"Transaction SMS"``) is discarded and the next pattern in
    the list is tried.
    """

    for pattern in patterns:
        match = pattern.search(text)
        if match is None:
            continue
        ref = match.group(1)
        if ref and len(ref) >= min_length:
            return ref
        _logger.debug("reference capture %r shorter than %d; trying next pattern", ref, min_length)
    return None


def extract_bank_account(text: str, patterns: Sequence[re.Pattern[str]]) -> str | None:
    """Return a masked or numeric account fragment such as ``XXXX1234``."""

    return _first_capture(patterns, text)


def extract_or_default_to_now(
    text: str,
    patterns: Sequence[re.Pattern[str]],
    *,
    clock: Clock = utc_now,
) -> datetime:
    """Return the transaction timestamp, which is currently always ``clock()``.

    Known limitation: date/time patterns are matched but the captured value is
    not parsed yet, so a match and a miss both yield the current time. Call
    sites depend only on this function, so real parsing can replace the body
    without touching them.
    """

    for pattern in patterns:
        match = pattern.search(text)
        if match is not None:
            _logger.debug("date/time text %r matched; using current time", match.group(0))
            return clock()
    return clock()


def extract_keywords(text: str, *, limit: int = MAX_KEYWORDS) -> tuple[str, ...]:
    """Return up to ``limit`` lower-cased tokens longer than 4 characters."""

    keywords: list[str] = []
    for token in tokenize(text.lower()):
        if len(token) > 4 and not token.isdigit():
            keywords.append(token)
            if len(keywords) == limit:
                break
    return tuple(keywords)


__all__ = [
    "Clock",
    "extract_amount",
    "extract_bank_account",
    "extract_keywords",
    "extract_or_default_to_now",
    "extract_reference_number",
    "extract_upi_id",
    "normalize_text",
    "tokenize",
    "utc_now",
]

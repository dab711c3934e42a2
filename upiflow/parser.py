"""Transaction-extraction engine: raw SMS/notification text to a scored candidate.

Pipeline per call::

    normalize -> extractors (amount, UPI ID, reference, account, date/time)
              -> type classifier -> merchant/category -> description
              -> confidence (+ bounded noise) -> ParsedTransaction

:class:`TransactionParser` holds only read-only pattern tables plus a noise
source and a clock, so one instance can be shared across threads. ``parse``
is total: any internal exception becomes a low-confidence fallback result.
"""

from __future__ import annotations

import random
from collections.abc import Iterable
from typing import Any

from . import __version__
from .classify import classify_type, infer_merchant, synthesize_description
from .extractors import (
    Clock,
    extract_amount,
    extract_bank_account,
    extract_keywords,
    extract_or_default_to_now,
    extract_reference_number,
    extract_upi_id,
    normalize_text,
    utc_now,
)
from .logging_setup import get_logger
from .models import ParsedTransaction, ParseMetadata
from .patterns import DEFAULT_TABLES, PatternTables
from .scoring import Evidence, NoiseSource, perturb, score_evidence

FAILURE_CONFIDENCE = 0.1
FAILURE_PREFIX_CHARS = 50

_logger = get_logger("upiflow.parser")


class TransactionParser:
    """Rule-based parser standing in for a learned extraction model.

    Parameters
    ----------
    tables:
        Pattern tables to use; defaults to :data:`DEFAULT_TABLES`.
    rng:
        Source of the confidence perturbation. Takes precedence over ``seed``.
    seed:
        Seed for a private ``random.Random`` when ``rng`` is not given.
    clock:
        Returns the timestamp used for ``date_time``.
    """

    def __init__(
        self,
        tables: PatternTables = DEFAULT_TABLES,
        *,
        rng: NoiseSource | None = None,
        seed: int | None = None,
        clock: Clock = utc_now,
    ) -> None:
        self.tables = tables
        self._rng: NoiseSource = rng if rng is not None else random.Random(seed)
        self._clock = clock

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    def parse(self, raw_text: str) -> ParsedTransaction:
        """Parse one message. Never raises.

        Callers judge quality through ``confidence`` and through which optional
        fields are populated; there is no separate error channel.
        """

        try:
            return self._parse(raw_text)
        except Exception as exc:
            _logger.warning("parse failed; returning fallback result: %s", exc, exc_info=True)
            return self._fallback(raw_text, exc)

    def is_transaction_message(self, text: str) -> bool:
        """Cheap pre-filter: at least two transaction indicators occur in ``text``."""

        lowered = text.lower()
        hits = sum(1 for indicator in self.tables.transaction_indicators if indicator in lowered)
        return hits >= self.tables.min_indicator_hits

    def filter_transaction_messages(self, messages: Iterable[str]) -> list[str]:
        """Keep the messages that pass :meth:`is_transaction_message`, in order."""

        return [m for m in messages if self.is_transaction_message(m)]

    def model_info(self) -> dict[str, Any]:
        """Describe the engine for diagnostics screens and the CLI."""

        return {
            "version": __version__,
            "type": "regex-heuristic",
            "supported_languages": ["English", "Hindi (transliterated)"],
            "categories": list(self.tables.category_names),
            "transaction_types": [t.value for t in self.tables.type_keywords],
            "notes": (
                "Rule-based extraction over fixed pattern tables; confidence is a "
                "heuristic with a small random spread, not a calibrated probability."
            ),
        }

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _parse(self, raw_text: str) -> ParsedTransaction:
        t = self.tables
        text = normalize_text(raw_text)

        amount = extract_amount(text, t.amount)
        upi_id = extract_upi_id(text, t.upi)
        reference = extract_reference_number(
            text, t.reference, min_length=t.min_reference_length
        )
        account = extract_bank_account(text, t.account)
        when = extract_or_default_to_now(text, t.date_time, clock=self._clock)
        txn_type = classify_type(text, t.type_keywords)
        merchant = infer_merchant(text, t.category_keywords, stopwords=t.merchant_stopwords)

        raw_score = score_evidence(
            Evidence(
                amount=amount,
                upi_id=upi_id,
                reference_number=reference,
                type=txn_type,
                merchant_name=merchant.name,
            ),
            min_reference_length=t.min_reference_length,
        )
        confidence = perturb(raw_score, self._rng)
        _logger.debug(
            "parsed amount=%s type=%s category=%s score=%.2f confidence=%.3f",
            amount,
            txn_type.value,
            merchant.category,
            raw_score,
            confidence,
        )

        return ParsedTransaction(
            confidence=confidence,
            amount=amount,
            merchant_name=merchant.name,
            description=synthesize_description(text, merchant, txn_type),
            type=txn_type,
            date_time=when,
            upi_id=upi_id,
            reference_number=reference,
            bank_account=account,
            metadata=ParseMetadata(
                original_message=raw_text,
                category=merchant.category,
                extracted_keywords=extract_keywords(text),
            ),
        )

    @staticmethod
    def _fallback(raw_text: object, exc: Exception) -> ParsedTransaction:
        message = raw_text if isinstance(raw_text, str) else repr(raw_text)
        prefix = message[:FAILURE_PREFIX_CHARS]
        if len(message) > FAILURE_PREFIX_CHARS:
            prefix += "..."
        return ParsedTransaction(
            confidence=FAILURE_CONFIDENCE,
            description=f"Failed to parse: {prefix}",
            metadata=ParseMetadata(
                original_message=message,
                error=f"{type(exc).__name__}: {exc}",
            ),
        )


# ---------------------------------------------------------------------------
# Module-level convenience (shared default instance)
# ---------------------------------------------------------------------------

_DEFAULT_PARSER = TransactionParser()


def default_parser() -> TransactionParser:
    return _DEFAULT_PARSER


def parse_message(raw_text: str) -> ParsedTransaction:
    """Parse ``raw_text`` with the shared default parser."""

    return _DEFAULT_PARSER.parse(raw_text)


def is_transaction_message(text: str) -> bool:
    return _DEFAULT_PARSER.is_transaction_message(text)


def filter_transaction_messages(messages: Iterable[str]) -> list[str]:
    return _DEFAULT_PARSER.filter_transaction_messages(messages)


__all__ = [
    "FAILURE_CONFIDENCE",
    "TransactionParser",
    "default_parser",
    "filter_transaction_messages",
    "is_transaction_message",
    "parse_message",
]

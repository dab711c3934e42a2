"""Data models for ``upiflow``.

Two kinds of records live here:

- Parse results (:class:`ParsedTransaction`, :class:`ParseMetadata`): frozen
  dataclasses created once per parse call and owned by the caller. Every field
  except ``confidence`` may be ``None``; absence means "not detected".
- Ledger entries (:class:`LedgerEntry`): a validated Pydantic model used for
  the persisted JSON shape handed to a key-value store.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from enum import StrEnum
from typing import Any, NamedTuple

from pydantic import BaseModel, ConfigDict, field_validator

# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------


class TransactionType(StrEnum):
    INCOME = "income"
    EXPENSE = "expense"
    TRANSFER = "transfer"


class TransactionStatus(StrEnum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class ConfidenceBand(StrEnum):
    """Display bands used when asking a user to review a parse result."""

    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"

    @classmethod
    def of(cls, confidence: float) -> ConfidenceBand:
        if confidence >= 0.8:
            return cls.HIGH
        if confidence >= 0.5:
            return cls.MEDIUM
        return cls.LOW


# ---------------------------------------------------------------------------
# Parse results
# ---------------------------------------------------------------------------


class MerchantInfo(NamedTuple):
    """Result of the merchant/category scan."""

    name: str | None
    category: str


@dataclass(frozen=True, slots=True)
class ParseMetadata:
    """Closed metadata attached to every parse result.

    Attributes
    ----------
    category:
        Inferred category (``"Other"`` when nothing matched); ``None`` only on
        the failure path.
    original_message:
        The caller's input, untouched.
    extracted_keywords:
        Up to five lower-cased message tokens, in message order.
    error:
        ``"<ExceptionType>: <message>"`` when the fallback path was taken.
    """

    original_message: str
    category: str | None = None
    extracted_keywords: tuple[str, ...] = ()
    error: str | None = None


@dataclass(frozen=True, slots=True)
class ParsedTransaction:
    """A confidence-scored transaction candidate extracted from one message."""

    confidence: float
    metadata: ParseMetadata
    amount: Decimal | None = None
    merchant_name: str | None = None
    description: str | None = None
    type: TransactionType | None = None
    date_time: datetime | None = None
    upi_id: str | None = None
    reference_number: str | None = None
    bank_account: str | None = None

    @property
    def band(self) -> ConfidenceBand:
        return ConfidenceBand.of(self.confidence)

    def needs_review(self, threshold: float = 0.5) -> bool:
        """Return True when the result should be confirmed by a person."""

        return self.confidence < threshold

    def to_dict(self) -> dict[str, Any]:
        """JSON-friendly view (decimal as string, datetime as ISO 8601)."""

        return {
            "amount": f"{self.amount:.2f}" if self.amount is not None else None,
            "merchant_name": self.merchant_name,
            "description": self.description,
            "type": self.type.value if self.type is not None else None,
            "date_time": self.date_time.isoformat() if self.date_time is not None else None,
            "upi_id": self.upi_id,
            "reference_number": self.reference_number,
            "bank_account": self.bank_account,
            "confidence": self.confidence,
            "band": self.band.value,
            "metadata": {
                "category": self.metadata.category,
                "original_message": self.metadata.original_message,
                "extracted_keywords": list(self.metadata.extracted_keywords),
                "error": self.metadata.error,
            },
        }


# ---------------------------------------------------------------------------
# Ledger entries
# ---------------------------------------------------------------------------


class LedgerEntry(BaseModel):
    """A persisted ledger row derived from a parse result.

    ``id``, the timestamps and ``status`` are assigned at conversion time; the
    parser never produces them.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    id: str
    amount: Decimal = Decimal("0.00")
    description: str = "Unknown transaction"
    merchant_name: str | None = None
    category: str | None = None
    type: TransactionType = TransactionType.EXPENSE
    status: TransactionStatus = TransactionStatus.COMPLETED
    date_time: datetime
    upi_id: str | None = None
    bank_account: str | None = None
    reference_number: str | None = None
    raw_message: str | None = None
    confidence: float = 0.0
    fingerprint: str = ""
    created_at: datetime
    updated_at: datetime

    @field_validator("id")
    @classmethod
    def _id_non_empty(cls, v: str) -> str:
        if not v:
            raise ValueError("id must be non-empty")
        return v

    @field_validator("amount")
    @classmethod
    def _amount_two_places(cls, v: Decimal) -> Decimal:
        if v < 0:
            raise ValueError("amount must be non-negative")
        return v.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)

    @field_validator("description")
    @classmethod
    def _description_non_empty(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("description must be non-empty")
        return v

    @field_validator("confidence")
    @classmethod
    def _confidence_in_unit_interval(cls, v: float) -> float:
        if 0.0 <= v <= 1.0:
            return v
        raise ValueError("confidence must be within [0,1]")


__all__ = [
    "ConfidenceBand",
    "LedgerEntry",
    "MerchantInfo",
    "ParseMetadata",
    "ParsedTransaction",
    "TransactionStatus",
    "TransactionType",
]

"""Ledger layer: turn parse results into persisted entries.

Scope:
- Convert a :class:`ParsedTransaction` into a :class:`LedgerEntry` (id,
  timestamps and status are assigned here, never by the parser).
- Fingerprint entries so the same alert imported twice is stored once.
- Persist entries as JSON through a :class:`KeyValueStore`, behind an
  :class:`AuthGate`, and answer simple queries and period summaries.
- Export entries as CSV.

Key layout in the store:

- ``ledger:index``: JSON list of entry ids in insertion order
- ``ledger:fingerprints``: JSON object ``{fingerprint: [id, ...]}``
- ``ledger:entry:<id>``: the entry's JSON (empty string once removed)
"""

from __future__ import annotations

import csv
import hashlib
import json
import os
import uuid
from collections.abc import Iterable
from datetime import UTC, datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal
from enum import StrEnum
from typing import IO, Any, NamedTuple

from .extractors import Clock, normalize_text, utc_now
from .logging_setup import get_logger
from .models import LedgerEntry, ParsedTransaction, TransactionType
from .parser import TransactionParser
from .patterns import DEFAULT_CATEGORY
from .storage import AuthGate, KeyValueStore

_INDEX_KEY = "ledger:index"
_FINGERPRINTS_KEY = "ledger:fingerprints"
_ENTRY_PREFIX = "ledger:entry:"

DEFAULT_MIN_CONFIDENCE = 0.5

CSV_COLUMNS: tuple[str, ...] = (
    "id",
    "date_time",
    "type",
    "amount",
    "description",
    "merchant_name",
    "category",
    "upi_id",
    "bank_account",
    "reference_number",
    "status",
    "confidence",
)

_ZERO = Decimal("0.00")

_logger = get_logger("upiflow.ledger")


class LedgerLockedError(RuntimeError):
    """Raised when the ledger is accessed while the auth gate is locked."""


class IngestStatus(StrEnum):
    STORED = "stored"
    DUPLICATE = "duplicate"
    NOT_TRANSACTION = "not_transaction"
    LOW_CONFIDENCE = "low_confidence"


class IngestResult(NamedTuple):
    status: IngestStatus
    entry: LedgerEntry | None
    parsed: ParsedTransaction | None


class CategorySummary(NamedTuple):
    category: str
    amount: Decimal
    count: int
    # Share of total expense, 0-100.
    percentage: float


class LedgerSummary(NamedTuple):
    """Totals for one period; transfers count toward ``count`` only."""

    total_income: Decimal
    total_expense: Decimal
    balance: Decimal
    count: int
    period_start: datetime
    period_end: datetime
    categories: tuple[CategorySummary, ...]


def default_min_confidence() -> float:
    """Ingest threshold from ``UPIFLOW_MIN_CONFIDENCE`` (default 0.5)."""

    raw = os.getenv("UPIFLOW_MIN_CONFIDENCE")
    if raw is None or not raw.strip():
        return DEFAULT_MIN_CONFIDENCE
    try:
        value = float(raw)
    except ValueError as exc:
        raise ValueError(f"UPIFLOW_MIN_CONFIDENCE is not a number: {raw!r}") from exc
    return _validate_threshold(value)


def _validate_threshold(value: float) -> float:
    if not 0.0 <= value <= 1.0:
        raise ValueError(f"min_confidence must be within [0,1], got {value}")
    return value


def _as_utc(moment: datetime) -> datetime:
    # Naive datetimes are taken to be UTC, like every timestamp the ledger writes.
    return moment.replace(tzinfo=UTC) if moment.tzinfo is None else moment


def month_bounds(moment: datetime) -> tuple[datetime, datetime]:
    """First and last instant of the calendar month containing ``moment``."""

    start = moment.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    next_month = (start + timedelta(days=32)).replace(day=1)
    return start, next_month - timedelta(microseconds=1)


# ---------------------------------------------------------------------------
# Conversion and fingerprinting
# ---------------------------------------------------------------------------


def _amount_2dp(amount: Decimal | None) -> Decimal:
    if amount is None:
        return _ZERO
    return amount.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def compute_fingerprint(
    *,
    amount: Decimal | None,
    type: TransactionType | None,
    reference_number: str | None,
    upi_id: str | None,
    bank_account: str | None,
    raw_message: str | None,
) -> str:
    """Stable SHA-256 over the canonical fields of one alert.

    Fields used: amount (2dp string), type, reference number, UPI ID, account
    fragment and the whitespace-normalized raw message.
    """

    payload = {
        "amount": f"{_amount_2dp(amount):.2f}",
        "type": type.value if type is not None else None,
        "reference_number": reference_number,
        "upi_id": upi_id.lower() if upi_id else None,
        "bank_account": bank_account,
        "raw_message": normalize_text(raw_message) if raw_message else None,
    }
    data = json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False)
    return hashlib.sha256(data.encode("utf-8")).hexdigest()


def to_ledger_entry(
    parsed: ParsedTransaction,
    *,
    entry_id: str | None = None,
    raw_message: str | None = None,
    clock: Clock = utc_now,
) -> LedgerEntry:
    """Convert a parse result into a ledger entry with defaults for missing fields.

    Missing amount becomes ``0.00``, missing type ``expense``, missing
    description ``"Unknown transaction"`` and missing ``date_time`` the
    conversion time. ``raw_message`` defaults to the parse input.
    """

    now = clock()
    message = raw_message if raw_message is not None else parsed.metadata.original_message
    txn_type = parsed.type or TransactionType.EXPENSE
    fields: dict[str, Any] = {
        "id": entry_id or uuid.uuid4().hex,
        "amount": _amount_2dp(parsed.amount),
        "merchant_name": parsed.merchant_name,
        "category": parsed.metadata.category,
        "type": txn_type,
        "date_time": parsed.date_time or now,
        "upi_id": parsed.upi_id,
        "bank_account": parsed.bank_account,
        "reference_number": parsed.reference_number,
        "raw_message": message,
        "confidence": parsed.confidence,
        "fingerprint": compute_fingerprint(
            amount=parsed.amount,
            type=txn_type,
            reference_number=parsed.reference_number,
            upi_id=parsed.upi_id,
            bank_account=parsed.bank_account,
            raw_message=message,
        ),
        "created_at": now,
        "updated_at": now,
    }
    if parsed.description:
        fields["description"] = parsed.description
    return LedgerEntry(**fields)


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class LedgerRepository:
    """Ledger persisted through a key-value store and guarded by an auth gate.

    Every public method raises :class:`LedgerLockedError` while the gate is
    locked. ``clock`` stamps ``created_at``/``updated_at`` and picks the
    default summary period.
    """

    def __init__(self, store: KeyValueStore, auth: AuthGate, *, clock: Clock = utc_now) -> None:
        self._store = store
        self._auth = auth
        self._clock = clock

    def _require_unlocked(self) -> None:
        if not self._auth.is_unlocked():
            raise LedgerLockedError("ledger is locked; unlock before accessing transactions")

    def _load_json(self, key: str, default: Any) -> Any:
        raw = self._store.get(key)
        if not raw:
            return default
        return json.loads(raw)

    def _save_json(self, key: str, value: Any) -> None:
        self._store.set(key, json.dumps(value, separators=(",", ":")))

    @staticmethod
    def _unlink(fingerprints: dict[str, list[str]], entry_id: str) -> None:
        for fp in [fp for fp, ids in fingerprints.items() if entry_id in ids]:
            fingerprints[fp].remove(entry_id)
            if not fingerprints[fp]:
                del fingerprints[fp]

    def _put(self, entry: LedgerEntry) -> None:
        """Write ``entry`` and re-link its id under its current fingerprint."""

        fingerprints: dict[str, list[str]] = self._load_json(_FINGERPRINTS_KEY, {})
        self._store.set(_ENTRY_PREFIX + entry.id, entry.model_dump_json())
        self._unlink(fingerprints, entry.id)
        if entry.fingerprint:
            fingerprints.setdefault(entry.fingerprint, []).append(entry.id)
        self._save_json(_FINGERPRINTS_KEY, fingerprints)

    def add(self, entry: LedgerEntry, *, skip_duplicates: bool = True) -> LedgerEntry:
        """Store ``entry`` and return it.

        When ``skip_duplicates`` is set and any stored entry has the same
        fingerprint, nothing is written and the oldest such entry is returned.
        """

        self._require_unlocked()
        if skip_duplicates and entry.fingerprint:
            fingerprints: dict[str, list[str]] = self._load_json(_FINGERPRINTS_KEY, {})
            for existing_id in fingerprints.get(entry.fingerprint, []):
                existing = self.get(existing_id)
                if existing is not None:
                    _logger.info("duplicate of %s skipped", existing_id)
                    return existing

        index: list[str] = self._load_json(_INDEX_KEY, [])
        self._put(entry)
        if entry.id not in index:
            index.append(entry.id)
            self._save_json(_INDEX_KEY, index)
        return entry

    def update(self, entry: LedgerEntry) -> LedgerEntry | None:
        """Replace the stored entry with the same id; ``None`` when it is not stored.

        ``updated_at`` is refreshed. The fingerprint is taken from ``entry``, so
        an edited copy of a stored entry still blocks re-import of its alert.
        """

        self._require_unlocked()
        if entry.id not in self._load_json(_INDEX_KEY, []):
            return None
        stored = entry.model_copy(update={"updated_at": self._clock()})
        self._put(stored)
        return stored

    def get(self, entry_id: str) -> LedgerEntry | None:
        self._require_unlocked()
        raw = self._store.get(_ENTRY_PREFIX + entry_id)
        if not raw:
            return None
        return LedgerEntry.model_validate_json(raw)

    def all(self) -> list[LedgerEntry]:
        """All stored entries in insertion order."""

        self._require_unlocked()
        out: list[LedgerEntry] = []
        for entry_id in self._load_json(_INDEX_KEY, []):
            entry = self.get(entry_id)
            if entry is not None:
                out.append(entry)
        return out

    def remove(self, entry_id: str) -> bool:
        """Remove an entry; returns False when it was not stored."""

        self._require_unlocked()
        index: list[str] = self._load_json(_INDEX_KEY, [])
        if entry_id not in index:
            return False
        index.remove(entry_id)
        self._save_json(_INDEX_KEY, index)
        fingerprints: dict[str, list[str]] = self._load_json(_FINGERPRINTS_KEY, {})
        self._unlink(fingerprints, entry_id)
        self._save_json(_FINGERPRINTS_KEY, fingerprints)
        self._store.set(_ENTRY_PREFIX + entry_id, "")
        return True

    # Queries ------------------------------------------------------------

    def by_type(self, txn_type: TransactionType) -> list[LedgerEntry]:
        return [e for e in self.all() if e.type == txn_type]

    def by_category(self, category: str | None) -> list[LedgerEntry]:
        return [e for e in self.all() if e.category == category]

    def between(self, start: datetime, end: datetime) -> list[LedgerEntry]:
        """Entries whose ``date_time`` lies in ``[start, end]`` (naive means UTC)."""

        lo, hi = _as_utc(start), _as_utc(end)
        return [e for e in self.all() if lo <= _as_utc(e.date_time) <= hi]

    def search(self, query: str) -> list[LedgerEntry]:
        """Case-insensitive substring match on description or merchant name."""

        needle = query.lower()
        return [
            e
            for e in self.all()
            if needle in e.description.lower() or needle in (e.merchant_name or "").lower()
        ]

    def summary(
        self, start: datetime | None = None, end: datetime | None = None
    ) -> LedgerSummary:
        """Income, expense and per-category spend for a period.

        The period defaults to the current calendar month (per ``clock``).
        Category rows cover expenses only, sorted by amount descending; entries
        without a category count as ``"Other"``.
        """

        default_start, default_end = month_bounds(self._clock())
        start = _as_utc(start) if start is not None else default_start
        end = _as_utc(end) if end is not None else default_end

        entries = self.between(start, end)
        income = expense = _ZERO
        spend: dict[str, tuple[Decimal, int]] = {}
        for e in entries:
            match e.type:
                case TransactionType.INCOME:
                    income += e.amount
                case TransactionType.EXPENSE:
                    expense += e.amount
                    key = e.category or DEFAULT_CATEGORY
                    amount, count = spend.get(key, (_ZERO, 0))
                    spend[key] = (amount + e.amount, count + 1)
                case _:
                    pass  # transfers move money between own accounts

        categories = sorted(
            (
                CategorySummary(
                    category=name,
                    amount=amount,
                    count=count,
                    percentage=round(float(amount * 100 / expense), 2) if expense else 0.0,
                )
                for name, (amount, count) in spend.items()
            ),
            key=lambda c: c.amount,
            reverse=True,
        )
        return LedgerSummary(
            total_income=income,
            total_expense=expense,
            balance=income - expense,
            count=len(entries),
            period_start=start,
            period_end=end,
            categories=tuple(categories),
        )

    # Ingest -------------------------------------------------------------

    def ingest(
        self,
        text: str,
        parser: TransactionParser,
        *,
        min_confidence: float = DEFAULT_MIN_CONFIDENCE,
    ) -> IngestResult:
        """Pre-filter, parse and store one message when it is confident enough."""

        self._require_unlocked()
        threshold = _validate_threshold(min_confidence)
        if not parser.is_transaction_message(text):
            _logger.info("message skipped: not a transaction message")
            return IngestResult(IngestStatus.NOT_TRANSACTION, None, None)

        parsed = parser.parse(text)
        if parsed.metadata.error is not None or parsed.needs_review(threshold):
            _logger.info(
                "message skipped: confidence %.2f below %.2f", parsed.confidence, threshold
            )
            return IngestResult(IngestStatus.LOW_CONFIDENCE, None, parsed)

        candidate = to_ledger_entry(parsed, raw_message=text, clock=self._clock)
        stored = self.add(candidate)
        status = IngestStatus.STORED if stored.id == candidate.id else IngestStatus.DUPLICATE
        _logger.info("message %s as %s", status.value, stored.id)
        return IngestResult(status, stored, parsed)


# ---------------------------------------------------------------------------
# Export
# ---------------------------------------------------------------------------


def export_csv(entries: Iterable[LedgerEntry], stream: IO[str]) -> int:
    """Write ``entries`` as CSV (header row first); return the row count."""

    writer = csv.writer(stream)
    writer.writerow(CSV_COLUMNS)
    count = 0
    for e in entries:
        writer.writerow(
            [
                e.id,
                e.date_time.isoformat(),
                e.type.value,
                f"{e.amount:.2f}",
                e.description,
                e.merchant_name or "",
                e.category or "",
                e.upi_id or "",
                e.bank_account or "",
                e.reference_number or "",
                e.status.value,
                f"{e.confidence:.2f}",
            ]
        )
        count += 1
    return count


__all__ = [
    "CSV_COLUMNS",
    "CategorySummary",
    "IngestResult",
    "IngestStatus",
    "LedgerLockedError",
    "LedgerRepository",
    "LedgerSummary",
    "compute_fingerprint",
    "default_min_confidence",
    "export_csv",
    "month_bounds",
    "to_ledger_entry",
]

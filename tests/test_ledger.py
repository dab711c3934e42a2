from __future__ import annotations

import csv
import io
from datetime import UTC, datetime, timedelta
from decimal import Decimal

import pytest
from pydantic import ValidationError

from tests.helpers.stubs import FROZEN_NOW, FixedNoise, frozen_clock
from upiflow.ledger import (
    CSV_COLUMNS,
    CategorySummary,
    IngestStatus,
    LedgerLockedError,
    LedgerRepository,
    compute_fingerprint,
    default_min_confidence,
    export_csv,
    month_bounds,
    to_ledger_entry,
)
from upiflow.models import (
    LedgerEntry,
    ParsedTransaction,
    ParseMetadata,
    TransactionStatus,
    TransactionType,
)
from upiflow.parser import TransactionParser
from upiflow.storage import MemoryKeyValueStore, SqlKeyValueStore, StaticAuthGate

DEBIT_SMS = (
    "Rs.450.00 debited from account XXXXXX1234 on 26-Sep-25 at ZOMATO BANGALORE "
    "using UPI Ref No 123456789012. Available bal: Rs.2550.00"
)
COFFEE_SMS = (
    "Paid Rs.150.00 to STARBUCKS COFFEE via UPI on 26-Sep-25. UPI Ref: 123456789. "
    "Balance: Rs.5000.00"
)


@pytest.fixture()
def parser() -> TransactionParser:
    return TransactionParser(rng=FixedNoise(0.0), clock=frozen_clock)


@pytest.fixture()
def repo() -> LedgerRepository:
    return LedgerRepository(MemoryKeyValueStore(), StaticAuthGate(True))


# ---------------------------------------------------------------------------
# Conversion
# ---------------------------------------------------------------------------


def test_to_ledger_entry_carries_parsed_fields(parser: TransactionParser):
    parsed = parser.parse(DEBIT_SMS)
    entry = to_ledger_entry(parsed, clock=frozen_clock)

    assert len(entry.id) == 32
    assert entry.amount == Decimal("450.00")
    assert entry.type is TransactionType.EXPENSE
    assert entry.status is TransactionStatus.COMPLETED
    assert entry.merchant_name == "ZOMATO"
    assert entry.category == "Food"
    assert entry.description == "Payment to ZOMATO"
    assert entry.reference_number == "123456789012"
    assert entry.bank_account == "XXXXXX1234"
    assert entry.raw_message == DEBIT_SMS
    assert entry.date_time == FROZEN_NOW
    assert entry.created_at == entry.updated_at == FROZEN_NOW
    assert entry.confidence == pytest.approx(0.75)
    assert len(entry.fingerprint) == 64


def test_to_ledger_entry_fills_defaults_for_missing_fields():
    parsed = ParsedTransaction(confidence=0.3, metadata=ParseMetadata(original_message="hello"))
    entry = to_ledger_entry(parsed, entry_id="abc", clock=frozen_clock)

    assert entry.id == "abc"
    assert entry.amount == Decimal("0.00")
    assert entry.type is TransactionType.EXPENSE
    assert entry.description == "Unknown transaction"
    assert entry.date_time == FROZEN_NOW
    assert entry.category is None


def test_to_ledger_entry_from_failed_parse(monkeypatch: pytest.MonkeyPatch):
    import upiflow.parser as parser_mod

    monkeypatch.setattr(parser_mod, "extract_amount", lambda *_a, **_k: 1 / 0)
    parsed = TransactionParser().parse("Rs.5 paid")
    entry = to_ledger_entry(parsed, clock=frozen_clock)

    assert entry.description == "Failed to parse: Rs.5 paid"
    assert entry.amount == Decimal("0.00")
    assert entry.confidence == pytest.approx(0.1)


def test_ledger_entry_validation():
    base = {"id": "x", "date_time": FROZEN_NOW, "created_at": FROZEN_NOW, "updated_at": FROZEN_NOW}

    assert LedgerEntry(**base, amount=Decimal("10.005")).amount == Decimal("10.01")
    with pytest.raises(ValidationError):
        LedgerEntry(**base, amount=Decimal("-1"))
    with pytest.raises(ValidationError):
        LedgerEntry(**base, confidence=1.5)
    with pytest.raises(ValidationError):
        LedgerEntry(**base, description="   ")
    with pytest.raises(ValidationError):
        LedgerEntry(**base, unexpected="field")


# ---------------------------------------------------------------------------
# Fingerprints
# ---------------------------------------------------------------------------


def test_fingerprint_ignores_noise_and_whitespace(parser: TransactionParser):
    a = to_ledger_entry(parser.parse(DEBIT_SMS))
    b = to_ledger_entry(TransactionParser(seed=5).parse("  " + DEBIT_SMS.replace(" ", "   ")))

    assert a.id != b.id
    assert a.fingerprint == b.fingerprint


def test_fingerprint_changes_with_amount():
    common = {
        "type": TransactionType.EXPENSE,
        "reference_number": "123456789012",
        "upi_id": None,
        "bank_account": None,
        "raw_message": "msg",
    }
    assert compute_fingerprint(amount=Decimal("1.00"), **common) == compute_fingerprint(
        amount=Decimal("1"), **common
    )
    assert compute_fingerprint(amount=Decimal("1.00"), **common) != compute_fingerprint(
        amount=Decimal("2.00"), **common
    )


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


def test_add_get_all_remove(repo: LedgerRepository, parser: TransactionParser):
    first = repo.add(to_ledger_entry(parser.parse(DEBIT_SMS)))
    second = repo.add(to_ledger_entry(parser.parse(COFFEE_SMS)))

    assert [e.id for e in repo.all()] == [first.id, second.id]
    fetched = repo.get(first.id)
    assert fetched is not None
    assert fetched.model_dump() == first.model_dump()

    assert repo.remove(first.id) is True
    assert repo.remove(first.id) is False
    assert repo.get(first.id) is None
    assert [e.id for e in repo.all()] == [second.id]


def test_add_skips_duplicates_by_fingerprint(repo: LedgerRepository, parser: TransactionParser):
    original = repo.add(to_ledger_entry(parser.parse(DEBIT_SMS)))
    again = repo.add(to_ledger_entry(parser.parse(DEBIT_SMS)))

    assert again.id == original.id
    assert len(repo.all()) == 1

    forced = repo.add(to_ledger_entry(parser.parse(DEBIT_SMS)), skip_duplicates=False)
    assert forced.id != original.id
    assert len(repo.all()) == 2


def test_removed_entry_can_be_stored_again(repo: LedgerRepository, parser: TransactionParser):
    first = repo.add(to_ledger_entry(parser.parse(DEBIT_SMS)))
    repo.remove(first.id)

    candidate = to_ledger_entry(parser.parse(DEBIT_SMS))
    assert repo.add(candidate).id == candidate.id


def test_remove_of_forced_copy_keeps_original_as_duplicate_target(
    repo: LedgerRepository, parser: TransactionParser
):
    original = repo.add(to_ledger_entry(parser.parse(DEBIT_SMS)))
    forced = repo.add(to_ledger_entry(parser.parse(DEBIT_SMS)), skip_duplicates=False)
    assert repo.remove(forced.id)

    again = repo.add(to_ledger_entry(parser.parse(DEBIT_SMS)))
    assert again.id == original.id
    assert [e.id for e in repo.all()] == [original.id]


def test_remove_of_original_leaves_forced_copy_as_duplicate_target(
    repo: LedgerRepository, parser: TransactionParser
):
    original = repo.add(to_ledger_entry(parser.parse(DEBIT_SMS)))
    forced = repo.add(to_ledger_entry(parser.parse(DEBIT_SMS)), skip_duplicates=False)
    repo.remove(original.id)

    assert repo.add(to_ledger_entry(parser.parse(DEBIT_SMS))).id == forced.id
    assert [e.id for e in repo.all()] == [forced.id]


def test_locked_gate_blocks_every_operation(parser: TransactionParser):
    gate = StaticAuthGate(False)
    locked = LedgerRepository(MemoryKeyValueStore(), gate)
    entry = to_ledger_entry(parser.parse(DEBIT_SMS))

    with pytest.raises(LedgerLockedError):
        locked.add(entry)
    with pytest.raises(LedgerLockedError):
        locked.all()
    with pytest.raises(LedgerLockedError):
        locked.get(entry.id)
    with pytest.raises(LedgerLockedError):
        locked.ingest(DEBIT_SMS, parser)
    with pytest.raises(LedgerLockedError):
        locked.update(entry)
    with pytest.raises(LedgerLockedError):
        locked.search("zomato")
    with pytest.raises(LedgerLockedError):
        locked.summary()

    gate.unlocked = True
    assert locked.add(entry).id == entry.id


def test_update_replaces_entry_and_refreshes_updated_at(parser: TransactionParser):
    later = FROZEN_NOW + timedelta(hours=2)
    repo = LedgerRepository(MemoryKeyValueStore(), StaticAuthGate(True), clock=lambda: later)
    stored = repo.add(to_ledger_entry(parser.parse(DEBIT_SMS), clock=frozen_clock))

    edited = repo.update(stored.model_copy(update={"category": "Dining", "description": "Dinner"}))

    assert edited is not None
    assert edited.updated_at == later
    assert edited.created_at == FROZEN_NOW
    fetched = repo.get(stored.id)
    assert fetched is not None
    assert (fetched.category, fetched.description) == ("Dining", "Dinner")
    assert [e.id for e in repo.all()] == [stored.id]
    # The edited entry still blocks a re-import of its alert.
    assert repo.add(to_ledger_entry(parser.parse(DEBIT_SMS))).id == stored.id


def test_update_unknown_id_returns_none(repo: LedgerRepository, parser: TransactionParser):
    assert repo.update(to_ledger_entry(parser.parse(DEBIT_SMS))) is None
    assert repo.all() == []


# ---------------------------------------------------------------------------
# Queries and summaries
# ---------------------------------------------------------------------------


def _entry(
    entry_id: str,
    amount: str,
    txn_type: TransactionType,
    *,
    day: int,
    month: int = 9,
    category: str | None = None,
    merchant: str | None = None,
    description: str = "Unknown transaction",
) -> LedgerEntry:
    return LedgerEntry(
        id=entry_id,
        amount=Decimal(amount),
        type=txn_type,
        category=category,
        merchant_name=merchant,
        description=description,
        date_time=datetime(2025, month, day, 9, 0, tzinfo=UTC),
        created_at=FROZEN_NOW,
        updated_at=FROZEN_NOW,
    )


@pytest.fixture()
def filled() -> LedgerRepository:
    repo = LedgerRepository(MemoryKeyValueStore(), StaticAuthGate(True), clock=frozen_clock)
    for e in [
        _entry("salary", "2500", TransactionType.INCOME, day=1, category="Salary",
               merchant="COMPANY", description="Money received from COMPANY"),
        _entry("zomato", "450", TransactionType.EXPENSE, day=26, category="Food",
               merchant="ZOMATO", description="Payment to ZOMATO"),
        _entry("coffee", "150", TransactionType.EXPENSE, day=20, category="Food",
               merchant="STARBUCKS", description="Payment to STARBUCKS"),
        _entry("amazon", "200", TransactionType.EXPENSE, day=10, category="Shopping",
               merchant="AMAZON", description="Payment to AMAZON"),
        _entry("misc", "200", TransactionType.EXPENSE, day=5),
        _entry("savings", "1000", TransactionType.TRANSFER, day=15,
               description="Transfer to savings"),
        _entry("august", "999", TransactionType.EXPENSE, day=30, month=8, category="Food"),
    ]:
        repo.add(e)
    return repo


def test_by_type_and_by_category(filled: LedgerRepository):
    assert [e.id for e in filled.by_type(TransactionType.INCOME)] == ["salary"]
    assert [e.id for e in filled.by_type(TransactionType.TRANSFER)] == ["savings"]
    assert [e.id for e in filled.by_category("Food")] == ["zomato", "coffee", "august"]
    assert [e.id for e in filled.by_category(None)] == ["misc", "savings"]
    assert filled.by_category("Travel") == []


def test_between_is_inclusive_and_accepts_naive_bounds(filled: LedgerRepository):
    ids = [e.id for e in filled.between(datetime(2025, 9, 10, 9, 0), datetime(2025, 9, 20, 9, 0))]
    assert ids == ["coffee", "amazon", "savings"]

    aware = filled.between(
        datetime(2025, 9, 26, 9, 0, tzinfo=UTC), datetime(2025, 9, 26, 9, 0, tzinfo=UTC)
    )
    assert [e.id for e in aware] == ["zomato"]


def test_search_matches_description_or_merchant(filled: LedgerRepository):
    assert [e.id for e in filled.search("starbucks")] == ["coffee"]
    assert [e.id for e in filled.search("PAYMENT TO")] == ["zomato", "coffee", "amazon"]
    assert [e.id for e in filled.search("company")] == ["salary"]
    assert filled.search("netflix") == []


def test_summary_defaults_to_current_month(filled: LedgerRepository):
    s = filled.summary()

    assert s.period_start == datetime(2025, 9, 1, tzinfo=UTC)
    assert s.period_end == datetime(2025, 9, 30, 23, 59, 59, 999999, tzinfo=UTC)
    assert s.total_income == Decimal("2500.00")
    assert s.total_expense == Decimal("1000.00")
    assert s.balance == Decimal("1500.00")
    # Transfers count as transactions but move no money in or out.
    assert s.count == 6

    assert s.categories[0] == CategorySummary("Food", Decimal("600.00"), 2, 60.0)
    assert sorted(s.categories[1:]) == [
        CategorySummary("Other", Decimal("200.00"), 1, 20.0),
        CategorySummary("Shopping", Decimal("200.00"), 1, 20.0),
    ]
    assert sum(c.percentage for c in s.categories) == pytest.approx(100.0)


def test_summary_for_explicit_period(filled: LedgerRepository):
    s = filled.summary(datetime(2025, 8, 1), datetime(2025, 8, 31, 23, 59))

    assert s.total_expense == Decimal("999.00")
    assert s.total_income == Decimal("0.00")
    assert s.balance == Decimal("-999.00")
    assert s.count == 1
    assert s.categories == (CategorySummary("Food", Decimal("999.00"), 1, 100.0),)


def test_summary_of_empty_ledger(repo: LedgerRepository):
    s = repo.summary()

    assert (s.total_income, s.total_expense, s.balance) == (Decimal("0.00"),) * 3
    assert s.count == 0
    assert s.categories == ()


def test_month_bounds_crosses_year_end():
    start, end = month_bounds(datetime(2025, 12, 31, 18, 0, tzinfo=UTC))

    assert start == datetime(2025, 12, 1, tzinfo=UTC)
    assert end == datetime(2025, 12, 31, 23, 59, 59, 999999, tzinfo=UTC)


# ---------------------------------------------------------------------------
# Ingest
# ---------------------------------------------------------------------------


def test_ingest_statuses(repo: LedgerRepository, parser: TransactionParser):
    stored = repo.ingest(DEBIT_SMS, parser)
    assert stored.status is IngestStatus.STORED
    assert stored.entry is not None
    assert stored.parsed is not None

    dup = repo.ingest(DEBIT_SMS, parser)
    assert dup.status is IngestStatus.DUPLICATE
    assert dup.entry is not None
    assert dup.entry.id == stored.entry.id

    skipped = repo.ingest("Happy birthday to you!", parser)
    assert skipped.status is IngestStatus.NOT_TRANSACTION
    assert skipped.entry is None
    assert skipped.parsed is None

    low = repo.ingest("Your bank account statement is ready", parser)
    assert low.status is IngestStatus.LOW_CONFIDENCE
    assert low.entry is None
    assert low.parsed is not None
    assert low.parsed.confidence < 0.5

    assert len(repo.all()) == 1


def test_ingest_threshold(repo: LedgerRepository, parser: TransactionParser):
    assert repo.ingest(DEBIT_SMS, parser, min_confidence=0.9).status is IngestStatus.LOW_CONFIDENCE
    assert repo.ingest(DEBIT_SMS, parser, min_confidence=0.0).status is IngestStatus.STORED
    with pytest.raises(ValueError):
        repo.ingest(DEBIT_SMS, parser, min_confidence=1.5)


def test_default_min_confidence_from_env(monkeypatch: pytest.MonkeyPatch):
    assert default_min_confidence() == 0.5

    monkeypatch.setenv("UPIFLOW_MIN_CONFIDENCE", "0.7")
    assert default_min_confidence() == 0.7

    monkeypatch.setenv("UPIFLOW_MIN_CONFIDENCE", "high")
    with pytest.raises(ValueError):
        default_min_confidence()

    monkeypatch.setenv("UPIFLOW_MIN_CONFIDENCE", "2")
    with pytest.raises(ValueError):
        default_min_confidence()


# ---------------------------------------------------------------------------
# SQL-backed store
# ---------------------------------------------------------------------------


def test_sql_store_set_get_overwrite():
    store = SqlKeyValueStore()

    assert store.get("missing") is None
    store.set("k", "v1")
    assert store.get("k") == "v1"
    store.set("k", "v2")
    assert store.get("k") == "v2"


def test_sql_store_persists_ledger_between_repositories(parser: TransactionParser):
    result = LedgerRepository(SqlKeyValueStore(), StaticAuthGate()).ingest(DEBIT_SMS, parser)
    assert result.status is IngestStatus.STORED
    assert result.entry is not None

    reopened = LedgerRepository(SqlKeyValueStore(), StaticAuthGate())
    entries = reopened.all()
    assert [e.id for e in entries] == [result.entry.id]
    assert entries[0].amount == Decimal("450.00")
    assert entries[0].date_time == FROZEN_NOW


# ---------------------------------------------------------------------------
# Export
# ---------------------------------------------------------------------------


def test_export_csv(repo: LedgerRepository, parser: TransactionParser):
    repo.ingest(DEBIT_SMS, parser)
    repo.ingest(COFFEE_SMS, parser)

    buf = io.StringIO()
    count = export_csv(repo.all(), buf)
    rows = list(csv.reader(io.StringIO(buf.getvalue())))

    assert count == 2
    assert rows[0] == list(CSV_COLUMNS)
    header = rows[0]
    first = dict(zip(header, rows[1], strict=True))
    assert first["amount"] == "450.00"
    assert first["type"] == "expense"
    assert first["category"] == "Food"
    assert first["merchant_name"] == "ZOMATO"
    assert first["upi_id"] == ""
    assert first["confidence"] == "0.75"
    assert dict(zip(header, rows[2], strict=True))["merchant_name"] == "STARBUCKS"


def test_export_csv_empty():
    buf = io.StringIO()
    assert export_csv([], buf) == 0
    assert buf.getvalue().strip() == ",".join(CSV_COLUMNS)

"""Public interface for the ``upiflow`` package.

``upiflow`` turns bank/UPI SMS and notification text into confidence-scored
transaction candidates and keeps accepted ones in a local ledger. This module
only re-exports the stable import surface.
"""

from __future__ import annotations

__version__ = "1.0.0"

from .ledger import (  # noqa: E402
    CategorySummary,
    IngestResult,
    IngestStatus,
    LedgerLockedError,
    LedgerRepository,
    LedgerSummary,
    compute_fingerprint,
    export_csv,
    to_ledger_entry,
)
from .models import (  # noqa: E402
    ConfidenceBand,
    LedgerEntry,
    MerchantInfo,
    ParsedTransaction,
    ParseMetadata,
    TransactionStatus,
    TransactionType,
)
from .parser import (  # noqa: E402
    TransactionParser,
    default_parser,
    filter_transaction_messages,
    is_transaction_message,
    parse_message,
)
from .patterns import DEFAULT_TABLES, PatternTables  # noqa: E402
from .storage import (  # noqa: E402
    AuthGate,
    KeyValueStore,
    MemoryKeyValueStore,
    SqlKeyValueStore,
    StaticAuthGate,
)

__all__ = [
    # Engine
    "TransactionParser",
    "default_parser",
    "parse_message",
    "is_transaction_message",
    "filter_transaction_messages",
    "PatternTables",
    "DEFAULT_TABLES",
    # Models / types
    "ParsedTransaction",
    "ParseMetadata",
    "MerchantInfo",
    "TransactionType",
    "TransactionStatus",
    "ConfidenceBand",
    "LedgerEntry",
    # Ledger
    "LedgerRepository",
    "LedgerLockedError",
    "LedgerSummary",
    "CategorySummary",
    "IngestResult",
    "IngestStatus",
    "to_ledger_entry",
    "compute_fingerprint",
    "export_csv",
    # Collaborator contracts
    "AuthGate",
    "KeyValueStore",
    "MemoryKeyValueStore",
    "SqlKeyValueStore",
    "StaticAuthGate",
]

"""
Data Models Package

This package contains all Pydantic models used in MoodLedger.
All data flowing through the ledger must conform to these schemas.
"""

from moodledger.models.currency import (
    CURRENCY_SYMBOLS,
    Currency,
    format_amount,
    get_currency_symbol,
    is_supported_currency,
)
from moodledger.models.identity import (
    LocalId,
    RecordId,
    ServerId,
    is_server_shaped,
    new_local_id,
    parse_record_id,
)
from moodledger.models.ledger import (
    BALANCE_EPSILON,
    DEFAULT_EXPENSE_CATEGORIES,
    DEFAULT_INCOME_CATEGORIES,
    TRANSFER_CATEGORY,
    Account,
    AccountType,
    Category,
    CategoryKind,
    LedgerSnapshot,
    SyncSession,
    Transaction,
    TransactionType,
    UserSettings,
    account_name_key,
    default_categories,
)
from moodledger.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Currency
    "CURRENCY_SYMBOLS",
    "Currency",
    "format_amount",
    "get_currency_symbol",
    "is_supported_currency",
    # Identity
    "LocalId",
    "RecordId",
    "ServerId",
    "is_server_shaped",
    "new_local_id",
    "parse_record_id",
    # Ledger models
    "BALANCE_EPSILON",
    "DEFAULT_EXPENSE_CATEGORIES",
    "DEFAULT_INCOME_CATEGORIES",
    "TRANSFER_CATEGORY",
    "Account",
    "AccountType",
    "Category",
    "CategoryKind",
    "LedgerSnapshot",
    "SyncSession",
    "Transaction",
    "TransactionType",
    "UserSettings",
    "account_name_key",
    "default_categories",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]

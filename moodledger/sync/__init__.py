"""Reconciliation between the local ledger and the remote store."""

from moodledger.sync.reconciler import (
    ReconciliationEngine,
    SyncState,
    account_to_row,
    row_to_account,
    row_to_transaction,
    transaction_to_row,
)

__all__ = [
    "ReconciliationEngine",
    "SyncState",
    "account_to_row",
    "row_to_account",
    "row_to_transaction",
    "transaction_to_row",
]

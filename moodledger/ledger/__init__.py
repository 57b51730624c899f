"""
Ledger core: balances, transfers, failures and the authoritative store.

Import the store and transfer protocol from their modules
(moodledger.ledger.store, moodledger.ledger.transfer). They depend on
moodledger.validation, which itself depends on the failures defined here.
"""

from moodledger.ledger.balance import (
    BalanceEngine,
    compute_balances,
    find_orphaned_transactions,
)
from moodledger.ledger.errors import (
    AccountNameDuplicateError,
    AccountNotFoundError,
    BalanceNotZeroError,
    CreditLimitExceededError,
    DifferentCurrencyError,
    InitialBalanceNegativeError,
    InsufficientFundsError,
    InvalidAmountError,
    LedgerError,
    LedgerErrorCode,
    SameAccountError,
)

__all__ = [
    "BalanceEngine",
    "compute_balances",
    "find_orphaned_transactions",
    "LedgerError",
    "LedgerErrorCode",
    "InsufficientFundsError",
    "CreditLimitExceededError",
    "InitialBalanceNegativeError",
    "AccountNameDuplicateError",
    "BalanceNotZeroError",
    "SameAccountError",
    "InvalidAmountError",
    "DifferentCurrencyError",
    "AccountNotFoundError",
]

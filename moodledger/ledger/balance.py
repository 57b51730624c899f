"""
Balance Engine

Pure derivation of every account's current balance:

    balance(a) = opening_balance(a) + sum(income on a) - sum(expense on a)

Transactions whose account_id does not resolve (hard-deleted account,
missing reference) leave every balance untouched. They are reported by
find_orphaned_transactions for maintenance, never treated as a fault.
"""

from decimal import Decimal
from typing import Iterable, Optional

from moodledger.models.ledger import Account, LedgerSnapshot, Transaction


def compute_balances(
    accounts: Iterable[Account],
    transactions: Iterable[Transaction],
) -> dict[str, Decimal]:
    """Map account id -> current balance. O(accounts + transactions)."""
    balances: dict[str, Decimal] = {
        str(account.id): account.opening_balance for account in accounts
    }
    for tx in transactions:
        key = str(tx.account_id) if tx.account_id else None
        if key is None or key not in balances:
            continue
        balances[key] += tx.signed_amount
    return balances


def find_orphaned_transactions(
    accounts: Iterable[Account],
    transactions: Iterable[Transaction],
) -> list[Transaction]:
    """Transactions that name an account which no longer exists."""
    known = {str(account.id) for account in accounts}
    return [
        tx for tx in transactions
        if tx.account_id and str(tx.account_id) not in known
    ]


class BalanceEngine:
    """
    Memoized balance derivation over ledger snapshots.

    Snapshots are immutable and carry a version number that changes on
    every swap, so the cached result is valid exactly as long as the
    version matches.
    """

    def __init__(self):
        self._cached_version: Optional[int] = None
        self._cached: dict[str, Decimal] = {}

    def balances(self, snapshot: LedgerSnapshot) -> dict[str, Decimal]:
        if self._cached_version != snapshot.version:
            self._cached = compute_balances(snapshot.accounts, snapshot.transactions)
            self._cached_version = snapshot.version
        return dict(self._cached)

    def balance_of(self, snapshot: LedgerSnapshot, account_id: str) -> Decimal:
        """Balance of one account, zero when it does not exist."""
        if self._cached_version != snapshot.version:
            self.balances(snapshot)
        return self._cached.get(str(account_id), Decimal("0"))

    def invalidate(self) -> None:
        self._cached_version = None
        self._cached = {}

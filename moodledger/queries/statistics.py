"""
Ledger Statistics

DESIGN DECISION: Statistics are DETERMINISTIC reductions over the
transaction list. They never touch storage and never estimate.

Transfers need care: the principal of a transfer is neither income nor
spending, it only moves money between the user's own accounts. Only
the realized fee (debit leg - credit leg) is a real cost, reported as
an expense under the "transfer" category.
"""

from datetime import datetime
from decimal import Decimal
from typing import Iterable, Optional

from pydantic import BaseModel

from moodledger.ledger.transfer import group_transfer_legs, realized_fee
from moodledger.models.ledger import (
    TRANSFER_CATEGORY,
    Transaction,
    TransactionType,
    as_utc,
)


class PeriodSummary(BaseModel):
    """Income, expense and net result over a period."""
    income: Decimal = Decimal("0")
    expense: Decimal = Decimal("0")

    @property
    def balance(self) -> Decimal:
        return self.income - self.expense


class CategoryTotals(BaseModel):
    """Per-category aggregate."""
    category: str
    income_amount: Decimal = Decimal("0")
    expense_amount: Decimal = Decimal("0")
    income_count: int = 0
    expense_count: int = 0


def _within(tx: Transaction, start: Optional[datetime], end: Optional[datetime]) -> bool:
    if start is not None and tx.occurred_at < as_utc(start):
        return False
    if end is not None and tx.occurred_at >= as_utc(end):
        return False
    return True


def _is_principal(tx: Transaction) -> bool:
    return tx.is_transfer or tx.category == TRANSFER_CATEGORY


def transfer_fees(transactions: Iterable[Transaction]) -> dict[str, Decimal]:
    """Map transfer group id -> realized fee."""
    return {
        group_id: realized_fee(legs)
        for group_id, legs in group_transfer_legs(transactions).items()
    }


def category_breakdown(
    transactions: Iterable[Transaction],
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
) -> dict[str, CategoryTotals]:
    """
    Aggregate amounts and counts per category in [start, end).

    Transfer principal is excluded; each fee-bearing transfer counts
    once as a "transfer" expense of its fee.
    """
    selected = [tx for tx in transactions if _within(tx, start, end)]
    totals: dict[str, CategoryTotals] = {}

    for tx in selected:
        if _is_principal(tx):
            continue
        key = tx.category or "other"
        entry = totals.setdefault(key, CategoryTotals(category=key))
        if tx.type == TransactionType.INCOME:
            entry.income_amount += tx.amount
            entry.income_count += 1
        else:
            entry.expense_amount += tx.amount
            entry.expense_count += 1

    for fee in transfer_fees(selected).values():
        if fee > 0:
            entry = totals.setdefault(TRANSFER_CATEGORY, CategoryTotals(category=TRANSFER_CATEGORY))
            entry.expense_amount += fee
            entry.expense_count += 1

    return totals


def period_summary(
    transactions: Iterable[Transaction],
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
) -> PeriodSummary:
    """Income/expense totals in [start, end), transfer fees counted as expense."""
    summary = PeriodSummary()
    for totals in category_breakdown(transactions, start, end).values():
        summary.income += totals.income_amount
        summary.expense += totals.expense_amount
    return summary


def monthly_summary(
    transactions: Iterable[Transaction],
    year: int,
    month: int,
) -> PeriodSummary:
    """Summary for one calendar month, compared in each record's own timezone."""
    selected = [
        tx for tx in transactions
        if tx.occurred_at.year == year and tx.occurred_at.month == month
    ]
    return period_summary(selected)


def top_categories(
    breakdown: dict[str, CategoryTotals],
    transaction_type: TransactionType,
    limit: int = 5,
) -> list[CategoryTotals]:
    """Largest categories for one direction, biggest first."""
    if transaction_type == TransactionType.INCOME:
        key = lambda t: t.income_amount
        entries = [t for t in breakdown.values() if t.income_amount > 0 or t.income_count > 0]
    else:
        key = lambda t: t.expense_amount
        entries = [t for t in breakdown.values() if t.expense_amount > 0 or t.expense_count > 0]
    return sorted(entries, key=key, reverse=True)[:limit]

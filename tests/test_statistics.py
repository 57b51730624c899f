"""
Tests for statistics queries.
"""

from datetime import datetime, timezone
from decimal import Decimal

from moodledger.ledger.transfer import plan_transfer
from moodledger.models.ledger import (
    TRANSFER_CATEGORY,
    Account,
    LedgerSnapshot,
    Transaction,
    TransactionType,
)
from moodledger.queries import (
    category_breakdown,
    monthly_summary,
    period_summary,
    top_categories,
    transfer_fees,
)
from moodledger.validation import LedgerValidator


MAY = datetime(2024, 5, 10, tzinfo=timezone.utc)
JUNE = datetime(2024, 6, 2, tzinfo=timezone.utc)


def _tx(kind, amount, category, when=MAY):
    return Transaction(type=kind, amount=Decimal(amount), category=category, occurred_at=when)


def _transfer(amount, fee, when=MAY):
    a = Account(name="A", opening_balance=Decimal("1000"))
    b = Account(name="B")
    legs = plan_transfer(
        LedgerSnapshot(accounts=(a, b)), {str(a.id): Decimal("1000")}, LedgerValidator(),
        a.id, b.id, Decimal(amount), Decimal(fee), occurred_at=when,
    )
    return [legs.debit, legs.credit]


class TestCategoryBreakdown:

    def test_totals_per_category(self):
        breakdown = category_breakdown([
            _tx(TransactionType.EXPENSE, "10", "food"),
            _tx(TransactionType.EXPENSE, "5", "food"),
            _tx(TransactionType.INCOME, "100", "salary"),
        ])
        assert breakdown["food"].expense_amount == Decimal("15")
        assert breakdown["food"].expense_count == 2
        assert breakdown["salary"].income_amount == Decimal("100")

    def test_transfer_principal_excluded_fee_included(self):
        breakdown = category_breakdown(_transfer("40", "2"))
        assert set(breakdown) == {TRANSFER_CATEGORY}
        assert breakdown[TRANSFER_CATEGORY].expense_amount == Decimal("2")
        assert breakdown[TRANSFER_CATEGORY].expense_count == 1
        assert breakdown[TRANSFER_CATEGORY].income_amount == Decimal("0")

    def test_free_transfer_leaves_no_trace(self):
        assert category_breakdown(_transfer("40", "0")) == {}

    def test_window_is_half_open(self):
        transactions = [
            _tx(TransactionType.EXPENSE, "1", "food", MAY),
            _tx(TransactionType.EXPENSE, "2", "food", JUNE),
        ]
        breakdown = category_breakdown(transactions, start=MAY, end=JUNE)
        assert breakdown["food"].expense_amount == Decimal("1")


class TestSummaries:

    def test_monthly_summary(self):
        transactions = [
            _tx(TransactionType.INCOME, "100", "salary"),
            _tx(TransactionType.EXPENSE, "30", "food"),
            _tx(TransactionType.EXPENSE, "999", "food", JUNE),
            *_transfer("50", "1.5"),
        ]
        summary = monthly_summary(transactions, 2024, 5)
        assert summary.income == Decimal("100")
        assert summary.expense == Decimal("31.5")
        assert summary.balance == Decimal("68.5")

    def test_empty_period(self):
        summary = period_summary([])
        assert summary.income == summary.expense == summary.balance == Decimal("0")

    def test_transfer_fees(self):
        legs = _transfer("10", "0.25")
        assert transfer_fees(legs) == {legs[0].transfer_group_id: Decimal("0.25")}

    def test_top_categories(self):
        breakdown = category_breakdown([
            _tx(TransactionType.EXPENSE, "10", "food"),
            _tx(TransactionType.EXPENSE, "50", "housing"),
            _tx(TransactionType.EXPENSE, "20", "transport"),
            _tx(TransactionType.INCOME, "100", "salary"),
        ])
        top = top_categories(breakdown, TransactionType.EXPENSE, limit=2)
        assert [t.category for t in top] == ["housing", "transport"]
        assert [t.category for t in top_categories(breakdown, TransactionType.INCOME)] == ["salary"]


class TestTimezones:
    """Naive datetimes are read as UTC on both sides of the window."""

    def test_naive_record_in_aware_window(self):
        naive = Transaction(
            type=TransactionType.EXPENSE, amount=Decimal("5"), category="food",
            occurred_at=datetime(2024, 1, 5),
        )
        breakdown = category_breakdown([naive], start=datetime(2024, 1, 1, tzinfo=timezone.utc))
        assert breakdown["food"].expense_amount == Decimal("5")

    def test_naive_window_bounds(self):
        summary = period_summary(
            [_tx(TransactionType.INCOME, "7", "salary")],
            start=datetime(2024, 5, 1),
            end=datetime(2024, 6, 1),
        )
        assert summary.income == Decimal("7")

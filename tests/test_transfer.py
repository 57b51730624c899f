"""
Tests for the transfer protocol, pure planning and through the store.
"""

import pytest
from decimal import Decimal

from moodledger.ledger.errors import (
    AccountNotFoundError,
    CreditLimitExceededError,
    DifferentCurrencyError,
    InsufficientFundsError,
    InvalidAmountError,
    SameAccountError,
)
from moodledger.ledger.transfer import (
    group_transfer_legs,
    plan_transfer,
    realized_fee,
)
from moodledger.models.audit import AuditEventType
from moodledger.models.ledger import (
    TRANSFER_CATEGORY,
    Account,
    AccountType,
    LedgerSnapshot,
    TransactionType,
)
from moodledger.validation import LedgerValidator


class TestPlanTransfer:
    """plan_transfer validates and builds legs without touching state."""

    def _snapshot(self, *accounts):
        return LedgerSnapshot(accounts=accounts)

    def test_legs_shape(self):
        a = Account(name="A", opening_balance=Decimal("100"))
        b = Account(name="B")
        legs = plan_transfer(
            self._snapshot(a, b), {str(a.id): Decimal("100")}, LedgerValidator(),
            a.id, b.id, Decimal("40"), Decimal("2"),
        )
        assert legs.debit.type == TransactionType.EXPENSE
        assert legs.credit.type == TransactionType.INCOME
        assert legs.debit.amount == Decimal("42")
        assert legs.credit.amount == Decimal("40")
        assert legs.debit.transfer_group_id == legs.credit.transfer_group_id == legs.group_id
        assert legs.debit.category == legs.credit.category == TRANSFER_CATEGORY
        assert legs.debit.is_transfer and legs.credit.is_transfer
        assert legs.fee == Decimal("2")
        assert legs.debit.occurred_at == legs.credit.occurred_at

    def test_check_order_account_before_amount(self):
        a = Account(name="A")
        with pytest.raises(AccountNotFoundError):
            plan_transfer(self._snapshot(a), {}, LedgerValidator(), a.id, "local-x", Decimal("-1"))

    def test_same_account_before_amount(self):
        a = Account(name="A")
        with pytest.raises(SameAccountError):
            plan_transfer(self._snapshot(a), {}, LedgerValidator(), a.id, a.id, Decimal("0"))

    def test_amount_before_currency(self):
        a = Account(name="A", currency="CNY")
        b = Account(name="B", currency="USD")
        with pytest.raises(InvalidAmountError):
            plan_transfer(self._snapshot(a, b), {}, LedgerValidator(), a.id, b.id, Decimal("0"))
        with pytest.raises(DifferentCurrencyError):
            plan_transfer(self._snapshot(a, b), {}, LedgerValidator(), a.id, b.id, Decimal("1"))

    def test_negative_fee(self):
        a = Account(name="A", opening_balance=Decimal("10"))
        b = Account(name="B")
        with pytest.raises(InvalidAmountError):
            plan_transfer(self._snapshot(a, b), {}, LedgerValidator(), a.id, b.id, Decimal("1"), Decimal("-1"))


class TestGrouping:

    def test_group_and_fee(self):
        a = Account(name="A", opening_balance=Decimal("100"))
        b = Account(name="B")
        legs = plan_transfer(
            LedgerSnapshot(accounts=(a, b)), {str(a.id): Decimal("100")}, LedgerValidator(),
            a.id, b.id, Decimal("10"), Decimal("0.5"),
        )
        groups = group_transfer_legs([legs.debit, legs.credit])
        assert list(groups) == [legs.group_id]
        assert realized_fee(groups[legs.group_id]) == Decimal("0.5")

    def test_fee_never_negative(self):
        a = Account(name="A", opening_balance=Decimal("100"))
        b = Account(name="B")
        legs = plan_transfer(
            LedgerSnapshot(accounts=(a, b)), {str(a.id): Decimal("100")}, LedgerValidator(),
            a.id, b.id, Decimal("10"),
        )
        assert realized_fee([legs.credit]) == Decimal("0")


class TestStoreTransfer:
    """Transfers installed through the ledger store."""

    @pytest.mark.asyncio
    async def test_transfer_with_fee(self, ledger, audit_logger):
        a = await ledger.add_account("A", opening_balance=100)
        b = await ledger.add_account("B")

        legs = await ledger.transfer(a.id, b.id, 40, fee=2)
        assert ledger.get_account_balance(a.id) == Decimal("58")
        assert ledger.get_account_balance(b.id) == Decimal("40")
        assert ledger.transactions[:2] == (legs.debit, legs.credit)
        assert audit_logger.events_of(AuditEventType.TRANSFER_COMPLETED)

    @pytest.mark.asyncio
    async def test_insufficient_funds_changes_nothing(self, ledger):
        a = await ledger.add_account("A", opening_balance=100)
        b = await ledger.add_account("B")
        before = ledger.snapshot

        with pytest.raises(InsufficientFundsError):
            await ledger.transfer(a.id, b.id, 1000)
        assert ledger.snapshot is before

    @pytest.mark.asyncio
    async def test_fee_counts_towards_funds(self, ledger):
        a = await ledger.add_account("A", opening_balance=100)
        b = await ledger.add_account("B")
        with pytest.raises(InsufficientFundsError):
            await ledger.transfer(a.id, b.id, 99, fee=2)

    @pytest.mark.asyncio
    async def test_different_currency_records_nothing(self, ledger):
        a = await ledger.add_account("A", currency="CNY", opening_balance=100)
        b = await ledger.add_account("B", currency="USD")
        with pytest.raises(DifferentCurrencyError):
            await ledger.transfer(a.id, b.id, 10)
        assert ledger.transactions == ()

    @pytest.mark.asyncio
    async def test_e_wallet_source_needs_funds(self, ledger):
        """An e-wallet may overspend on expenses but not on transfers."""
        wallet = await ledger.add_account("Wallet", AccountType.E_WALLET)
        cash = await ledger.add_account("Cash")
        await ledger.add_transaction(TransactionType.EXPENSE, 5, account_id=wallet.id)
        with pytest.raises(InsufficientFundsError):
            await ledger.transfer(wallet.id, cash.id, 1)

    @pytest.mark.asyncio
    async def test_credit_card_source_uses_limit(self, ledger):
        card = await ledger.add_account("Card", AccountType.CREDIT_CARD, credit_limit=100)
        cash = await ledger.add_account("Cash")
        await ledger.transfer(card.id, cash.id, 100)
        assert ledger.get_account_balance(card.id) == Decimal("-100")
        with pytest.raises(CreditLimitExceededError):
            await ledger.transfer(card.id, cash.id, 1)

    @pytest.mark.asyncio
    async def test_deleting_one_leg_keeps_the_other(self, ledger):
        a = await ledger.add_account("A", opening_balance=10)
        b = await ledger.add_account("B")
        legs = await ledger.transfer(a.id, b.id, 5)
        await ledger.delete_transaction(legs.debit.id)
        assert ledger.get_transaction(legs.credit.id) is not None
        assert ledger.get_account_balance(a.id) == Decimal("10")

"""
Transfer Protocol

A transfer moves funds between two accounts of the same currency. It is
stored as two ordinary transactions sharing a transfer group id:

- an EXPENSE leg on the source account for amount + fee
- an INCOME leg on the destination account for amount

Because both legs are plain transactions, balances and statistics need
no special cases. The fee is recovered later as debit leg - credit leg.

plan_transfer is pure: it validates and returns the legs. Installing
them (atomically) is the ledger store's job.
"""

from datetime import datetime
from decimal import Decimal
from typing import Iterable, NamedTuple, Optional
from uuid import uuid4

from moodledger.ledger.errors import (
    AccountNotFoundError,
    DifferentCurrencyError,
    SameAccountError,
)
from moodledger.models.identity import new_local_id
from moodledger.models.ledger import (
    TRANSFER_CATEGORY,
    LedgerSnapshot,
    Transaction,
    TransactionType,
    utcnow,
)
from moodledger.validation.validator import LedgerValidator


class TransferLegs(NamedTuple):
    """The two halves of one transfer."""
    debit: Transaction
    credit: Transaction

    @property
    def group_id(self) -> str:
        return self.debit.transfer_group_id

    @property
    def fee(self) -> Decimal:
        return self.debit.amount - self.credit.amount


def new_transfer_group_id() -> str:
    return f"tg-{uuid4().hex}"


def plan_transfer(
    snapshot: LedgerSnapshot,
    balances: dict[str, Decimal],
    validator: LedgerValidator,
    from_account_id: str,
    to_account_id: str,
    amount: Decimal,
    fee: Decimal = Decimal("0"),
    occurred_at: Optional[datetime] = None,
    description: str = "",
) -> TransferLegs:
    """
    Validate a transfer and build its two legs.

    Checks run in a fixed order and the first failure wins:
    account resolution, same account, amount, currency, funds/limit.

    Raises:
        AccountNotFoundError, SameAccountError, InvalidAmountError,
        DifferentCurrencyError, CreditLimitExceededError,
        InsufficientFundsError
    """
    source = snapshot.find_account(from_account_id)
    target = snapshot.find_account(to_account_id)
    if source is None or target is None:
        missing = from_account_id if source is None else to_account_id
        raise AccountNotFoundError(f"Account not found: {missing}")

    if source.id == target.id:
        raise SameAccountError("Cannot transfer to the same account")

    validator.check_positive_amount(amount)
    validator.check_fee(fee)

    if source.currency != target.currency:
        raise DifferentCurrencyError(
            f"{source.currency.value} -> {target.currency.value}"
        )

    total_debit = amount + fee
    balance = balances.get(str(source.id), source.opening_balance)
    validator.check_transfer_source(source, balance, total_debit)

    group_id = new_transfer_group_id()
    when = occurred_at or utcnow()

    debit = Transaction(
        id=new_local_id(),
        type=TransactionType.EXPENSE,
        amount=total_debit,
        category=TRANSFER_CATEGORY,
        description=description,
        occurred_at=when,
        currency=source.currency,
        account_id=source.id,
        transfer_group_id=group_id,
        is_transfer=True,
    )
    credit = Transaction(
        id=new_local_id(),
        type=TransactionType.INCOME,
        amount=amount,
        category=TRANSFER_CATEGORY,
        description=description,
        occurred_at=when,
        currency=target.currency,
        account_id=target.id,
        transfer_group_id=group_id,
        is_transfer=True,
    )
    return TransferLegs(debit=debit, credit=credit)


def group_transfer_legs(
    transactions: Iterable[Transaction],
) -> dict[str, list[Transaction]]:
    """Group transfer legs by their group id."""
    groups: dict[str, list[Transaction]] = {}
    for tx in transactions:
        if tx.is_transfer and tx.transfer_group_id:
            groups.setdefault(tx.transfer_group_id, []).append(tx)
    return groups


def realized_fee(legs: Iterable[Transaction]) -> Decimal:
    """Debit minus credit for one group, never below zero."""
    out_total = Decimal("0")
    in_total = Decimal("0")
    for tx in legs:
        if tx.type == TransactionType.EXPENSE:
            out_total += tx.amount
        else:
            in_total += tx.amount
    return max(Decimal("0"), out_total - in_total)

"""
Ledger Invariant Checks

DESIGN DECISION: Every check here is a pure function of the current
snapshot and the proposed change. The ledger store runs the relevant
checks first and only then swaps in a new snapshot, so a rejected
intent can never leave a partially applied state behind.

Checks raise named LedgerError subclasses. They NEVER adjust the
proposed values to make them pass.
"""

from decimal import Decimal
from typing import Iterable, Optional

from moodledger.ledger.errors import (
    AccountNameDuplicateError,
    BalanceNotZeroError,
    CreditLimitExceededError,
    InitialBalanceNegativeError,
    InsufficientFundsError,
    InvalidAmountError,
)
from moodledger.models.ledger import (
    BALANCE_EPSILON,
    DEBIT_LIKE_TYPES,
    Account,
    AccountType,
    account_name_key,
)


class LedgerValidator:
    """
    Validates proposed ledger changes against the financial invariants.

    All comparisons tolerate `epsilon` of floating point noise.
    """

    def __init__(self, epsilon: Optional[Decimal] = None):
        self._epsilon = epsilon if epsilon is not None else BALANCE_EPSILON

    @property
    def epsilon(self) -> Decimal:
        return self._epsilon

    # -------------------------------------------------------------------------
    # Accounts
    # -------------------------------------------------------------------------

    def check_opening_balance(
        self,
        account_type: AccountType,
        opening_balance: Decimal,
    ) -> None:
        """Cash, debit and prepaid accounts cannot start in debt."""
        if account_type in DEBIT_LIKE_TYPES and opening_balance < 0:
            raise InitialBalanceNegativeError(
                f"Opening balance {opening_balance} is negative for a "
                f"{account_type.value} account"
            )

    def check_unique_name(
        self,
        name: str,
        accounts: Iterable[Account],
        exclude_id: Optional[str] = None,
    ) -> None:
        """Names are unique ignoring case and whitespace, archived accounts included."""
        key = account_name_key(name)
        for account in accounts:
            if exclude_id is not None and account.id == exclude_id:
                continue
            if account.name_key == key:
                raise AccountNameDuplicateError(
                    f"An account named '{account.name}' already exists"
                )

    def check_archivable(self, account: Account, balance: Decimal) -> None:
        """Only accounts holding exactly nothing may be archived."""
        if abs(balance) > self._epsilon:
            raise BalanceNotZeroError(
                f"Account '{account.name}' still holds {balance}"
            )

    # -------------------------------------------------------------------------
    # Amounts
    # -------------------------------------------------------------------------

    def check_positive_amount(self, amount: Decimal) -> None:
        if amount is None or not amount.is_finite() or amount <= 0:
            raise InvalidAmountError(f"Amount must be greater than zero, got {amount}")

    def check_fee(self, fee: Decimal) -> None:
        if fee is None or not fee.is_finite() or fee < 0:
            raise InvalidAmountError(f"Fee cannot be negative, got {fee}")

    # -------------------------------------------------------------------------
    # Outflows
    # -------------------------------------------------------------------------

    def check_credit_limit(
        self,
        account: Account,
        balance: Decimal,
        debit: Decimal,
    ) -> None:
        """
        Post-debit debt must stay within the configured limit.

        Debt is the magnitude of a negative balance; a positive balance
        means no debt at all.
        """
        resulting = balance - debit
        debt = -resulting if resulting < 0 else Decimal("0")
        if debt > account.credit_limit + self._epsilon:
            raise CreditLimitExceededError(
                f"Debt of {debt} would exceed the limit of {account.credit_limit} "
                f"on '{account.name}'"
            )

    def check_sufficient_funds(
        self,
        account: Account,
        balance: Decimal,
        debit: Decimal,
    ) -> None:
        if balance < debit - self._epsilon:
            raise InsufficientFundsError(
                f"'{account.name}' holds {balance}, {debit} required"
            )

    def check_expense(
        self,
        account: Account,
        balance: Decimal,
        amount: Decimal,
    ) -> None:
        """
        Rules for an ordinary expense.

        Debit-like accounts need the funds; credit cards with a limit
        must stay within it; every other account type is unchecked.
        """
        if account.is_debit_like:
            self.check_sufficient_funds(account, balance, amount)
        elif account.has_credit_limit:
            self.check_credit_limit(account, balance, amount)

    def check_transfer_source(
        self,
        account: Account,
        balance: Decimal,
        total_debit: Decimal,
    ) -> None:
        """
        Rules for the debit leg of a transfer.

        Stricter than an ordinary expense: anything that is not a
        limited credit card must actually hold the funds.
        """
        if account.has_credit_limit:
            self.check_credit_limit(account, balance, total_debit)
        else:
            self.check_sufficient_funds(account, balance, total_debit)

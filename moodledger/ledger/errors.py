"""
Ledger Failures

Every financial invariant violation is a named failure with a stable
code. Callers catch LedgerError (or a specific subclass) and map the
code to a localized message.

All of these are raised BEFORE any state is changed.
"""

from enum import Enum


class LedgerErrorCode(str, Enum):
    INSUFFICIENT_FUNDS = "INSUFFICIENT_FUNDS"
    CREDIT_LIMIT_EXCEEDED = "CREDIT_LIMIT_EXCEEDED"
    INITIAL_BALANCE_NEGATIVE = "INITIAL_BALANCE_NEGATIVE"
    ACCOUNT_NAME_DUPLICATE = "ACCOUNT_NAME_DUPLICATE"
    BALANCE_NOT_ZERO = "BALANCE_NOT_ZERO"
    SAME_ACCOUNT = "SAME_ACCOUNT"
    INVALID_AMOUNT = "INVALID_AMOUNT"
    DIFFERENT_CURRENCY = "DIFFERENT_CURRENCY"
    ACCOUNT_NOT_FOUND = "ACCOUNT_NOT_FOUND"


class LedgerError(Exception):
    """Base exception for rejected ledger operations."""

    code: LedgerErrorCode

    def __init__(self, message: str = ""):
        super().__init__(message or self.code.value)
        self.message = message or self.code.value


class InsufficientFundsError(LedgerError):
    code = LedgerErrorCode.INSUFFICIENT_FUNDS


class CreditLimitExceededError(LedgerError):
    code = LedgerErrorCode.CREDIT_LIMIT_EXCEEDED


class InitialBalanceNegativeError(LedgerError):
    code = LedgerErrorCode.INITIAL_BALANCE_NEGATIVE


class AccountNameDuplicateError(LedgerError):
    code = LedgerErrorCode.ACCOUNT_NAME_DUPLICATE


class BalanceNotZeroError(LedgerError):
    code = LedgerErrorCode.BALANCE_NOT_ZERO


class SameAccountError(LedgerError):
    code = LedgerErrorCode.SAME_ACCOUNT


class InvalidAmountError(LedgerError):
    code = LedgerErrorCode.INVALID_AMOUNT


class DifferentCurrencyError(LedgerError):
    code = LedgerErrorCode.DIFFERENT_CURRENCY


class AccountNotFoundError(LedgerError):
    code = LedgerErrorCode.ACCOUNT_NOT_FOUND

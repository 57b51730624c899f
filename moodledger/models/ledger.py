"""
Core Ledger Models for MoodLedger

These models define the strict schemas for all ledger data.
They are designed to:
1. Enforce type safety at runtime
2. Provide clear validation error messages
3. Be serializable for local persistence and the remote store
4. Keep the id dual-space (local vs server) visible in the types

DESIGN DECISION: Money is Decimal everywhere. Balances are compared
against an epsilon rather than exact zero because imported and remote
amounts may carry float noise.
"""

from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)

from moodledger.models.currency import Currency
from moodledger.models.identity import RecordId, new_local_id


BALANCE_EPSILON = Decimal("1e-8")

TRANSFER_CATEGORY = "transfer"


def utcnow() -> datetime:
    """Timezone-aware current time."""
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Naive datetimes are taken to be UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class AccountType(str, Enum):
    """Kinds of accounts a user can hold."""
    CASH = "cash"
    DEBIT_CARD = "debit_card"
    CREDIT_CARD = "credit_card"
    PREPAID_CARD = "prepaid_card"
    VIRTUAL_CARD = "virtual_card"
    E_WALLET = "e_wallet"
    INVESTMENT = "investment"
    OTHER = "other"


# Accounts that hold real money and can never go below zero
DEBIT_LIKE_TYPES = frozenset({
    AccountType.CASH,
    AccountType.DEBIT_CARD,
    AccountType.PREPAID_CARD,
})


class TransactionType(str, Enum):
    """Direction of a transaction. The sign on balance comes from here."""
    INCOME = "income"
    EXPENSE = "expense"


class CategoryKind(str, Enum):
    """Which catalog a category belongs to."""
    EXPENSE = "expense"
    INCOME = "income"


# =============================================================================
# ACCOUNT
# =============================================================================

class Account(BaseModel):
    """
    A place money lives: a wallet, a card, an e-wallet.

    Name uniqueness and the archive rule are enforced by the ledger
    store, not here, because they depend on the other accounts and
    on the derived balance.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: RecordId = Field(default_factory=new_local_id)
    name: str = Field(
        ...,
        min_length=1,
        max_length=100,
        description="Display name, unique per user ignoring case and spaces"
    )
    type: AccountType = AccountType.CASH
    currency: Currency = Currency.CNY
    opening_balance: Decimal = Field(
        default=Decimal("0"),
        description="Signed balance at creation time"
    )
    credit_limit: Optional[Decimal] = Field(
        default=None,
        gt=0,
        description="Maximum debt, only meaningful for credit cards"
    )
    archived: bool = False
    created_at: datetime = Field(default_factory=utcnow)

    @field_validator('created_at')
    @classmethod
    def created_at_is_aware(cls, v: datetime) -> datetime:
        return as_utc(v)

    @property
    def is_debit_like(self) -> bool:
        return self.type in DEBIT_LIKE_TYPES

    @property
    def has_credit_limit(self) -> bool:
        """Credit card with a positive configured limit."""
        return (
            self.type == AccountType.CREDIT_CARD
            and self.credit_limit is not None
            and self.credit_limit > 0
        )

    @property
    def name_key(self) -> str:
        return account_name_key(self.name)


def account_name_key(name: str) -> str:
    """Normalize an account name for uniqueness checks."""
    return "".join(name.split()).casefold()


# =============================================================================
# TRANSACTION
# =============================================================================

class Transaction(BaseModel):
    """
    A single income or expense record.

    Amount is always non-negative. Whether it adds to or subtracts
    from the owning account's balance is decided by `type`.

    Transfers are modelled as two ordinary transactions (an expense
    leg and an income leg) sharing a transfer_group_id.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: RecordId = Field(default_factory=new_local_id)
    type: TransactionType
    amount: Decimal = Field(..., ge=0)
    category: str = Field(default="other", max_length=100)
    description: str = Field(default="", max_length=500)
    occurred_at: datetime = Field(default_factory=utcnow)
    currency: Currency = Currency.CNY
    account_id: Optional[RecordId] = None
    emotion: Optional[str] = Field(default=None, max_length=50)
    transfer_group_id: Optional[str] = None
    is_transfer: bool = False

    @field_validator('description', mode='before')
    @classmethod
    def none_description_is_empty(cls, v):
        return "" if v is None else v

    @field_validator('occurred_at')
    @classmethod
    def occurred_at_is_aware(cls, v: datetime) -> datetime:
        return as_utc(v)

    @model_validator(mode='after')
    def check_transfer_group(self) -> 'Transaction':
        """A transfer leg must carry its group id."""
        if self.is_transfer and not self.transfer_group_id:
            raise ValueError("Transfer legs require a transfer_group_id")
        return self

    @property
    def signed_amount(self) -> Decimal:
        if self.type == TransactionType.INCOME:
            return self.amount
        return -self.amount


# =============================================================================
# CATEGORIES
# =============================================================================

class Category(BaseModel):
    """An entry in the expense or income catalog."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1, max_length=50)
    emoji: str = Field(default="", max_length=16)


DEFAULT_EXPENSE_CATEGORIES: tuple[Category, ...] = (
    Category(id="food", name="Food", emoji="🍜"),
    Category(id="transport", name="Transport", emoji="🚌"),
    Category(id="shopping", name="Shopping", emoji="🛍️"),
    Category(id="entertainment", name="Entertainment", emoji="🎮"),
    Category(id="housing", name="Housing", emoji="🏠"),
    Category(id="health", name="Health", emoji="💊"),
    Category(id="education", name="Education", emoji="📚"),
    Category(id="other", name="Other", emoji="📦"),
)

DEFAULT_INCOME_CATEGORIES: tuple[Category, ...] = (
    Category(id="salary", name="Salary", emoji="💼"),
    Category(id="bonus", name="Bonus", emoji="🎁"),
    Category(id="investment", name="Investment", emoji="📈"),
    Category(id="part_time", name="Part-time", emoji="🧑‍💻"),
    Category(id="other_income", name="Other", emoji="💰"),
)


def default_categories(kind: CategoryKind) -> tuple[Category, ...]:
    if kind == CategoryKind.INCOME:
        return DEFAULT_INCOME_CATEGORIES
    return DEFAULT_EXPENSE_CATEGORIES


# =============================================================================
# SESSION / SETTINGS
# =============================================================================

class SyncSession(BaseModel):
    """
    An authenticated remote session.

    Passed explicitly to the reconciliation engine. When absent or
    inactive, the ledger works purely locally.
    """
    model_config = ConfigDict(frozen=True)

    user_id: str = Field(..., min_length=1)
    active: bool = True


class UserSettings(BaseModel):
    """Per-user preferences mirrored in the remote store."""

    user_id: str
    currency: Currency = Currency.CNY
    language: str = "en"
    theme: str = Field(default="system", pattern="^(light|dark|system)$")
    updated_at: datetime = Field(default_factory=utcnow)

    @field_validator('updated_at')
    @classmethod
    def updated_at_is_aware(cls, v: datetime) -> datetime:
        return as_utc(v)


# =============================================================================
# SNAPSHOT
# =============================================================================

class LedgerSnapshot(BaseModel):
    """
    The complete in-memory ledger at one point in time.

    Immutable: every change produces a new snapshot with a higher
    version, swapped in as a single assignment. Readers therefore
    never observe a half-applied multi-record change.
    """
    model_config = ConfigDict(frozen=True)

    accounts: tuple[Account, ...] = ()
    transactions: tuple[Transaction, ...] = ()
    expense_categories: tuple[Category, ...] = DEFAULT_EXPENSE_CATEGORIES
    income_categories: tuple[Category, ...] = DEFAULT_INCOME_CATEGORIES
    currency: Currency = Currency.CNY
    version: int = 0

    def find_account(self, account_id: Optional[str]) -> Optional[Account]:
        if not account_id:
            return None
        for account in self.accounts:
            if account.id == account_id:
                return account
        return None

    def find_transaction(self, transaction_id: str) -> Optional[Transaction]:
        for tx in self.transactions:
            if tx.id == transaction_id:
                return tx
        return None

    def categories(self, kind: CategoryKind) -> tuple[Category, ...]:
        if kind == CategoryKind.INCOME:
            return self.income_categories
        return self.expense_categories

"""
Ledger Store

The in-memory, authoritative copy of accounts, transactions and the
category catalogs for the running session.

FLOW for every mutation:
1. Validate the intent against the current snapshot (no awaits here)
2. Build a new immutable snapshot and swap it in with one assignment
3. Persist the affected keys to the local key-value store
4. Hand the change to the reconciliation engine, if one is attached

Steps 1-2 run without yielding to the event loop, so no other
coroutine can observe or interleave with a half-applied change.
Remote work is scheduled in the background; mutation calls return
once the optimistic local state is installed and persisted.

DESIGN DECISION: Local persistence failures are logged, not raised.
The in-memory state stays authoritative for the session and the next
successful write catches the local mirror up.
"""

import json
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import TYPE_CHECKING, Any, Iterable, Optional, Union

from pydantic import ValidationError

from moodledger.audit import AuditLogger, create_correlation_id
from moodledger.codec.exchange import ImportResult, export_ledger, parse_import
from moodledger.ledger.balance import BalanceEngine, find_orphaned_transactions
from moodledger.ledger.errors import (
    AccountNotFoundError,
    InvalidAmountError,
    LedgerError,
)
from moodledger.ledger.transfer import TransferLegs, plan_transfer
from moodledger.models.audit import AuditEventType
from moodledger.models.currency import Currency
from moodledger.models.identity import RecordId, new_local_id
from moodledger.models.ledger import (
    Account,
    AccountType,
    Category,
    CategoryKind,
    LedgerSnapshot,
    Transaction,
    TransactionType,
    default_categories,
    utcnow,
)
from moodledger.services.storage.interface import (
    KeyValueStore,
    RemoteResource,
    StorageError,
    StorageKeys,
)
from moodledger.validation.validator import LedgerValidator

if TYPE_CHECKING:
    from moodledger.sync.reconciler import ReconciliationEngine


TRANSACTION_PATCH_FIELDS = frozenset({
    "type",
    "amount",
    "category",
    "description",
    "occurred_at",
    "currency",
    "account_id",
    "emotion",
})

ACCOUNT_PATCH_FIELDS = frozenset({
    "name",
    "type",
    "currency",
    "credit_limit",
})

_CATEGORY_KEYS = {
    CategoryKind.EXPENSE: ("expense_categories", StorageKeys.EXPENSE_CATEGORIES),
    CategoryKind.INCOME: ("income_categories", StorageKeys.INCOME_CATEGORIES),
}


def to_decimal(value: Union[Decimal, float, int, str]) -> Decimal:
    """
    Coerce user input to Decimal.

    Floats go through str() so 0.1 stays 0.1 rather than its binary
    expansion.

    Raises:
        InvalidAmountError: If the value is not a finite number
    """
    if isinstance(value, bool):
        raise InvalidAmountError(f"Not an amount: {value!r}")
    if isinstance(value, Decimal):
        amount = value
    else:
        try:
            amount = Decimal(str(value).strip())
        except (InvalidOperation, ValueError):
            raise InvalidAmountError(f"Not an amount: {value!r}")
    if not amount.is_finite():
        raise InvalidAmountError(f"Not an amount: {value!r}")
    return amount


def remap_account_ids(
    transactions: Iterable[Transaction],
    mapping: dict[str, RecordId],
) -> tuple[list[Transaction], int]:
    """
    Point transactions at translated account ids.

    Returns:
        (transactions, how many changed)
    """
    changed = 0
    remapped = []
    for tx in transactions:
        target = mapping.get(str(tx.account_id)) if tx.account_id else None
        if target is not None and target != tx.account_id:
            remapped.append(tx.model_copy(update={"account_id": target}))
            changed += 1
        else:
            remapped.append(tx)
    return remapped, changed


class LedgerStore:
    """
    Owns the ledger collections for the lifetime of the process.

    Everything that changes accounts, transactions, categories or the
    ledger currency goes through this class.
    """

    def __init__(
        self,
        local_store: KeyValueStore,
        audit_logger: Optional[AuditLogger] = None,
        validator: Optional[LedgerValidator] = None,
        default_currency: Currency = Currency.CNY,
    ):
        self._local = local_store
        self._audit = audit_logger or AuditLogger()
        self._validator = validator or LedgerValidator()
        self._balances = BalanceEngine()
        self._snapshot = LedgerSnapshot(currency=Currency(default_currency))
        self._reconciler: Optional["ReconciliationEngine"] = None

    # =========================================================================
    # Read side
    # =========================================================================

    @property
    def snapshot(self) -> LedgerSnapshot:
        return self._snapshot

    @property
    def accounts(self) -> tuple[Account, ...]:
        return self._snapshot.accounts

    @property
    def transactions(self) -> tuple[Transaction, ...]:
        return self._snapshot.transactions

    @property
    def expense_categories(self) -> tuple[Category, ...]:
        return self._snapshot.expense_categories

    @property
    def income_categories(self) -> tuple[Category, ...]:
        return self._snapshot.income_categories

    @property
    def currency(self) -> Currency:
        return self._snapshot.currency

    @property
    def validator(self) -> LedgerValidator:
        return self._validator

    @property
    def audit_logger(self) -> AuditLogger:
        return self._audit

    def get_account(self, account_id: str) -> Optional[Account]:
        return self._snapshot.find_account(account_id)

    def get_transaction(self, transaction_id: str) -> Optional[Transaction]:
        return self._snapshot.find_transaction(transaction_id)

    def balances(self) -> dict[str, Decimal]:
        """Current balance of every account, keyed by account id."""
        return self._balances.balances(self._snapshot)

    def get_account_balance(self, account_id: str) -> Decimal:
        return self._balances.balance_of(self._snapshot, account_id)

    def default_account(self) -> Optional[Account]:
        """The first account that is not archived."""
        for account in self._snapshot.accounts:
            if not account.archived:
                return account
        return None

    def orphaned_transactions(self) -> list[Transaction]:
        return find_orphaned_transactions(self._snapshot.accounts, self._snapshot.transactions)

    # =========================================================================
    # Wiring
    # =========================================================================

    def attach_reconciler(self, reconciler: "ReconciliationEngine") -> None:
        self._reconciler = reconciler

    def _trigger(self, resource: RemoteResource) -> None:
        if self._reconciler is not None:
            self._reconciler.trigger(resource)

    # =========================================================================
    # Snapshot swap + local persistence
    # =========================================================================

    def _install(self, **changes: Any) -> LedgerSnapshot:
        """Swap in a new snapshot. The single point where state changes."""
        for key, value in changes.items():
            if isinstance(value, list):
                changes[key] = tuple(value)
        changes["version"] = self._snapshot.version + 1
        self._snapshot = self._snapshot.model_copy(update=changes)
        return self._snapshot

    def _serialize(self, key: str) -> str:
        snapshot = self._snapshot
        if key == StorageKeys.TRANSACTIONS:
            return json.dumps([tx.model_dump(mode="json") for tx in snapshot.transactions])
        if key == StorageKeys.ACCOUNTS:
            return json.dumps([a.model_dump(mode="json") for a in snapshot.accounts])
        if key == StorageKeys.EXPENSE_CATEGORIES:
            return json.dumps([c.model_dump() for c in snapshot.expense_categories], ensure_ascii=False)
        if key == StorageKeys.INCOME_CATEGORIES:
            return json.dumps([c.model_dump() for c in snapshot.income_categories], ensure_ascii=False)
        if key == StorageKeys.CURRENCY:
            return snapshot.currency.value
        raise KeyError(key)

    async def _persist(self, *keys: str) -> None:
        for key in keys:
            try:
                await self._local.set(key, self._serialize(key))
            except StorageError as e:
                await self._audit.log_error(
                    error_type="local_persist_failed",
                    error_message=str(e),
                    details={"key": key},
                )

    async def load(self) -> LedgerSnapshot:
        """
        Load the ledger from the local store at startup.

        Malformed blobs are logged and skipped; that collection keeps
        its default (empty, or the built-in catalog).
        """
        changes: dict[str, Any] = {}

        raw = await self._read_json(StorageKeys.ACCOUNTS)
        if raw is not None:
            accounts = await self._parse_list(raw, Account, StorageKeys.ACCOUNTS)
            if accounts is not None:
                changes["accounts"] = accounts

        raw = await self._read_json(StorageKeys.TRANSACTIONS)
        if raw is not None:
            transactions = await self._parse_list(raw, Transaction, StorageKeys.TRANSACTIONS)
            if transactions is not None:
                changes["transactions"] = transactions

        for field, key in _CATEGORY_KEYS.values():
            raw = await self._read_json(key)
            if raw is not None:
                categories = await self._parse_list(raw, Category, key)
                if categories:
                    changes[field] = categories

        stored_currency = await self._local.get(StorageKeys.CURRENCY)
        if stored_currency:
            try:
                changes["currency"] = Currency(stored_currency.strip())
            except ValueError:
                await self._audit.log_error(
                    error_type="local_load_failed",
                    error_message=f"Unsupported stored currency {stored_currency!r}",
                )

        self._install(**changes)

        orphans = self.orphaned_transactions()
        if orphans:
            await self._audit.log_orphaned_transactions([str(tx.id) for tx in orphans])
        return self._snapshot

    async def _read_json(self, key: str) -> Optional[Any]:
        try:
            stored = await self._local.get(key)
        except StorageError as e:
            await self._audit.log_error("local_load_failed", str(e), {"key": key})
            return None
        if not stored:
            return None
        try:
            return json.loads(stored)
        except json.JSONDecodeError as e:
            await self._audit.log_error("local_load_failed", str(e), {"key": key})
            return None

    async def _parse_list(self, raw: Any, model: type, key: str) -> Optional[list]:
        if not isinstance(raw, list):
            await self._audit.log_error("local_load_failed", "Stored value is not a list", {"key": key})
            return None
        try:
            return [model.model_validate(item) for item in raw]
        except ValidationError as e:
            await self._audit.log_error("local_load_failed", str(e), {"key": key})
            return None

    async def _rejected(self, error: LedgerError, operation: str) -> None:
        await self._audit.log_invariant_rejected(error.code.value, error.message, operation)

    # =========================================================================
    # Transactions
    # =========================================================================

    async def add_transaction(
        self,
        type: Union[TransactionType, str],
        amount: Union[Decimal, float, int, str],
        category: str = "other",
        occurred_at: Optional[datetime] = None,
        description: str = "",
        account_id: Optional[str] = None,
        emotion: Optional[str] = None,
    ) -> Transaction:
        """
        Record an income or expense.

        The owning account is `account_id` when given, otherwise the
        default account. With no accounts at all the transaction is
        recorded unattached, in the ledger currency.

        Raises:
            InvalidAmountError: amount is not > 0
            AccountNotFoundError: account_id does not exist
            InsufficientFundsError: expense exceeds a debit-like balance
            CreditLimitExceededError: expense pushes card debt over its limit
        """
        try:
            tx_type = TransactionType(type)
            value = to_decimal(amount)
            self._validator.check_positive_amount(value)

            if account_id is not None:
                account = self._snapshot.find_account(account_id)
                if account is None:
                    raise AccountNotFoundError(f"Account not found: {account_id}")
            else:
                account = self.default_account()

            if account is not None and tx_type == TransactionType.EXPENSE:
                balance = self.get_account_balance(account.id)
                self._validator.check_expense(account, balance, value)
        except LedgerError as e:
            await self._rejected(e, "add_transaction")
            raise

        tx = Transaction(
            id=new_local_id(),
            type=tx_type,
            amount=value,
            category=category,
            description=description or "",
            occurred_at=occurred_at or utcnow(),
            currency=account.currency if account else self._snapshot.currency,
            account_id=account.id if account else None,
            emotion=emotion,
        )
        self._install(transactions=(tx,) + self._snapshot.transactions)

        await self._persist(StorageKeys.TRANSACTIONS)
        await self._audit.log_transaction_added(
            transaction_id=str(tx.id),
            transaction_type=tx.type.value,
            amount=str(tx.amount),
            account_id=str(tx.account_id) if tx.account_id else None,
        )
        self._trigger(RemoteResource.TRANSACTIONS)
        return tx

    async def update_transaction(self, transaction_id: str, **patch: Any) -> Optional[Transaction]:
        """
        Replace fields of a transaction in place, keeping its id.

        Balance sufficiency is NOT re-checked on update.

        Returns:
            The updated transaction, or None if the id is unknown

        Raises:
            ValueError: On fields that cannot be patched or invalid values
        """
        unknown = set(patch) - TRANSACTION_PATCH_FIELDS
        if unknown:
            raise ValueError(f"Cannot update transaction fields: {sorted(unknown)}")

        existing = self._snapshot.find_transaction(transaction_id)
        if existing is None:
            return None

        if "amount" in patch:
            patch["amount"] = to_decimal(patch["amount"])
        data = existing.model_dump()
        data.update(patch)
        data["id"] = existing.id
        updated = Transaction.model_validate(data)

        self._install(transactions=tuple(
            updated if tx.id == existing.id else tx
            for tx in self._snapshot.transactions
        ))

        await self._persist(StorageKeys.TRANSACTIONS)
        await self._audit.log_transaction_updated(str(updated.id), sorted(patch))
        self._trigger(RemoteResource.TRANSACTIONS)
        return updated

    async def delete_transaction(self, transaction_id: str) -> bool:
        """
        Remove a transaction locally, then remotely when a session is active.

        Returns:
            False if the id is unknown
        """
        existing = self._snapshot.find_transaction(transaction_id)
        if existing is None:
            return False

        self._install(transactions=tuple(
            tx for tx in self._snapshot.transactions if tx.id != existing.id
        ))

        await self._persist(StorageKeys.TRANSACTIONS)
        await self._audit.log_transaction_deleted(str(existing.id))
        if self._reconciler is not None:
            self._reconciler.request_delete(RemoteResource.TRANSACTIONS, existing)
        return True

    async def transfer(
        self,
        from_account_id: str,
        to_account_id: str,
        amount: Union[Decimal, float, int, str],
        fee: Union[Decimal, float, int, str] = Decimal("0"),
        occurred_at: Optional[datetime] = None,
        description: str = "",
    ) -> TransferLegs:
        """
        Move funds between two accounts of the same currency.

        Both legs are installed in one snapshot swap and reconciled
        together.

        Raises:
            AccountNotFoundError, SameAccountError, InvalidAmountError,
            DifferentCurrencyError, CreditLimitExceededError,
            InsufficientFundsError
        """
        try:
            legs = plan_transfer(
                snapshot=self._snapshot,
                balances=self.balances(),
                validator=self._validator,
                from_account_id=from_account_id,
                to_account_id=to_account_id,
                amount=to_decimal(amount),
                fee=to_decimal(fee),
                occurred_at=occurred_at,
                description=description or "",
            )
        except LedgerError as e:
            await self._rejected(e, "transfer")
            raise

        self._install(transactions=(legs.debit, legs.credit) + self._snapshot.transactions)

        await self._persist(StorageKeys.TRANSACTIONS)
        await self._audit.log_transfer_completed(
            transfer_group_id=legs.group_id,
            from_account_id=str(from_account_id),
            to_account_id=str(to_account_id),
            amount=str(legs.credit.amount),
            fee=str(legs.fee),
            correlation_id=create_correlation_id(),
        )
        self._trigger(RemoteResource.TRANSACTIONS)
        return legs

    # =========================================================================
    # Accounts
    # =========================================================================

    async def add_account(
        self,
        name: str,
        type: Union[AccountType, str] = AccountType.CASH,
        currency: Optional[Union[Currency, str]] = None,
        opening_balance: Union[Decimal, float, int, str] = Decimal("0"),
        credit_limit: Optional[Union[Decimal, float, int, str]] = None,
    ) -> Account:
        """
        Create an account.

        Raises:
            InitialBalanceNegativeError: debit-like account opened in debt
            AccountNameDuplicateError: name already used (case/space-insensitive)
            InvalidAmountError: opening balance or limit is not a number
        """
        try:
            account_type = AccountType(type)
            opening = to_decimal(opening_balance)
            limit = to_decimal(credit_limit) if credit_limit is not None else None
            self._validator.check_opening_balance(account_type, opening)
            self._validator.check_unique_name(name, self._snapshot.accounts)
        except LedgerError as e:
            await self._rejected(e, "add_account")
            raise

        account = Account(
            id=new_local_id(),
            name=name,
            type=account_type,
            currency=Currency(currency) if currency else self._snapshot.currency,
            opening_balance=opening,
            credit_limit=limit,
        )
        self._install(accounts=self._snapshot.accounts + (account,))

        await self._persist(StorageKeys.ACCOUNTS)
        await self._audit.log_account_changed(
            AuditEventType.ACCOUNT_ADDED,
            account_id=str(account.id),
            name=account.name,
            details={"type": account.type.value, "currency": account.currency.value},
        )
        self._trigger(RemoteResource.ACCOUNTS)
        return account

    async def update_account(self, account_id: str, **patch: Any) -> Account:
        """
        Patch name, type, currency or credit limit.

        Raises:
            AccountNotFoundError: unknown id
            AccountNameDuplicateError: rename collides with another account
            ValueError: fields that cannot be patched
        """
        unknown = set(patch) - ACCOUNT_PATCH_FIELDS
        if unknown:
            raise ValueError(f"Cannot update account fields: {sorted(unknown)}")

        try:
            existing = self._snapshot.find_account(account_id)
            if existing is None:
                raise AccountNotFoundError(f"Account not found: {account_id}")
            if "name" in patch:
                self._validator.check_unique_name(
                    patch["name"], self._snapshot.accounts, exclude_id=existing.id
                )
            if patch.get("credit_limit") is not None:
                patch["credit_limit"] = to_decimal(patch["credit_limit"])
        except LedgerError as e:
            await self._rejected(e, "update_account")
            raise

        data = existing.model_dump()
        data.update(patch)
        data["id"] = existing.id
        updated = Account.model_validate(data)

        self._install(accounts=tuple(
            updated if a.id == existing.id else a for a in self._snapshot.accounts
        ))

        await self._persist(StorageKeys.ACCOUNTS)
        await self._audit.log_account_changed(
            AuditEventType.ACCOUNT_UPDATED,
            account_id=str(updated.id),
            name=updated.name,
            details={"fields": sorted(patch)},
        )
        self._trigger(RemoteResource.ACCOUNTS)
        return updated

    async def archive_account(self, account_id: str) -> Account:
        """
        Soft-delete an account. Only allowed at a zero balance.

        Raises:
            AccountNotFoundError: unknown id
            BalanceNotZeroError: |balance| > epsilon
        """
        try:
            existing = self._snapshot.find_account(account_id)
            if existing is None:
                raise AccountNotFoundError(f"Account not found: {account_id}")
            self._validator.check_archivable(existing, self.get_account_balance(existing.id))
        except LedgerError as e:
            await self._rejected(e, "archive_account")
            raise

        if existing.archived:
            return existing

        archived = existing.model_copy(update={"archived": True})
        self._install(accounts=tuple(
            archived if a.id == existing.id else a for a in self._snapshot.accounts
        ))

        await self._persist(StorageKeys.ACCOUNTS)
        await self._audit.log_account_changed(
            AuditEventType.ACCOUNT_ARCHIVED,
            account_id=str(archived.id),
            name=archived.name,
        )
        self._trigger(RemoteResource.ACCOUNTS)
        return archived

    async def delete_account(self, account_id: str) -> bool:
        """
        Hard-delete an account.

        Transactions that referenced it are NOT removed or reassigned.
        They stay in the ledger and no longer count towards any balance.

        Returns:
            False if the id is unknown
        """
        existing = self._snapshot.find_account(account_id)
        if existing is None:
            return False

        self._install(accounts=tuple(
            a for a in self._snapshot.accounts if a.id != existing.id
        ))

        await self._persist(StorageKeys.ACCOUNTS)
        orphaned = [str(tx.id) for tx in self.orphaned_transactions()]
        await self._audit.log_account_changed(
            AuditEventType.ACCOUNT_DELETED,
            account_id=str(existing.id),
            name=existing.name,
            details={"orphaned_transactions": len(orphaned)},
        )
        if orphaned:
            await self._audit.log_orphaned_transactions(orphaned)
        if self._reconciler is not None:
            self._reconciler.request_delete(RemoteResource.ACCOUNTS, existing)
        return True

    # =========================================================================
    # Catalogs & preferences
    # =========================================================================

    async def add_category(self, kind: Union[CategoryKind, str], name: str, emoji: str = "") -> Category:
        """
        Add a category to the expense or income catalog.

        Raises:
            ValueError: empty or duplicate name
        """
        kind = CategoryKind(kind)
        field, key = _CATEGORY_KEYS[kind]
        current = self._snapshot.categories(kind)
        if any(c.name.casefold() == name.strip().casefold() for c in current):
            raise ValueError(f"Category '{name}' already exists")

        category = Category(id=str(new_local_id()), name=name, emoji=emoji)
        self._install(**{field: current + (category,)})
        await self._persist(key)
        return category

    async def remove_category(self, kind: Union[CategoryKind, str], category_id: str) -> bool:
        """Remove a category. Existing transactions keep their category text."""
        kind = CategoryKind(kind)
        field, key = _CATEGORY_KEYS[kind]
        current = self._snapshot.categories(kind)
        remaining = tuple(c for c in current if c.id != category_id)
        if len(remaining) == len(current):
            return False
        self._install(**{field: remaining})
        await self._persist(key)
        return True

    async def restore_default_categories(self, kind: Union[CategoryKind, str]) -> tuple[Category, ...]:
        kind = CategoryKind(kind)
        field, key = _CATEGORY_KEYS[kind]
        self._install(**{field: default_categories(kind)})
        await self._persist(key)
        return self._snapshot.categories(kind)

    async def set_currency(self, currency: Union[Currency, str]) -> Currency:
        """Change the ledger currency and write it through to remote settings."""
        value = Currency(currency)
        self._install(currency=value)
        await self._persist(StorageKeys.CURRENCY)
        if self._reconciler is not None:
            self._reconciler.push_settings(currency=value.value)
        return value

    async def clear_all_data(self) -> None:
        """
        Reset the local ledger to an empty state.

        The remote store is left untouched.
        """
        self._install(
            accounts=(),
            transactions=(),
            expense_categories=default_categories(CategoryKind.EXPENSE),
            income_categories=default_categories(CategoryKind.INCOME),
        )
        try:
            await self._local.remove_many(StorageKeys.ALL)
        except StorageError as e:
            await self._audit.log_error("local_clear_failed", str(e))
        await self._audit.log_data_cleared()

    # =========================================================================
    # Import / export
    # =========================================================================

    async def export_data(self) -> str:
        """Serialize the ledger to the portable JSON format."""
        document = export_ledger(self._snapshot)
        await self._audit.log_data_exported(len(self._snapshot.transactions))
        return document

    async def import_data(self, text: str) -> ImportResult:
        """
        Restore the ledger from an export document.

        Transactions are REPLACED wholesale. Currency and catalogs are
        replaced only when the document carries non-empty values.
        Nothing changes when parsing fails.
        """
        result = parse_import(text, fallback_currency=self._snapshot.currency)
        if not result.ok:
            await self._audit.log_import_failed(result.error or "unknown error")
            return result

        payload = result.payload
        changes: dict[str, Any] = {"transactions": payload.transactions}
        keys = [StorageKeys.TRANSACTIONS]
        if payload.currency:
            changes["currency"] = payload.currency
            keys.append(StorageKeys.CURRENCY)
        if payload.expense_categories:
            changes["expense_categories"] = payload.expense_categories
            keys.append(StorageKeys.EXPENSE_CATEGORIES)
        if payload.income_categories:
            changes["income_categories"] = payload.income_categories
            keys.append(StorageKeys.INCOME_CATEGORIES)

        self._install(**changes)

        await self._persist(*keys)
        await self._audit.log_data_imported(result.transaction_count, payload.regenerated_ids)
        self._trigger(RemoteResource.TRANSACTIONS)
        return result

    # =========================================================================
    # Adoption of remote state (used by the reconciliation engine)
    # =========================================================================

    async def replace_transactions(self, transactions: Iterable[Transaction]) -> None:
        """Install the remote view of transactions wholesale. Never triggers a sync."""
        self._install(transactions=tuple(transactions))
        await self._persist(StorageKeys.TRANSACTIONS)

    async def adopt_accounts(
        self,
        accounts: Iterable[Account],
        mapping: Optional[dict[str, RecordId]] = None,
    ) -> int:
        """
        Install the remote view of accounts wholesale, together with the
        transactions re-pointed through `mapping`, in one snapshot swap.
        Never triggers a sync.

        Returns:
            How many transactions changed
        """
        transactions, changed = remap_account_ids(self._snapshot.transactions, mapping or {})
        if changed:
            self._install(accounts=tuple(accounts), transactions=tuple(transactions))
            await self._persist(StorageKeys.ACCOUNTS, StorageKeys.TRANSACTIONS)
        else:
            self._install(accounts=tuple(accounts))
            await self._persist(StorageKeys.ACCOUNTS)
        return changed

    async def remap_account_references(self, mapping: dict[str, RecordId]) -> int:
        """
        Point transactions at translated account ids.

        Returns:
            How many transactions changed
        """
        remapped, changed = remap_account_ids(self._snapshot.transactions, mapping)
        if changed:
            self._install(transactions=tuple(remapped))
            await self._persist(StorageKeys.TRANSACTIONS)
        return changed

    async def apply_remote_currency(self, currency: Union[Currency, str]) -> None:
        """Adopt the currency from remote settings without writing it back."""
        value = Currency(currency)
        if value != self._snapshot.currency:
            self._install(currency=value)
            await self._persist(StorageKeys.CURRENCY)

"""
Reconciliation Engine

Keeps the local ledger and the remote store converging.

FLOW for one sync of a unit (the transaction set or the account set):
1. Mark the unit SYNCING (a trigger arriving now is dropped)
2. Upsert records that already carry a ServerId
3. Insert records that only have a LocalId, WITHOUT their id, and
   read the server-assigned ids back in input order
4. Fetch everything the user owns for that unit
5. Replace the local collection wholesale with the remote result
6. For accounts: rewrite transaction account references from the old
   local ids to the new server ids in the same snapshot swap, and
   schedule a transaction sync
7. Mark the unit IDLE; run it once more if a re-run was queued

Account id translations are kept until a transaction sync has pushed
them and read back no row still using the old local id. A transaction
sync applies them to local records before pushing and to remote rows
before adopting them, so a concurrent account sync can never leave a
transaction pointing at a replaced account.

DESIGN DECISION: Local state is optimistic and remote failures never
surface to the caller. A failed sync is logged and local data is kept
as it was; the next mutation triggers another attempt. The remote
store is the source of truth at the end of every successful sync.

Known limitation: edits made while a sync of the same unit is in
flight are overwritten by that sync's replace step, and are only
pushed again by the next trigger.
"""

import asyncio
from enum import Enum
from typing import Any, Coroutine, Optional, Union

from pydantic import ValidationError

from moodledger.audit import AuditLogger
from moodledger.ledger.store import LedgerStore, remap_account_ids
from moodledger.models.currency import is_supported_currency
from moodledger.models.identity import RecordId, ServerId, parse_record_id
from moodledger.models.ledger import Account, SyncSession, Transaction
from moodledger.services.storage.interface import (
    RemoteLedgerStore,
    RemoteResource,
    Row,
)


class SyncState(str, Enum):
    IDLE = "idle"
    SYNCING = "syncing"


# =============================================================================
# Row translation
# =============================================================================

def transaction_to_row(tx: Transaction, include_id: bool = True) -> Row:
    row = tx.model_dump(mode="json")
    if not include_id:
        row.pop("id", None)
    return row


def account_to_row(account: Account, include_id: bool = True) -> Row:
    row = account.model_dump(mode="json")
    if not include_id:
        row.pop("id", None)
    return row


def row_to_transaction(row: Row) -> Transaction:
    """
    Build a Transaction from a remote row.

    Raises:
        ValidationError: If the row is malformed
    """
    data = {
        field: row[field] for field in Transaction.model_fields
        if row.get(field) is not None
    }
    data["account_id"] = row.get("account_id") or None
    data["is_transfer"] = bool(row.get("is_transfer") or False)
    return Transaction.model_validate(data)


def row_to_account(row: Row) -> Account:
    """
    Build an Account from a remote row.

    Raises:
        ValidationError: If the row is malformed
    """
    data = {
        field: row[field] for field in Account.model_fields
        if row.get(field) is not None
    }
    data["archived"] = bool(row.get("archived") or False)
    return Account.model_validate(data)


def matches_transaction(candidate: Transaction, target: Transaction) -> bool:
    """Identify a remote copy of a record that never learned its server id."""
    return (
        candidate.type == target.type
        and candidate.amount == target.amount
        and candidate.category == target.category
        and candidate.description == target.description
        and candidate.occurred_at == target.occurred_at
    )


def matches_account(candidate: Account, target: Account) -> bool:
    return candidate.name_key == target.name_key


# =============================================================================
# Engine
# =============================================================================

class ReconciliationEngine:
    """
    Background synchronisation between a LedgerStore and a remote store.

    Constructing the engine attaches it to the store; from then on every
    store mutation calls `trigger` (or `request_delete`). Nothing happens
    remotely until a session is active.
    """

    def __init__(
        self,
        store: LedgerStore,
        remote: RemoteLedgerStore,
        session: Optional[SyncSession] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._store = store
        self._remote = remote
        self._session = session
        self._audit = audit_logger or store.audit_logger
        self._states: dict[RemoteResource, SyncState] = {
            resource: SyncState.IDLE for resource in RemoteResource
        }
        self._tasks: set[asyncio.Task] = set()
        # Re-runs queued while the unit was syncing
        self._rerun: set[RemoteResource] = set()
        # Old local account id -> server id, until transactions catch up
        self._account_ids: dict[str, RecordId] = {}
        store.attach_reconciler(self)

    # -------------------------------------------------------------------------
    # Session
    # -------------------------------------------------------------------------

    @property
    def session(self) -> Optional[SyncSession]:
        return self._session

    @property
    def is_active(self) -> bool:
        return self._session is not None and self._session.active

    def start_session(self, session: SyncSession) -> None:
        self._session = session

    def end_session(self) -> None:
        """Stop talking to the remote store. In-flight work still finishes."""
        self._session = None

    def state(self, resource: Union[RemoteResource, str]) -> SyncState:
        return self._states[RemoteResource(resource)]

    # -------------------------------------------------------------------------
    # Scheduling
    # -------------------------------------------------------------------------

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def wait_idle(self) -> None:
        """Wait for all background work, including work it schedules."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def _acquire(self, resource: RemoteResource) -> bool:
        if self._states[resource] == SyncState.SYNCING:
            return False
        self._states[resource] = SyncState.SYNCING
        return True

    @property
    def pending_account_ids(self) -> dict[str, RecordId]:
        """Account id translations not yet confirmed by a transaction sync."""
        return dict(self._account_ids)

    def _follow_up(self, resource: RemoteResource) -> None:
        """Trigger a unit, or queue one re-run if it is already syncing."""
        if self._states[resource] == SyncState.SYNCING:
            self._rerun.add(resource)
        else:
            self.trigger(resource)

    def trigger(self, resource: Union[RemoteResource, str]) -> bool:
        """
        Schedule a push-then-pull of one unit.

        Returns:
            False when there is no active session or the unit is
            already syncing (the trigger is dropped, not queued)
        """
        resource = RemoteResource(resource)
        if not self.is_active:
            return False
        if not self._acquire(resource):
            self._spawn(self._audit.log_sync_dropped(resource.value))
            return False
        self._spawn(self._run_locked(resource))
        return True

    async def sync_now(self, resource: Union[RemoteResource, str], follow_up: bool = True) -> bool:
        """
        Run one sync of a unit and wait for it.

        Returns:
            True if the sync ran and succeeded
        """
        resource = RemoteResource(resource)
        if not self.is_active or not self._acquire(resource):
            return False
        return await self._run_locked(resource, follow_up=follow_up)

    async def _run_locked(self, resource: RemoteResource, follow_up: bool = True) -> bool:
        user_id = self._session.user_id if self._session else None
        try:
            if user_id is None:
                return False
            if resource == RemoteResource.ACCOUNTS:
                await self._sync_accounts(user_id, follow_up)
            else:
                await self._sync_transactions(user_id)
            return True
        except Exception as e:
            await self._audit.log_sync_failed(resource.value, str(e))
            await self._audit.log_external_service_error("remote_store", str(e))
            return False
        finally:
            self._states[resource] = SyncState.IDLE
            if resource in self._rerun:
                self._rerun.discard(resource)
                self.trigger(resource)

    # -------------------------------------------------------------------------
    # Sync units
    # -------------------------------------------------------------------------

    async def _push(
        self,
        resource: RemoteResource,
        user_id: str,
        known: list[Row],
        unknown: list[Row],
    ) -> list[Row]:
        """Upsert known-id rows, insert the rest. Returns the inserted rows."""
        if known:
            await self._remote.upsert_by_id_or_insert(resource, user_id, known)
        if not unknown:
            return []
        stored = await self._remote.upsert_by_id_or_insert(resource, user_id, unknown)
        if len(stored) != len(unknown):
            raise ValueError(
                f"Remote store returned {len(stored)} rows for {len(unknown)} inserts"
            )
        return stored

    async def _sync_transactions(self, user_id: str) -> None:
        pushed_ids = dict(self._account_ids)
        if pushed_ids:
            await self._store.remap_account_references(pushed_ids)
        local = self._store.transactions
        known = [tx for tx in local if isinstance(tx.id, ServerId)]
        unknown = [tx for tx in local if not isinstance(tx.id, ServerId)]

        await self._audit.log_sync_started(RemoteResource.TRANSACTIONS.value, len(local), user_id)
        inserted = await self._push(
            RemoteResource.TRANSACTIONS,
            user_id,
            [transaction_to_row(tx) for tx in known],
            [transaction_to_row(tx, include_id=False) for tx in unknown],
        )

        rows = await self._remote.fetch_all(RemoteResource.TRANSACTIONS, user_id)
        transactions = await self._translate(rows, row_to_transaction, RemoteResource.TRANSACTIONS)

        # An account sync may have finished while this one was in flight
        stale = {
            str(tx.account_id) for tx in transactions
            if tx.account_id and str(tx.account_id) in self._account_ids
        }
        transactions, _ = remap_account_ids(transactions, self._account_ids)
        await self._store.replace_transactions(transactions)

        for old_id in pushed_ids:
            if old_id not in stale:
                self._account_ids.pop(old_id, None)
        if stale - set(pushed_ids):
            # Those references were pushed with the old ids; push them again
            self._rerun.add(RemoteResource.TRANSACTIONS)
        await self._audit.log_sync_completed(
            RemoteResource.TRANSACTIONS.value, len(transactions), len(inserted)
        )

    async def _sync_accounts(self, user_id: str, follow_up: bool = True) -> None:
        local = self._store.accounts
        known = [a for a in local if isinstance(a.id, ServerId)]
        unknown = [a for a in local if not isinstance(a.id, ServerId)]

        await self._audit.log_sync_started(RemoteResource.ACCOUNTS.value, len(local), user_id)
        inserted = await self._push(
            RemoteResource.ACCOUNTS,
            user_id,
            [account_to_row(a) for a in known],
            [account_to_row(a, include_id=False) for a in unknown],
        )
        mapping: dict[str, RecordId] = {
            str(account.id): parse_record_id(row["id"])
            for account, row in zip(unknown, inserted)
        }

        self._account_ids.update(mapping)

        rows = await self._remote.fetch_all(RemoteResource.ACCOUNTS, user_id)
        accounts = await self._translate(rows, row_to_account, RemoteResource.ACCOUNTS)
        remapped = await self._store.adopt_accounts(accounts, self._account_ids)
        await self._audit.log_sync_completed(
            RemoteResource.ACCOUNTS.value, len(accounts), len(mapping)
        )

        if remapped and follow_up:
            self._follow_up(RemoteResource.TRANSACTIONS)

    async def _translate(self, rows: list[Row], convert, resource: RemoteResource) -> list:
        """Convert remote rows, skipping (and logging) malformed ones."""
        records = []
        for row in rows:
            try:
                records.append(convert(row))
            except (ValidationError, ValueError) as e:
                await self._audit.log_error(
                    error_type="remote_row_invalid",
                    error_message=str(e),
                    details={"resource": resource.value, "id": str(row.get("id"))},
                )
        return records

    # -------------------------------------------------------------------------
    # Deletes
    # -------------------------------------------------------------------------

    def request_delete(
        self,
        resource: Union[RemoteResource, str],
        record: Union[Transaction, Account],
    ) -> bool:
        """
        Schedule the remote half of a local delete.

        Returns:
            False when there is no active session
        """
        if not self.is_active:
            return False
        self._spawn(self.delete_remote(RemoteResource(resource), record))
        return True

    async def delete_remote(
        self,
        resource: RemoteResource,
        record: Union[Transaction, Account],
    ) -> list[str]:
        """
        Delete a record remotely, then refresh that unit.

        Records with a ServerId are deleted by id. Records that never
        learned their server id are located by content: type, amount,
        category, description and timestamp for transactions; the
        normalized name for accounts.

        The refresh is a full push-then-pull, so local-only records
        survive it.

        Returns:
            The remote ids that were deleted
        """
        resource = RemoteResource(resource)
        if not self.is_active:
            return []
        user_id = self._session.user_id

        try:
            if isinstance(record.id, ServerId):
                ids = [str(record.id)]
            else:
                ids = await self._find_remote_copies(resource, user_id, record)
            if ids:
                await self._remote.delete_by_ids(resource, user_id, ids)
            await self._audit.log_remote_delete(resource.value, str(record.id), ids)
        except Exception as e:
            await self._audit.log_sync_failed(resource.value, f"delete failed: {e}")
            await self._audit.log_external_service_error("remote_store", str(e))
            return []

        await self.sync_now(resource)
        return ids

    async def _find_remote_copies(
        self,
        resource: RemoteResource,
        user_id: str,
        record: Union[Transaction, Account],
    ) -> list[str]:
        rows = await self._remote.fetch_all(resource, user_id)
        if resource == RemoteResource.TRANSACTIONS:
            convert, matches = row_to_transaction, matches_transaction
        else:
            convert, matches = row_to_account, matches_account

        ids = []
        for row in rows:
            try:
                candidate = convert(row)
            except (ValidationError, ValueError):
                continue
            if matches(candidate, record):
                ids.append(str(candidate.id))
        return ids

    # -------------------------------------------------------------------------
    # Settings & bootstrap
    # -------------------------------------------------------------------------

    def push_settings(self, **patch: Any) -> bool:
        """Write preference fields through to the remote settings row."""
        if not self.is_active:
            return False
        self._spawn(self._push_settings(self._session.user_id, patch))
        return True

    async def _push_settings(self, user_id: str, patch: Row) -> None:
        try:
            await self._remote.upsert_settings(user_id, patch)
        except Exception as e:
            await self._audit.log_external_service_error("remote_settings", str(e))

    async def pull_settings(self) -> Optional[str]:
        """
        Adopt the remote currency, or seed the remote row from local.

        Returns:
            The currency in effect afterwards, None on failure
        """
        if not self.is_active:
            return None
        user_id = self._session.user_id
        try:
            row = await self._remote.get_settings(user_id)
            remote_currency = (row or {}).get("currency")
            if remote_currency and is_supported_currency(str(remote_currency)):
                await self._store.apply_remote_currency(str(remote_currency))
                await self._audit.log_settings_pulled(user_id, str(remote_currency))
            else:
                await self._remote.upsert_settings(
                    user_id, {"currency": self._store.currency.value}
                )
        except Exception as e:
            await self._audit.log_external_service_error("remote_settings", str(e))
            return None
        return self._store.currency.value

    async def bootstrap(self, session: SyncSession) -> bool:
        """
        First reconciliation after sign-in.

        Accounts go first so transactions are pushed with server account
        ids already in place; settings are pulled once at the end.

        Returns:
            True if every step succeeded
        """
        self.start_session(session)
        accounts_ok = await self.sync_now(RemoteResource.ACCOUNTS, follow_up=False)
        transactions_ok = await self.sync_now(RemoteResource.TRANSACTIONS)
        currency = await self.pull_settings()
        return accounts_ok and transactions_ok and currency is not None

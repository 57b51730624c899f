"""
Tests for the reconciliation engine

All remote traffic goes to InMemoryRemoteStore. Background work is
awaited with engine.wait_idle().
"""

import asyncio
import pytest
from datetime import datetime, timezone
from decimal import Decimal

from moodledger.models.audit import AuditEventType
from moodledger.models.currency import Currency
from moodledger.models.identity import LocalId, ServerId
from moodledger.models.ledger import (
    Account,
    AccountType,
    SyncSession,
    Transaction,
    TransactionType,
)
from moodledger.services.storage import (
    InMemoryRemoteStore,
    RemoteResource,
    StorageError,
)
from moodledger.sync import (
    ReconciliationEngine,
    SyncState,
    account_to_row,
    row_to_account,
    row_to_transaction,
    transaction_to_row,
)


class OfflineRemoteStore(InMemoryRemoteStore):
    """Remote store whose writes always fail."""

    async def upsert_by_id_or_insert(self, resource, user_id, rows):
        self._count("upsert_by_id_or_insert")
        raise StorageError("network unreachable")


class YieldingRemoteStore(InMemoryRemoteStore):
    """Remote store that hands control back to the loop on every call."""

    async def upsert_by_id_or_insert(self, resource, user_id, rows):
        await asyncio.sleep(0)
        return await super().upsert_by_id_or_insert(resource, user_id, rows)

    async def fetch_all(self, resource, user_id):
        await asyncio.sleep(0)
        return await super().fetch_all(resource, user_id)


class TestRowTranslation:
    """Rows as the remote backends return them."""

    def test_transaction_row_without_id(self):
        tx = Transaction(type=TransactionType.EXPENSE, amount=Decimal("3.5"))
        row = transaction_to_row(tx, include_id=False)
        assert "id" not in row
        assert row["amount"] == "3.5"

    def test_sheet_style_transaction_row(self):
        row = {
            "id": "3f2b8c1e-9d4a-4e2b-8f1a-2c3d4e5f6a7b",
            "user_id": "user-1",
            "type": "expense",
            "amount": "12.5",
            "category": "food",
            "description": None,
            "occurred_at": "2024-05-01T10:00:00+00:00",
            "currency": "CNY",
            "account_id": None,
            "emotion": None,
            "transfer_group_id": None,
            "is_transfer": False,
        }
        tx = row_to_transaction(row)
        assert isinstance(tx.id, ServerId)
        assert tx.amount == Decimal("12.5")
        assert tx.description == ""
        assert tx.account_id is None

    def test_account_round_trip(self):
        account = Account(name="Card", type=AccountType.CREDIT_CARD, credit_limit=Decimal("500"))
        restored = row_to_account(account_to_row(account))
        assert restored == account

    def test_malformed_row_raises(self):
        with pytest.raises(ValueError):
            row_to_transaction({"id": "x", "amount": "1"})


class TestSessionGate:
    """Nothing goes remote without an active session."""

    @pytest.mark.asyncio
    async def test_no_session_is_local_only(self, ledger, remote):
        engine = ReconciliationEngine(store=ledger, remote=remote)
        await ledger.add_account("Cash", opening_balance=10)
        await engine.wait_idle()
        assert remote.calls == {}
        assert engine.trigger(RemoteResource.ACCOUNTS) is False

    @pytest.mark.asyncio
    async def test_inactive_session(self, ledger, remote):
        engine = ReconciliationEngine(
            store=ledger, remote=remote, session=SyncSession(user_id="u", active=False)
        )
        assert engine.is_active is False
        await ledger.add_transaction(TransactionType.INCOME, 1)
        await engine.wait_idle()
        assert remote.calls == {}

    @pytest.mark.asyncio
    async def test_end_session(self, engine, ledger, remote):
        engine.end_session()
        await ledger.add_transaction(TransactionType.INCOME, 1)
        await engine.wait_idle()
        assert remote.calls == {}


class TestPushThenPull:
    """Sync protocol and id translation."""

    @pytest.mark.asyncio
    async def test_local_ids_become_server_ids(self, engine, ledger, remote):
        await ledger.add_account("Cash", opening_balance=100)
        await ledger.add_transaction(TransactionType.EXPENSE, 30)
        await engine.wait_idle()

        account = ledger.accounts[0]
        tx = ledger.transactions[0]
        assert isinstance(account.id, ServerId)
        assert isinstance(tx.id, ServerId)
        assert tx.account_id == account.id
        assert ledger.get_account_balance(account.id) == Decimal("70")

        remote_rows = await remote.fetch_all(RemoteResource.TRANSACTIONS, "user-1")
        assert [row["account_id"] for row in remote_rows] == [str(account.id)]

    @pytest.mark.asyncio
    async def test_known_rows_are_updated_not_duplicated(self, engine, ledger, remote):
        await ledger.add_transaction(TransactionType.INCOME, 5)
        await engine.wait_idle()
        tx = ledger.transactions[0]

        await ledger.update_transaction(tx.id, amount=8)
        await engine.wait_idle()

        rows = await remote.fetch_all(RemoteResource.TRANSACTIONS, "user-1")
        assert len(rows) == 1
        assert rows[0]["id"] == str(tx.id)
        assert Decimal(rows[0]["amount"]) == Decimal("8")

    @pytest.mark.asyncio
    async def test_pull_brings_other_devices_rows(self, engine, ledger, remote):
        other = Transaction(
            type=TransactionType.INCOME,
            amount=Decimal("20"),
            occurred_at=datetime(2023, 1, 1, tzinfo=timezone.utc),
        )
        await remote.upsert_by_id_or_insert(
            RemoteResource.TRANSACTIONS, "user-1", [transaction_to_row(other, include_id=False)]
        )

        await ledger.add_transaction(TransactionType.EXPENSE, 1)
        await engine.wait_idle()

        assert len(ledger.transactions) == 2
        # newest first
        assert ledger.transactions[-1].amount == Decimal("20")

    @pytest.mark.asyncio
    async def test_rows_of_other_users_stay_hidden(self, engine, ledger, remote):
        await remote.upsert_by_id_or_insert(
            RemoteResource.ACCOUNTS, "someone-else",
            [account_to_row(Account(name="Theirs"), include_id=False)],
        )
        await ledger.add_account("Mine")
        await engine.wait_idle()
        assert [a.name for a in ledger.accounts] == ["Mine"]

    @pytest.mark.asyncio
    async def test_malformed_remote_rows_are_skipped(self, engine, ledger, remote, audit_logger):
        await remote.upsert_by_id_or_insert(
            RemoteResource.TRANSACTIONS, "user-1", [{"amount": "oops"}]
        )
        await ledger.add_transaction(TransactionType.INCOME, 1)
        await engine.wait_idle()

        assert len(ledger.transactions) == 1
        invalid = [
            e for e in audit_logger.events_of(AuditEventType.SYSTEM_ERROR)
            if e.error_code == "remote_row_invalid"
        ]
        assert invalid

    @pytest.mark.asyncio
    async def test_sync_completed_is_audited(self, engine, ledger, audit_logger):
        await ledger.add_transaction(TransactionType.INCOME, 1)
        await engine.wait_idle()
        completed = audit_logger.events_of(AuditEventType.SYNC_COMPLETED)
        assert completed[-1].entity_id == "transactions"


class TestOverlap:
    """At most one in-flight sync per unit."""

    @pytest.mark.asyncio
    async def test_overlapping_trigger_is_dropped(self, engine, audit_logger):
        assert engine.trigger(RemoteResource.TRANSACTIONS) is True
        assert engine.state(RemoteResource.TRANSACTIONS) == SyncState.SYNCING
        assert engine.trigger(RemoteResource.TRANSACTIONS) is False

        await engine.wait_idle()
        assert engine.state(RemoteResource.TRANSACTIONS) == SyncState.IDLE
        assert audit_logger.events_of(AuditEventType.SYNC_DROPPED)

    @pytest.mark.asyncio
    async def test_units_are_independent(self, engine):
        assert engine.trigger(RemoteResource.TRANSACTIONS) is True
        assert engine.trigger(RemoteResource.ACCOUNTS) is True
        await engine.wait_idle()

    @pytest.mark.asyncio
    async def test_sync_now_refuses_while_syncing(self, engine):
        engine.trigger(RemoteResource.ACCOUNTS)
        assert await engine.sync_now(RemoteResource.ACCOUNTS) is False
        await engine.wait_idle()
        assert await engine.sync_now(RemoteResource.ACCOUNTS) is True


class TestFailures:
    """Remote failures never surface and never roll back local state."""

    @pytest.mark.asyncio
    async def test_offline_keeps_local_state(self, ledger, session, audit_logger):
        engine = ReconciliationEngine(store=ledger, remote=OfflineRemoteStore(), session=session)

        account = await ledger.add_account("Cash", opening_balance=10)
        tx = await ledger.add_transaction(TransactionType.EXPENSE, 4)
        await engine.wait_idle()

        assert ledger.accounts == (account,)
        assert ledger.transactions == (tx,)
        assert isinstance(ledger.accounts[0].id, LocalId)
        assert audit_logger.events_of(AuditEventType.SYNC_FAILED)
        assert audit_logger.events_of(AuditEventType.EXTERNAL_SERVICE_ERROR)
        assert engine.state(RemoteResource.ACCOUNTS) == SyncState.IDLE

    @pytest.mark.asyncio
    async def test_sync_now_reports_failure(self, ledger, session):
        engine = ReconciliationEngine(store=ledger, remote=OfflineRemoteStore(), session=session)
        await ledger.add_transaction(TransactionType.INCOME, 1)
        await engine.wait_idle()
        assert await engine.sync_now(RemoteResource.TRANSACTIONS) is False


class TestRemoteDeletes:

    @pytest.mark.asyncio
    async def test_delete_by_server_id(self, engine, ledger, remote):
        await ledger.add_transaction(TransactionType.INCOME, 1)
        await ledger.add_transaction(TransactionType.INCOME, 2)
        await engine.wait_idle()

        doomed = ledger.transactions[0]
        await ledger.delete_transaction(doomed.id)
        await engine.wait_idle()

        rows = await remote.fetch_all(RemoteResource.TRANSACTIONS, "user-1")
        assert [row["id"] for row in rows] == [str(ledger.transactions[0].id)]
        assert len(ledger.transactions) == 1

    @pytest.mark.asyncio
    async def test_delete_by_content_for_local_ids(self, ledger, remote, audit_logger):
        engine = ReconciliationEngine(store=ledger, remote=remote)
        tx = await ledger.add_transaction(TransactionType.EXPENSE, 7, category="food")
        # A copy reached the remote store but the local id was never translated
        await remote.upsert_by_id_or_insert(
            RemoteResource.TRANSACTIONS, "user-1", [transaction_to_row(tx, include_id=False)]
        )
        await ledger.delete_transaction(tx.id)

        engine.start_session(SyncSession(user_id="user-1"))
        deleted = await engine.delete_remote(RemoteResource.TRANSACTIONS, tx)

        assert len(deleted) == 1
        assert await remote.fetch_all(RemoteResource.TRANSACTIONS, "user-1") == []
        assert ledger.transactions == ()
        assert audit_logger.events_of(AuditEventType.REMOTE_DELETE_COMPLETED)

    @pytest.mark.asyncio
    async def test_refresh_after_delete_keeps_unsynced_records(self, ledger, remote):
        engine = ReconciliationEngine(store=ledger, remote=remote)
        keep = await ledger.add_transaction(TransactionType.INCOME, 3)
        gone = await ledger.add_transaction(TransactionType.INCOME, 4)
        await ledger.delete_transaction(gone.id)

        engine.start_session(SyncSession(user_id="user-1"))
        await engine.delete_remote(RemoteResource.TRANSACTIONS, gone)

        assert len(ledger.transactions) == 1
        assert ledger.transactions[0].amount == keep.amount

    @pytest.mark.asyncio
    async def test_account_delete(self, engine, ledger, remote):
        cash = await ledger.add_account("Cash")
        await engine.wait_idle()
        await ledger.delete_account(ledger.accounts[0].id)
        await engine.wait_idle()

        assert await remote.fetch_all(RemoteResource.ACCOUNTS, "user-1") == []
        assert ledger.get_account(cash.id) is None


class TestSettingsAndBootstrap:

    @pytest.mark.asyncio
    async def test_set_currency_writes_through(self, engine, ledger, remote):
        await ledger.set_currency("EUR")
        await engine.wait_idle()
        settings = await remote.get_settings("user-1")
        assert settings["currency"] == "EUR"

    @pytest.mark.asyncio
    async def test_bootstrap_pushes_and_adopts_remote_currency(self, ledger, remote):
        await remote.upsert_settings("user-1", {"currency": "USD"})
        engine = ReconciliationEngine(store=ledger, remote=remote)

        cash = await ledger.add_account("Cash", opening_balance=50)
        await ledger.add_transaction(TransactionType.EXPENSE, 20, account_id=cash.id)

        assert await engine.bootstrap(SyncSession(user_id="user-1")) is True
        await engine.wait_idle()

        assert ledger.currency == Currency.USD
        assert isinstance(ledger.accounts[0].id, ServerId)
        assert ledger.transactions[0].account_id == ledger.accounts[0].id
        assert ledger.get_account_balance(ledger.accounts[0].id) == Decimal("30")

    @pytest.mark.asyncio
    async def test_bootstrap_seeds_missing_settings(self, ledger, remote):
        engine = ReconciliationEngine(store=ledger, remote=remote)
        await ledger.set_currency("GBP")

        assert await engine.bootstrap(SyncSession(user_id="user-1")) is True
        settings = await remote.get_settings("user-1")
        assert settings["currency"] == "GBP"

    @pytest.mark.asyncio
    async def test_bootstrap_ignores_unsupported_remote_currency(self, ledger, remote):
        await remote.upsert_settings("user-1", {"currency": "DOGE"})
        engine = ReconciliationEngine(store=ledger, remote=remote)

        await engine.bootstrap(SyncSession(user_id="user-1"))
        assert ledger.currency == Currency.CNY

    @pytest.mark.asyncio
    async def test_bootstrap_reports_failure(self, ledger):
        engine = ReconciliationEngine(store=ledger, remote=OfflineRemoteStore())
        await ledger.add_account("Cash")
        assert await engine.bootstrap(SyncSession(user_id="user-1")) is False


class TestAccountIdTranslation:
    """Transactions follow their account from local id to server id."""

    @pytest.mark.asyncio
    async def test_concurrent_account_and_transaction_syncs(self, ledger, session):
        remote = YieldingRemoteStore()
        engine = ReconciliationEngine(store=ledger, remote=remote, session=session)

        cash = await ledger.add_account("Cash", opening_balance=100)
        await ledger.add_transaction(TransactionType.EXPENSE, 30, account_id=cash.id)
        await engine.wait_idle()

        account = ledger.accounts[0]
        assert isinstance(account.id, ServerId)
        assert ledger.transactions[0].account_id == account.id
        assert ledger.orphaned_transactions() == []
        assert ledger.get_account_balance(account.id) == Decimal("70")

        rows = await remote.fetch_all(RemoteResource.TRANSACTIONS, "user-1")
        assert [row["account_id"] for row in rows] == [str(account.id)]
        assert engine.pending_account_ids == {}

    @pytest.mark.asyncio
    async def test_accounts_and_references_swap_together(self, ledger, remote):
        engine = ReconciliationEngine(store=ledger, remote=remote)
        cash = await ledger.add_account("Cash", opening_balance=10)
        await ledger.add_transaction(TransactionType.EXPENSE, 4, account_id=cash.id)

        engine.start_session(SyncSession(user_id="user-1"))
        version = ledger.snapshot.version
        assert await engine.sync_now(RemoteResource.ACCOUNTS, follow_up=False) is True

        assert ledger.snapshot.version == version + 1
        assert ledger.transactions[0].account_id == ledger.accounts[0].id
        assert engine.pending_account_ids == {str(cash.id): ledger.accounts[0].id}

    @pytest.mark.asyncio
    async def test_transaction_sync_pushes_translated_ids(self, ledger, remote):
        engine = ReconciliationEngine(store=ledger, remote=remote)
        cash = await ledger.add_account("Cash", opening_balance=10)
        await ledger.add_transaction(TransactionType.EXPENSE, 4, account_id=cash.id)

        engine.start_session(SyncSession(user_id="user-1"))
        await engine.sync_now(RemoteResource.ACCOUNTS, follow_up=False)
        assert await engine.sync_now(RemoteResource.TRANSACTIONS) is True
        await engine.wait_idle()

        rows = await remote.fetch_all(RemoteResource.TRANSACTIONS, "user-1")
        assert rows[0]["account_id"] == str(ledger.accounts[0].id)
        assert engine.pending_account_ids == {}

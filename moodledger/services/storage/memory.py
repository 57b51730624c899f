"""
In-Memory Remote Store

A RemoteLedgerStore that keeps everything in process memory.
Used for tests, demos and running the reconciliation flow without
any cloud credentials. Behaves like the real backends: ids are
server-assigned UUIDs and rows are scoped per user.
"""

from copy import deepcopy
from datetime import datetime, timezone
from typing import Optional
from uuid import uuid4

from moodledger.services.storage.interface import (
    RemoteLedgerStore,
    RemoteResource,
    Row,
)


class InMemoryRemoteStore(RemoteLedgerStore):
    """Dict-backed remote store."""

    def __init__(self):
        self._rows: dict[RemoteResource, dict[str, Row]] = {
            resource: {} for resource in RemoteResource
        }
        self._settings: dict[str, Row] = {}
        # Counts calls per operation, handy when asserting sync behaviour
        self.calls: dict[str, int] = {}

    def _count(self, operation: str) -> None:
        self.calls[operation] = self.calls.get(operation, 0) + 1

    async def upsert_by_id_or_insert(
        self,
        resource: RemoteResource,
        user_id: str,
        rows: list[Row],
    ) -> list[Row]:
        self._count("upsert_by_id_or_insert")
        table = self._rows[RemoteResource(resource)]
        stored = []
        for row in rows:
            record = deepcopy(row)
            record["user_id"] = user_id
            existing = table.get(str(record.get("id")))
            if not record.get("id") or (existing is not None and existing.get("user_id") != user_id):
                record["id"] = str(uuid4())
            table[str(record["id"])] = record
            stored.append(deepcopy(record))
        return stored

    async def delete_by_ids(
        self,
        resource: RemoteResource,
        user_id: str,
        ids: list[str],
    ) -> list[Row]:
        self._count("delete_by_ids")
        table = self._rows[RemoteResource(resource)]
        deleted = []
        for row_id in ids:
            row = table.get(str(row_id))
            if row is not None and row.get("user_id") == user_id:
                deleted.append(table.pop(str(row_id)))
        return deleted

    async def fetch_all(
        self,
        resource: RemoteResource,
        user_id: str,
    ) -> list[Row]:
        self._count("fetch_all")
        resource = RemoteResource(resource)
        rows = [
            deepcopy(row) for row in self._rows[resource].values()
            if row.get("user_id") == user_id
        ]
        if resource == RemoteResource.TRANSACTIONS:
            rows.sort(key=lambda r: str(r.get("occurred_at", "")), reverse=True)
        return rows

    async def get_settings(self, user_id: str) -> Optional[Row]:
        self._count("get_settings")
        row = self._settings.get(user_id)
        return deepcopy(row) if row is not None else None

    async def upsert_settings(self, user_id: str, patch: Row) -> Row:
        self._count("upsert_settings")
        row = self._settings.setdefault(user_id, {"user_id": user_id})
        row.update(patch)
        row["user_id"] = user_id
        row["updated_at"] = datetime.now(timezone.utc).isoformat()
        return deepcopy(row)

"""
Local Key-Value Stores

Two implementations of KeyValueStore:

- InMemoryKeyValueStore: process-local dict, for tests and ephemeral use
- JsonFileKeyValueStore: a single JSON object on disk, one entry per key

The file store rewrites the whole file on every change. The ledger
keeps a handful of keys, so this stays cheap, and a write is either
fully visible or not at all (write to a temp file, then replace).
"""

import json
from pathlib import Path
from typing import Iterable, Optional, Union

from moodledger.services.storage.interface import KeyValueStore, StorageError


class InMemoryKeyValueStore(KeyValueStore):
    """Dict-backed store."""

    def __init__(self, initial: Optional[dict[str, str]] = None):
        self._data: dict[str, str] = dict(initial or {})

    async def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    async def set(self, key: str, value: str) -> None:
        self._data[key] = value

    async def remove_many(self, keys: Iterable[str]) -> None:
        for key in keys:
            self._data.pop(key, None)

    def keys(self) -> list[str]:
        return list(self._data)


class JsonFileKeyValueStore(KeyValueStore):
    """
    Store backed by one JSON file.

    The file is read lazily on first access and cached; every write
    flushes the full mapping back to disk.
    """

    def __init__(self, path: Union[str, Path]):
        self._path = Path(path)
        self._data: Optional[dict[str, str]] = None

    @property
    def path(self) -> Path:
        return self._path

    def _load(self) -> dict[str, str]:
        if self._data is None:
            if self._path.exists():
                try:
                    raw = json.loads(self._path.read_text(encoding="utf-8"))
                except (OSError, json.JSONDecodeError) as e:
                    raise StorageError(f"Failed to read {self._path}: {e}")
                if not isinstance(raw, dict):
                    raise StorageError(f"Unexpected content in {self._path}")
                self._data = {str(k): str(v) for k, v in raw.items()}
            else:
                self._data = {}
        return self._data

    def _flush(self) -> None:
        tmp_path = self._path.with_suffix(self._path.suffix + ".tmp")
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(
                json.dumps(self._data, ensure_ascii=False, indent=2),
                encoding="utf-8",
            )
            tmp_path.replace(self._path)
        except OSError as e:
            raise StorageError(f"Failed to write {self._path}: {e}")

    async def get(self, key: str) -> Optional[str]:
        return self._load().get(key)

    async def set(self, key: str, value: str) -> None:
        self._load()[key] = value
        self._flush()

    async def remove_many(self, keys: Iterable[str]) -> None:
        data = self._load()
        removed = False
        for key in keys:
            if data.pop(key, None) is not None:
                removed = True
        if removed:
            self._flush()

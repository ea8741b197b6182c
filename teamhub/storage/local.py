"""
In-memory backends for development and tests.

Documents are deep-copied on the way in and out, so a caller mutating a
model never changes stored state without an explicit write. None of these
methods await, so each one runs without interleaving on the event loop.
"""

from __future__ import annotations

import copy
import time
from dataclasses import dataclass
from typing import Any

from teamhub.storage.base import DocumentStore, KeyValueCache, StorageProvider


class InMemoryDocumentStore(DocumentStore):
    def __init__(self):
        self._collections: dict[str, dict[str, dict[str, Any]]] = {}

    def _collection(self, name: str) -> dict[str, dict[str, Any]]:
        return self._collections.setdefault(name, {})

    async def put(self, collection: str, doc_id: str, doc: dict[str, Any]) -> None:
        self._collection(collection)[doc_id] = copy.deepcopy(doc)

    async def get(self, collection: str, doc_id: str) -> dict[str, Any] | None:
        doc = self._collection(collection).get(doc_id)
        return copy.deepcopy(doc) if doc is not None else None

    async def delete(self, collection: str, doc_id: str) -> bool:
        return self._collection(collection).pop(doc_id, None) is not None

    async def find(
        self, collection: str, where: dict[str, Any] | None = None
    ) -> list[dict[str, Any]]:
        where = where or {}
        return [
            copy.deepcopy(doc)
            for doc in self._collection(collection).values()
            if all(doc.get(field) == value for field, value in where.items())
        ]


@dataclass
class _Entry:
    value: Any
    expires_at: float | None

    @property
    def expired(self) -> bool:
        return self.expires_at is not None and time.monotonic() >= self.expires_at


class InMemoryKeyValueCache(KeyValueCache):
    def __init__(self):
        self._entries: dict[str, _Entry] = {}

    def _live(self, key: str) -> _Entry | None:
        entry = self._entries.get(key)
        if entry is not None and entry.expired:
            del self._entries[key]
            return None
        return entry

    async def set(self, key: str, value: Any, ttl: int | None = None) -> None:
        expires_at = time.monotonic() + ttl if ttl is not None else None
        self._entries[key] = _Entry(value, expires_at)

    async def get(self, key: str) -> Any | None:
        entry = self._live(key)
        return entry.value if entry else None

    async def take(self, key: str) -> Any | None:
        entry = self._live(key)
        if entry is None:
            return None
        del self._entries[key]
        return entry.value

    async def delete(self, key: str) -> bool:
        return self._live(key) is not None and self._entries.pop(key, None) is not None


def create_local_storage() -> StorageProvider:
    return StorageProvider(metadata=InMemoryDocumentStore(), cache=InMemoryKeyValueCache())

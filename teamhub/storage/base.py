"""
Storage interfaces.

Two backends sit behind every repository and token check:

- DocumentStore: whole-document collections (users, teams). A user or team
  is written as one document with its membership list embedded, so each
  write replaces exactly one document. Nothing here spans documents.
- KeyValueCache: expiring keys for issued tokens and OAuth state.

Production backends (MongoDB, Redis) implement the same methods; the
in-memory ones in local.py back development and tests.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from pydantic import BaseModel


class Collections:
    USERS = "users"
    TEAMS = "teams"


class DocumentStore(ABC):
    """Collections of JSON documents addressed by id."""

    @abstractmethod
    async def put(self, collection: str, doc_id: str, doc: dict[str, Any]) -> None:
        """Insert or replace a document."""

    @abstractmethod
    async def get(self, collection: str, doc_id: str) -> dict[str, Any] | None: ...

    @abstractmethod
    async def delete(self, collection: str, doc_id: str) -> bool:
        """Remove a document. False if there was nothing to remove."""

    @abstractmethod
    async def find(
        self, collection: str, where: dict[str, Any] | None = None
    ) -> list[dict[str, Any]]:
        """Every document whose top-level fields equal all of `where`, in insertion order."""

    async def find_one(self, collection: str, where: dict[str, Any]) -> dict[str, Any] | None:
        docs = await self.find(collection, where)
        return docs[0] if docs else None


class KeyValueCache(ABC):
    """Expiring key-value entries. An expired key reads as absent."""

    @abstractmethod
    async def set(self, key: str, value: Any, ttl: int | None = None) -> None:
        """Store a value, expiring after `ttl` seconds when given."""

    @abstractmethod
    async def get(self, key: str) -> Any | None: ...

    @abstractmethod
    async def take(self, key: str) -> Any | None:
        """
        Read and remove a key in one step.

        Two callers racing for the same key cannot both get the value.
        """

    @abstractmethod
    async def delete(self, key: str) -> bool: ...


class StorageProvider(BaseModel):
    """The pair of backends the app runs on, built once at startup."""

    model_config = {"arbitrary_types_allowed": True}

    metadata: DocumentStore
    cache: KeyValueCache

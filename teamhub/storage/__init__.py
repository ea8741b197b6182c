"""
Persistence: document and cache backends plus the user/team repositories.

Production backends slot in behind the same interfaces:
- DocumentStore -> MongoDB / PostgreSQL JSONB
- KeyValueCache -> Redis
"""

from teamhub.storage.base import (
    Collections,
    DocumentStore,
    KeyValueCache,
    StorageProvider,
)
from teamhub.storage.local import create_local_storage
from teamhub.storage.repositories import TeamStore, UserStore

__all__ = [
    "Collections",
    "DocumentStore",
    "KeyValueCache",
    "StorageProvider",
    "create_local_storage",
    "TeamStore",
    "UserStore",
]

"""Persistence collaborators.

- RbacStore: abstract contract used by the core
- InMemoryStore: thread-safe dict store
- SqliteStore: sqlite3 file store with unique indexes
"""

from __future__ import annotations

from typing import Optional

from ..config import RbacConfig, StorageBackend
from ..exceptions import ConfigurationError
from .base import RbacStore
from .memory import InMemoryStore
from .sqlite import SqliteStore


def build_store(config: Optional[RbacConfig] = None) -> RbacStore:
    """Create the store selected by ``config.storage_backend``."""
    if config is None:
        config = RbacConfig()

    if config.storage_backend == StorageBackend.MEMORY:
        return InMemoryStore()
    if config.storage_backend == StorageBackend.SQLITE:
        if not config.sqlite_path:
            raise ConfigurationError("sqlite_path is required for the sqlite backend")
        return SqliteStore(config.sqlite_path)

    raise ConfigurationError(f"Unsupported storage backend: {config.storage_backend}")


__all__ = ["InMemoryStore", "RbacStore", "SqliteStore", "build_store"]

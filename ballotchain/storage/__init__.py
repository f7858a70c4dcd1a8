"""
BallotChain v1.0 - Persistence Gateway.

Pluggable document store for sealed blocks and election state
snapshots. The ledger never knows which backend is active; it only
calls the protocol methods.

Usage:
    BALLOTCHAIN_STORAGE=sqlite   → SQLite document store (default)
    BALLOTCHAIN_STORAGE=memory   → in-process store, lost on exit
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Protocol, runtime_checkable

logger = logging.getLogger("ballotchain.storage")


class StorageMode(str, Enum):
    SQLITE = "sqlite"
    MEMORY = "memory"


@runtime_checkable
class PersistenceGateway(Protocol):
    """Protocol for all persistence backends.

    Backends raise ``PersistenceUnavailable`` when they are not connected
    or a read/write fails, and never mutate the records they are given.
    """

    async def connect(self) -> None:
        """Establish the backend. Failure here is fatal at startup."""
        ...

    async def close(self) -> None:
        """Release the backend."""
        ...

    async def health_check(self) -> bool:
        """Return True if the backend is reachable."""
        ...

    async def load_blocks(self) -> list[dict[str, Any]]:
        """Return every stored block record, ascending by index."""
        ...

    async def save_block(self, record: dict[str, Any]) -> None:
        """Upsert a block record keyed by its hash."""
        ...

    async def load_election_state(self) -> dict[str, Any] | None:
        """Return the election state snapshot, or None when absent."""
        ...

    async def save_election_state(self, record: dict[str, Any]) -> None:
        """Overwrite the election state snapshot."""
        ...


def get_storage_mode(raw: str | None = None) -> StorageMode:
    """Detect storage mode from config."""
    if raw is None:
        from ballotchain import config

        raw = config.STORAGE_MODE
    try:
        return StorageMode(raw.lower())
    except ValueError:
        logger.warning("Unknown BALLOTCHAIN_STORAGE='%s', falling back to sqlite", raw)
        return StorageMode.SQLITE


def create_gateway(mode: str | StorageMode | None = None, db_path: str | None = None) -> PersistenceGateway:
    """Build an unconnected gateway for the given (or configured) mode."""
    resolved = mode if isinstance(mode, StorageMode) else get_storage_mode(mode)

    if resolved == StorageMode.MEMORY:
        from ballotchain.storage.memory import MemoryDocumentStore

        return MemoryDocumentStore()

    from ballotchain.storage.sqlite import SQLiteDocumentStore

    if db_path is None:
        from ballotchain import config

        db_path = config.DB_PATH
    return SQLiteDocumentStore(db_path)

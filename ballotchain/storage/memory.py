"""
BallotChain v1.0 - In-Memory Document Store.

Dict-backed persistence gateway. Records are copied through JSON on
every read and write so callers never share state with the store.
``fail_on`` names operations that should raise, for failure drills.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from ballotchain.exceptions import PersistenceUnavailable

logger = logging.getLogger("ballotchain.storage.memory")


def _copy(record: dict[str, Any]) -> dict[str, Any]:
    return json.loads(json.dumps(record))


class MemoryDocumentStore:
    def __init__(self, fail_on: set[str] | None = None):
        self.blocks: dict[str, dict[str, Any]] = {}
        self.election_state: dict[str, Any] | None = None
        self.fail_on: set[str] = set(fail_on or ())
        self.connected = False

    def _check(self, op: str) -> None:
        if not self.connected:
            raise PersistenceUnavailable("MemoryDocumentStore not connected. Call connect() first.")
        if op in self.fail_on:
            raise PersistenceUnavailable(f"Simulated failure in {op}")

    async def connect(self) -> None:
        if "connect" in self.fail_on:
            raise PersistenceUnavailable("Simulated failure in connect")
        self.connected = True
        logger.debug("In-memory document store connected")

    async def close(self) -> None:
        self.connected = False

    async def health_check(self) -> bool:
        return self.connected

    async def load_blocks(self) -> list[dict[str, Any]]:
        self._check("load_blocks")
        return sorted((_copy(r) for r in self.blocks.values()), key=lambda r: r["index"])

    async def save_block(self, record: dict[str, Any]) -> None:
        self._check("save_block")
        self.blocks[record["hash"]] = _copy(record)

    async def load_election_state(self) -> dict[str, Any] | None:
        self._check("load_election_state")
        return _copy(self.election_state) if self.election_state is not None else None

    async def save_election_state(self, record: dict[str, Any]) -> None:
        self._check("save_election_state")
        self.election_state = _copy(record)

    def __repr__(self) -> str:
        return f"MemoryDocumentStore(blocks={len(self.blocks)}, connected={self.connected})"

"""
BallotChain v1.0 - SQLite Document Store.

Durable persistence gateway on a single aiosqlite connection. Blocks
and the election state are stored as canonical JSON documents, blocks
keyed by hash (upsert) and the state as one ``current`` row.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from pathlib import Path
from typing import Any

import aiosqlite

from ballotchain.canonical import canonical_json
from ballotchain.exceptions import ChainLoadFailure, PersistenceUnavailable

logger = logging.getLogger("ballotchain.storage.sqlite")

STATE_DOC_ID = "current"

SCHEMA = """
CREATE TABLE IF NOT EXISTS blocks (
    hash    TEXT PRIMARY KEY,
    idx     INTEGER NOT NULL,
    doc     TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_blocks_idx ON blocks(idx);

CREATE TABLE IF NOT EXISTS election_state (
    id      TEXT PRIMARY KEY,
    doc     TEXT NOT NULL
);
"""


class SQLiteDocumentStore:
    """Persistence gateway backed by a local SQLite file."""

    def __init__(self, db_path: str | Path):
        self.db_path = str(db_path)
        self._conn: aiosqlite.Connection | None = None

    async def connect(self) -> None:
        """Open the connection, apply WAL pragmas and create the schema."""
        if self._conn is not None:
            return
        try:
            if self.db_path != ":memory:":
                Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
            conn = await aiosqlite.connect(self.db_path)
            await conn.execute("PRAGMA journal_mode=WAL;")
            await conn.execute("PRAGMA synchronous=NORMAL;")
            await conn.execute("PRAGMA busy_timeout=5000;")
            await conn.executescript(SCHEMA)
            await conn.commit()
        except (sqlite3.Error, OSError) as e:
            logger.critical("Failed to open document store at %s: %s", self.db_path, e)
            raise PersistenceUnavailable(f"Cannot open document store at {self.db_path}") from e
        self._conn = conn
        logger.info("Document store ready at %s", self.db_path)

    def _ensure_conn(self) -> aiosqlite.Connection:
        if self._conn is None:
            raise PersistenceUnavailable("SQLiteDocumentStore not connected. Call connect() first.")
        return self._conn

    async def close(self) -> None:
        if self._conn is not None:
            try:
                await self._conn.close()
            except sqlite3.Error as e:
                logger.warning("Error closing document store: %s", e)
            self._conn = None

    async def health_check(self) -> bool:
        if self._conn is None:
            return False
        try:
            async with self._conn.execute("SELECT 1") as cursor:
                await cursor.fetchone()
            return True
        except sqlite3.Error:
            return False

    # ─── Blocks ──────────────────────────────────────────────────

    async def load_blocks(self) -> list[dict[str, Any]]:
        conn = self._ensure_conn()
        try:
            async with conn.execute("SELECT doc FROM blocks ORDER BY idx ASC") as cursor:
                rows = await cursor.fetchall()
        except sqlite3.Error as e:
            logger.error("Failed to read blocks: %s", e)
            raise PersistenceUnavailable("Failed to read blocks") from e
        try:
            return [json.loads(row[0]) for row in rows]
        except json.JSONDecodeError as e:
            raise ChainLoadFailure(f"Corrupt block document: {e}") from e

    async def save_block(self, record: dict[str, Any]) -> None:
        conn = self._ensure_conn()
        try:
            await conn.execute(
                """
                INSERT INTO blocks (hash, idx, doc) VALUES (?, ?, ?)
                ON CONFLICT(hash) DO UPDATE SET idx = excluded.idx, doc = excluded.doc
                """,
                (record["hash"], record["index"], canonical_json(record)),
            )
            await conn.commit()
        except sqlite3.Error as e:
            logger.error("Failed to save block %s: %s", record.get("index"), e)
            raise PersistenceUnavailable("Failed to save block") from e

    # ─── Election State ─────────────────────────────────────────

    async def load_election_state(self) -> dict[str, Any] | None:
        conn = self._ensure_conn()
        try:
            async with conn.execute(
                "SELECT doc FROM election_state WHERE id = ?", (STATE_DOC_ID,)
            ) as cursor:
                row = await cursor.fetchone()
        except sqlite3.Error as e:
            logger.error("Failed to read election state: %s", e)
            raise PersistenceUnavailable("Failed to read election state") from e
        if row is None:
            return None
        try:
            return json.loads(row[0])
        except json.JSONDecodeError as e:
            raise ChainLoadFailure(f"Corrupt election state document: {e}") from e

    async def save_election_state(self, record: dict[str, Any]) -> None:
        conn = self._ensure_conn()
        try:
            await conn.execute(
                """
                INSERT INTO election_state (id, doc) VALUES (?, ?)
                ON CONFLICT(id) DO UPDATE SET doc = excluded.doc
                """,
                (STATE_DOC_ID, canonical_json(record)),
            )
            await conn.commit()
        except sqlite3.Error as e:
            logger.error("Failed to save election state: %s", e)
            raise PersistenceUnavailable("Failed to save election state") from e

    def __repr__(self) -> str:
        return f"SQLiteDocumentStore(db_path={self.db_path!r}, connected={self._conn is not None})"

"""BallotChain v1.0 - Canonical Hash Construction.

Provides deterministic JSON serialization and null-byte separated
hash computation for sealed blocks. The same logical block always
hashes identically across processes.

Hash Scheme:
    sha256(f"{index}\\x00{previous_hash}\\x00{timestamp}\\x00{transactions_json}\\x00{nonce}")
"""

from __future__ import annotations

import hashlib
import json
from typing import Any

# ─── Canonical JSON ───────────────────────────────────────────────


def canonical_json(obj: Any) -> str:
    """Deterministic JSON: sorted keys, no whitespace, ASCII-safe.

    Guarantees identical output for semantically identical input
    regardless of Python dict insertion order. List order is kept,
    so the serialization stays sensitive to transaction order.

    Args:
        obj: Any JSON-serializable object.

    Returns:
        Canonical JSON string.
    """
    return json.dumps(
        obj, sort_keys=True, separators=(",", ":"),
        ensure_ascii=True, allow_nan=False,
    )


# ─── Block Hash ──────────────────────────────────────────────────


def compute_block_hash(
    index: int,
    previous_hash: str,
    timestamp: str,
    transactions_json: str,
    nonce: int,
) -> str:
    """Compute a block hash over its canonical fields.

    Uses \\x00 (null byte) as field separator to prevent boundary
    confusion between adjacent fields.

    Args:
        index: Position of the block in the chain.
        previous_hash: Hash of the predecessor block, or "0" for genesis.
        timestamp: Block timestamp rendered as a string.
        transactions_json: Canonical JSON of the transaction sequence.
        nonce: Proof-of-work counter.

    Returns:
        SHA-256 hex digest of the canonical input.
    """
    h_input = (
        f"{index}\x00{previous_hash}\x00{timestamp}"
        f"\x00{transactions_json}\x00{nonce}"
    )
    return hashlib.sha256(h_input.encode("utf-8")).hexdigest()


def meets_difficulty(block_hash: str, difficulty: int) -> bool:
    """True if the hash starts with ``difficulty`` zero characters."""
    return block_hash.startswith("0" * difficulty)

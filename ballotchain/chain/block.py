"""
BallotChain v1.0 - Blocks and Transactions.

A block is an ordered batch of transactions linked to its predecessor
by hash. Blocks are built with ``nonce=0`` and sealed in place by the
proof-of-work search; the ledger never mutates a sealed block.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Union

from ballotchain.canonical import canonical_json, compute_block_hash, meets_difficulty

logger = logging.getLogger("ballotchain.chain.block")

VOTE_TYPE = "vote"
REWARD_TYPE = "miningReward"

GENESIS_TIMESTAMP = 1672531200000  # 2023-01-01T00:00:00Z
GENESIS_PREVIOUS_HASH = "0"


def now_ms() -> int:
    """Current wall-clock time in integer milliseconds."""
    return int(time.time() * 1000)


# ─── Transactions ────────────────────────────────────────────────


@dataclass(frozen=True)
class VoteTransaction:
    voter_id: str
    candidate_id: str
    timestamp: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": VOTE_TYPE,
            "voterId": self.voter_id,
            "candidateId": self.candidate_id,
            "timestamp": self.timestamp,
        }


@dataclass(frozen=True)
class RewardTransaction:
    """Miner reward emitted by the sealing step. Not subject to admission."""

    to_address: str
    amount: int | float
    timestamp: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": REWARD_TYPE,
            "fromAddress": None,
            "toAddress": self.to_address,
            "amount": self.amount,
            "timestamp": self.timestamp,
        }


Transaction = Union[VoteTransaction, RewardTransaction]


def transaction_from_dict(data: dict[str, Any]) -> Transaction:
    """Rebuild a transaction from its stored document.

    Raises:
        ValueError: On an unknown ``type`` or malformed fields.
    """
    if not isinstance(data, dict):
        raise ValueError(f"Transaction record is not an object: {data!r}")
    tx_type = data.get("type")
    if tx_type == VOTE_TYPE:
        return VoteTransaction(
            voter_id=str(data["voterId"]),
            candidate_id=str(data["candidateId"]),
            timestamp=int(data["timestamp"]),
        )
    if tx_type == REWARD_TYPE:
        amount = data["amount"]
        if isinstance(amount, bool) or not isinstance(amount, (int, float)):
            raise ValueError(f"Invalid reward amount: {amount!r}")
        return RewardTransaction(
            to_address=str(data["toAddress"]),
            amount=amount,
            timestamp=int(data["timestamp"]),
        )
    raise ValueError(f"Unknown transaction type: {tx_type!r}")


def serialize_transactions(transactions: list[Transaction]) -> str:
    """Canonical, order-preserving serialization of a transaction batch."""
    return canonical_json([tx.to_dict() for tx in transactions])


# ─── Block ───────────────────────────────────────────────────────


@dataclass
class Block:
    index: int
    timestamp: int
    transactions: list[Transaction] = field(default_factory=list)
    previous_hash: str = ""
    nonce: int = 0
    hash: str = ""

    def __post_init__(self) -> None:
        if not self.hash:
            self.hash = self.calculate_hash()

    def calculate_hash(self, nonce: int | None = None) -> str:
        """Recompute the hash from the stored fields."""
        return compute_block_hash(
            self.index,
            self.previous_hash,
            str(self.timestamp),
            serialize_transactions(self.transactions),
            self.nonce if nonce is None else nonce,
        )

    def seal(self, difficulty: int) -> "Block":
        """Proof-of-work: increment the nonce until the hash has ``difficulty`` leading zeros.

        CPU-bound and free of I/O, so callers may run it in a worker thread.
        The transaction payload is serialized once for the whole search.
        """
        logger.debug("Sealing block %d with difficulty %d", self.index, difficulty)
        tx_json = serialize_transactions(self.transactions)
        ts = str(self.timestamp)
        nonce = 0
        digest = compute_block_hash(self.index, self.previous_hash, ts, tx_json, nonce)
        while not meets_difficulty(digest, difficulty):
            nonce += 1
            digest = compute_block_hash(self.index, self.previous_hash, ts, tx_json, nonce)
        self.nonce = nonce
        self.hash = digest
        return self

    def is_sealed(self, difficulty: int) -> bool:
        return meets_difficulty(self.hash, difficulty) and self.hash == self.calculate_hash()

    def vote_transactions(self) -> list[VoteTransaction]:
        return [tx for tx in self.transactions if isinstance(tx, VoteTransaction)]

    def to_dict(self) -> dict[str, Any]:
        return {
            "index": self.index,
            "timestamp": self.timestamp,
            "transactions": [tx.to_dict() for tx in self.transactions],
            "previousHash": self.previous_hash,
            "nonce": self.nonce,
            "hash": self.hash,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Block":
        """Restore a block exactly as stored, keeping its stored hash."""
        if not isinstance(data, dict):
            raise ValueError("Block record is not an object")
        transactions = data.get("transactions") or []
        if not isinstance(transactions, list):
            raise ValueError("Block transactions are not a list")
        stored_hash = data["hash"]
        if not isinstance(stored_hash, str) or not stored_hash:
            raise ValueError("Stored block has no hash")
        return cls(
            index=int(data["index"]),
            timestamp=int(data["timestamp"]),
            transactions=[transaction_from_dict(tx) for tx in transactions],
            previous_hash=str(data["previousHash"]),
            nonce=int(data["nonce"]),
            hash=stored_hash,
        )


def create_genesis_block() -> Block:
    """Fixed sentinel block at index 0. Not mined."""
    return Block(
        index=0,
        timestamp=GENESIS_TIMESTAMP,
        transactions=[],
        previous_hash=GENESIS_PREVIOUS_HASH,
    )

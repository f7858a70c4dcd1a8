"""
BallotChain v1.0 - Election Ledger.

Owns the chain, the pending pool and the election state. Admission,
sealing and the admin mutations run under one ``asyncio.Lock`` so that
two admissions can never both pass the duplicate-vote check and at most
one seal is ever in flight. Proof-of-work runs in a worker thread while
the lock is held.
"""

from __future__ import annotations

import asyncio
import copy
import logging
import time
from collections.abc import Iterable
from typing import Any

from ballotchain import config
from ballotchain.chain.block import (
    Block,
    RewardTransaction,
    Transaction,
    VoteTransaction,
    create_genesis_block,
    now_ms,
)
from ballotchain.chain.state import Candidate, ElectionState, replay_voted_users
from ballotchain.exceptions import (
    AdmissionError,
    ChainLoadFailure,
    DuplicateVote,
    ElectionClosed,
    InvalidInput,
    LedgerNotReady,
    PersistenceUnavailable,
    UnknownCandidate,
    VoterNotRegistered,
)
from ballotchain.metrics import metrics
from ballotchain.storage import PersistenceGateway

logger = logging.getLogger("ballotchain.ledger")


def _is_blank(value: Any) -> bool:
    return not isinstance(value, str) or not value.strip()


class ElectionLedger:
    """
    Single-writer election ledger.

    Lifecycle: construct with a connected gateway, ``await load()``,
    serve requests, then close the gateway at shutdown.
    """

    def __init__(
        self,
        gateway: PersistenceGateway | None,
        *,
        difficulty: int | None = None,
        mining_reward: int | float | None = None,
        candidates: Iterable[tuple[str, str]] | None = None,
    ):
        self._gateway = gateway
        self.difficulty = config.DIFFICULTY if difficulty is None else difficulty
        self.mining_reward = config.MINING_REWARD if mining_reward is None else mining_reward
        roster = config.CANDIDATES if candidates is None else candidates
        self._candidates = [Candidate(id=cid, name=name) for cid, name in roster]

        self._chain: list[Block] = []
        self._pending: list[Transaction] = []
        self._pending_voters: set[str] = set()
        self._state = ElectionState(candidates=list(self._candidates))
        self._lock = asyncio.Lock()
        self.is_loaded = False

    # ─── Startup ─────────────────────────────────────────────────

    async def load(self) -> None:
        """Restore chain and election state from the gateway.

        Creates and persists a genesis block when no blocks exist and an
        empty state when none is stored. Any persistence or decoding
        failure falls back to a genesis-only chain and empty state.
        """
        async with self._lock:
            logger.info("Loading chain and election state...")
            try:
                chain, state, state_missing = await self._restore()
            except (PersistenceUnavailable, ChainLoadFailure) as e:
                logger.error("Error loading chain or election state: %s", e)
                logger.warning("Falling back to genesis-only chain and empty election state")
                metrics.inc("ballotchain_load_fallbacks_total")
                chain = [create_genesis_block()]
                state = ElectionState(candidates=list(self._candidates))
                state_missing = False

            self._chain = chain
            self._state = state
            self._pending = []
            self._pending_voters = set()

            if state_missing:
                logger.info("No stored election state, saving empty state")
                await self._save_state()

            self.is_loaded = True
            metrics.set_gauge("ballotchain_chain_height", len(self._chain))

        report = self.verify_chain()
        if not report["valid"]:
            logger.warning(
                "Loaded chain fails verification at block %s (%s)",
                report["first_invalid_index"], report["reason"],
            )
        logger.info(
            "Ledger ready: %d blocks, %d registered voters, election %s",
            len(self._chain), len(self._state.registered_voters),
            "open" if self._state.is_election_open else "closed",
        )

    async def _restore(self) -> tuple[list[Block], ElectionState, bool]:
        if self._gateway is None:
            raise PersistenceUnavailable("Persistence gateway is not initialized")

        records = await self._gateway.load_blocks()
        if not records:
            logger.info("No stored blocks, creating genesis block")
            genesis = create_genesis_block()
            await self._gateway.save_block(genesis.to_dict())
            chain = [genesis]
        else:
            chain = self._decode_chain(records)
            logger.info("Loaded %d blocks", len(chain))

        record = await self._gateway.load_election_state()
        if record is None:
            state = ElectionState(candidates=list(self._candidates))
        else:
            try:
                state = ElectionState.from_record(record, self._candidates)
            except (TypeError, ValueError) as e:
                raise ChainLoadFailure(f"Unreadable election state: {e}") from e

        rebuilt = replay_voted_users(chain)
        if record is not None and rebuilt != state.voted_users:
            logger.warning(
                "Stored voted users (%d) disagree with chain replay (%d); using replay",
                len(state.voted_users), len(rebuilt),
            )
        state.voted_users = rebuilt
        return chain, state, record is None

    @staticmethod
    def _decode_chain(records: list[dict[str, Any]]) -> list[Block]:
        try:
            chain = sorted((Block.from_dict(r) for r in records), key=lambda b: b.index)
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            raise ChainLoadFailure(f"Unreadable block record: {e}") from e
        for position, block in enumerate(chain):
            if block.index != position:
                raise ChainLoadFailure(f"Block index gap at position {position} (found {block.index})")
        return chain

    def _require_loaded(self) -> None:
        if not self.is_loaded:
            raise LedgerNotReady("Ledger is loading. Please try again shortly.")

    # ─── Persistence helpers ────────────────────────────────────

    async def _save_block(self, block: Block) -> None:
        if self._gateway is None:
            raise PersistenceUnavailable("Persistence gateway is not initialized")
        await self._gateway.save_block(block.to_dict())

    async def _save_state(self) -> bool:
        """Best-effort state snapshot; failures are logged, never raised."""
        if self._gateway is None:
            logger.error("Persistence gateway is not initialized, election state not saved")
            metrics.inc("ballotchain_persistence_failures_total", {"op": "save_election_state"})
            return False
        try:
            await self._gateway.save_election_state(self._state.to_record())
        except PersistenceUnavailable as e:
            logger.error("Error saving election state: %s", e)
            metrics.inc("ballotchain_persistence_failures_total", {"op": "save_election_state"})
            return False
        logger.debug("Election state saved")
        return True

    # ─── Admission ───────────────────────────────────────────────

    async def submit_vote(self, voter_id: Any, candidate_id: Any) -> VoteTransaction:
        """Admit a vote into the pending pool.

        Checks run in order and the first failure wins: election open,
        both fields present, known candidate, registered voter, no
        sealed or pending vote for the voter. The voter is marked as
        pending until the next seal.

        Raises:
            ElectionClosed, InvalidInput, UnknownCandidate,
            VoterNotRegistered, DuplicateVote
        """
        self._require_loaded()
        async with self._lock:
            return self._admit(voter_id, candidate_id)

    async def submit_and_seal(
        self, voter_id: Any, candidate_id: Any, miner_address: str | None = None
    ) -> tuple[VoteTransaction, Block]:
        """Admit a vote and seal it in one hold of the lock.

        The returned block always contains the returned transaction. If
        the block cannot be persisted the vote is withdrawn again, so the
        voter may retry, and ``PersistenceUnavailable`` propagates.
        """
        self._require_loaded()
        async with self._lock:
            tx = self._admit(voter_id, candidate_id)
            try:
                block = await self._seal(miner_address)
            except PersistenceUnavailable:
                self._withdraw(tx)
                raise
        return tx, block

    def _admit(self, voter_id: Any, candidate_id: Any) -> VoteTransaction:
        try:
            self._check_admission(voter_id, candidate_id)
        except AdmissionError as e:
            metrics.inc("ballotchain_votes_rejected_total", {"kind": e.kind})
            logger.info("Vote rejected (%s): %s", e.kind, e)
            raise

        tx = VoteTransaction(voter_id=voter_id, candidate_id=candidate_id, timestamp=now_ms())
        self._pending.append(tx)
        self._pending_voters.add(voter_id)
        metrics.inc("ballotchain_votes_admitted_total")
        logger.info("Vote added to pending pool: voter=%s candidate=%s", voter_id, candidate_id)
        return tx

    def _withdraw(self, tx: VoteTransaction) -> None:
        self._pending = [p for p in self._pending if p is not tx]
        self._pending_voters.discard(tx.voter_id)
        metrics.inc("ballotchain_votes_withdrawn_total")
        logger.warning("Vote by %s withdrawn after a failed seal", tx.voter_id)

    def _check_admission(self, voter_id: Any, candidate_id: Any) -> None:
        state = self._state
        if not state.is_election_open:
            raise ElectionClosed("Election is currently closed. Votes cannot be cast.")
        if _is_blank(voter_id) or _is_blank(candidate_id):
            raise InvalidInput("Invalid vote: voterId and candidateId are required.")
        if not state.has_candidate(candidate_id):
            raise UnknownCandidate(f"Invalid vote: Candidate '{candidate_id}' not found.")
        if voter_id not in state.registered_voters:
            raise VoterNotRegistered(f"Voter '{voter_id}' is not registered or not eligible to vote.")
        if voter_id in state.voted_users or voter_id in self._pending_voters:
            raise DuplicateVote(f"Voter '{voter_id}' has already cast a vote.")

    # ─── Sealing ─────────────────────────────────────────────────

    async def seal_pending(self, miner_address: str | None = None) -> Block | None:
        """Seal every pending transaction into one new block.

        Returns the sealed block, or None when the pool is empty. The
        block is persisted before any other state changes; if that write
        fails the block is dropped, the pool is left as it was and
        ``PersistenceUnavailable`` propagates.
        """
        self._require_loaded()
        async with self._lock:
            return await self._seal(miner_address)

    async def _seal(self, miner_address: str | None) -> Block | None:
        if not self._pending:
            logger.info("No pending transactions to mine")
            return None

        block = Block(
            index=len(self._chain),
            timestamp=now_ms(),
            transactions=copy.deepcopy(self._pending),
            previous_hash=self.latest_block.hash,
        )

        logger.info(
            "Mining block %d (%d transactions, difficulty %d)...",
            block.index, len(block.transactions), self.difficulty,
        )
        start = time.perf_counter()
        await asyncio.to_thread(block.seal, self.difficulty)
        metrics.observe("ballotchain_seal_duration_seconds", time.perf_counter() - start)

        self._chain.append(block)
        try:
            await self._save_block(block)
        except PersistenceUnavailable:
            self._chain.pop()
            metrics.inc("ballotchain_persistence_failures_total", {"op": "save_block"})
            logger.error("Block %d could not be persisted; mining attempt discarded", block.index)
            raise

        self._pending = []
        sealed_voters = {tx.voter_id for tx in block.vote_transactions()}
        self._pending_voters.difference_update(sealed_voters)

        if miner_address:
            self._pending.append(
                RewardTransaction(
                    to_address=miner_address,
                    amount=self.mining_reward,
                    timestamp=now_ms(),
                )
            )

        self._state.voted_users.update(sealed_voters)
        await self._save_state()

        metrics.inc("ballotchain_blocks_sealed_total")
        metrics.set_gauge("ballotchain_chain_height", len(self._chain))
        logger.info(
            "Block %d sealed: nonce=%d hash=%s...", block.index, block.nonce, block.hash[:12]
        )
        return block

    # ─── Integrity ───────────────────────────────────────────────

    def verify_chain(self, check_difficulty: bool = False) -> dict[str, Any]:
        """Audit hash and linkage of every block after genesis.

        With ``check_difficulty`` each block must also carry enough
        proof-of-work for the current difficulty. Stops at the first
        failing block. Read-only.
        """
        chain = list(self._chain)
        if not chain:
            return {"valid": False, "blocks_checked": 0, "first_invalid_index": None, "reason": "EMPTY_CHAIN"}

        for i in range(1, len(chain)):
            current, previous = chain[i], chain[i - 1]
            if current.hash != current.calculate_hash():
                return {"valid": False, "blocks_checked": i + 1, "first_invalid_index": i, "reason": "HASH_MISMATCH"}
            if current.previous_hash != previous.hash:
                return {"valid": False, "blocks_checked": i + 1, "first_invalid_index": i, "reason": "CHAIN_BREAK"}
            if check_difficulty and not current.is_sealed(self.difficulty):
                return {"valid": False, "blocks_checked": i + 1, "first_invalid_index": i, "reason": "INSUFFICIENT_WORK"}

        return {"valid": True, "blocks_checked": len(chain), "first_invalid_index": None, "reason": None}

    def is_chain_valid(self) -> bool:
        report = self.verify_chain()
        if not report["valid"]:
            logger.info("Chain invalid at block %s: %s", report["first_invalid_index"], report["reason"])
        return report["valid"]

    def rebuild_voted_users(self) -> set[str]:
        """Recompute the cast-vote set from the sealed chain."""
        return replay_voted_users(self._chain)

    def voted_users_consistent(self) -> bool:
        """True if the incrementally maintained set matches a chain replay."""
        return self.rebuild_voted_users() == self._state.voted_users

    # ─── Tally ───────────────────────────────────────────────────

    def get_results(self) -> dict[str, dict[str, Any]]:
        """Vote count per known candidate over the whole chain."""
        self._require_loaded()
        results = {c.id: {"name": c.name, "votes": 0} for c in self._candidates}
        for block in self._chain:
            for tx in block.vote_transactions():
                if tx.candidate_id in results:
                    results[tx.candidate_id]["votes"] += 1
        return results

    # ─── Admin ───────────────────────────────────────────────────

    async def register_voter(self, voter_id: Any) -> bool:
        """Add a voter to the registry.

        Returns:
            True when newly registered, False when already registered.

        Raises:
            InvalidInput: On an empty voter id.
        """
        self._require_loaded()
        if _is_blank(voter_id):
            raise InvalidInput("Voter ID cannot be empty.")
        async with self._lock:
            if voter_id in self._state.registered_voters:
                return False
            self._state.registered_voters.add(voter_id)
            await self._save_state()
        logger.info("Voter '%s' registered", voter_id)
        return True

    async def set_election_status(self, is_open: Any) -> None:
        self._require_loaded()
        if not isinstance(is_open, bool):
            raise InvalidInput("Status must be a boolean (true/false).")
        async with self._lock:
            self._state.is_election_open = is_open
            await self._save_state()
        logger.info("Election status set to: %s", "Open" if is_open else "Closed")

    # ─── Read surface ────────────────────────────────────────────

    @property
    def latest_block(self) -> Block:
        return self._chain[-1]

    @property
    def chain_height(self) -> int:
        return len(self._chain)

    def get_chain(self) -> list[dict[str, Any]]:
        self._require_loaded()
        return [block.to_dict() for block in self._chain]

    def get_pending_transactions(self) -> list[dict[str, Any]]:
        self._require_loaded()
        return [tx.to_dict() for tx in self._pending]

    def get_candidates(self) -> list[dict[str, str]]:
        return [c.to_dict() for c in self._candidates]

    def get_election_status(self) -> bool:
        self._require_loaded()
        return self._state.is_election_open

    def get_registered_voters(self) -> list[str]:
        self._require_loaded()
        return sorted(self._state.registered_voters)

    def get_voted_users(self) -> list[str]:
        self._require_loaded()
        return sorted(self._state.voted_users)

    def get_pending_voters(self) -> list[str]:
        self._require_loaded()
        return sorted(self._pending_voters)

    def __repr__(self) -> str:
        return (
            f"ElectionLedger(height={len(self._chain)}, pending={len(self._pending)}, "
            f"loaded={self.is_loaded})"
        )

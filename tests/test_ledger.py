"""
BallotChain - Ledger Tests.

Admission, sealing, integrity, tally and persistence behavior of
ElectionLedger over the in-memory document store.
"""

import asyncio

import pytest

from ballotchain.chain.block import create_genesis_block
from ballotchain.chain.ledger import ElectionLedger
from ballotchain.exceptions import (
    DuplicateVote,
    ElectionClosed,
    InvalidInput,
    LedgerNotReady,
    PersistenceUnavailable,
    UnknownCandidate,
    VoterNotRegistered,
)
from ballotchain.metrics import metrics
from ballotchain.storage.memory import MemoryDocumentStore

CANDIDATES = [("candidateA", "Alice Smith"), ("candidateB", "Bob Johnson"), ("candidateC", "Charlie Brown")]


async def _fresh_ledger(store, **kwargs):
    kwargs.setdefault("difficulty", 1)
    kwargs.setdefault("candidates", CANDIDATES)
    ledger = ElectionLedger(store, **kwargs)
    await ledger.load()
    return ledger


# ─── Load ────────────────────────────────────────────────────────


class TestLoad:
    async def test_empty_store_creates_genesis(self, store, ledger):
        assert ledger.chain_height == 1
        assert ledger.latest_block.hash == create_genesis_block().hash
        assert len(store.blocks) == 1
        assert store.election_state is not None
        assert store.election_state["isElectionOpen"] is False

    async def test_reload_restores_chain_and_state(self, store, open_ledger):
        await open_ledger.submit_vote("v1", "candidateA")
        await open_ledger.seal_pending()

        reloaded = await _fresh_ledger(store)
        assert reloaded.chain_height == 2
        assert reloaded.get_voted_users() == ["v1"]
        assert reloaded.get_registered_voters() == ["v1", "v2", "v3"]
        assert reloaded.get_election_status() is True
        assert reloaded.get_pending_transactions() == []

    async def test_voted_users_rebuilt_from_chain(self, store, open_ledger):
        await open_ledger.submit_vote("v1", "candidateA")
        await open_ledger.seal_pending()
        store.election_state["votedUsers"] = ["ghost"]

        reloaded = await _fresh_ledger(store)
        assert reloaded.get_voted_users() == ["v1"]
        assert reloaded.voted_users_consistent()

    async def test_load_failure_falls_back_to_genesis(self):
        store = MemoryDocumentStore(fail_on={"load_blocks"})
        await store.connect()
        ledger = await _fresh_ledger(store)
        assert ledger.is_loaded
        assert ledger.chain_height == 1
        assert ledger.get_registered_voters() == []
        assert ledger.get_election_status() is False
        assert metrics.get_counter("ballotchain_load_fallbacks_total") == 1

    async def test_index_gap_falls_back_to_genesis(self, store, open_ledger):
        await open_ledger.submit_vote("v1", "candidateA")
        block = await open_ledger.seal_pending()
        store.blocks[block.hash]["index"] = 5

        reloaded = await _fresh_ledger(store)
        assert reloaded.chain_height == 1

    async def test_non_object_transaction_falls_back_to_genesis(self, store, open_ledger):
        await open_ledger.submit_vote("v1", "candidateA")
        block = await open_ledger.seal_pending()
        store.blocks[block.hash]["transactions"] = ["oops"]

        reloaded = await _fresh_ledger(store)
        assert reloaded.is_loaded
        assert reloaded.chain_height == 1
        assert metrics.get_counter("ballotchain_load_fallbacks_total") == 1

    async def test_non_object_election_state_falls_back(self, store, open_ledger):
        store.election_state = ["not", "a", "dict"]

        reloaded = await _fresh_ledger(store)
        assert reloaded.is_loaded
        assert reloaded.chain_height == 1
        assert reloaded.get_registered_voters() == []
        assert reloaded.get_election_status() is False
        assert metrics.get_counter("ballotchain_load_fallbacks_total") == 1

    async def test_tampered_store_loads_but_fails_verification(self, store, open_ledger):
        await open_ledger.submit_vote("v1", "candidateA")
        block = await open_ledger.seal_pending()
        store.blocks[block.hash]["transactions"][0]["candidateId"] = "candidateB"

        reloaded = await _fresh_ledger(store)
        assert reloaded.chain_height == 2
        report = reloaded.verify_chain()
        assert report["valid"] is False
        assert report["first_invalid_index"] == 1
        assert report["reason"] == "HASH_MISMATCH"

    async def test_unloaded_ledger_refuses_requests(self, store):
        ledger = ElectionLedger(store, difficulty=1, candidates=CANDIDATES)
        with pytest.raises(LedgerNotReady):
            await ledger.submit_vote("v1", "candidateA")
        with pytest.raises(LedgerNotReady):
            ledger.get_chain()
        with pytest.raises(LedgerNotReady):
            await ledger.seal_pending()


# ─── Admission ───────────────────────────────────────────────────


class TestAdmission:
    async def test_vote_goes_to_pending(self, open_ledger):
        tx = await open_ledger.submit_vote("v1", "candidateA")
        assert tx.voter_id == "v1"
        pending = open_ledger.get_pending_transactions()
        assert len(pending) == 1
        assert pending[0]["type"] == "vote"
        assert open_ledger.get_pending_voters() == ["v1"]
        assert open_ledger.get_voted_users() == []

    async def test_closed_election_checked_first(self, ledger):
        await ledger.register_voter("v1")
        with pytest.raises(ElectionClosed) as exc:
            await ledger.submit_vote("", "nobody")
        assert exc.value.kind == "election_closed"

    @pytest.mark.parametrize(
        "voter,candidate",
        [("", "candidateA"), ("v1", ""), (None, "candidateA"), ("v1", None), ("   ", "candidateA")],
    )
    async def test_missing_fields(self, open_ledger, voter, candidate):
        with pytest.raises(InvalidInput):
            await open_ledger.submit_vote(voter, candidate)

    async def test_unknown_candidate(self, open_ledger):
        with pytest.raises(UnknownCandidate):
            await open_ledger.submit_vote("v1", "candidateZ")

    async def test_unregistered_voter(self, open_ledger):
        with pytest.raises(VoterNotRegistered):
            await open_ledger.submit_vote("stranger", "candidateA")
        assert open_ledger.get_pending_transactions() == []

    async def test_unknown_candidate_before_registration(self, open_ledger):
        with pytest.raises(UnknownCandidate):
            await open_ledger.submit_vote("stranger", "candidateZ")

    async def test_duplicate_while_pending(self, open_ledger):
        await open_ledger.submit_vote("v1", "candidateA")
        with pytest.raises(DuplicateVote):
            await open_ledger.submit_vote("v1", "candidateB")
        assert len(open_ledger.get_pending_transactions()) == 1

    async def test_duplicate_after_seal(self, open_ledger):
        await open_ledger.submit_vote("v1", "candidateA")
        await open_ledger.seal_pending()
        with pytest.raises(DuplicateVote) as exc:
            await open_ledger.submit_vote("v1", "candidateB")
        assert exc.value.kind == "duplicate_vote"

    async def test_concurrent_submissions_admit_one(self, open_ledger):
        results = await asyncio.gather(
            *(open_ledger.submit_vote("v1", "candidateA") for _ in range(5)),
            return_exceptions=True,
        )
        admitted = [r for r in results if not isinstance(r, Exception)]
        rejected = [r for r in results if isinstance(r, DuplicateVote)]
        assert len(admitted) == 1
        assert len(rejected) == 4

    async def test_rejections_are_counted(self, open_ledger):
        with pytest.raises(UnknownCandidate):
            await open_ledger.submit_vote("v1", "candidateZ")
        assert metrics.get_counter("ballotchain_votes_rejected_total", {"kind": "unknown_candidate"}) == 1


# ─── Sealing ─────────────────────────────────────────────────────


class TestSealing:
    async def test_empty_pool_returns_none(self, open_ledger):
        assert await open_ledger.seal_pending("miner") is None
        assert open_ledger.chain_height == 1

    async def test_seal_links_and_meets_difficulty(self, store, open_ledger):
        genesis_hash = open_ledger.latest_block.hash
        await open_ledger.submit_vote("v1", "candidateA")
        await open_ledger.submit_vote("v2", "candidateB")

        block = await open_ledger.seal_pending()
        assert block.index == 1
        assert block.previous_hash == genesis_hash
        assert block.hash.startswith("0")
        assert [tx.voter_id for tx in block.vote_transactions()] == ["v1", "v2"]
        assert block.hash in store.blocks
        assert open_ledger.get_pending_transactions() == []
        assert open_ledger.get_pending_voters() == []
        assert open_ledger.get_voted_users() == ["v1", "v2"]
        assert store.election_state["votedUsers"] == ["v1", "v2"]

    async def test_reward_rides_next_block(self, open_ledger):
        await open_ledger.submit_vote("v1", "candidateA")
        await open_ledger.seal_pending("miner-1")

        pending = open_ledger.get_pending_transactions()
        assert len(pending) == 1
        assert pending[0]["type"] == "miningReward"
        assert pending[0]["toAddress"] == "miner-1"
        assert pending[0]["fromAddress"] is None
        assert pending[0]["amount"] == 1

        await open_ledger.submit_vote("v2", "candidateB")
        block = await open_ledger.seal_pending()
        assert [tx.to_dict()["type"] for tx in block.transactions] == ["miningReward", "vote"]

    async def test_no_reward_without_miner(self, open_ledger):
        await open_ledger.submit_vote("v1", "candidateA")
        await open_ledger.seal_pending()
        assert open_ledger.get_pending_transactions() == []

    async def test_block_save_failure_rolls_back(self, store, open_ledger):
        await open_ledger.submit_vote("v1", "candidateA")
        store.fail_on.add("save_block")

        with pytest.raises(PersistenceUnavailable):
            await open_ledger.seal_pending("miner")

        assert open_ledger.chain_height == 1
        assert len(open_ledger.get_pending_transactions()) == 1
        assert open_ledger.get_voted_users() == []
        with pytest.raises(DuplicateVote):
            await open_ledger.submit_vote("v1", "candidateB")

        store.fail_on.discard("save_block")
        block = await open_ledger.seal_pending()
        assert block.index == 1
        assert open_ledger.get_voted_users() == ["v1"]

    async def test_state_save_failure_is_not_fatal(self, store, open_ledger):
        await open_ledger.submit_vote("v1", "candidateA")
        store.fail_on.add("save_election_state")

        block = await open_ledger.seal_pending()
        assert block is not None
        assert open_ledger.get_voted_users() == ["v1"]
        assert block.hash in store.blocks
        assert metrics.get_counter(
            "ballotchain_persistence_failures_total", {"op": "save_election_state"}
        ) == 1

        # The durable chain still carries the vote on restart
        store.fail_on.clear()
        reloaded = await _fresh_ledger(store)
        assert reloaded.get_voted_users() == ["v1"]

    async def test_concurrent_seals_share_one_pool(self, open_ledger):
        for voter in ("v1", "v2", "v3"):
            await open_ledger.submit_vote(voter, "candidateA")

        blocks = await asyncio.gather(*(open_ledger.seal_pending("miner") for _ in range(3)))

        chain = open_ledger._chain
        assert sorted(b.index for b in blocks) == [1, 2, 3]
        assert [b.index for b in chain] == [0, 1, 2, 3]
        for prev, current in zip(chain, chain[1:]):
            assert current.previous_hash == prev.hash
        vote_blocks = [b for b in chain if b.vote_transactions()]
        assert len(vote_blocks) == 1
        assert sorted(tx.voter_id for tx in vote_blocks[0].vote_transactions()) == ["v1", "v2", "v3"]
        assert open_ledger.voted_users_consistent()
        assert open_ledger.get_pending_voters() == []

    async def test_higher_difficulty(self, store):
        await store.connect()
        ledger = await _fresh_ledger(store, difficulty=2)
        await ledger.register_voter("v1")
        await ledger.set_election_status(True)
        await ledger.submit_vote("v1", "candidateC")
        block = await ledger.seal_pending()
        assert block.hash.startswith("00")


# ─── Submit and seal ─────────────────────────────────────────────


class TestSubmitAndSeal:
    async def test_block_contains_the_vote(self, open_ledger):
        tx, block = await open_ledger.submit_and_seal("v1", "candidateB")
        assert tx in block.vote_transactions()
        assert open_ledger.latest_block is block
        assert open_ledger.get_voted_users() == ["v1"]

    async def test_concurrent_receipts_name_their_own_block(self, open_ledger):
        receipts = await asyncio.gather(
            *(open_ledger.submit_and_seal(voter, "candidateA", "miner") for voter in ("v1", "v2", "v3"))
        )
        for voter, (tx, block) in zip(("v1", "v2", "v3"), receipts):
            assert tx.voter_id == voter
            assert voter in [t.voter_id for t in block.vote_transactions()]
            assert open_ledger._chain[block.index] is block
        assert open_ledger.get_voted_users() == ["v1", "v2", "v3"]
        assert open_ledger.is_chain_valid()

    async def test_rejection_leaves_pool_untouched(self, open_ledger):
        with pytest.raises(UnknownCandidate):
            await open_ledger.submit_and_seal("v1", "nobody")
        assert open_ledger.chain_height == 1
        assert open_ledger.get_pending_transactions() == []

    async def test_failed_save_withdraws_the_vote(self, store, open_ledger):
        store.fail_on.add("save_block")

        with pytest.raises(PersistenceUnavailable):
            await open_ledger.submit_and_seal("v1", "candidateA", "miner")

        assert open_ledger.chain_height == 1
        assert open_ledger.get_pending_transactions() == []
        assert open_ledger.get_pending_voters() == []
        assert open_ledger.get_voted_users() == []
        assert metrics.get_counter("ballotchain_votes_withdrawn_total") == 1

        store.fail_on.discard("save_block")
        tx, block = await open_ledger.submit_and_seal("v1", "candidateA")
        assert block.index == 1
        assert block.vote_transactions() == [tx]
        assert open_ledger.get_voted_users() == ["v1"]

    async def test_withdraw_keeps_other_pending_votes(self, store, open_ledger):
        await open_ledger.submit_vote("v2", "candidateB")
        store.fail_on.add("save_block")

        with pytest.raises(PersistenceUnavailable):
            await open_ledger.submit_and_seal("v1", "candidateA")

        assert [tx["voterId"] for tx in open_ledger.get_pending_transactions()] == ["v2"]
        assert open_ledger.get_pending_voters() == ["v2"]


# ─── Integrity ───────────────────────────────────────────────────


class TestIntegrity:
    async def test_fresh_chain_valid(self, ledger):
        report = ledger.verify_chain()
        assert report == {"valid": True, "blocks_checked": 1, "first_invalid_index": None, "reason": None}
        assert ledger.is_chain_valid()

    async def test_valid_after_seals(self, open_ledger):
        for voter in ("v1", "v2"):
            await open_ledger.submit_vote(voter, "candidateA")
            await open_ledger.seal_pending()
        assert open_ledger.is_chain_valid()
        assert open_ledger.verify_chain()["blocks_checked"] == 3

    async def test_hash_mismatch_detected(self, open_ledger):
        await open_ledger.submit_vote("v1", "candidateA")
        block = await open_ledger.seal_pending()
        block.timestamp += 1

        report = open_ledger.verify_chain()
        assert report["reason"] == "HASH_MISMATCH"
        assert report["first_invalid_index"] == 1
        assert not open_ledger.is_chain_valid()

    async def test_chain_break_detected(self, open_ledger):
        for voter in ("v1", "v2"):
            await open_ledger.submit_vote(voter, "candidateA")
            await open_ledger.seal_pending()
        block = open_ledger.latest_block
        block.previous_hash = "f" * 64
        block.hash = block.calculate_hash()

        report = open_ledger.verify_chain()
        assert report["reason"] == "CHAIN_BREAK"
        assert report["first_invalid_index"] == 2

    async def test_verification_is_repeatable(self, open_ledger):
        await open_ledger.submit_vote("v1", "candidateA")
        await open_ledger.seal_pending()
        assert open_ledger.verify_chain() == open_ledger.verify_chain()

    async def test_difficulty_check_passes_at_sealing_difficulty(self, open_ledger):
        await open_ledger.submit_vote("v1", "candidateA")
        await open_ledger.seal_pending()
        assert open_ledger.verify_chain(check_difficulty=True)["valid"] is True

    async def test_insufficient_work_only_flagged_when_checked(self, open_ledger):
        await open_ledger.submit_vote("v1", "candidateA")
        await open_ledger.seal_pending()
        open_ledger.difficulty = 64

        assert open_ledger.verify_chain()["valid"] is True
        report = open_ledger.verify_chain(check_difficulty=True)
        assert report["valid"] is False
        assert report["first_invalid_index"] == 1
        assert report["reason"] == "INSUFFICIENT_WORK"

    async def test_voted_users_consistency(self, open_ledger):
        await open_ledger.submit_vote("v1", "candidateA")
        await open_ledger.seal_pending()
        assert open_ledger.rebuild_voted_users() == {"v1"}
        assert open_ledger.voted_users_consistent()


# ─── Tally ───────────────────────────────────────────────────────


class TestResults:
    async def test_all_candidates_listed_with_zero(self, ledger):
        results = ledger.get_results()
        assert list(results) == ["candidateA", "candidateB", "candidateC"]
        assert all(r["votes"] == 0 for r in results.values())
        assert results["candidateA"]["name"] == "Alice Smith"

    async def test_pending_votes_not_counted(self, open_ledger):
        await open_ledger.submit_vote("v1", "candidateA")
        assert open_ledger.get_results()["candidateA"]["votes"] == 0

    async def test_sealed_votes_counted(self, open_ledger):
        await open_ledger.submit_vote("v1", "candidateA")
        await open_ledger.submit_vote("v2", "candidateA")
        await open_ledger.seal_pending("miner")
        await open_ledger.submit_vote("v3", "candidateC")
        await open_ledger.seal_pending()

        results = open_ledger.get_results()
        assert results["candidateA"]["votes"] == 2
        assert results["candidateB"]["votes"] == 0
        assert results["candidateC"]["votes"] == 1

        sealed_votes = sum(len(b.vote_transactions()) for b in open_ledger._chain)
        assert sum(r["votes"] for r in results.values()) == sealed_votes == 3

    async def test_candidates_listing(self, ledger):
        assert ledger.get_candidates()[1] == {"id": "candidateB", "name": "Bob Johnson"}


# ─── Admin ───────────────────────────────────────────────────────


class TestAdmin:
    async def test_register_is_idempotent(self, store, ledger):
        assert await ledger.register_voter("v1") is True
        assert await ledger.register_voter("v1") is False
        assert ledger.get_registered_voters() == ["v1"]
        assert store.election_state["registeredVoters"] == ["v1"]

    async def test_register_blank_rejected(self, ledger):
        with pytest.raises(InvalidInput):
            await ledger.register_voter("  ")

    async def test_set_status(self, store, ledger):
        await ledger.set_election_status(True)
        assert ledger.get_election_status() is True
        assert store.election_state["isElectionOpen"] is True
        await ledger.set_election_status(False)
        assert ledger.get_election_status() is False

    @pytest.mark.parametrize("value", ["true", 1, None])
    async def test_set_status_requires_bool(self, ledger, value):
        with pytest.raises(InvalidInput):
            await ledger.set_election_status(value)

    async def test_closing_blocks_new_votes(self, open_ledger):
        await open_ledger.set_election_status(False)
        with pytest.raises(ElectionClosed):
            await open_ledger.submit_vote("v1", "candidateA")

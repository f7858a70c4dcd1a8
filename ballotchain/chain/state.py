"""
BallotChain v1.0 - Election State.

Registration set, cast-vote set, open/closed flag and candidate roster.
``voted_users`` is a materialized view over the sealed chain: it is
maintained incrementally by the sealing step and can always be rebuilt
by replaying every sealed vote.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

from ballotchain.chain.block import Block, now_ms


@dataclass(frozen=True)
class Candidate:
    id: str
    name: str

    def to_dict(self) -> dict[str, str]:
        return {"id": self.id, "name": self.name}


@dataclass
class ElectionState:
    registered_voters: set[str] = field(default_factory=set)
    voted_users: set[str] = field(default_factory=set)
    is_election_open: bool = False
    candidates: list[Candidate] = field(default_factory=list)

    def has_candidate(self, candidate_id: str) -> bool:
        return any(c.id == candidate_id for c in self.candidates)

    def to_record(self) -> dict[str, Any]:
        """Snapshot for the persistence gateway."""
        return {
            "registeredVoters": sorted(self.registered_voters),
            "votedUsers": sorted(self.voted_users),
            "candidates": [c.to_dict() for c in self.candidates],
            "isElectionOpen": self.is_election_open,
            "lastUpdated": now_ms(),
        }

    @classmethod
    def from_record(cls, record: dict[str, Any], candidates: list[Candidate]) -> "ElectionState":
        """Restore from a stored snapshot.

        The candidate roster is seeded at startup, so stored candidates
        are ignored. Fields with the wrong shape keep their defaults.
        """
        if not isinstance(record, dict):
            raise ValueError("Election state record is not an object")
        state = cls(candidates=list(candidates))
        registered = record.get("registeredVoters")
        if isinstance(registered, list):
            state.registered_voters = {str(v) for v in registered}
        voted = record.get("votedUsers")
        if isinstance(voted, list):
            state.voted_users = {str(v) for v in voted}
        is_open = record.get("isElectionOpen")
        if isinstance(is_open, bool):
            state.is_election_open = is_open
        return state


def replay_voted_users(blocks: Iterable[Block]) -> set[str]:
    """Rebuild the cast-vote set from sealed vote transactions."""
    voted: set[str] = set()
    for block in blocks:
        for tx in block.vote_transactions():
            voted.add(tx.voter_id)
    return voted

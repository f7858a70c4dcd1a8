"""BallotChain v1.0 - Chain core: blocks, election state and the ledger engine."""

from ballotchain.chain.block import Block, RewardTransaction, VoteTransaction, create_genesis_block
from ballotchain.chain.ledger import ElectionLedger
from ballotchain.chain.state import Candidate, ElectionState

__all__ = [
    "Block",
    "Candidate",
    "ElectionLedger",
    "ElectionState",
    "RewardTransaction",
    "VoteTransaction",
    "create_genesis_block",
]

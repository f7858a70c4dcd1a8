"""
BallotChain - Hash-Chained Election Ledger.

Records election votes as transactions sealed into proof-of-work blocks,
enforces one vote per registered voter and exposes tallies.
"""

__version__ = "1.0.0"
__author__ = "Borja Moskv"

from ballotchain.chain.ledger import ElectionLedger

__all__ = ["ElectionLedger", "__version__"]

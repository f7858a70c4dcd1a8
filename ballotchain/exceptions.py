"""
BallotChain v1.0 - Custom Exceptions.

Typed error hierarchy for the ledger. Admission errors carry a stable
``kind`` so API and CLI callers can report the rejection reason
without parsing messages.
"""


class BallotChainError(Exception):
    """Base exception for all BallotChain errors."""


class AdmissionError(BallotChainError):
    """Raised when a vote is rejected at admission time."""

    kind = "admission_error"


class InvalidInput(AdmissionError):
    """Raised when a required field is missing or malformed."""

    kind = "invalid_input"


class ElectionClosed(AdmissionError):
    """Raised when a vote arrives while the election is closed."""

    kind = "election_closed"


class UnknownCandidate(AdmissionError):
    """Raised when the candidate id is not on the roster."""

    kind = "unknown_candidate"


class VoterNotRegistered(AdmissionError):
    """Raised when the voter is not eligible to vote."""

    kind = "voter_not_registered"


class DuplicateVote(AdmissionError):
    """Raised when the voter already has a sealed or pending vote."""

    kind = "duplicate_vote"


class PersistenceUnavailable(BallotChainError):
    """Raised when the persistence gateway is not connected or a read/write fails.

    Internal storage error details are logged, never forwarded to
    API consumers.
    """


class ChainLoadFailure(BallotChainError):
    """Raised when stored blocks or election state cannot be restored."""


class LedgerNotReady(BallotChainError):
    """Raised when the ledger is used before its startup load completes."""

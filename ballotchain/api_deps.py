"""
BallotChain v1.0 - API Dependencies.
Shared dependencies for FastAPI routes.
"""

from __future__ import annotations

from fastapi import Request

from ballotchain.chain.ledger import ElectionLedger
from ballotchain.exceptions import LedgerNotReady


def get_ledger(request: Request) -> ElectionLedger:
    """Inject the ledger built by the app lifespan."""
    ledger = getattr(request.app.state, "ledger", None)
    if ledger is None or not ledger.is_loaded:
        raise LedgerNotReady("Ledger is loading. Please try again shortly.")
    return ledger

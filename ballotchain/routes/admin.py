"""
BallotChain v1.0 - Admin Router.
Voter registration and election open/close.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException

from ballotchain.api_deps import get_ledger
from ballotchain.chain.ledger import ElectionLedger
from ballotchain.models import (
    ElectionStatusRequest,
    ElectionStatusResponse,
    MessageResponse,
    RegisterVoterRequest,
)

router = APIRouter(prefix="/admin", tags=["admin"])
logger = logging.getLogger("ballotchain.api.admin")


@router.post("/register-voter", response_model=MessageResponse)
async def register_voter(
    req: RegisterVoterRequest, ledger: ElectionLedger = Depends(get_ledger)
) -> MessageResponse:
    registered = await ledger.register_voter(req.voterId)
    if not registered:
        logger.info("Registration conflict for voter %s", req.voterId)
        raise HTTPException(status_code=409, detail=f"Voter '{req.voterId}' is already registered.")
    return MessageResponse(message=f"Voter '{req.voterId}' registered successfully.")


@router.post("/set-election-status", response_model=MessageResponse)
async def set_election_status(
    req: ElectionStatusRequest, ledger: ElectionLedger = Depends(get_ledger)
) -> MessageResponse:
    await ledger.set_election_status(req.isOpen)
    return MessageResponse(message=f"Election status set to: {'Open' if req.isOpen else 'Closed'}.")


@router.get("/election-status", response_model=ElectionStatusResponse)
async def election_status(ledger: ElectionLedger = Depends(get_ledger)) -> ElectionStatusResponse:
    return ElectionStatusResponse(isElectionOpen=ledger.get_election_status())


@router.get("/registered-voters")
async def registered_voters(ledger: ElectionLedger = Depends(get_ledger)) -> list[str]:
    return ledger.get_registered_voters()

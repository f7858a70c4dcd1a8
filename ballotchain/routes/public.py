"""
BallotChain v1.0 - Public Router.
Chain inspection, vote submission, mining and results.
"""

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from ballotchain import config
from ballotchain.api_deps import get_ledger
from ballotchain.chain.ledger import ElectionLedger
from ballotchain.models import (
    CandidateResult,
    ChainValidityResponse,
    MineRequest,
    MineResponse,
    VoteRequest,
    VoteResponse,
)

logger = logging.getLogger("ballotchain.api.public")
router = APIRouter(tags=["election"])


@router.get("/blockchain")
async def get_blockchain(ledger: ElectionLedger = Depends(get_ledger)) -> list[dict]:
    return ledger.get_chain()


@router.get("/transactions/pending")
async def get_pending(ledger: ElectionLedger = Depends(get_ledger)) -> list[dict]:
    return ledger.get_pending_transactions()


@router.post("/vote", response_model=VoteResponse, status_code=201)
async def cast_vote(req: VoteRequest, ledger: ElectionLedger = Depends(get_ledger)):
    """Admit a vote and, with auto-seal on, wait until it is sealed and persisted.

    201 means the vote is in a persisted block. 202 means it is admitted
    and waiting in the pending pool for the next /mine.
    """
    if not config.AUTO_SEAL:
        await ledger.submit_vote(req.voterId, req.candidateId)
        body = VoteResponse(message="Vote accepted. Pending until the next block is mined.", status="pending")
        return JSONResponse(status_code=202, content=body.model_dump())

    _, block = await ledger.submit_and_seal(req.voterId, req.candidateId, config.MINER_ADDRESS)
    return VoteResponse(message="Vote recorded in a sealed block.", blockIndex=block.index, blockHash=block.hash)


@router.post("/mine", response_model=MineResponse)
async def mine(req: MineRequest | None = None, ledger: ElectionLedger = Depends(get_ledger)) -> MineResponse:
    miner = req.minerAddress if req else None
    block = await ledger.seal_pending(miner)
    if block is None:
        return MineResponse(message="No pending transactions to mine.")
    return MineResponse(message="Block successfully mined!", latestBlock=block.to_dict())


@router.get("/election/results", response_model=dict[str, CandidateResult])
async def election_results(ledger: ElectionLedger = Depends(get_ledger)) -> dict:
    return ledger.get_results()


@router.get("/candidates")
async def candidates(ledger: ElectionLedger = Depends(get_ledger)) -> list[dict]:
    return ledger.get_candidates()


@router.get("/voted-users")
async def voted_users(ledger: ElectionLedger = Depends(get_ledger)) -> list[str]:
    return ledger.get_voted_users()


@router.get("/blockchain/isvalid", response_model=ChainValidityResponse)
async def chain_is_valid(ledger: ElectionLedger = Depends(get_ledger)) -> ChainValidityResponse:
    report = ledger.verify_chain()
    if not report["valid"]:
        logger.error("Chain integrity violation at block %s: %s", report["first_invalid_index"], report["reason"])
    return ChainValidityResponse(
        isValid=report["valid"],
        blocksChecked=report["blocks_checked"],
        firstInvalidIndex=report["first_invalid_index"],
        reason=report["reason"],
    )

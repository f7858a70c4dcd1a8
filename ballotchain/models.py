"""
BallotChain v1.0 - API Models.
Centralized Pydantic models for request/response validation.
"""

from typing import Any

from pydantic import BaseModel, Field


class VoteRequest(BaseModel):
    voterId: str | None = Field(None, max_length=200, description="Registered voter id")
    candidateId: str | None = Field(None, max_length=200, description="Candidate id from /candidates")


class VoteResponse(BaseModel):
    message: str
    status: str = "recorded"
    blockIndex: int | None = None
    blockHash: str | None = None


class MineRequest(BaseModel):
    minerAddress: str | None = Field(None, max_length=200, description="Reward recipient")


class MineResponse(BaseModel):
    message: str
    latestBlock: dict[str, Any] | None = None


class RegisterVoterRequest(BaseModel):
    voterId: str | None = Field(None, max_length=200)


class ElectionStatusRequest(BaseModel):
    isOpen: Any = Field(None, description="true opens, false closes the election")


class ElectionStatusResponse(BaseModel):
    isElectionOpen: bool


class CandidateResult(BaseModel):
    name: str
    votes: int


class ChainValidityResponse(BaseModel):
    isValid: bool
    blocksChecked: int
    firstInvalidIndex: int | None = None
    reason: str | None = None


class MessageResponse(BaseModel):
    message: str

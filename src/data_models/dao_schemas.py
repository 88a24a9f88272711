from typing import List, Optional

from pydantic import BaseModel, Field

from src.data_models.relay_schemas import (
    LifecycleState,
    Proposal,
    ProposalCreationResult,
    RewardResult,
    TokenGrantResult,
    VoteAttemptResult,
)


class JoinResult(BaseModel):
    success: bool
    address: Optional[str] = None
    already_member: bool = False
    grant: Optional[TokenGrantResult] = None
    message: Optional[str] = None


class VoteOutcome(BaseModel):
    vote: VoteAttemptResult
    reward: Optional[RewardResult] = None
    recorded: bool = False


class ProposalSubmission(BaseModel):
    proposal: ProposalCreationResult
    reward: Optional[RewardResult] = None


class ProposalStateResponse(BaseModel):
    proposal_id: str
    state: LifecycleState
    source: str


class ProposalList(BaseModel):
    proposals: List[Proposal] = Field(default_factory=list)


# HTTP request bodies

class JoinRequest(BaseModel):
    user_id: str = Field(min_length=1, max_length=64)
    pin: str


class VoteRequest(BaseModel):
    user_id: str = Field(min_length=1, max_length=64)
    pin: str
    proposal_id: str
    vote_type: int


class CreateProposalRequest(BaseModel):
    user_id: str = Field(min_length=1, max_length=64)
    title: str = Field(min_length=1, max_length=200)
    description: str = Field(default="", max_length=10000)


class DelegateRequest(BaseModel):
    user_id: str = Field(min_length=1, max_length=64)
    pin: str
    delegatee: Optional[str] = None


class HelpRequest(BaseModel):
    topic: str = Field(default="", max_length=200)


class HelpResponse(BaseModel):
    text: str



class MentionRequest(BaseModel):
    message: str = Field(min_length=1, max_length=2000)
    context: str = Field(default="", max_length=4000)


class MemberVote(BaseModel):
    proposal_id: str
    vote_type: int
    vote_timestamp: int
    tx_hash: Optional[str] = None


class MemberVoteHistory(BaseModel):
    user_id: str
    votes: List[MemberVote] = Field(default_factory=list)


class MemberBalance(BaseModel):
    user_id: str
    address: str
    balance: str
    raw: str

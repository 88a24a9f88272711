"""
Data contracts for the governance relay.

Enumerations mirror the deployed Governor/ERC20Votes ABI exactly: the ordinal
of ``LifecycleState`` and the integer value of ``VoteType`` are what the chain
returns and expects.
"""
from __future__ import annotations

from enum import Enum, IntEnum
from typing import Dict, FrozenSet, List, Literal, Optional, Set

from pydantic import BaseModel, Field


class LifecycleState(str, Enum):
    PENDING = "Pending"
    ACTIVE = "Active"
    CANCELED = "Canceled"
    DEFEATED = "Defeated"
    SUCCEEDED = "Succeeded"
    QUEUED = "Queued"
    EXPIRED = "Expired"
    EXECUTED = "Executed"
    UNKNOWN = "Unknown"


# Chain order of IGovernor.ProposalState
PROPOSAL_STATE_ORDINALS = (
    LifecycleState.PENDING,
    LifecycleState.ACTIVE,
    LifecycleState.CANCELED,
    LifecycleState.DEFEATED,
    LifecycleState.SUCCEEDED,
    LifecycleState.QUEUED,
    LifecycleState.EXPIRED,
    LifecycleState.EXECUTED,
)


def map_state(ordinal) -> LifecycleState:
    """Map a raw ``state()`` ordinal to its named state; anything else is ``Unknown``."""
    if isinstance(ordinal, bool):
        return LifecycleState.UNKNOWN
    try:
        index = int(ordinal)
    except (TypeError, ValueError):
        return LifecycleState.UNKNOWN
    if index != ordinal and not isinstance(ordinal, str):
        # Reject 1.5 and friends rather than silently truncating
        return LifecycleState.UNKNOWN
    if 0 <= index < len(PROPOSAL_STATE_ORDINALS):
        return PROPOSAL_STATE_ORDINALS[index]
    return LifecycleState.UNKNOWN


_SUCCESSORS: Dict[LifecycleState, FrozenSet[LifecycleState]] = {
    LifecycleState.PENDING: frozenset({LifecycleState.ACTIVE, LifecycleState.CANCELED}),
    LifecycleState.ACTIVE: frozenset({
        LifecycleState.SUCCEEDED, LifecycleState.DEFEATED, LifecycleState.CANCELED,
    }),
    LifecycleState.SUCCEEDED: frozenset({
        LifecycleState.QUEUED, LifecycleState.EXECUTED, LifecycleState.EXPIRED, LifecycleState.CANCELED,
    }),
    LifecycleState.QUEUED: frozenset({
        LifecycleState.EXECUTED, LifecycleState.EXPIRED, LifecycleState.CANCELED,
    }),
}


def reachable_states(state: LifecycleState) -> Set[LifecycleState]:
    """All states reachable from ``state`` in one or more forward steps."""
    seen: Set[LifecycleState] = set()
    frontier = list(_SUCCESSORS.get(state, ()))
    while frontier:
        nxt = frontier.pop()
        if nxt in seen:
            continue
        seen.add(nxt)
        frontier.extend(_SUCCESSORS.get(nxt, ()))
    return seen


def is_forward_transition(old: Optional[LifecycleState], new: LifecycleState) -> bool:
    """True if moving from ``old`` to ``new`` respects the monotonic lifecycle.

    A poller may miss intermediate states, so multi-step jumps count as forward.
    ``Unknown`` is never a valid destination.
    """
    if new == LifecycleState.UNKNOWN:
        return False
    if old is None or old == LifecycleState.UNKNOWN:
        return True
    return new in reachable_states(old)


class VoteType(IntEnum):
    AGAINST = 0
    FOR = 1
    ABSTAIN = 2


class VoteMethod(str, Enum):
    META_TRANSACTION = "meta-transaction"
    DIRECT_USER_VOTE = "direct-user-vote"
    ADMIN_ASSISTED = "admin-assisted"
    ADMIN_DIRECT_VOTE = "admin-direct-vote"
    VALIDATION = "validation"
    ALL_METHODS_FAILED = "all-methods-failed"


class VoteAttemptResult(BaseModel):
    """Outcome of one ``VoteRelay.cast_vote`` call. Not persisted."""
    success: bool
    method: VoteMethod
    tx_hash: Optional[str] = None
    block_number: Optional[int] = None
    error: Optional[str] = None
    warning_message: Optional[str] = None
    # Broadcast but not confirmed within the timeout; may still land later
    pending: bool = False


class ValidationFailure(str, Enum):
    INVALID_STATE = "InvalidState"
    ALREADY_VOTED = "AlreadyVoted"
    NO_VOTING_POWER = "NoVotingPower"
    UNKNOWN_STATE = "UnknownState"


class ValidationResult(BaseModel):
    valid: bool
    failure: Optional[ValidationFailure] = None
    message: Optional[str] = None
    state: Optional[LifecycleState] = None
    snapshot_block: Optional[int] = None
    voting_power: Optional[int] = None
    # Checks that could not be completed because a chain read failed
    inconclusive_checks: List[str] = Field(default_factory=list)


class DelegationResult(BaseModel):
    success: bool
    method: Optional[str] = None
    tx_hash: Optional[str] = None
    delegation_error: bool = False
    message: Optional[str] = None
    attempts: int = 0
    already_delegated: bool = False


class VoteTally(BaseModel):
    """Raw token-decimal-scaled vote totals."""
    for_votes: int = 0
    against_votes: int = 0
    abstain_votes: int = 0

    @property
    def total(self) -> int:
        return self.for_votes + self.against_votes + self.abstain_votes


class StateReading(BaseModel):
    state: LifecycleState
    source: Literal["primary", "inferred", "unavailable"]


class SubmissionReceipt(BaseModel):
    tx_hash: str
    block_number: Optional[int] = None
    status: bool = True
    pending: bool = False


class Proposal(BaseModel):
    proposal_id: str
    proposer: str = ""
    title: str = ""
    description: str = ""
    description_hash: Optional[str] = None
    targets: List[str] = Field(default_factory=list)
    values: List[int] = Field(default_factory=list)
    calldatas: List[str] = Field(default_factory=list)
    snapshot_block: int = 0
    start_block: int = 0
    end_block: int = 0
    state: LifecycleState = LifecycleState.UNKNOWN
    votes: VoteTally = Field(default_factory=VoteTally)
    created_block: int = 0

    @property
    def short_id(self) -> str:
        return self.proposal_id[:8]


class ProposalCreationResult(BaseModel):
    success: bool
    proposal_id: Optional[str] = None
    tx_hash: Optional[str] = None
    error: Optional[str] = None


class FinalizationResult(BaseModel):
    success: bool
    executed: bool
    tx_hash: Optional[str] = None
    reason: Optional[str] = None
    block_explorer_url: Optional[str] = None


class TokenGrantResult(BaseModel):
    success: bool
    amount: str
    tx_hash: Optional[str] = None
    block_number: Optional[int] = None
    delegation: Optional[DelegationResult] = None
    warning: Optional[str] = None
    error: Optional[str] = None


class RewardResult(BaseModel):
    success: bool
    amount: Optional[str] = None
    tx_hash: Optional[str] = None
    delegation: Optional[DelegationResult] = None
    message: Optional[str] = None
    error: Optional[str] = None

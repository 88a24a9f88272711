"""
Pre-flight checks deciding whether a vote can possibly succeed.

Only the voter's address is needed; no key is ever unlocked here. The
already-voted dry run is an optimisation: two concurrent attempts can both
pass it, and the chain's revert on the real submission stays authoritative.
"""

from src.data_models.relay_schemas import (
    LifecycleState,
    ValidationFailure,
    ValidationResult,
    map_state,
)
from src.relay.chain_reader import ChainReader
from src.relay.errors import (
    ALREADY_VOTED_MESSAGE,
    NO_VOTING_POWER_MESSAGE,
    NOT_ACTIVE_MESSAGE,
    UNKNOWN_STATE_MESSAGE,
    ChainReadError,
    is_already_voted_error,
)
from src.utils.logger import logger


class VoteValidator:

    def __init__(self, reader: ChainReader):
        self.reader = reader

    async def validate(self, proposal_id, voter_address: str) -> ValidationResult:
        inconclusive = []
        state = None

        # 1. Proposal must be Active
        try:
            ordinal = await self.reader.get_proposal_state(proposal_id)
        except ChainReadError as e:
            logger.warning("VoteValidator: state read for %s inconclusive: %s", proposal_id, e)
            inconclusive.append("state")
        else:
            state = map_state(ordinal)
            if state == LifecycleState.UNKNOWN:
                logger.warning("VoteValidator: proposal %s returned unrecognised state %r", proposal_id, ordinal)
                return ValidationResult(
                    valid=False, failure=ValidationFailure.UNKNOWN_STATE,
                    message=UNKNOWN_STATE_MESSAGE, state=state,
                )
            if state != LifecycleState.ACTIVE:
                logger.info("VoteValidator: proposal %s is %s, rejecting vote", proposal_id, state.value)
                return ValidationResult(
                    valid=False, failure=ValidationFailure.INVALID_STATE,
                    message=f"{NOT_ACTIVE_MESSAGE} (current state: {state.value})", state=state,
                )

        # 2. Dry-run castVote as the voter
        try:
            await self.reader.simulate_vote(proposal_id, voter_address)
        except ChainReadError as e:
            if is_already_voted_error(e):
                logger.info("VoteValidator: %s already voted on %s", voter_address, proposal_id)
                return ValidationResult(
                    valid=False, failure=ValidationFailure.ALREADY_VOTED,
                    message=ALREADY_VOTED_MESSAGE, state=state,
                )
            logger.info("VoteValidator: vote simulation error not related to already voted: %s", e)

        # 3. Voting power at the snapshot block, not the current balance
        snapshot_block = None
        voting_power = None
        try:
            snapshot_block = await self.reader.get_snapshot_block(proposal_id)
            voting_power = await self.reader.get_voting_power_at(voter_address, snapshot_block)
        except ChainReadError as e:
            logger.warning("VoteValidator: voting power check for %s inconclusive: %s", voter_address, e)
            inconclusive.append("voting_power")
        else:
            logger.info(
                "VoteValidator: %s had %s voting power at snapshot block %s",
                voter_address, voting_power, snapshot_block,
            )
            if int(voting_power) == 0:
                return ValidationResult(
                    valid=False, failure=ValidationFailure.NO_VOTING_POWER,
                    message=NO_VOTING_POWER_MESSAGE, state=state,
                    snapshot_block=snapshot_block, voting_power=0,
                )

        return ValidationResult(
            valid=True, state=state, snapshot_block=snapshot_block,
            voting_power=voting_power, inconclusive_checks=inconclusive,
        )

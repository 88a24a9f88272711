"""
Participation rewards paid in governance tokens.

Rewards never block the action that earned them: every failure is returned
as ``RewardResult(success=False)``.
"""

from decimal import Decimal, InvalidOperation

from src.data_models.relay_schemas import LifecycleState, RewardResult
from src.relay.proposal_lifecycle import ProposalLifecycle
from src.relay.token_grants import TokenGrantService
from src.utils.logger import logger


def _multiply(amount: str, multiplier: str) -> str:
    try:
        product = Decimal(str(amount)) * Decimal(str(multiplier))
    except InvalidOperation:
        logger.warning("Rewards: invalid multiplier %r for amount %r, using base amount", multiplier, amount)
        return str(amount)
    return format(product.normalize(), "f")


class RewardService:

    def __init__(
        self,
        grants: TokenGrantService,
        lifecycle: ProposalLifecycle,
        vote_reward: str = "1",
        proposal_reward: str = "10",
        approved_multiplier: str = "2",
    ):
        self.grants = grants
        self.lifecycle = lifecycle
        self.vote_reward = vote_reward
        self.proposal_reward = proposal_reward
        self.approved_multiplier = approved_multiplier

    async def reward_for_voting(self, address: str) -> RewardResult:
        logger.info("Rewards: rewarding %s for voting with %s tokens", address, self.vote_reward)
        grant = await self.grants.transfer_tokens(address, self.vote_reward)
        if not grant.success:
            return RewardResult(success=False, error=grant.error)
        return RewardResult(success=True, amount=self.vote_reward, tx_hash=grant.tx_hash)

    async def reward_for_proposal(self, address: str, approved: bool = False) -> RewardResult:
        amount = _multiply(self.proposal_reward, self.approved_multiplier) if approved else self.proposal_reward
        logger.info("Rewards: rewarding %s for a proposal with %s tokens (approved=%s)", address, amount, approved)
        grant = await self.grants.grant_with_delegation(address, amount)
        if not grant.success:
            return RewardResult(success=False, error=grant.error)
        return RewardResult(
            success=True, amount=amount, tx_hash=grant.tx_hash, delegation=grant.delegation, message=grant.warning,
        )

    async def process_proposal_completion_rewards(self, proposal_id, proposer: str) -> RewardResult:
        try:
            state = await self.lifecycle.get_state(proposal_id)
        except Exception as e:
            logger.error("Rewards: could not read state of %s: %s", proposal_id, e)
            return RewardResult(success=False, error="Proposal state unavailable")
        if state != LifecycleState.SUCCEEDED:
            return RewardResult(success=True, message="No additional rewards - proposal did not succeed")
        logger.info("Rewards: proposal %s was approved, rewarding proposer %s with bonus", proposal_id, proposer)
        return await self.reward_for_proposal(proposer, approved=True)

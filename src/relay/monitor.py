"""
Proposal monitor: a polling diff loop over on-chain proposal state.

Each pass lists recent proposals, compares every one with the cached state,
updates the cache for forward transitions only, and announces significant
transitions to the community. One bad proposal never stops a pass, and one
bad pass never stops the loop.
"""

import asyncio
from typing import Optional

from src.data_models.relay_schemas import LifecycleState, Proposal, is_forward_transition
from src.relay.errors import ChainReadError
from src.relay.proposals import ProposalService
from src.relay.rewards import RewardService
from src.relay.token_grants import from_base_units
from src.utils.logger import logger

SIGNIFICANT_TRANSITIONS = {
    None: {LifecycleState.ACTIVE},
    LifecycleState.ACTIVE: {LifecycleState.SUCCEEDED, LifecycleState.DEFEATED, LifecycleState.EXPIRED},
    LifecycleState.SUCCEEDED: {LifecycleState.EXECUTED, LifecycleState.EXPIRED},
}


def is_significant_transition(old: Optional[LifecycleState], new: LifecycleState) -> bool:
    return new in SIGNIFICANT_TRANSITIONS.get(old, set())


def _parse_state(value) -> Optional[LifecycleState]:
    if value is None:
        return None
    try:
        return LifecycleState(value)
    except ValueError:
        return None


class ProposalMonitor:

    def __init__(self, proposals: ProposalService, store, notifier=None,
                 rewards: Optional[RewardService] = None, bot_username: str = ""):
        self.proposals = proposals
        self.store = store
        self.notifier = notifier
        self.rewards = rewards
        self.bot_username = bot_username
        self._task: Optional[asyncio.Task] = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self, interval: float = 300) -> asyncio.Task:
        if self.is_running:
            logger.info("ProposalMonitor: already running")
            return self._task
        logger.info("ProposalMonitor: starting with interval %ss", interval)
        self._task = asyncio.create_task(self._run(interval))
        return self._task

    async def stop(self) -> None:
        if not self.is_running:
            return
        logger.info("ProposalMonitor: stopping")
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None

    async def _run(self, interval: float) -> None:
        while True:
            try:
                await self.check_once()
            except Exception as e:
                logger.error("ProposalMonitor: pass failed: %s", e, exc_info=True)
            await asyncio.sleep(interval)

    async def check_once(self) -> int:
        """Run one diff pass. Returns the number of notifications sent."""
        proposals = await self.proposals.list_proposals()
        if not proposals:
            logger.debug("ProposalMonitor: no proposals found to monitor")
            return 0
        sent = 0
        for proposal in proposals:
            try:
                if await self._check_proposal(proposal):
                    sent += 1
            except Exception as e:
                logger.error("ProposalMonitor: error checking proposal %s: %s", proposal.proposal_id, e)
        logger.info("ProposalMonitor: checked %d proposals, %d notifications", len(proposals), sent)
        return sent

    async def _check_proposal(self, proposal: Proposal) -> bool:
        new = proposal.state
        if new == LifecycleState.UNKNOWN:
            return False
        old = _parse_state(await asyncio.to_thread(self.store.get_cached_state, proposal.proposal_id))
        if old == new:
            return False
        if old is not None and not is_forward_transition(old, new):
            logger.warning(
                "ProposalMonitor: ignoring backward reading %s -> %s for %s", old.value, new.value, proposal.proposal_id,
            )
            return False

        await asyncio.to_thread(self.store.update_proposal_cache, proposal)
        logger.info(
            "ProposalMonitor: proposal %s moved %s -> %s",
            proposal.proposal_id, old.value if old else None, new.value,
        )

        # A first sighting (empty or wiped cache) is history, not a transition
        if new == LifecycleState.SUCCEEDED and old is not None and self.rewards is not None and proposal.proposer:
            reward = await self.rewards.process_proposal_completion_rewards(proposal.proposal_id, proposal.proposer)
            if not reward.success:
                logger.warning("ProposalMonitor: proposer reward failed for %s: %s", proposal.proposal_id, reward.error)

        if not is_significant_transition(old, new):
            return False
        message = await self.format_message(proposal, old)
        if message and self.notifier is not None:
            await self.notifier.send(message)
            return True
        return False

    async def _format_votes(self, proposal: Proposal) -> str:
        reader = self.proposals.reader
        try:
            tally = await reader.get_vote_tally(proposal.proposal_id)
            decimals = await reader.token_decimals()
        except ChainReadError as e:
            logger.warning("ProposalMonitor: tally unavailable for %s: %s", proposal.proposal_id, e)
            return ""

        return (
            "\n\n*Final Votes:*\n"
            f"For: {from_base_units(tally.for_votes, decimals)}\n"
            f"Against: {from_base_units(tally.against_votes, decimals)}\n"
            f"Abstain: {from_base_units(tally.abstain_votes, decimals)}"
        )

    async def format_message(self, proposal: Proposal, old: Optional[LifecycleState]) -> Optional[str]:
        short_id = proposal.short_id
        title = proposal.title or f"Proposal #{short_id}"
        head = f"*{title}* (ID: `{short_id}`)"
        state = proposal.state

        if state == LifecycleState.ACTIVE and old is None:
            via = f"\n\nUse @{self.bot_username} to cast your vote." if self.bot_username else ""
            return f"*New Proposal Available for Voting*\n\n{head} is now open for voting!{via}"
        if state == LifecycleState.SUCCEEDED:
            votes = await self._format_votes(proposal)
            return (
                f"*Proposal Approved!*\n\n{head} has passed!{votes}\n\n"
                "The proposal is now ready to be executed by a DAO admin."
            )
        if state == LifecycleState.DEFEATED:
            votes = await self._format_votes(proposal)
            return f"*Proposal Rejected*\n\n{head} did not receive enough votes to pass.{votes}"
        if state == LifecycleState.EXECUTED:
            return (
                f"*Proposal Executed*\n\n{head} has been executed and its changes are now in effect!\n\n"
                "Thank you to all members who participated in this governance decision."
            )
        if state == LifecycleState.EXPIRED:
            votes = await self._format_votes(proposal)
            return f"*Proposal Expired*\n\n{head} has expired without being executed.{votes}"
        return None

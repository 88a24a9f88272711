"""
Member-facing DAO operations.

Composes the relay runtime, the wallet vault, the governance store and the
help assistant into the handful of actions a chat front end needs. The
store is bookkeeping only: the chain decides whether a vote counts, and a
store failure never turns a confirmed vote into an error.
"""

import asyncio
from typing import Optional

from src.config.common_settings import MIN_PROPOSAL_TOKENS
from src.data_models.dao_schemas import (
    JoinResult,
    MemberBalance,
    MemberVote,
    MemberVoteHistory,
    ProposalStateResponse,
    ProposalSubmission,
    VoteOutcome,
)
from src.data_models.relay_schemas import (
    DelegationResult,
    Proposal,
    ProposalCreationResult,
    VoteAttemptResult,
    VoteMethod,
)
from src.relay.chain_reader import parse_proposal_id
from src.relay.errors import ChainReadError
from src.relay.runtime import RelayRuntime
from src.relay.token_grants import from_base_units, to_base_units
from src.services.governance_store import GovernanceStore
from src.services.help_assistant import HelpAssistant
from src.services.wallet_vault import InvalidPinError, WalletExistsError, WalletNotFoundError, WalletVault
from src.utils.logger import logger

NOT_A_MEMBER_MESSAGE = "You need to join the DAO first"


class DaoService:

    def __init__(self, runtime: RelayRuntime, store: GovernanceStore, vault: WalletVault,
                 help_assistant: Optional[HelpAssistant] = None, min_proposal_tokens=MIN_PROPOSAL_TOKENS):
        self.runtime = runtime
        self.store = store
        self.vault = vault
        self.help_assistant = help_assistant or HelpAssistant()
        self.min_proposal_tokens = min_proposal_tokens

    async def _unlockable_handle(self, user_id, pin):
        # Key derivation runs off the event loop
        await asyncio.to_thread(self.vault.verify_pin, user_id, pin)
        return await asyncio.to_thread(self.vault.key_handle, user_id, pin)

    async def join_dao(self, user_id, pin) -> JoinResult:
        if await asyncio.to_thread(self.vault.has_wallet, user_id):
            address = await asyncio.to_thread(self.vault.get_address, user_id)
            return JoinResult(success=True, address=address, already_member=True,
                              message="You are already a member of the DAO")
        try:
            address = await asyncio.to_thread(self.vault.create_wallet, user_id, pin)
        except (InvalidPinError, WalletExistsError, WalletNotFoundError) as e:
            return JoinResult(success=False, message=str(e))

        try:
            await asyncio.to_thread(self.store.add_user, user_id, address)
        except Exception as e:
            logger.error("DaoService: could not store member %s: %s", user_id, e)

        handle = await asyncio.to_thread(self.vault.key_handle, user_id, pin, address)
        grant = await self.runtime.grants.send_welcome_tokens(address, user_id, key_handle=handle)
        if not grant.success:
            logger.warning("DaoService: welcome grant for %s failed: %s", user_id, grant.error)
        return JoinResult(success=True, address=address, grant=grant, message=grant.warning or grant.error)

    async def cast_vote(self, user_id, pin, proposal_id, vote_type) -> VoteOutcome:
        try:
            handle = await self._unlockable_handle(user_id, pin)
        except WalletNotFoundError:
            return VoteOutcome(vote=VoteAttemptResult(
                success=False, method=VoteMethod.VALIDATION, error=NOT_A_MEMBER_MESSAGE,
            ))
        except InvalidPinError as e:
            return VoteOutcome(vote=VoteAttemptResult(success=False, method=VoteMethod.VALIDATION, error=str(e)))

        result = await self.runtime.vote_relay.cast_vote(proposal_id, handle, vote_type)
        outcome = VoteOutcome(vote=result)
        if not result.success:
            return outcome

        try:
            outcome.recorded = await asyncio.to_thread(
                self.store.track_user_vote, user_id, parse_proposal_id(proposal_id), int(vote_type), result.tx_hash,
            )
        except Exception as e:
            logger.error("DaoService: vote by %s on %s confirmed but not recorded: %s", user_id, proposal_id, e)
            return outcome

        # Reward only the first recorded vote for the pair
        if outcome.recorded:
            outcome.reward = await self.runtime.rewards.reward_for_voting(handle.address)
        return outcome

    async def _proposal_token_shortfall(self, address: str) -> Optional[str]:
        reader = self.runtime.reader
        try:
            decimals = await reader.token_decimals()
            raw = await reader.balance_of(address)
        except ChainReadError as e:
            logger.warning("DaoService: balance check for %s failed: %s", address, e)
            return "Could not check your token balance. Please try again later."
        if raw >= to_base_units(self.min_proposal_tokens, decimals):
            return None
        return (
            f"You need at least {self.min_proposal_tokens} tokens to create a proposal. "
            f"Current balance: {from_base_units(raw, decimals)} tokens."
        )

    async def create_proposal(self, user_id, title: str, description: str) -> ProposalSubmission:
        try:
            address = await asyncio.to_thread(self.vault.get_address, user_id)
        except WalletNotFoundError:
            return ProposalSubmission(proposal=ProposalCreationResult(success=False, error=NOT_A_MEMBER_MESSAGE))

        shortfall = await self._proposal_token_shortfall(address)
        if shortfall:
            return ProposalSubmission(proposal=ProposalCreationResult(success=False, error=shortfall))

        created = await self.runtime.proposals.create_proposal(title, description)
        submission = ProposalSubmission(proposal=created)
        if created.success:
            submission.reward = await self.runtime.rewards.reward_for_proposal(address)
        return submission

    async def delegate(self, user_id, pin, delegatee: Optional[str] = None) -> DelegationResult:
        try:
            handle = await self._unlockable_handle(user_id, pin)
        except WalletNotFoundError:
            return DelegationResult(success=False, delegation_error=True, message=NOT_A_MEMBER_MESSAGE)
        except InvalidPinError as e:
            return DelegationResult(success=False, delegation_error=True, message=str(e))
        return await self.runtime.delegation.delegate(handle.address, delegatee or handle.address, key_handle=handle)

    async def get_proposal_state(self, proposal_id) -> ProposalStateResponse:
        pid = parse_proposal_id(proposal_id)
        reading = await self.runtime.lifecycle.read_state(pid)
        return ProposalStateResponse(proposal_id=str(pid), state=reading.state, source=reading.source)

    async def get_proposal_info(self, proposal_id) -> Proposal:
        return await self.runtime.proposals.get_proposal_info(proposal_id)

    async def list_active_proposals(self):
        return await self.runtime.proposals.get_active_proposals()

    async def finalize_proposal(self, proposal_id):
        return await self.runtime.proposals.finalize_proposal(proposal_id)

    async def help(self, topic: str) -> str:
        return await self.help_assistant.generate_help(topic)

    async def get_member_votes(self, user_id) -> MemberVoteHistory:
        rows = await asyncio.to_thread(self.store.get_user_votes, user_id)
        return MemberVoteHistory(user_id=str(user_id), votes=[MemberVote(**row) for row in rows])

    async def answer_group_mention(self, message: str, context: str = "") -> str:
        return await self.help_assistant.answer_group_mention(message, context)

    async def get_balance(self, user_id) -> MemberBalance:
        """Token balance of a member's wallet. Raises ``WalletNotFoundError`` for non-members."""
        address = await asyncio.to_thread(self.vault.get_address, user_id)
        reader = self.runtime.reader
        decimals = await reader.token_decimals()
        raw = await reader.balance_of(address)
        return MemberBalance(user_id=str(user_id), address=address, balance=from_base_units(raw, decimals), raw=str(raw))

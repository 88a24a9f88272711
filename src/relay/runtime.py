"""
Process-wide relay components.

One chain connection, one relay wallet and one reader per deployment. Built
lazily from ``RelayConfig`` so importing the package needs no chain settings.
"""

from dataclasses import dataclass
from typing import Optional

from eth_account import Account
from web3 import AsyncWeb3

from src.config import common_settings
from src.config.relay_config import RelayConfig, get_relay_config
from src.relay.abis import GOVERNOR_ABI, TOKEN_ABI, load_abi
from src.relay.chain_reader import ChainReader
from src.relay.delegation import DelegationExecutor
from src.relay.proposal_lifecycle import ProposalLifecycle
from src.relay.proposals import ProposalService
from src.relay.rewards import RewardService
from src.relay.token_grants import TokenGrantService
from src.relay.transactions import RelayWallet, UserTransactionSender
from src.relay.vote_relay import VoteRelay
from src.relay.vote_validator import VoteValidator
from src.utils.logger import logger


@dataclass
class RelayRuntime:
    reader: ChainReader
    wallet: RelayWallet
    user_sender: UserTransactionSender
    validator: VoteValidator
    delegation: DelegationExecutor
    vote_relay: VoteRelay
    lifecycle: ProposalLifecycle
    proposals: ProposalService
    grants: TokenGrantService
    rewards: RewardService


def build_runtime(config: RelayConfig, w3=None) -> RelayRuntime:
    if w3 is None:
        w3 = AsyncWeb3(AsyncWeb3.AsyncHTTPProvider(config.rpc_url))

    reader = ChainReader(
        w3,
        config.token_address,
        config.governor_address,
        token_abi=load_abi(config.get('token_abi_path'), TOKEN_ABI),
        governor_abi=load_abi(config.get('governor_abi_path'), GOVERNOR_ABI),
    )
    sender_kwargs = dict(
        confirmation_timeout=config.get('confirmation_timeout'),
        gas_buffer_percent=config.get('gas_buffer_percent'),
        fallback_gas_limit=config.get('fallback_gas_limit'),
    )
    wallet = RelayWallet(w3, Account.from_key(config.admin_private_key), **sender_kwargs)
    user_sender = UserTransactionSender(w3, **sender_kwargs)
    validator = VoteValidator(reader)
    delegation = DelegationExecutor(
        reader,
        wallet,
        max_attempts=config.get('delegation_attempts'),
        backoff_seconds=config.get('delegation_backoff'),
        signature_ttl=config.get('delegation_signature_ttl'),
    )
    vote_relay = VoteRelay(
        reader,
        validator,
        wallet,
        user_sender=user_sender,
        enable_direct_user_vote=config.get('enable_direct_user_vote'),
        enable_admin_assisted_vote=config.get('enable_admin_assisted_vote'),
        allow_admin_identity_vote=config.get('allow_admin_identity_vote'),
    )
    lifecycle = ProposalLifecycle(reader)
    proposals = ProposalService(
        reader,
        wallet,
        lifecycle,
        target_address=config.get('target_address'),
        network=config.network,
        lookback_blocks=config.get('proposal_lookback_blocks'),
    )
    grants = TokenGrantService(
        reader,
        wallet,
        delegation,
        dao_admins=common_settings.DAO_ADMINS,
        welcome_tokens=common_settings.WELCOME_TOKENS,
        welcome_admins=common_settings.WELCOME_ADMINS,
    )
    rewards = RewardService(
        grants,
        lifecycle,
        vote_reward=common_settings.VOTE_REWARD_AMOUNT,
        proposal_reward=common_settings.PROPOSAL_REWARD_AMOUNT,
        approved_multiplier=common_settings.APPROVED_PROPOSAL_MULTIPLIER,
    )
    if config.get('allow_admin_identity_vote'):
        logger.warning("RelayRuntime: admin-identity vote fallback is ENABLED; such votes count the relay's power")
    logger.info("RelayRuntime: relay wallet %s, token %s, governor %s", wallet.address, reader.token_address, reader.governor_address)
    return RelayRuntime(
        reader=reader,
        wallet=wallet,
        user_sender=user_sender,
        validator=validator,
        delegation=delegation,
        vote_relay=vote_relay,
        lifecycle=lifecycle,
        proposals=proposals,
        grants=grants,
        rewards=rewards,
    )


_runtime: Optional[RelayRuntime] = None


def get_relay_runtime() -> RelayRuntime:
    """Get the global relay runtime, building it on first use."""
    global _runtime
    if _runtime is None:
        _runtime = build_runtime(get_relay_config())
    return _runtime

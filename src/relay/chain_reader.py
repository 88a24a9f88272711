"""
Read access to the token and governor contracts.

Every read is a network round trip and may run concurrently with anything
else. Failures surface as ``ChainReadError`` so callers can tell a failed
read from a legitimate zero. Contract metadata that cannot change after
deployment (names, decimals, chain id) is cached after the first read.
"""

from typing import Any, Dict, List, Optional, Sequence

from web3 import Web3

from src.data_models.relay_schemas import VoteTally
from src.relay.abis import GOVERNOR_ABI, TOKEN_ABI, has_function
from src.relay.errors import ChainReadError, ValidationError
from src.relay.transactions import ContractCall
from src.utils.logger import logger

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"
UINT256_MAX = 2 ** 256 - 1


def parse_proposal_id(value) -> int:
    """Proposal ids travel as decimal or 0x-hex strings; the chain wants uint256."""
    if isinstance(value, bool):
        raise ValidationError(f"Invalid proposal id: {value!r}")
    if isinstance(value, int):
        parsed = value
    else:
        text = str(value or "").strip()
        try:
            parsed = int(text, 16) if text.lower().startswith("0x") else int(text)
        except ValueError:
            raise ValidationError(f"Invalid proposal id: {text[:80]!r}")
    if not 0 <= parsed <= UINT256_MAX:
        raise ValidationError("Proposal id out of range")
    return parsed


class ChainReader:

    def __init__(
        self,
        w3,
        token_address: str,
        governor_address: str,
        token_abi: Optional[List[Dict[str, Any]]] = None,
        governor_abi: Optional[List[Dict[str, Any]]] = None,
    ):
        self.w3 = w3
        self.token_address = Web3.to_checksum_address(token_address)
        self.governor_address = Web3.to_checksum_address(governor_address)
        self.token_abi = token_abi or TOKEN_ABI
        self.governor_abi = governor_abi or GOVERNOR_ABI
        self.token = w3.eth.contract(address=self.token_address, abi=self.token_abi)
        self.governor = w3.eth.contract(address=self.governor_address, abi=self.governor_abi)
        self._cache: Dict[str, Any] = {}

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    async def _read(self, operation: str, awaitable):
        try:
            return await awaitable
        except Exception as e:
            logger.debug("ChainReader: %s failed: %s", operation, e)
            raise ChainReadError(operation, e) from e

    async def _cached(self, key: str, operation: str, factory):
        if key not in self._cache:
            self._cache[key] = await self._read(operation, factory())
        return self._cache[key]

    def has_token_function(self, name: str) -> bool:
        return has_function(self.token_abi, name)

    def has_governor_function(self, name: str) -> bool:
        return has_function(self.governor_abi, name)

    def token_call(self, fn_name: str, *args) -> ContractCall:
        return ContractCall(self.token, fn_name, tuple(args))

    def governor_call(self, fn_name: str, *args) -> ContractCall:
        return ContractCall(self.governor, fn_name, tuple(args))

    # ------------------------------------------------------------------
    # Network / token
    # ------------------------------------------------------------------
    async def chain_id(self) -> int:
        return await self._cached("chain_id", "eth_chainId", lambda: self.w3.eth.chain_id)

    async def block_number(self) -> int:
        return await self._read("eth_blockNumber", self.w3.eth.block_number)

    async def token_name(self) -> str:
        return await self._cached("token_name", "token.name", lambda: self.token.functions.name().call())

    async def token_decimals(self) -> int:
        return await self._cached("token_decimals", "token.decimals", lambda: self.token.functions.decimals().call())

    async def governor_name(self) -> str:
        return await self._cached("governor_name", "governor.name", lambda: self.governor.functions.name().call())

    async def balance_of(self, account: str) -> int:
        account = Web3.to_checksum_address(account)
        return await self._read("token.balanceOf", self.token.functions.balanceOf(account).call())

    async def token_nonce(self, account: str) -> int:
        account = Web3.to_checksum_address(account)
        return await self._read("token.nonces", self.token.functions.nonces(account).call())

    async def delegates(self, account: str) -> str:
        account = Web3.to_checksum_address(account)
        return await self._read("token.delegates", self.token.functions.delegates(account).call())

    # ------------------------------------------------------------------
    # Governor
    # ------------------------------------------------------------------
    async def get_proposal_state(self, proposal_id: int) -> int:
        """Raw ``state()`` ordinal; map it with ``map_state``."""
        return await self._read("governor.state", self.governor.functions.state(parse_proposal_id(proposal_id)).call())

    async def get_snapshot_block(self, proposal_id: int) -> int:
        return await self._read(
            "governor.proposalSnapshot", self.governor.functions.proposalSnapshot(parse_proposal_id(proposal_id)).call(),
        )

    async def get_voting_power_at(self, account: str, block: int) -> int:
        """Historical voting power at ``block``, never the current balance."""
        account = Web3.to_checksum_address(account)
        return await self._read(
            "governor.getVotes", self.governor.functions.getVotes(account, int(block)).call(),
        )

    async def get_vote_tally(self, proposal_id: int) -> VoteTally:
        against, for_, abstain = await self._read(
            "governor.proposalVotes", self.governor.functions.proposalVotes(parse_proposal_id(proposal_id)).call(),
        )
        return VoteTally(for_votes=for_, against_votes=against, abstain_votes=abstain)

    async def get_proposal_core(self, proposal_id: int) -> Dict[str, Any]:
        """Raw ``proposals()`` struct, used only by the lifecycle inference path."""
        raw = await self._read("governor.proposals", self.governor.functions.proposals(parse_proposal_id(proposal_id)).call())
        _, proposer, _, start_block, end_block, for_votes, against_votes, abstain_votes, canceled, executed = raw
        return {
            "proposer": proposer,
            "start_block": int(start_block),
            "end_block": int(end_block),
            "for_votes": int(for_votes),
            "against_votes": int(against_votes),
            "abstain_votes": int(abstain_votes),
            "canceled": bool(canceled),
            "executed": bool(executed),
        }

    async def simulate_vote(self, proposal_id: int, voter: str, support: int = 1) -> None:
        """Dry-run ``castVote`` as ``voter``. Raises ``ChainReadError`` carrying the revert text."""
        voter = Web3.to_checksum_address(voter)
        await self._read(
            "governor.castVote(dry-run)",
            self.governor.functions.castVote(parse_proposal_id(proposal_id), int(support)).call({"from": voter}),
        )

    async def hash_proposal(
        self, targets: Sequence[str], values: Sequence[int], calldatas: Sequence[bytes], description_hash: bytes,
    ) -> int:
        return await self._read(
            "governor.hashProposal",
            self.governor.functions.hashProposal(list(targets), list(values), list(calldatas), description_hash).call(),
        )

    async def proposal_created_events(self, from_block: int, to_block="latest") -> List[Any]:
        return await self._read(
            "governor.ProposalCreated",
            self.governor.events.ProposalCreated().get_logs(from_block=from_block, to_block=to_block),
        )

"""
Proposal creation, listing, execution and finalisation through the relay wallet.
"""

from typing import Any, List, Optional, Tuple

from web3 import Web3

from src.data_models.relay_schemas import (
    FinalizationResult,
    LifecycleState,
    Proposal,
    ProposalCreationResult,
    SubmissionReceipt,
    VoteTally,
)
from src.relay.chain_reader import ChainReader, parse_proposal_id
from src.relay.errors import ChainReadError, RelayError, ValidationError, sanitize_error
from src.relay.proposal_lifecycle import ProposalLifecycle
from src.relay.transactions import RelayWallet
from src.utils.logger import logger

EXPLORER_URLS = {
    "sepolia": "https://sepolia.etherscan.io",
    "mantleTestnet": "https://explorer.sepolia.mantle.xyz",
    "mantle": "https://explorer.mantle.xyz",
    "goerli": "https://goerli.etherscan.io",
    "mainnet": "https://etherscan.io",
}

TITLE_MARKER = "# "
EXECUTABLE_STATES = (LifecycleState.SUCCEEDED, LifecycleState.QUEUED)


def split_description(blob: str) -> Tuple[str, str]:
    """Split a description blob into ``(title, body)``.

    The title is the first line with a leading ``# `` marker stripped.
    """
    text = (blob or "").strip()
    first, _, rest = text.partition("\n")
    title = first.strip()
    if title.startswith(TITLE_MARKER):
        title = title[len(TITLE_MARKER):].strip()
    elif title.startswith("#"):
        title = title.lstrip("#").strip()
    return title, rest.strip()


def build_description(title: str, body: str) -> str:
    return f"{TITLE_MARKER}{title.strip()}\n\n{(body or '').strip()}"


def explorer_url(network: str, tx_hash: str) -> str:
    base = EXPLORER_URLS.get(network or "", "")
    if not base:
        logger.debug("No block explorer URL configured for network: %s", network)
        return ""
    return f"{base}/tx/{tx_hash}"


class ProposalService:

    def __init__(
        self,
        reader: ChainReader,
        wallet: RelayWallet,
        lifecycle: ProposalLifecycle,
        target_address: Optional[str] = None,
        network: str = "",
        lookback_blocks: int = 10000,
    ):
        self.reader = reader
        self.wallet = wallet
        self.lifecycle = lifecycle
        self.target_address = Web3.to_checksum_address(target_address or reader.token_address)
        self.network = network
        self.lookback_blocks = lookback_blocks

    def explorer_url(self, tx_hash: str) -> str:
        return explorer_url(self.network, tx_hash)

    async def create_proposal(self, title: str, description: str) -> ProposalCreationResult:
        if not title or not title.strip():
            return ProposalCreationResult(success=False, error="A proposal needs a title")

        blob = build_description(title, description)
        targets = [self.target_address]
        values = [0]
        calldatas = [b""]
        try:
            # The id is deterministic, so compute it up front instead of parsing logs
            proposal_id = await self.reader.hash_proposal(targets, values, calldatas, Web3.keccak(text=blob))
            receipt = await self.wallet.submit(self.reader.governor_call("propose", targets, values, calldatas, blob))
        except Exception as e:
            logger.error("ProposalService: failed to create proposal %r: %s", title, e)
            return ProposalCreationResult(success=False, error=sanitize_error(e))

        logger.info("ProposalService: created proposal %s (tx %s)", proposal_id, receipt.tx_hash)
        return ProposalCreationResult(success=True, proposal_id=str(proposal_id), tx_hash=receipt.tx_hash)

    def _from_event(self, event: Any) -> Proposal:
        args = event["args"]
        description = args.get("description", "") or ""
        title, body = split_description(description)
        return Proposal(
            proposal_id=str(args["proposalId"]),
            proposer=args.get("proposer", ""),
            title=title,
            description=body,
            description_hash=Web3.to_hex(Web3.keccak(text=description)),
            targets=list(args.get("targets", [])),
            values=[int(v) for v in args.get("values", [])],
            calldatas=[Web3.to_hex(c) for c in args.get("calldatas", [])],
            start_block=int(args.get("startBlock", 0)),
            end_block=int(args.get("endBlock", 0)),
            snapshot_block=int(args.get("startBlock", 0)),
            created_block=int(event.get("blockNumber") or 0),
        )

    async def list_proposals(self, lookback_blocks: Optional[int] = None) -> List[Proposal]:
        """Proposals created within the lookback window, newest first, each with its state."""
        lookback = self.lookback_blocks if lookback_blocks is None else lookback_blocks
        try:
            current = await self.reader.block_number()
            events = await self.reader.proposal_created_events(max(0, current - lookback))
        except ChainReadError as e:
            logger.error("ProposalService: could not list proposals: %s", e)
            return []

        proposals = []
        for event in events:
            try:
                proposal = self._from_event(event)
            except (KeyError, TypeError, ValueError) as e:
                logger.warning("ProposalService: skipping malformed ProposalCreated event: %s", e)
                continue
            proposal.state = await self.lifecycle.get_state(proposal.proposal_id)
            proposals.append(proposal)
        proposals.sort(key=lambda p: p.created_block, reverse=True)
        return proposals

    async def get_active_proposals(self) -> List[Proposal]:
        return [p for p in await self.list_proposals() if p.state == LifecycleState.ACTIVE]

    async def find_proposal(self, proposal_id) -> Optional[Proposal]:
        wanted = str(parse_proposal_id(proposal_id))
        for proposal in await self.list_proposals():
            if proposal.proposal_id == wanted:
                return proposal
        return None

    async def get_proposal_info(self, proposal_id) -> Proposal:
        pid = parse_proposal_id(proposal_id)
        proposal = await self.find_proposal(pid) or Proposal(proposal_id=str(pid))
        proposal.state = await self.lifecycle.get_state(pid)
        if proposal.state != LifecycleState.PENDING:
            try:
                proposal.votes = await self.reader.get_vote_tally(pid)
            except ChainReadError as e:
                logger.warning("ProposalService: tally unavailable for %s: %s", pid, e)
                proposal.votes = VoteTally()
        return proposal

    async def execute_proposal(self, proposal_id) -> SubmissionReceipt:
        pid = parse_proposal_id(proposal_id)
        state = await self.lifecycle.get_state(pid)
        if state not in EXECUTABLE_STATES:
            raise ValidationError(f"Proposal is in {state.value} state and cannot be executed")
        proposal = await self.find_proposal(pid)
        if proposal is None or not proposal.description_hash:
            raise RelayError("Proposal details cannot be retrieved")

        logger.info("ProposalService: executing proposal %s", pid)
        call = self.reader.governor_call(
            "execute",
            [Web3.to_checksum_address(t) for t in proposal.targets],
            proposal.values,
            [Web3.to_bytes(hexstr=c) for c in proposal.calldatas],
            Web3.to_bytes(hexstr=proposal.description_hash),
        )
        return await self.wallet.submit(call)

    async def finalize_proposal(self, proposal_id) -> FinalizationResult:
        try:
            pid = parse_proposal_id(proposal_id)
        except ValidationError as e:
            return FinalizationResult(success=False, executed=False, reason=str(e))

        state = await self.lifecycle.get_state(pid)
        if state == LifecycleState.EXECUTED:
            return FinalizationResult(success=True, executed=False, reason="Proposal has already been executed")
        if state not in EXECUTABLE_STATES:
            return FinalizationResult(
                success=True, executed=False, reason=f"Proposal is in {state.value} state and cannot be executed",
            )

        try:
            receipt = await self.execute_proposal(pid)
        except Exception as e:
            logger.error("ProposalService: failed to execute proposal %s: %s", pid, e)
            # Someone else may have executed it in the meantime
            if await self.lifecycle.get_state(pid) == LifecycleState.EXECUTED:
                return FinalizationResult(
                    success=True, executed=True, reason="Proposal was already executed by someone else",
                )
            return FinalizationResult(
                success=False, executed=False, reason=f"Failed to execute proposal: {sanitize_error(e)}",
            )
        return FinalizationResult(
            success=True, executed=True, tx_hash=receipt.tx_hash,
            block_explorer_url=self.explorer_url(receipt.tx_hash) or None,
        )

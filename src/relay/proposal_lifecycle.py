"""
Human-readable proposal state.

Primary path maps the governor's ``state()`` ordinal. If that read fails
(ABI mismatch, node error) the state is inferred from the raw proposal
struct and the current block height. Inferred readings are an approximation
and are logged with an ``inferred`` marker so they can be told apart.
"""

from src.data_models.relay_schemas import LifecycleState, StateReading, map_state
from src.relay.chain_reader import ChainReader
from src.relay.errors import ChainReadError
from src.utils.logger import logger


class ProposalLifecycle:

    def __init__(self, reader: ChainReader):
        self.reader = reader

    async def get_state(self, proposal_id) -> LifecycleState:
        return (await self.read_state(proposal_id)).state

    async def read_state(self, proposal_id) -> StateReading:
        try:
            ordinal = await self.reader.get_proposal_state(proposal_id)
        except ChainReadError as e:
            logger.warning("ProposalLifecycle: state() failed for %s, inferring: %s", proposal_id, e)
        else:
            return StateReading(state=map_state(ordinal), source="primary")

        try:
            core = await self.reader.get_proposal_core(proposal_id)
            current_block = await self.reader.block_number()
        except ChainReadError as e:
            logger.error("ProposalLifecycle: inference failed for %s: %s", proposal_id, e)
            return StateReading(state=LifecycleState.UNKNOWN, source="unavailable")

        state = infer_state(core, current_block)
        logger.info("ProposalLifecycle: [inferred] proposal %s looks %s at block %s", proposal_id, state.value, current_block)
        return StateReading(state=state, source="inferred")


def infer_state(core: dict, current_block: int) -> LifecycleState:
    """Best-effort state from block bounds and tallies."""
    if core.get("executed"):
        return LifecycleState.EXECUTED
    if core.get("canceled"):
        return LifecycleState.CANCELED
    start_block = int(core.get("start_block") or 0)
    end_block = int(core.get("end_block") or 0)
    if current_block < start_block:
        return LifecycleState.PENDING
    if current_block <= end_block:
        return LifecycleState.ACTIVE
    if int(core.get("for_votes") or 0) > int(core.get("against_votes") or 0):
        return LifecycleState.SUCCEEDED
    return LifecycleState.DEFEATED

"""Tests for lifecycle reads and the inference fallback."""
import asyncio

import pytest

from src.data_models.relay_schemas import LifecycleState
from src.relay.proposal_lifecycle import ProposalLifecycle, infer_state

from .fakes import FakeChain, FakeReader

PID = 5


def _lifecycle(state=None, core=None, block=1000):
    chain = FakeChain()
    chain.block = block
    if state is not None:
        chain.add_proposal(PID, state=state)
    if core is not None:
        chain.cores[PID] = core
    reader = FakeReader(chain)
    return reader, ProposalLifecycle(reader)


def _core(start=900, end=1100, for_votes=0, against_votes=0, **extra):
    core = {"start_block": start, "end_block": end, "for_votes": for_votes, "against_votes": against_votes}
    core.update(extra)
    return core


class TestPrimaryPath:

    def test_maps_ordinal(self):
        _, lifecycle = _lifecycle(state=4)
        reading = asyncio.run(lifecycle.read_state(PID))
        assert reading.state == LifecycleState.SUCCEEDED
        assert reading.source == "primary"
        assert asyncio.run(lifecycle.get_state(PID)) == LifecycleState.SUCCEEDED

    def test_unrecognised_ordinal_is_unknown(self):
        _, lifecycle = _lifecycle(state=12)
        assert asyncio.run(lifecycle.get_state(PID)) == LifecycleState.UNKNOWN


class TestInferencePath:

    @pytest.mark.parametrize("block,core,expected", [
        (800, _core(), LifecycleState.PENDING),
        (1000, _core(), LifecycleState.ACTIVE),
        (1100, _core(), LifecycleState.ACTIVE),
        (1200, _core(for_votes=5, against_votes=3), LifecycleState.SUCCEEDED),
        (1200, _core(for_votes=3, against_votes=3), LifecycleState.DEFEATED),
        (1200, _core(for_votes=5, executed=True), LifecycleState.EXECUTED),
        (1000, _core(canceled=True), LifecycleState.CANCELED),
    ])
    def test_infers_from_blocks_and_votes(self, block, core, expected):
        reader, lifecycle = _lifecycle(core=core, block=block)
        reader.failing["state"] = RuntimeError("function selector was not recognized")
        reading = asyncio.run(lifecycle.read_state(PID))
        assert reading.state == expected
        assert reading.source == "inferred"

    def test_both_paths_failing_gives_unknown(self):
        reader, lifecycle = _lifecycle()
        reader.failing["state"] = RuntimeError("down")
        reader.failing["proposal_core"] = RuntimeError("down")
        reading = asyncio.run(lifecycle.read_state(PID))
        assert reading.state == LifecycleState.UNKNOWN
        assert reading.source == "unavailable"

    def test_infer_state_tolerates_missing_fields(self):
        assert infer_state({}, 10) == LifecycleState.DEFEATED

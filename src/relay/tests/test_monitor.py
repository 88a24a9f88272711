"""Tests for the proposal monitor diff loop."""
import asyncio
from unittest.mock import AsyncMock, MagicMock

from src.data_models.relay_schemas import LifecycleState, RewardResult
from src.relay.monitor import ProposalMonitor, is_significant_transition
from src.relay.proposal_lifecycle import ProposalLifecycle
from src.relay.proposals import ProposalService

from .fakes import ALICE, TOKEN, FakeChain, FakeReader, FakeWallet


class MemoryStore:
    """Proposal cache keyed by id."""

    def __init__(self, initial=None):
        self.states = dict(initial or {})
        self.broken = set()

    def get_cached_state(self, proposal_id):
        if proposal_id in self.broken:
            raise RuntimeError("database unavailable")
        return self.states.get(proposal_id)

    def update_proposal_cache(self, proposal):
        self.states[proposal.proposal_id] = proposal.state.value


def _event(pid, block, title):
    return {
        "blockNumber": block,
        "args": {
            "proposalId": pid, "proposer": ALICE.address, "targets": [TOKEN], "values": [0], "calldatas": [b""],
            "startBlock": block + 1, "endBlock": block + 50, "description": f"# {title}\n\nbody",
        },
    }


def _monitor(cached=None, rewards=None):
    chain = FakeChain()
    reader = FakeReader(chain)
    service = ProposalService(reader, FakeWallet(chain), ProposalLifecycle(reader))
    store = MemoryStore(cached)
    notifier = MagicMock()
    notifier.send = AsyncMock(return_value=True)
    monitor = ProposalMonitor(service, store, notifier=notifier, rewards=rewards, bot_username="relaybot")
    return chain, store, notifier, monitor


class TestTransitions:

    def test_significant(self):
        assert is_significant_transition(None, LifecycleState.ACTIVE)
        assert is_significant_transition(LifecycleState.ACTIVE, LifecycleState.DEFEATED)
        assert is_significant_transition(LifecycleState.SUCCEEDED, LifecycleState.EXECUTED)
        assert not is_significant_transition(None, LifecycleState.PENDING)
        assert not is_significant_transition(LifecycleState.PENDING, LifecycleState.ACTIVE)


class TestCheckOnce:

    def test_new_active_proposal_is_announced(self):
        chain, store, notifier, monitor = _monitor()
        chain.events = [_event(1, 100, "Budget")]
        chain.add_proposal(1, state=1)
        assert asyncio.run(monitor.check_once()) == 1
        text = notifier.send.await_args.args[0]
        assert "New Proposal Available for Voting" in text
        assert "*Budget*" in text
        assert "@relaybot" in text
        assert store.states["1"] == "Active"

    def test_unchanged_state_is_quiet(self):
        chain, _, notifier, monitor = _monitor(cached={"1": "Active"})
        chain.events = [_event(1, 100, "Budget")]
        chain.add_proposal(1, state=1)
        assert asyncio.run(monitor.check_once()) == 0
        notifier.send.assert_not_awaited()

    def test_succeeded_announces_votes_and_rewards_proposer(self):
        rewards = MagicMock()
        rewards.process_proposal_completion_rewards = AsyncMock(return_value=RewardResult(success=True, amount="20"))
        chain, store, notifier, monitor = _monitor(cached={"1": "Active"}, rewards=rewards)
        chain.events = [_event(1, 100, "Budget")]
        chain.add_proposal(1, state=4)
        chain.votes[(1, ALICE.address)] = 1
        assert asyncio.run(monitor.check_once()) == 1
        text = notifier.send.await_args.args[0]
        assert "Proposal Approved!" in text
        assert "For: 1" in text
        assert "Against: 0" in text
        rewards.process_proposal_completion_rewards.assert_awaited_once_with("1", ALICE.address)
        assert store.states["1"] == "Succeeded"

    def test_empty_cache_pays_no_rewards_for_past_proposals(self):
        rewards = MagicMock()
        rewards.process_proposal_completion_rewards = AsyncMock(return_value=RewardResult(success=True, amount="20"))
        chain, store, notifier, monitor = _monitor(rewards=rewards)
        chain.events = [_event(1, 100, "Budget"), _event(2, 120, "Grants")]
        chain.add_proposal(1, state=4)
        chain.add_proposal(2, state=4)

        assert asyncio.run(monitor.check_once()) == 0
        rewards.process_proposal_completion_rewards.assert_not_awaited()
        notifier.send.assert_not_awaited()
        assert store.states == {"1": "Succeeded", "2": "Succeeded"}

    def test_backward_reading_is_ignored(self):
        chain, store, notifier, monitor = _monitor(cached={"1": "Succeeded"})
        chain.events = [_event(1, 100, "Budget")]
        chain.add_proposal(1, state=1)
        assert asyncio.run(monitor.check_once()) == 0
        assert store.states["1"] == "Succeeded"
        notifier.send.assert_not_awaited()

    def test_unknown_state_is_ignored(self):
        chain, store, _, monitor = _monitor(cached={"1": "Active"})
        chain.events = [_event(1, 100, "Budget")]
        chain.add_proposal(1, state=42)
        asyncio.run(monitor.check_once())
        assert store.states["1"] == "Active"

    def test_insignificant_transition_updates_cache_silently(self):
        chain, store, notifier, monitor = _monitor()
        chain.events = [_event(1, 100, "Budget")]
        chain.add_proposal(1, state=0)
        assert asyncio.run(monitor.check_once()) == 0
        assert store.states["1"] == "Pending"
        notifier.send.assert_not_awaited()

    def test_one_bad_proposal_does_not_stop_the_pass(self):
        chain, store, notifier, monitor = _monitor()
        chain.events = [_event(1, 100, "Broken"), _event(2, 200, "Fine")]
        chain.add_proposal(1, state=1)
        chain.add_proposal(2, state=1)
        store.broken.add("2")
        assert asyncio.run(monitor.check_once()) == 1
        assert "*Broken*" in notifier.send.await_args.args[0]


class TestLoop:

    def test_start_and_stop(self):
        _, _, _, monitor = _monitor()
        monitor.check_once = AsyncMock(return_value=0)

        async def run():
            monitor.start(interval=3600)
            await asyncio.sleep(0)
            assert monitor.is_running
            await monitor.stop()
            return monitor.is_running

        assert asyncio.run(run()) is False
        monitor.check_once.assert_awaited_once()

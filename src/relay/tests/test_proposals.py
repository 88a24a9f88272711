"""Tests for proposal creation, listing and finalisation."""
import asyncio

from web3 import Web3

from src.data_models.relay_schemas import LifecycleState
from src.relay.proposal_lifecycle import ProposalLifecycle
from src.relay.proposals import ProposalService, build_description, explorer_url, split_description

from .fakes import ALICE, TOKEN, FakeChain, FakeReader, FakeWallet

PID = 31337


def _event(pid, block, description="# Fund the meetup\n\nPay for snacks"):
    return {
        "blockNumber": block,
        "args": {
            "proposalId": pid,
            "proposer": ALICE.address,
            "targets": [TOKEN],
            "values": [0],
            "calldatas": [b""],
            "startBlock": block + 1,
            "endBlock": block + 50,
            "description": description,
        },
    }


def _service(network="sepolia"):
    chain = FakeChain()
    reader = FakeReader(chain)
    wallet = FakeWallet(chain)
    service = ProposalService(reader, wallet, ProposalLifecycle(reader), network=network)
    return chain, reader, wallet, service


class TestDescriptions:

    def test_split_strips_title_marker(self):
        assert split_description("# Title\n\nBody text") == ("Title", "Body text")

    def test_split_without_marker(self):
        assert split_description("Plain title\nrest") == ("Plain title", "rest")

    def test_build_then_split(self):
        assert split_description(build_description(" Hello ", "World")) == ("Hello", "World")

    def test_explorer_url(self):
        assert explorer_url("sepolia", "0xabc") == "https://sepolia.etherscan.io/tx/0xabc"
        assert explorer_url("somewhere-else", "0xabc") == ""


class TestCreateProposal:

    def test_creates_and_returns_deterministic_id(self):
        _, reader, wallet, service = _service()
        result = asyncio.run(service.create_proposal("Fund the meetup", "Pay for snacks"))
        assert result.success
        blob = build_description("Fund the meetup", "Pay for snacks")
        expected = asyncio.run(reader.hash_proposal([TOKEN], [0], [b""], Web3.keccak(text=blob)))
        assert result.proposal_id == str(expected)
        call = wallet.submitted[0]
        assert call.fn_name == "propose"
        assert call.args[3] == blob

    def test_requires_title(self):
        _, _, wallet, service = _service()
        result = asyncio.run(service.create_proposal("  ", "body"))
        assert not result.success
        assert wallet.submitted == []

    def test_submission_failure_is_sanitised(self):
        _, _, wallet, service = _service()
        wallet.failing["propose"] = RuntimeError('{"code": -32000, "message": "insufficient funds for gas"}')
        result = asyncio.run(service.create_proposal("T", "B"))
        assert not result.success
        assert "{" not in result.error


class TestListing:

    def test_newest_first_with_states(self):
        chain, _, _, service = _service()
        chain.events = [_event(1, 100), _event(2, 300), _event(3, 200)]
        chain.add_proposal(1, state=7)
        chain.add_proposal(2, state=1)
        chain.add_proposal(3, state=3)
        proposals = asyncio.run(service.list_proposals())
        assert [p.proposal_id for p in proposals] == ["2", "3", "1"]
        assert [p.state for p in proposals] == [
            LifecycleState.ACTIVE, LifecycleState.DEFEATED, LifecycleState.EXECUTED,
        ]
        assert proposals[0].title == "Fund the meetup"
        assert proposals[0].description == "Pay for snacks"

    def test_active_only(self):
        chain, _, _, service = _service()
        chain.events = [_event(1, 100), _event(2, 300)]
        chain.add_proposal(1, state=1)
        chain.add_proposal(2, state=0)
        assert [p.proposal_id for p in asyncio.run(service.get_active_proposals())] == ["1"]

    def test_malformed_event_skipped(self):
        chain, _, _, service = _service()
        chain.events = [{"blockNumber": 10, "args": {}}, _event(1, 100)]
        chain.add_proposal(1)
        assert [p.proposal_id for p in asyncio.run(service.list_proposals())] == ["1"]

    def test_read_failure_gives_empty_list(self):
        _, reader, _, service = _service()
        reader.failing["events"] = RuntimeError("range too large")
        assert asyncio.run(service.list_proposals()) == []

    def test_info_skips_tally_while_pending(self):
        chain, reader, _, service = _service()
        chain.add_proposal(PID, state=0)
        info = asyncio.run(service.get_proposal_info(PID))
        assert info.state == LifecycleState.PENDING
        assert info.votes.total == 0
        assert "tally" not in reader.calls

    def test_info_includes_tally(self):
        chain, _, _, service = _service()
        chain.add_proposal(PID, state=1)
        chain.votes[(PID, ALICE.address)] = 1
        info = asyncio.run(service.get_proposal_info(str(PID)))
        assert info.votes.for_votes == 10 ** 18


class TestFinalize:

    def _ready(self, state=4):
        chain, reader, wallet, service = _service()
        chain.events = [_event(PID, 100)]
        chain.add_proposal(PID, state=state)
        return chain, wallet, service

    def test_executes_succeeded_proposal(self):
        _, wallet, service = self._ready()
        result = asyncio.run(service.finalize_proposal(PID))
        assert result.success and result.executed
        assert result.block_explorer_url == f"https://sepolia.etherscan.io/tx/{result.tx_hash}"
        call = wallet.submitted[0]
        assert call.fn_name == "execute"
        assert call.args[3] == Web3.keccak(text="# Fund the meetup\n\nPay for snacks")

    def test_already_executed(self):
        _, wallet, service = self._ready(state=7)
        result = asyncio.run(service.finalize_proposal(PID))
        assert result.success and not result.executed
        assert "already been executed" in result.reason
        assert wallet.submitted == []

    def test_not_executable_state(self):
        _, wallet, service = self._ready(state=3)
        result = asyncio.run(service.finalize_proposal(PID))
        assert result.success and not result.executed
        assert "Defeated" in result.reason
        assert wallet.submitted == []

    def test_executed_by_someone_else(self):
        chain, wallet, service = self._ready()

        async def racing_submit(call, **kwargs):
            chain.states[PID] = 7
            raise RuntimeError("execution reverted: Governor: proposal not successful")

        wallet.submit = racing_submit
        result = asyncio.run(service.finalize_proposal(PID))
        assert result.success and result.executed
        assert "someone else" in result.reason

    def test_execution_failure(self):
        _, wallet, service = self._ready(state=5)
        wallet.failing["execute"] = RuntimeError("execution reverted: TimelockController: operation is not ready")
        result = asyncio.run(service.finalize_proposal(PID))
        assert not result.success and not result.executed
        assert result.reason.startswith("Failed to execute proposal")

    def test_invalid_id(self):
        _, _, service = self._ready()
        result = asyncio.run(service.finalize_proposal("nope"))
        assert not result.success

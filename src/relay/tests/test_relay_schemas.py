"""Tests for lifecycle enumeration, ordinal mapping and transition rules."""
import pytest

from src.data_models.relay_schemas import (
    PROPOSAL_STATE_ORDINALS,
    LifecycleState,
    VoteTally,
    VoteType,
    is_forward_transition,
    map_state,
)


class TestMapState:

    @pytest.mark.parametrize("ordinal,expected", [
        (0, LifecycleState.PENDING),
        (1, LifecycleState.ACTIVE),
        (2, LifecycleState.CANCELED),
        (3, LifecycleState.DEFEATED),
        (4, LifecycleState.SUCCEEDED),
        (5, LifecycleState.QUEUED),
        (6, LifecycleState.EXPIRED),
        (7, LifecycleState.EXECUTED),
    ])
    def test_defined_ordinals(self, ordinal, expected):
        assert map_state(ordinal) == expected
        assert PROPOSAL_STATE_ORDINALS[ordinal] == expected

    @pytest.mark.parametrize("ordinal", [-1, 8, 255, 2 ** 256, None, "x", 1.5, True, object()])
    def test_anything_else_is_unknown(self, ordinal):
        assert map_state(ordinal) == LifecycleState.UNKNOWN

    def test_ordinal_table_has_eight_entries(self):
        assert len(PROPOSAL_STATE_ORDINALS) == 8
        assert LifecycleState.UNKNOWN not in PROPOSAL_STATE_ORDINALS


class TestTransitions:

    def test_single_forward_steps(self):
        assert is_forward_transition(LifecycleState.PENDING, LifecycleState.ACTIVE)
        assert is_forward_transition(LifecycleState.ACTIVE, LifecycleState.SUCCEEDED)
        assert is_forward_transition(LifecycleState.SUCCEEDED, LifecycleState.EXECUTED)
        assert is_forward_transition(LifecycleState.QUEUED, LifecycleState.EXPIRED)

    def test_skipped_states_still_forward(self):
        # A poller can miss Active entirely
        assert is_forward_transition(LifecycleState.PENDING, LifecycleState.SUCCEEDED)
        assert is_forward_transition(LifecycleState.ACTIVE, LifecycleState.EXECUTED)

    def test_backward_moves_rejected(self):
        assert not is_forward_transition(LifecycleState.SUCCEEDED, LifecycleState.ACTIVE)
        assert not is_forward_transition(LifecycleState.EXECUTED, LifecycleState.SUCCEEDED)
        assert not is_forward_transition(LifecycleState.DEFEATED, LifecycleState.SUCCEEDED)

    def test_terminal_states_have_no_successors(self):
        for terminal in (LifecycleState.DEFEATED, LifecycleState.CANCELED,
                         LifecycleState.EXPIRED, LifecycleState.EXECUTED):
            for state in PROPOSAL_STATE_ORDINALS:
                assert not is_forward_transition(terminal, state)

    def test_unknown_is_never_a_destination(self):
        assert not is_forward_transition(None, LifecycleState.UNKNOWN)
        assert not is_forward_transition(LifecycleState.ACTIVE, LifecycleState.UNKNOWN)

    def test_first_observation_accepts_anything_known(self):
        assert is_forward_transition(None, LifecycleState.ACTIVE)
        assert is_forward_transition(LifecycleState.UNKNOWN, LifecycleState.DEFEATED)


class TestValueTypes:

    def test_vote_type_matches_contract_encoding(self):
        assert (int(VoteType.AGAINST), int(VoteType.FOR), int(VoteType.ABSTAIN)) == (0, 1, 2)

    def test_tally_total(self):
        tally = VoteTally(for_votes=3, against_votes=2, abstain_votes=1)
        assert tally.total == 6

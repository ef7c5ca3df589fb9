import pytest

from billscan.models import lead_state
from billscan.models.lead_state import IllegalTransition, InvariantViolation, LeadStatus


def test_processing_moves_to_either_terminal_state():
    assert lead_state.can_transition("processing", "completed")
    assert lead_state.can_transition(LeadStatus.PROCESSING, LeadStatus.FAILED)


@pytest.mark.parametrize("src", ["completed", "failed"])
@pytest.mark.parametrize("dst", ["processing", "completed", "failed"])
def test_terminal_states_never_move(src, dst):
    assert lead_state.is_terminal(src)
    with pytest.raises(IllegalTransition):
        lead_state.ensure_transition(src, dst)


def test_invariant_analysis_iff_completed():
    lead_state.check_invariant("completed", {"monthly_avg": 1})
    lead_state.check_invariant("processing", None)
    lead_state.check_invariant("failed", None)
    with pytest.raises(InvariantViolation):
        lead_state.check_invariant("completed", None)
    with pytest.raises(InvariantViolation):
        lead_state.check_invariant("processing", {"monthly_avg": 1})


def test_unknown_status_is_rejected():
    with pytest.raises(InvariantViolation):
        lead_state.coerce("archived")

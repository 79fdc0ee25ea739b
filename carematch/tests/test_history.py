from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from carematch.errors import InvalidInputError, InvalidTransitionError
from carematch.history.models import MatchAction, MatchOutcome, MatchRecord, MatchStatus

T0 = datetime(2024, 5, 1, 9, 0, tzinfo=timezone.utc)


def _record(**overrides) -> MatchRecord:
    data = {
        "user_id": "u1",
        "facility_id": "F001",
        "initial_score": 4.2,
        "recommendation_rank": 1,
    }
    data.update(overrides)
    return MatchRecord(**data)


def test_new_record_is_pending():
    record = _record()
    assert record.status == MatchStatus.PENDING
    assert record.outcome is None
    assert record.progress_percentage == 0
    assert not record.is_successful_match()


def test_viewed_moves_to_in_progress():
    record = _record()
    record.mark_viewed(T0)
    assert record.status == MatchStatus.IN_PROGRESS
    assert record.was_viewed
    assert record.viewed_at == T0


def test_repeated_view_only_refreshes_timestamp():
    record = _record()
    record.mark_viewed(T0)
    later = T0 + timedelta(hours=2)
    record.mark_viewed(later)
    assert record.status == MatchStatus.IN_PROGRESS
    assert record.was_viewed
    assert record.viewed_at == later


@pytest.mark.parametrize("action", [MatchAction.contacted, MatchAction.visited])
def test_contact_and_visit_skip_straight_to_in_progress(action):
    record = _record()
    record.apply(action, T0)
    assert record.status == MatchStatus.IN_PROGRESS
    assert record.progress_percentage == 25


def test_contract_signed_completes():
    record = _record()
    record.mark_viewed(T0)
    record.mark_selected(MatchOutcome.CONTRACT_SIGNED, T0 + timedelta(days=1))
    assert record.status == MatchStatus.COMPLETED
    assert record.was_selected
    assert record.completed_at == T0 + timedelta(days=1)
    assert record.is_successful_match()


def test_rejection_fails():
    record = _record()
    record.mark_selected(MatchOutcome.BUDGET_EXCEEDED, T0)
    assert record.status == MatchStatus.FAILED
    assert record.outcome == MatchOutcome.BUDGET_EXCEEDED
    assert record.completed_at is None
    assert not record.is_successful_match()


@pytest.mark.parametrize("action", list(MatchAction))
def test_late_actions_never_regress_terminal_records(action):
    record = _record()
    record.mark_selected(MatchOutcome.CONTRACT_SIGNED, T0)
    record.apply(action, T0 + timedelta(hours=1))
    assert record.status == MatchStatus.COMPLETED
    assert record.is_successful_match()


def test_late_view_on_failed_record_sets_flag():
    record = _record()
    record.mark_selected(MatchOutcome.USER_REJECTED, T0)
    record.mark_viewed(T0 + timedelta(hours=1))
    assert record.status == MatchStatus.FAILED
    assert record.was_viewed


def test_repeating_selection_is_idempotent():
    record = _record()
    record.mark_selected(MatchOutcome.CONTRACT_SIGNED, T0)
    record.mark_selected(MatchOutcome.CONTRACT_SIGNED, T0 + timedelta(hours=1))
    assert record.status == MatchStatus.COMPLETED
    assert record.completed_at == T0


def test_changing_outcome_after_close_is_rejected():
    record = _record()
    record.mark_selected(MatchOutcome.USER_REJECTED, T0)
    with pytest.raises(InvalidTransitionError):
        record.mark_selected(MatchOutcome.CONTRACT_SIGNED)


def test_mark_contracted_skips_selection():
    record = _record()
    record.mark_contracted(T0)
    assert record.status == MatchStatus.COMPLETED
    assert record.outcome == MatchOutcome.CONTRACT_SIGNED
    assert not record.was_selected
    assert record.is_successful_match()


def test_cancel_from_open_states():
    pending = _record()
    pending.cancel()
    assert pending.status == MatchStatus.CANCELLED

    active = _record()
    active.mark_viewed(T0)
    active.cancel()
    assert active.status == MatchStatus.CANCELLED


@pytest.mark.parametrize("outcome", [MatchOutcome.CONTRACT_SIGNED, MatchOutcome.OTHER])
def test_cancel_closed_record_is_rejected(outcome):
    record = _record()
    record.mark_selected(outcome, T0)
    with pytest.raises(InvalidTransitionError):
        record.cancel()


def test_cancelled_record_cannot_be_selected_or_contracted():
    record = _record()
    record.cancel()
    with pytest.raises(InvalidTransitionError):
        record.mark_selected(MatchOutcome.CONTRACT_SIGNED)
    with pytest.raises(InvalidTransitionError):
        record.mark_contracted()
    record.mark_viewed(T0)
    assert record.status == MatchStatus.CANCELLED


@pytest.mark.parametrize(
    "status,outcome,expected",
    [
        (MatchStatus.COMPLETED, MatchOutcome.CONTRACT_SIGNED, True),
        (MatchStatus.COMPLETED, MatchOutcome.USER_REJECTED, False),
        (MatchStatus.FAILED, MatchOutcome.CONTRACT_SIGNED, False),
        (MatchStatus.IN_PROGRESS, None, False),
        (MatchStatus.CANCELLED, None, False),
    ],
)
def test_is_successful_match(status, outcome, expected):
    assert _record(status=status, outcome=outcome).is_successful_match() is expected


def test_progress_percentage():
    record = _record()
    record.mark_viewed(T0)
    record.mark_contacted(T0)
    assert record.progress_percentage == 50
    record.mark_visited(T0)
    record.mark_selected(MatchOutcome.CONTRACT_SIGNED, T0)
    assert record.progress_percentage == 100


def test_update_feedback():
    record = _record()
    record.update_feedback(4.5, "Friendly staff")
    assert record.satisfaction_score == 4.5
    assert record.feedback == "Friendly staff"
    record.update_feedback(3.0)
    assert record.feedback == "Friendly staff"


@pytest.mark.parametrize("satisfaction", [0.5, 5.5])
def test_update_feedback_rejects_out_of_range(satisfaction):
    with pytest.raises(InvalidInputError):
        _record().update_feedback(satisfaction)

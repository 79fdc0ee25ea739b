"""
Match lifecycle tracking.

Persists each recommendation batch as PENDING MatchRecords and applies
user actions to the most recent record for a (user, facility) pair.
Tracking of views, contacts and visits is best effort: with no prior
recommendation there is nothing to update and the call is a no-op.
"""
from __future__ import annotations

import json
import logging
import uuid
from collections.abc import Callable

from tenacity import Retrying, before_sleep_log, retry_if_exception_type, stop_after_attempt

from ..config import DEFAULT_MATCHING_CONFIG, MatchingConfig
from ..errors import ConcurrentUpdateError, NotFoundError
from ..matching.models import HealthProfile, Preference, Recommendation
from .models import MatchAction, MatchOutcome, MatchRecord
from .store import MatchHistoryStore, get_store

logger = logging.getLogger(__name__)


def _criteria_snapshot(profile: HealthProfile, preference: Preference) -> str:
    return json.dumps(
        {
            "profile": profile.model_dump(mode="json"),
            "preference": preference.model_dump(mode="json"),
        },
        sort_keys=True,
    )


def record_recommendations(
    user_id: str,
    coordinator_id: str | None,
    recommendations: list[Recommendation],
    profile: HealthProfile,
    preference: Preference,
    store: MatchHistoryStore | None = None,
) -> list[MatchRecord]:
    """Persist one PENDING record per recommendation, ranked 1..N."""
    store = store if store is not None else get_store()
    batch_id = uuid.uuid4().hex
    criteria = _criteria_snapshot(profile, preference)

    records = []
    for rank, rec in enumerate(recommendations, start=1):
        record = MatchRecord(
            user_id=user_id,
            facility_id=rec.facility.id,
            coordinator_id=coordinator_id,
            batch_id=batch_id,
            initial_score=round(rec.score, 2),
            recommendation_rank=rank,
            criteria_snapshot=criteria,
            facility_snapshot=rec.facility.model_dump_json(),
            estimated_cost=rec.estimated_monthly_cost,
        )
        records.append(store.add(record))

    logger.info(
        "Recorded %d recommendations for user %s (batch %s)",
        len(records), user_id, batch_id,
    )
    return records


def _update_with_retry(
    store: MatchHistoryStore,
    load: Callable[[], MatchRecord | None],
    mutate: Callable[[MatchRecord], None],
    retries: int,
) -> MatchRecord | None:
    """Re-read and re-apply *mutate* until the versioned save goes through."""
    retrying = Retrying(
        stop=stop_after_attempt(retries + 1),
        retry=retry_if_exception_type(ConcurrentUpdateError),
        before_sleep=before_sleep_log(logger, logging.DEBUG),
        reraise=True,
    )
    for attempt in retrying:
        with attempt:
            record = load()
            if record is None:
                return None
            expected = record.version
            mutate(record)
            return store.save(record, expected)
    return None


def _update_latest(
    store: MatchHistoryStore,
    user_id: str,
    facility_id: str,
    mutate: Callable[[MatchRecord], None],
    retries: int,
) -> MatchRecord | None:
    return _update_with_retry(
        store, lambda: store.latest_for(user_id, facility_id), mutate, retries,
    )


def record_action(
    user_id: str,
    facility_id: str,
    action: MatchAction,
    store: MatchHistoryStore | None = None,
    config: MatchingConfig = DEFAULT_MATCHING_CONFIG,
) -> MatchRecord | None:
    store = store if store is not None else get_store()
    action = MatchAction(action)
    updated = _update_latest(
        store, user_id, facility_id, lambda r: r.apply(action), config.max_update_retries,
    )
    if updated is None:
        logger.warning(
            "No match record for user %s / facility %s, ignoring '%s'",
            user_id, facility_id, action.value,
        )
        return None

    logger.info(
        "Tracked '%s' for user %s / facility %s -> %s",
        action.value, user_id, facility_id, updated.status.value,
    )
    return updated


def complete_matching(
    user_id: str,
    facility_id: str,
    outcome: MatchOutcome,
    actual_cost: float | None = None,
    satisfaction: float | None = None,
    feedback: str | None = None,
    store: MatchHistoryStore | None = None,
    config: MatchingConfig = DEFAULT_MATCHING_CONFIG,
) -> MatchRecord:
    store = store if store is not None else get_store()
    outcome = MatchOutcome(outcome)

    def _complete(record: MatchRecord) -> None:
        record.mark_selected(outcome)
        if actual_cost is not None:
            record.actual_cost = actual_cost
        if satisfaction is not None:
            record.update_feedback(satisfaction, feedback)
        elif feedback is not None:
            record.feedback = feedback

    updated = _update_latest(store, user_id, facility_id, _complete, config.max_update_retries)
    if updated is None:
        raise NotFoundError(f"No match record for user {user_id} and facility {facility_id}")

    logger.info(
        "Completed matching for user %s / facility %s: %s",
        user_id, facility_id, outcome.value,
    )
    return updated


def confirm_contract(
    user_id: str,
    facility_id: str,
    store: MatchHistoryStore | None = None,
    config: MatchingConfig = DEFAULT_MATCHING_CONFIG,
) -> MatchRecord:
    """Mark a contract confirmed directly, skipping the selection step."""
    store = store if store is not None else get_store()
    updated = _update_latest(
        store, user_id, facility_id, lambda r: r.mark_contracted(), config.max_update_retries,
    )
    if updated is None:
        raise NotFoundError(f"No match record for user {user_id} and facility {facility_id}")
    return updated


def cancel_matching(
    user_id: str,
    facility_id: str,
    store: MatchHistoryStore | None = None,
    config: MatchingConfig = DEFAULT_MATCHING_CONFIG,
) -> MatchRecord:
    store = store if store is not None else get_store()
    updated = _update_latest(
        store, user_id, facility_id, lambda r: r.cancel(), config.max_update_retries,
    )
    if updated is None:
        raise NotFoundError(f"No match record for user {user_id} and facility {facility_id}")
    logger.info("Cancelled matching for user %s / facility %s", user_id, facility_id)
    return updated


def submit_feedback(
    record_id: str,
    satisfaction: float,
    feedback: str | None = None,
    store: MatchHistoryStore | None = None,
    config: MatchingConfig = DEFAULT_MATCHING_CONFIG,
) -> MatchRecord:
    """Attach a satisfaction rating to a record looked up by id."""
    store = store if store is not None else get_store()
    updated = _update_with_retry(
        store,
        lambda: store.get(record_id),
        lambda r: r.update_feedback(satisfaction, feedback),
        config.max_update_retries,
    )
    logger.info("Recorded satisfaction %.1f for MatchRecord %s", satisfaction, record_id)
    return updated

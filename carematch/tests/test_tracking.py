from __future__ import annotations

import json
from datetime import datetime, timezone
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from carematch.app import app
from carematch.config import MatchingConfig
from carematch.errors import ConcurrentUpdateError, InvalidInputError, NotFoundError
from carematch.history.models import MatchAction, MatchOutcome, MatchRecord, MatchStatus
from carematch.history.store import MatchHistoryStore, clear_history
from carematch.history.tracking import (
    cancel_matching,
    complete_matching,
    confirm_contract,
    record_action,
    record_recommendations,
    submit_feedback,
)
from carematch.matching.models import FacilityCandidate, HealthProfile, Preference, Recommendation

PROFILE = HealthProfile(care_grade=3)
PREFERENCE = Preference(preferred_regions={"Seoul"}, max_budget=300)

client = TestClient(app)


def _recommendations(*facility_ids: str) -> list[Recommendation]:
    return [
        Recommendation(
            facility=FacilityCandidate(id=fid, acceptable_care_grades={3}, monthly_fee=200),
            score=4.56789 - i,
            estimated_monthly_cost=230,
        )
        for i, fid in enumerate(facility_ids)
    ]


def _seeded_store(*facility_ids: str, user_id: str = "u1") -> MatchHistoryStore:
    store = MatchHistoryStore()
    record_recommendations(user_id, "c1", _recommendations(*facility_ids), PROFILE, PREFERENCE, store)
    return store


# ── Store ────────────────────────────────────────────────────────────────


class TestStore:
    def test_add_and_get(self):
        store = MatchHistoryStore()
        added = store.add(MatchRecord(user_id="u1", facility_id="F1", initial_score=3, recommendation_rank=1))
        assert added.version == 1
        assert store.get(added.id).facility_id == "F1"
        assert len(store) == 1

    def test_get_unknown_raises(self):
        with pytest.raises(NotFoundError):
            MatchHistoryStore().get("missing")

    def test_save_bumps_version(self):
        store = MatchHistoryStore()
        record = store.add(MatchRecord(user_id="u1", facility_id="F1", initial_score=3, recommendation_rank=1))
        record.mark_viewed()
        saved = store.save(record, expected_version=1)
        assert saved.version == 2
        assert store.get(record.id).was_viewed

    def test_stale_save_is_rejected(self):
        store = MatchHistoryStore()
        record = store.add(MatchRecord(user_id="u1", facility_id="F1", initial_score=3, recommendation_rank=1))
        first, second = store.get(record.id), store.get(record.id)
        first.mark_viewed()
        store.save(first, first.version)
        second.mark_contacted()
        with pytest.raises(ConcurrentUpdateError):
            store.save(second, second.version)
        assert not store.get(record.id).was_contacted

    def test_returned_records_are_copies(self):
        store = MatchHistoryStore()
        record = store.add(MatchRecord(user_id="u1", facility_id="F1", initial_score=3, recommendation_rank=1))
        record.mark_viewed()
        assert not store.get(record.id).was_viewed

    def test_listeners_fire_on_writes(self):
        store = MatchHistoryStore()
        calls = []
        store.subscribe(lambda: calls.append(1))
        record = store.add(MatchRecord(user_id="u1", facility_id="F1", initial_score=3, recommendation_rank=1))
        store.save(record, record.version)
        assert len(calls) == 2

    def test_queries(self):
        store = _seeded_store("F1", "F2")
        store.add(MatchRecord(user_id="u2", facility_id="F1", coordinator_id="c2", initial_score=2, recommendation_rank=1))
        assert len(store.find_by_user("u1")) == 2
        assert len(store.find_by_facility("F1")) == 2
        assert len(store.find_by_coordinator("c2")) == 1
        assert store.latest_for("u2", "F1").user_id == "u2"
        assert store.latest_for("u2", "F2") is None

    def test_equal_timestamps_list_latest_insert_first(self):
        store = MatchHistoryStore()
        created = datetime(2024, 5, 10, 12, 0, tzinfo=timezone.utc)
        first = store.add(MatchRecord(user_id="u1", facility_id="F1", initial_score=3,
                                      recommendation_rank=1, created_at=created))
        second = store.add(MatchRecord(user_id="u1", facility_id="F1", initial_score=3,
                                       recommendation_rank=1, created_at=created))
        assert [r.id for r in store.find_by_user("u1")] == [second.id, first.id]
        assert store.latest_for("u1", "F1").id == store.find_by_user("u1")[0].id


# ── Tracking ─────────────────────────────────────────────────────────────


def test_record_recommendations_creates_ranked_batch():
    store = MatchHistoryStore()
    records = record_recommendations("u1", "c1", _recommendations("F1", "F2", "F3"), PROFILE, PREFERENCE, store)

    assert [r.recommendation_rank for r in records] == [1, 2, 3]
    assert len({r.batch_id for r in records}) == 1
    assert all(r.status == MatchStatus.PENDING for r in records)
    assert records[0].initial_score == 4.57
    assert records[0].estimated_cost == 230

    criteria = json.loads(records[0].criteria_snapshot)
    assert criteria["profile"]["care_grade"] == 3
    assert criteria["preference"]["max_budget"] == 300
    assert json.loads(records[1].facility_snapshot)["id"] == "F2"


def test_record_recommendations_empty_list():
    store = MatchHistoryStore()
    assert record_recommendations("u1", None, [], PROFILE, PREFERENCE, store) == []
    assert len(store) == 0


def test_record_action_without_history_is_noop():
    store = MatchHistoryStore()
    assert record_action("u1", "F1", MatchAction.viewed, store) is None
    assert len(store) == 0


def test_record_action_updates_latest_record():
    store = _seeded_store("F1")
    newer = record_recommendations("u1", "c1", _recommendations("F1"), PROFILE, PREFERENCE, store)[0]

    updated = record_action("u1", "F1", "viewed", store)
    assert updated.id == newer.id
    assert updated.status == MatchStatus.IN_PROGRESS
    assert updated.version == 2

    older = [r for r in store.find_by_user("u1") if r.id != newer.id][0]
    assert older.status == MatchStatus.PENDING


def test_record_action_retries_after_conflict():
    store = _seeded_store("F1")
    real_save = store.save
    raced = []

    def racing_save(record, expected_version):
        if not raced:
            raced.append(True)
            # Another request contacts the facility between our read and write
            other = store.get(record.id)
            other.mark_contacted()
            real_save(other, other.version)
        return real_save(record, expected_version)

    with patch.object(store, "save", side_effect=racing_save):
        updated = record_action("u1", "F1", MatchAction.viewed, store)

    assert updated.was_viewed
    assert updated.was_contacted
    assert updated.status == MatchStatus.IN_PROGRESS
    assert updated.version == 3


def test_record_action_gives_up_after_retries():
    store = _seeded_store("F1")
    conflict = ConcurrentUpdateError("r1", 1, 2)
    with patch.object(store, "save", side_effect=conflict) as save:
        with pytest.raises(ConcurrentUpdateError):
            record_action("u1", "F1", MatchAction.viewed, store, MatchingConfig(max_update_retries=2))
    assert save.call_count == 3


def test_complete_matching_records_outcome_and_feedback():
    store = _seeded_store("F1")
    record_action("u1", "F1", MatchAction.viewed, store)
    record = complete_matching(
        "u1", "F1", MatchOutcome.CONTRACT_SIGNED,
        actual_cost=240, satisfaction=4.5, feedback="Great fit", store=store,
    )
    assert record.status == MatchStatus.COMPLETED
    assert record.is_successful_match()
    assert record.actual_cost == 240
    assert record.satisfaction_score == 4.5
    assert record.feedback == "Great fit"
    assert record.progress_percentage == 50


def test_complete_matching_without_record_raises():
    with pytest.raises(NotFoundError):
        complete_matching("u1", "F1", MatchOutcome.OTHER, store=MatchHistoryStore())


def test_complete_matching_rejects_bad_satisfaction():
    store = _seeded_store("F1")
    with pytest.raises(InvalidInputError):
        complete_matching("u1", "F1", MatchOutcome.CONTRACT_SIGNED, satisfaction=9, store=store)
    assert store.latest_for("u1", "F1").status == MatchStatus.PENDING


def test_confirm_contract_and_cancel():
    store = _seeded_store("F1", "F2")
    assert confirm_contract("u1", "F1", store).is_successful_match()
    assert cancel_matching("u1", "F2", store).status == MatchStatus.CANCELLED
    with pytest.raises(NotFoundError):
        cancel_matching("u1", "F9", store)


def test_submit_feedback_by_id():
    store = _seeded_store("F1")
    record = store.latest_for("u1", "F1")
    updated = submit_feedback(record.id, 3.5, "Long wait list", store)
    assert updated.satisfaction_score == 3.5
    assert updated.version == record.version + 1
    with pytest.raises(NotFoundError):
        submit_feedback("missing", 3.0, store=store)


# ── HTTP surface ─────────────────────────────────────────────────────────


def _recommend_via_api(user_id: str) -> dict:
    resp = client.post(
        "/recommendations",
        json={
            "profile": {"care_grade": 3},
            "preference": {"preferred_regions": ["Seoul"], "max_results": 2},
            "user_id": user_id,
            "record": True,
        },
    )
    return resp.json()


def test_action_endpoint_tracks_and_ignores():
    clear_history()
    body = _recommend_via_api("http-user")
    facility_id = body["recommendations"][0]["facility"]["id"]

    resp = client.post(
        "/matches/actions",
        json={"user_id": "http-user", "facility_id": facility_id, "action": "viewed"},
    )
    assert resp.status_code == 200
    assert resp.json()["status"] == "tracked"
    assert resp.json()["record"]["status"] == "IN_PROGRESS"

    resp = client.post(
        "/matches/actions",
        json={"user_id": "http-user", "facility_id": "F999", "action": "contacted"},
    )
    assert resp.json() == {"status": "ignored", "record": None}


def test_action_endpoint_rejects_unknown_action():
    resp = client.post(
        "/matches/actions",
        json={"user_id": "u", "facility_id": "F001", "action": "called"},
    )
    assert resp.status_code == 422


def test_complete_and_fetch_record():
    clear_history()
    body = _recommend_via_api("http-user")
    facility_id = body["recommendations"][0]["facility"]["id"]

    resp = client.post(
        "/matches/complete",
        json={
            "user_id": "http-user",
            "facility_id": facility_id,
            "outcome": "CONTRACT_SIGNED",
            "actual_cost": 260,
            "satisfaction": 4.0,
        },
    )
    assert resp.status_code == 200
    record = resp.json()
    assert record["status"] == "COMPLETED"

    fetched = client.get(f"/matches/{record['id']}").json()
    assert fetched["actual_cost"] == 260
    assert fetched["satisfaction_score"] == 4.0

    resp = client.post(
        "/matches/complete",
        json={"user_id": "http-user", "facility_id": facility_id, "outcome": "USER_REJECTED"},
    )
    assert resp.status_code == 409

    resp = client.post("/matches/cancel", json={"user_id": "http-user", "facility_id": facility_id})
    assert resp.status_code == 409

    prefs = client.get("/users/http-user/preferences").json()
    assert prefs["total_recommendations"] == 2
    assert prefs["successful_matches"] == 1


def test_complete_without_record_is_not_found():
    clear_history()
    resp = client.post(
        "/matches/complete",
        json={"user_id": "nobody", "facility_id": "F001", "outcome": "OTHER"},
    )
    assert resp.status_code == 404
    assert client.get("/matches/does-not-exist").status_code == 404


def test_contract_cancel_and_feedback_endpoints():
    clear_history()
    body = _recommend_via_api("http-user")
    first, second = (item["facility"]["id"] for item in body["recommendations"])

    signed = client.post("/matches/contract", json={"user_id": "http-user", "facility_id": first})
    assert signed.json()["outcome"] == "CONTRACT_SIGNED"

    cancelled = client.post("/matches/cancel", json={"user_id": "http-user", "facility_id": second})
    assert cancelled.json()["status"] == "CANCELLED"

    record_id = signed.json()["id"]
    resp = client.post(f"/matches/{record_id}/feedback", json={"satisfaction": 5.0, "feedback": "Lovely"})
    assert resp.status_code == 200
    assert resp.json()["feedback"] == "Lovely"

    resp = client.post(f"/matches/{record_id}/feedback", json={"satisfaction": 7})
    assert resp.status_code == 422

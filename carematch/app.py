from __future__ import annotations

import logging

from fastapi import BackgroundTasks, FastAPI, Query, Request
from fastapi.responses import JSONResponse

from .analytics.aggregator import MatchAnalytics
from .analytics.reports import SuggestionSet
from .analytics.suggestions import SuggestionBoard, generate_improvement_suggestions
from .errors import (
    CareMatchError,
    ConcurrentUpdateError,
    InvalidInputError,
    InvalidTransitionError,
    NotFoundError,
)
from .history.models import (
    ActionRequest,
    ActionResponse,
    CompleteMatchRequest,
    FeedbackRequest,
    MatchRecord,
    MatchTarget,
    RecordMatchesRequest,
    RecordMatchesResponse,
)
from .history.store import get_store
from .history.tracking import (
    cancel_matching,
    complete_matching,
    confirm_contract,
    record_action,
    record_recommendations,
    submit_feedback,
)
from .learning.adjuster import UserPreferenceAnalysis, adjust_with_learning, analyze_user_preferences
from .matching.assembler import build_recommendations
from .matching.models import (
    HealthProfile,
    Preference,
    RecommendationRequest,
    RecommendationResponse,
    UserRecommendationRequest,
)
from .matching.profiles import get_profile_registry

logger = logging.getLogger(__name__)

app = FastAPI(title="Care Facility Matching API", version="1.0.0")

_store = get_store()
_analytics = MatchAnalytics(_store)
_store.subscribe(_analytics.invalidate)
_suggestions = SuggestionBoard()

_ERROR_STATUS: list[tuple[type[CareMatchError], int]] = [
    (NotFoundError, 404),
    (InvalidTransitionError, 409),
    (ConcurrentUpdateError, 409),
    (InvalidInputError, 422),
]


def get_suggestion_board() -> SuggestionBoard:
    return _suggestions


@app.exception_handler(CareMatchError)
async def care_match_error(request: Request, exc: CareMatchError) -> JSONResponse:
    status_code = 400
    for error_type, code in _ERROR_STATUS:
        if isinstance(exc, error_type):
            status_code = code
            break
    logger.warning("%s %s failed: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=status_code, content={"detail": str(exc)})


def _recommend(
    profile: HealthProfile,
    preference: Preference,
    user_id: str | None,
    coordinator_id: str | None,
    apply_learning: bool,
    record: bool,
) -> RecommendationResponse:
    if user_id is None and (apply_learning or record):
        raise InvalidInputError("user_id is required for learning or recording")

    response = build_recommendations(profile, preference)
    if user_id is None:
        return response

    recs = response.recommendations
    if apply_learning:
        recs = adjust_with_learning(recs, user_id, _store)

    batch_id = None
    if record and recs:
        records = record_recommendations(user_id, coordinator_id, recs, profile, preference, _store)
        batch_id = records[0].batch_id

    return RecommendationResponse(
        recommendations=recs,
        total_candidates=response.total_candidates,
        batch_id=batch_id,
    )


# ── Recommendation endpoints ─────────────────────────────────────────────


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


@app.post("/recommendations", response_model=RecommendationResponse)
def recommendations(body: RecommendationRequest) -> RecommendationResponse:
    return _recommend(
        body.profile,
        body.preference,
        body.user_id,
        body.coordinator_id,
        body.apply_learning,
        body.record,
    )


@app.put("/users/{user_id}/profile", response_model=HealthProfile)
def register_profile(user_id: str, body: HealthProfile) -> HealthProfile:
    return get_profile_registry().register(user_id, body)


@app.post("/users/{user_id}/recommendations", response_model=RecommendationResponse)
def user_recommendations(user_id: str, body: UserRecommendationRequest) -> RecommendationResponse:
    profile = get_profile_registry().get(user_id)
    return _recommend(
        profile,
        body.preference,
        user_id,
        body.coordinator_id,
        body.apply_learning,
        body.record,
    )


@app.get("/users/{user_id}/preferences", response_model=UserPreferenceAnalysis)
def user_preferences(user_id: str) -> UserPreferenceAnalysis:
    return analyze_user_preferences(user_id, _store)


# ── Match history endpoints ──────────────────────────────────────────────


@app.post("/matches", response_model=RecordMatchesResponse)
def record_matches(body: RecordMatchesRequest) -> RecordMatchesResponse:
    records = record_recommendations(
        body.user_id,
        body.coordinator_id,
        body.recommendations,
        body.profile,
        body.preference,
        _store,
    )
    return RecordMatchesResponse(
        batch_id=records[0].batch_id if records else None,
        records=records,
    )


@app.post("/matches/actions", response_model=ActionResponse)
def match_action(body: ActionRequest) -> ActionResponse:
    record = record_action(body.user_id, body.facility_id, body.action, _store)
    if record is None:
        return ActionResponse(status="ignored")
    return ActionResponse(status="tracked", record=record)


@app.post("/matches/complete", response_model=MatchRecord)
def match_complete(body: CompleteMatchRequest) -> MatchRecord:
    return complete_matching(
        body.user_id,
        body.facility_id,
        body.outcome,
        actual_cost=body.actual_cost,
        satisfaction=body.satisfaction,
        feedback=body.feedback,
        store=_store,
    )


@app.post("/matches/contract", response_model=MatchRecord)
def match_contract(body: MatchTarget) -> MatchRecord:
    return confirm_contract(body.user_id, body.facility_id, _store)


@app.post("/matches/cancel", response_model=MatchRecord)
def match_cancel(body: MatchTarget) -> MatchRecord:
    return cancel_matching(body.user_id, body.facility_id, _store)


@app.get("/matches/{record_id}", response_model=MatchRecord)
def match_record(record_id: str) -> MatchRecord:
    return _store.get(record_id)


@app.post("/matches/{record_id}/feedback", response_model=MatchRecord)
def match_feedback(record_id: str, body: FeedbackRequest) -> MatchRecord:
    return submit_feedback(record_id, body.satisfaction, body.feedback, _store)


@app.get("/users/{user_id}/matches", response_model=list[MatchRecord])
def user_matches(user_id: str) -> list[MatchRecord]:
    return _store.find_by_user(user_id)


# ── Reporting endpoints ──────────────────────────────────────────────────


@app.get("/reports/suggestions", response_model=SuggestionSet | None)
def latest_suggestions() -> SuggestionSet | None:
    return _suggestions.latest()


@app.post("/reports/suggestions", status_code=202)
def request_suggestions(background_tasks: BackgroundTasks) -> dict[str, str]:
    background_tasks.add_task(generate_improvement_suggestions, _analytics, _suggestions)
    return {"status": "accepted"}


@app.get("/reports/{kind}")
def report(kind: str, days: int = Query(default=30)) -> dict:
    return _analytics.get_report(kind, days).model_dump(mode="json")


@app.get("/cache/stats")
def cache_stats() -> dict:
    return _analytics.cache.stats()

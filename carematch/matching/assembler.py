from __future__ import annotations

import logging
import time

from .directory import FacilityDirectory, get_directory
from .filters import filter_candidates
from .models import (
    FacilityCandidate,
    HealthProfile,
    Preference,
    Recommendation,
    RecommendationResponse,
)
from .scoring import MAX_SCORE, score_candidate

logger = logging.getLogger(__name__)

SPECIALIZATION_LABELS = {
    "dementia": "dementia care",
    "medical": "medical care",
    "rehabilitation": "rehabilitation",
    "hospice": "hospice care",
}


def ranking_key(rec: Recommendation) -> tuple[float, float, str]:
    """Score desc, then evaluation score desc, then facility id asc."""
    evaluation = rec.facility.evaluation_score
    return (
        -rec.score,
        -evaluation if evaluation is not None else float("inf"),
        rec.facility.id,
    )


def rank_recommendations(recs: list[Recommendation]) -> list[Recommendation]:
    return sorted(recs, key=ranking_key)


def estimate_monthly_cost(candidate: FacilityCandidate, profile: HealthProfile) -> float | None:
    """Base fee adjusted for the extra care heavier care grades require."""
    if candidate.monthly_fee is None:
        return None
    multiplier = 1.0
    if profile.care_grade <= 2:
        multiplier += 0.3
    elif profile.care_grade == 3:
        multiplier += 0.15
    return float(round(candidate.monthly_fee * multiplier))


def estimated_cost_range(candidate: FacilityCandidate) -> str:
    if candidate.monthly_fee is None:
        return "consultation required"
    low = int(candidate.monthly_fee)
    # Optional services can add up to half the base fee
    high = int(candidate.monthly_fee * 1.5)
    return f"{low}-{high}"


def explain(candidate: FacilityCandidate, profile: HealthProfile, score: float) -> str:
    lines = [f"Match score: {score:.1f}/{MAX_SCORE:.1f}"]

    if candidate.grade is not None:
        grade = f"Facility grade: {candidate.grade}"
        if candidate.evaluation_score is not None:
            grade += f" ({candidate.evaluation_score:g} points)"
        lines.append(grade)

    if candidate.accepts_care_grade(profile.care_grade):
        lines.append(f"Accepts care grade {profile.care_grade}")

    if candidate.specializations:
        labels = [SPECIALIZATION_LABELS.get(s, s) for s in sorted(candidate.specializations)]
        lines.append(f"Specializations: {', '.join(labels)}")

    staff = []
    if candidate.has_doctor:
        staff.append("resident doctor")
    if candidate.has_nurse_24h:
        staff.append("24h nursing")
    if staff:
        lines.append(f"Medical staff: {', '.join(staff)}")

    if candidate.available_beds > 0:
        lines.append(f"Available: {candidate.available_beds} beds free")

    if candidate.monthly_fee is not None:
        lines.append(f"Estimated cost: {estimated_cost_range(candidate)} per month")

    access = []
    if candidate.near_subway:
        access.append("near subway")
    if candidate.near_hospital:
        access.append("near hospital")
    if access:
        lines.append(f"Accessibility: {', '.join(access)}")

    return "\n".join(lines)


def build_recommendation(
    candidate: FacilityCandidate, profile: HealthProfile, preference: Preference,
) -> Recommendation:
    score, breakdown = score_candidate(candidate, profile, preference)
    return Recommendation(
        facility=candidate,
        score=score,
        breakdown=breakdown,
        explanation=explain(candidate, profile, score),
        estimated_monthly_cost=estimate_monthly_cost(candidate, profile),
        estimated_cost_range=estimated_cost_range(candidate),
    )


def assemble(
    candidates: list[FacilityCandidate],
    profile: HealthProfile,
    preference: Preference,
) -> list[Recommendation]:
    """Score, rank and truncate an already-filtered candidate list."""
    scored = [build_recommendation(c, profile, preference) for c in candidates]
    return rank_recommendations(scored)[: preference.max_results]


def build_recommendations(
    profile: HealthProfile,
    preference: Preference,
    directory: FacilityDirectory | None = None,
) -> RecommendationResponse:
    start_time = time.time()
    if directory is None:
        directory = get_directory()

    candidates = filter_candidates(
        directory.find_candidates(profile.care_grade), profile, preference,
    )
    recommendations = assemble(candidates, profile, preference)

    elapsed_ms = round((time.time() - start_time) * 1000, 1)
    logger.info(
        "Recommended %d of %d candidates for care grade %d in %.1f ms",
        len(recommendations), len(candidates), profile.care_grade, elapsed_ms,
    )
    return RecommendationResponse(
        recommendations=recommendations, total_candidates=len(candidates),
    )


def recommend(
    profile: HealthProfile,
    preference: Preference,
    directory: FacilityDirectory | None = None,
) -> list[Recommendation]:
    return build_recommendations(profile, preference, directory).recommendations

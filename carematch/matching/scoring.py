"""
Weighted facility match scoring.

Every sub-score is a pure function of (candidate, profile, preference) on a
0-5 scale. ``SCORE_TABLE`` maps each sub-score name to its weight and
function; the final match score is the weighted sum, so with the default
weights (summing to 1.0) it stays within 0-5 as well.
"""
from __future__ import annotations

from collections.abc import Callable

from .models import FacilityCandidate, HealthProfile, Preference

MAX_SCORE = 5.0
BASE_SCORE = 2.5

GRADE_POINTS: dict[str, float] = {"A": 5.0, "B": 4.0, "C": 3.0, "D": 2.0, "E": 1.0}

ScoreFn = Callable[[FacilityCandidate, HealthProfile, Preference], float]


def _cap(score: float) -> float:
    return max(0.0, min(score, MAX_SCORE))


def grade_score(
    candidate: FacilityCandidate, profile: HealthProfile, preference: Preference,
) -> float:
    if candidate.grade is None:
        return BASE_SCORE
    return GRADE_POINTS.get(candidate.grade, BASE_SCORE)


def specialization_score(
    candidate: FacilityCandidate, profile: HealthProfile, preference: Preference,
) -> float:
    specs = candidate.specializations
    score = BASE_SCORE
    if profile.ltci_grade == 6 and "dementia" in specs:
        score += 2.0
    if profile.care_grade <= 2 and "medical" in specs:
        score += 2.0
    if profile.mobility_level is not None and profile.mobility_level >= 2 and "rehabilitation" in specs:
        score += 1.5
    if profile.needs_hospice and "hospice" in specs:
        score += 2.5
    return _cap(score)


def staffing_score(
    candidate: FacilityCandidate, profile: HealthProfile, preference: Preference,
) -> float:
    score = BASE_SCORE
    # Severe cases (grade 1-2) need medical staff on site
    if profile.care_grade <= 2:
        if candidate.has_doctor:
            score += 1.5
        if candidate.has_nurse_24h:
            score += 1.0
    if candidate.occupancy > 0 and candidate.nurse_count / candidate.occupancy >= 0.1:
        score += 0.5
    return _cap(score)


def location_score(
    candidate: FacilityCandidate, profile: HealthProfile, preference: Preference,
) -> float:
    score = BASE_SCORE
    if candidate.near_subway:
        score += 1.0
    if candidate.near_hospital:
        score += 1.0
    if candidate.near_pharmacy:
        score += 0.5
    return _cap(score)


def cost_score(
    candidate: FacilityCandidate, profile: HealthProfile, preference: Preference,
) -> float:
    if candidate.monthly_fee is None or preference.max_budget is None:
        return BASE_SCORE

    ratio = candidate.monthly_fee / preference.max_budget
    if ratio <= 0.70:
        score = 5.0
    elif ratio <= 0.85:
        score = 4.0
    elif ratio <= 1.00:
        score = 3.0
    else:
        score = 1.0
    if candidate.accepts_ltci:
        score += 0.5
    return _cap(score)


SCORE_TABLE: dict[str, tuple[float, ScoreFn]] = {
    "grade": (0.30, grade_score),
    "specialization": (0.25, specialization_score),
    "staffing": (0.20, staffing_score),
    "location": (0.15, location_score),
    "cost": (0.10, cost_score),
}


def score_candidate(
    candidate: FacilityCandidate,
    profile: HealthProfile,
    preference: Preference,
    table: dict[str, tuple[float, ScoreFn]] | None = None,
) -> tuple[float, dict[str, float]]:
    """Return ``(final_score, {sub_score_name: value})`` for one candidate."""
    table = table or SCORE_TABLE
    breakdown = {
        name: _cap(fn(candidate, profile, preference)) for name, (_, fn) in table.items()
    }
    total = sum(weight * breakdown[name] for name, (weight, _) in table.items())
    return round(_cap(total), 4), breakdown

from __future__ import annotations

import logging
from collections import Counter

from pydantic import BaseModel, Field

from ..history.models import MatchRecord
from ..history.store import MatchHistoryStore, get_store
from ..matching.assembler import rank_recommendations
from ..matching.directory import FacilityDirectory, get_directory
from ..matching.models import Recommendation
from ..matching.scoring import MAX_SCORE

logger = logging.getLogger(__name__)

TYPE_WEIGHT = 0.20
GRADE_WEIGHT = 0.15
COST_WEIGHT = 0.10


class UserPreferenceAnalysis(BaseModel):
    user_id: str
    total_recommendations: int = 0
    successful_matches: int = 0
    preferred_facility_types: dict[str, float] = Field(default_factory=dict)
    preferred_facility_grades: dict[str, float] = Field(default_factory=dict)
    average_successful_cost: float = 0.0
    average_satisfaction: float = 0.0


def _normalised(counter: Counter[str]) -> dict[str, float]:
    total = sum(counter.values())
    if total == 0:
        return {}
    return {key: count / total for key, count in counter.items()}


def _distributions(
    successes: list[MatchRecord], directory: FacilityDirectory,
) -> tuple[dict[str, float], dict[str, float]]:
    types: Counter[str] = Counter()
    grades: Counter[str] = Counter()
    for record in successes:
        facility = directory.get(record.facility_id)
        if facility is None:
            continue
        if facility.facility_type:
            types[facility.facility_type] += 1
        if facility.grade:
            grades[facility.grade] += 1
    return _normalised(types), _normalised(grades)


def _average_cost(successes: list[MatchRecord]) -> float:
    costs = [r.actual_cost for r in successes if r.actual_cost is not None]
    return sum(costs) / len(costs) if costs else 0.0


def adjustment_factor(
    rec: Recommendation,
    type_affinity: dict[str, float],
    grade_affinity: dict[str, float],
    avg_cost: float,
) -> float:
    """Multiplier in [1.0, 1.45]; any term lacking data contributes nothing."""
    facility = rec.facility
    factor = 1.0
    if facility.facility_type is not None:
        factor += TYPE_WEIGHT * type_affinity.get(facility.facility_type, 0.0)
    if facility.grade is not None:
        factor += GRADE_WEIGHT * grade_affinity.get(facility.grade, 0.0)
    if avg_cost > 0 and facility.monthly_fee is not None:
        similarity = 1.0 - abs(facility.monthly_fee - avg_cost) / avg_cost
        factor += COST_WEIGHT * max(0.0, similarity)
    return factor


def adjust_with_learning(
    recommendations: list[Recommendation],
    user_id: str,
    store: MatchHistoryStore | None = None,
    directory: FacilityDirectory | None = None,
) -> list[Recommendation]:
    """Boost recommendations resembling the user's past signed contracts.

    Returns the input list untouched when the user has no successful
    matches. History is only read, never written.
    """
    store = store if store is not None else get_store()
    history = store.find_by_user(user_id)
    if not history:
        return recommendations

    successes = [r for r in history if r.is_successful_match()]
    if not successes:
        return recommendations

    directory = directory if directory is not None else get_directory()
    type_affinity, grade_affinity = _distributions(successes, directory)
    avg_cost = _average_cost(successes)

    adjusted = []
    for rec in recommendations:
        factor = adjustment_factor(rec, type_affinity, grade_affinity, avg_cost)
        adjusted.append(rec.model_copy(update={
            "score": round(min(rec.score * factor, MAX_SCORE), 4),
            "explanation": f"{rec.explanation}\n(adjusted for past successful matches)",
            "learning_adjusted": True,
        }))

    logger.info(
        "Adjusted %d recommendations for user %s from %d successful matches",
        len(adjusted), user_id, len(successes),
    )
    return rank_recommendations(adjusted)


def analyze_user_preferences(
    user_id: str,
    store: MatchHistoryStore | None = None,
    directory: FacilityDirectory | None = None,
) -> UserPreferenceAnalysis:
    store = store if store is not None else get_store()
    history = store.find_by_user(user_id)
    if not history:
        return UserPreferenceAnalysis(user_id=user_id)

    directory = directory if directory is not None else get_directory()
    successes = [r for r in history if r.is_successful_match()]
    type_affinity, grade_affinity = _distributions(successes, directory)
    rated = [r.satisfaction_score for r in successes if r.satisfaction_score is not None]

    return UserPreferenceAnalysis(
        user_id=user_id,
        total_recommendations=len(history),
        successful_matches=len(successes),
        preferred_facility_types=type_affinity,
        preferred_facility_grades=grade_affinity,
        average_successful_cost=round(_average_cost(successes), 2),
        average_satisfaction=round(sum(rated) / len(rated), 2) if rated else 0.0,
    )

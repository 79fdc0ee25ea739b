from __future__ import annotations

import logging

import numpy as np

from .models import FacilityCandidate, HealthProfile, Preference

logger = logging.getLogger(__name__)

EARTH_RADIUS_KM = 6371.0
GRADE_ORDER = ["A", "B", "C", "D", "E"]
OPERATING_STATUSES = {"normal", "operating", "정상", "운영중"}


def haversine_km(
    lat: float, lon: float, lats: np.ndarray, lons: np.ndarray,
) -> np.ndarray:
    """Great-circle distance in km from one point to each of *lats*/*lons*."""
    lat1, lon1 = np.radians(lat), np.radians(lon)
    lat2, lon2 = np.radians(lats), np.radians(lons)
    a = (
        np.sin((lat2 - lat1) / 2.0) ** 2
        + np.cos(lat1) * np.cos(lat2) * np.sin((lon2 - lon1) / 2.0) ** 2
    )
    return 2.0 * EARTH_RADIUS_KM * np.arcsin(np.sqrt(np.clip(a, 0.0, 1.0)))


def is_compatible(candidate: FacilityCandidate, profile: HealthProfile) -> bool:
    return (
        candidate.accepts_care_grade(profile.care_grade)
        and candidate.available_beds > 0
        and candidate.operating_status.strip().lower() in OPERATING_STATUSES
    )


def _grade_within(grade: str | None, min_grade: str | None) -> bool:
    if min_grade is None or grade is None or grade not in GRADE_ORDER:
        return True
    return GRADE_ORDER.index(grade) <= GRADE_ORDER.index(min_grade)


def matches_preference(candidate: FacilityCandidate, preference: Preference) -> bool:
    if preference.preferred_regions and candidate.region not in preference.preferred_regions:
        return False
    if preference.preferred_types and candidate.facility_type not in preference.preferred_types:
        return False
    if (
        preference.max_budget is not None
        and candidate.monthly_fee is not None
        and candidate.monthly_fee > preference.max_budget
    ):
        return False
    return _grade_within(candidate.grade, preference.min_grade)


def _within_radius(
    candidates: list[FacilityCandidate], preference: Preference,
) -> list[FacilityCandidate]:
    located = [c for c in candidates if c.latitude is not None and c.longitude is not None]
    if not located:
        return candidates

    distances = haversine_km(
        preference.latitude,
        preference.longitude,
        np.array([c.latitude for c in located], dtype=float),
        np.array([c.longitude for c in located], dtype=float),
    )
    too_far = {c.id for c, d in zip(located, distances) if d > preference.max_distance_km}
    # Facilities without coordinates cannot be ruled out
    return [c for c in candidates if c.id not in too_far]


def filter_candidates(
    candidates: list[FacilityCandidate],
    profile: HealthProfile,
    preference: Preference,
) -> list[FacilityCandidate]:
    """Apply the hard compatibility rules, then the caller's preferences."""
    compatible = [c for c in candidates if is_compatible(c, profile)]
    filtered = [c for c in compatible if matches_preference(c, preference)]
    if preference.max_distance_km is not None and preference.has_location:
        filtered = _within_radius(filtered, preference)

    logger.debug(
        "Filtered %d candidates -> %d compatible -> %d matching preferences",
        len(candidates), len(compatible), len(filtered),
    )
    return filtered

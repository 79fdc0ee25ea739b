from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from ..config import DEFAULT_MATCHING_CONFIG

FacilityGrade = Literal["A", "B", "C", "D", "E"]


class FacilityCandidate(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1)
    name: str = ""
    facility_type: str | None = None
    region: str | None = None
    grade: str | None = None
    evaluation_score: float | None = None
    acceptable_care_grades: frozenset[int] = Field(default_factory=frozenset)
    specializations: frozenset[str] = Field(default_factory=frozenset)
    has_doctor: bool = False
    has_nurse_24h: bool = False
    nurse_count: int = Field(default=0, ge=0)
    capacity: int = Field(default=0, ge=0)
    occupancy: int = Field(default=0, ge=0)
    monthly_fee: float | None = Field(default=None, ge=0)
    latitude: float | None = Field(default=None, ge=-90, le=90)
    longitude: float | None = Field(default=None, ge=-180, le=180)
    near_subway: bool = False
    near_hospital: bool = False
    near_pharmacy: bool = False
    accepts_ltci: bool = True
    operating_status: str = "normal"

    @property
    def available_beds(self) -> int:
        return self.capacity - self.occupancy

    def accepts_care_grade(self, care_grade: int) -> bool:
        return care_grade in self.acceptable_care_grades


class HealthProfile(BaseModel):
    model_config = ConfigDict(frozen=True)

    user_id: str | None = None
    care_grade: int = Field(..., ge=1, le=6, description="1 = most severe, 6 = cognitive support")
    ltci_grade: int | None = Field(default=None, ge=1, le=6)
    mobility_level: int | None = Field(default=None, ge=0)
    needs_hospice: bool = False


class Preference(BaseModel):
    model_config = ConfigDict(frozen=True)

    preferred_regions: frozenset[str] = Field(default_factory=frozenset)
    preferred_types: frozenset[str] = Field(default_factory=frozenset)
    max_budget: float | None = Field(default=None, gt=0)
    min_grade: FacilityGrade | None = None
    max_results: int = Field(
        default=DEFAULT_MATCHING_CONFIG.default_max_results,
        ge=1,
        le=DEFAULT_MATCHING_CONFIG.max_results_limit,
    )
    latitude: float | None = Field(default=None, ge=-90, le=90)
    longitude: float | None = Field(default=None, ge=-180, le=180)
    max_distance_km: float | None = Field(
        default=None,
        gt=0,
        le=DEFAULT_MATCHING_CONFIG.max_radius_km,
        description="Search radius around latitude/longitude",
    )

    @field_validator("preferred_regions", "preferred_types")
    @classmethod
    def _no_blank_entries(cls, values: frozenset[str]) -> frozenset[str]:
        cleaned = frozenset(v.strip() for v in values)
        if "" in cleaned:
            raise ValueError("entries must not be empty")
        return cleaned

    @model_validator(mode="after")
    def _location_complete(self) -> Preference:
        if (self.latitude is None) != (self.longitude is None):
            raise ValueError("latitude and longitude must be given together")
        if self.max_distance_km is not None and self.latitude is None:
            raise ValueError("max_distance_km requires latitude and longitude")
        return self

    @property
    def has_location(self) -> bool:
        return self.latitude is not None and self.longitude is not None


class Recommendation(BaseModel):
    facility: FacilityCandidate
    score: float = Field(..., ge=0.0, le=5.0)
    breakdown: dict[str, float] = Field(default_factory=dict)
    explanation: str = ""
    estimated_monthly_cost: float | None = None
    estimated_cost_range: str = ""
    learning_adjusted: bool = False


class RecommendationRequest(BaseModel):
    profile: HealthProfile
    preference: Preference = Field(default_factory=Preference)
    user_id: str | None = Field(default=None, min_length=1)
    coordinator_id: str | None = None
    apply_learning: bool = Field(
        default=False, description="Re-weight results using the user's successful matches"
    )
    record: bool = Field(default=False, description="Persist the batch to match history")


class UserRecommendationRequest(BaseModel):
    preference: Preference = Field(default_factory=Preference)
    coordinator_id: str | None = None
    apply_learning: bool = True
    record: bool = True


class RecommendationResponse(BaseModel):
    recommendations: list[Recommendation]
    total_candidates: int
    batch_id: str | None = None

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class _Report(BaseModel):
    model_config = ConfigDict(frozen=True)


class TrendReport(_Report):
    window_days: int
    total_matches: int
    successful_matches: int
    success_rate: float
    average_matches_per_day: float
    daily_match_counts: dict[str, int] = Field(default_factory=dict)
    generated_at: datetime


class RankPerformance(_Report):
    rank: int
    total_recommendations: int
    viewed_count: int
    contacted_count: int
    selected_count: int
    view_rate: float
    contact_rate: float
    selection_rate: float


class RankingEffectivenessReport(_Report):
    window_days: int
    rankings: list[RankPerformance] = Field(default_factory=list)
    total_recommendations: int
    overall_view_rate: float
    overall_contact_rate: float
    overall_selection_rate: float
    top_rank_advantage: float
    generated_at: datetime


class FacilityPerformance(_Report):
    facility_id: str
    total_matches: int
    successful_matches: int
    success_rate: float
    average_satisfaction: float
    performance_score: float
    performance_grade: str


class FacilityPerformanceReport(_Report):
    window_days: int
    facilities: list[FacilityPerformance] = Field(default_factory=list)
    generated_at: datetime


class CoordinatorPerformance(_Report):
    coordinator_id: str | None
    total_matches: int
    successful_matches: int
    success_rate: float
    average_initial_score: float
    average_satisfaction: float
    performance_score: float
    performance_grade: str


class CoordinatorPerformanceReport(_Report):
    window_days: int
    coordinators: list[CoordinatorPerformance] = Field(default_factory=list)
    generated_at: datetime


class FailureAnalysisReport(_Report):
    window_days: int
    missed_opportunities: int
    unexpected_successes: int
    top_missed_opportunities: list[str] = Field(default_factory=list)
    top_unexpected_successes: list[str] = Field(default_factory=list)
    failure_reasons: dict[str, int] = Field(default_factory=dict)
    algorithm_accuracy: float
    improvement_suggestions: list[str] = Field(default_factory=list)
    generated_at: datetime


class DashboardReport(_Report):
    today_matches: int
    today_successes: int
    active_matches: int
    weekly_success_rate: float
    monthly_success_rate: float
    average_completion_hours: float | None
    stale_matches: int
    viewed_not_contacted: int
    urgent_actions: list[str] = Field(default_factory=list)
    top_facilities: list[str] = Field(default_factory=list)
    generated_at: datetime


class AccuracyReport(_Report):
    window_days: int
    total_recommendations: int
    accurate_recommendations: int
    overall_accuracy: float
    successes_by_rank: dict[int, int] = Field(default_factory=dict)
    generated_at: datetime


class MonthlyTrend(_Report):
    year: int
    month: int
    total_matches: int
    successful_matches: int
    success_rate: float
    average_initial_score: float
    average_satisfaction: float


class MonthlyTrendReport(_Report):
    window_days: int
    months: list[MonthlyTrend] = Field(default_factory=list)
    generated_at: datetime


class FacilityTypePerformance(_Report):
    facility_type: str
    total_matches: int
    successful_matches: int
    success_rate: float
    average_initial_score: float
    average_satisfaction: float
    advice: str


class FacilityTypeReport(_Report):
    window_days: int
    facility_types: list[FacilityTypePerformance] = Field(default_factory=list)
    generated_at: datetime


class CostAccuracy(_Report):
    facility_id: str
    samples: int
    average_estimated_cost: float
    average_actual_cost: float
    average_difference: float


class CostAccuracyReport(_Report):
    window_days: int
    facilities: list[CostAccuracy] = Field(default_factory=list)
    generated_at: datetime


class SuggestionSet(_Report):
    suggestions: list[str] = Field(default_factory=list)
    generated_at: datetime

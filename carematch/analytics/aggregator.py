"""
Match outcome reports.

Every ``*_report`` function is pure: it takes a list of MatchRecords, the
current time and a window length, and never touches the store. Rates are
percentages; an empty window yields zero counts and 0.0 rates.
``MatchAnalytics`` wires these functions to the history store and the
report cache.
"""
from __future__ import annotations

import logging
from collections import Counter, defaultdict
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from typing import Any

from ..config import DEFAULT_ANALYTICS_CONFIG, AnalyticsConfig
from ..errors import InvalidInputError
from ..history.models import MatchRecord, MatchStatus
from ..history.store import MatchHistoryStore
from ..matching.directory import FacilityDirectory, get_directory
from .cache import ReportCache
from .reports import (
    AccuracyReport,
    CoordinatorPerformance,
    CoordinatorPerformanceReport,
    CostAccuracy,
    CostAccuracyReport,
    DashboardReport,
    FacilityPerformance,
    FacilityPerformanceReport,
    FacilityTypePerformance,
    FacilityTypeReport,
    FailureAnalysisReport,
    MonthlyTrend,
    MonthlyTrendReport,
    RankingEffectivenessReport,
    RankPerformance,
    TrendReport,
)

logger = logging.getLogger(__name__)

DASHBOARD_WEEK_DAYS = 7
DASHBOARD_MONTH_DAYS = 30
TOP_LIST_SIZE = 10


# ── helpers ──────────────────────────────────────────────────────────────


def success_rate(successful: int, total: int) -> float:
    return successful / total * 100 if total > 0 else 0.0


def _window(records: list[MatchRecord], now: datetime, days: int) -> list[MatchRecord]:
    start = now - timedelta(days=days)
    return [r for r in records if start <= r.created_at <= now]


def _successes(records: list[MatchRecord]) -> int:
    return sum(1 for r in records if r.is_successful_match())


def _mean(values: list[float]) -> float:
    return sum(values) / len(values) if values else 0.0


def _satisfaction(records: list[MatchRecord]) -> float:
    # Unrated records count as 0, as the performance grades expect
    return _mean([r.satisfaction_score or 0.0 for r in records])


def facility_grade(success: float, satisfaction: float) -> tuple[float, str]:
    score = success * 0.7 + satisfaction * 20 * 0.3
    if score >= 90:
        grade = "A+"
    elif score >= 80:
        grade = "A"
    elif score >= 70:
        grade = "B+"
    elif score >= 60:
        grade = "B"
    elif score >= 50:
        grade = "C"
    else:
        grade = "D"
    return score, grade


def coordinator_grade(success: float, satisfaction: float) -> tuple[float, str]:
    score = success * 0.6 + satisfaction * 20 * 0.4
    if score >= 85:
        grade = "최우수"
    elif score >= 75:
        grade = "우수"
    elif score >= 65:
        grade = "양호"
    elif score >= 50:
        grade = "보통"
    else:
        grade = "개선필요"
    return score, grade


def algorithm_accuracy(missed: int, unexpected: int) -> float:
    total = missed + unexpected
    if total == 0:
        return 100.0
    return (1.0 - max(missed, unexpected) / total) * 100


def top_rank_advantage(rankings: list[RankPerformance]) -> float:
    by_rank = {r.rank: r for r in rankings}
    first, second = by_rank.get(1), by_rank.get(2)
    if first is None or second is None or second.selection_rate == 0:
        return 1.0
    return first.selection_rate / second.selection_rate


# ── reports ──────────────────────────────────────────────────────────────


def trend_report(records: list[MatchRecord], now: datetime, window_days: int) -> TrendReport:
    records = _window(records, now, window_days)
    daily = Counter(r.created_at.date().isoformat() for r in records)
    successful = _successes(records)
    return TrendReport(
        window_days=window_days,
        total_matches=len(records),
        successful_matches=successful,
        success_rate=round(success_rate(successful, len(records)), 2),
        average_matches_per_day=round(len(records) / window_days, 2),
        daily_match_counts=dict(sorted(daily.items())),
        generated_at=now,
    )


def ranking_effectiveness_report(
    records: list[MatchRecord], now: datetime, window_days: int,
) -> RankingEffectivenessReport:
    records = _window(records, now, window_days)
    by_rank: dict[int, list[MatchRecord]] = defaultdict(list)
    for r in records:
        by_rank[r.recommendation_rank].append(r)

    rankings = []
    for rank in sorted(by_rank):
        group = by_rank[rank]
        viewed = sum(1 for r in group if r.was_viewed)
        contacted = sum(1 for r in group if r.was_contacted)
        selected = sum(1 for r in group if r.was_selected)
        rankings.append(RankPerformance(
            rank=rank,
            total_recommendations=len(group),
            viewed_count=viewed,
            contacted_count=contacted,
            selected_count=selected,
            view_rate=success_rate(viewed, len(group)),
            contact_rate=success_rate(contacted, len(group)),
            selection_rate=success_rate(selected, len(group)),
        ))

    total = len(records)
    return RankingEffectivenessReport(
        window_days=window_days,
        rankings=rankings,
        total_recommendations=total,
        overall_view_rate=success_rate(sum(r.viewed_count for r in rankings), total),
        overall_contact_rate=success_rate(sum(r.contacted_count for r in rankings), total),
        overall_selection_rate=success_rate(sum(r.selected_count for r in rankings), total),
        top_rank_advantage=top_rank_advantage(rankings),
        generated_at=now,
    )


def facility_performance_report(
    records: list[MatchRecord],
    now: datetime,
    window_days: int,
    min_matches: int = 1,
) -> FacilityPerformanceReport:
    records = _window(records, now, window_days)
    by_facility: dict[str, list[MatchRecord]] = defaultdict(list)
    for r in records:
        by_facility[r.facility_id].append(r)

    facilities = []
    for facility_id, group in by_facility.items():
        if len(group) < min_matches:
            continue
        successful = _successes(group)
        rate = success_rate(successful, len(group))
        satisfaction = _satisfaction(group)
        score, grade = facility_grade(rate, satisfaction)
        facilities.append(FacilityPerformance(
            facility_id=facility_id,
            total_matches=len(group),
            successful_matches=successful,
            success_rate=round(rate, 2),
            average_satisfaction=round(satisfaction, 2),
            performance_score=round(score, 2),
            performance_grade=grade,
        ))

    facilities.sort(key=lambda f: (-f.performance_score, f.facility_id))
    return FacilityPerformanceReport(
        window_days=window_days, facilities=facilities, generated_at=now,
    )


def coordinator_performance_report(
    records: list[MatchRecord], now: datetime, window_days: int,
) -> CoordinatorPerformanceReport:
    records = _window(records, now, window_days)
    by_coordinator: dict[str | None, list[MatchRecord]] = defaultdict(list)
    for r in records:
        by_coordinator[r.coordinator_id].append(r)

    coordinators = []
    for coordinator_id, group in by_coordinator.items():
        successful = _successes(group)
        rate = success_rate(successful, len(group))
        satisfaction = _satisfaction(group)
        score, grade = coordinator_grade(rate, satisfaction)
        coordinators.append(CoordinatorPerformance(
            coordinator_id=coordinator_id,
            total_matches=len(group),
            successful_matches=successful,
            success_rate=round(rate, 2),
            average_initial_score=round(_mean([r.initial_score for r in group]), 2),
            average_satisfaction=round(satisfaction, 2),
            performance_score=round(score, 2),
            performance_grade=grade,
        ))

    coordinators.sort(key=lambda c: (-c.success_rate, c.coordinator_id or ""))
    return CoordinatorPerformanceReport(
        window_days=window_days, coordinators=coordinators, generated_at=now,
    )


def _improvement_suggestions(missed: int, unexpected: int) -> list[str]:
    if missed > unexpected:
        return [
            "High-scoring matches are often passed over: revisit preference weighting",
            "Check that facility data is accurate and up to date",
        ]
    if unexpected > missed:
        return [
            "Low-scoring matches often succeed: look for preference patterns the score misses",
            "Review the match score criteria",
        ]
    return []


def failure_analysis_report(
    records: list[MatchRecord],
    now: datetime,
    window_days: int,
    config: AnalyticsConfig = DEFAULT_ANALYTICS_CONFIG,
) -> FailureAnalysisReport:
    records = _window(records, now, window_days)

    missed = sorted(
        (r for r in records
         if r.initial_score >= config.missed_opportunity_score
         and r.was_viewed and not r.was_selected),
        key=lambda r: -r.initial_score,
    )
    unexpected = sorted(
        (r for r in records
         if r.initial_score <= config.unexpected_success_score and r.is_successful_match()),
        key=lambda r: (-(r.satisfaction_score or 0.0), r.initial_score),
    )
    reasons = Counter(
        (r.outcome.value if r.outcome else "OTHER")
        for r in records if r.status == MatchStatus.FAILED
    )

    return FailureAnalysisReport(
        window_days=window_days,
        missed_opportunities=len(missed),
        unexpected_successes=len(unexpected),
        top_missed_opportunities=[r.id for r in missed[:TOP_LIST_SIZE]],
        top_unexpected_successes=[r.id for r in unexpected[:TOP_LIST_SIZE]],
        failure_reasons=dict(reasons),
        algorithm_accuracy=round(algorithm_accuracy(len(missed), len(unexpected)), 2),
        improvement_suggestions=_improvement_suggestions(len(missed), len(unexpected)),
        generated_at=now,
    )


def dashboard_report(
    records: list[MatchRecord],
    now: datetime,
    config: AnalyticsConfig = DEFAULT_ANALYTICS_CONFIG,
) -> DashboardReport:
    start_of_day = now.replace(hour=0, minute=0, second=0, microsecond=0)
    today = [r for r in records if start_of_day <= r.created_at <= now]
    active = [r for r in records if r.status == MatchStatus.IN_PROGRESS]
    weekly = _window(records, now, DASHBOARD_WEEK_DAYS)
    monthly = _window(records, now, DASHBOARD_MONTH_DAYS)

    durations = [
        (r.completed_at - r.created_at).total_seconds() / 3600
        for r in monthly
        if r.status == MatchStatus.COMPLETED and r.completed_at is not None
    ]

    stale_cutoff = now - timedelta(hours=config.stale_match_hours)
    view_cutoff = now - timedelta(hours=config.viewed_not_contacted_hours)
    stale = sum(1 for r in active if r.created_at < stale_cutoff)
    viewed_not_contacted = sum(
        1 for r in active
        if r.was_viewed and not r.was_contacted
        and r.viewed_at is not None and r.viewed_at < view_cutoff
    )

    actions = []
    if stale:
        actions.append(
            f"{stale} matches open for more than {config.stale_match_hours}h: coordinator follow-up needed"
        )
    if viewed_not_contacted:
        actions.append(
            f"{viewed_not_contacted} matches viewed but not contacted: follow-up needed"
        )

    top = facility_performance_report(records, now, DASHBOARD_WEEK_DAYS).facilities[:5]
    return DashboardReport(
        today_matches=len(today),
        today_successes=_successes(today),
        active_matches=len(active),
        weekly_success_rate=round(success_rate(_successes(weekly), len(weekly)), 2),
        monthly_success_rate=round(success_rate(_successes(monthly), len(monthly)), 2),
        average_completion_hours=round(_mean(durations), 2) if durations else None,
        stale_matches=stale,
        viewed_not_contacted=viewed_not_contacted,
        urgent_actions=actions,
        top_facilities=[
            f"Facility {f.facility_id} (success rate {f.success_rate:.1f}%)" for f in top
        ],
        generated_at=now,
    )


def accuracy_report(records: list[MatchRecord], now: datetime, window_days: int) -> AccuracyReport:
    records = _window(records, now, window_days)
    successes = [r for r in records if r.is_successful_match()]
    by_rank = Counter(r.recommendation_rank for r in successes)
    accurate = sum(1 for r in successes if r.recommendation_rank <= 3)
    return AccuracyReport(
        window_days=window_days,
        total_recommendations=len(records),
        accurate_recommendations=accurate,
        overall_accuracy=round(success_rate(accurate, len(records)), 2),
        successes_by_rank=dict(sorted(by_rank.items())),
        generated_at=now,
    )


def monthly_trend_report(
    records: list[MatchRecord], now: datetime, window_days: int,
) -> MonthlyTrendReport:
    records = _window(records, now, window_days)
    by_month: dict[tuple[int, int], list[MatchRecord]] = defaultdict(list)
    for r in records:
        by_month[(r.created_at.year, r.created_at.month)].append(r)

    months = []
    for (year, month), group in sorted(by_month.items()):
        successful = _successes(group)
        months.append(MonthlyTrend(
            year=year,
            month=month,
            total_matches=len(group),
            successful_matches=successful,
            success_rate=round(success_rate(successful, len(group)), 2),
            average_initial_score=round(_mean([r.initial_score for r in group]), 2),
            average_satisfaction=round(_satisfaction(group), 2),
        ))
    return MonthlyTrendReport(window_days=window_days, months=months, generated_at=now)


def _facility_type_advice(facility_type: str, rate: float) -> str:
    if rate >= 70:
        return f"{facility_type}: strong results, consider weighting it higher"
    if rate >= 50:
        return f"{facility_type}: average results, fine-tune its criteria"
    return f"{facility_type}: weak results, review its matching criteria"


def facility_type_report(
    records: list[MatchRecord],
    now: datetime,
    window_days: int,
    directory: FacilityDirectory | None,
) -> FacilityTypeReport:
    records = _window(records, now, window_days)
    by_type: dict[str, list[MatchRecord]] = defaultdict(list)
    for r in records:
        facility = directory.get(r.facility_id) if directory is not None else None
        if facility is None or not facility.facility_type:
            continue
        by_type[facility.facility_type].append(r)

    types = []
    for facility_type, group in by_type.items():
        successful = _successes(group)
        rate = success_rate(successful, len(group))
        types.append(FacilityTypePerformance(
            facility_type=facility_type,
            total_matches=len(group),
            successful_matches=successful,
            success_rate=round(rate, 2),
            average_initial_score=round(_mean([r.initial_score for r in group]), 2),
            average_satisfaction=round(_satisfaction(group), 2),
            advice=_facility_type_advice(facility_type, rate),
        ))
    types.sort(key=lambda t: (-t.success_rate, t.facility_type))
    return FacilityTypeReport(window_days=window_days, facility_types=types, generated_at=now)


def cost_accuracy_report(
    records: list[MatchRecord], now: datetime, window_days: int, min_samples: int = 1,
) -> CostAccuracyReport:
    records = _window(records, now, window_days)
    by_facility: dict[str, list[MatchRecord]] = defaultdict(list)
    for r in records:
        if r.estimated_cost is not None and r.actual_cost is not None:
            by_facility[r.facility_id].append(r)

    facilities = []
    for facility_id, group in sorted(by_facility.items()):
        if len(group) < min_samples:
            continue
        estimated = _mean([r.estimated_cost for r in group])
        actual = _mean([r.actual_cost for r in group])
        facilities.append(CostAccuracy(
            facility_id=facility_id,
            samples=len(group),
            average_estimated_cost=round(estimated, 2),
            average_actual_cost=round(actual, 2),
            average_difference=round(actual - estimated, 2),
        ))
    return CostAccuracyReport(window_days=window_days, facilities=facilities, generated_at=now)


# ── service ──────────────────────────────────────────────────────────────


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class MatchAnalytics:
    """Cached, read-only access to the reports above."""

    def __init__(
        self,
        store: MatchHistoryStore,
        directory: FacilityDirectory | None = None,
        cache: ReportCache | None = None,
        config: AnalyticsConfig = DEFAULT_ANALYTICS_CONFIG,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.store = store
        self.directory = directory
        self.config = config
        self.cache = cache if cache is not None else ReportCache(config.cache_ttl_seconds)
        self._clock = clock
        self._builders: dict[str, Callable[[list[MatchRecord], datetime, int], Any]] = {
            "trend": trend_report,
            "ranking": ranking_effectiveness_report,
            "facility_performance": lambda rs, now, days: facility_performance_report(
                rs, now, days, config.min_facility_matches,
            ),
            "coordinator_performance": coordinator_performance_report,
            "failures": lambda rs, now, days: failure_analysis_report(rs, now, days, config),
            "dashboard": lambda rs, now, days: dashboard_report(rs, now, config),
            "accuracy": accuracy_report,
            "monthly": monthly_trend_report,
            "facility_type": lambda rs, now, days: facility_type_report(
                rs, now, days, self._facility_directory(),
            ),
            "cost_accuracy": cost_accuracy_report,
        }

    @property
    def report_kinds(self) -> list[str]:
        return list(self._builders)

    def now(self) -> datetime:
        return self._clock()

    def _facility_directory(self) -> FacilityDirectory:
        return self.directory if self.directory is not None else get_directory()

    def invalidate(self) -> None:
        self.cache.invalidate()

    def get_report(self, kind: str, window_days: int = 30) -> Any:
        builder = self._builders.get(kind)
        if builder is None:
            raise InvalidInputError(
                f"Unknown report kind '{kind}', expected one of {', '.join(self._builders)}"
            )
        if window_days <= 0:
            raise InvalidInputError("window_days must be positive")

        cache_key = {"kind": kind, "days": window_days}
        cached = self.cache.get(cache_key)
        if cached is not None:
            return cached

        # Captured before reading so a write during the build is not cached over
        generation = self.cache.generation
        now = self._clock()
        if kind == "dashboard":
            # Open matches of any age count towards the dashboard
            records = self.store.all()
        else:
            records = self.store.find_between(now - timedelta(days=window_days), now)
        report = builder(records, now, window_days)
        self.cache.set(cache_key, report, generation=generation)
        logger.info("Built '%s' report from %d records", kind, len(records))
        return report

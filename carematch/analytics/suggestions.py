from __future__ import annotations

import logging
import threading

from .aggregator import MatchAnalytics
from .reports import SuggestionSet

logger = logging.getLogger(__name__)

LOW_TYPE_SUCCESS_RATE = 30.0
MIN_TOP_RANK_ADVANTAGE = 2.0


class SuggestionBoard:
    """Holds the most recently published improvement suggestions."""

    def __init__(self) -> None:
        self._latest: SuggestionSet | None = None
        self._lock = threading.Lock()

    def publish(self, suggestions: SuggestionSet) -> None:
        with self._lock:
            self._latest = suggestions

    def latest(self) -> SuggestionSet | None:
        with self._lock:
            return self._latest

    def clear(self) -> None:
        with self._lock:
            self._latest = None


def generate_improvement_suggestions(
    analytics: MatchAnalytics, board: SuggestionBoard,
) -> SuggestionSet:
    """Derive tuning suggestions from recent outcomes and publish them.

    Meant to run as a background task; callers read the result from
    *board* rather than waiting on it.
    """
    logger.info("Generating match algorithm improvement suggestions")
    days = analytics.config.suggestion_window_days

    failures = analytics.get_report("failures", days)
    ranking = analytics.get_report("ranking", days)
    types = analytics.get_report("facility_type", days)

    suggestions: list[str] = []
    if failures.missed_opportunities > failures.unexpected_successes:
        suggestions.append(
            "Adjust score weights: strengthen how user preferences are reflected"
        )
    if ranking.top_rank_advantage < MIN_TOP_RANK_ADVANTAGE:
        suggestions.append(
            "Top-ranked recommendations barely outperform the next ones: sharpen ranking"
        )
    for report in types.facility_types:
        if report.success_rate < LOW_TYPE_SUCCESS_RATE:
            suggestions.append(f"Review matching criteria for {report.facility_type} facilities")

    result = SuggestionSet(suggestions=suggestions, generated_at=analytics.now())
    board.publish(result)

    logger.info("Published %d improvement suggestions", len(suggestions))
    for suggestion in suggestions:
        logger.info("Suggestion: %s", suggestion)
    return result

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, Field

from ..errors import InvalidInputError, InvalidTransitionError
from ..matching.models import HealthProfile, Preference, Recommendation


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class MatchStatus(str, Enum):
    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"

    @property
    def is_terminal(self) -> bool:
        return self in (MatchStatus.COMPLETED, MatchStatus.FAILED, MatchStatus.CANCELLED)


class MatchOutcome(str, Enum):
    CONTRACT_SIGNED = "CONTRACT_SIGNED"
    USER_REJECTED = "USER_REJECTED"
    FACILITY_REJECTED = "FACILITY_REJECTED"
    BETTER_OPTION_FOUND = "BETTER_OPTION_FOUND"
    BUDGET_EXCEEDED = "BUDGET_EXCEEDED"
    LOCATION_ISSUE = "LOCATION_ISSUE"
    SERVICE_MISMATCH = "SERVICE_MISMATCH"
    OTHER = "OTHER"


class MatchAction(str, Enum):
    viewed = "viewed"
    contacted = "contacted"
    visited = "visited"


class MatchRecord(BaseModel):
    """One recommended facility for one user, followed through its lifecycle.

    Flags only ever go from False to True. Repeating an action refreshes its
    timestamp but never moves the status backwards, and view/contact/visit
    events arriving after a terminal state only record the flag.
    """

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    user_id: str
    facility_id: str
    coordinator_id: str | None = None
    batch_id: str | None = None
    initial_score: float = Field(..., ge=0.0, le=5.0)
    recommendation_rank: int = Field(..., ge=1)

    status: MatchStatus = MatchStatus.PENDING
    outcome: MatchOutcome | None = None

    was_viewed: bool = False
    was_contacted: bool = False
    was_visited: bool = False
    was_selected: bool = False
    viewed_at: datetime | None = None
    contacted_at: datetime | None = None
    visited_at: datetime | None = None
    selected_at: datetime | None = None
    completed_at: datetime | None = None

    satisfaction_score: float | None = Field(default=None, ge=1.0, le=5.0)
    feedback: str | None = None
    estimated_cost: float | None = None
    actual_cost: float | None = None

    criteria_snapshot: str | None = None
    facility_snapshot: str | None = None

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    version: int = 0

    # -- state machine -----------------------------------------------------

    def _advance(self) -> None:
        if not self.status.is_terminal:
            self.status = MatchStatus.IN_PROGRESS

    def mark_viewed(self, at: datetime | None = None) -> None:
        self.was_viewed = True
        self.viewed_at = at or utcnow()
        if self.status == MatchStatus.PENDING:
            self.status = MatchStatus.IN_PROGRESS

    def mark_contacted(self, at: datetime | None = None) -> None:
        self.was_contacted = True
        self.contacted_at = at or utcnow()
        self._advance()

    def mark_visited(self, at: datetime | None = None) -> None:
        self.was_visited = True
        self.visited_at = at or utcnow()
        self._advance()

    def mark_selected(self, outcome: MatchOutcome, at: datetime | None = None) -> None:
        if self.status == MatchStatus.CANCELLED:
            raise InvalidTransitionError(f"MatchRecord {self.id} was cancelled")
        if self.status.is_terminal and self.outcome != outcome:
            raise InvalidTransitionError(
                f"MatchRecord {self.id} already closed with outcome {self.outcome.value}"
            )
        at = at or utcnow()
        self.was_selected = True
        self.selected_at = at
        self.outcome = outcome
        if outcome == MatchOutcome.CONTRACT_SIGNED:
            self.status = MatchStatus.COMPLETED
            if self.completed_at is None:
                self.completed_at = at
        else:
            self.status = MatchStatus.FAILED

    def mark_contracted(self, at: datetime | None = None) -> None:
        """Close the match as signed without going through selection."""
        if self.status == MatchStatus.CANCELLED:
            raise InvalidTransitionError(f"MatchRecord {self.id} was cancelled")
        self.status = MatchStatus.COMPLETED
        self.outcome = MatchOutcome.CONTRACT_SIGNED
        if self.completed_at is None:
            self.completed_at = at or utcnow()

    def cancel(self) -> None:
        if self.status.is_terminal:
            raise InvalidTransitionError(
                f"MatchRecord {self.id} is already {self.status.value}"
            )
        self.status = MatchStatus.CANCELLED

    def apply(self, action: MatchAction, at: datetime | None = None) -> None:
        if action == MatchAction.viewed:
            self.mark_viewed(at)
        elif action == MatchAction.contacted:
            self.mark_contacted(at)
        else:
            self.mark_visited(at)

    def update_feedback(self, satisfaction: float, feedback: str | None = None) -> None:
        if not 1.0 <= satisfaction <= 5.0:
            raise InvalidInputError("satisfaction must be between 1.0 and 5.0")
        self.satisfaction_score = satisfaction
        if feedback is not None:
            self.feedback = feedback

    # -- derived -----------------------------------------------------------

    def is_successful_match(self) -> bool:
        return self.status == MatchStatus.COMPLETED and self.outcome == MatchOutcome.CONTRACT_SIGNED

    @property
    def progress_percentage(self) -> int:
        flags = (self.was_viewed, self.was_contacted, self.was_visited, self.was_selected)
        return 25 * sum(flags)


# ── API payloads ─────────────────────────────────────────────────────────


class RecordMatchesRequest(BaseModel):
    user_id: str = Field(..., min_length=1)
    coordinator_id: str | None = None
    profile: HealthProfile
    preference: Preference = Field(default_factory=Preference)
    recommendations: list[Recommendation]


class RecordMatchesResponse(BaseModel):
    batch_id: str | None
    records: list[MatchRecord]


class ActionRequest(BaseModel):
    user_id: str = Field(..., min_length=1)
    facility_id: str = Field(..., min_length=1)
    action: MatchAction


class ActionResponse(BaseModel):
    status: str
    record: MatchRecord | None = None


class CompleteMatchRequest(BaseModel):
    user_id: str = Field(..., min_length=1)
    facility_id: str = Field(..., min_length=1)
    outcome: MatchOutcome
    actual_cost: float | None = Field(default=None, ge=0)
    satisfaction: float | None = Field(default=None, ge=1.0, le=5.0)
    feedback: str | None = Field(default=None, max_length=2000)


class MatchTarget(BaseModel):
    user_id: str = Field(..., min_length=1)
    facility_id: str = Field(..., min_length=1)


class FeedbackRequest(BaseModel):
    satisfaction: float = Field(..., ge=1.0, le=5.0)
    feedback: str | None = Field(default=None, max_length=2000)

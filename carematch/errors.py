from __future__ import annotations


class CareMatchError(Exception):
    """Base class for recoverable domain errors."""


class InvalidInputError(CareMatchError):
    pass


class NotFoundError(CareMatchError):
    pass


class InvalidTransitionError(CareMatchError):
    pass


class ConcurrentUpdateError(CareMatchError):
    """Raised when a record was modified after it was read."""

    def __init__(self, record_id: str, expected: int, actual: int) -> None:
        super().__init__(
            f"MatchRecord {record_id} is at version {actual}, expected {expected}"
        )
        self.record_id = record_id
        self.expected = expected
        self.actual = actual

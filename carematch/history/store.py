from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from datetime import datetime

from ..errors import ConcurrentUpdateError, NotFoundError
from .models import MatchRecord, utcnow

logger = logging.getLogger(__name__)


class MatchHistoryStore:
    """In-memory MatchRecord persistence with optimistic version checks.

    Records are copied on the way in and out, so a caller only changes the
    stored record through :meth:`save`, which rejects stale versions.
    """

    def __init__(self) -> None:
        self._records: dict[str, MatchRecord] = {}
        self._lock = threading.Lock()
        self._listeners: list[Callable[[], None]] = []

    def subscribe(self, listener: Callable[[], None]) -> None:
        """Call *listener* after every successful write."""
        self._listeners.append(listener)

    def _notify(self) -> None:
        for listener in self._listeners:
            listener()

    # -- writes --------------------------------------------------------------

    def add(self, record: MatchRecord) -> MatchRecord:
        with self._lock:
            stored = record.model_copy(deep=True, update={"version": 1})
            self._records[stored.id] = stored
        self._notify()
        return stored.model_copy(deep=True)

    def save(self, record: MatchRecord, expected_version: int) -> MatchRecord:
        with self._lock:
            current = self._records.get(record.id)
            if current is None:
                raise NotFoundError(f"MatchRecord {record.id} not found")
            if current.version != expected_version:
                raise ConcurrentUpdateError(record.id, expected_version, current.version)
            stored = record.model_copy(
                deep=True,
                update={"version": expected_version + 1, "updated_at": utcnow()},
            )
            self._records[stored.id] = stored
        self._notify()
        return stored.model_copy(deep=True)

    def clear(self) -> None:
        with self._lock:
            self._records.clear()
        self._notify()

    # -- reads ---------------------------------------------------------------

    def _select(self, predicate: Callable[[MatchRecord], bool]) -> list[MatchRecord]:
        with self._lock:
            matches = [r.model_copy(deep=True) for r in self._records.values() if predicate(r)]
        # Newest first; equal timestamps fall back to latest insertion first, like latest_for
        return sorted(reversed(matches), key=lambda r: r.created_at, reverse=True)

    def get(self, record_id: str) -> MatchRecord:
        with self._lock:
            record = self._records.get(record_id)
            if record is None:
                raise NotFoundError(f"MatchRecord {record_id} not found")
            return record.model_copy(deep=True)

    def latest_for(self, user_id: str, facility_id: str) -> MatchRecord | None:
        with self._lock:
            latest: MatchRecord | None = None
            for record in self._records.values():
                if record.user_id != user_id or record.facility_id != facility_id:
                    continue
                if latest is None or record.created_at >= latest.created_at:
                    latest = record
            return latest.model_copy(deep=True) if latest else None

    def find_by_user(self, user_id: str) -> list[MatchRecord]:
        return self._select(lambda r: r.user_id == user_id)

    def find_by_facility(self, facility_id: str) -> list[MatchRecord]:
        return self._select(lambda r: r.facility_id == facility_id)

    def find_by_coordinator(self, coordinator_id: str) -> list[MatchRecord]:
        return self._select(lambda r: r.coordinator_id == coordinator_id)

    def find_between(self, start: datetime, end: datetime) -> list[MatchRecord]:
        return self._select(lambda r: start <= r.created_at <= end)

    def all(self) -> list[MatchRecord]:
        return self._select(lambda r: True)

    def __len__(self) -> int:
        return len(self._records)


_store = MatchHistoryStore()


def get_store() -> MatchHistoryStore:
    return _store


def clear_history() -> None:
    _store.clear()

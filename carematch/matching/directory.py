from __future__ import annotations

import logging
from collections.abc import Iterable
from pathlib import Path
from typing import Any

import pandas as pd

from ..config import DEFAULT_MATCHING_CONFIG
from .models import FacilityCandidate

logger = logging.getLogger(__name__)

_LIST_SEPARATOR = "|"
UNKNOWN_STATUS = "unknown"
_BOOL_COLUMNS = [
    "has_doctor",
    "has_nurse_24h",
    "near_subway",
    "near_hospital",
    "near_pharmacy",
    "accepts_ltci",
]


def _split(value: Any) -> list[str]:
    if isinstance(value, str):
        return [v.strip() for v in value.split(_LIST_SEPARATOR) if v.strip()]
    if isinstance(value, Iterable):
        return [str(v) for v in value]
    if pd.isna(value):
        return []
    return [str(value)]


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("true", "1", "yes", "y")
    if pd.isna(value):
        return False
    return bool(value)


def _status(value: Any) -> str:
    # Blank means unknown, which the operating filter rejects
    if isinstance(value, str) and value.strip():
        return value.strip()
    if isinstance(value, str) or pd.isna(value):
        return UNKNOWN_STATUS
    return str(value)


def _optional(value: Any) -> Any:
    if pd.isna(value):
        return None
    # numpy scalars -> plain Python values
    return value.item() if hasattr(value, "item") else value


def _normalise(df: pd.DataFrame) -> pd.DataFrame:
    df = df.copy()
    df["id"] = df["id"].astype(str)

    # Pre-parse list columns so care-grade lookups are plain membership tests
    df["care_grades_list"] = df["acceptable_care_grades"].apply(
        lambda v: sorted({int(float(g)) for g in _split(v)})
    )
    df["specializations_list"] = df["specializations"].apply(
        lambda v: sorted({s.lower() for s in _split(v)})
    )
    for col in _BOOL_COLUMNS:
        if col in df.columns:
            df[col] = df[col].apply(_as_bool)
    if "operating_status" in df.columns:
        df["operating_status"] = df["operating_status"].apply(_status)
    else:
        df["operating_status"] = UNKNOWN_STATUS
    return df.set_index("id", drop=False)


class FacilityDirectory:
    """Read-only view over the facility dataset."""

    def __init__(self, df: pd.DataFrame) -> None:
        self._df = _normalise(df)

    @classmethod
    def from_csv(cls, path: Path) -> FacilityDirectory:
        df = pd.read_csv(
            path,
            dtype={"id": str, "acceptable_care_grades": str, "specializations": str},
        )
        logger.info("Loaded %d facilities from %s", len(df), path)
        return cls(df)

    @classmethod
    def from_candidates(cls, candidates: Iterable[FacilityCandidate]) -> FacilityDirectory:
        rows = [c.model_dump() for c in candidates]
        if not rows:
            rows_df = pd.DataFrame(columns=list(FacilityCandidate.model_fields))
        else:
            rows_df = pd.DataFrame(rows)
        return cls(rows_df)

    def __len__(self) -> int:
        return len(self._df)

    def _to_candidate(self, row: pd.Series) -> FacilityCandidate:
        data: dict[str, Any] = {}
        for field in FacilityCandidate.model_fields:
            if field in ("acceptable_care_grades", "specializations") or field not in row.index:
                continue
            value = _optional(row[field])
            if value is not None:
                data[field] = value
        data["acceptable_care_grades"] = row["care_grades_list"]
        data["specializations"] = row["specializations_list"]
        return FacilityCandidate(**data)

    def find_candidates(self, care_grade: int) -> list[FacilityCandidate]:
        """Return every facility that lists *care_grade* as acceptable."""
        if self._df.empty:
            return []
        mask = self._df["care_grades_list"].apply(lambda grades: care_grade in grades)
        return [self._to_candidate(row) for _, row in self._df.loc[mask].iterrows()]

    def get(self, facility_id: str) -> FacilityCandidate | None:
        facility_id = str(facility_id)
        if facility_id not in self._df.index:
            return None
        return self._to_candidate(self._df.loc[facility_id])

    def all(self) -> list[FacilityCandidate]:
        return [self._to_candidate(row) for _, row in self._df.iterrows()]


_directory: FacilityDirectory | None = None


def get_directory() -> FacilityDirectory:
    """Return the shared facility directory, loading it on first call."""
    global _directory
    if _directory is None:
        _directory = FacilityDirectory.from_csv(DEFAULT_MATCHING_CONFIG.facilities_csv)
    return _directory


def set_directory(directory: FacilityDirectory | None) -> None:
    global _directory
    _directory = directory

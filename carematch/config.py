from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
load_dotenv(Path(__file__).resolve().parent.parent / ".env")

_DATA_DIR = Path(__file__).resolve().parent / "data"


@dataclass(frozen=True)
class MatchingConfig:
    facilities_csv: Path = Path(os.getenv("CAREMATCH_FACILITIES_CSV", str(_DATA_DIR / "facilities.csv")))
    default_max_results: int = int(os.getenv("CAREMATCH_DEFAULT_MAX_RESULTS", "10"))
    max_results_limit: int = 50
    max_radius_km: float = float(os.getenv("CAREMATCH_MAX_RADIUS_KM", "100"))
    max_update_retries: int = int(os.getenv("CAREMATCH_MAX_UPDATE_RETRIES", "3"))


@dataclass(frozen=True)
class AnalyticsConfig:
    cache_ttl_seconds: float = float(os.getenv("CAREMATCH_REPORT_CACHE_TTL", "300"))
    missed_opportunity_score: float = 4.0  # 80% of the 5.0 scale
    unexpected_success_score: float = 3.0  # 60% of the 5.0 scale
    stale_match_hours: int = 48
    viewed_not_contacted_hours: int = 24
    min_facility_matches: int = int(os.getenv("CAREMATCH_MIN_FACILITY_MATCHES", "1"))
    suggestion_window_days: int = 30


DEFAULT_MATCHING_CONFIG = MatchingConfig()
DEFAULT_ANALYTICS_CONFIG = AnalyticsConfig()

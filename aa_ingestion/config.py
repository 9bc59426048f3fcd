"""Runtime settings for the ingestion pipeline.

Plain values come from environment variables; credentials come from the
secrets store (which itself falls back to the environment).
"""
from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Optional

from common.datetime import parse_provider_datetime
from common.secrets import get_secret
from integrations.finfactor import API_PREFIX, BASE_URL

__all__ = ["IngestSettings", "DB_URL"]

DB_URL = os.getenv("AA_DB_URL", "sqlite:///./aa_ingest.db")


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    return int(raw) if raw not in (None, "") else default


def _env_float(name: str) -> Optional[float]:
    raw = os.getenv(name)
    return float(raw) if raw not in (None, "") else None


def _env_date(name: str) -> Optional[date]:
    raw = os.getenv(name)
    return parse_provider_datetime(raw).date() if raw else None


@dataclass(slots=True)
class IngestSettings:
    base_url: str = BASE_URL
    api_prefix: str = API_PREFIX
    user_id: Optional[str] = None
    password: Optional[str] = None

    preferred_fip_token: str = ""
    excluded_fip_token: str = ""

    statement_lookback_days: int = 365
    statement_from: Optional[date] = None
    statement_to: Optional[date] = None
    insights_frequency: str = "MONTHLY"

    concurrency: int = 4
    call_timeout_seconds: float = 30.0
    batch_deadline_seconds: Optional[float] = None

    db_url: str = DB_URL

    @classmethod
    def from_env(cls) -> "IngestSettings":
        return cls(
            base_url=os.getenv("FINFACTOR_BASE_URL", BASE_URL),
            api_prefix=os.getenv("FINFACTOR_API_PREFIX", API_PREFIX),
            user_id=get_secret("FINFACTOR_USER_ID"),
            password=get_secret("FINFACTOR_PASSWORD"),
            preferred_fip_token=os.getenv("AA_PREFERRED_FIP_TOKEN", ""),
            excluded_fip_token=os.getenv("AA_EXCLUDED_FIP_TOKEN", ""),
            statement_lookback_days=_env_int("AA_STATEMENT_LOOKBACK_DAYS", 365),
            statement_from=_env_date("AA_STATEMENT_FROM"),
            statement_to=_env_date("AA_STATEMENT_TO"),
            insights_frequency=os.getenv("AA_INSIGHTS_FREQUENCY", "MONTHLY").upper(),
            concurrency=_env_int("AA_CONCURRENCY", 4),
            call_timeout_seconds=_env_float("AA_CALL_TIMEOUT_SECONDS") or 30.0,
            batch_deadline_seconds=_env_float("AA_BATCH_DEADLINE_SECONDS"),
            db_url=os.getenv("AA_DB_URL", DB_URL),
        )

    def statement_window(self, today: Optional[date] = None) -> tuple[date, date]:
        """Return ``(from, to)`` for statement and insights requests."""
        today = today or date.today()
        end = self.statement_to or today
        start = self.statement_from or (end - timedelta(days=self.statement_lookback_days))
        return start, end

"""Structured batch outcome: one entry per plan, one per step."""
from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from .writer import RecordError

__all__ = ["AssetRunStatus", "RunPhase", "StepReport", "PlanReport", "BatchReport", "SKIPPED_NO_ACCOUNT"]

SKIPPED_NO_ACCOUNT = "skipped: no account"


class AssetRunStatus(str, Enum):
    DONE = "Done"
    FAILED = "Failed"
    SKIPPED = "Skipped"


class RunPhase(str, Enum):
    NOT_STARTED = "NotStarted"
    FETCHING = "Fetching"
    MAPPING = "Mapping"
    PERSISTING = "Persisting"
    DONE = "Done"
    FAILED = "Failed"


@dataclass(slots=True)
class StepReport:
    endpoint: str
    fetch_run_id: Optional[int] = None
    status: str = "Pending"
    records: int = 0
    field_errors: int = 0
    counts: Dict[str, Dict[str, int]] = field(default_factory=dict)
    record_errors: List[RecordError] = field(default_factory=list)
    error: Optional[str] = None

    def as_dict(self) -> Dict[str, Any]:
        return {
            "endpoint": self.endpoint,
            "fetch_run_id": self.fetch_run_id,
            "status": self.status,
            "records": self.records,
            "field_errors": self.field_errors,
            "counts": self.counts,
            "record_errors": [
                {"table": e.table, "key": e.key, "message": e.message} for e in self.record_errors
            ],
            "error": self.error,
        }


@dataclass(slots=True)
class PlanReport:
    plan: str
    status: Optional[AssetRunStatus] = None
    phase: RunPhase = RunPhase.NOT_STARTED
    error: Optional[str] = None
    steps: List[StepReport] = field(default_factory=list)

    @property
    def record_counts(self) -> Dict[str, int]:
        """Rows present after the plan, per table."""
        totals: Dict[str, int] = defaultdict(int)
        for step in self.steps:
            for table, outcomes in step.counts.items():
                totals[table] += sum(n for outcome, n in outcomes.items() if outcome != "failed")
        return dict(totals)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value if self.status else None,
            "phase": self.phase.value,
            "error": self.error,
            "record_counts": self.record_counts,
            "steps": [s.as_dict() for s in self.steps],
        }


@dataclass(slots=True)
class BatchReport:
    unique_identifier: str
    started_at: datetime
    finished_at: Optional[datetime] = None
    plans: Dict[str, PlanReport] = field(default_factory=dict)

    def statuses(self) -> Dict[str, str]:
        return {name: (p.status.value if p.status else "") for name, p in self.plans.items()}

    @property
    def has_failures(self) -> bool:
        return any(p.status is AssetRunStatus.FAILED for p in self.plans.values())

    def as_dict(self) -> Dict[str, Any]:
        return {
            "unique_identifier": self.unique_identifier,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "plans": {name: p.as_dict() for name, p in self.plans.items()},
        }

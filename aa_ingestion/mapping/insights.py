"""Insights and analysis are provider-defined analytics; they are kept whole as snapshots."""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional

from aa_domain.records import AssetType, MappedSnapshot, MappingResult

from .fields import unwrap

__all__ = ["map_insights", "map_analysis", "snapshot_type_for"]


def snapshot_type_for(asset_type: AssetType, kind: str = "INSIGHTS") -> str:
    return f"{asset_type.value}_{kind}"


def _snapshot(
    body: Any,
    snapshot_type: str,
    account_ref_number: Optional[str],
    generated_at: Optional[datetime],
) -> MappingResult:
    return MappingResult(
        snapshots=[
            MappedSnapshot(
                snapshot_type=snapshot_type,
                generated_at=generated_at or datetime.now(timezone.utc),
                payload=body,
                account_ref_number=account_ref_number,
            )
        ]
    )


def map_insights(
    payload: Any,
    asset_type: AssetType,
    account_ref_number: Optional[str] = None,
    generated_at: Optional[datetime] = None,
) -> MappingResult:
    body = unwrap(payload, "insights")
    return _snapshot(body, snapshot_type_for(asset_type), account_ref_number, generated_at)


def map_analysis(
    payload: Any,
    asset_type: AssetType,
    generated_at: Optional[datetime] = None,
) -> MappingResult:
    """Portfolio-level analysis (MF category split, totals); not account scoped."""
    body = unwrap(payload, "analysis", "totalFiData", "currentValue")
    return _snapshot(body, snapshot_type_for(asset_type, "ANALYSIS"), None, generated_at)

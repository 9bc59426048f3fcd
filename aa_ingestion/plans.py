"""Run plans: the ordered endpoint calls made for each asset type."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Any, Callable, Dict, Optional, Tuple

from aa_domain.records import AssetType, MappingResult

from .config import IngestSettings
from .mapping import (
    map_analysis,
    map_brokers,
    map_demat_holdings,
    map_equity_holdings,
    map_fips,
    map_insights,
    map_linked_accounts,
    map_mf_holdings,
    map_statement,
)

__all__ = ["StepKind", "StepContext", "Step", "Plan", "PLANS", "DEFAULT_PLANS", "build_body"]


class StepKind(str, Enum):
    DIRECTORY = "directory"
    LINKED_ACCOUNTS = "linked_accounts"
    HOLDINGS = "holdings"
    STATEMENT = "statement"
    INSIGHTS = "insights"
    ANALYSIS = "analysis"

    @property
    def needs_account(self) -> bool:
        return self in (StepKind.HOLDINGS, StepKind.STATEMENT, StepKind.INSIGHTS)


@dataclass(slots=True, frozen=True)
class StepContext:
    asset_type: AssetType
    account_id: Optional[str] = None


Mapper = Callable[[Any, StepContext], MappingResult]


@dataclass(slots=True, frozen=True)
class Step:
    endpoint: str
    kind: StepKind
    mapper: Mapper


@dataclass(slots=True, frozen=True)
class Plan:
    name: str
    asset_type: AssetType
    steps: Tuple[Step, ...]


def _linked(payload: Any, ctx: StepContext) -> MappingResult:
    return map_linked_accounts(payload, ctx.asset_type)


def _statement(payload: Any, ctx: StepContext) -> MappingResult:
    return map_statement(payload)


def _insights(payload: Any, ctx: StepContext) -> MappingResult:
    return map_insights(payload, ctx.asset_type, ctx.account_id)


def _mf_holdings(payload: Any, ctx: StepContext) -> MappingResult:
    return map_mf_holdings(payload)


def _equity_holdings(payload: Any, ctx: StepContext) -> MappingResult:
    return map_equity_holdings(payload)


def _demat_holdings(payload: Any, ctx: StepContext) -> MappingResult:
    return map_demat_holdings(payload)


def _analysis(payload: Any, ctx: StepContext) -> MappingResult:
    return map_analysis(payload, ctx.asset_type)


def _fips(payload: Any, ctx: StepContext) -> MappingResult:
    return map_fips(payload)


def _brokers(payload: Any, ctx: StepContext) -> MappingResult:
    return map_brokers(payload)


def _linked_step(slug: str) -> Step:
    return Step(f"/{slug}/user-linked-accounts", StepKind.LINKED_ACCOUNTS, _linked)


def _statement_step(slug: str) -> Step:
    return Step(f"/{slug}/user-account-statement", StepKind.STATEMENT, _statement)


def _insights_step(slug: str) -> Step:
    return Step(f"/{slug}/insights", StepKind.INSIGHTS, _insights)


def _plan(asset_type: AssetType, *steps: Step) -> Plan:
    return Plan(asset_type.value, asset_type, steps)


PLANS: Dict[str, Plan] = {
    plan.name: plan
    for plan in (
        _plan(
            AssetType.DIRECTORY,
            Step("/fips", StepKind.DIRECTORY, _fips),
            Step("/brokers", StepKind.DIRECTORY, _brokers),
        ),
        _plan(
            AssetType.DEPOSIT,
            _linked_step("deposit"),
            _statement_step("deposit"),
            _insights_step("deposit"),
        ),
        _plan(AssetType.TERM_DEPOSIT, _linked_step("term-deposit"), _statement_step("term-deposit")),
        _plan(
            AssetType.RECURRING_DEPOSIT,
            _linked_step("recurring-deposit"),
            _statement_step("recurring-deposit"),
        ),
        _plan(
            AssetType.MUTUAL_FUND,
            _linked_step("mutual-fund"),
            Step("/mutual-fund/analysis", StepKind.ANALYSIS, _analysis),
            Step("/mutual-fund/user-linked-accounts/holding-folio", StepKind.HOLDINGS, _mf_holdings),
            _statement_step("mutual-fund"),
            _insights_step("mutual-fund"),
        ),
        _plan(
            AssetType.EQUITIES,
            _linked_step("equities"),
            Step("/equities/user-linked-accounts/holding-broker", StepKind.HOLDINGS, _equity_holdings),
            _statement_step("equities"),
        ),
        _plan(
            AssetType.ETF,
            _linked_step("etf"),
            Step(
                "/equities-and-etfs/user-linked-accounts/demat-holding",
                StepKind.HOLDINGS,
                _demat_holdings,
            ),
            _statement_step("etf"),
            _insights_step("etf"),
        ),
        _plan(AssetType.NPS, _linked_step("nps")),
    )
}

DEFAULT_PLANS: Tuple[str, ...] = tuple(PLANS)


def build_body(
    step: Step,
    unique_identifier: str,
    settings: IngestSettings,
    account_id: Optional[str] = None,
    today: Optional[date] = None,
) -> Dict[str, Any]:
    """Request body for *step*; always carries ``uniqueIdentifier``."""
    body: Dict[str, Any] = {"uniqueIdentifier": unique_identifier}
    if step.kind in (StepKind.LINKED_ACCOUNTS, StepKind.HOLDINGS, StepKind.ANALYSIS):
        body["filterZeroValueAccounts"] = "false"
        body["filterZeroValueHoldings"] = "false"
    elif step.kind is StepKind.STATEMENT:
        start, end = settings.statement_window(today)
        body["accountId"] = account_id
        body["dateRangeFrom"] = start.isoformat()
        if settings.statement_to is not None:
            body["dateRangeTo"] = end.isoformat()
    elif step.kind is StepKind.INSIGHTS:
        start, end = settings.statement_window(today)
        body["accountIds"] = [account_id]
        body["from"] = start.isoformat()
        body["to"] = end.isoformat()
        body["frequency"] = settings.insights_frequency
    return body

"""Drive fetch -> map -> hash -> persist for every plan of a batch.

Plans run concurrently on a bounded pool (``asyncio.Semaphore``). Within a
plan, steps run in order and each step walks the phases
NotStarted -> Fetching -> Mapping -> Persisting -> Done | Failed.
Failures stay inside their plan; the batch always returns a report.
"""
from __future__ import annotations

import asyncio
import functools
import logging
import time
from datetime import datetime, timezone
from typing import Any, Callable, Iterable, Optional

import anyio
from sqlalchemy.exc import SQLAlchemyError

from aa_domain.audit_models import FetchRunStatus, PayloadRole
from aa_domain.records import MappingResult
from aa_observability.metrics import aa_plan_runs_total
from integrations.finfactor.errors import AAClientError, AuthExpired, TransportError
from integrations.finfactor.http import AAClient

from .config import IngestSettings
from .errors import BatchStartError, MappingError, NoLinkedAccount, PersistenceError
from .hashing import account_identity
from .plans import DEFAULT_PLANS, PLANS, Plan, Step, StepContext, StepKind, build_body
from .report import SKIPPED_NO_ACCOUNT, AssetRunStatus, BatchReport, PlanReport, RunPhase, StepReport
from .selector import AccountSelector, SelectedAccount, SelectionPolicy
from .writer import PersistenceWriter

__all__ = ["IngestionOrchestrator"]

_LOG = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _scope_hash(unique_identifier: str, linked: MappingResult, selected: SelectedAccount) -> str:
    """Identity hash of the mapped account the selector picked."""
    for bundle in linked.accounts:
        acct = bundle.account
        if selected.fip_id and acct.fip and acct.fip.external_code != str(selected.fip_id):
            continue
        ids = {
            acct.account_ref_number,
            acct.link_ref_number,
            acct.masked_account_number,
            acct.fi_data_id,
            acct.extra.get("accountId"),
        }
        if selected.account_id in ids:
            return account_identity(unique_identifier, acct)
    raise MappingError(f"selected account {selected.account_id} is not among the mapped accounts")


class IngestionOrchestrator:
    def __init__(
        self,
        *,
        client: AAClient,
        writer: PersistenceWriter,
        settings: Optional[IngestSettings] = None,
        selector: Optional[AccountSelector] = None,
        concurrency: Optional[int] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._client = client
        self._writer = writer
        self._settings = settings or IngestSettings.from_env()
        self._selector = selector or AccountSelector(
            SelectionPolicy(self._settings.preferred_fip_token, self._settings.excluded_fip_token)
        )
        self._concurrency = concurrency if concurrency is not None else self._settings.concurrency
        self._clock = clock

    async def run_batch(
        self,
        unique_identifier: str,
        plans: Optional[Iterable[str]] = None,
        deadline_seconds: Optional[float] = None,
    ) -> BatchReport:
        """Attempt every plan; never raise for a plan-level failure."""
        names = [p.upper() for p in plans] if plans is not None else list(DEFAULT_PLANS)
        if not unique_identifier:
            raise BatchStartError("unique identifier is required")
        if not names:
            raise BatchStartError("no plans requested")
        unknown = sorted(set(names) - set(PLANS))
        if unknown:
            raise BatchStartError(f"unknown plan(s): {', '.join(unknown)}")
        if self._concurrency < 1:
            raise BatchStartError(f"concurrency must be >= 1, got {self._concurrency}")

        if deadline_seconds is None:
            deadline_seconds = self._settings.batch_deadline_seconds
        deadline = self._clock() + deadline_seconds if deadline_seconds is not None else None

        report = BatchReport(unique_identifier=unique_identifier, started_at=_utcnow())
        # dict preserves the requested order; duplicates collapse
        for name in names:
            report.plans.setdefault(name, PlanReport(plan=name))
        sem = asyncio.Semaphore(self._concurrency)

        async def worker(plan_report: PlanReport) -> None:
            async with sem:
                if deadline is not None and self._clock() >= deadline:
                    plan_report.status = AssetRunStatus.SKIPPED
                    plan_report.error = "deadline exceeded"
                    _LOG.warning(
                        "plan %s skipped: batch deadline exceeded",
                        plan_report.plan,
                        extra={"unique_identifier": unique_identifier, "plan": plan_report.plan},
                    )
                else:
                    await self._run_plan(unique_identifier, PLANS[plan_report.plan], plan_report)
                aa_plan_runs_total.labels(plan_report.plan, plan_report.status.value).inc()  # type: ignore[union-attr]

        _LOG.info(
            "batch started: %d plan(s), concurrency=%d",
            len(report.plans),
            self._concurrency,
            extra={"unique_identifier": unique_identifier},
        )
        await asyncio.gather(*(worker(pr) for pr in report.plans.values()))
        report.finished_at = _utcnow()
        _LOG.info(
            "batch finished: %s",
            report.statuses(),
            extra={"unique_identifier": unique_identifier},
        )
        return report

    # Plans -------------------------------------------------------------------

    def _phase(self, pr: PlanReport, phase: RunPhase, unique_identifier: str, endpoint: str = "") -> None:
        pr.phase = phase
        _LOG.info(
            "%s %s %s",
            pr.plan,
            phase.value,
            endpoint,
            extra={"unique_identifier": unique_identifier, "plan": pr.plan, "endpoint": endpoint or None},
        )

    async def _run_plan(self, unique_identifier: str, plan: Plan, pr: PlanReport) -> None:
        linked: Optional[MappingResult] = None
        linked_payload: Any = None
        selected: Optional[SelectedAccount] = None
        scope: Optional[str] = None

        try:
            for step in plan.steps:
                if step.kind.needs_account and selected is None:
                    try:
                        selected = self._selector.select(linked_payload, asset_type=plan.name)
                    except NoLinkedAccount:
                        pr.status = AssetRunStatus.SKIPPED
                        pr.error = SKIPPED_NO_ACCOUNT
                        _LOG.info(
                            "%s has no linked account; account-scoped steps skipped",
                            plan.name,
                            extra={"unique_identifier": unique_identifier, "plan": plan.name},
                        )
                        return
                    scope = _scope_hash(unique_identifier, linked or MappingResult(), selected)

                ctx = StepContext(plan.asset_type, selected.account_id if selected else None)
                body = build_body(step, unique_identifier, self._settings, ctx.account_id)
                step_report, payload, mapped = await self._run_step(
                    unique_identifier, plan, pr, step, body, ctx, scope
                )
                pr.steps.append(step_report)
                if step_report.status == FetchRunStatus.FAILED.value:
                    pr.status = AssetRunStatus.FAILED
                    pr.error = step_report.error
                    self._phase(pr, RunPhase.FAILED, unique_identifier, step.endpoint)
                    return
                if linked is None and step.kind is StepKind.LINKED_ACCOUNTS:
                    linked, linked_payload = mapped, payload
        except Exception as exc:
            _LOG.exception(
                "plan %s aborted",
                plan.name,
                extra={"unique_identifier": unique_identifier, "plan": plan.name},
            )
            pr.status = AssetRunStatus.FAILED
            pr.error = str(exc)
            self._phase(pr, RunPhase.FAILED, unique_identifier)
            return

        pr.status = AssetRunStatus.DONE
        self._phase(pr, RunPhase.DONE, unique_identifier)

    # Steps -------------------------------------------------------------------

    async def _call(self, endpoint: str, body: dict) -> Any:
        """One call plus exactly one retry on auth expiry."""
        try:
            return await self._client.call(endpoint, body)
        except AuthExpired:
            _LOG.info("auth expired on %s; re-authenticating and retrying once", endpoint)
        try:
            return await self._client.call(endpoint, body)
        except AuthExpired as exc:
            raise TransportError(
                endpoint, "authentication expired again after retry", status_code=exc.status_code
            ) from exc

    async def _db(self, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        """Run a blocking writer call on a worker thread."""
        return await anyio.to_thread.run_sync(functools.partial(fn, *args, **kwargs))

    async def _run_step(
        self,
        unique_identifier: str,
        plan: Plan,
        pr: PlanReport,
        step: Step,
        body: dict,
        ctx: StepContext,
        scope: Optional[str],
    ) -> tuple[StepReport, Any, Optional[MappingResult]]:
        sr = StepReport(endpoint=step.endpoint)
        run_id = await self._db(self._writer.open_run, unique_identifier, plan.asset_type.value, step.endpoint)
        sr.fetch_run_id = run_id
        log_extra = {"unique_identifier": unique_identifier, "plan": plan.name, "fetch_run_id": run_id}

        async def fail(message: str, http_status: Optional[int] = None) -> tuple[StepReport, Any, None]:
            await self._db(
                self._writer.finalize_run,
                run_id,
                FetchRunStatus.FAILED,
                error_message=message,
                http_status=http_status,
            )
            sr.status = FetchRunStatus.FAILED.value
            sr.error = message
            _LOG.warning("step %s failed: %s", step.endpoint, message, extra=log_extra)
            return sr, None, None

        try:
            await self._db(self._writer.record_payload, run_id, PayloadRole.REQUEST, body)

            self._phase(pr, RunPhase.FETCHING, unique_identifier, step.endpoint)
            try:
                payload = await self._call(step.endpoint, body)
            except AAClientError as exc:
                status_code = getattr(exc, "status_code", None)
                if isinstance(exc, TransportError) and exc.body is not None:
                    await self._db(
                        self._writer.record_payload,
                        run_id,
                        PayloadRole.RESPONSE,
                        {"status_code": status_code, "body": exc.body},
                    )
                return await fail(str(exc), status_code)
            await self._db(self._writer.record_payload, run_id, PayloadRole.RESPONSE, payload)

            self._phase(pr, RunPhase.MAPPING, unique_identifier, step.endpoint)
            try:
                mapped = step.mapper(payload, ctx)
            except MappingError as exc:
                return await fail(f"mapping failed: {exc}")
            sr.field_errors = len(mapped.field_errors)

            self._phase(pr, RunPhase.PERSISTING, unique_identifier, step.endpoint)
            try:
                written = await self._db(
                    self._writer.persist,
                    run_id,
                    unique_identifier,
                    mapped,
                    scope_account_hash=scope,
                    asset_type=plan.asset_type,
                )
            except (PersistenceError, SQLAlchemyError) as exc:
                return await fail(f"persistence failed: {exc}")

            await self._db(
                self._writer.finalize_run, run_id, FetchRunStatus.FETCHED, records_count=written.written
            )
        except Exception as exc:
            # the run must leave Pending whatever went wrong
            _LOG.exception("step %s raised", step.endpoint, extra=log_extra)
            return await fail(f"{type(exc).__name__}: {exc}")

        sr.status = FetchRunStatus.FETCHED.value
        sr.records = written.written
        sr.counts = written.as_dict()
        sr.record_errors = list(written.errors)
        return sr, payload, mapped

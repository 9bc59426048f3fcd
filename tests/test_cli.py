import json
import logging
from datetime import datetime

import pytest

from aa_ingestion import cli, service
from aa_ingestion.errors import BatchStartError
from aa_ingestion.report import AssetRunStatus, BatchReport, PlanReport


def _report(**statuses):
    report = BatchReport(unique_identifier="u", started_at=datetime(2024, 1, 5), finished_at=datetime(2024, 1, 5))
    for name, status in statuses.items():
        report.plans[name] = PlanReport(plan=name, status=status)
    return report


@pytest.fixture
def captured(monkeypatch):
    calls = {}

    def install(result):
        async def fake_run_sync(uid, plans=None, **kwargs):
            calls.update(uid=uid, plans=plans, **kwargs)
            if isinstance(result, Exception):
                raise result
            return result

        monkeypatch.setattr(cli, "run_sync", fake_run_sync)
        return calls

    return install


def test_parse_args_repeatable_plans():
    args = cli.parse_args(["8956545791", "--plan", "DEPOSIT", "--plan", "NPS", "--deadline", "30"])
    assert args.unique_identifier == "8956545791"
    assert args.plans == ["DEPOSIT", "NPS"]
    assert args.deadline == 30.0
    assert args.concurrency is None


def test_success_prints_report(captured, capsys):
    calls = captured(_report(DEPOSIT=AssetRunStatus.DONE, NPS=AssetRunStatus.SKIPPED))

    assert cli.main(["8956545791", "--plan", "DEPOSIT", "--concurrency", "2"]) == 0

    out = json.loads(capsys.readouterr().out)
    assert out["plans"]["DEPOSIT"]["status"] == "Done"
    assert out["plans"]["NPS"]["status"] == "Skipped"
    assert calls["uid"] == "8956545791"
    assert calls["plans"] == ["DEPOSIT"]
    assert calls["concurrency"] == 2


def test_failed_plan_exits_one(captured):
    captured(_report(DEPOSIT=AssetRunStatus.DONE, MUTUAL_FUND=AssetRunStatus.FAILED))
    assert cli.main(["8956545791"]) == 1


def test_batch_start_error_exits_two(captured, capsys):
    captured(BatchStartError("unknown plan(s): GOLD"))
    assert cli.main(["8956545791", "--plan", "GOLD"]) == 2
    assert "unknown plan(s): GOLD" in capsys.readouterr().err


@pytest.fixture
def root_handlers():
    root = logging.getLogger()
    saved, level = list(root.handlers), root.level
    yield
    root.handlers[:] = saved
    root.setLevel(level)


def test_logs_go_to_stderr_and_stdout_is_the_report(
    monkeypatch, capsys, root_handlers, fake_aa, settings, engine
):
    fake_aa.on("/nps/user-linked-accounts", (200, {"fipData": []}))

    async def real_run_sync(uid, plans=None, **kwargs):
        kwargs.update(settings=settings, engine=engine, transport=fake_aa.transport)
        return await service.run_sync(uid, plans, **kwargs)

    monkeypatch.setattr(cli, "run_sync", real_run_sync)
    monkeypatch.setenv("LOG_LEVEL", "INFO")

    assert cli.main(["8956545791", "--plan", "NPS", "--log-format", "text"]) == 0

    captured = capsys.readouterr()
    report = json.loads(captured.out)
    assert report["plans"]["NPS"]["status"] == "Done"
    assert "batch started" in captured.err
    assert "batch started" not in captured.out

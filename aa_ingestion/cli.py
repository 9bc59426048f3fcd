"""Command line entry point: ``python -m aa_ingestion.cli <uniqueIdentifier>``."""
from __future__ import annotations

import argparse
import asyncio
import json
import sys
from typing import List, Optional

from aa_observability.metrics import maybe_start_http_server
from common.logging import configure_logging

from .config import IngestSettings
from .db import init_db, make_engine
from .errors import BatchStartError
from .plans import DEFAULT_PLANS
from .service import run_sync


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    ap = argparse.ArgumentParser(description="Ingest Account Aggregator data for one user")
    ap.add_argument("unique_identifier", help="AA user identifier (usually the mobile number)")
    ap.add_argument(
        "--plan",
        action="append",
        dest="plans",
        metavar="NAME",
        help=f"plan to run, repeatable (default: all of {', '.join(DEFAULT_PLANS)})",
    )
    ap.add_argument("--concurrency", type=int, default=None, help="worker pool size")
    ap.add_argument("--deadline", type=float, default=None, help="batch deadline in seconds")
    ap.add_argument("--log-format", choices=("json", "text"), default=None)
    return ap.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    # stdout carries the JSON report only
    configure_logging(args.log_format, service_name="aa_ingestion", stream=sys.stderr)
    maybe_start_http_server()

    settings = IngestSettings.from_env()
    engine = make_engine(settings.db_url)
    init_db(engine)

    try:
        report = asyncio.run(
            run_sync(
                args.unique_identifier,
                args.plans,
                settings=settings,
                engine=engine,
                deadline_seconds=args.deadline,
                concurrency=args.concurrency,
            )
        )
    except BatchStartError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 2

    print(json.dumps(report.as_dict(), indent=2, default=str))
    return 1 if report.has_failures else 0


if __name__ == "__main__":
    sys.exit(main())

import json
import os
import tempfile
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

# the ops API creates tables on import; keep that out of the working tree
os.environ.setdefault("AA_DB_URL", f"sqlite:///{tempfile.mkdtemp()}/aa_api.db")

import httpx
import pytest
from sqlmodel import Session, SQLModel

from common import secrets as secrets_module
from aa_ingestion.config import IngestSettings
from aa_ingestion.db import make_engine
from aa_ingestion.service import build_client

AA_BASE = "https://aa.test"
AA_PREFIX = "/pfm/api/v2"


@pytest.fixture
def anyio_backend():
    return "asyncio"


# ---------------------------------------------------------------------------
# Default secrets for tests
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _secrets() -> None:
    """Provide default secrets for tests via the secrets manager."""

    secrets_module.secrets.set_override(
        {
            "API_TOKENS": {"tester": "testtoken"},
            "JWT_SECRET": "testsecret",
            "FINFACTOR_USER_ID": "8956545791",
            "FINFACTOR_PASSWORD": "pw",
        }
    )
    yield
    secrets_module.secrets.set_override({})


# ---------------------------------------------------------------------------
# Storage
# ---------------------------------------------------------------------------


@pytest.fixture
def engine(tmp_path):
    eng = make_engine(f"sqlite:///{tmp_path}/aa.db")
    SQLModel.metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine) -> Callable[[], Session]:
    return lambda: Session(engine)


@pytest.fixture
def settings() -> IngestSettings:
    return IngestSettings(
        base_url=AA_BASE,
        api_prefix=AA_PREFIX,
        user_id="8956545791",
        password="pw",
        preferred_fip_token="Finvu",
        excluded_fip_token="Dhanagar",
        concurrency=4,
        call_timeout_seconds=5.0,
    )


# ---------------------------------------------------------------------------
# Fake Account Aggregator
# ---------------------------------------------------------------------------

Reply = Union[Tuple[int, Any], Callable[[httpx.Request], httpx.Response]]


class FakeAA:
    """Route table behind an ``httpx.MockTransport``.

    ``on(endpoint, reply, ...)`` queues replies; the last one repeats. A reply
    is ``(status, json_body)``, ``(status, "text body")`` or a callable.
    """

    def __init__(self) -> None:
        self.routes: Dict[str, List[Reply]] = {}
        self.logins = 0
        self.calls: List[Tuple[str, Dict[str, Any], Optional[str]]] = []

    def on(self, endpoint: str, *replies: Reply) -> "FakeAA":
        self.routes[endpoint] = list(replies)
        return self

    def calls_to(self, endpoint: str) -> List[Dict[str, Any]]:
        return [body for path, body, _ in self.calls if path == endpoint]

    def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if path.startswith(AA_PREFIX):
            path = path[len(AA_PREFIX):]
        if path == "/user-login":
            self.logins += 1
            return httpx.Response(200, json={"data": {"token": f"tok-{self.logins}"}})

        self.calls.append((path, json.loads(request.content or b"{}"), request.headers.get("Authorization")))
        queue = self.routes.get(path)
        if not queue:
            return httpx.Response(404, json={"message": f"no route for {path}"})
        reply = queue.pop(0) if len(queue) > 1 else queue[0]
        if callable(reply):
            return reply(request)
        status, body = reply
        if isinstance(body, str):
            return httpx.Response(status, text=body)
        return httpx.Response(status, json=body)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


@pytest.fixture
def fake_aa() -> FakeAA:
    return FakeAA()


@pytest.fixture
def aa_client(fake_aa, settings):
    return build_client(settings, fake_aa.transport)


# ---------------------------------------------------------------------------
# Provider payloads
# ---------------------------------------------------------------------------


@pytest.fixture
def deposit_linked() -> Dict[str, Any]:
    return {
        "totalFiData": 3,
        "fipData": [
            {
                "fipId": "FINVU-DHANAGAR",
                "fipName": "Finvu Bank Dhanagar",
                "linkedAccounts": [
                    {
                        "accountRefNumber": "DH-0001",
                        "maskedAccNumber": "XXXX1111",
                        "accType": "SAVINGS",
                        "linkStatus": "LINKED",
                        "accountCurrentBalance": "900.00",
                    }
                ],
            },
            {
                "fipId": "FINVU-BANK",
                "fipName": "Finvu Bank",
                "linkedAccounts": [
                    {
                        "accountRefNumber": "FV-0001",
                        "maskedAccNumber": "XXXX2222",
                        "linkRefNumber": "LR-1",
                        "accType": "SAVINGS",
                        "linkStatus": "LINKED",
                        "consentIdList": ["c-1"],
                        "Summary": {
                            "currentBalance": "1,250.50",
                            "currency": "INR",
                            "balanceDateTime": "2024-01-05T10:00:00Z",
                            "pendingBalance": "n/a",
                        },
                        "Profile": {
                            "branch": "MG Road",
                            "ifscCode": "FINV0000001",
                            "openingDate": "05-01-2020",
                            "Holders": {
                                "Holder": [
                                    {
                                        "name": "Asha Rao",
                                        "pan": "ABCDE1234F",
                                        "dob": "1990-02-03",
                                        "mobile": "8956545791",
                                        "ckycCompliance": "true",
                                        "kycCompliance": "Y",
                                    }
                                ]
                            },
                        },
                    },
                    {
                        "accountRefNumber": "FV-0002",
                        "maskedAccNumber": "XXXX3333",
                        "accType": "CURRENT",
                        "accountCurrentBalance": 10,
                        "holderName": "Asha Rao",
                        "holderPan": "ABCDE1234F",
                    },
                ],
            },
        ],
    }


@pytest.fixture
def deposit_statement() -> Dict[str, Any]:
    return {
        "transactions": [
            {
                "txnId": "T1",
                "type": "DEBIT",
                "mode": "ATM",
                "amount": 500,
                "transactionTimestamp": "2024-01-05T10:00:00Z",
                "narration": "ATM",
                "currentBalance": "750.50",
            },
            {
                "txnId": "T1-dup",
                "type": "DEBIT",
                "mode": "ATM",
                "amount": "500.00",
                "transactionTimestamp": "2024-01-05T10:00:00Z",
                "narration": "ATM",
            },
            {
                "txnId": "T2",
                "type": "CREDIT",
                "amount": "2000",
                "txnTimestamp": "2024-01-06T09:30:00Z",
                "narration": "SALARY",
                "category": "INCOME",
            },
        ]
    }


@pytest.fixture
def mf_linked() -> Dict[str, Any]:
    return {
        "data": {
            "fipData": [
                {
                    "fipId": "CAMS",
                    "fipName": "CAMS RTA",
                    "linkedAccounts": [
                        {
                            "accountRefNumber": "MF-1",
                            "currentValue": "10500.25",
                            "costValue": "10000",
                            "holdingsCount": "2",
                        }
                    ],
                }
            ]
        }
    }


@pytest.fixture
def mf_holdings() -> Dict[str, Any]:
    return {
        "holdingFolios": [
            {
                "isin": "INF000000001",
                "schemeName": "Index Fund Growth",
                "amc": "Some AMC",
                "navDate": "2024-01-04",
                "folios": [
                    {"folioNo": "F-1", "closingUnits": "10.5", "nav": "100.25", "currentValue": "1052.63"},
                    {"folioNo": "F-2", "closingUnits": "1", "currentValue": "100.25"},
                ],
            }
        ]
    }

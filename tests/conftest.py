"""Pytest fixtures: fake lending gateway, SQLite-backed loan stores, fake Redis."""

import copy
import json
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import httpx
import pytest
import yaml
from sqlalchemy import create_engine, event, text

from dcb_lending.database.postgres_real import LendingDatabase
from dcb_lending.error_handler import ErrorLog
from dcb_lending.integrations.clients.real_http.lending_api import RequestExecutor
from dcb_lending.integrations.policy.response_wrappers import ResponseExtractor
from dcb_lending.utils.config_loader import InstitutionConfig

KTB_PROFILE: Dict[str, Any] = {
    "base_url": "https://gw.test",
    "loc_account_no": "1640000240",
    "to_account_no": "1640000231",
    "product_market_code": "1207",
    "disburse_amount": 5000,
    "selected_plan_id": 1,
    "drawdown_type": "Saving",
    "confirmation_note": "DISBURSEMENT",
    "drawdown_channel": {"channelId": "KTB"},
    "headers": {
        "drawdown": {"x-channel-id": "PT", "x-devops-src": "bib", "x-devops-dest": "ktb-dlp", "x-devops-key": "k1"},
        "account": {"x-channel-id": "DGL", "x-devops-src": "dgl", "x-devops-dest": "ktb-dlp", "x-devops-key": "k2"},
    },
    "account_profile": {"productId": "p-1", "accountNameEN": "Sample Account", "currencyCode": "THB"},
    "account_number_field": "data.accountNo",
    "contract_ref_id": "ref-ktb-1",
    "supervisor_contract_id": "sup-1",
    "loc_smart_contract_id": "loc-2",
    "drawdown_smart_contract_id": "dd-3",
    "redis_key": "LOAN_SMART_CONTRACT:Revolving_Loan",
    "balance_inquiry_url": "http://proc.test/dcb/lending-internal/v1/proc-account/balance/inquiry",
}

VB_PROFILE: Dict[str, Any] = {
    "base_url": "https://gw-vb.test",
    "loc_account_no": "0700000123",
    "to_account_no": "0700000098",
    "product_market_code": "1207",
    "disburse_amount": 5000.0,
    "selected_plan_id": 0,
    "ccd_id": "ccd-9",
    "drawdown_type": "bill",
    "confirmation_note": "test VB drawdown",
    "requires_ccd_id": True,
    "amortization_amount_as_string": True,
    "headers": {"drawdown": {"x-channel-id": "VB"}, "account": {"x-channel-id": "DGL"}},
    "account_profile": {"productId": "p-2", "accountNameEN": "VB Account"},
    "account_number_field": "data.accountNumber",
    "persist_account_number": True,
}


class FakeGateway:
    """
    httpx.MockTransport handler. Routes by URL path suffix; a route value is a
    JSON body, an (status, body) tuple, an exception to raise, or a list of
    those consumed in order.
    """

    def __init__(self, routes: Optional[Dict[str, Any]] = None) -> None:
        self.routes = dict(routes or {})
        self.requests: List[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        for suffix, reply in self.routes.items():
            if not request.url.path.endswith(suffix):
                continue
            if isinstance(reply, list):
                reply = reply.pop(0)
            if isinstance(reply, Exception):
                raise reply
            if isinstance(reply, tuple):
                status, body = reply
            else:
                status, body = 200, reply
            if isinstance(body, str):
                return httpx.Response(status, text=body)
            return httpx.Response(status, json=body)
        return httpx.Response(404, json={"code": "9404", "message": f"no route for {request.url.path}"})

    @property
    def paths(self) -> List[str]:
        return [r.url.path for r in self.requests]

    def body(self, index: int) -> Dict[str, Any]:
        return json.loads(self.requests[index].content)


class FakeRedis:
    def __init__(self, keys=None) -> None:
        self.keys = set(keys or [])
        self.deleted: List[str] = []
        self.closed = False

    def delete(self, key: str) -> int:
        self.deleted.append(key)
        if key in self.keys:
            self.keys.remove(key)
            return 1
        return 0

    def close(self) -> None:
        self.closed = True


class SQLiteStores:
    """One SQLite file per logical database, with a `public` schema attached."""

    SCHEMA = [
        "CREATE TABLE public.loan_account (contract_ref_id TEXT, tm_account_id TEXT)",
        "CREATE TABLE public.loan_smart_contract ("
        "contract_ref_id TEXT, supervisor_contract_id TEXT, loc_smart_contract_id TEXT, drawdown_smart_contract_id TEXT)",
        "CREATE TABLE public.proc_loan_account ("
        "contract_ref_id TEXT, supervisor_contract_id TEXT, loc_smart_contract_id TEXT, drawdown_smart_contract_id TEXT)",
    ]

    def __init__(self, root: Path) -> None:
        self.root = root
        self.opened: List[str] = []

    def engine(self, database: str):
        engine = create_engine(f"sqlite:///{self.root / database}.db")
        public = self.root / f"{database}_public.db"

        @event.listens_for(engine, "connect")
        def _attach_public(dbapi_connection, connection_record):
            dbapi_connection.execute(f"ATTACH DATABASE '{public}' AS public")

        return engine

    def create(self, database: str) -> None:
        for statement in self.SCHEMA:
            self.execute(database, statement)

    def execute(self, database: str, sql: str, params: Optional[Dict[str, Any]] = None) -> None:
        engine = self.engine(database)
        with engine.begin() as conn:
            conn.execute(text(sql), params or {})
        engine.dispose()

    def rows(self, database: str, sql: str, params: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        engine = self.engine(database)
        with engine.connect() as conn:
            result = [dict(r) for r in conn.execute(text(sql), params or {}).mappings().all()]
        engine.dispose()
        return result

    def open(self, database: str) -> LendingDatabase:
        self.opened.append(database)
        return LendingDatabase(engine=self.engine(database), name=database)


@pytest.fixture
def error_log(tmp_path) -> ErrorLog:
    return ErrorLog(tmp_path / "error_log.txt", tmp_path / "error_logs_archive")


@pytest.fixture
def make_executor(error_log) -> Callable[[FakeGateway], RequestExecutor]:
    def _make(gateway: FakeGateway) -> RequestExecutor:
        return RequestExecutor(error_log=error_log, client=httpx.Client(transport=httpx.MockTransport(gateway)))

    return _make


@pytest.fixture
def extractor(error_log) -> ResponseExtractor:
    return ResponseExtractor(error_log)


@pytest.fixture
def ktb() -> InstitutionConfig:
    return InstitutionConfig(**copy.deepcopy(KTB_PROFILE))


@pytest.fixture
def vb() -> InstitutionConfig:
    return InstitutionConfig(**copy.deepcopy(VB_PROFILE))


@pytest.fixture
def stores(tmp_path) -> SQLiteStores:
    root = tmp_path / "db"
    root.mkdir()
    s = SQLiteStores(root)
    s.create("orch_loan_account_creation")
    s.create("proc_loan_account")
    return s


@pytest.fixture
def config_file(tmp_path) -> Path:
    path = tmp_path / "lending_config.yml"
    data = {
        "logs": {
            "log_dir": str(tmp_path / "logs"),
            "error_log": str(tmp_path / "error_log.txt"),
            "archive_dir": str(tmp_path / "error_logs_archive"),
        },
        "confluence": {
            "base_url": "https://wiki.test",
            "username": "bot",
            "api_token": "secret",
            "page_id": "42",
            "institution": "ktb",
        },
        "institutions": {"ktb": copy.deepcopy(KTB_PROFILE), "vb": copy.deepcopy(VB_PROFILE)},
    }
    path.write_text(yaml.safe_dump(data, sort_keys=False, allow_unicode=True), encoding="utf-8")
    return path


def read_config(path: Path) -> Dict[str, Any]:
    return yaml.safe_load(path.read_text(encoding="utf-8"))


def counter(prefix: str) -> Callable[[], str]:
    """Deterministic id factory: prefix-1, prefix-2, ..."""
    state = {"n": 0}

    def _next() -> str:
        state["n"] += 1
        return f"{prefix}-{state['n']}"

    return _next

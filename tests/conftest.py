"""Shared test fixtures."""

import json

import httpx
import pytest

from picking_sync.database.cache_store import EntityCacheStore
from picking_sync.database.connection import DatabaseConnection
from picking_sync.database.outbox import Outbox
from picking_sync.database.schema import initialize_database
from picking_sync.remote.client import OdooClient
from picking_sync.sync.sync_manager import SyncManager

BASE_URL = "http://odoo.test"


@pytest.fixture
def db_path(tmp_path):
    """Provide a temporary database path."""
    return tmp_path / "test.db"


@pytest.fixture
def db(db_path):
    """Provide an initialized database connection."""
    conn = DatabaseConnection(db_path)
    initialize_database(conn)
    return conn


@pytest.fixture
def cache(db):
    return EntityCacheStore(db)


@pytest.fixture
def outbox(db):
    return Outbox(db)


def picking_record(picking_id: int, **fields) -> dict:
    """A raw stock.picking record the way the server sends it."""
    record = {
        "id": picking_id,
        "name": f"WH/OUT/{picking_id:05d}",
        "partner_id": [10, "Azure Interior"],
        "picking_type_id": [2, "Delivery Orders"],
        "picking_type_code": "outgoing",
        "scheduled_date": "2030-01-01 10:00:00",
        "date_deadline": False,
        "state": "assigned",
        "origin": False,
        "user_id": False,
        "backorder_id": False,
        "has_deadline_issue": False,
        "delay_alert_date": False,
        "activity_exception_decoration": False,
    }
    record.update(fields)
    return record


@pytest.fixture
def make_picking():
    return picking_record


class StubGate:
    """Connectivity gate with a switch instead of a network."""

    def __init__(self, online: bool = True):
        self.online = online
        self.checks = 0

    def is_online(self) -> bool:
        self.checks += 1
        return self.online


@pytest.fixture
def gate():
    return StubGate(online=True)


class FakeOdoo:
    """In-memory JSON-RPC server for ``httpx.MockTransport``.

    ``records`` maps model name to raw records. Every call_kw request is
    appended to ``calls`` as ``(model, method, args, kwargs)``.
    """

    def __init__(self):
        self.records: dict[str, list[dict]] = {}
        self.calls: list[tuple] = []
        self.fail: dict[tuple, str] = {}
        self.down = False
        self.uid = 2
        self.next_id = 9000

    def _matches(self, record: dict, domain: list) -> bool:
        for leaf in domain:
            if not isinstance(leaf, list):
                continue
            field_name, op, value = leaf
            actual = record.get(field_name)
            if isinstance(actual, list):
                actual = actual[0] if actual else False
            if op == "=" and actual != value:
                return False
            if op == "!=" and actual == value:
                return False
            if op == "in" and actual not in value:
                return False
            if op == "ilike" and str(value).lower() not in str(actual or "").lower():
                return False
        return True

    def _search(self, model: str, domain: list) -> list[dict]:
        return [r for r in self.records.get(model, []) if self._matches(r, domain)]

    def _call_kw(self, params: dict):
        model, method = params["model"], params["method"]
        args, kwargs = params.get("args", []), params.get("kwargs", {})
        self.calls.append((model, method, args, kwargs))
        if (model, method) in self.fail:
            return {"error": {"code": 200, "message": "Odoo Server Error",
                              "data": {"name": "odoo.exceptions.UserError",
                                       "message": self.fail[(model, method)]}}}
        if method == "search_read":
            found = self._search(model, args[0] if args else [])
            offset = kwargs.get("offset", 0)
            limit = kwargs.get("limit")
            found = found[offset:offset + limit] if limit else found[offset:]
            return {"result": found}
        if method == "search_count":
            return {"result": len(self._search(model, args[0] if args else []))}
        if method == "read":
            ids = args[0]
            return {"result": [r for r in self.records.get(model, []) if r["id"] in ids]}
        if method == "create":
            self.next_id += 1
            values = dict(args[0], id=self.next_id)
            self.records.setdefault(model, []).append(values)
            return {"result": self.next_id}
        return {"result": True}

    def handle(self, request: httpx.Request) -> httpx.Response:
        if self.down:
            raise httpx.ConnectError("connection refused", request=request)
        if request.method == "GET" and request.url.path == "/web":
            return httpx.Response(200, text="<html></html>")
        body = json.loads(request.content)
        params = body["params"]
        if request.url.path == "/web/session/authenticate":
            if params.get("password") != "secret":
                payload = {"result": {"uid": False}}
            else:
                payload = {"result": {
                    "uid": self.uid,
                    "user_context": {"lang": "en_US", "tz": "UTC"},
                    "user_companies": {"current_company": 1,
                                       "allowed_companies": {}},
                }}
        else:
            payload = self._call_kw(params)
        payload.update({"jsonrpc": "2.0", "id": body["id"]})
        return httpx.Response(200, json=payload)

    def methods(self) -> list[tuple]:
        return [(model, method) for model, method, _, _ in self.calls]


@pytest.fixture
def fake_odoo():
    return FakeOdoo()


@pytest.fixture
def client(fake_odoo):
    c = OdooClient(BASE_URL, "test_db",
                   transport=httpx.MockTransport(fake_odoo.handle))
    c.authenticate("admin", "secret")
    yield c
    c.close()


@pytest.fixture
def manager(cache, outbox, client, gate):
    return SyncManager(cache, outbox, client, gate)

"""
Shared pytest fixtures for the webhook bridge test suite.

Provides:
  - fake_airtable:     An in-memory stand-in for the Airtable REST API,
                       served through ``httpx.MockTransport``.
  - airtable_settings: Settings patched to point at the fake base.
  - airtable:          An ``AirtableClient`` wired to the fake.
  - client:            A FastAPI TestClient whose Airtable dependency is
                       overridden to use the fake.
"""

import asyncio
import json
import logging

import httpx
import pytest
from fastapi.testclient import TestClient

from healthsync.config import settings
from healthsync.logging_setup import LOGGER_NAME
from healthsync.main import app
from healthsync.services.airtable import AirtableClient, build_http_client, get_airtable_client

BASE_ID = "appTEST0000000000"
API_URL = "https://api.airtable.test/v0"


# ---------------------------------------------------------------------------
# Fake Airtable
# ---------------------------------------------------------------------------

class FakeAirtable:
    """Minimal Airtable emulation: tables, paginated reads, batched writes.

    Failure switches:
      - fail_listing:       table listing raises a transport error
      - fail_create:        table creation answers 500
      - fail_read_page:     reading page N (1-based) raises a transport error
      - fail_write_calls:   record-creation calls (0-based, across all
                            tables) that answer 503
      - malformed_page:     reading page N (1-based) answers 200 with
                            malformed_body
    """

    def __init__(self):
        self.tables: dict[str, dict] = {}
        self.create_table_calls: list[dict] = []
        self.write_calls: list[tuple[str, list[dict]]] = []
        self.read_params: list[dict] = []
        self.fail_listing = False
        self.fail_create = False
        self.fail_read_page: int | None = None
        self.malformed_page: int | None = None
        self.malformed_body: dict = {"records": None}
        self.fail_write_calls: set[int] = set()
        self._next_id = 0
        self._read_page = 0

    # -- seeding helpers ----------------------------------------------------

    def add_table(self, name: str, dates: list[str] = ()) -> None:
        self.tables[name] = {"fields": [], "records": []}
        for d in dates:
            self._append(name, {"Date": d})

    def records(self, name: str) -> list[dict]:
        return [r["fields"] for r in self.tables[name]["records"]]

    def _append(self, table: str, fields: dict) -> dict:
        self._next_id += 1
        record = {"id": f"rec{self._next_id:05d}", "fields": fields}
        self.tables[table]["records"].append(record)
        return record

    # -- transport ----------------------------------------------------------

    def handler(self, request: httpx.Request) -> httpx.Response:
        assert request.headers["Authorization"] == "Bearer test-key"
        parts = request.url.path.split("/")[2:]  # drop "" and "v0"
        if parts[:2] == ["meta", "bases"]:
            assert parts[2] == BASE_ID
            if request.method == "GET":
                return self._list_tables(request)
            return self._create_table(request)

        assert parts[0] == BASE_ID
        table = parts[1]
        if request.method == "GET":
            return self._list_records(request, table)
        return self._create_records(request, table)

    def _list_tables(self, request):
        if self.fail_listing:
            raise httpx.ConnectError("connection refused", request=request)
        tables = [{"id": f"tbl{i}", "name": n} for i, n in enumerate(self.tables)]
        return httpx.Response(200, json={"tables": tables})

    def _create_table(self, request):
        payload = json.loads(request.content)
        self.create_table_calls.append(payload)
        if self.fail_create:
            return httpx.Response(500, json={"error": "SERVER_ERROR"})
        if payload["name"] in self.tables:
            return httpx.Response(422, json={"error": {"type": "DUPLICATE_TABLE_NAME"}})
        self.tables[payload["name"]] = {"fields": payload["fields"], "records": []}
        return httpx.Response(200, json={"id": "tblNEW", "name": payload["name"]})

    def _list_records(self, request, table):
        self._read_page += 1
        params = dict(request.url.params)
        self.read_params.append(params)
        if self.fail_read_page is not None and self._read_page == self.fail_read_page:
            raise httpx.ReadTimeout("read timed out", request=request)
        if self.malformed_page is not None and self._read_page == self.malformed_page:
            return httpx.Response(200, json=self.malformed_body)
        if table not in self.tables:
            return httpx.Response(404, json={"error": "TABLE_NOT_FOUND"})

        page_size = int(params.get("pageSize", 100))
        start = int(params.get("offset", 0))
        wanted = request.url.params.get_list("fields[]")
        chunk = self.tables[table]["records"][start:start + page_size]
        records = [
            {"id": r["id"], "fields": {k: v for k, v in r["fields"].items() if k in wanted}}
            for r in chunk
        ]
        body = {"records": records}
        if start + page_size < len(self.tables[table]["records"]):
            body["offset"] = str(start + page_size)
        return httpx.Response(200, json=body)

    def _create_records(self, request, table):
        call_index = len(self.write_calls)
        payload = json.loads(request.content)
        self.write_calls.append((table, payload["records"]))
        if call_index in self.fail_write_calls:
            return httpx.Response(503, json={"error": "SERVICE_UNAVAILABLE"})
        if table not in self.tables:
            return httpx.Response(404, json={"error": "TABLE_NOT_FOUND"})
        if len(payload["records"]) > 10:
            return httpx.Response(422, json={"error": "INVALID_RECORDS"})
        created = [self._append(table, dict(r["fields"])) for r in payload["records"]]
        return httpx.Response(200, json={"records": created})


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture()
def fake_airtable():
    return FakeAirtable()


@pytest.fixture()
def logger():
    return logging.getLogger(f"{LOGGER_NAME}.tests")


@pytest.fixture()
def airtable_settings(monkeypatch):
    monkeypatch.setattr(settings, "AIRTABLE_API_KEY", "test-key")
    monkeypatch.setattr(settings, "AIRTABLE_BASE_ID", BASE_ID)
    monkeypatch.setattr(settings, "AIRTABLE_API_URL", API_URL)
    return settings


@pytest.fixture()
def airtable(fake_airtable, airtable_settings, logger):
    """An ``AirtableClient`` talking to ``fake_airtable``.

    Tests drive the async API with ``asyncio.run``.
    """
    http = build_http_client(transport=httpx.MockTransport(fake_airtable.handler))
    try:
        yield AirtableClient(http, BASE_ID, logger)
    finally:
        asyncio.run(http.aclose())


@pytest.fixture()
def client(fake_airtable, airtable_settings):
    """Return a TestClient whose Airtable dependency is served by the fake."""

    async def _override_get_airtable_client():
        transport = httpx.MockTransport(fake_airtable.handler)
        async with build_http_client(transport=transport) as http:
            yield AirtableClient(http, BASE_ID, logging.getLogger(LOGGER_NAME))

    app.dependency_overrides[get_airtable_client] = _override_get_airtable_client
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()

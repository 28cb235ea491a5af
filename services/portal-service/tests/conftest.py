from __future__ import annotations

import json
import re
from typing import Any, Dict, List, Optional, Set

import httpx
import pytest

from app.core.airtable_client import AirtableClient

_FORMULA = re.compile(r"^\{(?P<field>.+?)\} = '(?P<value>.*)'$", re.S)


class FakeClock:
    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeAirtable:
    """In-memory stand-in for the Airtable REST API, served through httpx.MockTransport."""

    def __init__(self, page_size: int = 100) -> None:
        self.page_size = page_size
        self.records: Dict[str, Dict[str, Any]] = {}
        self.requests: List[httpx.Request] = []
        self.delete_batches: List[List[str]] = []
        self.fail_methods: Set[str] = set()
        self.fail_status = 503
        self.fail_delete_batch_numbers: Set[int] = set()
        self.raise_exc: Optional[Exception] = None
        self._seq = 0

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def seed(self, fields: Dict[str, Any]) -> str:
        self._seq += 1
        rid = f"rec{self._seq:05d}"
        self.records[rid] = dict(fields)
        return rid

    def rows(self) -> List[Dict[str, Any]]:
        return list(self.records.values())

    def methods(self) -> List[str]:
        return [r.method for r in self.requests]

    # ------------------------------------------------------------------

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.raise_exc is not None:
            raise self.raise_exc
        if request.method in self.fail_methods or "*" in self.fail_methods:
            return httpx.Response(
                self.fail_status,
                json={"error": {"type": "SERVICE_UNAVAILABLE", "message": "try again later"}},
            )

        parts = request.url.path.strip("/").split("/")
        record_id = parts[3] if len(parts) > 3 else None
        params = request.url.params

        if request.method == "GET":
            return self._list(params)
        if request.method == "POST":
            rid = self.seed(_json(request)["fields"])
            return httpx.Response(200, json={"id": rid, "fields": self.records[rid]})
        if request.method == "PATCH":
            if record_id not in self.records:
                return httpx.Response(404, json={"error": "NOT_FOUND"})
            self.records[record_id].update(_json(request)["fields"])
            return httpx.Response(200, json={"id": record_id, "fields": self.records[record_id]})
        if request.method == "DELETE":
            ids = params.get_list("records[]")
            self.delete_batches.append(ids)
            if len(ids) > 10:
                return httpx.Response(422, json={"error": {"type": "INVALID_REQUEST", "message": "too many"}})
            if len(self.delete_batches) in self.fail_delete_batch_numbers:
                return httpx.Response(429, json={"error": {"type": "RATE_LIMITED", "message": "slow down"}})
            deleted = [rid for rid in ids if self.records.pop(rid, None) is not None]
            return httpx.Response(200, json={"records": [{"id": rid, "deleted": True} for rid in deleted]})
        return httpx.Response(405)

    def _list(self, params: httpx.QueryParams) -> httpx.Response:
        items = list(self.records.items())
        formula = params.get("filterByFormula")
        if formula:
            m = _FORMULA.match(formula)
            assert m, f"unsupported formula {formula!r}"
            value = m.group("value").replace("''", "'").replace("\\\\", "\\")
            items = [(rid, f) for rid, f in items if f.get(m.group("field")) == value]
        if params.get("maxRecords"):
            items = items[: int(params["maxRecords"])]

        wanted = params.get_list("fields[]")
        start = int(params.get("offset") or 0)
        page = items[start : start + self.page_size]
        body: Dict[str, Any] = {
            "records": [
                {"id": rid, "fields": {k: v for k, v in f.items() if not wanted or k in wanted}}
                for rid, f in page
            ]
        }
        if start + self.page_size < len(items):
            body["offset"] = str(start + self.page_size)
        return httpx.Response(200, json=body)


def _json(request: httpx.Request) -> Dict[str, Any]:
    return json.loads(request.content.decode("utf-8"))


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def fake_airtable() -> FakeAirtable:
    return FakeAirtable()


@pytest.fixture
def airtable_client(fake_airtable: FakeAirtable) -> AirtableClient:
    return AirtableClient(
        api_key="keyTEST",
        base_id="appTEST",
        api_url="https://api.airtable.test/v0",
        timeout_seconds=2.0,
        transport=fake_airtable.transport(),
    )

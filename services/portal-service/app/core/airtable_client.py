from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple
from urllib.parse import quote

import httpx

log = logging.getLogger("portal.airtable")

# Airtable rejects batch writes/deletes of more than 10 records per request
MAX_RECORDS_PER_REQUEST = 10


class AirtableError(Exception):
    """Raised for any failed Airtable call: HTTP error status, transport error or timeout."""

    def __init__(self, message: str, *, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


def escape_formula_value(value: Any) -> str:
    """
    Escape a value for use inside a single-quoted Airtable formula string.
    Backslashes first, then single quotes are doubled.
    """
    text = value if isinstance(value, str) else str(value)
    return text.replace("\\", "\\\\").replace("'", "''")


def field_equals_formula(field: str, value: Any) -> str:
    return f"{{{field}}} = '{escape_formula_value(value)}'"


class AirtableClient:
    """
    Thin async client for the Airtable REST API, scoped to one base.

    One pooled httpx.AsyncClient is shared by every call, so concurrent
    requests reuse connections.
    """

    def __init__(
        self,
        *,
        api_key: str,
        base_id: str,
        api_url: str = "https://api.airtable.com/v0",
        timeout_seconds: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.base_id = base_id
        self._client = httpx.AsyncClient(
            base_url=f"{api_url.rstrip('/')}/{base_id}",
            headers={
                "Authorization": f"Bearer {api_key}",
                "Content-Type": "application/json",
            },
            timeout=timeout_seconds,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    # ---------------------------------------------------------------------
    # Records
    # ---------------------------------------------------------------------

    async def list_records(
        self,
        table: str,
        *,
        formula: Optional[str] = None,
        max_records: Optional[int] = None,
        fields: Optional[Sequence[str]] = None,
    ) -> List[Dict[str, Any]]:
        base_params: List[Tuple[str, Any]] = []
        if formula:
            base_params.append(("filterByFormula", formula))
        if max_records is not None:
            base_params.append(("maxRecords", max_records))
        for f in fields or ():
            base_params.append(("fields[]", f))

        records: List[Dict[str, Any]] = []
        offset: Optional[str] = None
        while True:
            params = list(base_params)
            if offset:
                params.append(("offset", offset))
            data = await self._request("GET", self._table_path(table), params=params)
            records.extend(data.get("records") or [])
            offset = data.get("offset")
            if not offset:
                break
            if max_records is not None and len(records) >= max_records:
                break

        log.debug("list table=%s formula=%s count=%d", table, formula, len(records))
        return records

    async def create_record(self, table: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        return await self._request("POST", self._table_path(table), json={"fields": fields})

    async def update_record(self, table: str, record_id: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        return await self._request(
            "PATCH",
            f"{self._table_path(table)}/{quote(record_id, safe='')}",
            json={"fields": fields},
        )

    async def delete_records(self, table: str, record_ids: Sequence[str]) -> List[str]:
        if not record_ids:
            return []
        if len(record_ids) > MAX_RECORDS_PER_REQUEST:
            raise ValueError(
                f"at most {MAX_RECORDS_PER_REQUEST} records per delete, got {len(record_ids)}"
            )
        params = [("records[]", rid) for rid in record_ids]
        data = await self._request("DELETE", self._table_path(table), params=params)
        return [r.get("id") for r in data.get("records") or [] if r.get("deleted")]

    # ---------------------------------------------------------------------
    # Internals
    # ---------------------------------------------------------------------

    @staticmethod
    def _table_path(table: str) -> str:
        return "/" + quote(table, safe="")

    async def _request(self, method: str, path: str, **kwargs: Any) -> Dict[str, Any]:
        try:
            resp = await self._client.request(method, path, **kwargs)
        except httpx.TimeoutException as e:
            log.warning("airtable timeout method=%s path=%s", method, path)
            raise AirtableError(f"Airtable {method} {path} timed out") from e
        except httpx.HTTPError as e:
            log.warning("airtable transport error method=%s path=%s err=%s", method, path, e)
            raise AirtableError(f"Airtable {method} {path} failed: {e}") from e

        if resp.status_code >= 400:
            detail = _error_detail(resp)
            log.warning(
                "airtable http error method=%s path=%s status=%s detail=%s",
                method,
                path,
                resp.status_code,
                detail,
            )
            raise AirtableError(
                f"Airtable {method} {path} returned {resp.status_code}: {detail}",
                status_code=resp.status_code,
            )

        try:
            return resp.json()
        except ValueError as e:
            raise AirtableError(
                f"Airtable {method} {path} returned a non-JSON body",
                status_code=resp.status_code,
            ) from e


def _error_detail(resp: httpx.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        return resp.text[:200]
    err = body.get("error") if isinstance(body, dict) else None
    if isinstance(err, dict):
        return f"{err.get('type')}: {err.get('message')}"
    if err:
        return str(err)
    return str(body)[:200]

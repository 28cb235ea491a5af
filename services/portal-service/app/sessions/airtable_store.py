from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Dict, Optional, Set

from ..core.airtable_client import AirtableClient, AirtableError, field_equals_formula
from .errors import SessionDecodeError, StoreError
from .memory_store import DEFAULT_TTL_SECONDS
from .serialization import decode_session, encode_session, format_timestamp, parse_timestamp
from .types import Clock, SessionData, SessionStore

log = logging.getLogger("portal.sessions.airtable")

SESSION_ID_FIELD = "Session ID"
DATA_FIELD = "Data"
EXPIRY_FIELD = "Expiry"
LAST_ACCESS_FIELD = "Last Access"

# Matches the Airtable per-request record limit
CLEAR_BATCH_SIZE = 10


def _short(sid: str) -> str:
    return sid[:8]


class AirtableSessionStore(SessionStore):
    """
    Session rows in an Airtable table (default "Sessions").

    Columns: Session ID (text), Data (long text, JSON), Expiry and
    Last Access (date with time, UTC). Every remote failure is raised as
    StoreError; absence and expiry are returned as None.
    """

    def __init__(
        self,
        client: AirtableClient,
        *,
        table_name: str = "Sessions",
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
        clock: Clock = time.time,
    ) -> None:
        self._client = client
        self.table_name = table_name
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._pending: Set[asyncio.Task] = set()

    async def drain(self) -> None:
        """Wait for background removals of expired rows."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def close(self) -> None:
        await self.drain()
        await self._client.aclose()

    # ---------------------------------------------------------------------
    # Helpers
    # ---------------------------------------------------------------------

    async def _find(self, sid: str) -> Optional[Dict[str, Any]]:
        try:
            records = await self._client.list_records(
                self.table_name,
                formula=field_equals_formula(SESSION_ID_FIELD, sid),
                max_records=1,
            )
        except AirtableError as e:
            raise StoreError(f"session lookup failed sid={_short(sid)}") from e
        return records[0] if records else None

    def _is_expired(self, fields: Dict[str, Any], now: float) -> bool:
        expiry = fields.get(EXPIRY_FIELD)
        if not expiry:
            return False
        try:
            return parse_timestamp(expiry) <= now
        except ValueError:
            log.warning(
                "unreadable expiry treated as expired sid=%s expiry=%r",
                _short(str(fields.get(SESSION_ID_FIELD) or "")),
                expiry,
            )
            return True

    async def _delete_expired(self, record_id: str, sid: str) -> None:
        try:
            await self._client.delete_records(self.table_name, [record_id])
            log.debug("expired session removed sid=%s", _short(sid))
        except AirtableError as e:
            log.warning("expired session removal failed sid=%s err=%s", _short(sid), e)

    # ---------------------------------------------------------------------
    # SessionStore
    # ---------------------------------------------------------------------

    async def get(self, sid: str) -> Optional[SessionData]:
        rec = await self._find(sid)
        if not rec:
            return None

        fields = rec.get("fields") or {}
        if self._is_expired(fields, self._clock()):
            # Removal runs in the background; the caller only needs the miss
            task = asyncio.create_task(self._delete_expired(rec["id"], sid))
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)
            return None

        return decode_session(fields.get(DATA_FIELD))

    async def set(self, sid: str, data: SessionData) -> None:
        payload = encode_session(data)
        now = self._clock()
        fields = {
            SESSION_ID_FIELD: sid,
            DATA_FIELD: payload,
            EXPIRY_FIELD: format_timestamp(now + self.ttl_seconds),
            LAST_ACCESS_FIELD: format_timestamp(now),
        }

        rec = await self._find(sid)
        try:
            if rec:
                await self._client.update_record(self.table_name, rec["id"], fields)
            else:
                await self._client.create_record(self.table_name, fields)
        except AirtableError as e:
            raise StoreError(f"session write failed sid={_short(sid)}") from e

    async def destroy(self, sid: str) -> None:
        rec = await self._find(sid)
        if not rec:
            return
        try:
            await self._client.delete_records(self.table_name, [rec["id"]])
        except AirtableError as e:
            raise StoreError(f"session delete failed sid={_short(sid)}") from e

    async def touch(self, sid: str, data: SessionData) -> None:
        rec = await self._find(sid)
        if not rec:
            return
        now = self._clock()
        try:
            await self._client.update_record(
                self.table_name,
                rec["id"],
                {
                    EXPIRY_FIELD: format_timestamp(now + self.ttl_seconds),
                    LAST_ACCESS_FIELD: format_timestamp(now),
                },
            )
        except AirtableError as e:
            raise StoreError(f"session touch failed sid={_short(sid)}") from e

    async def clear(self) -> None:
        try:
            records = await self._client.list_records(self.table_name, fields=[SESSION_ID_FIELD])
        except AirtableError as e:
            raise StoreError("session listing for clear failed") from e

        ids = [r["id"] for r in records]
        last_error: Optional[AirtableError] = None
        failed = 0
        for i in range(0, len(ids), CLEAR_BATCH_SIZE):
            batch = ids[i : i + CLEAR_BATCH_SIZE]
            try:
                await self._client.delete_records(self.table_name, batch)
            except AirtableError as e:
                failed += 1
                last_error = e
                log.warning("clear batch failed offset=%d size=%d err=%s", i, len(batch), e)

        if last_error is not None:
            raise StoreError(f"clear failed for {failed} batch(es)") from last_error
        log.info("sessions cleared table=%s count=%d", self.table_name, len(ids))

    async def all(self) -> Dict[str, SessionData]:
        try:
            records = await self._client.list_records(self.table_name)
        except AirtableError as e:
            raise StoreError("session listing failed") from e

        now = self._clock()
        sessions: Dict[str, SessionData] = {}
        for rec in records:
            fields = rec.get("fields") or {}
            sid = fields.get(SESSION_ID_FIELD)
            if not sid or self._is_expired(fields, now):
                continue
            try:
                sessions[str(sid)] = decode_session(fields.get(DATA_FIELD))
            except SessionDecodeError as e:
                log.warning("skipping invalid session sid=%s err=%s", _short(str(sid)), e)
        return sessions

    async def length(self) -> int:
        try:
            records = await self._client.list_records(
                self.table_name,
                fields=[SESSION_ID_FIELD, EXPIRY_FIELD],
            )
        except AirtableError as e:
            raise StoreError("session count failed") from e

        now = self._clock()
        return sum(
            1
            for rec in records
            if (rec.get("fields") or {}).get(SESSION_ID_FIELD)
            and not self._is_expired(rec.get("fields") or {}, now)
        )

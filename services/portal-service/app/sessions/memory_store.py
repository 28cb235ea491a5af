from __future__ import annotations

import copy
import time
from dataclasses import dataclass
from typing import Dict, Optional

from .serialization import encode_session
from .types import Clock, SessionData, SessionStore

DEFAULT_TTL_SECONDS = 86400


@dataclass
class SessionRecord:
    data: SessionData
    expires_at: float
    last_accessed_at: float


class InMemorySessionStore(SessionStore):
    """
    Process-local store with lazy expiry.
    Used as the fallback tier behind Airtable and on its own in dev.
    """
    def __init__(self, ttl_seconds: int = DEFAULT_TTL_SECONDS, clock: Clock = time.time) -> None:
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._store: Dict[str, SessionRecord] = {}

    def _live(self, sid: str) -> Optional[SessionRecord]:
        rec = self._store.get(sid)
        if not rec:
            return None
        if rec.expires_at <= self._clock():
            self._store.pop(sid, None)
            return None
        return rec

    def _sweep(self) -> None:
        now = self._clock()
        for sid in [k for k, rec in self._store.items() if rec.expires_at <= now]:
            self._store.pop(sid, None)

    async def get(self, sid: str) -> Optional[SessionData]:
        rec = self._live(sid)
        if not rec:
            return None
        return copy.deepcopy(rec.data)

    async def set(self, sid: str, data: SessionData) -> None:
        encode_session(data)
        now = self._clock()
        self._store[sid] = SessionRecord(
            data=copy.deepcopy(data),
            expires_at=now + self.ttl_seconds,
            last_accessed_at=now,
        )

    async def destroy(self, sid: str) -> None:
        self._store.pop(sid, None)

    async def touch(self, sid: str, data: SessionData) -> None:
        rec = self._live(sid)
        if not rec:
            return
        now = self._clock()
        rec.expires_at = now + self.ttl_seconds
        rec.last_accessed_at = now

    async def clear(self) -> None:
        self._store.clear()

    async def all(self) -> Dict[str, SessionData]:
        self._sweep()
        return {sid: copy.deepcopy(rec.data) for sid, rec in self._store.items()}

    async def length(self) -> int:
        self._sweep()
        return len(self._store)

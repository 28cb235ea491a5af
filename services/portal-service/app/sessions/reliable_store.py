"""
Reliable session store: Airtable first, process memory when Airtable fails.

Two states:
- PRIMARY_ACTIVE: calls go to the primary store
- FALLBACK_ACTIVE: calls go to the in-memory store until resume_at

Any primary failure in get/set/touch/all/length trips the breaker for every
session, not only the failing one, and the same call is retried on the
fallback so the caller sees a single outcome. Once the cooldown has elapsed
the next call tries the primary again; there is no background health check.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional, TypeVar

from .errors import SessionEncodeError
from .memory_store import InMemorySessionStore
from .serialization import encode_session
from .types import Clock, SessionData, SessionStore

log = logging.getLogger("portal.sessions.reliable")

T = TypeVar("T")

DEFAULT_COOLDOWN_SECONDS = 300.0


class BreakerMode(str, Enum):
    PRIMARY_ACTIVE = "primary"
    FALLBACK_ACTIVE = "fallback"


@dataclass
class FailoverState:
    """Breaker state owned by a single ReliableSessionStore instance."""
    mode: BreakerMode = BreakerMode.PRIMARY_ACTIVE
    resume_at: Optional[float] = None

    def trip(self, now: float, cooldown_seconds: float) -> None:
        self.mode = BreakerMode.FALLBACK_ACTIVE
        self.resume_at = now + cooldown_seconds

    def reset(self) -> None:
        self.mode = BreakerMode.PRIMARY_ACTIVE
        self.resume_at = None


def _short(sid: str) -> str:
    return sid[:8]


class ReliableSessionStore(SessionStore):
    def __init__(
        self,
        primary: Optional[SessionStore],
        fallback: Optional[SessionStore] = None,
        *,
        cooldown_seconds: float = DEFAULT_COOLDOWN_SECONDS,
        clock: Clock = time.time,
    ) -> None:
        self._primary = primary
        self._fallback = fallback if fallback is not None else InMemorySessionStore(clock=clock)
        self.cooldown_seconds = cooldown_seconds
        self._clock = clock
        self._state = FailoverState()
        if primary is None:
            # No primary configured: fallback for the lifetime of the store
            self._state.mode = BreakerMode.FALLBACK_ACTIVE

    # ---------------------------------------------------------------------
    # Breaker
    # ---------------------------------------------------------------------

    @property
    def state(self) -> FailoverState:
        return self._state

    @property
    def using_fallback(self) -> bool:
        # State reads and writes below never await, so they cannot interleave
        # with other coroutines on the event loop.
        if self._primary is None:
            return True
        st = self._state
        if st.mode is BreakerMode.FALLBACK_ACTIVE and st.resume_at is not None:
            if self._clock() >= st.resume_at:
                st.reset()
                log.info("session store cooldown elapsed, retrying primary")
        return st.mode is BreakerMode.FALLBACK_ACTIVE

    def _trip(self, operation: str, err: BaseException) -> None:
        self._state.trip(self._clock(), self.cooldown_seconds)
        log.warning(
            "primary session store %s failed, using memory fallback for %ss err=%s",
            operation,
            self.cooldown_seconds,
            err,
        )

    async def _call(self, operation: str, fn: Callable[[SessionStore], Awaitable[T]]) -> T:
        if self.using_fallback:
            return await fn(self._fallback)
        try:
            return await fn(self._primary)
        except SessionEncodeError:
            raise
        except Exception as e:
            self._trip(operation, e)
            return await fn(self._fallback)

    def status(self) -> Dict[str, Any]:
        fallback = self.using_fallback
        return {
            "mode": (BreakerMode.FALLBACK_ACTIVE if fallback else BreakerMode.PRIMARY_ACTIVE).value,
            "has_primary": self._primary is not None,
            "resume_at": self._state.resume_at if fallback else None,
        }

    # ---------------------------------------------------------------------
    # SessionStore
    # ---------------------------------------------------------------------

    async def get(self, sid: str) -> Optional[SessionData]:
        if self.using_fallback:
            return await self._fallback.get(sid)
        try:
            data = await self._primary.get(sid)
        except Exception as e:
            self._trip("get", e)
            return await self._fallback.get(sid)
        if data is not None:
            return data
        return await self._migrate_from_fallback(sid)

    async def _migrate_from_fallback(self, sid: str) -> Optional[SessionData]:
        """Move a session written during an outage back into the primary."""
        data = await self._fallback.get(sid)
        if data is None:
            return None
        try:
            await self._primary.set(sid, data)
        except Exception as e:
            self._trip("migrate", e)
            return data
        await self._fallback.destroy(sid)
        log.info("session migrated from fallback to primary sid=%s", _short(sid))
        return data

    async def set(self, sid: str, data: SessionData) -> None:
        # An unserializable payload is a caller bug, not a store outage
        encode_session(data)
        await self._call("set", lambda store: store.set(sid, data))

    async def touch(self, sid: str, data: SessionData) -> None:
        await self._call("touch", lambda store: store.touch(sid, data))

    async def destroy(self, sid: str) -> None:
        # Both tiers, so the copy in the non-authoritative store cannot come back
        if self._primary is not None and not self.using_fallback:
            try:
                await self._primary.destroy(sid)
            except Exception as e:
                log.warning("primary session destroy failed sid=%s err=%s", _short(sid), e)
        await self._fallback.destroy(sid)

    async def clear(self) -> None:
        await self._fallback.clear()
        if self._primary is not None and not self.using_fallback:
            await self._primary.clear()

    async def all(self) -> Dict[str, SessionData]:
        return await self._call("all", lambda store: store.all())

    async def length(self) -> int:
        return await self._call("length", lambda store: store.length())

    async def close(self) -> None:
        if self._primary is not None:
            await self._primary.close()
        await self._fallback.close()

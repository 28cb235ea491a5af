from __future__ import annotations

import logging
import time
from typing import Optional

from redis.asyncio import Redis

from ..core.airtable_client import AirtableClient
from ..settings import Settings
from .airtable_store import AirtableSessionStore
from .memory_store import InMemorySessionStore
from .redis_store import RedisSessionStore
from .reliable_store import ReliableSessionStore
from .types import Clock, SessionStore

log = logging.getLogger("portal.sessions")


def build_session_store(settings: Settings, clock: Clock = time.time) -> Optional[SessionStore]:
    """
    Server-side store for SESSION_STORE, or None for cookie-only sessions.
    """
    choice = settings.SESSION_STORE.lower()

    if choice == "cookie":
        log.info("session store=cookie (signed client-side sessions)")
        return None

    if choice == "redis":
        log.info("session store=redis prefix=%s ttl=%s", settings.REDIS_KEY_PREFIX, settings.SESSION_TTL_SECONDS)
        return RedisSessionStore(
            Redis.from_url(settings.REDIS_URL),
            prefix=settings.REDIS_KEY_PREFIX,
            ttl_seconds=settings.SESSION_TTL_SECONDS,
        )

    if choice == "airtable":
        primary: Optional[SessionStore] = None
        if settings.airtable_configured:
            client = AirtableClient(
                api_key=settings.AIRTABLE_API_KEY,
                base_id=settings.AIRTABLE_BASE_ID,
                api_url=settings.airtable_api_url,
                timeout_seconds=settings.AIRTABLE_TIMEOUT_SECONDS,
            )
            primary = AirtableSessionStore(
                client,
                table_name=settings.AIRTABLE_SESSIONS_TABLE,
                ttl_seconds=settings.SESSION_TTL_SECONDS,
                clock=clock,
            )
            log.info(
                "session store=airtable base=%s table=%s ttl=%s",
                settings.AIRTABLE_BASE_ID,
                settings.AIRTABLE_SESSIONS_TABLE,
                settings.SESSION_TTL_SECONDS,
            )
        else:
            log.warning("AIRTABLE_API_KEY/AIRTABLE_BASE_ID not set, sessions kept in memory only")

        return ReliableSessionStore(
            primary,
            InMemorySessionStore(ttl_seconds=settings.SESSION_TTL_SECONDS, clock=clock),
            cooldown_seconds=settings.SESSION_FALLBACK_COOLDOWN_SECONDS,
            clock=clock,
        )

    raise ValueError(f"unknown SESSION_STORE {settings.SESSION_STORE!r}")

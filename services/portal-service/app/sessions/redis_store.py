from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from redis.exceptions import RedisError

from .errors import SessionDecodeError, StoreError
from .memory_store import DEFAULT_TTL_SECONDS
from .serialization import decode_session, encode_session
from .types import SessionData, SessionStore

log = logging.getLogger("portal.sessions.redis")

DEFAULT_KEY_PREFIX = "sv:sess:"


def _text(raw: Any) -> str:
    return raw.decode("utf-8") if isinstance(raw, (bytes, bytearray)) else str(raw)


class RedisSessionStore(SessionStore):
    """
    Sessions as JSON strings under "<prefix><sid>", expiry handled by Redis TTLs.
    `client` is a redis.asyncio.Redis instance.
    """

    def __init__(
        self,
        client: Any,
        *,
        prefix: str = DEFAULT_KEY_PREFIX,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
    ) -> None:
        self._client = client
        self.prefix = prefix
        self.ttl_seconds = ttl_seconds

    def _key(self, sid: str) -> str:
        return f"{self.prefix}{sid}"

    async def _keys(self) -> List[str]:
        try:
            return [_text(k) async for k in self._client.scan_iter(match=f"{self.prefix}*")]
        except RedisError as e:
            raise StoreError("redis session scan failed") from e

    async def get(self, sid: str) -> Optional[SessionData]:
        try:
            raw = await self._client.get(self._key(sid))
        except RedisError as e:
            raise StoreError(f"redis session read failed sid={sid[:8]}") from e
        if raw is None:
            return None
        return decode_session(_text(raw))

    async def set(self, sid: str, data: SessionData) -> None:
        payload = encode_session(data)
        try:
            await self._client.set(self._key(sid), payload, ex=self.ttl_seconds)
        except RedisError as e:
            raise StoreError(f"redis session write failed sid={sid[:8]}") from e

    async def destroy(self, sid: str) -> None:
        try:
            await self._client.delete(self._key(sid))
        except RedisError as e:
            raise StoreError(f"redis session delete failed sid={sid[:8]}") from e

    async def touch(self, sid: str, data: SessionData) -> None:
        # EXPIRE on a missing key is a no-op, so a destroyed session stays gone
        try:
            await self._client.expire(self._key(sid), self.ttl_seconds)
        except RedisError as e:
            raise StoreError(f"redis session touch failed sid={sid[:8]}") from e

    async def clear(self) -> None:
        keys = await self._keys()
        if keys:
            try:
                await self._client.delete(*keys)
            except RedisError as e:
                raise StoreError("redis session clear failed") from e
        log.info("redis sessions cleared count=%d", len(keys))

    async def all(self) -> Dict[str, SessionData]:
        sessions: Dict[str, SessionData] = {}
        for key in await self._keys():
            try:
                raw = await self._client.get(key)
            except RedisError as e:
                raise StoreError("redis session listing failed") from e
            if raw is None:
                continue
            sid = key[len(self.prefix):]
            try:
                sessions[sid] = decode_session(_text(raw))
            except SessionDecodeError as e:
                log.warning("skipping invalid session sid=%s err=%s", sid[:8], e)
        return sessions

    async def length(self) -> int:
        return len(await self._keys())

    async def close(self) -> None:
        await self._client.aclose()

from __future__ import annotations

import copy
import logging
import uuid
from typing import Optional

from itsdangerous import BadSignature, URLSafeSerializer
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp

from ..sessions.errors import StoreError
from ..sessions.types import SessionData, SessionStore

log = logging.getLogger("portal.session")


def new_session_id() -> str:
    return uuid.uuid4().hex


def get_session(request: Request) -> SessionData:
    """Current session mapping, for server-side and cookie-only sessions alike."""
    if "session" in request.scope:
        return request.session
    state = request.state
    if not hasattr(state, "session"):
        state.session = {}
    return state.session


def destroy_session(request: Request) -> None:
    if "session" in request.scope:
        request.session.clear()
        return
    request.state.session_destroyed = True


class ServerSessionMiddleware(BaseHTTPMiddleware):
    """
    Loads request.state.session from a SessionStore and writes it back.

    - unchanged new sessions are never stored
    - changed sessions are saved (a new id is issued on first save)
    - unchanged existing sessions are touched and their cookie refreshed
    - destroy_session() removes the record and the cookie
    """

    def __init__(
        self,
        app: ASGIApp,
        *,
        store: SessionStore,
        secret_key: str,
        cookie_name: str = "sv.sid",
        max_age: int = 30 * 24 * 60 * 60,
        https_only: bool = False,
        same_site: str = "lax",
        domain: Optional[str] = None,
    ) -> None:
        super().__init__(app)
        self.store = store
        self.cookie_name = cookie_name
        self.max_age = max_age
        self.https_only = https_only
        self.same_site = same_site
        self.domain = domain
        self._serializer = URLSafeSerializer(secret_key, salt="portal-session")

    def _read_sid(self, request: Request) -> Optional[str]:
        raw = request.cookies.get(self.cookie_name)
        if not raw:
            return None
        try:
            return self._serializer.loads(raw)
        except BadSignature:
            log.debug("session cookie signature rejected")
            return None

    def _set_cookie(self, resp: Response, sid: str) -> None:
        resp.set_cookie(
            key=self.cookie_name,
            value=self._serializer.dumps(sid),
            httponly=True,
            secure=self.https_only,
            samesite=self.same_site,
            domain=self.domain,
            max_age=self.max_age,
            path="/",
        )

    def _clear_cookie(self, resp: Response) -> None:
        resp.delete_cookie(key=self.cookie_name, domain=self.domain, path="/")

    async def dispatch(self, request: Request, call_next):
        sid = self._read_sid(request)
        data: SessionData = {}
        if sid:
            try:
                loaded = await self.store.get(sid)
            except StoreError as e:
                log.warning("session load failed, starting empty sid=%s err=%s", sid[:8], e)
                loaded = None
            if loaded is None:
                sid = None
            else:
                data = loaded

        request.state.session_id = sid
        request.state.session = data
        request.state.session_destroyed = False
        original = copy.deepcopy(data)

        response: Response = await call_next(request)

        session = request.state.session
        if request.state.session_destroyed:
            if sid:
                try:
                    await self.store.destroy(sid)
                except Exception as e:
                    log.warning("session destroy failed sid=%s err=%s", sid[:8], e)
            self._clear_cookie(response)
        elif session != original:
            if not sid:
                sid = new_session_id()
            await self.store.set(sid, session)
            self._set_cookie(response, sid)
        elif sid:
            try:
                await self.store.touch(sid, session)
            except Exception as e:
                log.warning("session touch failed sid=%s err=%s", sid[:8], e)
            self._set_cookie(response, sid)

        return response

from __future__ import annotations

import logging

from fastapi import APIRouter, Request

from ..middleware.server_session import destroy_session, get_session

router = APIRouter(prefix="/api", tags=["session"])
log = logging.getLogger("portal.session")


@router.get("/session")
def read_session(request: Request):
    session = get_session(request)
    return {"authenticated": bool(session.get("userId")), "session": dict(session)}


@router.post("/auth/logout")
def logout(request: Request):
    session = get_session(request)
    log.info("logout user=%s", session.get("userId"))
    destroy_session(request)
    return {"ok": True}

from __future__ import annotations

import hmac
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Request

from ..sessions.errors import StoreError
from ..sessions.types import SessionStore

router = APIRouter(prefix="/api/admin", tags=["admin"])
log = logging.getLogger("portal.admin")


def require_admin(request: Request, x_admin_token: Optional[str] = Header(default=None)) -> None:
    expected = request.app.state.settings.ADMIN_TOKEN
    if not expected:
        raise HTTPException(status_code=404, detail="Not Found")
    if not x_admin_token or not hmac.compare_digest(x_admin_token, expected):
        raise HTTPException(status_code=401, detail="Admin token required")


def _store(request: Request) -> SessionStore:
    store = getattr(request.app.state, "session_store", None)
    if store is None:
        raise HTTPException(status_code=409, detail="Sessions are cookie-only; nothing stored server-side")
    return store


@router.get("/sessions", dependencies=[Depends(require_admin)])
async def list_sessions(request: Request):
    store = _store(request)
    try:
        sessions = await store.all()
    except StoreError as e:
        log.exception("session listing failed err=%s", e)
        raise HTTPException(status_code=502, detail="Session store unavailable")
    # count and ids come from the same read
    return {"count": len(sessions), "session_ids": sorted(sessions)}


@router.delete("/sessions", dependencies=[Depends(require_admin)])
async def clear_sessions(request: Request):
    store = _store(request)
    try:
        await store.clear()
    except StoreError as e:
        log.exception("session clear failed err=%s", e)
        raise HTTPException(status_code=502, detail=str(e))
    log.info("sessions cleared by admin")
    return {"ok": True}

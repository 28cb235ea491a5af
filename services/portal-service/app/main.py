from __future__ import annotations

import logging
import time
import uuid
from contextlib import asynccontextmanager
from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.sessions import SessionMiddleware
from starlette.responses import Response

from .logger import setup_logging
from .middleware.server_session import ServerSessionMiddleware
from .routers.admin_routes import router as admin_router
from .routers.health_routes import router as health_router
from .routers.session_routes import router as session_router
from .sessions.factory import build_session_store
from .sessions.types import SessionStore
from .settings import Settings, settings as default_settings

log = logging.getLogger("portal")

_UNSET: Any = object()


def create_app(
    settings: Optional[Settings] = None,
    session_store: Optional[SessionStore] = _UNSET,
) -> FastAPI:
    """
    `session_store` overrides the store chosen by SESSION_STORE; pass None
    for cookie-only sessions.
    """
    settings = settings or default_settings
    setup_logging(settings)

    if session_store is _UNSET:
        session_store = build_session_store(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        log.info("startup complete")
        yield
        store = app.state.session_store
        if store is not None:
            await store.close()
        log.info("shutdown complete")

    app = FastAPI(title="Storage Valet Portal", lifespan=lifespan)
    app.state.settings = settings
    app.state.session_store = session_store

    # ----------------------------
    # Sessions
    # ----------------------------
    if session_store is None:
        app.add_middleware(
            SessionMiddleware,
            secret_key=settings.SESSION_SIGNING_SECRET,
            session_cookie=settings.SESSION_COOKIE_NAME,
            max_age=settings.COOKIE_MAX_AGE_SECONDS,
            same_site=settings.COOKIE_SAMESITE,
            https_only=settings.COOKIE_SECURE,
        )
    else:
        app.add_middleware(
            ServerSessionMiddleware,
            store=session_store,
            secret_key=settings.SESSION_SIGNING_SECRET,
            cookie_name=settings.SESSION_COOKIE_NAME,
            max_age=settings.COOKIE_MAX_AGE_SECONDS,
            https_only=settings.COOKIE_SECURE,
            same_site=settings.COOKIE_SAMESITE,
        )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ALLOW_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ----------------------------
    # Request/Response logging middleware
    # ----------------------------
    @app.middleware("http")
    async def request_logging_middleware(request: Request, call_next):
        rid = request.headers.get("x-request-id") or str(uuid.uuid4())
        request.state.request_id = rid

        start = time.time()
        path = request.url.path

        log.info(
            "REQ rid=%s method=%s path=%s client=%s",
            rid,
            request.method,
            path,
            request.client.host if request.client else None,
        )

        try:
            resp: Response = await call_next(request)
            dur_ms = int((time.time() - start) * 1000)
            log.info("RES rid=%s status=%s dur_ms=%s path=%s", rid, resp.status_code, dur_ms, path)
            resp.headers["x-request-id"] = rid
            return resp
        except Exception:
            dur_ms = int((time.time() - start) * 1000)
            log.exception("ERR rid=%s dur_ms=%s path=%s", rid, dur_ms, path)
            raise

    app.include_router(health_router)
    app.include_router(session_router)
    app.include_router(admin_router)

    log.info(
        "app ready session_store=%s cookie=%s secure=%s samesite=%s",
        settings.SESSION_STORE,
        settings.SESSION_COOKIE_NAME,
        settings.COOKIE_SECURE,
        settings.COOKIE_SAMESITE,
    )
    return app


app = create_app()

if __name__ == "__main__":
    import uvicorn

    uvicorn.run("app.main:app", host="0.0.0.0", port=default_settings.PORT)

from fastapi import APIRouter, Request

router = APIRouter(tags=["health"])


@router.get("/healthz")
def healthz():
    return {"ok": True}


@router.get("/readyz")
def readyz():
    return {"ready": True}


@router.get("/api/health")
def api_health(request: Request):
    body = {"status": "healthy"}
    store = getattr(request.app.state, "session_store", None)
    status = getattr(store, "status", None)
    if callable(status):
        body["session_store"] = status()
    return body

"""Health router."""

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from backend.models import HealthResponse
from perfbudget.infrastructure.health import full_health_check

router = APIRouter(tags=["health"])


@router.get("/health", response_model=HealthResponse)
async def health(request: Request):
    """Health check."""
    service = getattr(request.app.state, "service", None)
    if service is None:
        return JSONResponse(status_code=503, content={"status": "starting", "storage": None})

    report = await full_health_check({"storage": service.storage})
    storage = report["components"]["storage"]
    if report["status"] != "healthy":
        return JSONResponse(status_code=503, content={"status": "degraded", "storage": storage})
    return {"status": "ok", "storage": storage}

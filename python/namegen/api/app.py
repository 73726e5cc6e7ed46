"""
Namegen - FastAPI application entry point.

Thin HTTP transport over the generation coordinator:
- /health - service health status
- /api/sessions - start, inspect, cancel and delete generation sessions
- /api/models - model roster with live availability and runtime changes
- /api/limits/{user_id} - per-user generation usage
- /api/dashboard, /api/budget, /api/usage, /api/report - monitoring views
- /api/notifications - operator alerts raised by budget and health checks
- /api/config/reload - hot configuration reload
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from namegen.config.settings import get_settings
from namegen.container import get_container, shutdown_container
from namegen.exceptions import (
    NamegenException,
    RateLimitedError,
    ValidationError,
    create_error_context,
)
from namegen.llm.prompts import GenerationMode
from namegen.logging_utils import configure_logging
from namegen.notifications.notification_service import Severity
from namegen.sessions.models import SessionStatus

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Request / Response models
# ---------------------------------------------------------------------------


class StartSessionRequest(BaseModel):
    user_id: str = Field(min_length=1)
    prompt: str = Field(min_length=1, max_length=2000)
    models: List[str] = Field(default_factory=list)
    mode: GenerationMode = GenerationMode.CREATIVE
    deep_thinking: bool = False
    parameters: Dict[str, Any] = Field(default_factory=dict)
    project_id: Optional[str] = None


class StartSessionResponse(BaseModel):
    session_id: str
    status: str


class ModelUpdateRequest(BaseModel):
    enabled: Optional[bool] = None
    maintenance: Optional[bool] = None
    timeout_seconds: Optional[float] = Field(default=None, gt=0)
    temperature: Optional[float] = None
    max_tokens: Optional[int] = None
    cost_per_1k_input: Optional[float] = None
    cost_per_1k_output: Optional[float] = None


class ModelToggleRequest(BaseModel):
    enabled: bool


# ---------------------------------------------------------------------------
# Application lifecycle
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(application: FastAPI):
    configure_logging(get_settings())
    container = get_container()
    logger.info("Namegen starting up with %d models", len(container.registry.all()))
    container.prune_usage()
    yield
    await container.shutdown()
    shutdown_container()
    logger.info("Namegen shutting down")


app = FastAPI(
    title="Namegen",
    version="0.1.0",
    description="Multi-provider name generation coordinator",
    lifespan=lifespan,
)


@app.exception_handler(NamegenException)
async def namegen_exception_handler(request: Request, exc: NamegenException):
    headers = {}
    if isinstance(exc, RateLimitedError):
        headers["Retry-After"] = str(exc.retry_after)
    elif exc.http_status == 429:
        headers["Retry-After"] = "3600"
    return JSONResponse(status_code=exc.http_status, content={"error": exc.to_api_response()}, headers=headers)


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    context = create_error_context(exc)
    logger.error("Unhandled error on %s: %s", request.url.path, exc, extra={"error_id": context.error_id})
    return JSONResponse(status_code=500, content={"error": context.to_api_response()})


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------


@app.get("/health")
async def health():
    container = get_container()
    config = container.registry.configuration_health()
    available = container.registry.available_models()
    status = "healthy" if available and config["status"] == "healthy" else "degraded"
    body = {
        "status": status,
        "available_models": available,
        "configuration": config,
    }
    if not available:
        return JSONResponse(content=body, status_code=503)
    return body


@app.post("/api/sessions", status_code=202, response_model=StartSessionResponse)
async def start_session(req: StartSessionRequest):
    """Admit and dispatch a generation session; poll its status for results."""
    coordinator = get_container().coordinator
    session_id = await coordinator.start_session(
        user_id=req.user_id,
        prompt=req.prompt,
        models=req.models,
        mode=req.mode.value,
        deep_thinking=req.deep_thinking,
        parameters=req.parameters,
        project_id=req.project_id,
        run_in_background=True,
    )
    return StartSessionResponse(session_id=session_id, status=coordinator.get_status(session_id).status.value)


@app.get("/api/sessions/{session_id}")
async def get_session(session_id: str):
    snapshot = get_container().coordinator.get_status(session_id)
    if snapshot.status == SessionStatus.NOT_FOUND:
        return JSONResponse(content=snapshot.to_dict(), status_code=404)
    return snapshot.to_dict()


@app.post("/api/sessions/{session_id}/cancel")
async def cancel_session(session_id: str):
    return {"cancelled": get_container().coordinator.cancel_session(session_id)}


@app.delete("/api/sessions/{session_id}")
async def delete_session(session_id: str, user_id: str = Query(..., min_length=1)):
    return {"deleted": get_container().coordinator.delete_session(session_id, user_id)}


@app.get("/api/models")
async def list_models():
    container = get_container()
    return {
        "models": list(container.coordinator.model_capabilities().values()),
        "available": container.coordinator.available_models(),
        "default_model": container.settings.default_model,
        "fallback_model": container.settings.fallback_model,
    }


@app.patch("/api/models/{model_id}")
async def update_model(model_id: str, req: ModelUpdateRequest):
    """Change a model's configuration at runtime."""
    changes = req.model_dump(exclude_unset=True, exclude_none=True)
    if not changes:
        raise ValidationError("No model fields to update")
    descriptor = get_container().registry.update(model_id, **changes)
    return get_container().coordinator.model_capabilities(descriptor.model_id)


@app.post("/api/models/{model_id}/toggle")
async def toggle_model(model_id: str, req: ModelToggleRequest):
    descriptor = get_container().registry.toggle(model_id, req.enabled)
    return get_container().coordinator.model_capabilities(descriptor.model_id)


@app.get("/api/limits/{user_id}")
async def user_limits(user_id: str):
    usage = await get_container().rate_limiter.check_user_limits(user_id)
    return {"user_id": user_id, "limits": {window: u.to_dict() for window, u in usage.items()}}


@app.get("/api/dashboard")
async def dashboard():
    reporter = get_container().status_reporter
    await reporter.publish_alerts()
    return reporter.dashboard()


@app.get("/api/budget")
async def budget():
    return get_container().budget_tracker.get_dashboard()


@app.get("/api/usage")
async def usage_stats(
    period: str = Query("day", pattern="^(hour|day|week|month)$"),
    user_id: Optional[str] = None,
):
    return get_container().usage_ledger.stats(period, user_id=user_id)


@app.get("/api/report")
async def report(days: int = Query(7, ge=1, le=90)):
    return get_container().status_reporter.generate_report(days=days)


@app.get("/api/notifications")
async def list_notifications(
    severity: Optional[Severity] = None,
    unread: bool = False,
    limit: int = Query(50, ge=1, le=200),
):
    service = get_container().notification_service
    notifications = await service.list(severity=severity, read=False if unread else None, limit=limit)
    return {
        "notifications": [n.to_dict() for n in notifications],
        "unread": await service.count_unread(),
    }


@app.post("/api/notifications/{notification_id}/read")
async def mark_notification_read(notification_id: str):
    if not await get_container().notification_service.mark_read(notification_id):
        return JSONResponse(content={"read": False}, status_code=404)
    return {"read": True}


@app.post("/api/config/reload")
async def reload_config():
    return get_container().reload()

"""Liveness and metrics HTTP endpoints.

``GET /health`` answers 200 while the sweep scheduler is alive and 503 once
it has stopped or crashed, so an orchestrator can restart the process.
``GET /metrics`` exposes the sweeper's Prometheus registry.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from fastapi import APIRouter, FastAPI, Request, Response, status
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from pydantic import BaseModel, Field

from outbox_sweeper import __version__
from outbox_sweeper.infra.metrics.prometheus import REGISTRY

if TYPE_CHECKING:
    from outbox_sweeper.sweeper.scheduler import SweepScheduler


class HealthResponse(BaseModel):
    """Body of ``GET /health``."""

    status: str = Field(description="healthy or unhealthy")
    version: str = Field(description="Service version")
    scheduler: dict[str, Any] = Field(description="Scheduler state and last cycle summary")


health_router = APIRouter(tags=["health"])
metrics_router = APIRouter(tags=["observability"])


@health_router.get(
    "/health",
    response_model=HealthResponse,
    responses={503: {"model": HealthResponse, "description": "Scheduler stopped or crashed"}},
)
async def health(request: Request, response: Response) -> HealthResponse:
    """Report whether the sweep scheduler is alive."""
    scheduler: SweepScheduler = request.app.state.scheduler
    healthy = scheduler.is_healthy
    if not healthy:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    return HealthResponse(
        status="healthy" if healthy else "unhealthy",
        version=__version__,
        scheduler=scheduler.snapshot(),
    )


@metrics_router.get("/metrics")
async def metrics() -> Response:
    """Expose Prometheus metrics for scraping."""
    return Response(
        content=generate_latest(REGISTRY),
        media_type=CONTENT_TYPE_LATEST,
        headers={"Cache-Control": "no-cache, no-store, must-revalidate"},
    )


def create_health_app(scheduler: SweepScheduler, *, metrics_enabled: bool = True) -> FastAPI:
    """Create the health/metrics application for a scheduler.

    Returns:
        FastAPI app with ``/health`` and, optionally, ``/metrics``
    """
    app = FastAPI(
        title="outbox-sweeper",
        version=__version__,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )
    app.state.scheduler = scheduler
    app.include_router(health_router)
    if metrics_enabled:
        app.include_router(metrics_router)
    return app


__all__ = ["HealthResponse", "create_health_app"]

"""FastAPI application for invoicing and estimating.

Production-ready API with:
- Health and readiness checks for Kubernetes
- Bearer-token authentication (Supabase)
- Invoice, estimate, client, reminder and settings routers
- Optional background delivery through the arq worker
- Structured error responses
- Prometheus metrics for monitoring

Based on the FastAPI documentation:
https://fastapi.tiangolo.com/
"""

import json
import logging
import time

from fastapi import Depends, FastAPI, HTTPException, Request, Response, status
from fastapi.responses import JSONResponse

from invoicing.api import metrics
from invoicing.api.dependencies import get_arq_pool, get_services
from invoicing.api.routes import account, clients, estimates, invoices, reminders
from invoicing.api.schemas import HealthResponse, JobStatusResponse, ReadinessResponse
from invoicing.auth.service import AuthUser, get_current_user
from invoicing.queue.tasks import job_key
from invoicing.shared.config import get_settings
from invoicing.shared.container import ServiceContainer
from invoicing.shared.errors import AuthError, InvoicingError, LimitReachedError

settings = get_settings()

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

logger = logging.getLogger(__name__)

app = FastAPI(
    title="Invoicing Service",
    description="Invoices, estimates, payment reminders and late fees for small businesses",
    version=settings.service_version,
)

app.include_router(invoices.router)
app.include_router(estimates.router)
app.include_router(reminders.router)
app.include_router(clients.router)
app.include_router(account.router)


@app.exception_handler(InvoicingError)
async def invoicing_error_handler(request: Request, exc: InvoicingError) -> JSONResponse:
    """Translate service errors into ``{"detail": ...}`` responses.

    Plan limits additionally carry ``limit_reached`` and ``limit_type`` so
    the dashboard can offer an upgrade.
    """
    body: dict[str, object] = {"detail": exc.message}
    headers = None
    if isinstance(exc, LimitReachedError):
        body["limit_reached"] = True
        body["limit_type"] = exc.limit_type
    elif isinstance(exc, AuthError):
        headers = {"WWW-Authenticate": "Bearer"}
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=body, headers=headers)


@app.middleware("http")
async def metrics_middleware(request: Request, call_next):  # type: ignore[no-untyped-def]
    """Middleware to collect request metrics.

    Tracks:
    - Request count by method, endpoint, and status
    - Request duration by method and endpoint
    """
    # Skip metrics for /metrics endpoint itself
    if request.url.path == "/metrics":
        return await call_next(request)

    start_time = time.time()
    response = await call_next(request)
    duration = time.time() - start_time

    # Route template keeps ids and tokens out of the label values
    route = request.scope.get("route")
    endpoint = getattr(route, "path", request.url.path)

    metrics.http_requests_total.labels(
        method=request.method,
        endpoint=endpoint,
        status=response.status_code,
    ).inc()

    metrics.http_request_duration_seconds.labels(
        method=request.method,
        endpoint=endpoint,
    ).observe(duration)

    return response


@app.get("/health", response_model=HealthResponse, tags=["Health"])
def health_check() -> HealthResponse:
    """Health check endpoint for liveness probe.

    Returns:
        Health status information
    """
    return HealthResponse(
        status="healthy", version=settings.service_version, service=settings.service_name
    )


@app.get("/ready", response_model=ReadinessResponse, tags=["Health"])
def readiness_check(
    services: ServiceContainer = Depends(get_services),  # noqa: B008
) -> ReadinessResponse:
    """Readiness check endpoint for Kubernetes readiness probe.

    Returns:
        Readiness status; ready when the database answers
    """
    database = services.repository.is_available()
    return ReadinessResponse(
        ready=database,
        database=database,
        email=services.email.is_available(),
        storage=services.storage.health_check(),
    )


@app.get("/metrics", tags=["Monitoring"])
def get_metrics() -> Response:
    """Prometheus metrics endpoint.

    Returns:
        Prometheus metrics in text format
    """
    metrics_data, content_type = metrics.get_metrics()
    return Response(content=metrics_data, media_type=content_type)


@app.get("/api/jobs/{job_id}", response_model=JobStatusResponse, tags=["Jobs"])
async def get_job_status(
    job_id: str,
    user: AuthUser = Depends(get_current_user),  # noqa: B008
) -> JobStatusResponse:
    """Status of a queued invoice or reminder delivery.

    Jobs started by another user are reported as not found.
    """
    if not settings.queue_enabled:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Async processing is not enabled",
        )

    pool = await get_arq_pool()
    stored = await pool.get(job_key(job_id))
    if stored is None:
        return JobStatusResponse(job_id=job_id, status="pending")

    result = json.loads(stored)
    if result.get("user_id") != user.id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Job not found")
    return JobStatusResponse(job_id=job_id, status=result.get("status", "unknown"), result=result)

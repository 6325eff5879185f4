"""Estimate endpoints.

``approve``, ``reject`` and ``public/{token}`` are reached by the client
from the public estimate page and do not require sign-in.
"""

from fastapi import APIRouter, Depends, Query, status

from invoicing.api import metrics
from invoicing.api.dependencies import get_services
from invoicing.api.schemas import DeleteResponse
from invoicing.auth.service import AuthUser, get_current_user
from invoicing.billing.listing import Page
from invoicing.domain.requests import (
    ApproveEstimateRequest,
    EstimateCreate,
    EstimateUpdate,
    RejectEstimateRequest,
    SendEstimateRequest,
)
from invoicing.domain.schema import Estimate
from invoicing.estimates.service import ConversionResult, PublicEstimate
from invoicing.shared.container import ServiceContainer
from invoicing.shared.errors import EmailDeliveryError

router = APIRouter(prefix="/api/estimates", tags=["Estimates"])


@router.get("", response_model=Page[Estimate])
def list_estimates(
    q: str | None = Query(None, description="Search estimate number or client name"),
    status_filter: str | None = Query(None, alias="status"),
    page: int = Query(1, ge=1),
    per_page: int = Query(10, ge=1, le=100),
    user: AuthUser = Depends(get_current_user),  # noqa: B008
    services: ServiceContainer = Depends(get_services),  # noqa: B008
) -> Page[Estimate]:
    return services.estimates.list_estimates(user.id, q, status_filter, page, per_page)


@router.post("", response_model=Estimate, status_code=status.HTTP_201_CREATED)
def create_estimate(
    body: EstimateCreate,
    user: AuthUser = Depends(get_current_user),  # noqa: B008
    services: ServiceContainer = Depends(get_services),  # noqa: B008
) -> Estimate:
    return services.estimates.create(user.id, body)


@router.post("/send", response_model=Estimate)
def send_estimate(
    body: SendEstimateRequest,
    user: AuthUser = Depends(get_current_user),  # noqa: B008
    services: ServiceContainer = Depends(get_services),  # noqa: B008
) -> Estimate:
    to_email = str(body.to_email) if body.to_email else None
    try:
        estimate = services.estimates.send(user.id, body.estimate_id, to_email)
    except EmailDeliveryError:
        metrics.emails_sent_total.labels(kind="estimate", status="failed").inc()
        raise
    metrics.emails_sent_total.labels(kind="estimate", status="success").inc()
    return estimate


@router.get("/public/{token}", response_model=PublicEstimate)
def public_estimate(
    token: str,
    services: ServiceContainer = Depends(get_services),  # noqa: B008
) -> PublicEstimate:
    return services.estimates.public_view(token)


@router.get("/{estimate_id}", response_model=Estimate)
def get_estimate(
    estimate_id: str,
    user: AuthUser = Depends(get_current_user),  # noqa: B008
    services: ServiceContainer = Depends(get_services),  # noqa: B008
) -> Estimate:
    return services.estimates.get(user.id, estimate_id)


@router.put("/{estimate_id}", response_model=Estimate)
def update_estimate(
    estimate_id: str,
    body: EstimateUpdate,
    user: AuthUser = Depends(get_current_user),  # noqa: B008
    services: ServiceContainer = Depends(get_services),  # noqa: B008
) -> Estimate:
    return services.estimates.update(user.id, estimate_id, body)


@router.delete("/{estimate_id}", response_model=DeleteResponse)
def delete_estimate(
    estimate_id: str,
    user: AuthUser = Depends(get_current_user),  # noqa: B008
    services: ServiceContainer = Depends(get_services),  # noqa: B008
) -> DeleteResponse:
    services.estimates.delete(user.id, estimate_id)
    return DeleteResponse(id=estimate_id)


@router.post("/{estimate_id}/approve", response_model=Estimate)
def approve_estimate(
    estimate_id: str,
    body: ApproveEstimateRequest | None = None,
    services: ServiceContainer = Depends(get_services),  # noqa: B008
) -> Estimate:
    return services.estimates.approve(estimate_id, body.comment if body else None)


@router.post("/{estimate_id}/reject", response_model=Estimate)
def reject_estimate(
    estimate_id: str,
    body: RejectEstimateRequest | None = None,
    services: ServiceContainer = Depends(get_services),  # noqa: B008
) -> Estimate:
    return services.estimates.reject(estimate_id, body.reason if body else None)


@router.post("/{estimate_id}/convert", response_model=ConversionResult)
def convert_estimate(
    estimate_id: str,
    user: AuthUser = Depends(get_current_user),  # noqa: B008
    services: ServiceContainer = Depends(get_services),  # noqa: B008
) -> ConversionResult:
    """Create a draft invoice from an approved estimate."""
    result = services.estimates.convert(user.id, estimate_id)
    metrics.estimates_converted_total.inc()
    metrics.invoices_created_total.labels(status=result.invoice.status).inc()
    return result

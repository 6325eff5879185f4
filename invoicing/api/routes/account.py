"""Account-level endpoints: business settings, logo upload, plan usage and dashboard."""

import logging

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile, status
from fastapi.concurrency import run_in_threadpool

from invoicing.api import metrics
from invoicing.api.dependencies import get_services
from invoicing.api.schemas import LogoUploadResponse
from invoicing.auth.service import AuthUser, get_current_user
from invoicing.billing.listing import DashboardStats
from invoicing.domain.requests import BusinessSettingsUpdate
from invoicing.domain.schema import BusinessSettings
from invoicing.plans.service import Usage
from invoicing.shared.container import ServiceContainer

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Account"])


@router.get("/settings", response_model=BusinessSettings)
def get_business_settings(
    user: AuthUser = Depends(get_current_user),  # noqa: B008
    services: ServiceContainer = Depends(get_services),  # noqa: B008
) -> BusinessSettings:
    services.profiles.ensure_profile(user.id, user.email, user.name)
    return services.profiles.get_business_settings(user.id)


@router.put("/settings", response_model=BusinessSettings)
def update_business_settings(
    body: BusinessSettingsUpdate,
    user: AuthUser = Depends(get_current_user),  # noqa: B008
    services: ServiceContainer = Depends(get_services),  # noqa: B008
) -> BusinessSettings:
    return services.profiles.update_business_settings(user.id, body)


@router.post("/upload-logo", response_model=LogoUploadResponse)
async def upload_logo(
    file: UploadFile = File(..., description="PNG, JPEG, GIF, WebP or SVG"),  # noqa: B008
    user: AuthUser = Depends(get_current_user),  # noqa: B008
    services: ServiceContainer = Depends(get_services),  # noqa: B008
) -> LogoUploadResponse:
    """Upload a business logo and store its URL in the business settings.

    The previous logo is removed from storage when it was uploaded here.
    """
    storage = services.storage
    if not storage.is_available():
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Logo storage is not enabled",
        )

    content = await file.read()
    error = storage.validate_logo(content, file.content_type)
    if error:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=error)
    metrics.logo_upload_size_bytes.observe(len(content))

    url = await run_in_threadpool(
        _store_logo, services, user.id, content, file.content_type
    )
    return LogoUploadResponse(success=True, url=url)


def _store_logo(
    services: ServiceContainer, user_id: str, content: bytes, content_type: str | None
) -> str:
    storage = services.storage
    result = storage.upload_logo(user_id, content, content_type)
    if not result.success or not result.url:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to upload logo: {result.error}",
        )

    previous = services.profiles.get_business_settings(user_id).logo
    services.profiles.set_logo(user_id, result.url)

    old_object = storage.object_name_from_url(previous) if previous else None
    if old_object:
        removed = storage.delete_object(old_object)
        if not removed.success:
            logger.warning(f"Could not remove previous logo {old_object}: {removed.error}")
    return result.url


@router.get("/subscription/usage", response_model=Usage)
def subscription_usage(
    user: AuthUser = Depends(get_current_user),  # noqa: B008
    services: ServiceContainer = Depends(get_services),  # noqa: B008
) -> Usage:
    services.profiles.ensure_profile(user.id, user.email, user.name)
    return services.plans.usage(user.id)


@router.get("/dashboard/stats", response_model=DashboardStats)
def dashboard_stats(
    user: AuthUser = Depends(get_current_user),  # noqa: B008
    services: ServiceContainer = Depends(get_services),  # noqa: B008
) -> DashboardStats:
    return services.invoices.dashboard_stats(user.id)

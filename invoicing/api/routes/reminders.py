"""Reminder history and on-demand reminder sending."""

import logging
import uuid

from fastapi import APIRouter, Depends, Query
from fastapi.concurrency import run_in_threadpool

from invoicing.api import metrics
from invoicing.api.dependencies import get_arq_pool, get_services
from invoicing.api.schemas import SendReminderResponse
from invoicing.auth.service import AuthUser, get_current_user
from invoicing.domain.requests import SendReminderRequest
from invoicing.reminders.history import ReminderHistoryEntry
from invoicing.shared.container import ServiceContainer

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/reminders", tags=["Reminders"])


@router.get("", response_model=list[ReminderHistoryEntry])
def reminder_history(
    q: str | None = Query(None, description="Search invoice number or client name/email"),
    user: AuthUser = Depends(get_current_user),  # noqa: B008
    services: ServiceContainer = Depends(get_services),  # noqa: B008
) -> list[ReminderHistoryEntry]:
    return services.reminders.history(user.id, q)


@router.post("/send", response_model=SendReminderResponse)
async def send_reminder(
    body: SendReminderRequest,
    user: AuthUser = Depends(get_current_user),  # noqa: B008
    services: ServiceContainer = Depends(get_services),  # noqa: B008
) -> SendReminderResponse:
    """Send a reminder now, regardless of the schedule.

    A failed email is recorded on the reminder row and reported with
    ``success=false``; plan limits and invalid invoices raise.
    """
    if services.settings.queue_enabled:
        await run_in_threadpool(services.invoices.get, user.id, body.invoice_id)
        job_id = str(uuid.uuid4())
        pool = await get_arq_pool()
        await pool.enqueue_job(
            "send_reminder_job",
            user.id,
            body.invoice_id,
            body.reminder_type,
            body.overdue_days,
            _job_id=job_id,
        )
        logger.info(f"Queued {body.reminder_type} reminder for invoice {body.invoice_id}")
        return SendReminderResponse(success=True, status="queued", job_id=job_id)

    reminder = await run_in_threadpool(
        services.reminders.send_for_invoice,
        user.id,
        body.invoice_id,
        body.reminder_type,
        body.overdue_days,
    )
    sent = reminder.reminder_status == "sent"
    outcome = "success" if sent else "failed"
    metrics.reminders_sent_total.labels(
        reminder_type=reminder.reminder_type, status=reminder.reminder_status
    ).inc()
    metrics.emails_sent_total.labels(kind="reminder", status=outcome).inc()
    return SendReminderResponse(
        success=sent,
        status=reminder.reminder_status,
        reminder=reminder,
        error=reminder.failure_reason,
    )

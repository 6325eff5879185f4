"""Async task definitions for invoice delivery and reminders.

Uses arq (async Redis queue) for background task processing:
- send_invoice_job: email an invoice and mark it sent
- send_reminder_job: email a payment reminder on demand
- dispatch_due_reminders: hourly cron sending scheduled reminders and
  expiring overdue estimates

Based on arq documentation:
https://arq-docs.helpmanual.io/
"""

import logging
from datetime import datetime
from typing import Any

from arq import cron
from arq.connections import RedisSettings
from pydantic import BaseModel

from invoicing.shared.config import Settings, get_settings
from invoicing.shared.container import ServiceContainer
from invoicing.shared.errors import InvoicingError

logger = logging.getLogger(__name__)

JOB_RESULT_TTL = 86400  # 24h


class JobResult(BaseModel):
    """Result of a background job.

    Attributes:
        job_id: Unique job identifier
        kind: Job kind (invoice, reminder, dispatch)
        user_id: Owner of the job; only they may read its status
        status: Job status (processing, completed, failed)
        target_id: Invoice the job works on, if any
        detail: Outcome details (e.g., dispatch counts)
        error: Error message (if failed)
        created_at: Job creation timestamp
        completed_at: Job completion timestamp
    """

    job_id: str
    kind: str
    status: str
    user_id: str | None = None
    target_id: str | None = None
    detail: dict[str, Any] | None = None
    error: str | None = None
    created_at: str
    completed_at: str | None = None


def job_key(job_id: str) -> str:
    return f"job:{job_id}"


def _services(ctx: dict[str, Any]) -> ServiceContainer:
    services = ctx.get("services")
    if services is None:
        services = ServiceContainer(ctx.get("settings") or get_settings())
        ctx["services"] = services
    return services


async def _store(ctx: dict[str, Any], result: JobResult) -> None:
    await ctx["redis"].set(job_key(result.job_id), result.model_dump_json(), ex=JOB_RESULT_TTL)


def _start(
    ctx: dict[str, Any], kind: str, user_id: str, target_id: str | None = None
) -> JobResult:
    return JobResult(
        job_id=ctx.get("job_id") or "unknown",
        kind=kind,
        status="processing",
        user_id=user_id,
        target_id=target_id,
        created_at=datetime.utcnow().isoformat(),
    )


async def send_invoice_job(
    ctx: dict[str, Any],
    user_id: str,
    invoice_id: str,
    to_email: str | None = None,
) -> dict[str, Any]:
    """Email an invoice in the background.

    Args:
        ctx: arq context (contains redis connection and services)
        user_id: Owner of the invoice
        invoice_id: Invoice to send
        to_email: Override recipient (defaults to the client email)

    Returns:
        JobResult as dict
    """
    logger.info(f"Sending invoice {invoice_id} for user {user_id}")
    services = _services(ctx)
    result = _start(ctx, "invoice", user_id, invoice_id)
    await _store(ctx, result)

    try:
        invoice = services.invoices.send(user_id, invoice_id, to_email)
        result.status = "completed"
        result.detail = {"invoice_number": invoice.invoice_number, "status": invoice.status}
    except InvoicingError as e:
        logger.warning(f"Invoice job {result.job_id} failed: {e.message}")
        result.status = "failed"
        result.error = e.message
    except Exception as e:
        logger.exception(f"Invoice job {result.job_id} failed with error: {e}")
        result.status = "failed"
        result.error = str(e)

    result.completed_at = datetime.utcnow().isoformat()
    await _store(ctx, result)
    logger.info(f"Job {result.job_id} completed with status: {result.status}")
    return result.model_dump()


async def send_reminder_job(
    ctx: dict[str, Any],
    user_id: str,
    invoice_id: str,
    reminder_type: str = "friendly",
    overdue_days: int | None = None,
) -> dict[str, Any]:
    """Email a payment reminder in the background.

    Returns:
        JobResult as dict; a failed email is reported as ``failed``
    """
    logger.info(f"Sending {reminder_type} reminder for invoice {invoice_id}")
    services = _services(ctx)
    result = _start(ctx, "reminder", user_id, invoice_id)
    await _store(ctx, result)

    try:
        reminder = services.reminders.send_for_invoice(
            user_id, invoice_id, reminder_type, overdue_days  # type: ignore[arg-type]
        )
        result.detail = {"reminder_id": reminder.id, "reminder_status": reminder.reminder_status}
        if reminder.reminder_status == "sent":
            result.status = "completed"
        else:
            result.status = "failed"
            result.error = reminder.failure_reason
    except InvoicingError as e:
        logger.warning(f"Reminder job {result.job_id} failed: {e.message}")
        result.status = "failed"
        result.error = e.message
    except Exception as e:
        logger.exception(f"Reminder job {result.job_id} failed with error: {e}")
        result.status = "failed"
        result.error = str(e)

    result.completed_at = datetime.utcnow().isoformat()
    await _store(ctx, result)
    return result.model_dump()


async def dispatch_due_reminders(ctx: dict[str, Any]) -> dict[str, Any]:
    """Cron job: send due scheduled reminders and expire overdue estimates."""
    services = _services(ctx)
    try:
        summary = services.reminders.dispatch_due()
        expired = services.estimates.expire_overdue()
    except Exception as e:
        logger.exception(f"Reminder dispatch failed: {e}")
        return {"status": "failed", "error": str(e)}

    return {"status": "completed", **summary.model_dump(), "estimates_expired": expired}


async def startup(ctx: dict[str, Any]) -> None:
    """Worker startup hook - initialize services.

    Called once when worker starts. Initializes shared services
    to avoid re-creating them for each job.
    """
    logger.info("Initializing worker services...")
    settings = get_settings()
    ctx["settings"] = settings
    ctx["services"] = ServiceContainer(settings)
    logger.info("Worker services initialized")


async def shutdown(ctx: dict[str, Any]) -> None:
    """Worker shutdown hook - cleanup resources."""
    logger.info("Worker shutting down...")


def get_redis_settings(settings: Settings | None = None) -> RedisSettings:
    """Redis connection settings parsed from ``settings.redis_url``."""
    settings = settings or get_settings()
    return RedisSettings.from_dsn(settings.redis_url)


class WorkerSettings:
    """arq worker settings.

    Defines the worker configuration including:
    - Task functions to register
    - Hourly reminder dispatch cron
    - Redis connection settings
    - Job timeout settings
    """

    functions = [send_invoice_job, send_reminder_job]
    cron_jobs = [cron(dispatch_due_reminders, minute=0)]
    on_startup = startup
    on_shutdown = shutdown

    # Replaced per run by invoicing.queue.worker.configure_worker
    redis_settings: RedisSettings | None = None
    max_jobs = 10
    job_timeout = 300

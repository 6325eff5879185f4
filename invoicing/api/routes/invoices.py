"""Invoice endpoints: CRUD, sending, payments, write-offs and the public link.

Static paths (``/send``, ``/duplicate``, ``/bulk/...``, ``/public/...``) are
declared before ``/{invoice_id}`` so they are not captured by it.
"""

import logging
import uuid

from fastapi import APIRouter, Depends, Query, Response, status
from fastapi.concurrency import run_in_threadpool

from invoicing.api import metrics
from invoicing.api.dependencies import get_arq_pool, get_services
from invoicing.api.schemas import (
    BulkMarkPaidResponse,
    DeleteResponse,
    PaymentListResponse,
    SendInvoiceResponse,
)
from invoicing.auth.service import AuthUser, get_current_user
from invoicing.billing.charges import PaymentSummary
from invoicing.billing.listing import Page
from invoicing.domain.requests import (
    BulkMarkPaidRequest,
    DuplicateInvoiceRequest,
    InvoiceCreate,
    InvoiceUpdate,
    PaymentCreate,
    SendInvoiceRequest,
    WriteOffRequest,
)
from invoicing.domain.schema import Invoice
from invoicing.invoices.service import InvoiceView, PaymentResult, PublicInvoice
from invoicing.shared.container import ServiceContainer
from invoicing.shared.errors import EmailDeliveryError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/invoices", tags=["Invoices"])


@router.get("", response_model=Page[InvoiceView])
def list_invoices(
    q: str | None = Query(None, description="Search invoice number, client name or email"),
    status_filter: str | None = Query(
        None,
        alias="status",
        description="all, overdue, dueToday, partial, writeoff, paid, pending or draft",
    ),
    sort: str | None = Query(None, description="amount, amountDesc, date, dueDate, client, ..."),
    page: int = Query(1, ge=1),
    per_page: int = Query(10, ge=1, le=100),
    user: AuthUser = Depends(get_current_user),  # noqa: B008
    services: ServiceContainer = Depends(get_services),  # noqa: B008
) -> Page[InvoiceView]:
    return services.invoices.list_invoices(user.id, q, status_filter, sort, page, per_page)


@router.post("", response_model=Invoice, status_code=status.HTTP_201_CREATED)
def create_invoice(
    body: InvoiceCreate,
    user: AuthUser = Depends(get_current_user),  # noqa: B008
    services: ServiceContainer = Depends(get_services),  # noqa: B008
) -> Invoice:
    invoice = services.invoices.create(user.id, body)
    metrics.invoices_created_total.labels(status=invoice.status).inc()
    return invoice


@router.post("/send", response_model=SendInvoiceResponse)
async def send_invoice(
    body: SendInvoiceRequest,
    user: AuthUser = Depends(get_current_user),  # noqa: B008
    services: ServiceContainer = Depends(get_services),  # noqa: B008
) -> SendInvoiceResponse:
    """Email an invoice to its client.

    With the queue enabled the send is handed to the worker and the job id
    is returned; otherwise the email is sent inline.
    """
    to_email = str(body.to_email) if body.to_email else None

    if services.settings.queue_enabled:
        invoice = await run_in_threadpool(services.invoices.get, user.id, body.invoice_id)
        job_id = str(uuid.uuid4())
        pool = await get_arq_pool()
        await pool.enqueue_job(
            "send_invoice_job", user.id, invoice.id, to_email, _job_id=job_id
        )
        metrics.invoices_sent_total.labels(status="queued").inc()
        logger.info(f"Queued invoice {invoice.invoice_number} for sending")
        return SendInvoiceResponse(
            success=True,
            status="queued",
            invoice=invoice,
            job_id=job_id,
        )

    try:
        invoice = await run_in_threadpool(
            services.invoices.send, user.id, body.invoice_id, to_email
        )
    except EmailDeliveryError:
        metrics.invoices_sent_total.labels(status="failed").inc()
        metrics.emails_sent_total.labels(kind="invoice", status="failed").inc()
        raise
    metrics.invoices_sent_total.labels(status="success").inc()
    metrics.emails_sent_total.labels(kind="invoice", status="success").inc()
    return SendInvoiceResponse(success=True, status=invoice.status, invoice=invoice)


@router.post("/duplicate", response_model=Invoice, status_code=status.HTTP_201_CREATED)
def duplicate_invoice(
    body: DuplicateInvoiceRequest,
    user: AuthUser = Depends(get_current_user),  # noqa: B008
    services: ServiceContainer = Depends(get_services),  # noqa: B008
) -> Invoice:
    invoice = services.invoices.duplicate(user.id, body.invoice_id)
    metrics.invoices_created_total.labels(status=invoice.status).inc()
    return invoice


@router.post("/bulk/mark-paid", response_model=BulkMarkPaidResponse)
def bulk_mark_paid(
    body: BulkMarkPaidRequest,
    user: AuthUser = Depends(get_current_user),  # noqa: B008
    services: ServiceContainer = Depends(get_services),  # noqa: B008
) -> BulkMarkPaidResponse:
    updated = services.invoices.bulk_mark_paid(user.id, body.invoice_ids)
    return BulkMarkPaidResponse(updated=[i.id for i in updated], count=len(updated))


@router.get("/public/{token}", response_model=PublicInvoice)
def public_invoice(
    token: str,
    services: ServiceContainer = Depends(get_services),  # noqa: B008
) -> PublicInvoice:
    """Invoice page reached from the link in the email; no sign-in required."""
    return services.invoices.public_view(token)


@router.get("/{invoice_id}", response_model=InvoiceView)
def get_invoice(
    invoice_id: str,
    user: AuthUser = Depends(get_current_user),  # noqa: B008
    services: ServiceContainer = Depends(get_services),  # noqa: B008
) -> InvoiceView:
    invoice = services.invoices.get(user.id, invoice_id)
    payments, _ = services.invoices.list_payments(user.id, invoice_id)
    return services.invoices.view(invoice, payments)


@router.put("/{invoice_id}", response_model=Invoice)
def update_invoice(
    invoice_id: str,
    body: InvoiceUpdate,
    user: AuthUser = Depends(get_current_user),  # noqa: B008
    services: ServiceContainer = Depends(get_services),  # noqa: B008
) -> Invoice:
    return services.invoices.update(user.id, invoice_id, body)


@router.delete("/{invoice_id}", response_model=DeleteResponse)
def delete_invoice(
    invoice_id: str,
    user: AuthUser = Depends(get_current_user),  # noqa: B008
    services: ServiceContainer = Depends(get_services),  # noqa: B008
) -> DeleteResponse:
    services.invoices.delete(user.id, invoice_id)
    return DeleteResponse(id=invoice_id)


@router.get("/{invoice_id}/payments", response_model=PaymentListResponse)
def list_payments(
    invoice_id: str,
    user: AuthUser = Depends(get_current_user),  # noqa: B008
    services: ServiceContainer = Depends(get_services),  # noqa: B008
) -> PaymentListResponse:
    payments, summary = services.invoices.list_payments(user.id, invoice_id)
    return PaymentListResponse(payments=payments, summary=summary)


@router.post(
    "/{invoice_id}/payments",
    response_model=PaymentResult,
    status_code=status.HTTP_201_CREATED,
)
def add_payment(
    invoice_id: str,
    body: PaymentCreate,
    user: AuthUser = Depends(get_current_user),  # noqa: B008
    services: ServiceContainer = Depends(get_services),  # noqa: B008
) -> PaymentResult:
    result = services.invoices.add_payment(user.id, invoice_id, body)
    metrics.payments_recorded_total.inc()
    return result


@router.delete("/{invoice_id}/payments", response_model=PaymentSummary)
def delete_payment(
    invoice_id: str,
    payment_id: str = Query(..., description="Payment to remove"),
    user: AuthUser = Depends(get_current_user),  # noqa: B008
    services: ServiceContainer = Depends(get_services),  # noqa: B008
) -> PaymentSummary:
    return services.invoices.delete_payment(user.id, invoice_id, payment_id)


@router.post("/{invoice_id}/writeoff", response_model=Invoice)
def write_off(
    invoice_id: str,
    body: WriteOffRequest,
    user: AuthUser = Depends(get_current_user),  # noqa: B008
    services: ServiceContainer = Depends(get_services),  # noqa: B008
) -> Invoice:
    return services.invoices.write_off(user.id, invoice_id, body)


@router.post("/{invoice_id}/mark-paid", response_model=Invoice)
def mark_paid(
    invoice_id: str,
    user: AuthUser = Depends(get_current_user),  # noqa: B008
    services: ServiceContainer = Depends(get_services),  # noqa: B008
) -> Invoice:
    return services.invoices.mark_paid(user.id, invoice_id)


@router.get("/{invoice_id}/pdf")
def invoice_pdf(
    invoice_id: str,
    user: AuthUser = Depends(get_current_user),  # noqa: B008
    services: ServiceContainer = Depends(get_services),  # noqa: B008
) -> Response:
    invoice = services.invoices.get(user.id, invoice_id)
    content = services.invoices.render_pdf(user.id, invoice_id)
    return Response(
        content=content,
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="{invoice.invoice_number}.pdf"'},
    )


@router.get("/{invoice_id}/preview")
def invoice_preview(
    invoice_id: str,
    user: AuthUser = Depends(get_current_user),  # noqa: B008
    services: ServiceContainer = Depends(get_services),  # noqa: B008
) -> Response:
    """HTML rendering of the invoice in its selected layout."""
    html = services.invoices.render_html(user.id, invoice_id)
    return Response(content=html, media_type="text/html")

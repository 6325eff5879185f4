"""Response bodies returned by the HTTP API."""

from pydantic import BaseModel

from invoicing.billing.charges import PaymentSummary
from invoicing.domain.schema import Invoice, Payment, Reminder


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    version: str
    service: str


class ReadinessResponse(BaseModel):
    """Readiness check response."""

    ready: bool
    database: bool
    email: bool
    storage: bool


class DeleteResponse(BaseModel):
    success: bool = True
    id: str


class SendInvoiceResponse(BaseModel):
    """Outcome of ``POST /api/invoices/send``.

    When the queue is enabled the invoice is returned unchanged with
    ``status="queued"`` and the job id to poll.
    """

    success: bool
    status: str
    invoice: Invoice | None = None
    job_id: str | None = None


class SendReminderResponse(BaseModel):
    success: bool
    status: str
    reminder: Reminder | None = None
    job_id: str | None = None
    error: str | None = None


class PaymentListResponse(BaseModel):
    payments: list[Payment]
    summary: PaymentSummary


class BulkMarkPaidResponse(BaseModel):
    updated: list[str]
    count: int


class LogoUploadResponse(BaseModel):
    success: bool
    url: str


class JobStatusResponse(BaseModel):
    job_id: str
    status: str
    result: dict | None = None

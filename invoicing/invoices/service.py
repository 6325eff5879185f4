"""Invoice lifecycle: create, edit, send, payments, write-offs and public views.

Every operation is scoped to the authenticated user; an invoice owned by
someone else is reported as not found.
"""

import logging
from collections.abc import Sequence
from datetime import date
from decimal import Decimal

from pydantic import BaseModel

from invoicing.billing.charges import (
    DueCharges,
    PaymentSummary,
    calculate_due_charges,
    calculate_totals,
    display_status,
    summarize_payments,
    validate_payment_amount,
    validate_write_off,
)
from invoicing.billing.listing import (
    DashboardStats,
    Page,
    dashboard_stats,
    filter_invoices,
    paginate,
    sort_invoices,
)
from invoicing.database.base import Repository
from invoicing.domain.currency import is_valid_currency
from invoicing.domain.requests import InvoiceCreate, InvoiceUpdate, PaymentCreate, WriteOffRequest
from invoicing.domain.schema import (
    BusinessSettings,
    Client,
    Invoice,
    Payment,
    new_id,
    new_public_token,
    utcnow,
)
from invoicing.email.base import EmailMessage, EmailProvider, EmailResult
from invoicing.invoices.records import (
    CLIENTS_TABLE,
    INVOICES_TABLE,
    PAYMENTS_TABLE,
    hydrate_invoices,
    load_invoice,
    load_payments,
    next_document_number,
    payments_by_invoice,
)
from invoicing.plans.service import PlanService
from invoicing.profile.service import ProfileService
from invoicing.reminders.scheduler import REMINDERS_TABLE, ReminderService
from invoicing.rendering.pdf import render_pdf
from invoicing.rendering.templates import (
    public_invoice_url,
    render_invoice_email,
    render_invoice_html,
    render_payment_receipt,
)
from invoicing.shared.config import Settings
from invoicing.shared.errors import (
    EmailDeliveryError,
    LimitReachedError,
    NotFoundError,
    ValidationError,
)

logger = logging.getLogger(__name__)

INVOICE_PREFIX = "INV"


class InvoiceView(BaseModel):
    """Invoice with the figures the dashboard shows next to it."""

    invoice: Invoice
    display_status: str
    charges: DueCharges


class PaymentResult(BaseModel):
    payment: Payment
    summary: PaymentSummary
    invoice: Invoice
    receipt_sent: bool = False


class PublicInvoice(BaseModel):
    """Read-only invoice page reached through the public link."""

    invoice: Invoice
    business: BusinessSettings
    charges: DueCharges
    display_status: str


class InvoiceService:
    def __init__(
        self,
        repository: Repository,
        email: EmailProvider,
        settings: Settings,
        plans: PlanService,
        profiles: ProfileService,
        reminders: ReminderService,
    ) -> None:
        self.repository = repository
        self.email = email
        self.settings = settings
        self.plans = plans
        self.profiles = profiles
        self.reminders = reminders

    # Queries

    def get(self, user_id: str, invoice_id: str) -> Invoice:
        invoice = load_invoice(self.repository, invoice_id, user_id)
        if invoice is None:
            raise NotFoundError("Invoice not found")
        return invoice

    def all_for_user(self, user_id: str) -> list[Invoice]:
        rows = self.repository.select(
            INVOICES_TABLE, user_id=user_id, order_by="created_at", descending=True
        )
        return hydrate_invoices(self.repository, rows)

    def view(
        self, invoice: Invoice, payments: Sequence[Payment], today: date | None = None
    ) -> InvoiceView:
        return InvoiceView(
            invoice=invoice,
            display_status=display_status(invoice, today),
            charges=calculate_due_charges(invoice, payments, today),
        )

    def list_invoices(
        self,
        user_id: str,
        query: str | None = None,
        status_filter: str | None = None,
        sort_by: str | None = None,
        page: int = 1,
        per_page: int = 10,
        today: date | None = None,
    ) -> Page[InvoiceView]:
        """Search, filter, sort and paginate the user's invoices.

        Amount sorts use the remaining balance so partially paid invoices
        rank by what is still owed.
        """
        invoices = self.all_for_user(user_id)
        payments = payments_by_invoice(self.repository, [i.id for i in invoices])
        summaries = {i.id: summarize_payments(i.total, payments.get(i.id, ())) for i in invoices}
        partial_ids = {i for i, s in summaries.items() if s.is_partially_paid}

        matched = filter_invoices(invoices, query, status_filter, partial_ids, today)
        ordered = sort_invoices(
            matched,
            sort_by,
            today,
            remaining={i: s.remaining_balance for i, s in summaries.items()},
        )
        result = paginate(ordered, page, per_page)
        return Page[InvoiceView](
            items=[self.view(inv, payments.get(inv.id, ()), today) for inv in result.items],
            page=result.page,
            per_page=result.per_page,
            total_items=result.total_items,
            total_pages=result.total_pages,
            has_next=result.has_next,
            has_prev=result.has_prev,
        )

    # Create / update / delete

    def _client(self, user_id: str, client_id: str) -> Client:
        rows = self.repository.select(CLIENTS_TABLE, id=client_id, user_id=user_id)
        if not rows:
            raise NotFoundError("Client not found")
        return Client.model_validate(rows[0])

    def _check_invoice_limit(self, user_id: str) -> None:
        check = self.plans.can_create_invoice(user_id)
        if not check.allowed:
            raise LimitReachedError(check.reason or "Invoice limit reached", "invoices")

    def _check_template(self, user_id: str, invoice: Invoice) -> None:
        if invoice.type == "fast":
            return
        check = self.plans.can_use_template(user_id, invoice.theme.template)
        if not check.allowed:
            raise LimitReachedError(check.reason or "Template not available", "templates")

    def _currency(self, currency: str | None) -> str:
        code = (currency or self.settings.default_currency).upper()
        if not is_valid_currency(code):
            raise ValidationError(f"Unsupported currency: {code}")
        return code

    def create(self, user_id: str, data: InvoiceCreate) -> Invoice:
        """Create an invoice and schedule its reminders.

        Raises:
            NotFoundError: Client does not belong to the user
            LimitReachedError: Monthly invoice or template limit of the plan
            ValidationError: Unsupported currency
        """
        client = self._client(user_id, data.client_id)
        if data.status != "draft":
            self._check_invoice_limit(user_id)

        totals = calculate_totals(data.items, data.discount, data.tax_rate)
        invoice = Invoice(
            user_id=user_id,
            invoice_number=next_document_number(
                self.repository, INVOICES_TABLE, user_id, "invoice_number", INVOICE_PREFIX
            ),
            client_id=client.id,
            items=data.items,
            subtotal=totals.subtotal,
            discount=data.discount,
            tax_rate=data.tax_rate,
            tax_amount=totals.tax_amount,
            total=totals.total,
            currency=self._currency(data.currency),
            status=data.status,
            type=data.type,
            issue_date=data.issue_date or date.today(),
            due_date=data.due_date,
            notes=data.notes,
            payment_terms=data.payment_terms,
            late_fees=data.late_fees,
            reminders=data.reminders,
            theme=data.theme,
        )
        self._check_template(user_id, invoice)

        self.repository.insert(INVOICES_TABLE, invoice.to_row())
        invoice.client = client
        logger.info(f"Created invoice {invoice.invoice_number} ({invoice.status}) for {user_id}")

        if invoice.status != "draft":
            self.reminders.reschedule(invoice)
        return invoice

    def update(self, user_id: str, invoice_id: str, data: InvoiceUpdate) -> Invoice:
        """Apply changes, recompute totals and rebuild the reminder schedule."""
        invoice = self.get(user_id, invoice_id)
        changes = data.model_dump(exclude_unset=True, exclude_none=True)

        if "client_id" in changes:
            invoice.client = self._client(user_id, changes["client_id"])
        if "currency" in changes:
            changes["currency"] = self._currency(changes["currency"])
        if invoice.status == "draft" and changes.get("status", "draft") != "draft":
            self._check_invoice_limit(user_id)

        updated = invoice.model_copy(update=changes)
        if data.items is not None:
            updated.items = data.items
        for policy in ("payment_terms", "late_fees", "reminders", "theme"):
            value = getattr(data, policy)
            if value is not None:
                setattr(updated, policy, value)
        self._check_template(user_id, updated)

        totals = calculate_totals(updated.items, updated.discount, updated.tax_rate)
        updated.subtotal = totals.subtotal
        updated.tax_amount = totals.tax_amount
        updated.total = totals.total
        updated.updated_at = utcnow()

        self.repository.update(INVOICES_TABLE, invoice_id, updated.to_row())
        self.reminders.reschedule(updated)
        logger.info(f"Updated invoice {updated.invoice_number}")
        return updated

    def delete(self, user_id: str, invoice_id: str) -> None:
        invoice = self.get(user_id, invoice_id)
        self.repository.delete_where(PAYMENTS_TABLE, invoice_id=invoice_id)
        self.repository.delete_where(REMINDERS_TABLE, invoice_id=invoice_id)
        self.repository.delete(INVOICES_TABLE, invoice_id)
        logger.info(f"Deleted invoice {invoice.invoice_number}")

    def duplicate(self, user_id: str, invoice_id: str) -> Invoice:
        """Copy an invoice into a new draft with its own number and public link."""
        source = self.get(user_id, invoice_id)
        copy = source.model_copy(
            update={
                "id": new_id(),
                "invoice_number": next_document_number(
                    self.repository, INVOICES_TABLE, user_id, "invoice_number", INVOICE_PREFIX
                ),
                "items": [item.model_copy(update={"id": new_id()}) for item in source.items],
                "status": "draft",
                "issue_date": date.today(),
                "public_token": new_public_token(),
                "write_off_amount": Decimal("0"),
                "write_off_notes": None,
                "sent_at": None,
                "created_at": utcnow(),
                "updated_at": None,
            }
        )
        self.repository.insert(INVOICES_TABLE, copy.to_row())
        logger.info(f"Duplicated invoice {source.invoice_number} as {copy.invoice_number}")
        return copy

    # Sending

    def _deliver(self, invoice: Invoice, to_email: str | None, today: date | None) -> EmailResult:
        recipient = to_email or (invoice.client.email if invoice.client else None)
        if not recipient:
            raise ValidationError("Client email is required to send an invoice")

        business = self.profiles.get_business_settings(invoice.user_id)
        charges = calculate_due_charges(invoice, load_payments(self.repository, invoice.id), today)
        rendered = render_invoice_email(
            invoice,
            business,
            public_invoice_url(self.settings, invoice.public_token),
            charges,
        )
        return self.email.send(
            EmailMessage(
                to=[str(recipient)],
                subject=rendered.subject,
                html=rendered.html,
                from_address=self.email.sender(business.business_name),
                reply_to=business.business_email or None,
            )
        )

    def send(
        self,
        user_id: str,
        invoice_id: str,
        to_email: str | None = None,
        today: date | None = None,
    ) -> Invoice:
        """Email the invoice to the client and mark it sent.

        Paid invoices are re-sent without changing their status.

        Raises:
            LimitReachedError: Sending a draft would exceed the monthly invoice limit
            EmailDeliveryError: The email provider rejected the message
        """
        invoice = self.get(user_id, invoice_id)
        if invoice.status == "draft":
            self._check_invoice_limit(user_id)

        result = self._deliver(invoice, to_email, today)
        if not result.success:
            raise EmailDeliveryError(f"Failed to send invoice email: {result.error}")

        if invoice.status != "paid":
            invoice.status = "sent"
        invoice.sent_at = utcnow()
        invoice.updated_at = invoice.sent_at
        self.repository.update(
            INVOICES_TABLE,
            invoice.id,
            {
                "status": invoice.status,
                "sent_at": invoice.sent_at.isoformat(),
                "updated_at": invoice.updated_at.isoformat(),
            },
        )
        self.reminders.reschedule(invoice)
        logger.info(f"Sent invoice {invoice.invoice_number} ({result.message_id})")
        return invoice

    # Payment status

    def _set_paid(self, invoice: Invoice, reason: str) -> Invoice:
        invoice.status = "paid"
        invoice.updated_at = utcnow()
        self.repository.update(
            INVOICES_TABLE,
            invoice.id,
            {"status": "paid", "updated_at": invoice.updated_at.isoformat()},
        )
        self.reminders.cancel_scheduled(invoice.id, reason)
        return invoice

    def mark_paid(self, user_id: str, invoice_id: str) -> Invoice:
        invoice = self.get(user_id, invoice_id)
        if invoice.status == "paid":
            return invoice
        logger.info(f"Marking invoice {invoice.invoice_number} as paid")
        return self._set_paid(invoice, "Invoice marked as paid")

    def bulk_mark_paid(self, user_id: str, invoice_ids: Sequence[str]) -> list[Invoice]:
        """Mark several invoices paid; ids that are unknown or not owned are skipped."""
        updated = []
        for invoice_id in dict.fromkeys(invoice_ids):
            invoice = load_invoice(self.repository, invoice_id, user_id)
            if invoice is None:
                logger.warning(f"Bulk mark paid skipped unknown invoice {invoice_id}")
                continue
            if invoice.status != "paid":
                self._set_paid(invoice, "Invoice marked as paid")
            updated.append(invoice)
        return updated

    # Payments

    def list_payments(self, user_id: str, invoice_id: str) -> tuple[list[Payment], PaymentSummary]:
        invoice = self.get(user_id, invoice_id)
        payments = load_payments(self.repository, invoice_id)
        return payments, summarize_payments(invoice.total, payments)

    def add_payment(self, user_id: str, invoice_id: str, data: PaymentCreate) -> PaymentResult:
        """Record a full or partial payment.

        A payment that settles the balance marks the invoice paid and
        cancels its scheduled reminders.

        Raises:
            ValidationError: Invoice already paid or the amount exceeds the balance
        """
        invoice = self.get(user_id, invoice_id)
        payments = load_payments(self.repository, invoice_id)
        summary = validate_payment_amount(invoice, payments, data.amount)

        payment = Payment(
            invoice_id=invoice_id,
            user_id=user_id,
            amount=data.amount,
            payment_date=data.payment_date or date.today(),
            payment_method=data.payment_method,
            notes=data.notes,
        )
        self.repository.insert(PAYMENTS_TABLE, payment.model_dump(mode="json"))
        logger.info(f"Recorded payment of {payment.amount} on {invoice.invoice_number}")

        if summary.is_fully_paid:
            self._set_paid(invoice, "Invoice fully paid through partial payments")

        receipt_sent = False
        if data.send_receipt and invoice.client is not None:
            business = self.profiles.get_business_settings(user_id)
            rendered = render_payment_receipt(invoice, business, payment, summary)
            result = self.email.send(
                EmailMessage(
                    to=[str(invoice.client.email)],
                    subject=rendered.subject,
                    html=rendered.html,
                    from_address=self.email.sender(business.business_name),
                    reply_to=business.business_email or None,
                )
            )
            receipt_sent = result.success
            if not result.success:
                logger.warning(f"Receipt for {invoice.invoice_number} not sent: {result.error}")

        return PaymentResult(
            payment=payment, summary=summary, invoice=invoice, receipt_sent=receipt_sent
        )

    def delete_payment(self, user_id: str, invoice_id: str, payment_id: str) -> PaymentSummary:
        """Remove a payment; a paid invoice left with a balance goes back to sent."""
        invoice = self.get(user_id, invoice_id)
        if not self.repository.delete_where(PAYMENTS_TABLE, id=payment_id, invoice_id=invoice_id):
            raise NotFoundError("Payment not found")

        summary = summarize_payments(invoice.total, load_payments(self.repository, invoice_id))
        reopened = summary.remaining_balance > 0 and invoice.write_off_amount == 0
        if invoice.status == "paid" and reopened:
            invoice.status = "sent"
            self.repository.update(
                INVOICES_TABLE, invoice_id, {"status": "sent", "updated_at": utcnow().isoformat()}
            )
            self.reminders.reschedule(invoice)
            logger.info(f"Invoice {invoice.invoice_number} reverted to sent after payment removal")
        return summary

    def write_off(
        self,
        user_id: str,
        invoice_id: str,
        data: WriteOffRequest,
        today: date | None = None,
    ) -> Invoice:
        """Forgive part or all of what is owed and close the invoice.

        Raises:
            ValidationError: Amount exceeds total plus late fee minus payments
        """
        invoice = self.get(user_id, invoice_id)
        payments = load_payments(self.repository, invoice_id)
        amount = validate_write_off(invoice, payments, data.amount, today)

        invoice.write_off_amount = amount
        invoice.write_off_notes = data.notes
        self.repository.update(
            INVOICES_TABLE,
            invoice_id,
            {"write_off_amount": str(amount), "write_off_notes": data.notes},
        )
        logger.info(f"Wrote off {amount} on invoice {invoice.invoice_number}")
        return self._set_paid(invoice, "Invoice closed with write-off")

    # Public link and documents

    def public_view(self, token: str, today: date | None = None) -> PublicInvoice:
        rows = self.repository.select(INVOICES_TABLE, public_token=token)
        if not rows:
            raise NotFoundError("Invoice not found")
        invoice = hydrate_invoices(self.repository, rows)[0]
        if invoice.status == "draft":
            raise NotFoundError("Invoice not found")
        payments = load_payments(self.repository, invoice.id)
        return PublicInvoice(
            invoice=invoice,
            business=self.profiles.get_business_settings(invoice.user_id),
            charges=calculate_due_charges(invoice, payments, today),
            display_status=display_status(invoice, today),
        )

    def render_html(self, user_id: str, invoice_id: str, today: date | None = None) -> str:
        invoice = self.get(user_id, invoice_id)
        charges = calculate_due_charges(invoice, load_payments(self.repository, invoice_id), today)
        business = self.profiles.get_business_settings(user_id)
        return render_invoice_html(invoice, business, charges)

    def render_pdf(self, user_id: str, invoice_id: str, today: date | None = None) -> bytes:
        return render_pdf(self.render_html(user_id, invoice_id, today))

    def dashboard_stats(self, user_id: str, today: date | None = None) -> DashboardStats:
        invoices = self.all_for_user(user_id)
        payments = payments_by_invoice(self.repository, [i.id for i in invoices])
        total_clients = self.repository.count(CLIENTS_TABLE, user_id=user_id)
        return dashboard_stats(invoices, payments, total_clients, today)

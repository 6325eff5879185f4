"""Payment reminder scheduling and delivery.

Reminders live in the ``invoice_reminders`` table. Scheduled rows carry
their planned send time in ``sent_at``; a dispatcher (cron job) picks up
due rows, emails the client and flips the row to ``sent`` or ``failed``.

Smart schedules (system defaults) depend on the invoice payment terms and
are expressed in days relative to the due date. For "Due on Receipt"
invoices the base date is the moment the invoice was sent.
"""

import logging
from collections import defaultdict
from collections.abc import Iterable, Sequence
from datetime import UTC, date, datetime, time, timedelta

from pydantic import BaseModel

from invoicing.billing.charges import calculate_due_charges
from invoicing.database.base import Repository
from invoicing.domain.schema import (
    REMINDER_TYPES,
    Invoice,
    Payment,
    PaymentTerms,
    Reminder,
    ReminderSettings,
    ReminderType,
    utcnow,
)
from invoicing.email.base import EmailMessage, EmailProvider
from invoicing.invoices.records import (
    INVOICES_TABLE,
    hydrate_invoices,
    load_invoice,
    load_payments,
    payments_by_invoice,
)
from invoicing.plans.service import PlanService
from invoicing.profile.service import ProfileService
from invoicing.reminders.history import ReminderHistoryEntry, build_history
from invoicing.rendering.templates import public_invoice_url, render_reminder_email
from invoicing.shared.config import Settings
from invoicing.shared.errors import (
    InvoicingError,
    LimitReachedError,
    NotFoundError,
    ValidationError,
)

logger = logging.getLogger(__name__)

REMINDERS_TABLE = "invoice_reminders"

DUE_ON_RECEIPT = "Due on Receipt"
DEFAULT_TERMS = "Net 30"

SMART_SCHEDULES: dict[str, tuple[tuple[ReminderType, int], ...]] = {
    DUE_ON_RECEIPT: (("friendly", 1), ("polite", 3), ("firm", 7), ("urgent", 14)),
    "Net 15": (("friendly", -2), ("polite", 2), ("firm", 7), ("urgent", 15)),
    "Net 30": (("friendly", -3), ("polite", 3), ("firm", 10), ("urgent", 20)),
    "Net 60": (("friendly", -5), ("polite", 5), ("firm", 15), ("urgent", 30)),
}


def _start_of_day(value: date) -> datetime:
    return datetime.combine(value, time.min, tzinfo=UTC)


def build_schedule(
    invoice_id: str,
    settings: ReminderSettings,
    due_date: date,
    payment_terms: PaymentTerms | None = None,
    status: str = "sent",
    sent_at: datetime | None = None,
) -> list[Reminder]:
    """Plan the reminders for an invoice.

    Args:
        invoice_id: Invoice the reminders belong to
        settings: Reminder configuration of the invoice
        due_date: Invoice due date
        payment_terms: Payment terms; picks the smart schedule
        status: Invoice status; draft and paid invoices get no reminders
        sent_at: When the invoice was sent, the base date for enabled "Due on Receipt"

    Returns:
        Scheduled reminders ordered by planned send time
    """
    if status in ("draft", "paid") or not settings.enabled:
        return []

    terms = payment_terms.terms if payment_terms else DEFAULT_TERMS
    base = _start_of_day(due_date)
    if terms == DUE_ON_RECEIPT and payment_terms and payment_terms.enabled and sent_at:
        base = sent_at if sent_at.tzinfo else sent_at.replace(tzinfo=UTC)

    if settings.use_system_defaults:
        schedule = SMART_SCHEDULES.get(terms, SMART_SCHEDULES[DEFAULT_TERMS])
        return [
            Reminder(
                invoice_id=invoice_id,
                reminder_type=reminder_type,
                reminder_status="scheduled",
                overdue_days=days,
                sent_at=base + timedelta(days=days),
            )
            for reminder_type, days in schedule
        ]

    planned = []
    for rule in settings.rules:
        if not rule.enabled:
            continue
        offset = -rule.days if rule.type == "before" else rule.days
        planned.append((base + timedelta(days=offset), offset))
    planned.sort(key=lambda p: p[0])

    return [
        Reminder(
            invoice_id=invoice_id,
            reminder_type=REMINDER_TYPES[min(i, len(REMINDER_TYPES) - 1)],
            reminder_status="scheduled",
            overdue_days=offset,
            sent_at=when,
        )
        for i, (when, offset) in enumerate(planned)
    ]


def stale_failed_reminders(existing: Iterable[Reminder]) -> list[str]:
    """Ids of duplicate failed reminders, keeping the newest per reminder type."""
    failed_by_type: dict[str, list[Reminder]] = defaultdict(list)
    for reminder in existing:
        if reminder.reminder_status == "failed":
            failed_by_type[reminder.reminder_type].append(reminder)

    stale = []
    for reminders in failed_by_type.values():
        reminders.sort(key=lambda r: r.created_at, reverse=True)
        stale.extend(r.id for r in reminders[1:])
    return stale


class DispatchSummary(BaseModel):
    sent: int = 0
    failed: int = 0
    cancelled: int = 0


class ReminderService:
    """Schedules, sends and cancels invoice reminders."""

    def __init__(
        self,
        repository: Repository,
        email: EmailProvider,
        settings: Settings,
        plans: PlanService,
        profiles: ProfileService,
    ) -> None:
        self.repository = repository
        self.email = email
        self.settings = settings
        self.plans = plans
        self.profiles = profiles

    def list_for_invoice(self, invoice_id: str) -> list[Reminder]:
        rows = self.repository.select(REMINDERS_TABLE, invoice_id=invoice_id, order_by="sent_at")
        return [Reminder.model_validate(r) for r in rows]

    def reschedule(self, invoice: Invoice) -> list[Reminder]:
        """Replace the scheduled reminders of an invoice.

        Existing scheduled rows are deleted, duplicate failed rows pruned and
        a fresh schedule inserted. Draft and paid invoices end up with none.
        """
        existing = self.list_for_invoice(invoice.id)
        self.repository.delete_where(
            REMINDERS_TABLE, invoice_id=invoice.id, reminder_status="scheduled"
        )
        stale = stale_failed_reminders(existing)
        if stale:
            self.repository.delete_where(REMINDERS_TABLE, id=stale)
            logger.info(f"Removed {len(stale)} duplicate failed reminders for {invoice.id}")

        schedule = build_schedule(
            invoice.id,
            invoice.reminders,
            invoice.due_date,
            invoice.payment_terms,
            invoice.status,
            invoice.sent_at,
        )
        if schedule:
            self.repository.insert_many(
                REMINDERS_TABLE, [r.model_dump(mode="json") for r in schedule]
            )
            logger.info(f"Scheduled {len(schedule)} reminders for invoice {invoice.id}")
        return schedule

    def cancel_scheduled(self, invoice_id: str, reason: str) -> int:
        rows = self.repository.update_where(
            REMINDERS_TABLE,
            {"reminder_status": "cancelled", "failure_reason": reason},
            invoice_id=invoice_id,
            reminder_status="scheduled",
        )
        if rows:
            logger.info(f"Cancelled {len(rows)} scheduled reminders for {invoice_id}: {reason}")
        return len(rows)

    def due_reminders(self, now: datetime | None = None) -> list[Reminder]:
        """Scheduled reminders whose planned time has passed."""
        now = now or utcnow()
        rows = self.repository.select(
            REMINDERS_TABLE, reminder_status="scheduled", order_by="sent_at"
        )
        reminders = [Reminder.model_validate(r) for r in rows]
        return [r for r in reminders if r.sent_at <= now]

    def sent_count(self, invoice_id: str) -> int:
        return self.repository.count(REMINDERS_TABLE, invoice_id=invoice_id, reminder_status="sent")

    def send_reminder(
        self,
        invoice: Invoice,
        payments: Sequence[Payment],
        reminder_type: ReminderType = "friendly",
        overdue_days: int | None = None,
        reminder_id: str | None = None,
        today: date | None = None,
    ) -> Reminder:
        """Email a reminder and record the outcome.

        Args:
            invoice: Invoice with its client loaded
            payments: Payments recorded against the invoice
            reminder_type: Tone of the reminder
            overdue_days: Days overdue shown in the email (computed when omitted)
            reminder_id: Scheduled reminder row to update; a new row is
                inserted when omitted
            today: Reference date for late-fee arithmetic

        Returns:
            The sent or failed reminder row

        Raises:
            ValidationError: Invoice is a draft, already paid, or has no client email
            LimitReachedError: Free plan reminder limit for this invoice reached
        """
        if invoice.status in ("draft", "paid"):
            raise ValidationError(f"Cannot send reminders for {invoice.status} invoices")
        if invoice.client is None or not invoice.client.email:
            raise ValidationError("Invoice has no client email address")

        check = self.plans.can_send_reminder(invoice.user_id, self.sent_count(invoice.id))
        if not check.allowed:
            raise LimitReachedError(check.reason or "Reminder limit reached", check.limit_type)

        business = self.profiles.get_business_settings(invoice.user_id)
        charges = calculate_due_charges(invoice, payments, today)
        days = charges.overdue_days if overdue_days is None else overdue_days

        rendered = render_reminder_email(
            invoice,
            business,
            reminder_type,
            days,
            charges,
            public_invoice_url(self.settings, invoice.public_token),
        )
        result = self.email.send(
            EmailMessage(
                to=[invoice.client.email],
                subject=rendered.subject,
                html=rendered.html,
                from_address=self.email.sender(business.business_name),
                reply_to=business.business_email or None,
            )
        )

        changes = {
            "reminder_type": reminder_type,
            "reminder_status": "sent" if result.success else "failed",
            "overdue_days": days,
            "sent_at": utcnow().isoformat(),
            "email_id": result.message_id,
            "failure_reason": None if result.success else result.error,
        }
        if reminder_id:
            row = self.repository.update(REMINDERS_TABLE, reminder_id, changes)
            if row is None:
                raise NotFoundError("Reminder not found")
        else:
            row = self.repository.insert(
                REMINDERS_TABLE, Reminder(invoice_id=invoice.id, **changes).model_dump(mode="json")
            )

        if result.success:
            logger.info(f"Sent {reminder_type} reminder for invoice {invoice.invoice_number}")
        else:
            logger.warning(
                f"Failed to send {reminder_type} reminder for {invoice.invoice_number}: "
                f"{result.error}"
            )
        return Reminder.model_validate(row)

    def dispatch_due(self, now: datetime | None = None) -> DispatchSummary:
        """Send every scheduled reminder whose time has come.

        Reminders of invoices that were deleted, paid or moved back to
        draft are cancelled instead of sent.
        """
        now = now or utcnow()
        summary = DispatchSummary()

        for reminder in self.due_reminders(now):
            invoice = load_invoice(self.repository, reminder.invoice_id)
            if invoice is None or invoice.status in ("draft", "paid"):
                state = "deleted" if invoice is None else invoice.status
                self.repository.update(
                    REMINDERS_TABLE,
                    reminder.id,
                    {"reminder_status": "cancelled", "failure_reason": f"Invoice is {state}"},
                )
                summary.cancelled += 1
                continue

            try:
                sent = self.send_reminder(
                    invoice,
                    load_payments(self.repository, invoice.id),
                    reminder.reminder_type,
                    overdue_days=reminder.overdue_days,
                    reminder_id=reminder.id,
                    today=now.date(),
                )
            except (ValidationError, LimitReachedError) as e:
                self.repository.update(
                    REMINDERS_TABLE,
                    reminder.id,
                    {"reminder_status": "cancelled", "failure_reason": e.message},
                )
                summary.cancelled += 1
                continue
            except InvoicingError as e:
                logger.warning(f"Reminder {reminder.id} for {invoice.invoice_number} failed: {e}")
                self.repository.update(
                    REMINDERS_TABLE,
                    reminder.id,
                    {"reminder_status": "failed", "failure_reason": e.message},
                )
                summary.failed += 1
                continue

            if sent.reminder_status == "sent":
                summary.sent += 1
            else:
                summary.failed += 1

        if summary.sent or summary.failed or summary.cancelled:
            logger.info(
                f"Reminder dispatch: {summary.sent} sent, {summary.failed} failed, "
                f"{summary.cancelled} cancelled"
            )
        return summary

    def send_for_invoice(
        self,
        user_id: str,
        invoice_id: str,
        reminder_type: ReminderType = "friendly",
        overdue_days: int | None = None,
        today: date | None = None,
    ) -> Reminder:
        """Send a reminder on demand for one of the user's invoices."""
        invoice = load_invoice(self.repository, invoice_id, user_id)
        if invoice is None:
            raise NotFoundError("Invoice not found")
        return self.send_reminder(
            invoice,
            load_payments(self.repository, invoice_id),
            reminder_type,
            overdue_days=overdue_days,
            today=today,
        )

    def history(
        self, user_id: str, query: str | None = None, today: date | None = None
    ) -> list[ReminderHistoryEntry]:
        """Reminder history across all of the user's invoices."""
        rows = self.repository.select(INVOICES_TABLE, user_id=user_id)
        invoices = hydrate_invoices(self.repository, rows)
        ids = [inv.id for inv in invoices]
        if not ids:
            return []
        reminders = [
            Reminder.model_validate(r)
            for r in self.repository.select(REMINDERS_TABLE, invoice_id=ids)
        ]
        return build_history(
            reminders, invoices, payments_by_invoice(self.repository, ids), query, today
        )

"""Reminder history view: reminders joined with their invoice and amounts due."""

from collections.abc import Iterable, Mapping, Sequence
from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel

from invoicing.billing.charges import calculate_due_charges
from invoicing.domain.schema import Invoice, Payment, Reminder, ReminderStatus, ReminderType


class ReminderHistoryEntry(BaseModel):
    """One reminder row as shown in the history list.

    Attributes:
        base_amount: Remaining balance for still-scheduled reminders of
            partially paid invoices, otherwise the invoice total
        late_fee_amount: Late fee chargeable on base_amount today
        total_payable: base_amount + late_fee_amount
    """

    id: str
    invoice_id: str
    invoice_number: str
    invoice_status: str
    client_name: str
    client_email: str
    reminder_type: ReminderType
    reminder_status: ReminderStatus
    overdue_days: int
    sent_at: datetime
    failure_reason: str | None = None
    email_id: str | None = None
    currency: str
    base_amount: Decimal
    late_fee_amount: Decimal
    total_payable: Decimal
    total_paid: Decimal
    is_partially_paid: bool


def _matches(query: str, entry: ReminderHistoryEntry) -> bool:
    q = query.strip().lower()
    fields = (entry.invoice_number, entry.client_name, entry.client_email)
    return any(q in value.lower() for value in fields)


def build_history(
    reminders: Iterable[Reminder],
    invoices: Sequence[Invoice],
    payments: Mapping[str, Sequence[Payment]],
    query: str | None = None,
    today: date | None = None,
) -> list[ReminderHistoryEntry]:
    """Join reminders with invoices and compute what each reminder asks for.

    Reminders of draft invoices, and reminders whose invoice is missing
    (deleted or owned by another user), are left out.

    Args:
        reminders: Reminder rows
        invoices: Invoices of the current user, with clients loaded
        payments: Payments keyed by invoice id
        query: Case-insensitive search over invoice number and client name/email
        today: Reference date for late fees

    Returns:
        Entries ordered newest first
    """
    by_id = {inv.id: inv for inv in invoices}
    entries = []

    for reminder in reminders:
        invoice = by_id.get(reminder.invoice_id)
        if invoice is None or invoice.status == "draft":
            continue

        charges = calculate_due_charges(
            invoice,
            payments.get(invoice.id, ()),
            today,
            use_remaining_balance=reminder.reminder_status == "scheduled",
        )
        entries.append(
            ReminderHistoryEntry(
                id=reminder.id,
                invoice_id=invoice.id,
                invoice_number=invoice.invoice_number,
                invoice_status=invoice.status,
                client_name=invoice.client.name if invoice.client else "",
                client_email=str(invoice.client.email) if invoice.client else "",
                reminder_type=reminder.reminder_type,
                reminder_status=reminder.reminder_status,
                overdue_days=reminder.overdue_days,
                sent_at=reminder.sent_at,
                failure_reason=reminder.failure_reason,
                email_id=reminder.email_id,
                currency=invoice.currency,
                base_amount=charges.base_amount,
                late_fee_amount=charges.late_fee_amount,
                total_payable=charges.total_payable,
                total_paid=charges.total_paid,
                is_partially_paid=charges.is_partially_paid,
            )
        )

    if query and query.strip():
        entries = [e for e in entries if _matches(query, e)]

    entries.sort(key=lambda e: e.sent_at, reverse=True)
    return entries

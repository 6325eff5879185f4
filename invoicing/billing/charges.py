"""Due-date, late-fee and partial-payment arithmetic.

Pure functions over invoice models. ``today`` is always injectable so
callers (and tests) control the reference date; it defaults to the
current local date.

Rules:
- A draft invoice is never overdue.
- Late fees apply only to unpaid, non-draft invoices whose overdue days
  exceed the policy grace period.
- Percentage fees are charged on the base amount: the remaining balance
  when partial payments exist, otherwise the invoice total.
"""

from collections.abc import Iterable, Sequence
from datetime import date
from decimal import Decimal

from pydantic import BaseModel

from invoicing.domain.currency import format_currency, to_money
from invoicing.domain.schema import Invoice, InvoiceItem, LateFeePolicy, Payment
from invoicing.shared.errors import ValidationError

ZERO = Decimal("0.00")

# Statuses that still expect money from the client
UNPAID_STATUSES = frozenset({"pending", "sent", "overdue"})


class Totals(BaseModel):
    subtotal: Decimal
    tax_amount: Decimal
    total: Decimal


class PaymentSummary(BaseModel):
    total_paid: Decimal
    remaining_balance: Decimal
    is_fully_paid: bool
    is_partially_paid: bool


class DueCharges(BaseModel):
    """Amounts owed on an invoice as of a given date.

    Attributes:
        overdue_days: Days past the due date (0 when not overdue)
        chargeable_days: Overdue days beyond the late-fee grace period
        late_fee_amount: Late fee currently chargeable
        base_amount: Amount the late fee is computed on
        total_payable: base_amount + late_fee_amount
        total_paid: Sum of recorded payments
        remaining_balance: Invoice total minus payments, never negative
        has_late_fees: Whether a late fee applies
        is_partially_paid: Payments exist but do not cover the total
    """

    overdue_days: int
    chargeable_days: int
    late_fee_amount: Decimal
    base_amount: Decimal
    total_payable: Decimal
    total_paid: Decimal
    remaining_balance: Decimal
    has_late_fees: bool
    is_partially_paid: bool


def calculate_totals(
    items: Sequence[InvoiceItem],
    discount: Decimal = ZERO,
    tax_rate: Decimal = ZERO,
) -> Totals:
    """Compute subtotal, tax and total for a set of line items.

    Tax is charged on the discounted subtotal; a discount larger than the
    subtotal brings the taxable amount to zero rather than below it.
    """
    subtotal = to_money(sum((item.amount or ZERO for item in items), ZERO))
    taxable = max(ZERO, subtotal - to_money(discount))
    tax_amount = to_money(taxable * Decimal(tax_rate) / 100)
    return Totals(subtotal=subtotal, tax_amount=tax_amount, total=to_money(taxable + tax_amount))


def summarize_payments(total: Decimal, payments: Iterable[Payment]) -> PaymentSummary:
    total = to_money(total)
    total_paid = to_money(sum((p.amount for p in payments), ZERO))
    remaining = max(ZERO, total - total_paid)
    return PaymentSummary(
        total_paid=total_paid,
        remaining_balance=remaining,
        is_fully_paid=total_paid > 0 and total_paid >= total,
        is_partially_paid=total_paid > 0 and remaining > 0,
    )


def overdue_days(invoice: Invoice, today: date | None = None) -> int:
    """Days the invoice is past due; 0 for drafts and invoices not yet due."""
    today = today or date.today()
    if invoice.status == "draft" or invoice.due_date >= today:
        return 0
    return (today - invoice.due_date).days


def late_fee_amount(policy: LateFeePolicy, days_overdue: int, base_amount: Decimal) -> Decimal:
    """Late fee chargeable under ``policy`` after ``days_overdue`` days.

    Example:
        5% policy, 3-day grace, 10 days overdue on $1000 -> $50.00
    """
    if not policy.enabled or days_overdue <= policy.grace_period:
        return ZERO
    if policy.type == "fixed":
        return to_money(policy.amount)
    return to_money(Decimal(base_amount) * policy.amount / 100)


def calculate_due_charges(
    invoice: Invoice,
    payments: Sequence[Payment] = (),
    today: date | None = None,
    use_remaining_balance: bool = True,
) -> DueCharges:
    """Compute overdue days, late fee and total payable for an invoice.

    Args:
        invoice: Invoice to evaluate
        payments: Payments recorded against the invoice
        today: Reference date (defaults to today)
        use_remaining_balance: Charge on the remaining balance when partial
            payments exist. Reminder history passes False for reminders that
            were already sent, so they keep showing the invoice total.

    Returns:
        DueCharges for the invoice
    """
    summary = summarize_payments(invoice.total, payments)
    if use_remaining_balance and summary.total_paid > 0:
        base = summary.remaining_balance
    else:
        base = to_money(invoice.total)

    days = overdue_days(invoice, today)
    fee = ZERO
    if invoice.status in UNPAID_STATUSES:
        fee = late_fee_amount(invoice.late_fees, days, base)

    chargeable = max(0, days - invoice.late_fees.grace_period) if fee > 0 else 0

    return DueCharges(
        overdue_days=days,
        chargeable_days=chargeable,
        late_fee_amount=fee,
        base_amount=base,
        total_payable=to_money(base + fee),
        total_paid=summary.total_paid,
        remaining_balance=summary.remaining_balance,
        has_late_fees=fee > 0,
        is_partially_paid=invoice.status != "paid" and summary.is_partially_paid,
    )


def display_status(invoice: Invoice, today: date | None = None) -> str:
    """Status shown in lists: stored status, bucketed by due date for open invoices."""
    today = today or date.today()
    if invoice.status in ("draft", "paid"):
        return invoice.status
    if invoice.due_date < today:
        return "overdue"
    if invoice.due_date == today:
        return "due today"
    return invoice.status


def validate_payment_amount(
    invoice: Invoice,
    payments: Sequence[Payment],
    amount: Decimal,
) -> PaymentSummary:
    """Check that a new payment can be recorded.

    Returns:
        Payment summary including the new payment

    Raises:
        ValidationError: Invoice already paid, amount not positive, or
            the payment would exceed the invoice total
    """
    if invoice.status == "paid":
        raise ValidationError(
            "Invoice is already marked as fully paid. Cannot add partial payments."
        )
    amount = to_money(amount)
    if amount <= 0:
        raise ValidationError("Valid payment amount is required")

    current = summarize_payments(invoice.total, payments)
    if current.total_paid + amount > to_money(invoice.total):
        maximum = format_currency(to_money(invoice.total) - current.total_paid, invoice.currency)
        raise ValidationError(
            f"Payment amount exceeds invoice total. Maximum payment allowed: {maximum}"
        )

    total_paid = current.total_paid + amount
    remaining = max(ZERO, to_money(invoice.total) - total_paid)
    return PaymentSummary(
        total_paid=total_paid,
        remaining_balance=remaining,
        is_fully_paid=total_paid >= to_money(invoice.total),
        is_partially_paid=remaining > 0,
    )


def total_owed(invoice: Invoice, payments: Sequence[Payment], today: date | None = None) -> Decimal:
    """Invoice total plus chargeable late fee, minus payments received."""
    charges = calculate_due_charges(invoice, payments, today)
    return max(ZERO, to_money(invoice.total) + charges.late_fee_amount - charges.total_paid)


def validate_write_off(
    invoice: Invoice,
    payments: Sequence[Payment],
    amount: Decimal,
    today: date | None = None,
) -> Decimal:
    """Validate a write-off amount and return it rounded to cents.

    Raises:
        ValidationError: Invoice already paid, amount not positive, or
            amount exceeds what is owed
    """
    if invoice.status == "paid":
        raise ValidationError("Invoice is already paid")
    amount = to_money(amount)
    if amount <= 0:
        raise ValidationError("Valid write-off amount is required")
    owed = total_owed(invoice, payments, today)
    if amount > owed:
        raise ValidationError(
            "Write-off amount cannot exceed total owed (including late fees) of "
            f"{format_currency(owed, invoice.currency)}"
        )
    return amount

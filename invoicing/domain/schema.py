"""Invoice, estimate and reminder data models.

Models mirror database rows (snake_case). Nested policy objects
(payment terms, late fees, reminder settings, theme) and line items are
stored as JSON columns on their parent row.
"""

import secrets
import uuid
from datetime import UTC, date, datetime
from decimal import Decimal
from typing import Any, Literal

from pydantic import BaseModel, EmailStr, Field, model_validator

from invoicing.domain.currency import to_money

InvoiceStatus = Literal["draft", "pending", "sent", "paid", "overdue"]
InvoiceType = Literal["fast", "detailed"]
EstimateStatus = Literal["draft", "sent", "approved", "rejected", "converted", "expired"]
ApprovalStatus = Literal["pending", "approved", "rejected"]
ReminderType = Literal["friendly", "polite", "firm", "urgent"]
ReminderStatus = Literal["sent", "failed", "scheduled", "delivered", "bounced", "cancelled"]
LateFeeType = Literal["fixed", "percentage"]
SubscriptionPlan = Literal["free", "monthly", "pay_per_invoice"]

REMINDER_TYPES: tuple[ReminderType, ...] = ("friendly", "polite", "firm", "urgent")


def new_id() -> str:
    return str(uuid.uuid4())


def new_public_token() -> str:
    return secrets.token_urlsafe(24)


def utcnow() -> datetime:
    return datetime.now(UTC)


class Client(BaseModel):
    """Customer an invoice or estimate is addressed to."""

    id: str = Field(default_factory=new_id)
    user_id: str
    name: str = Field(..., min_length=1)
    email: EmailStr
    company: str = ""
    phone: str | None = None
    address: str | None = None
    created_at: datetime = Field(default_factory=utcnow)


class InvoiceItem(BaseModel):
    """Single line on an invoice or estimate.

    ``amount`` defaults to ``qty * rate`` when not supplied.
    """

    id: str = Field(default_factory=new_id)
    description: str = Field(..., min_length=1)
    qty: Decimal = Field(Decimal("1"), gt=0)
    rate: Decimal = Field(..., ge=0)
    amount: Decimal | None = None

    @model_validator(mode="after")
    def _fill_amount(self) -> "InvoiceItem":
        if self.amount is None:
            self.amount = to_money(self.qty * self.rate)
        return self


class PaymentTerms(BaseModel):
    enabled: bool = False
    terms: str = "Net 30"


class LateFeePolicy(BaseModel):
    """Late fee charged once an invoice is past due by more than the grace period."""

    enabled: bool = False
    type: LateFeeType = "fixed"
    amount: Decimal = Field(Decimal("0"), ge=0)
    grace_period: int = Field(0, ge=0, description="Days after the due date before fees apply")


class ReminderRule(BaseModel):
    id: str = Field(default_factory=new_id)
    type: Literal["before", "after"] = "after"
    days: int = Field(0, ge=0)
    enabled: bool = True


class ReminderSettings(BaseModel):
    enabled: bool = False
    use_system_defaults: bool = True
    rules: list[ReminderRule] = Field(default_factory=list)


class Theme(BaseModel):
    """Visual layout selection; ``template`` is the numeric template id."""

    template: int = 1
    primary_color: str = "#5C2D91"
    secondary_color: str = "#8B5CF6"
    accent_color: str = "#3B82F6"


class Invoice(BaseModel):
    """Invoice row with its line items and billing policies."""

    id: str = Field(default_factory=new_id)
    user_id: str
    invoice_number: str
    client_id: str | None = None
    client: Client | None = None
    items: list[InvoiceItem] = Field(default_factory=list)

    # Financial details
    subtotal: Decimal = Decimal("0")
    discount: Decimal = Decimal("0")
    tax_rate: Decimal = Decimal("0")
    tax_amount: Decimal = Decimal("0")
    total: Decimal = Decimal("0")
    currency: str = "USD"

    status: InvoiceStatus = "draft"
    type: InvoiceType = "detailed"
    issue_date: date = Field(default_factory=date.today)
    due_date: date
    notes: str = ""

    payment_terms: PaymentTerms = Field(default_factory=PaymentTerms)
    late_fees: LateFeePolicy = Field(default_factory=LateFeePolicy)
    reminders: ReminderSettings = Field(default_factory=ReminderSettings)
    theme: Theme = Field(default_factory=Theme)

    public_token: str = Field(default_factory=new_public_token)
    write_off_amount: Decimal = Decimal("0")
    write_off_notes: str | None = None
    sent_at: datetime | None = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime | None = None

    def to_row(self) -> dict[str, Any]:
        """Serialize for storage; the joined client is not persisted."""
        return self.model_dump(mode="json", exclude={"client"})


class Estimate(BaseModel):
    """Quote that can be approved by the client and converted into an invoice."""

    id: str = Field(default_factory=new_id)
    user_id: str
    estimate_number: str
    client_id: str | None = None
    client: Client | None = None
    items: list[InvoiceItem] = Field(default_factory=list)

    subtotal: Decimal = Decimal("0")
    discount: Decimal = Decimal("0")
    tax_rate: Decimal = Decimal("0")
    tax_amount: Decimal = Decimal("0")
    total: Decimal = Decimal("0")
    currency: str = "USD"

    status: EstimateStatus = "draft"
    approval_status: ApprovalStatus = "pending"
    approved_at: datetime | None = None
    rejected_at: datetime | None = None
    rejection_reason: str | None = None
    converted_to_invoice_id: str | None = None

    issue_date: date = Field(default_factory=date.today)
    expiry_date: date
    notes: str = ""
    payment_terms: PaymentTerms = Field(default_factory=PaymentTerms)
    theme: Theme = Field(default_factory=Theme)

    public_token: str = Field(default_factory=new_public_token)
    sent_at: datetime | None = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime | None = None

    def to_row(self) -> dict[str, Any]:
        return self.model_dump(mode="json", exclude={"client"})


class Payment(BaseModel):
    """Full or partial payment recorded against an invoice."""

    id: str = Field(default_factory=new_id)
    invoice_id: str
    user_id: str
    amount: Decimal = Field(..., gt=0)
    payment_date: date = Field(default_factory=date.today)
    payment_method: str | None = None
    notes: str | None = None
    created_at: datetime = Field(default_factory=utcnow)


class Reminder(BaseModel):
    """Row of the reminder history (``invoice_reminders`` table).

    ``sent_at`` is the send time for sent reminders and the planned time
    for scheduled ones. ``overdue_days`` is negative for reminders planned
    before the due date.
    """

    id: str = Field(default_factory=new_id)
    invoice_id: str
    reminder_type: ReminderType = "friendly"
    reminder_status: ReminderStatus = "scheduled"
    overdue_days: int = 0
    sent_at: datetime
    email_id: str | None = None
    failure_reason: str | None = None
    created_at: datetime = Field(default_factory=utcnow)


class BusinessSettings(BaseModel):
    """Business profile and payment methods shown on invoices and emails."""

    user_id: str
    business_name: str = ""
    business_email: str = ""
    business_phone: str = ""
    address: str = ""
    website: str = ""
    logo: str = ""

    paypal_email: str = ""
    cashapp_id: str = ""
    venmo_id: str = ""
    google_pay_upi: str = ""
    apple_pay_id: str = ""
    bank_account: str = ""
    bank_ifsc_swift: str = ""
    bank_iban: str = ""
    stripe_account: str = ""
    payment_notes: str = ""

    updated_at: datetime | None = None

    def payment_methods(self) -> list[tuple[str, str]]:
        """Return (label, value) pairs for every configured payment method."""
        candidates = [
            ("PayPal", self.paypal_email),
            ("Cash App", self.cashapp_id),
            ("Venmo", self.venmo_id),
            ("Google Pay", self.google_pay_upi),
            ("Apple Pay", self.apple_pay_id),
            ("Bank Account", self.bank_account),
            ("IFSC/SWIFT", self.bank_ifsc_swift),
            ("IBAN", self.bank_iban),
            ("Credit/Debit Card", self.stripe_account),
        ]
        return [(label, value) for label, value in candidates if value]


class UserProfile(BaseModel):
    id: str
    email: str = ""
    name: str = ""
    subscription_plan: SubscriptionPlan = "free"
    pay_per_invoice_activated_at: datetime | None = None

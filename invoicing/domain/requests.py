"""Request bodies accepted by the HTTP API."""

from datetime import date
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, EmailStr, Field

from invoicing.domain.schema import (
    InvoiceItem,
    InvoiceType,
    LateFeePolicy,
    PaymentTerms,
    ReminderSettings,
    ReminderType,
    Theme,
)


class ClientCreate(BaseModel):
    name: str = Field(..., min_length=1)
    email: EmailStr
    company: str = ""
    phone: str | None = None
    address: str | None = None


class ClientUpdate(BaseModel):
    name: str | None = Field(None, min_length=1)
    email: EmailStr | None = None
    company: str | None = None
    phone: str | None = None
    address: str | None = None


class InvoiceCreate(BaseModel):
    client_id: str
    items: list[InvoiceItem] = Field(..., min_length=1)
    discount: Decimal = Field(Decimal("0"), ge=0)
    tax_rate: Decimal = Field(Decimal("0"), ge=0, le=100)
    status: Literal["draft", "pending"] = "draft"
    type: InvoiceType = "detailed"
    currency: str | None = None
    issue_date: date | None = None
    due_date: date
    notes: str = ""
    payment_terms: PaymentTerms = Field(default_factory=PaymentTerms)
    late_fees: LateFeePolicy = Field(default_factory=LateFeePolicy)
    reminders: ReminderSettings = Field(default_factory=ReminderSettings)
    theme: Theme = Field(default_factory=Theme)


class InvoiceUpdate(BaseModel):
    client_id: str | None = None
    items: list[InvoiceItem] | None = Field(None, min_length=1)
    discount: Decimal | None = Field(None, ge=0)
    tax_rate: Decimal | None = Field(None, ge=0, le=100)
    status: Literal["draft", "pending", "sent"] | None = None
    currency: str | None = None
    issue_date: date | None = None
    due_date: date | None = None
    notes: str | None = None
    payment_terms: PaymentTerms | None = None
    late_fees: LateFeePolicy | None = None
    reminders: ReminderSettings | None = None
    theme: Theme | None = None


class EstimateCreate(BaseModel):
    client_id: str
    items: list[InvoiceItem] = Field(..., min_length=1)
    discount: Decimal = Field(Decimal("0"), ge=0)
    tax_rate: Decimal = Field(Decimal("0"), ge=0, le=100)
    currency: str | None = None
    issue_date: date | None = None
    expiry_date: date
    notes: str = ""
    payment_terms: PaymentTerms = Field(default_factory=PaymentTerms)
    theme: Theme = Field(default_factory=Theme)


class EstimateUpdate(BaseModel):
    client_id: str | None = None
    items: list[InvoiceItem] | None = Field(None, min_length=1)
    discount: Decimal | None = Field(None, ge=0)
    tax_rate: Decimal | None = Field(None, ge=0, le=100)
    currency: str | None = None
    issue_date: date | None = None
    expiry_date: date | None = None
    notes: str | None = None
    payment_terms: PaymentTerms | None = None
    theme: Theme | None = None


class PaymentCreate(BaseModel):
    amount: Decimal = Field(..., gt=0)
    payment_date: date | None = None
    payment_method: str | None = None
    notes: str | None = None
    send_receipt: bool = False


class WriteOffRequest(BaseModel):
    amount: Decimal = Field(..., gt=0)
    notes: str | None = None


class SendInvoiceRequest(BaseModel):
    invoice_id: str
    to_email: EmailStr | None = None


class SendEstimateRequest(BaseModel):
    estimate_id: str
    to_email: EmailStr | None = None


class SendReminderRequest(BaseModel):
    invoice_id: str
    reminder_type: ReminderType = "friendly"
    overdue_days: int | None = None


class RejectEstimateRequest(BaseModel):
    reason: str | None = None


class DuplicateInvoiceRequest(BaseModel):
    invoice_id: str


class BulkMarkPaidRequest(BaseModel):
    invoice_ids: list[str] = Field(..., min_length=1)


class BusinessSettingsUpdate(BaseModel):
    business_name: str | None = None
    business_email: str | None = None
    business_phone: str | None = None
    address: str | None = None
    website: str | None = None
    logo: str | None = None
    paypal_email: str | None = None
    cashapp_id: str | None = None
    venmo_id: str | None = None
    google_pay_upi: str | None = None
    apple_pay_id: str | None = None
    bank_account: str | None = None
    bank_ifsc_swift: str | None = None
    bank_iban: str | None = None
    stripe_account: str | None = None
    payment_notes: str | None = None


class ApproveEstimateRequest(BaseModel):
    comment: str | None = None

"""HTML rendering for invoice previews, PDFs and outgoing emails.

The numeric ``theme.template`` id selects one of four layouts:

- 1 Fast: fixed colours, used for every ``fast`` invoice
- 4 Modern: primary/secondary colours
- 5 Creative: primary/secondary colours
- 6 Minimal: primary/secondary/accent colours

Unknown ids fall back to the Fast layout.
"""

import logging
from datetime import date
from pathlib import Path

from jinja2 import Environment, FileSystemLoader, select_autoescape
from pydantic import BaseModel

from invoicing.billing.charges import DueCharges, PaymentSummary
from invoicing.domain.currency import format_currency
from invoicing.domain.schema import (
    BusinessSettings,
    Estimate,
    Invoice,
    Payment,
    ReminderType,
    Theme,
)
from invoicing.shared.config import Settings

logger = logging.getLogger(__name__)

TEMPLATE_DIR = Path(__file__).parent / "html"

FAST_TEMPLATE_ID = 1
FAST_PRIMARY_COLOR = "#111827"
FAST_SECONDARY_COLOR = "#6B7280"
FAST_ACCENT_COLOR = "#2563EB"


class Layout(BaseModel):
    """Resolved visual layout for an invoice or estimate."""

    template_id: int
    name: str
    file: str
    primary_color: str
    secondary_color: str
    accent_color: str


class RenderedEmail(BaseModel):
    subject: str
    html: str


_LAYOUTS: dict[int, tuple[str, str]] = {
    1: ("Fast", "invoice_fast.html"),
    4: ("Modern", "invoice_modern.html"),
    5: ("Creative", "invoice_creative.html"),
    6: ("Minimal", "invoice_minimal.html"),
}

_REMINDER_SUBJECTS: dict[str, str] = {
    "friendly": "Just a friendly reminder about invoice #{number}",
    "polite": "Payment reminder for invoice #{number}",
    "firm": "Overdue payment notice - Invoice #{number}",
    "urgent": "URGENT: Payment required - Invoice #{number}",
}


def _format_date(value: date | None) -> str:
    if value is None:
        return ""
    return f"{value:%B} {value.day}, {value.year}"


def _build_environment() -> Environment:
    env = Environment(
        loader=FileSystemLoader(TEMPLATE_DIR),
        autoescape=select_autoescape(["html"]),
        trim_blocks=True,
        lstrip_blocks=True,
    )
    env.filters["money"] = lambda amount, currency="USD": format_currency(amount, currency)
    env.filters["longdate"] = _format_date
    return env


_env = _build_environment()


def available_template_ids() -> list[int]:
    return sorted(_LAYOUTS)


def resolve_layout(
    template_id: int | None,
    invoice_type: str = "detailed",
    theme: Theme | None = None,
) -> Layout:
    """Pick the layout for a template id.

    Args:
        template_id: Numeric template id from the theme
        invoice_type: ``fast`` invoices always use the Fast layout
        theme: Theme with colours; ignored by the Fast layout

    Returns:
        Layout with the colours to substitute into the template
    """
    if invoice_type == "fast":
        template_id = FAST_TEMPLATE_ID
    elif template_id not in _LAYOUTS:
        logger.warning(f"Unknown template id {template_id}, using Fast layout")
        template_id = FAST_TEMPLATE_ID

    name, file = _LAYOUTS[template_id]
    if template_id == FAST_TEMPLATE_ID or theme is None:
        return Layout(
            template_id=template_id,
            name=name,
            file=file,
            primary_color=FAST_PRIMARY_COLOR,
            secondary_color=FAST_SECONDARY_COLOR,
            accent_color=FAST_ACCENT_COLOR,
        )
    return Layout(
        template_id=template_id,
        name=name,
        file=file,
        primary_color=theme.primary_color,
        secondary_color=theme.secondary_color,
        accent_color=theme.accent_color,
    )


def invoice_layout(invoice: Invoice) -> Layout:
    return resolve_layout(invoice.theme.template, invoice.type, invoice.theme)


def public_invoice_url(settings: Settings, token: str) -> str:
    return f"{settings.public_app_url.rstrip('/')}/invoice/{token}"


def public_estimate_url(settings: Settings, token: str) -> str:
    return f"{settings.public_app_url.rstrip('/')}/estimate/{token}"


def render_invoice_html(
    invoice: Invoice,
    business: BusinessSettings,
    charges: DueCharges | None = None,
) -> str:
    """Render the full invoice document used for previews and PDFs."""
    layout = invoice_layout(invoice)
    template = _env.get_template(layout.file)
    return template.render(
        invoice=invoice,
        client=invoice.client,
        business=business,
        layout=layout,
        charges=charges,
        payment_methods=business.payment_methods(),
    )


def render_invoice_email(
    invoice: Invoice,
    business: BusinessSettings,
    public_url: str,
    charges: DueCharges | None = None,
) -> RenderedEmail:
    layout = invoice_layout(invoice)
    sender = business.business_name or "Your Business"
    html = _env.get_template("email_invoice.html").render(
        invoice=invoice,
        client=invoice.client,
        business=business,
        layout=layout,
        charges=charges,
        public_url=public_url,
        payment_methods=business.payment_methods(),
    )
    return RenderedEmail(subject=f"Invoice {invoice.invoice_number} from {sender}", html=html)


def render_estimate_email(
    estimate: Estimate,
    business: BusinessSettings,
    public_url: str,
) -> RenderedEmail:
    layout = resolve_layout(estimate.theme.template, "detailed", estimate.theme)
    html = _env.get_template("email_estimate.html").render(
        estimate=estimate,
        client=estimate.client,
        business=business,
        layout=layout,
        public_url=public_url,
    )
    return RenderedEmail(
        subject=f"Estimate {estimate.estimate_number} - Please Review",
        html=html,
    )


def reminder_subject(reminder_type: ReminderType | str, invoice_number: str) -> str:
    pattern = _REMINDER_SUBJECTS.get(reminder_type, _REMINDER_SUBJECTS["polite"])
    return pattern.format(number=invoice_number)


def render_reminder_email(
    invoice: Invoice,
    business: BusinessSettings,
    reminder_type: ReminderType,
    overdue_days: int,
    charges: DueCharges,
    public_url: str,
) -> RenderedEmail:
    """Render a payment reminder.

    Tone escalates with ``reminder_type``: friendly, polite, firm, urgent.
    The amount shown is the total payable (remaining balance plus any late fee).
    """
    html = _env.get_template("email_reminder.html").render(
        invoice=invoice,
        client=invoice.client,
        business=business,
        reminder_type=reminder_type,
        overdue_days=max(0, overdue_days),
        charges=charges,
        public_url=public_url,
    )
    return RenderedEmail(subject=reminder_subject(reminder_type, invoice.invoice_number), html=html)


def render_payment_receipt(
    invoice: Invoice,
    business: BusinessSettings,
    payment: Payment,
    summary: PaymentSummary,
) -> RenderedEmail:
    html = _env.get_template("email_receipt.html").render(
        invoice=invoice,
        client=invoice.client,
        business=business,
        payment=payment,
        summary=summary,
        layout=invoice_layout(invoice),
    )
    return RenderedEmail(
        subject=f"Payment received for invoice {invoice.invoice_number}",
        html=html,
    )


def render_estimate_decision_email(
    estimate: Estimate,
    business: BusinessSettings,
    decision: str,
    comment: str | None = None,
) -> RenderedEmail:
    """Notify the business owner that a client approved or rejected an estimate."""
    html = _env.get_template("email_estimate_decision.html").render(
        estimate=estimate,
        client=estimate.client,
        business=business,
        decision=decision,
        comment=comment,
    )
    return RenderedEmail(
        subject=f"Estimate {estimate.estimate_number} {decision.capitalize()}",
        html=html,
    )

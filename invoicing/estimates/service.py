"""Estimates: quotes a client can approve or reject, convertible into invoices.

Status flow::

    draft -> sent -> approved -> converted
                  -> rejected
                  -> expired
"""

import logging
from datetime import date

from pydantic import BaseModel

from invoicing.billing.charges import calculate_totals
from invoicing.billing.listing import Page, filter_estimates, paginate
from invoicing.database.base import Repository
from invoicing.domain.currency import is_valid_currency
from invoicing.domain.requests import EstimateCreate, EstimateUpdate
from invoicing.domain.schema import BusinessSettings, Client, Estimate, Invoice, new_id, utcnow
from invoicing.email.base import EmailMessage, EmailProvider
from invoicing.invoices.records import CLIENTS_TABLE, INVOICES_TABLE, next_document_number
from invoicing.invoices.service import INVOICE_PREFIX
from invoicing.plans.service import PlanService
from invoicing.profile.service import ProfileService
from invoicing.rendering.templates import (
    public_estimate_url,
    render_estimate_decision_email,
    render_estimate_email,
)
from invoicing.shared.config import Settings
from invoicing.shared.errors import (
    EmailDeliveryError,
    LimitReachedError,
    NotFoundError,
    ValidationError,
)

logger = logging.getLogger(__name__)

ESTIMATES_TABLE = "estimates"
ESTIMATE_PREFIX = "EST"
EDITABLE_STATUSES = ("draft", "sent")


class PublicEstimate(BaseModel):
    estimate: Estimate
    business: BusinessSettings


class ConversionResult(BaseModel):
    estimate: Estimate
    invoice: Invoice


class EstimateService:
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

    def _hydrate(self, row: dict) -> Estimate:
        estimate = Estimate.model_validate(row)
        if estimate.client_id:
            client_row = self.repository.get(CLIENTS_TABLE, estimate.client_id)
            if client_row:
                estimate.client = Client.model_validate(client_row)
        return estimate

    def _client(self, user_id: str, client_id: str) -> Client:
        rows = self.repository.select(CLIENTS_TABLE, id=client_id, user_id=user_id)
        if not rows:
            raise NotFoundError("Client not found")
        return Client.model_validate(rows[0])

    def _currency(self, currency: str | None) -> str:
        code = (currency or self.settings.default_currency).upper()
        if not is_valid_currency(code):
            raise ValidationError(f"Unsupported currency: {code}")
        return code

    def get(self, user_id: str, estimate_id: str) -> Estimate:
        rows = self.repository.select(ESTIMATES_TABLE, id=estimate_id, user_id=user_id)
        if not rows:
            raise NotFoundError("Estimate not found")
        return self._hydrate(rows[0])

    def list_estimates(
        self,
        user_id: str,
        query: str | None = None,
        status: str | None = None,
        page: int = 1,
        per_page: int = 10,
    ) -> Page[Estimate]:
        rows = self.repository.select(
            ESTIMATES_TABLE, user_id=user_id, order_by="created_at", descending=True
        )
        estimates = [self._hydrate(r) for r in rows]
        return paginate(filter_estimates(estimates, query, status), page, per_page)

    def create(self, user_id: str, data: EstimateCreate) -> Estimate:
        """Create a draft estimate.

        Raises:
            LimitReachedError: Plan estimate or template limit reached
            NotFoundError: Client does not belong to the user
        """
        check = self.plans.can_create_estimate(user_id)
        if not check.allowed:
            raise LimitReachedError(check.reason or "Estimate limit reached", "estimates")
        template_check = self.plans.can_use_template(user_id, data.theme.template)
        if not template_check.allowed:
            raise LimitReachedError(template_check.reason or "Template not available", "templates")

        client = self._client(user_id, data.client_id)
        totals = calculate_totals(data.items, data.discount, data.tax_rate)
        estimate = Estimate(
            user_id=user_id,
            estimate_number=next_document_number(
                self.repository, ESTIMATES_TABLE, user_id, "estimate_number", ESTIMATE_PREFIX
            ),
            client_id=client.id,
            items=data.items,
            subtotal=totals.subtotal,
            discount=data.discount,
            tax_rate=data.tax_rate,
            tax_amount=totals.tax_amount,
            total=totals.total,
            currency=self._currency(data.currency),
            issue_date=data.issue_date or date.today(),
            expiry_date=data.expiry_date,
            notes=data.notes,
            payment_terms=data.payment_terms,
            theme=data.theme,
        )
        self.repository.insert(ESTIMATES_TABLE, estimate.to_row())
        estimate.client = client
        logger.info(f"Created estimate {estimate.estimate_number} for user {user_id}")
        return estimate

    def update(self, user_id: str, estimate_id: str, data: EstimateUpdate) -> Estimate:
        """Edit an estimate that has not been decided yet.

        Raises:
            ValidationError: Estimate is approved, rejected, converted or expired
        """
        estimate = self.get(user_id, estimate_id)
        if estimate.status not in EDITABLE_STATUSES:
            raise ValidationError(f"Cannot edit an estimate that is {estimate.status}")

        changes = data.model_dump(exclude_unset=True, exclude_none=True)
        if "client_id" in changes:
            estimate.client = self._client(user_id, changes["client_id"])
        if "currency" in changes:
            changes["currency"] = self._currency(changes["currency"])

        updated = estimate.model_copy(update=changes)
        for field in ("items", "payment_terms", "theme"):
            value = getattr(data, field)
            if value is not None:
                setattr(updated, field, value)

        totals = calculate_totals(updated.items, updated.discount, updated.tax_rate)
        updated.subtotal = totals.subtotal
        updated.tax_amount = totals.tax_amount
        updated.total = totals.total
        updated.updated_at = utcnow()
        self.repository.update(ESTIMATES_TABLE, estimate_id, updated.to_row())
        return updated

    def delete(self, user_id: str, estimate_id: str) -> None:
        estimate = self.get(user_id, estimate_id)
        self.repository.delete(ESTIMATES_TABLE, estimate.id)
        logger.info(f"Deleted estimate {estimate.estimate_number}")

    def send(self, user_id: str, estimate_id: str, to_email: str | None = None) -> Estimate:
        """Email the estimate to the client and mark it sent.

        Raises:
            ValidationError: Estimate already decided or no recipient
            EmailDeliveryError: The email provider rejected the message
        """
        estimate = self.get(user_id, estimate_id)
        if estimate.status not in EDITABLE_STATUSES:
            raise ValidationError(f"Cannot send an estimate that is {estimate.status}")
        recipient = to_email or (estimate.client.email if estimate.client else None)
        if not recipient:
            raise ValidationError("Client email is required to send an estimate")

        business = self.profiles.get_business_settings(user_id)
        rendered = render_estimate_email(
            estimate, business, public_estimate_url(self.settings, estimate.public_token)
        )
        result = self.email.send(
            EmailMessage(
                to=[str(recipient)],
                subject=rendered.subject,
                html=rendered.html,
                from_address=self.email.sender(business.business_name),
                reply_to=business.business_email or None,
            )
        )
        if not result.success:
            raise EmailDeliveryError(f"Failed to send estimate email: {result.error}")

        now = utcnow()
        estimate.status = "sent"
        estimate.sent_at = now
        estimate.updated_at = now
        self.repository.update(
            ESTIMATES_TABLE,
            estimate.id,
            {"status": "sent", "sent_at": now.isoformat(), "updated_at": now.isoformat()},
        )
        logger.info(f"Sent estimate {estimate.estimate_number} ({result.message_id})")
        return estimate

    def _by_id(self, estimate_id: str) -> Estimate:
        row = self.repository.get(ESTIMATES_TABLE, estimate_id)
        if row is None:
            raise NotFoundError("Estimate not found")
        return self._hydrate(row)

    def _notify_owner(self, estimate: Estimate, decision: str, comment: str | None) -> None:
        business = self.profiles.get_business_settings(estimate.user_id)
        if not business.business_email:
            return
        rendered = render_estimate_decision_email(estimate, business, decision, comment)
        result = self.email.send(
            EmailMessage(
                to=[business.business_email],
                subject=rendered.subject,
                html=rendered.html,
                from_address=self.settings.email_from_address,
            )
        )
        if not result.success:
            logger.warning(
                f"Could not notify owner about {decision} estimate "
                f"{estimate.estimate_number}: {result.error}"
            )

    def _decide(self, estimate_id: str, decision: str, comment: str | None) -> Estimate:
        estimate = self._by_id(estimate_id)
        if estimate.approval_status in ("approved", "rejected"):
            raise ValidationError(f"Estimate has already been {estimate.approval_status}")
        if estimate.status != "sent":
            raise ValidationError(f"Only sent estimates can be {decision}")

        now = utcnow()
        estimate.status = decision  # type: ignore[assignment]
        estimate.approval_status = decision  # type: ignore[assignment]
        estimate.updated_at = now
        changes: dict = {
            "status": decision,
            "approval_status": decision,
            "updated_at": now.isoformat(),
        }
        if decision == "approved":
            estimate.approved_at = now
            changes["approved_at"] = now.isoformat()
        else:
            estimate.rejected_at = now
            estimate.rejection_reason = comment
            changes["rejected_at"] = now.isoformat()
            changes["rejection_reason"] = comment
        self.repository.update(ESTIMATES_TABLE, estimate.id, changes)
        logger.info(f"Estimate {estimate.estimate_number} {decision}")

        self._notify_owner(estimate, decision, comment)
        return estimate

    def approve(self, estimate_id: str, comment: str | None = None) -> Estimate:
        """Client approval from the public estimate page."""
        return self._decide(estimate_id, "approved", comment)

    def reject(self, estimate_id: str, reason: str | None = None) -> Estimate:
        """Client rejection from the public estimate page."""
        return self._decide(estimate_id, "rejected", reason)

    def convert(self, user_id: str, estimate_id: str) -> ConversionResult:
        """Turn an approved estimate into a draft invoice.

        The invoice copies client, items, totals, payment terms and theme;
        its due date is the estimate expiry date.

        Raises:
            ValidationError: Estimate is not approved
        """
        estimate = self.get(user_id, estimate_id)
        if estimate.status != "approved":
            raise ValidationError("Only approved estimates can be converted to invoices")

        invoice = Invoice(
            user_id=user_id,
            invoice_number=next_document_number(
                self.repository, INVOICES_TABLE, user_id, "invoice_number", INVOICE_PREFIX
            ),
            client_id=estimate.client_id,
            client=estimate.client,
            items=[item.model_copy(update={"id": new_id()}) for item in estimate.items],
            subtotal=estimate.subtotal,
            discount=estimate.discount,
            tax_rate=estimate.tax_rate,
            tax_amount=estimate.tax_amount,
            total=estimate.total,
            currency=estimate.currency,
            status="draft",
            type="detailed",
            issue_date=date.today(),
            due_date=estimate.expiry_date,
            notes=estimate.notes,
            payment_terms=estimate.payment_terms,
            theme=estimate.theme,
        )
        self.repository.insert(INVOICES_TABLE, invoice.to_row())

        now = utcnow()
        estimate.status = "converted"
        estimate.converted_to_invoice_id = invoice.id
        estimate.updated_at = now
        self.repository.update(
            ESTIMATES_TABLE,
            estimate.id,
            {
                "status": "converted",
                "converted_to_invoice_id": invoice.id,
                "updated_at": now.isoformat(),
            },
        )
        logger.info(f"Converted estimate {estimate.estimate_number} to {invoice.invoice_number}")
        return ConversionResult(estimate=estimate, invoice=invoice)

    def expire_overdue(self, today: date | None = None) -> int:
        """Mark sent estimates past their expiry date as expired."""
        today = today or date.today()
        expired = 0
        for row in self.repository.select(ESTIMATES_TABLE, status="sent"):
            estimate = Estimate.model_validate(row)
            if estimate.expiry_date < today:
                self.repository.update(
                    ESTIMATES_TABLE,
                    estimate.id,
                    {"status": "expired", "updated_at": utcnow().isoformat()},
                )
                expired += 1
        if expired:
            logger.info(f"Expired {expired} estimates")
        return expired

    def public_view(self, token: str) -> PublicEstimate:
        rows = self.repository.select(ESTIMATES_TABLE, public_token=token)
        if not rows:
            raise NotFoundError("Estimate not found")
        estimate = self._hydrate(rows[0])
        if estimate.status == "draft":
            raise NotFoundError("Estimate not found")
        return PublicEstimate(
            estimate=estimate,
            business=self.profiles.get_business_settings(estimate.user_id),
        )

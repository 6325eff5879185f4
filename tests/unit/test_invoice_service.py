"""Unit tests for the invoice lifecycle on the in-memory backend."""

from datetime import date, timedelta
from decimal import Decimal
from unittest.mock import patch

import pytest

from invoicing.database.memory import MemoryRepository
from invoicing.domain.requests import (
    ClientCreate,
    InvoiceCreate,
    InvoiceUpdate,
    PaymentCreate,
    WriteOffRequest,
)
from invoicing.domain.schema import (
    Client,
    InvoiceItem,
    LateFeePolicy,
    PaymentTerms,
    ReminderSettings,
    Theme,
)
from invoicing.email.base import EmailResult
from invoicing.email.console_provider import ConsoleEmailProvider
from invoicing.invoices.records import PAYMENTS_TABLE
from invoicing.plans.service import USERS_TABLE
from invoicing.reminders.scheduler import REMINDERS_TABLE
from invoicing.shared.config import Settings
from invoicing.shared.container import ServiceContainer
from invoicing.shared.errors import (
    EmailDeliveryError,
    LimitReachedError,
    NotFoundError,
    ValidationError,
)

TODAY = date.today()


@pytest.fixture
def settings() -> Settings:
    return Settings(_env_file=None)


@pytest.fixture
def repository(settings: Settings) -> MemoryRepository:
    repo = MemoryRepository(settings)
    repo.insert(USERS_TABLE, {"id": "user-1", "subscription_plan": "monthly"})
    return repo


@pytest.fixture
def email(settings: Settings) -> ConsoleEmailProvider:
    return ConsoleEmailProvider(settings)


@pytest.fixture
def services(
    settings: Settings, repository: MemoryRepository, email: ConsoleEmailProvider
) -> ServiceContainer:
    return ServiceContainer(settings, repository=repository, email=email)


@pytest.fixture
def client(services: ServiceContainer) -> Client:
    return services.clients.create(
        "user-1", ClientCreate(name="Acme Corp", email="billing@acme.example")
    )


def invoice_request(client: Client, **overrides) -> InvoiceCreate:  # type: ignore[no-untyped-def]
    data = {
        "client_id": client.id,
        "items": [
            InvoiceItem(description="Design", qty=Decimal("2"), rate=Decimal("200")),
            InvoiceItem(description="Hosting", rate=Decimal("100")),
        ],
        "due_date": TODAY + timedelta(days=30),
        "reminders": ReminderSettings(enabled=True),
        "payment_terms": PaymentTerms(enabled=True, terms="Net 30"),
    }
    data.update(overrides)
    return InvoiceCreate(**data)


class TestCreate:
    def test_create_computes_totals_and_number(
        self, services: ServiceContainer, client: Client
    ) -> None:
        invoice = services.invoices.create(
            "user-1", invoice_request(client, discount=Decimal("50"), tax_rate=Decimal("10"))
        )

        assert invoice.invoice_number == "INV-0001"
        assert invoice.subtotal == Decimal("500.00")
        assert invoice.tax_amount == Decimal("45.00")
        assert invoice.total == Decimal("495.00")
        assert invoice.currency == "USD"
        assert invoice.client is not None and invoice.client.name == "Acme Corp"

        second = services.invoices.create("user-1", invoice_request(client))
        assert second.invoice_number == "INV-0002"

    def test_draft_has_no_reminders(
        self, services: ServiceContainer, repository: MemoryRepository, client: Client
    ) -> None:
        invoice = services.invoices.create("user-1", invoice_request(client))
        assert repository.count(REMINDERS_TABLE, invoice_id=invoice.id) == 0

    def test_pending_invoice_gets_schedule(
        self, services: ServiceContainer, repository: MemoryRepository, client: Client
    ) -> None:
        invoice = services.invoices.create("user-1", invoice_request(client, status="pending"))
        assert repository.count(REMINDERS_TABLE, invoice_id=invoice.id) == 4

    def test_unknown_client(self, services: ServiceContainer, client: Client) -> None:
        with pytest.raises(NotFoundError):
            services.invoices.create(
                "user-1", invoice_request(client, client_id="someone-elses-client")
            )

    def test_unsupported_currency(self, services: ServiceContainer, client: Client) -> None:
        with pytest.raises(ValidationError, match="Unsupported currency"):
            services.invoices.create("user-1", invoice_request(client, currency="XYZ"))

    def test_free_plan_cannot_use_premium_template(
        self, services: ServiceContainer, repository: MemoryRepository, client: Client
    ) -> None:
        repository.update(USERS_TABLE, "user-1", {"subscription_plan": "free"})

        with pytest.raises(LimitReachedError) as exc_info:
            services.invoices.create("user-1", invoice_request(client, theme=Theme(template=5)))
        assert exc_info.value.limit_type == "templates"

    def test_fast_invoice_ignores_template_limit(
        self, services: ServiceContainer, repository: MemoryRepository, client: Client
    ) -> None:
        repository.update(USERS_TABLE, "user-1", {"subscription_plan": "free"})

        invoice = services.invoices.create(
            "user-1", invoice_request(client, type="fast", theme=Theme(template=5))
        )

        assert invoice.type == "fast"


class TestUpdateAndDelete:
    def test_update_recomputes_totals(self, services: ServiceContainer, client: Client) -> None:
        invoice = services.invoices.create("user-1", invoice_request(client))

        updated = services.invoices.update(
            "user-1",
            invoice.id,
            InvoiceUpdate(items=[InvoiceItem(description="Audit", rate=Decimal("80"))]),
        )

        assert updated.total == Decimal("80.00")
        assert services.invoices.get("user-1", invoice.id).total == Decimal("80.00")

    def test_other_user_cannot_read(self, services: ServiceContainer, client: Client) -> None:
        invoice = services.invoices.create("user-1", invoice_request(client))

        with pytest.raises(NotFoundError):
            services.invoices.get("user-2", invoice.id)

    def test_delete_removes_payments_and_reminders(
        self, services: ServiceContainer, repository: MemoryRepository, client: Client
    ) -> None:
        invoice = services.invoices.create("user-1", invoice_request(client, status="pending"))
        services.invoices.add_payment("user-1", invoice.id, PaymentCreate(amount=Decimal("10")))

        services.invoices.delete("user-1", invoice.id)

        assert repository.count(PAYMENTS_TABLE, invoice_id=invoice.id) == 0
        assert repository.count(REMINDERS_TABLE, invoice_id=invoice.id) == 0
        with pytest.raises(NotFoundError):
            services.invoices.get("user-1", invoice.id)

    def test_duplicate_creates_fresh_draft(
        self, services: ServiceContainer, client: Client
    ) -> None:
        source = services.invoices.create("user-1", invoice_request(client, status="pending"))

        copy = services.invoices.duplicate("user-1", source.id)

        assert copy.id != source.id
        assert copy.invoice_number == "INV-0002"
        assert copy.status == "draft"
        assert copy.public_token != source.public_token
        assert copy.total == source.total


class TestSend:
    def test_send_marks_sent_and_emails_client(
        self,
        services: ServiceContainer,
        repository: MemoryRepository,
        email: ConsoleEmailProvider,
        client: Client,
    ) -> None:
        invoice = services.invoices.create("user-1", invoice_request(client))

        sent = services.invoices.send("user-1", invoice.id)

        assert sent.status == "sent"
        assert sent.sent_at is not None
        assert email.outbox[-1].to == ["billing@acme.example"]
        assert email.outbox[-1].subject == "Invoice INV-0001 from Your Business"
        assert f"/invoice/{invoice.public_token}" in email.outbox[-1].html
        assert repository.count(REMINDERS_TABLE, invoice_id=invoice.id) == 4

    def test_send_to_override_address(
        self, services: ServiceContainer, email: ConsoleEmailProvider, client: Client
    ) -> None:
        invoice = services.invoices.create("user-1", invoice_request(client))

        services.invoices.send("user-1", invoice.id, to_email="ap@acme.example")

        assert email.outbox[-1].to == ["ap@acme.example"]

    def test_delivery_failure_keeps_status(
        self, services: ServiceContainer, email: ConsoleEmailProvider, client: Client
    ) -> None:
        invoice = services.invoices.create("user-1", invoice_request(client))
        failure = EmailResult(success=False, error="domain not verified", provider="console")

        with patch.object(email, "send", return_value=failure):
            with pytest.raises(EmailDeliveryError, match="domain not verified"):
                services.invoices.send("user-1", invoice.id)

        assert services.invoices.get("user-1", invoice.id).status == "draft"


class TestPayments:
    def test_partial_then_full_payment(
        self, services: ServiceContainer, repository: MemoryRepository, client: Client
    ) -> None:
        invoice = services.invoices.create("user-1", invoice_request(client, status="pending"))

        first = services.invoices.add_payment(
            "user-1", invoice.id, PaymentCreate(amount=Decimal("200"))
        )
        assert first.summary.remaining_balance == Decimal("300.00")
        assert first.summary.is_partially_paid is True
        assert services.invoices.get("user-1", invoice.id).status == "pending"

        second = services.invoices.add_payment(
            "user-1", invoice.id, PaymentCreate(amount=Decimal("300"))
        )
        assert second.summary.is_fully_paid is True
        assert second.invoice.status == "paid"
        assert repository.count(REMINDERS_TABLE, reminder_status="scheduled") == 0

    def test_overpayment_rejected(self, services: ServiceContainer, client: Client) -> None:
        invoice = services.invoices.create("user-1", invoice_request(client, status="pending"))

        with pytest.raises(ValidationError, match="exceeds invoice total"):
            services.invoices.add_payment(
                "user-1", invoice.id, PaymentCreate(amount=Decimal("500.01"))
            )

    def test_receipt_email(
        self, services: ServiceContainer, email: ConsoleEmailProvider, client: Client
    ) -> None:
        invoice = services.invoices.create("user-1", invoice_request(client, status="pending"))

        result = services.invoices.add_payment(
            "user-1", invoice.id, PaymentCreate(amount=Decimal("100"), send_receipt=True)
        )

        assert result.receipt_sent is True
        assert email.outbox[-1].subject == "Payment received for invoice INV-0001"

    def test_deleting_payment_reopens_invoice(
        self, services: ServiceContainer, client: Client
    ) -> None:
        invoice = services.invoices.create("user-1", invoice_request(client, status="pending"))
        result = services.invoices.add_payment(
            "user-1", invoice.id, PaymentCreate(amount=Decimal("500"))
        )

        summary = services.invoices.delete_payment("user-1", invoice.id, result.payment.id)

        assert summary.remaining_balance == Decimal("500.00")
        assert services.invoices.get("user-1", invoice.id).status == "sent"

    def test_delete_unknown_payment(self, services: ServiceContainer, client: Client) -> None:
        invoice = services.invoices.create("user-1", invoice_request(client))

        with pytest.raises(NotFoundError):
            services.invoices.delete_payment("user-1", invoice.id, "missing")

    def test_list_payments(self, services: ServiceContainer, client: Client) -> None:
        invoice = services.invoices.create("user-1", invoice_request(client, status="pending"))
        services.invoices.add_payment("user-1", invoice.id, PaymentCreate(amount=Decimal("50")))

        payments, summary = services.invoices.list_payments("user-1", invoice.id)

        assert [p.amount for p in payments] == [Decimal("50")]
        assert summary.total_paid == Decimal("50.00")


class TestWriteOffAndMarkPaid:
    def test_write_off_with_late_fee(self, services: ServiceContainer, client: Client) -> None:
        invoice = services.invoices.create(
            "user-1",
            invoice_request(
                client,
                status="pending",
                due_date=TODAY - timedelta(days=10),
                late_fees=LateFeePolicy(
                    enabled=True, type="fixed", amount=Decimal("25"), grace_period=0
                ),
            ),
        )

        closed = services.invoices.write_off(
            "user-1", invoice.id, WriteOffRequest(amount=Decimal("525"), notes="Client closed")
        )

        assert closed.status == "paid"
        assert closed.write_off_amount == Decimal("525.00")

    def test_write_off_above_owed(self, services: ServiceContainer, client: Client) -> None:
        invoice = services.invoices.create("user-1", invoice_request(client, status="pending"))

        with pytest.raises(ValidationError):
            services.invoices.write_off(
                "user-1", invoice.id, WriteOffRequest(amount=Decimal("600"))
            )

    def test_bulk_mark_paid_skips_unknown(
        self, services: ServiceContainer, client: Client
    ) -> None:
        a = services.invoices.create("user-1", invoice_request(client, status="pending"))
        b = services.invoices.create("user-1", invoice_request(client, status="pending"))

        updated = services.invoices.bulk_mark_paid("user-1", [a.id, "nope", b.id, a.id])

        assert [i.id for i in updated] == [a.id, b.id]
        assert all(i.status == "paid" for i in updated)


class TestPublicViewAndDocuments:
    def test_public_view_hides_drafts(self, services: ServiceContainer, client: Client) -> None:
        invoice = services.invoices.create("user-1", invoice_request(client))

        with pytest.raises(NotFoundError):
            services.invoices.public_view(invoice.public_token)

        services.invoices.send("user-1", invoice.id)
        public = services.invoices.public_view(invoice.public_token)

        assert public.invoice.id == invoice.id
        assert public.charges.total_payable == Decimal("500.00")

    def test_render_pdf(self, services: ServiceContainer, client: Client) -> None:
        invoice = services.invoices.create("user-1", invoice_request(client))

        with patch("invoicing.invoices.service.render_pdf", return_value=b"%PDF") as mock_pdf:
            assert services.invoices.render_pdf("user-1", invoice.id) == b"%PDF"

        assert "INV-0001" in mock_pdf.call_args.args[0]


class TestListing:
    def test_list_filters_and_paginates(self, services: ServiceContainer, client: Client) -> None:
        for _ in range(3):
            services.invoices.create("user-1", invoice_request(client, status="pending"))
        services.invoices.create("user-1", invoice_request(client))

        page = services.invoices.list_invoices("user-1", status_filter="draft")
        assert page.total_items == 1

        page = services.invoices.list_invoices("user-1", page=2, per_page=2)
        assert page.total_items == 4
        assert len(page.items) == 2
        assert page.has_prev is True

    def test_dashboard_stats(self, services: ServiceContainer, client: Client) -> None:
        invoice = services.invoices.create("user-1", invoice_request(client, status="pending"))
        services.invoices.add_payment("user-1", invoice.id, PaymentCreate(amount=Decimal("100")))

        stats = services.invoices.dashboard_stats("user-1")

        assert stats.total_revenue == Decimal("100.00")
        assert stats.outstanding_amount == Decimal("400.00")
        assert stats.total_clients == 1

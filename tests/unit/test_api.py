"""Unit tests for the invoicing API.

Tests cover:
- Health, readiness and metrics endpoints
- Authentication and error responses
- Invoice, estimate, client, reminder and account routes
- Queued delivery through the arq pool
"""

import json
from collections.abc import Iterator
from datetime import date, timedelta
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi import status
from fastapi.concurrency import run_in_threadpool
from fastapi.testclient import TestClient

from invoicing.api import main as api_main
from invoicing.api.dependencies import get_services
from invoicing.api.main import app
from invoicing.auth.service import AuthUser, get_current_user
from invoicing.database.memory import MemoryRepository
from invoicing.email.console_provider import ConsoleEmailProvider
from invoicing.plans.service import USERS_TABLE
from invoicing.shared.config import Settings
from invoicing.shared.container import ServiceContainer
from invoicing.storage.service import StorageService

DUE = (date.today() + timedelta(days=30)).isoformat()


def build_container(plan: str = "monthly", **settings_overrides) -> ServiceContainer:  # type: ignore[no-untyped-def]
    settings = Settings(_env_file=None, **settings_overrides)
    repository = MemoryRepository(settings)
    repository.insert(USERS_TABLE, {"id": "user-1", "subscription_plan": plan})
    return ServiceContainer(settings, repository=repository, email=ConsoleEmailProvider(settings))


@pytest.fixture
def container() -> ServiceContainer:
    return build_container()


@pytest.fixture
def client(container: ServiceContainer) -> Iterator[TestClient]:
    """Create test client signed in as user-1."""
    app.dependency_overrides[get_services] = lambda: container
    app.dependency_overrides[get_current_user] = lambda: AuthUser(
        id="user-1", email="owner@pixel.example"
    )
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def anonymous_client(container: ServiceContainer) -> Iterator[TestClient]:
    """Create test client without a signed-in user."""
    app.dependency_overrides[get_services] = lambda: container
    yield TestClient(app)
    app.dependency_overrides.clear()


def create_client_record(client: TestClient, email: str = "billing@acme.example") -> str:
    response = client.post("/api/clients", json={"name": "Acme Corp", "email": email})
    assert response.status_code == status.HTTP_201_CREATED
    return response.json()["id"]


def create_invoice(client: TestClient, client_id: str, **overrides) -> dict:  # type: ignore[no-untyped-def]
    body = {
        "client_id": client_id,
        "items": [
            {"description": "Design", "qty": "2", "rate": "200"},
            {"description": "Hosting", "rate": "100"},
        ],
        "due_date": DUE,
    }
    body.update(overrides)
    response = client.post("/api/invoices", json=body)
    assert response.status_code == status.HTTP_201_CREATED, response.text
    return response.json()


class TestHealth:
    def test_health_check(self, client: TestClient) -> None:
        response = client.get("/health")

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["status"] == "healthy"
        assert "version" in data
        assert "service" in data

    def test_readiness_check(self, client: TestClient) -> None:
        response = client.get("/ready")

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["ready"] is True
        assert data["database"] is True
        assert data["storage"] is False

    def test_metrics_endpoint(self, client: TestClient) -> None:
        client.get("/health")

        response = client.get("/metrics")

        assert response.status_code == status.HTTP_200_OK
        content_type = response.headers["content-type"]
        assert "openmetrics-text" in content_type or "text/plain" in content_type
        assert "http_requests_total" in response.text


class TestAuthAndErrors:
    def test_missing_token_is_401(self, anonymous_client: TestClient) -> None:
        response = anonymous_client.get("/api/invoices")

        assert response.status_code == status.HTTP_401_UNAUTHORIZED
        assert response.json() == {"detail": "Missing bearer token"}
        assert response.headers["www-authenticate"] == "Bearer"

    def test_unknown_invoice_is_404(self, client: TestClient) -> None:
        response = client.get("/api/invoices/missing")

        assert response.status_code == status.HTTP_404_NOT_FOUND
        assert response.json()["detail"] == "Invoice not found"

    def test_plan_limit_is_403_with_upgrade_hint(self) -> None:
        container = build_container(plan="free")
        app.dependency_overrides[get_services] = lambda: container
        app.dependency_overrides[get_current_user] = lambda: AuthUser(id="user-1")
        try:
            client = TestClient(app)
            create_client_record(client)
            response = client.post(
                "/api/clients", json={"name": "Second", "email": "two@example.com"}
            )
        finally:
            app.dependency_overrides.clear()

        assert response.status_code == status.HTTP_403_FORBIDDEN
        data = response.json()
        assert data["limit_reached"] is True
        assert data["limit_type"] == "clients"

    def test_invalid_body_is_422(self, client: TestClient) -> None:
        response = client.post("/api/invoices", json={"items": []})
        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY


class TestInvoiceRoutes:
    def test_create_list_and_get(self, client: TestClient) -> None:
        client_id = create_client_record(client)
        created = create_invoice(client, client_id)

        assert created["invoice_number"] == "INV-0001"
        assert created["total"] == "500.00"

        listing = client.get("/api/invoices", params={"status": "draft"}).json()
        assert listing["total_items"] == 1
        assert listing["items"][0]["invoice"]["id"] == created["id"]

        detail = client.get(f"/api/invoices/{created['id']}").json()
        assert detail["display_status"] == "draft"
        assert detail["charges"]["total_payable"] == "500.00"

    def test_send_inline(self, client: TestClient, container: ServiceContainer) -> None:
        invoice = create_invoice(client, create_client_record(client))

        response = client.post("/api/invoices/send", json={"invoice_id": invoice["id"]})

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["success"] is True
        assert data["status"] == "sent"
        assert data["job_id"] is None
        assert container.email.outbox[-1].to == ["billing@acme.example"]  # type: ignore[attr-defined]

    def test_send_inline_runs_in_threadpool(self, client: TestClient) -> None:
        invoice = create_invoice(client, create_client_record(client))
        pooled = AsyncMock(wraps=run_in_threadpool)

        with patch("invoicing.api.routes.invoices.run_in_threadpool", pooled):
            response = client.post("/api/invoices/send", json={"invoice_id": invoice["id"]})

        assert response.json()["status"] == "sent"
        pooled.assert_awaited_once()
        assert pooled.await_args.args[1:] == ("user-1", invoice["id"], None)

    def test_public_link_without_sign_in(
        self, client: TestClient, anonymous_client: TestClient
    ) -> None:
        invoice = create_invoice(client, create_client_record(client), status="pending")

        response = anonymous_client.get(f"/api/invoices/public/{invoice['public_token']}")

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["invoice"]["invoice_number"] == "INV-0001"

    def test_payments(self, client: TestClient) -> None:
        invoice = create_invoice(client, create_client_record(client), status="pending")
        url = f"/api/invoices/{invoice['id']}/payments"

        first = client.post(url, json={"amount": "200"})
        assert first.status_code == status.HTTP_201_CREATED
        assert first.json()["summary"]["remaining_balance"] == "300.00"

        too_much = client.post(url, json={"amount": "400"})
        assert too_much.status_code == status.HTTP_400_BAD_REQUEST
        assert "Maximum payment allowed: $300.00" in too_much.json()["detail"]

        listing = client.get(url).json()
        assert listing["summary"]["total_paid"] == "200.00"

        payment_id = first.json()["payment"]["id"]
        removed = client.delete(url, params={"payment_id": payment_id})
        assert removed.json()["remaining_balance"] == "500.00"

    def test_write_off_and_mark_paid(self, client: TestClient) -> None:
        client_id = create_client_record(client)
        a = create_invoice(client, client_id, status="pending")
        b = create_invoice(client, client_id, status="pending")

        written_off = client.post(f"/api/invoices/{a['id']}/writeoff", json={"amount": "500"})
        paid = client.post(f"/api/invoices/{b['id']}/mark-paid")

        assert written_off.json()["status"] == "paid"
        assert written_off.json()["write_off_amount"] == "500.00"
        assert paid.json()["status"] == "paid"

    def test_zero_write_off_keeps_invoice_open(self, client: TestClient) -> None:
        invoice = create_invoice(client, create_client_record(client), status="pending")

        response = client.post(f"/api/invoices/{invoice['id']}/writeoff", json={"amount": "0"})

        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY
        detail = client.get(f"/api/invoices/{invoice['id']}").json()
        assert detail["invoice"]["status"] == "pending"
        stats = client.get("/api/dashboard/stats").json()
        assert stats["total_revenue"] == "0.00"

    def test_bulk_mark_paid_and_duplicate(self, client: TestClient) -> None:
        invoice = create_invoice(client, create_client_record(client), status="pending")

        bulk = client.post(
            "/api/invoices/bulk/mark-paid", json={"invoice_ids": [invoice["id"], "unknown"]}
        )
        copy = client.post("/api/invoices/duplicate", json={"invoice_id": invoice["id"]})

        assert bulk.json() == {"updated": [invoice["id"]], "count": 1}
        assert copy.status_code == status.HTTP_201_CREATED
        assert copy.json()["status"] == "draft"

    def test_update_and_delete(self, client: TestClient) -> None:
        invoice = create_invoice(client, create_client_record(client))

        updated = client.put(f"/api/invoices/{invoice['id']}", json={"notes": "Thanks!"})
        deleted = client.delete(f"/api/invoices/{invoice['id']}")

        assert updated.json()["notes"] == "Thanks!"
        assert deleted.json() == {"success": True, "id": invoice["id"]}
        assert client.get(f"/api/invoices/{invoice['id']}").status_code == 404

    def test_pdf_download(self, client: TestClient) -> None:
        invoice = create_invoice(client, create_client_record(client))

        with patch("invoicing.invoices.service.render_pdf", return_value=b"%PDF-1.4"):
            response = client.get(f"/api/invoices/{invoice['id']}/pdf")

        assert response.status_code == status.HTTP_200_OK
        assert response.content == b"%PDF-1.4"
        assert response.headers["content-type"] == "application/pdf"
        assert 'filename="INV-0001.pdf"' in response.headers["content-disposition"]

    def test_preview(self, client: TestClient) -> None:
        invoice = create_invoice(client, create_client_record(client))

        response = client.get(f"/api/invoices/{invoice['id']}/preview")

        assert response.headers["content-type"].startswith("text/html")
        assert "INV-0001" in response.text


class TestQueuedDelivery:
    @pytest.fixture
    def queued(self) -> Iterator[TestClient]:
        container = build_container(queue_enabled=True)
        app.dependency_overrides[get_services] = lambda: container
        app.dependency_overrides[get_current_user] = lambda: AuthUser(id="user-1")
        yield TestClient(app)
        app.dependency_overrides.clear()

    def test_send_invoice_enqueues_job(self, queued: TestClient) -> None:
        invoice = create_invoice(queued, create_client_record(queued))
        pool = AsyncMock()

        with patch("invoicing.api.routes.invoices.get_arq_pool", return_value=pool):
            response = queued.post("/api/invoices/send", json={"invoice_id": invoice["id"]})

        data = response.json()
        assert data["status"] == "queued"
        assert data["job_id"]
        pool.enqueue_job.assert_awaited_once_with(
            "send_invoice_job", "user-1", invoice["id"], None, _job_id=data["job_id"]
        )

    def test_send_reminder_enqueues_job(self, queued: TestClient) -> None:
        invoice = create_invoice(queued, create_client_record(queued), status="pending")
        pool = AsyncMock()

        with patch("invoicing.api.routes.reminders.get_arq_pool", return_value=pool):
            response = queued.post(
                "/api/reminders/send",
                json={"invoice_id": invoice["id"], "reminder_type": "firm"},
            )

        data = response.json()
        assert data["status"] == "queued"
        pool.enqueue_job.assert_awaited_once_with(
            "send_reminder_job", "user-1", invoice["id"], "firm", None, _job_id=data["job_id"]
        )

    def test_queued_send_checks_ownership(self, queued: TestClient) -> None:
        pool = AsyncMock()

        with patch("invoicing.api.routes.invoices.get_arq_pool", return_value=pool):
            response = queued.post("/api/invoices/send", json={"invoice_id": "missing"})

        assert response.status_code == status.HTTP_404_NOT_FOUND
        pool.enqueue_job.assert_not_awaited()

    def test_job_status(self, queued: TestClient) -> None:
        pool = AsyncMock()
        pool.get.return_value = json.dumps(
            {"job_id": "job-1", "status": "completed", "user_id": "user-1"}
        )

        with (
            patch.object(api_main, "settings", Settings(_env_file=None, queue_enabled=True)),
            patch("invoicing.api.main.get_arq_pool", return_value=pool),
        ):
            response = queued.get("/api/jobs/job-1")

        assert response.json()["status"] == "completed"
        pool.get.assert_awaited_once_with("job:job-1")

    def test_job_status_of_other_user_is_404(self, queued: TestClient) -> None:
        pool = AsyncMock()
        pool.get.return_value = json.dumps(
            {"job_id": "job-3", "status": "completed", "user_id": "user-2", "error": None}
        )

        with (
            patch.object(api_main, "settings", Settings(_env_file=None, queue_enabled=True)),
            patch("invoicing.api.main.get_arq_pool", return_value=pool),
        ):
            response = queued.get("/api/jobs/job-3")

        assert response.status_code == status.HTTP_404_NOT_FOUND
        assert response.json() == {"detail": "Job not found"}

    def test_job_status_pending(self, queued: TestClient) -> None:
        pool = AsyncMock()
        pool.get.return_value = None

        with (
            patch.object(api_main, "settings", Settings(_env_file=None, queue_enabled=True)),
            patch("invoicing.api.main.get_arq_pool", return_value=pool),
        ):
            response = queued.get("/api/jobs/job-2")

        assert response.json() == {"job_id": "job-2", "status": "pending", "result": None}

    def test_job_status_when_queue_disabled(self, client: TestClient) -> None:
        with patch.object(api_main, "settings", Settings(_env_file=None)):
            response = client.get("/api/jobs/job-1")

        assert response.status_code == status.HTTP_503_SERVICE_UNAVAILABLE


class TestEstimateRoutes:
    def test_estimate_flow(self, client: TestClient, anonymous_client: TestClient) -> None:
        client_id = create_client_record(client)
        created = client.post(
            "/api/estimates",
            json={
                "client_id": client_id,
                "items": [{"description": "Redesign", "rate": "900"}],
                "expiry_date": DUE,
            },
        )
        estimate_id = created.json()["id"]

        sent = client.post("/api/estimates/send", json={"estimate_id": estimate_id})
        approved = anonymous_client.post(
            f"/api/estimates/{estimate_id}/approve", json={"comment": "Go ahead"}
        )
        converted = client.post(f"/api/estimates/{estimate_id}/convert")

        assert created.status_code == status.HTTP_201_CREATED
        assert sent.json()["status"] == "sent"
        assert approved.json()["status"] == "approved"
        assert converted.json()["invoice"]["total"] == "900.00"
        assert converted.json()["estimate"]["status"] == "converted"

    def test_reject_without_body(self, client: TestClient) -> None:
        client_id = create_client_record(client)
        estimate_id = client.post(
            "/api/estimates",
            json={
                "client_id": client_id,
                "items": [{"description": "Redesign", "rate": "900"}],
                "expiry_date": DUE,
            },
        ).json()["id"]
        client.post("/api/estimates/send", json={"estimate_id": estimate_id})

        response = client.post(f"/api/estimates/{estimate_id}/reject")

        assert response.json()["status"] == "rejected"


class TestReminderRoutes:
    def test_send_now_and_history(self, client: TestClient) -> None:
        invoice = create_invoice(client, create_client_record(client), status="pending")

        sent = client.post(
            "/api/reminders/send", json={"invoice_id": invoice["id"], "reminder_type": "polite"}
        )
        history = client.get("/api/reminders").json()

        assert sent.json()["success"] is True
        assert sent.json()["reminder"]["reminder_type"] == "polite"
        assert [h["reminder_status"] for h in history] == ["sent"]
        assert client.get("/api/reminders", params={"q": "nomatch"}).json() == []


    def test_send_now_runs_in_threadpool(self, client: TestClient) -> None:
        invoice = create_invoice(client, create_client_record(client), status="pending")
        pooled = AsyncMock(wraps=run_in_threadpool)

        with patch("invoicing.api.routes.reminders.run_in_threadpool", pooled):
            sent = client.post(
                "/api/reminders/send", json={"invoice_id": invoice["id"], "reminder_type": "firm"}
            )

        assert sent.json()["success"] is True
        pooled.assert_awaited_once()
        assert pooled.await_args.args[1:] == ("user-1", invoice["id"], "firm", None)


class TestAccountRoutes:
    def test_business_settings(self, client: TestClient) -> None:
        assert client.get("/api/settings").json()["business_name"] == ""

        response = client.put("/api/settings", json={"business_name": "Pixel Studio"})

        assert response.json()["business_name"] == "Pixel Studio"
        assert client.get("/api/settings").json()["business_name"] == "Pixel Studio"

    def test_usage_and_dashboard(self, client: TestClient) -> None:
        create_invoice(client, create_client_record(client), status="pending")

        usage = client.get("/api/subscription/usage").json()
        stats = client.get("/api/dashboard/stats").json()

        assert usage["plan"] == "monthly"
        assert usage["clients"]["used"] == 1
        assert stats["outstanding_amount"] == "500.00"

    def test_upload_logo_storage_disabled(self, client: TestClient) -> None:
        response = client.post(
            "/api/upload-logo", files={"file": ("logo.png", b"\x89PNG data", "image/png")}
        )
        assert response.status_code == status.HTTP_503_SERVICE_UNAVAILABLE

    def test_upload_logo(self) -> None:
        settings = Settings(
            _env_file=None,
            storage_enabled=True,
            storage_access_key="key",
            storage_secret_key="secret",
            storage_bucket="logos",
        )
        repository = MemoryRepository(settings)
        storage = StorageService(settings)
        container = ServiceContainer(
            settings, repository=repository, email=ConsoleEmailProvider(settings), storage=storage
        )
        minio = MagicMock()
        minio.bucket_exists.return_value = True
        pooled = AsyncMock(wraps=run_in_threadpool)
        app.dependency_overrides[get_services] = lambda: container
        app.dependency_overrides[get_current_user] = lambda: AuthUser(id="user-1")
        try:
            with (
                patch.object(storage, "_get_client", return_value=minio),
                patch("invoicing.api.routes.account.run_in_threadpool", pooled),
            ):
                client = TestClient(app)
                bad = client.post(
                    "/api/upload-logo", files={"file": ("notes.txt", b"hello", "text/plain")}
                )
                good = client.post(
                    "/api/upload-logo", files={"file": ("logo.png", b"\x89PNG data", "image/png")}
                )
        finally:
            app.dependency_overrides.clear()

        assert bad.status_code == status.HTTP_400_BAD_REQUEST
        assert good.status_code == status.HTTP_200_OK
        url = good.json()["url"]
        assert url.startswith("http://localhost:9000/logos/logos/user-1/")
        assert container.profiles.get_business_settings("user-1").logo == url
        pooled.assert_awaited_once()
        minio.put_object.assert_called_once()

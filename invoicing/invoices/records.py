"""Loading invoice rows together with their client and payments."""

from collections import defaultdict
from collections.abc import Sequence

from invoicing.database.base import Repository, Row
from invoicing.domain.schema import Client, Invoice, Payment

INVOICES_TABLE = "invoices"
PAYMENTS_TABLE = "invoice_payments"
CLIENTS_TABLE = "clients"


def _clients_by_id(repository: Repository, client_ids: set[str]) -> dict[str, Client]:
    if not client_ids:
        return {}
    rows = repository.select(CLIENTS_TABLE, id=sorted(client_ids))
    return {row["id"]: Client.model_validate(row) for row in rows}


def hydrate_invoices(repository: Repository, rows: Sequence[Row]) -> list[Invoice]:
    """Build Invoice models from rows, joining their clients in one query."""
    clients = _clients_by_id(repository, {r["client_id"] for r in rows if r.get("client_id")})
    invoices = []
    for row in rows:
        invoice = Invoice.model_validate(row)
        if invoice.client_id:
            invoice.client = clients.get(invoice.client_id)
        invoices.append(invoice)
    return invoices


def load_invoice(
    repository: Repository, invoice_id: str, user_id: str | None = None
) -> Invoice | None:
    filters = {"id": invoice_id}
    if user_id is not None:
        filters["user_id"] = user_id
    rows = repository.select(INVOICES_TABLE, **filters)
    if not rows:
        return None
    return hydrate_invoices(repository, rows)[0]


def load_payments(repository: Repository, invoice_id: str) -> list[Payment]:
    rows = repository.select(PAYMENTS_TABLE, invoice_id=invoice_id, order_by="payment_date")
    return [Payment.model_validate(r) for r in rows]


def payments_by_invoice(
    repository: Repository, invoice_ids: Sequence[str]
) -> dict[str, list[Payment]]:
    grouped: dict[str, list[Payment]] = defaultdict(list)
    if not invoice_ids:
        return grouped
    for row in repository.select(PAYMENTS_TABLE, invoice_id=list(invoice_ids)):
        payment = Payment.model_validate(row)
        grouped[payment.invoice_id].append(payment)
    return grouped


def next_document_number(
    repository: Repository, table: str, user_id: str, field: str, prefix: str
) -> str:
    """Next sequential number for a user, e.g. ``INV-0007``.

    Numbers that do not follow the ``PREFIX-NNNN`` pattern are ignored.
    """
    highest = 0
    for row in repository.select(table, user_id=user_id):
        number = str(row.get(field) or "")
        head, _, tail = number.partition("-")
        if head == prefix and tail.isdigit():
            highest = max(highest, int(tail))
    return f"{prefix}-{highest + 1:04d}"

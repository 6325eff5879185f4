"""Search, filter, sort and pagination over already-fetched collections."""

import math
from collections.abc import Callable, Iterable, Mapping, Sequence
from datetime import date
from decimal import Decimal
from typing import Generic, TypeVar

from pydantic import BaseModel

from invoicing.billing.charges import ZERO, summarize_payments
from invoicing.domain.currency import to_money
from invoicing.domain.schema import Client, Estimate, Invoice, Payment

T = TypeVar("T")

OPEN_STATUSES = ("pending", "sent", "overdue")

INVOICE_STATUS_FILTERS = (
    "overdue",
    "dueToday",
    "partial",
    "writeoff",
    "paid",
    "pending",
    "draft",
)

INVOICE_SORT_KEYS = (
    "amount",
    "amountDesc",
    "date",
    "dateDesc",
    "dueDate",
    "dueDateDesc",
    "daysOverdue",
    "client",
)


class Page(BaseModel, Generic[T]):
    items: list[T]
    page: int
    per_page: int
    total_items: int
    total_pages: int
    has_next: bool
    has_prev: bool


def _matches(query: str, *values: object) -> bool:
    q = query.strip().lower()
    return any(q in str(v or "").lower() for v in values)


def _dedupe(items: Iterable[T], key: Callable[[T], str]) -> list[T]:
    seen: set[str] = set()
    unique = []
    for item in items:
        k = key(item)
        if k in seen:
            continue
        seen.add(k)
        unique.append(item)
    return unique


def filter_invoices(
    invoices: Iterable[Invoice],
    query: str | None = None,
    status_filter: str | None = None,
    partial_ids: set[str] | None = None,
    today: date | None = None,
) -> list[Invoice]:
    """Filter invoices by search text and status bucket.

    Args:
        invoices: Invoices to filter
        query: Case-insensitive text matched against client name, invoice
            number, invoice type and total
        status_filter: One of INVOICE_STATUS_FILTERS (``write-off`` is
            accepted as an alias of ``writeoff``); anything else keeps all
        partial_ids: Ids of invoices that have partial payments
        today: Reference date for overdue / due-today buckets

    Returns:
        Matching invoices, de-duplicated by id, in input order
    """
    today = today or date.today()
    partial_ids = partial_ids or set()
    result = list(invoices)

    if query and query.strip():
        result = [
            inv
            for inv in result
            if _matches(
                query,
                inv.client.name if inv.client else "",
                inv.invoice_number,
                inv.type,
                inv.total,
            )
        ]

    if status_filter == "overdue":
        result = [i for i in result if i.status in OPEN_STATUSES and i.due_date < today]
    elif status_filter == "dueToday":
        result = [i for i in result if i.status in OPEN_STATUSES and i.due_date == today]
    elif status_filter == "partial":
        result = [i for i in result if i.status in OPEN_STATUSES and i.id in partial_ids]
    elif status_filter in ("writeoff", "write-off"):
        result = [i for i in result if i.write_off_amount > 0]
    elif status_filter == "paid":
        result = [i for i in result if i.status == "paid" or i.id in partial_ids]
    elif status_filter == "pending":
        result = [i for i in result if i.status in OPEN_STATUSES]
    elif status_filter == "draft":
        result = [i for i in result if i.status == "draft"]

    return _dedupe(result, key=lambda i: i.id)


def sort_invoices(
    invoices: Sequence[Invoice],
    sort_by: str | None = None,
    today: date | None = None,
    remaining: Mapping[str, Decimal] | None = None,
) -> list[Invoice]:
    """Sort invoices by one of INVOICE_SORT_KEYS.

    ``amount`` is high to low and ``amountDesc`` low to high, matching the
    dashboard labels. When ``remaining`` balances are given the amount sorts
    use them instead of the invoice total. Unknown keys keep input order.
    """
    today = today or date.today()
    remaining = remaining or {}
    items = list(invoices)

    def amount(inv: Invoice) -> Decimal:
        return remaining.get(inv.id, inv.total)

    if sort_by == "amount":
        return sorted(items, key=amount, reverse=True)
    if sort_by == "amountDesc":
        return sorted(items, key=amount)
    if sort_by == "date":
        return sorted(items, key=lambda i: i.created_at, reverse=True)
    if sort_by == "dateDesc":
        return sorted(items, key=lambda i: i.created_at)
    if sort_by == "dueDate":
        return sorted(items, key=lambda i: i.due_date)
    if sort_by == "dueDateDesc":
        return sorted(items, key=lambda i: i.due_date, reverse=True)
    if sort_by == "daysOverdue":
        return sorted(items, key=lambda i: (today - i.due_date).days, reverse=True)
    if sort_by == "client":
        return sorted(items, key=lambda i: (i.client.name if i.client else "").lower())
    return items


def paginate(items: Sequence[T], page: int = 1, per_page: int = 10) -> Page[T]:
    per_page = max(1, per_page)
    total_pages = max(1, math.ceil(len(items) / per_page))
    page = min(max(1, page), total_pages)
    start = (page - 1) * per_page
    return Page(
        items=list(items[start : start + per_page]),
        page=page,
        per_page=per_page,
        total_items=len(items),
        total_pages=total_pages,
        has_next=page < total_pages,
        has_prev=page > 1,
    )


def filter_estimates(
    estimates: Iterable[Estimate],
    query: str | None = None,
    status: str | None = None,
) -> list[Estimate]:
    result = list(estimates)
    if query and query.strip():
        result = [
            e
            for e in result
            if _matches(query, e.client.name if e.client else "", e.estimate_number, e.total)
        ]
    if status:
        result = [e for e in result if e.status == status]
    return _dedupe(result, key=lambda e: e.id)


def filter_clients(clients: Iterable[Client], query: str | None = None) -> list[Client]:
    result = list(clients)
    if query and query.strip():
        result = [c for c in result if _matches(query, c.name, c.email, c.company)]
    return sorted(result, key=lambda c: c.name.lower())


class DashboardStats(BaseModel):
    total_revenue: Decimal
    outstanding_amount: Decimal
    overdue_count: int
    total_clients: int
    draft_count: int


def dashboard_stats(
    invoices: Sequence[Invoice],
    payments_by_invoice: Mapping[str, Sequence[Payment]],
    total_clients: int,
    today: date | None = None,
) -> DashboardStats:
    """Aggregate headline numbers for the dashboard.

    Revenue counts paid invoices in full plus partial payments on open
    invoices; outstanding is the remaining balance of open invoices.
    """
    today = today or date.today()
    revenue = ZERO
    outstanding = ZERO
    overdue = 0
    drafts = 0
    for inv in invoices:
        payments = payments_by_invoice.get(inv.id, ())
        if inv.status == "paid":
            revenue += to_money(inv.total) - to_money(inv.write_off_amount)
            continue
        if inv.status == "draft":
            drafts += 1
            continue
        summary = summarize_payments(inv.total, payments)
        revenue += summary.total_paid
        outstanding += summary.remaining_balance
        if inv.due_date < today:
            overdue += 1

    return DashboardStats(
        total_revenue=to_money(revenue),
        outstanding_amount=to_money(outstanding),
        overdue_count=overdue,
        total_clients=total_clients,
        draft_count=drafts,
    )

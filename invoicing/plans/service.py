"""Subscription plan limits.

Plans:
- free: 5 non-draft invoices per calendar month, 1 client, 1 estimate,
  4 sent reminders per invoice, template 1 only
- pay_per_invoice: unlimited invoices, 1 client, 1 estimate
- monthly: unlimited
"""

import logging
from datetime import datetime
from typing import Literal

from pydantic import BaseModel

from invoicing.database.base import Repository
from invoicing.domain.schema import SubscriptionPlan, UserProfile, utcnow
from invoicing.shared.config import Settings

logger = logging.getLogger(__name__)

USERS_TABLE = "users"
FREE_TEMPLATE_ID = 1
TEMPLATE_COUNT = 4

LimitType = Literal["invoices", "clients", "estimates", "reminders", "templates"]


class LimitCheck(BaseModel):
    """Outcome of a plan limit check.

    Attributes:
        allowed: Whether the action may proceed
        reason: Upgrade message shown when the action is blocked
        limit_type: Which limit was hit
    """

    allowed: bool
    reason: str | None = None
    limit_type: LimitType | None = None


class UsageItem(BaseModel):
    limit: int | None
    used: int


class Usage(BaseModel):
    plan: SubscriptionPlan
    invoices: UsageItem
    clients: UsageItem
    estimates: UsageItem
    reminders: UsageItem
    templates_enabled: int
    templates_total: int = TEMPLATE_COUNT


def _parse_timestamp(value: object) -> datetime | None:
    if isinstance(value, datetime):
        return value
    if isinstance(value, str) and value:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    return None


class PlanService:
    """Checks actions against the limits of the user's subscription plan."""

    def __init__(self, repository: Repository, settings: Settings) -> None:
        self.repository = repository
        self.settings = settings

    def get_profile(self, user_id: str) -> UserProfile:
        row = self.repository.get(USERS_TABLE, user_id)
        if row is None:
            return UserProfile(id=user_id)
        return UserProfile.model_validate(row)

    def get_plan(self, user_id: str) -> SubscriptionPlan:
        return self.get_profile(user_id).subscription_plan

    def monthly_invoice_count(self, user_id: str, now: datetime | None = None) -> int:
        """Non-draft invoices created in the current calendar month."""
        now = now or utcnow()
        count = 0
        for row in self.repository.select("invoices", user_id=user_id):
            if row.get("status") == "draft":
                continue
            created = _parse_timestamp(row.get("created_at"))
            if created and (created.year, created.month) == (now.year, now.month):
                count += 1
        return count

    def can_create_invoice(self, user_id: str, now: datetime | None = None) -> LimitCheck:
        if self.get_plan(user_id) != "free":
            return LimitCheck(allowed=True)

        limit = self.settings.free_plan_invoice_limit
        if self.monthly_invoice_count(user_id, now) >= limit:
            return LimitCheck(
                allowed=False,
                reason=(
                    f"Free plan limit reached. You can create up to {limit} invoices per month. "
                    "Please upgrade to create more invoices."
                ),
                limit_type="invoices",
            )
        return LimitCheck(allowed=True)

    def _single_record_limit(
        self, user_id: str, table: str, limit: int, noun: str, limit_type: LimitType
    ) -> LimitCheck:
        plan = self.get_plan(user_id)
        if plan == "monthly":
            return LimitCheck(allowed=True)

        if self.repository.count(table, user_id=user_id) >= limit:
            plural = noun if limit == 1 else f"{noun}s"
            if plan == "pay_per_invoice":
                reason = (
                    f"Pay Per Invoice plan limit reached. You can create up to {limit} {plural}. "
                    f"Please upgrade to Monthly plan to create unlimited {noun}s."
                )
            else:
                reason = (
                    f"Free plan limit reached. You can create up to {limit} {plural}. "
                    f"Please upgrade to create more {noun}s."
                )
            return LimitCheck(allowed=False, reason=reason, limit_type=limit_type)
        return LimitCheck(allowed=True)

    def can_create_client(self, user_id: str) -> LimitCheck:
        return self._single_record_limit(
            user_id, "clients", self.settings.free_plan_client_limit, "client", "clients"
        )

    def can_create_estimate(self, user_id: str) -> LimitCheck:
        return self._single_record_limit(
            user_id, "estimates", self.settings.free_plan_estimate_limit, "estimate", "estimates"
        )

    def can_send_reminder(self, user_id: str, sent_for_invoice: int) -> LimitCheck:
        """Check the per-invoice reminder allowance.

        Args:
            user_id: Invoice owner
            sent_for_invoice: Reminders already sent for the invoice
        """
        if self.get_plan(user_id) != "free":
            return LimitCheck(allowed=True)

        limit = self.settings.free_plan_reminders_per_invoice
        if sent_for_invoice >= limit:
            return LimitCheck(
                allowed=False,
                reason=(
                    f"Free plan limit reached. You can send up to {limit} reminders per invoice. "
                    "Please upgrade for unlimited reminders."
                ),
                limit_type="reminders",
            )
        return LimitCheck(allowed=True)

    def can_use_template(self, user_id: str, template_id: int) -> LimitCheck:
        if template_id == FREE_TEMPLATE_ID or self.get_plan(user_id) != "free":
            return LimitCheck(allowed=True)
        return LimitCheck(
            allowed=False,
            reason=(
                f"Free plan users can only use template {FREE_TEMPLATE_ID}. "
                "Please upgrade to access all templates."
            ),
            limit_type="templates",
        )

    def usage(self, user_id: str, now: datetime | None = None) -> Usage:
        plan = self.get_plan(user_id)
        limited = plan != "monthly"
        invoice_ids = [r["id"] for r in self.repository.select("invoices", user_id=user_id)]
        reminders_sent = (
            self.repository.count(
                "invoice_reminders", invoice_id=invoice_ids, reminder_status="sent"
            )
            if invoice_ids
            else 0
        )
        free_invoices = self.settings.free_plan_invoice_limit

        return Usage(
            plan=plan,
            invoices=UsageItem(
                limit=free_invoices if plan == "free" else None,
                used=self.monthly_invoice_count(user_id, now),
            ),
            clients=UsageItem(
                limit=self.settings.free_plan_client_limit if limited else None,
                used=self.repository.count("clients", user_id=user_id),
            ),
            estimates=UsageItem(
                limit=self.settings.free_plan_estimate_limit if limited else None,
                used=self.repository.count("estimates", user_id=user_id),
            ),
            reminders=UsageItem(
                limit=(
                    self.settings.free_plan_reminders_per_invoice * free_invoices
                    if plan == "free"
                    else None
                ),
                used=reminders_sent,
            ),
            templates_enabled=1 if plan == "free" else TEMPLATE_COUNT,
        )

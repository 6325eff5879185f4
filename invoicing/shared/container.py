"""Wiring of the service layer shared by the API and the worker."""

import logging

from invoicing.clients.service import ClientService
from invoicing.database.base import Repository
from invoicing.database.factory import create_repository
from invoicing.email.base import EmailProvider
from invoicing.email.factory import create_email_provider
from invoicing.estimates.service import EstimateService
from invoicing.invoices.service import InvoiceService
from invoicing.plans.service import PlanService
from invoicing.profile.service import ProfileService
from invoicing.reminders.scheduler import ReminderService
from invoicing.shared.config import Settings
from invoicing.storage.service import StorageService

logger = logging.getLogger(__name__)


class ServiceContainer:
    """Builds every service once around a single repository and email provider.

    Args:
        settings: Application settings
        repository: Database backend (created from settings when omitted)
        email: Email provider (created from settings when omitted)
        storage: Logo storage (created from settings when omitted)
    """

    def __init__(
        self,
        settings: Settings,
        repository: Repository | None = None,
        email: EmailProvider | None = None,
        storage: StorageService | None = None,
    ) -> None:
        self.settings = settings
        self.repository = repository or create_repository(settings)
        self.email = email or create_email_provider(settings)
        self.storage = storage or StorageService(settings)

        self.plans = PlanService(self.repository, settings)
        self.profiles = ProfileService(self.repository)
        self.clients = ClientService(self.repository, self.plans)
        self.reminders = ReminderService(
            self.repository, self.email, settings, self.plans, self.profiles
        )
        self.invoices = InvoiceService(
            self.repository, self.email, settings, self.plans, self.profiles, self.reminders
        )
        self.estimates = EstimateService(
            self.repository, self.email, settings, self.plans, self.profiles
        )
        logger.info(
            f"Services ready (database={self.repository.provider_name}, "
            f"email={self.email.provider_name})"
        )

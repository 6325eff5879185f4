"""Abstract base class for email delivery providers.

Enables switching between delivery backends (Resend, console logging)
while keeping a consistent interface for invoices, estimates and reminders.
"""

from abc import ABC, abstractmethod

from pydantic import BaseModel, Field

from invoicing.shared.config import Settings


class EmailMessage(BaseModel):
    """Outgoing HTML email."""

    to: list[str] = Field(..., min_length=1)
    subject: str
    html: str
    from_address: str
    reply_to: str | None = None


class EmailResult(BaseModel):
    """Result of a send operation.

    Attributes:
        success: Whether the provider accepted the message
        message_id: Provider message id (stored as email_id on reminders)
        error: Error message if sending failed
        provider: Name of provider that handled the message
    """

    success: bool
    message_id: str | None = None
    error: str | None = None
    provider: str


class EmailProvider(ABC):
    """Abstract base class for email providers."""

    def __init__(self, settings: Settings) -> None:
        self.settings = settings

    @abstractmethod
    def send(self, message: EmailMessage) -> EmailResult:
        """Send an email.

        Args:
            message: Message to deliver

        Returns:
            EmailResult; failures are reported, not raised
        """
        pass

    @abstractmethod
    def is_available(self) -> bool:
        """Check if this provider is configured (e.g., API key present)."""
        pass

    @property
    @abstractmethod
    def provider_name(self) -> str:
        pass

    def sender(self, business_name: str, business_email: str | None = None) -> str:
        """Build the From header, e.g. ``Acme Studio <noreply@example.com>``."""
        address = business_email or self.settings.email_from_address
        name = business_name.replace('"', "").strip()
        return f"{name} <{address}>" if name else address

"""Development email provider that logs messages instead of sending them."""

import logging
import uuid

from invoicing.email.base import EmailMessage, EmailProvider, EmailResult
from invoicing.shared.config import Settings

logger = logging.getLogger(__name__)


class ConsoleEmailProvider(EmailProvider):
    """Logs outgoing mail and keeps it in ``outbox`` for inspection."""

    def __init__(self, settings: Settings) -> None:
        super().__init__(settings)
        self.outbox: list[EmailMessage] = []

    @property
    def provider_name(self) -> str:
        return "console"

    def is_available(self) -> bool:
        return True

    def send(self, message: EmailMessage) -> EmailResult:
        self.outbox.append(message)
        message_id = f"console-{uuid.uuid4()}"
        logger.info(
            f"[email] {message.from_address} -> {', '.join(message.to)}: {message.subject} "
            f"({len(message.html)} bytes)"
        )
        return EmailResult(success=True, message_id=message_id, provider=self.provider_name)

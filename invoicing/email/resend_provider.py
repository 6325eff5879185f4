"""Resend email provider.

Sends HTML email through the Resend REST API with retry on transient
transport errors.

API reference: https://resend.com/docs/api-reference/emails/send-email
"""

import logging

import httpx
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)

from invoicing.email.base import EmailMessage, EmailProvider, EmailResult
from invoicing.shared.config import Settings

logger = logging.getLogger(__name__)


class ResendEmailProvider(EmailProvider):
    """Email delivery through Resend."""

    def __init__(self, settings: Settings, client: httpx.Client | None = None) -> None:
        super().__init__(settings)
        self._base_url = settings.resend_base_url.rstrip("/")
        self._client = client or httpx.Client(timeout=settings.http_timeout_seconds)

    @property
    def provider_name(self) -> str:
        return "resend"

    def is_available(self) -> bool:
        return bool(self.settings.resend_api_key)

    def send(self, message: EmailMessage) -> EmailResult:
        """Send an email through Resend.

        Args:
            message: Message to deliver

        Returns:
            EmailResult with the Resend message id or an error
        """
        if not self.is_available():
            return EmailResult(
                success=False,
                error="Resend API key not configured. Set APP_RESEND_API_KEY.",
                provider=self.provider_name,
            )

        payload = {
            "from": message.from_address,
            "to": message.to,
            "subject": message.subject,
            "html": message.html,
        }
        if message.reply_to:
            payload["reply_to"] = message.reply_to

        try:
            response = self._post_with_retry(payload)
        except httpx.HTTPError as e:
            logger.error(f"Resend request failed: {e}")
            return EmailResult(success=False, error=str(e), provider=self.provider_name)

        if response.status_code >= 400:
            logger.warning(f"Resend rejected email: {response.status_code} {response.text}")
            return EmailResult(
                success=False,
                error=f"Resend error: {response.status_code} {response.text}",
                provider=self.provider_name,
            )

        message_id = response.json().get("id")
        logger.info(f"Sent email '{message.subject}' to {', '.join(message.to)} ({message_id})")
        return EmailResult(success=True, message_id=message_id, provider=self.provider_name)

    @retry(
        retry=retry_if_exception_type((httpx.TransportError, httpx.TimeoutException)),
        wait=wait_exponential_jitter(initial=1, max=30),
        stop=stop_after_attempt(3),
        reraise=True,
    )
    def _post_with_retry(self, payload: dict) -> httpx.Response:
        return self._client.post(
            f"{self._base_url}/emails",
            json=payload,
            headers={
                "Authorization": f"Bearer {self.settings.resend_api_key}",
                "Content-Type": "application/json",
            },
        )

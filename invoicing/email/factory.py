"""Factory for creating email providers based on configuration."""

import logging

from invoicing.email.base import EmailProvider
from invoicing.email.console_provider import ConsoleEmailProvider
from invoicing.email.resend_provider import ResendEmailProvider
from invoicing.shared.config import Settings

logger = logging.getLogger(__name__)


class ProviderRegistry:
    """Registry of available email providers."""

    _providers: dict[str, type[EmailProvider]] = {
        "console": ConsoleEmailProvider,
        "resend": ResendEmailProvider,
    }

    @classmethod
    def register(cls, name: str, provider_class: type[EmailProvider]) -> None:
        cls._providers[name] = provider_class
        logger.info(f"Registered email provider: {name}")

    @classmethod
    def get_provider_class(cls, name: str) -> type[EmailProvider]:
        """Get provider class by name.

        Raises:
            ValueError: If provider not found in registry
        """
        if name not in cls._providers:
            available = ", ".join(cls._providers.keys())
            raise ValueError(f"Unknown email provider: '{name}'. Available providers: {available}")
        return cls._providers[name]

    @classmethod
    def list_providers(cls) -> list[str]:
        return list(cls._providers.keys())


def create_email_provider(settings: Settings) -> EmailProvider:
    """Create the email provider named by settings.email_provider.

    Logs a warning if the provider is not available (e.g., missing API key).

    Example:
        >>> provider = create_email_provider(Settings(email_provider="console"))
        >>> provider.provider_name
        'console'
    """
    name = settings.email_provider
    provider = ProviderRegistry.get_provider_class(name)(settings)

    if not provider.is_available():
        logger.warning(
            f"Email provider '{name}' is not fully available. Check configuration (e.g., API keys)."
        )

    logger.info(f"Created email provider: {name}")
    return provider

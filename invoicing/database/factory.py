"""Factory for creating database backends based on configuration.

Implements Factory Pattern for backend selection with registry pattern for extensibility.
"""

import logging

from invoicing.database.base import Repository
from invoicing.database.memory import MemoryRepository
from invoicing.database.supabase import SupabaseRepository
from invoicing.shared.config import Settings

logger = logging.getLogger(__name__)


class RepositoryRegistry:
    """Registry of available database backends."""

    _backends: dict[str, type[Repository]] = {
        "memory": MemoryRepository,
        "supabase": SupabaseRepository,
    }

    @classmethod
    def register(cls, name: str, backend_class: type[Repository]) -> None:
        cls._backends[name] = backend_class
        logger.info(f"Registered database backend: {name}")

    @classmethod
    def get_backend_class(cls, name: str) -> type[Repository]:
        """Get backend class by name.

        Raises:
            ValueError: If backend not found in registry
        """
        if name not in cls._backends:
            available = ", ".join(cls._backends.keys())
            raise ValueError(f"Unknown database backend: '{name}'. Available backends: {available}")
        return cls._backends[name]

    @classmethod
    def list_backends(cls) -> list[str]:
        return list(cls._backends.keys())


def create_repository(settings: Settings) -> Repository:
    """Create the database backend named by settings.database_provider.

    Logs a warning when the backend is not configured (e.g., missing Supabase key).
    """
    name = settings.database_provider
    repository = RepositoryRegistry.get_backend_class(name)(settings)

    if name != "memory" and not (settings.supabase_url and settings.supabase_service_key):
        logger.warning(
            f"Database backend '{name}' is not fully configured. "
            f"Set APP_SUPABASE_URL and APP_SUPABASE_SERVICE_KEY."
        )

    logger.info(f"Created database backend: {name}")
    return repository

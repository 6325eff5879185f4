"""FastAPI dependencies shared by the routers."""

from functools import lru_cache

from arq import create_pool
from arq.connections import ArqRedis

from invoicing.queue.tasks import get_redis_settings
from invoicing.shared.config import get_settings
from invoicing.shared.container import ServiceContainer

_arq_pool: ArqRedis | None = None


@lru_cache
def get_services() -> ServiceContainer:
    return ServiceContainer(get_settings())


async def get_arq_pool() -> ArqRedis:
    """Lazily created Redis pool used to enqueue background jobs."""
    global _arq_pool
    if _arq_pool is None:
        _arq_pool = await create_pool(get_redis_settings())
    return _arq_pool

"""Entry point for the invoice and reminder worker.

    python -m invoicing.queue.worker

``arq invoicing.queue.tasks.WorkerSettings`` also works but skips the
APP_* overrides applied by ``configure_worker``.
"""

import logging

from arq import run_worker

from invoicing.queue.tasks import WorkerSettings, get_redis_settings
from invoicing.shared.config import Settings, get_settings

logger = logging.getLogger(__name__)


def configure_worker(settings: Settings) -> type[WorkerSettings]:
    """Worker class bound to ``settings``.

    A subclass is returned so the module-level ``WorkerSettings`` stays
    untouched; the hourly reminder cron is dropped when
    ``reminder_cron_enabled`` is off.
    """
    cron_jobs = list(WorkerSettings.cron_jobs) if settings.reminder_cron_enabled else []
    return type(
        "ConfiguredWorkerSettings",
        (WorkerSettings,),
        {
            "redis_settings": get_redis_settings(settings),
            "max_jobs": settings.queue_max_jobs,
            "job_timeout": settings.queue_job_timeout,
            "cron_jobs": cron_jobs,
        },
    )


def main() -> None:
    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    worker_settings = configure_worker(settings)
    logger.info(
        f"Starting worker on {settings.redis_url} "
        f"(max_jobs={worker_settings.max_jobs}, timeout={worker_settings.job_timeout}s, "
        f"reminder cron {'on' if worker_settings.cron_jobs else 'off'})"
    )
    run_worker(worker_settings)  # type: ignore[arg-type]


if __name__ == "__main__":
    main()

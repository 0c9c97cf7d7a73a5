from typing import Optional

from .cluster import ClusterClient
from .config import get_settings
from .creator import JobCreator
from .jobs.registry import default_registry

_job_creator: Optional[JobCreator] = None


def get_job_creator() -> JobCreator:
    """Process-wide creator, built on first use from the loaded settings."""
    global _job_creator
    if _job_creator is None:
        settings = get_settings()
        _job_creator = JobCreator(
            cluster=ClusterClient.from_settings(settings),
            registry=default_registry(timer_image=settings.timer_image, timer_log_level=settings.timer_log_level),
            defaults=settings.job_defaults(),
        )
    return _job_creator

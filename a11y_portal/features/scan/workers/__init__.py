"""Celery workers module - imports all task modules for autodiscovery."""

from a11y_portal.features.scan.workers import tasks  # noqa: F401
from a11y_portal.features.scan.workers import periodic_tasks  # noqa: F401

from celery import Celery
from kombu import Queue

from a11y_portal.platform.config import settings


def create_celery_app() -> Celery:
    """
    Create and configure the Celery application.

    Queue Structure:
    - scan.orchestration: one run_scan task per scan run (pages audited sequentially inside it)
    - celery: periodic maintenance (stale scan recovery)
    """
    celery_app = Celery(
        "a11y_portal",
        broker=settings.CELERY_BROKER_URL,
        backend=settings.CELERY_RESULT_BACKEND,
    )

    celery_app.conf.update(
        task_serializer=settings.CELERY_TASK_SERIALIZER,
        result_serializer=settings.CELERY_RESULT_SERIALIZER,
        accept_content=[settings.CELERY_ACCEPT_CONTENT],
        timezone="UTC",
        enable_utc=True,
        task_track_started=settings.CELERY_TASK_TRACK_STARTED,
        task_time_limit=settings.CELERY_TASK_TIME_LIMIT,

        result_expires=3600,

        task_routes={
            "a11y_portal.features.scan.workers.tasks.run_scan": {"queue": "scan.orchestration"},
            "a11y_portal.features.scan.workers.periodic_tasks.recover_stale_scans": {"queue": "celery"},
        },

        task_queues=(
            Queue("default"),
            Queue("celery"),
            Queue("scan.orchestration"),
        ),
        task_default_queue="default",

        # A scan holds a browser for hours; never prefetch a second one.
        worker_prefetch_multiplier=1,

        task_acks_late=True,
        task_reject_on_worker_lost=True,

        beat_schedule={
            "recover-stale-scans": {
                "task": "a11y_portal.features.scan.workers.periodic_tasks.recover_stale_scans",
                "schedule": 600.0,  # every 10 minutes
            },
        },
    )

    celery_app.autodiscover_tasks(["a11y_portal.features.scan.workers"])

    return celery_app


celery_app = create_celery_app()

"""
Celery periodic tasks for scan maintenance.

This module contains tasks that run on a schedule via Celery Beat.
"""
import logging
from datetime import datetime, timedelta, timezone

from celery import shared_task
from sqlalchemy import select

from a11y_portal.features.scan.models.scan_job import ScanJob, ScanJobStatus
from a11y_portal.features.scan.services.scan.scan_repository import SqlScanJobRepository
from a11y_portal.platform.celery_app import celery_app  # noqa: F401
from a11y_portal.platform.config import settings
from a11y_portal.platform.db.session import get_sync_db, get_sync_session_factory
from a11y_portal.platform.exceptions import ScanEngineError

logger = logging.getLogger(__name__)


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def find_stale_scan_ids(now: datetime, stale_after: timedelta) -> list:
    db = get_sync_db()
    try:
        jobs = db.execute(
            select(ScanJob.id, ScanJob.updated_at).where(ScanJob.status == ScanJobStatus.running)
        ).all()
    finally:
        db.close()

    cutoff = now - stale_after
    return [job_id for job_id, updated_at in jobs if updated_at is None or _as_utc(updated_at) < cutoff]


@shared_task(bind=True, name="a11y_portal.features.scan.workers.periodic_tasks.recover_stale_scans")
def recover_stale_scans(self):
    """
    Pause running scans whose worker stopped checkpointing.

    A job stays `running` if its worker dies mid-scan. Once its row has not
    been touched for STALE_SCAN_MINUTES it is moved to `paused`, so it can be
    resumed from its last checkpoint.
    """
    stale_after = timedelta(minutes=settings.STALE_SCAN_MINUTES)
    stale_ids = find_stale_scan_ids(datetime.now(timezone.utc), stale_after)
    if not stale_ids:
        return {"recovered": 0}

    logger.warning(f"Found {len(stale_ids)} stale running scan(s)")
    repository = SqlScanJobRepository(get_sync_session_factory())

    recovered = []
    for scan_id in stale_ids:
        try:
            repository.pause(scan_id)
            recovered.append(scan_id)
            logger.info(f"[{scan_id}] Stale running scan moved to paused")
        except ScanEngineError as e:
            logger.error(f"[{scan_id}] Could not recover stale scan: {e}")

    return {"recovered": len(recovered), "scan_ids": recovered}

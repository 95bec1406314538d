import logging
from typing import Any, Dict

from celery import shared_task
from sqlalchemy import select

from a11y_portal.features.activity.services.activity_logger import ActivityLogger
from a11y_portal.features.scan.models.scan_job import ScanJob
from a11y_portal.features.scan.services.auditing.registry import get_page_auditor
from a11y_portal.features.scan.services.orchestration.multi_page_runner import MultiPageRunner
from a11y_portal.features.scan.services.progress.progress_store import SqlProgressStore
from a11y_portal.features.scan.services.scan.scan_repository import SqlScanJobRepository
from a11y_portal.features.scan.services.timeout.timeout_guard import TimeoutGuard
from a11y_portal.platform.celery_app import celery_app  # noqa: F401
from a11y_portal.platform.config import settings
from a11y_portal.platform.db.session import get_sync_db, get_sync_session_factory
from a11y_portal.platform.exceptions import InvalidScanTransition, ScanNotFoundError

logger = logging.getLogger(__name__)


def build_runner() -> MultiPageRunner:
    session_factory = get_sync_session_factory()
    return MultiPageRunner(
        progress_store=SqlProgressStore(session_factory),
        repository=SqlScanJobRepository(session_factory),
        auditor_factory=get_page_auditor,
        activity_log=ActivityLogger(session_factory),
    )


@shared_task(bind=True, name="a11y_portal.features.scan.workers.tasks.run_scan")
def run_scan(self, scan_id: str, restart: bool = False) -> Dict[str, Any]:
    """
    Run or resume one scan job.

    Not retried by Celery: a page that failed is only audited again through
    an explicit resume or a new scan.
    """
    db = get_sync_db()
    try:
        job = db.execute(select(ScanJob).where(ScanJob.id == scan_id)).scalar_one_or_none()
        if not job:
            logger.warning(f"[{scan_id}] run_scan: scan not found (deleted?)")
            return {"scan_id": scan_id, "status": "missing"}
        site_id = job.site_id
        scan_type = job.scan_type
        urls = list(job.page_urls or [])
    finally:
        db.close()

    guard = TimeoutGuard(settings.SCAN_TIME_BUDGET_HOURS)
    logger.info(f"[{scan_id}] run_scan task {self.request.id} started (restart={restart})")

    try:
        outcome = build_runner().run(scan_id, site_id, scan_type, urls, guard, restart=restart)
    except (InvalidScanTransition, ScanNotFoundError) as e:
        # Duplicate delivery or a job that finished/was deleted meanwhile.
        logger.warning(f"[{scan_id}] run_scan skipped: {e}")
        return {"scan_id": scan_id, "status": "skipped", "reason": str(e)}

    logger.info(f"[{scan_id}] run_scan finished with status {outcome.status.value} after {guard.elapsed_formatted()}")
    return {
        "scan_id": scan_id,
        "status": outcome.status.value,
        "pages_scanned": outcome.checkpoint.pages_scanned,
        "average_score": outcome.average_score,
        "error_message": outcome.error_message,
    }

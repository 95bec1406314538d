from typing import List, Optional

from fastapi import HTTPException, status
from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.concurrency import run_in_threadpool

from a11y_portal.features.scan.models.page_scan_result import PageScanResult
from a11y_portal.features.scan.models.scan_job import ScanJob, ScanJobStatus, ScanType
from a11y_portal.features.scan.schemas.scan import CheckpointView, ScanProgressResponse
from a11y_portal.features.scan.services.discovery.sitemap_discovery import SitemapDiscoveryService
from a11y_portal.features.scan.services.progress.progress_store import checkpoint_from_job
from a11y_portal.features.scan.services.scan.rate_limit import check_scan_rate_limit, scan_rate_limit
from a11y_portal.features.scan.services.scan.state_machine import (
    CANCELLABLE_STATUSES,
    is_final,
)
from a11y_portal.features.scan.workers.tasks import run_scan
from a11y_portal.features.sites.models.site import Site
from a11y_portal.platform.exceptions import (
    InvalidScanTransition,
    ScanNotFoundError,
    ScanRateLimitExceeded,
    SiteNotFoundError,
)
from a11y_portal.platform.logger import get_logger

logger = get_logger(__name__)

RETRYABLE_STATUSES = frozenset({ScanJobStatus.failed, ScanJobStatus.cancelled})


async def get_scan_job(db: AsyncSession, scan_id: str) -> ScanJob:
    job = await db.scalar(select(ScanJob).where(ScanJob.id == scan_id))
    if not job:
        raise ScanNotFoundError(scan_id)
    return job


async def _enqueue(db: AsyncSession, job: ScanJob, restart: bool = False, discard_on_failure: bool = False) -> ScanJob:
    """
    Hand the job to the worker queue. A job created for this request is
    removed again when the queue refuses it, so no pending row is left
    without a task.
    """
    try:
        task = run_scan.delay(job.id, restart)
    except Exception as e:
        logger.error(f"[{job.id}] Failed to enqueue scan: {e}")
        if discard_on_failure:
            await db.execute(delete(ScanJob).where(ScanJob.id == job.id))
            await db.commit()
            logger.info(f"[{job.id}] Discarded unqueued scan")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Scan worker queue is unavailable, try again later",
        )

    job.celery_task_id = task.id
    await db.commit()
    await db.refresh(job)
    logger.info(f"[{job.id}] Queued run_scan task {task.id} (restart={restart})")
    return job


async def _enforce_rate_limit(db: AsyncSession, site_id: str) -> None:
    is_allowed, remaining, reset_time = await check_scan_rate_limit(db, site_id)
    if not is_allowed:
        logger.warning(f"Rate limit exceeded for site {site_id} (resets at {reset_time.isoformat()})")
        raise ScanRateLimitExceeded(site_id, scan_rate_limit(), remaining, reset_time)
    logger.debug(f"Rate limit OK for site {site_id}, {remaining} scan(s) left this hour")


async def create_scan_job(
    db: AsyncSession,
    site_id: str,
    scan_type: ScanType,
    discovery: Optional[SitemapDiscoveryService] = None,
) -> ScanJob:
    """
    Resolve the site's sitemap, create a pending job holding the URL list and
    queue it. Discovery happens once, here; resumes reuse the stored list.
    """
    site = await db.scalar(select(Site).where(Site.id == site_id))
    if not site:
        raise SiteNotFoundError(site_id)

    if not site.sitemap_url:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Site {site.display_name} has no sitemap URL configured",
        )

    await _enforce_rate_limit(db, site.id)

    discovery = discovery or SitemapDiscoveryService()
    page_urls = await run_in_threadpool(discovery.resolve, site.sitemap_url)

    job = ScanJob(
        site_id=site.id,
        scan_type=scan_type,
        status=ScanJobStatus.pending,
        page_urls=page_urls,
        pages_total=len(page_urls),
    )
    db.add(job)
    await db.commit()
    await db.refresh(job)
    logger.info(f"[{job.id}] Created {scan_type.value} scan of {site.url} with {len(page_urls)} pages")

    return await _enqueue(db, job, discard_on_failure=True)


async def list_scan_jobs(
    db: AsyncSession,
    status_filter: Optional[ScanJobStatus] = None,
    site_id: Optional[str] = None,
    limit: int = 50,
) -> List[ScanJob]:
    query = select(ScanJob)
    if status_filter:
        query = query.where(ScanJob.status == status_filter)
    if site_id:
        query = query.where(ScanJob.site_id == site_id)
    query = query.order_by(ScanJob.created_at.desc(), ScanJob.id.desc()).limit(limit)

    result = await db.execute(query)
    return list(result.scalars().all())


async def get_scan_progress(db: AsyncSession, scan_id: str) -> ScanProgressResponse:
    job = await get_scan_job(db, scan_id)
    checkpoint = checkpoint_from_job(job)

    next_page_url = None
    page_urls = job.page_urls or []
    if not is_final(job.status) and checkpoint.next_page_index < len(page_urls):
        next_page_url = page_urls[checkpoint.next_page_index]

    return ScanProgressResponse(
        scan_id=job.id,
        status=job.status,
        pages_total=job.pages_total,
        progress_percent=job.progress_percent,
        next_page_url=next_page_url,
        cancel_requested=bool(job.cancel_requested),
        checkpoint=CheckpointView(**checkpoint.model_dump(exclude={"score_sum", "engine_score_sums", "worst_page_violations"})),
    )


async def get_scan_pages(db: AsyncSession, scan_id: str) -> List[PageScanResult]:
    await get_scan_job(db, scan_id)
    result = await db.execute(
        select(PageScanResult)
        .where(PageScanResult.scan_job_id == scan_id)
        .order_by(PageScanResult.page_index)
    )
    return list(result.scalars().all())


async def resume_scan_job(db: AsyncSession, scan_id: str, restart: bool = False) -> ScanJob:
    job = await get_scan_job(db, scan_id)
    if job.status != ScanJobStatus.paused:
        raise InvalidScanTransition(scan_id, job.status, ScanJobStatus.running)

    logger.info(f"[{scan_id}] {'Restart' if restart else 'Resume'} requested from page {job.last_scanned_page_index + 1}")
    return await _enqueue(db, job, restart=restart)


async def retry_scan_job(db: AsyncSession, scan_id: str) -> ScanJob:
    """Start a new job for the same site and scan type as a failed or cancelled one."""
    job = await get_scan_job(db, scan_id)
    if job.status not in RETRYABLE_STATUSES:
        raise InvalidScanTransition(scan_id, job.status, ScanJobStatus.pending)

    await _enforce_rate_limit(db, job.site_id)

    retry = ScanJob(
        site_id=job.site_id,
        scan_type=job.scan_type,
        status=ScanJobStatus.pending,
        page_urls=list(job.page_urls or []),
        pages_total=job.pages_total,
    )
    db.add(retry)
    await db.commit()
    await db.refresh(retry)
    logger.info(f"[{retry.id}] Created as retry of {job.status.value} scan {scan_id}")

    return await _enqueue(db, retry, discard_on_failure=True)


async def cancel_scan_job(db: AsyncSession, scan_id: str) -> ScanJob:
    """
    Ask the runner to stop. The job moves to cancelled at the runner's next
    page boundary, not here.
    """
    job = await get_scan_job(db, scan_id)
    if job.status not in CANCELLABLE_STATUSES:
        raise InvalidScanTransition(scan_id, job.status, ScanJobStatus.cancelled)

    result = await db.execute(
        update(ScanJob)
        .where(ScanJob.id == scan_id, ScanJob.status.in_(CANCELLABLE_STATUSES))
        .values(cancel_requested=True)
        .execution_options(synchronize_session=False)
    )
    await db.commit()

    # Status moved on between the read and the update.
    if result.rowcount == 0:
        await db.refresh(job)
        raise InvalidScanTransition(scan_id, job.status, ScanJobStatus.cancelled)

    await db.refresh(job)
    logger.info(f"[{scan_id}] Cancel requested while {job.status.value}")
    return job


async def delete_scan_job(db: AsyncSession, scan_id: str) -> dict:
    job = await get_scan_job(db, scan_id)
    if job.status == ScanJobStatus.running:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Scan is running; cancel it before deleting",
        )

    await db.execute(delete(PageScanResult).where(PageScanResult.scan_job_id == scan_id))
    await db.execute(delete(ScanJob).where(ScanJob.id == scan_id))
    await db.commit()

    logger.info(f"[{scan_id}] Deleted {job.status.value} scan")
    return {"scan_id": scan_id}

from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from a11y_portal.features.scan.models.scan_job import ScanJobStatus
from a11y_portal.features.scan.schemas.scan import (
    PageScanResultResponse,
    ScanCreateRequest,
    ScanResponse,
)
from a11y_portal.features.scan.services.scan.scan import (
    cancel_scan_job,
    create_scan_job,
    delete_scan_job,
    get_scan_job,
    get_scan_pages,
    get_scan_progress,
    list_scan_jobs,
    resume_scan_job,
    retry_scan_job,
)
from a11y_portal.platform.db.session import get_db
from a11y_portal.platform.logger import get_logger
from a11y_portal.platform.response import api_response

logger = get_logger(__name__)

router = APIRouter(prefix="/scans", tags=["scans"])


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_scan(request: ScanCreateRequest, db: AsyncSession = Depends(get_db)):
    """
    Start a multi-page accessibility scan of a tracked site.

    The site's sitemap is resolved now; the job is created `pending` and
    queued for a worker.
    """
    job = await create_scan_job(db, request.site_id, request.scan_type)
    return api_response(
        data=ScanResponse.model_validate(job),
        message=f"Scan queued for {job.pages_total} pages",
        status_code=status.HTTP_201_CREATED,
    )


@router.get("")
async def list_scans(
    status_filter: Optional[ScanJobStatus] = Query(None, alias="status"),
    site_id: Optional[str] = None,
    limit: int = Query(50, ge=1, le=200),
    db: AsyncSession = Depends(get_db),
):
    jobs = await list_scan_jobs(db, status_filter=status_filter, site_id=site_id, limit=limit)
    return api_response(
        data={
            "total_scans": len(jobs),
            "scans": [ScanResponse.model_validate(job) for job in jobs],
        },
        message="Scans retrieved successfully",
    )


@router.get("/{scan_id}")
async def get_scan(scan_id: str, db: AsyncSession = Depends(get_db)):
    job = await get_scan_job(db, scan_id)
    return api_response(data=ScanResponse.model_validate(job), message="Scan retrieved successfully")


@router.get("/{scan_id}/progress")
async def get_progress(scan_id: str, db: AsyncSession = Depends(get_db)):
    """Status and checkpoint of a scan, for pollers."""
    progress = await get_scan_progress(db, scan_id)
    return api_response(data=progress, message=f"Scan is {progress.status.value}")


@router.get("/{scan_id}/pages")
async def get_pages(scan_id: str, db: AsyncSession = Depends(get_db)):
    pages = await get_scan_pages(db, scan_id)
    return api_response(
        data={
            "total_pages": len(pages),
            "pages": [PageScanResultResponse.model_validate(page) for page in pages],
        },
        message="Page results retrieved successfully",
    )


@router.post("/{scan_id}/resume")
async def resume_scan(scan_id: str, db: AsyncSession = Depends(get_db)):
    job = await resume_scan_job(db, scan_id)
    return api_response(
        data=ScanResponse.model_validate(job),
        message=f"Scan resuming at page {job.last_scanned_page_index + 1} of {job.pages_total}",
    )


@router.post("/{scan_id}/restart")
async def restart_scan(scan_id: str, db: AsyncSession = Depends(get_db)):
    job = await resume_scan_job(db, scan_id, restart=True)
    return api_response(data=ScanResponse.model_validate(job), message="Scan restarting from the first page")


@router.post("/{scan_id}/retry", status_code=status.HTTP_201_CREATED)
async def retry_scan(scan_id: str, db: AsyncSession = Depends(get_db)):
    job = await retry_scan_job(db, scan_id)
    return api_response(
        data=ScanResponse.model_validate(job),
        message="Retry scan queued",
        status_code=status.HTTP_201_CREATED,
    )


@router.post("/{scan_id}/cancel", status_code=status.HTTP_202_ACCEPTED)
async def cancel_scan(scan_id: str, db: AsyncSession = Depends(get_db)):
    job = await cancel_scan_job(db, scan_id)
    return api_response(
        data=ScanResponse.model_validate(job),
        message="Cancellation requested; the scan stops before its next page",
        status_code=status.HTTP_202_ACCEPTED,
    )


@router.delete("/{scan_id}")
async def delete_scan(scan_id: str, db: AsyncSession = Depends(get_db)):
    result = await delete_scan_job(db, scan_id)
    return api_response(data=result, message="Scan deleted successfully")

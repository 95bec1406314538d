"""
Scan Schemas

Request and response models for the scan API endpoints.
"""
from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict

from a11y_portal.features.scan.models.page_scan_result import PageScanStatus
from a11y_portal.features.scan.models.scan_job import ScanJobStatus, ScanType
from a11y_portal.features.scan.schemas.audit import SeverityBreakdown


class ScanCreateRequest(BaseModel):
    """Request to start a multi-page scan of a tracked site."""
    site_id: str
    scan_type: ScanType = ScanType.both

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "site_id": "0192f7a4-8d5e-7c41-9a55-1d2e3f4a5b6c",
                "scan_type": "both"
            }
        }
    )


class CheckpointView(BaseModel):
    last_scanned_page_index: int
    pages_scanned: int
    pages_succeeded: int
    pages_failed: int
    total_violations_sum: int
    worst_page_url: Optional[str] = None
    worst_page_score: Optional[int] = None
    worst_page_violation_count: int = 0
    severity_breakdown: SeverityBreakdown


class ScanResponse(BaseModel):
    """Scan job as returned by the API."""
    id: str
    site_id: str
    scan_type: ScanType
    status: ScanJobStatus
    pages_total: int
    pages_scanned: int
    last_scanned_page_index: int
    total_violations_sum: int
    worst_page_url: Optional[str] = None
    worst_page_score: Optional[int] = None
    worst_page_violation_count: int = 0
    worst_page_violations: Optional[List[Dict]] = None
    average_score: Optional[int] = None
    axe_score: Optional[int] = None
    lighthouse_score: Optional[int] = None
    error_message: Optional[str] = None
    cancel_requested: bool = False
    started_at: Optional[datetime] = None
    paused_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class ScanProgressResponse(BaseModel):
    """Queryable status/checkpoint pair for pollers."""
    scan_id: str
    status: ScanJobStatus
    pages_total: int
    progress_percent: int
    next_page_url: Optional[str] = None
    # Set when a cancel is waiting for the runner. A job paused by its time
    # budget keeps the flag and is cancelled as soon as it is resumed.
    cancel_requested: bool = False
    checkpoint: CheckpointView


class PageScanResultResponse(BaseModel):
    page_index: int
    page_url: str
    status: PageScanStatus
    score: Optional[int] = None
    violation_count: int = 0
    violations: Optional[List[Dict]] = None
    engine_scores: Optional[Dict[str, int]] = None
    category_scores: Optional[Dict[str, int]] = None
    error_message: Optional[str] = None
    scanned_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

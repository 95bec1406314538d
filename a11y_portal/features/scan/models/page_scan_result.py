import enum

from sqlalchemy import JSON, Column, DateTime, Enum, ForeignKey, Integer, String, Text, UniqueConstraint

from a11y_portal.platform.db.base import BaseModel


class PageScanStatus(enum.Enum):
    success = "success"
    failed = "failed"


class PageScanResult(BaseModel):
    """
    Per-page outcome of a scan. Informational only: the job aggregates live on
    the checkpoint columns of ScanJob.
    """
    __tablename__ = "page_scan_results"

    scan_job_id = Column(String, ForeignKey("scan_jobs.id", ondelete="CASCADE"), nullable=False, index=True)

    page_url = Column(String(2048), nullable=False)
    page_index = Column(Integer, nullable=False)
    status = Column(Enum(PageScanStatus), nullable=False, index=True)

    score = Column(Integer, nullable=True)  # 0-100
    violation_count = Column(Integer, default=0, nullable=False)
    violations = Column(JSON, nullable=True)
    engine_scores = Column(JSON, nullable=True)
    category_scores = Column(JSON, nullable=True)  # lighthouse categories
    error_message = Column(Text, nullable=True)

    scanned_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        UniqueConstraint('scan_job_id', 'page_index', name='uq_page_scan_results_job_index'),
    )

import enum

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import relationship

from a11y_portal.platform.db.base import BaseModel


class ScanJobStatus(enum.Enum):
    """Scan job status state machine"""
    pending = "pending"
    running = "running"
    paused = "paused"
    completed = "completed"
    failed = "failed"
    cancelled = "cancelled"


class ScanType(enum.Enum):
    lighthouse = "lighthouse"
    axe = "axe"
    both = "both"


class ScanJob(BaseModel):

    __tablename__ = "scan_jobs"

    site_id = Column(String, ForeignKey("sites.id", ondelete="CASCADE"), nullable=False, index=True)
    site = relationship("Site", foreign_keys=[site_id])

    scan_type = Column(Enum(ScanType), default=ScanType.both, nullable=False)
    status = Column(Enum(ScanJobStatus), default=ScanJobStatus.pending, nullable=False, index=True)
    error_message = Column(Text, nullable=True)

    # URL list resolved once from the sitemap when the job is created
    page_urls = Column(JSON, nullable=False, default=list)
    pages_total = Column(Integer, default=0, nullable=False)

    # Checkpoint: always written together by the progress store
    last_scanned_page_index = Column(Integer, default=-1, nullable=False)
    pages_scanned = Column(Integer, default=0, nullable=False)
    pages_succeeded = Column(Integer, default=0, nullable=False)
    pages_failed = Column(Integer, default=0, nullable=False)
    score_sum = Column(Integer, default=0, nullable=False)
    total_violations_sum = Column(Integer, default=0, nullable=False)
    worst_page_url = Column(String(2048), nullable=True)
    worst_page_score = Column(Integer, nullable=True)
    worst_page_violation_count = Column(Integer, default=0, nullable=False)
    worst_page_violations = Column(JSON, nullable=True)
    severity_breakdown = Column(JSON, nullable=True)
    engine_score_sums = Column(JSON, nullable=True)

    # Final aggregates (set on completion)
    average_score = Column(Integer, nullable=True)
    axe_score = Column(Integer, nullable=True)
    lighthouse_score = Column(Integer, nullable=True)

    cancel_requested = Column(Boolean, default=False, nullable=False)
    celery_task_id = Column(String(128), nullable=True, index=True)

    started_at = Column(DateTime(timezone=True), nullable=True)
    paused_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        CheckConstraint('pages_scanned >= 0 AND pages_scanned <= pages_total', name='check_pages_scanned_range'),
        CheckConstraint('last_scanned_page_index < pages_total', name='check_last_index_range'),
        Index('idx_scan_jobs_site_status', 'site_id', 'status'),
    )

    @property
    def progress_percent(self) -> int:
        if not self.pages_total:
            return 0
        return int(self.pages_scanned * 100 / self.pages_total)

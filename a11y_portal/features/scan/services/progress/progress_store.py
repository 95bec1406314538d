from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Optional

from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from a11y_portal.features.scan.models.scan_job import ScanJob
from a11y_portal.features.scan.schemas.audit import SeverityBreakdown
from a11y_portal.features.scan.schemas.checkpoint import Checkpoint
from a11y_portal.platform.exceptions import ProgressStoreError
from a11y_portal.platform.logger import get_logger

logger = get_logger(__name__)


class ProgressStore(ABC):
    """Durable home of a scan's checkpoint, keyed by scan id."""

    @abstractmethod
    def save(self, scan_id: str, checkpoint: Checkpoint) -> bool:
        """
        Persist every checkpoint field at once.

        Returns False when a newer checkpoint is already stored, in which case
        nothing is written.
        """

    @abstractmethod
    def load(self, scan_id: str) -> Optional[Checkpoint]:
        """Return the last durable checkpoint, or None for an unknown scan."""

    @abstractmethod
    def clear(self, scan_id: str) -> None:
        """Reset the checkpoint to its initial values."""


def _checkpoint_columns(checkpoint: Checkpoint) -> Dict[str, Any]:
    return {
        "last_scanned_page_index": checkpoint.last_scanned_page_index,
        "pages_scanned": checkpoint.pages_scanned,
        "pages_succeeded": checkpoint.pages_succeeded,
        "pages_failed": checkpoint.pages_failed,
        "score_sum": checkpoint.score_sum,
        "total_violations_sum": checkpoint.total_violations_sum,
        "worst_page_url": checkpoint.worst_page_url,
        "worst_page_score": checkpoint.worst_page_score,
        "worst_page_violation_count": checkpoint.worst_page_violation_count,
        "worst_page_violations": checkpoint.worst_page_violations,
        "severity_breakdown": checkpoint.severity_breakdown.model_dump(),
        "engine_score_sums": dict(checkpoint.engine_score_sums),
    }


def checkpoint_from_job(job: ScanJob) -> Checkpoint:
    return Checkpoint(
        last_scanned_page_index=job.last_scanned_page_index if job.last_scanned_page_index is not None else -1,
        pages_scanned=job.pages_scanned or 0,
        pages_succeeded=job.pages_succeeded or 0,
        pages_failed=job.pages_failed or 0,
        score_sum=job.score_sum or 0,
        total_violations_sum=job.total_violations_sum or 0,
        worst_page_url=job.worst_page_url,
        worst_page_score=job.worst_page_score,
        worst_page_violation_count=job.worst_page_violation_count or 0,
        worst_page_violations=job.worst_page_violations or [],
        severity_breakdown=SeverityBreakdown(**(job.severity_breakdown or {})),
        engine_score_sums=job.engine_score_sums or {},
    )


class SqlProgressStore(ProgressStore):
    """
    Checkpoints stored on the scan_jobs row.

    Each save is a single UPDATE in its own transaction, guarded so the stored
    page index never moves backwards.
    """

    def __init__(self, session_factory: Callable[[], Session]):
        self._session_factory = session_factory

    def save(self, scan_id: str, checkpoint: Checkpoint) -> bool:
        db = self._session_factory()
        try:
            result = db.execute(
                update(ScanJob)
                .where(
                    ScanJob.id == scan_id,
                    ScanJob.last_scanned_page_index <= checkpoint.last_scanned_page_index,
                )
                .values(**_checkpoint_columns(checkpoint), updated_at=func.now())
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                exists = db.execute(select(ScanJob.id).where(ScanJob.id == scan_id)).first()
                db.rollback()
                if not exists:
                    raise ProgressStoreError(f"Cannot save progress: scan {scan_id} does not exist")
                logger.warning(
                    f"[{scan_id}] Skipped stale checkpoint for page index "
                    f"{checkpoint.last_scanned_page_index}; a newer one is stored"
                )
                return False

            db.commit()
            logger.info(
                f"[{scan_id}] Checkpoint saved: page index {checkpoint.last_scanned_page_index}, "
                f"pages scanned {checkpoint.pages_scanned}"
            )
            return True
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"[{scan_id}] Failed to save progress: {e}")
            raise ProgressStoreError(f"Failed to save progress for scan {scan_id}: {e}") from e
        finally:
            db.close()

    def load(self, scan_id: str) -> Optional[Checkpoint]:
        db = self._session_factory()
        try:
            job = db.execute(select(ScanJob).where(ScanJob.id == scan_id)).scalar_one_or_none()
            if not job:
                logger.info(f"[{scan_id}] No progress found")
                return None

            checkpoint = checkpoint_from_job(job)
            logger.info(
                f"[{scan_id}] Progress loaded: page index {checkpoint.last_scanned_page_index}, "
                f"pages scanned {checkpoint.pages_scanned}"
            )
            return checkpoint
        except SQLAlchemyError as e:
            logger.error(f"[{scan_id}] Failed to load progress: {e}")
            raise ProgressStoreError(f"Failed to load progress for scan {scan_id}: {e}") from e
        finally:
            db.close()

    def clear(self, scan_id: str) -> None:
        db = self._session_factory()
        try:
            result = db.execute(
                update(ScanJob)
                .where(ScanJob.id == scan_id)
                .values(**_checkpoint_columns(Checkpoint()), updated_at=func.now())
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                db.rollback()
                raise ProgressStoreError(f"Cannot clear progress: scan {scan_id} does not exist")
            db.commit()
            logger.info(f"[{scan_id}] Progress cleared")
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"[{scan_id}] Failed to clear progress: {e}")
            raise ProgressStoreError(f"Failed to clear progress for scan {scan_id}: {e}") from e
        finally:
            db.close()

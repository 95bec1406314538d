from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Callable, Dict, Optional

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from a11y_portal.features.scan.models.page_scan_result import PageScanResult, PageScanStatus
from a11y_portal.features.scan.models.scan_job import ScanJob, ScanJobStatus
from a11y_portal.features.scan.schemas.audit import PageResult
from a11y_portal.features.scan.services.scan.state_machine import ensure_transition
from a11y_portal.features.sites.models.site import Site
from a11y_portal.platform.exceptions import ProgressStoreError, ScanNotFoundError
from a11y_portal.platform.logger import get_logger

logger = get_logger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ScanJobRepository(ABC):
    """Status side of a ScanJob. Every change is checked against the state machine."""

    @abstractmethod
    def get_status(self, scan_id: str) -> ScanJobStatus: ...

    @abstractmethod
    def start(self, scan_id: str) -> ScanJobStatus:
        """Move a pending or paused job to running; returns the previous status."""

    @abstractmethod
    def pause(self, scan_id: str) -> None: ...

    @abstractmethod
    def cancel(self, scan_id: str) -> None: ...

    @abstractmethod
    def fail(self, scan_id: str, error_message: str) -> None: ...

    @abstractmethod
    def complete(self, scan_id: str, average_score: Optional[int], engine_averages: Dict[str, int]) -> None: ...

    @abstractmethod
    def is_cancel_requested(self, scan_id: str) -> bool: ...

    @abstractmethod
    def record_page_result(self, scan_id: str, page_index: int, result: PageResult) -> None: ...

    @abstractmethod
    def clear_page_results(self, scan_id: str) -> None: ...


class SqlScanJobRepository(ScanJobRepository):

    def __init__(self, session_factory: Callable[[], Session]):
        self._session_factory = session_factory

    def _get_job(self, db: Session, scan_id: str, for_update: bool = False) -> ScanJob:
        query = select(ScanJob).where(ScanJob.id == scan_id)
        if for_update:
            query = query.with_for_update()
        job = db.execute(query).scalar_one_or_none()
        if not job:
            raise ScanNotFoundError(scan_id)
        return job

    def _transition(self, scan_id: str, target: ScanJobStatus, **values) -> ScanJobStatus:
        db = self._session_factory()
        try:
            job = self._get_job(db, scan_id, for_update=True)
            previous = job.status
            ensure_transition(scan_id, previous, target)

            job.status = target
            for key, value in values.items():
                setattr(job, key, value)
            db.commit()

            logger.info(f"[{scan_id}] Status {previous.value} -> {target.value}")
            return previous
        except SQLAlchemyError as e:
            db.rollback()
            raise ProgressStoreError(f"Failed to update status of scan {scan_id}: {e}") from e
        finally:
            db.close()

    def get_status(self, scan_id: str) -> ScanJobStatus:
        db = self._session_factory()
        try:
            return self._get_job(db, scan_id).status
        except SQLAlchemyError as e:
            raise ProgressStoreError(f"Failed to read scan {scan_id}: {e}") from e
        finally:
            db.close()

    def start(self, scan_id: str) -> ScanJobStatus:
        db = self._session_factory()
        try:
            started_at = self._get_job(db, scan_id).started_at
        finally:
            db.close()
        values = {"paused_at": None}
        if started_at is None:
            values["started_at"] = utcnow()
        return self._transition(scan_id, ScanJobStatus.running, **values)

    def pause(self, scan_id: str) -> None:
        self._transition(scan_id, ScanJobStatus.paused, paused_at=utcnow())

    def cancel(self, scan_id: str) -> None:
        self._transition(scan_id, ScanJobStatus.cancelled, completed_at=utcnow())

    def fail(self, scan_id: str, error_message: str) -> None:
        self._transition(
            scan_id,
            ScanJobStatus.failed,
            error_message=error_message,
            completed_at=utcnow(),
        )

    def complete(self, scan_id: str, average_score: Optional[int], engine_averages: Dict[str, int]) -> None:
        completed_at = utcnow()
        self._transition(
            scan_id,
            ScanJobStatus.completed,
            average_score=average_score,
            axe_score=engine_averages.get("axe"),
            lighthouse_score=engine_averages.get("lighthouse"),
            completed_at=completed_at,
        )
        self._update_site_scores(scan_id, engine_averages, completed_at)

    def _update_site_scores(self, scan_id: str, engine_averages: Dict[str, int], completed_at: datetime) -> None:
        if not engine_averages:
            return

        db = self._session_factory()
        try:
            job = self._get_job(db, scan_id)
            site = db.execute(select(Site).where(Site.id == job.site_id)).scalar_one_or_none()
            if not site:
                logger.warning(f"[{scan_id}] Site {job.site_id} not found, scores not copied")
                return
            if "axe" in engine_averages:
                site.axe_score = engine_averages["axe"]
                site.axe_last_updated = completed_at
            if "lighthouse" in engine_averages:
                site.lighthouse_score = engine_averages["lighthouse"]
                site.lighthouse_last_updated = completed_at
            db.commit()
            logger.info(f"[{scan_id}] Site {site.id} scores updated: {engine_averages}")
        except SQLAlchemyError as e:
            # The scan itself is already completed; a stale site summary is not fatal.
            db.rollback()
            logger.error(f"[{scan_id}] Failed to update site scores: {e}")
        finally:
            db.close()

    def is_cancel_requested(self, scan_id: str) -> bool:
        db = self._session_factory()
        try:
            flag = db.execute(
                select(ScanJob.cancel_requested).where(ScanJob.id == scan_id)
            ).scalar_one_or_none()
            return bool(flag)
        except SQLAlchemyError as e:
            raise ProgressStoreError(f"Failed to read cancel flag of scan {scan_id}: {e}") from e
        finally:
            db.close()

    def record_page_result(self, scan_id: str, page_index: int, result: PageResult) -> None:
        db = self._session_factory()
        try:
            # A page re-audited after a crash replaces its earlier row.
            db.execute(
                delete(PageScanResult).where(
                    PageScanResult.scan_job_id == scan_id,
                    PageScanResult.page_index == page_index,
                )
            )
            db.add(
                PageScanResult(
                    scan_job_id=scan_id,
                    page_url=result.url,
                    page_index=page_index,
                    status=PageScanStatus.success if result.succeeded else PageScanStatus.failed,
                    score=result.score,
                    violation_count=result.violation_count,
                    violations=[v.model_dump() for v in result.violations],
                    engine_scores=result.engine_scores or None,
                    category_scores=result.category_scores or None,
                    error_message=result.error,
                    scanned_at=utcnow(),
                )
            )
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            raise ProgressStoreError(f"Failed to record page {page_index} of scan {scan_id}: {e}") from e
        finally:
            db.close()

    def clear_page_results(self, scan_id: str) -> None:
        db = self._session_factory()
        try:
            deleted = db.execute(
                delete(PageScanResult).where(PageScanResult.scan_job_id == scan_id)
            ).rowcount
            db.commit()
            logger.info(f"[{scan_id}] Cleared {deleted} page result(s)")
        except SQLAlchemyError as e:
            db.rollback()
            raise ProgressStoreError(f"Failed to clear page results of scan {scan_id}: {e}") from e
        finally:
            db.close()

"""
Multi-page scan runner.

Audits the pages of one scan strictly one after another, starting from the
stored checkpoint, and drives the job to its final (or paused) status.

Per page, in this order:
    0. ownership check        -> stop if the job left `running` elsewhere
    1. time budget check      -> paused
    2. cancellation check     -> cancelled
    3. audit                  (an AuditError becomes a recorded page failure)
    4. fold into aggregates
    5. persist page row + checkpoint, before the next page starts
"""
from typing import Any, Callable, Dict, List, Optional

from pydantic import BaseModel

from a11y_portal.features.activity.services.activity_logger import (
    SCAN_CANCELLED,
    SCAN_COMPLETED,
    SCAN_FAILED,
    SCAN_PAUSED,
    SCAN_STARTED,
)
from a11y_portal.features.scan.models.scan_job import ScanJobStatus, ScanType
from a11y_portal.features.scan.schemas.audit import PageResult
from a11y_portal.features.scan.schemas.checkpoint import Checkpoint
from a11y_portal.features.scan.services.aggregation.result_aggregator import ResultAggregator
from a11y_portal.features.scan.services.auditing.base import PageAuditor
from a11y_portal.features.scan.services.progress.progress_store import ProgressStore
from a11y_portal.features.scan.services.scan.scan_repository import ScanJobRepository
from a11y_portal.features.scan.services.timeout.timeout_guard import TimeoutGuard
from a11y_portal.platform.exceptions import (
    AuditError,
    ProgressStoreError,
    ScanEngineError,
    ScanInfrastructureError,
)
from a11y_portal.platform.logger import get_logger

logger = get_logger(__name__)


class RunOutcome(BaseModel):
    scan_id: str
    status: ScanJobStatus
    checkpoint: Checkpoint
    average_score: Optional[int] = None
    engine_averages: Dict[str, int] = {}
    error_message: Optional[str] = None


class MultiPageRunner:

    def __init__(
        self,
        progress_store: ProgressStore,
        repository: ScanJobRepository,
        auditor_factory: Callable[[ScanType], PageAuditor],
        activity_log=None,
    ):
        self._store = progress_store
        self._repo = repository
        self._auditor_factory = auditor_factory
        self._activity_log = activity_log

    def run(
        self,
        scan_id: str,
        site_id: str,
        scan_type: ScanType,
        urls: List[str],
        guard: TimeoutGuard,
        restart: bool = False,
    ) -> RunOutcome:
        """
        Run (or resume) a scan until the URL list is exhausted, the time
        budget runs out, or a cancel request is seen.

        Raises InvalidScanTransition, untouched, when the job is not in a
        runnable status. Infrastructure errors end the job as failed and are
        reported through the outcome; anything unexpected also fails the job
        and is re-raised.
        """
        previous = self._repo.start(scan_id)
        logger.info(
            f"[{scan_id}] Runner started from '{previous.value}' "
            f"({scan_type.value}, {len(urls)} pages, {guard.remaining()} budget)"
        )

        checkpoint = Checkpoint()
        try:
            if restart:
                self._store.clear(scan_id)
                self._repo.clear_page_results(scan_id)
                logger.info(f"[{scan_id}] Restarting from page 0")

            checkpoint = self._store.load(scan_id) or Checkpoint()
            if checkpoint.last_scanned_page_index >= len(urls):
                raise ProgressStoreError(
                    f"Checkpoint index {checkpoint.last_scanned_page_index} is outside "
                    f"the {len(urls)} page URL list"
                )

            self._record(
                SCAN_STARTED,
                scan_id,
                site_id,
                {
                    "scan_type": scan_type.value,
                    "pages_total": len(urls),
                    "resume_index": checkpoint.next_page_index,
                    "resumed": previous == ScanJobStatus.paused and not restart,
                },
            )

            aggregator = ResultAggregator(checkpoint)
            with self._auditor_factory(scan_type) as auditor:
                outcome = self._run_pages(scan_id, site_id, urls, guard, auditor, aggregator)
            return outcome

        except ScanInfrastructureError as e:
            error_message = f"{type(e).__name__}: {e}"
            logger.error(f"[{scan_id}] Infrastructure failure, scan failed: {error_message}")
            self._fail(scan_id, site_id, error_message)
            return RunOutcome(
                scan_id=scan_id,
                status=ScanJobStatus.failed,
                checkpoint=self._last_checkpoint(scan_id, checkpoint),
                error_message=error_message,
            )
        except Exception as e:
            logger.exception(f"[{scan_id}] Unexpected error, marking scan failed: {e}")
            self._fail(scan_id, site_id, f"Unexpected error: {e}")
            raise

    def _run_pages(
        self,
        scan_id: str,
        site_id: str,
        urls: List[str],
        guard: TimeoutGuard,
        auditor: PageAuditor,
        aggregator: ResultAggregator,
    ) -> RunOutcome:
        checkpoint = aggregator.checkpoint

        for index in range(checkpoint.next_page_index, len(urls)):
            status = self._repo.get_status(scan_id)
            if status != ScanJobStatus.running:
                return self._stand_down(scan_id, status, index, aggregator)

            if guard.expired():
                # The checkpoint of the previous page is already durable.
                self._repo.pause(scan_id)
                logger.warning(
                    f"[{scan_id}] Time budget exhausted after {guard.elapsed_formatted()}; "
                    f"paused at page {index}/{len(urls)}"
                )
                self._record(
                    SCAN_PAUSED,
                    scan_id,
                    site_id,
                    {
                        "reason": "time budget exhausted",
                        "elapsed": guard.elapsed_formatted(),
                        "last_scanned_page_index": checkpoint.last_scanned_page_index,
                        "pages_scanned": checkpoint.pages_scanned,
                    },
                )
                return self._outcome(scan_id, ScanJobStatus.paused, aggregator)

            if self._repo.is_cancel_requested(scan_id):
                self._repo.cancel(scan_id)
                logger.info(f"[{scan_id}] Cancel requested; stopped before page {index}")
                self._record(
                    SCAN_CANCELLED,
                    scan_id,
                    site_id,
                    {
                        "reason": "cancel requested",
                        "last_scanned_page_index": checkpoint.last_scanned_page_index,
                        "pages_scanned": checkpoint.pages_scanned,
                    },
                )
                return self._outcome(scan_id, ScanJobStatus.cancelled, aggregator)

            url = urls[index]
            result = self._audit_page(scan_id, auditor, index, url, len(urls))

            checkpoint = aggregator.add(index, result)
            self._repo.record_page_result(scan_id, index, result)
            self._store.save(scan_id, checkpoint)

        status = self._repo.get_status(scan_id)
        if status != ScanJobStatus.running:
            return self._stand_down(scan_id, status, len(urls), aggregator)

        self._repo.complete(scan_id, aggregator.average_score, aggregator.engine_averages)
        logger.info(
            f"[{scan_id}] Scan completed in {guard.elapsed_formatted()}: "
            f"{checkpoint.pages_succeeded}/{checkpoint.pages_scanned} pages succeeded, "
            f"average score {aggregator.average_score}, worst page {checkpoint.worst_page_url} "
            f"({checkpoint.worst_page_score})"
        )
        self._record(
            SCAN_COMPLETED,
            scan_id,
            site_id,
            {
                "average_score": aggregator.average_score,
                "engine_averages": aggregator.engine_averages,
                "pages_scanned": checkpoint.pages_scanned,
                "pages_failed": checkpoint.pages_failed,
                "total_violations": checkpoint.total_violations_sum,
                "worst_page_url": checkpoint.worst_page_url,
                "worst_page_score": checkpoint.worst_page_score,
                "elapsed": guard.elapsed_formatted(),
            },
        )
        return self._outcome(scan_id, ScanJobStatus.completed, aggregator)

    def _audit_page(self, scan_id: str, auditor: PageAuditor, index: int, url: str, total: int) -> PageResult:
        logger.info(f"[{scan_id}] Auditing page {index + 1}/{total}: {url}")
        try:
            result = auditor.audit(url)
        except AuditError as e:
            logger.warning(f"[{scan_id}] Page {index} failed, continuing: {e}")
            return PageResult.failed(url, str(e))

        logger.info(f"[{scan_id}] Page {index} scored {result.score} ({result.violation_count} violations)")
        return result

    def _stand_down(self, scan_id: str, status: ScanJobStatus, index: int, aggregator: ResultAggregator) -> RunOutcome:
        # Someone else moved the job (stale-scan recovery, for one); it is no
        # longer ours to write to.
        logger.warning(
            f"[{scan_id}] Job is '{status.value}', no longer running; "
            f"runner stops before page {index} without further writes"
        )
        return self._outcome(scan_id, status, aggregator)

    def _outcome(self, scan_id: str, status: ScanJobStatus, aggregator: ResultAggregator) -> RunOutcome:
        return RunOutcome(
            scan_id=scan_id,
            status=status,
            checkpoint=aggregator.checkpoint,
            average_score=aggregator.average_score,
            engine_averages=aggregator.engine_averages,
        )

    def _last_checkpoint(self, scan_id: str, fallback: Checkpoint) -> Checkpoint:
        try:
            return self._store.load(scan_id) or fallback
        except ScanEngineError:
            return fallback

    def _fail(self, scan_id: str, site_id: str, error_message: str) -> None:
        try:
            self._repo.fail(scan_id, error_message)
        except ScanEngineError as e:
            logger.error(f"[{scan_id}] Could not mark scan failed: {e}")
        self._record(SCAN_FAILED, scan_id, site_id, {"error": error_message})

    def _record(self, event: str, scan_id: str, site_id: str, metadata: Dict[str, Any]) -> None:
        if self._activity_log is None:
            return
        try:
            self._activity_log.record(event, scan_id, site_id, metadata)
        except Exception as e:
            logger.error(f"[{scan_id}] Activity log '{event}' dropped: {e}")

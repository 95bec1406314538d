from typing import Dict, Optional

from a11y_portal.features.scan.schemas.audit import PageResult
from a11y_portal.features.scan.schemas.checkpoint import Checkpoint


class ResultAggregator:
    """
    Folds per-page results into the running job aggregates.

    Starts from a checkpoint so a resumed run keeps accumulating onto the
    totals of the pages already processed.
    """

    def __init__(self, checkpoint: Optional[Checkpoint] = None):
        self._checkpoint = checkpoint.model_copy(deep=True) if checkpoint else Checkpoint()

    @property
    def checkpoint(self) -> Checkpoint:
        return self._checkpoint.model_copy(deep=True)

    @property
    def average_score(self) -> Optional[int]:
        return self._checkpoint.average_score

    @property
    def engine_averages(self) -> Dict[str, int]:
        return self._checkpoint.engine_averages

    def add(self, page_index: int, result: PageResult) -> Checkpoint:
        """Fold the result of page `page_index` and return the new checkpoint."""
        cp = self._checkpoint
        cp.last_scanned_page_index = page_index
        cp.pages_scanned += 1

        if not result.succeeded:
            # Errored pages count as scanned but contribute nothing else.
            cp.pages_failed += 1
            return self.checkpoint

        cp.pages_succeeded += 1
        cp.score_sum += result.score
        cp.total_violations_sum += result.violation_count
        cp.severity_breakdown = cp.severity_breakdown.merged(result.severity)
        for engine, score in result.engine_scores.items():
            cp.engine_score_sums[engine] = cp.engine_score_sums.get(engine, 0) + score

        # Strictly lower only: on a tie the earlier page stays the worst.
        if cp.worst_page_score is None or result.score < cp.worst_page_score:
            cp.worst_page_url = result.url
            cp.worst_page_score = result.score
            cp.worst_page_violation_count = result.violation_count
            cp.worst_page_violations = [v.model_dump() for v in result.violations]

        return self.checkpoint

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from a11y_portal.features.scan.schemas.audit import SeverityBreakdown


class Checkpoint(BaseModel):
    """
    Durable snapshot of a scan's progress, written after every page.

    The runner passes this value around explicitly; the progress store is the
    only place it is persisted, always as a whole.
    """
    last_scanned_page_index: int = -1
    pages_scanned: int = 0
    pages_succeeded: int = 0
    pages_failed: int = 0
    score_sum: int = 0
    total_violations_sum: int = 0
    worst_page_url: Optional[str] = None
    worst_page_score: Optional[int] = None
    worst_page_violation_count: int = 0
    worst_page_violations: List[Dict[str, Any]] = Field(default_factory=list)
    severity_breakdown: SeverityBreakdown = Field(default_factory=SeverityBreakdown)
    engine_score_sums: Dict[str, int] = Field(default_factory=dict)

    @property
    def next_page_index(self) -> int:
        return self.last_scanned_page_index + 1

    @property
    def average_score(self) -> Optional[int]:
        if not self.pages_succeeded:
            return None
        return round(self.score_sum / self.pages_succeeded)

    @property
    def engine_averages(self) -> Dict[str, int]:
        if not self.pages_succeeded:
            return {}
        return {
            engine: round(total / self.pages_succeeded)
            for engine, total in self.engine_score_sums.items()
        }

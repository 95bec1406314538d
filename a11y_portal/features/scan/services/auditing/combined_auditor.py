from typing import List

from a11y_portal.features.scan.schemas.audit import PageResult, SeverityBreakdown
from a11y_portal.features.scan.services.auditing.base import PageAuditor
from a11y_portal.platform.exceptions import AuditError


class CombinedAuditor(PageAuditor):
    """
    Runs several engines on the same page and merges their results.

    The page score is the rounded mean of the engine scores. If any engine
    fails on the page, the whole page counts as failed.
    """

    def __init__(self, auditors: List[PageAuditor]):
        if not auditors:
            raise ValueError("CombinedAuditor needs at least one auditor")
        self._auditors = auditors
        self.engine = "+".join(a.engine for a in auditors)

    def setup(self) -> None:
        for auditor in self._auditors:
            auditor.setup()

    def teardown(self) -> None:
        for auditor in self._auditors:
            auditor.teardown()

    def audit(self, url: str) -> PageResult:
        results = []
        for auditor in self._auditors:
            try:
                results.append(auditor.audit(url))
            except AuditError as e:
                raise AuditError(url, f"[{auditor.engine}] {e}") from e

        engine_scores = {}
        categories = {}
        severity = SeverityBreakdown()
        violations = []
        for result in results:
            engine_scores.update(result.engine_scores)
            categories.update(result.category_scores)
            severity = severity.merged(result.severity)
            violations.extend(result.violations)

        return PageResult(
            url=url,
            score=round(sum(r.score for r in results) / len(results)),
            violation_count=sum(r.violation_count for r in results),
            severity=severity,
            violations=violations,
            engine_scores=engine_scores,
            category_scores=categories,
        )

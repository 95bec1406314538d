import json
import shutil
import subprocess
from typing import Any, Dict, List, Optional

from a11y_portal.features.scan.schemas.audit import PageResult, Violation
from a11y_portal.features.scan.services.auditing.base import PageAuditor
from a11y_portal.platform.config import settings
from a11y_portal.platform.exceptions import AuditError, AuditorUnavailableError
from a11y_portal.platform.logger import get_logger

logger = get_logger(__name__)

CATEGORIES = ("accessibility", "performance", "best-practices", "seo")


def _category_score(lhr: Dict[str, Any], category: str) -> int:
    score = (lhr.get("categories", {}).get(category) or {}).get("score")
    return round((score or 0) * 100)


def category_scores(lhr: Dict[str, Any]) -> Dict[str, int]:
    """0-100 score of every requested category present in the report."""
    present = lhr.get("categories", {})
    return {category: _category_score(lhr, category) for category in CATEGORIES if category in present}


def parse_lighthouse_report(url: str, lhr: Dict[str, Any]) -> PageResult:
    """
    Turn a Lighthouse JSON report (lhr) into a PageResult scored on accessibility.

    The other category scores ride along in `category_scores`; they never
    affect the page score.
    """
    if "accessibility" not in lhr.get("categories", {}):
        raise AuditError(url, "Lighthouse report has no accessibility category")

    audits = lhr.get("audits", {})
    accessibility_refs = lhr["categories"]["accessibility"].get("auditRefs", [])

    violations: List[Violation] = []
    for ref in accessibility_refs:
        audit = audits.get(ref.get("id"), {})
        score = audit.get("score")
        if score is None or score >= 1:
            continue
        items = (audit.get("details") or {}).get("items") or []
        violations.append(
            Violation(
                id=ref["id"],
                engine="lighthouse",
                message=audit.get("title", ""),
                nodes=len(items) or 1,
            )
        )

    scores = category_scores(lhr)
    score = scores["accessibility"]
    return PageResult(
        url=url,
        score=score,
        violation_count=len(violations),
        violations=violations,
        engine_scores={"lighthouse": score},
        category_scores=scores,
    )


class LighthouseAuditor(PageAuditor):
    """Runs the Lighthouse CLI against one page per call."""

    engine = "lighthouse"

    def __init__(self, binary: Optional[str] = None, page_timeout: Optional[int] = None):
        self._binary = binary or settings.LIGHTHOUSE_BINARY
        self._page_timeout = page_timeout or settings.AUDIT_PAGE_TIMEOUT_SECONDS
        self._executable: Optional[str] = None

    def setup(self) -> None:
        self._executable = shutil.which(self._binary)
        if not self._executable:
            raise AuditorUnavailableError(f"Lighthouse CLI '{self._binary}' not found on PATH")
        logger.info(f"Lighthouse auditor ready ({self._executable})")

    def _command(self, url: str) -> List[str]:
        return [
            self._executable,
            url,
            "--output=json",
            "--output-path=stdout",
            "--quiet",
            f"--only-categories={','.join(CATEGORIES)}",
            "--chrome-flags=--headless --no-sandbox --disable-dev-shm-usage",
        ]

    def audit(self, url: str) -> PageResult:
        if not self._executable:
            raise AuditorUnavailableError("LighthouseAuditor.setup() was not called")

        try:
            completed = subprocess.run(
                self._command(url),
                capture_output=True,
                text=True,
                timeout=self._page_timeout,
            )
        except subprocess.TimeoutExpired as e:
            raise AuditError(url, f"Lighthouse timed out after {self._page_timeout}s") from e
        except OSError as e:
            raise AuditError(url, f"Lighthouse could not be run: {e}") from e

        if completed.returncode != 0:
            stderr = (completed.stderr or "").strip().splitlines()
            detail = stderr[-1] if stderr else f"exit code {completed.returncode}"
            raise AuditError(url, f"Lighthouse failed: {detail}")

        try:
            lhr = json.loads(completed.stdout)
        except json.JSONDecodeError as e:
            raise AuditError(url, f"Lighthouse returned invalid JSON: {e}") from e

        if lhr.get("runtimeError"):
            raise AuditError(url, f"Lighthouse runtime error: {lhr['runtimeError'].get('message', 'unknown')}")

        return parse_lighthouse_report(url, lhr)

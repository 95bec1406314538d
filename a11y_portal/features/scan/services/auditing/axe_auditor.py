from pathlib import Path
from typing import Any, Dict, Optional

import requests
from selenium import webdriver
from selenium.common.exceptions import TimeoutException, WebDriverException
from selenium.webdriver.chrome.options import Options
from selenium.webdriver.chrome.service import Service

from a11y_portal.features.scan.schemas.audit import PageResult, SeverityBreakdown, Violation
from a11y_portal.features.scan.services.auditing.base import PageAuditor
from a11y_portal.platform.config import settings
from a11y_portal.platform.exceptions import AuditError, AuditorUnavailableError
from a11y_portal.platform.logger import get_logger

logger = get_logger(__name__)

POINTS_PER_VIOLATION = 5

_RUN_AXE_SCRIPT = """
var done = arguments[arguments.length - 1];
axe.run(document)
    .then(function (results) { done(results); })
    .catch(function (err) { done({error: String(err)}); });
"""


def build_driver() -> webdriver.Chrome:
    chrome_options = Options()
    chrome_options.add_argument('--headless')
    chrome_options.add_argument('--no-sandbox')
    chrome_options.add_argument('--disable-dev-shm-usage')

    if settings.CHROMEDRIVER_PATH:
        driver_service = Service(executable_path=settings.CHROMEDRIVER_PATH)
        driver = webdriver.Chrome(service=driver_service, options=chrome_options)
    else:
        driver = webdriver.Chrome(options=chrome_options)

    return driver


def score_from_violations(violation_count: int) -> int:
    return max(0, 100 - violation_count * POINTS_PER_VIOLATION)


def parse_axe_results(url: str, results: Dict[str, Any]) -> PageResult:
    """Turn a raw axe.run() result into a PageResult."""
    severity = SeverityBreakdown()
    violations = []
    for raw in results.get("violations", []):
        nodes = len(raw.get("nodes") or []) or 1
        impact = raw.get("impact") or "minor"
        severity.add(impact, nodes)
        violations.append(
            Violation(
                id=raw.get("id", "unknown"),
                engine="axe",
                impact=impact,
                message=raw.get("help", ""),
                nodes=nodes,
            )
        )

    score = score_from_violations(len(violations))
    return PageResult(
        url=url,
        score=score,
        violation_count=len(violations),
        severity=severity,
        violations=violations,
        engine_scores={"axe": score},
    )


class AxeAuditor(PageAuditor):
    """Runs axe-core inside a fresh headless Chrome for every page."""

    engine = "axe"

    def __init__(self, axe_source: Optional[str] = None, page_timeout: Optional[int] = None):
        self._axe_source = axe_source
        self._page_timeout = page_timeout or settings.AUDIT_PAGE_TIMEOUT_SECONDS

    def setup(self) -> None:
        if self._axe_source is None:
            self._axe_source = self._load_axe_source()

        # A browser that cannot start at all is a capability failure, not a page failure.
        try:
            driver = build_driver()
        except WebDriverException as e:
            raise AuditorUnavailableError(f"Chrome could not be started for Axe audits: {e.msg or e}") from e
        driver.quit()
        logger.info("Axe auditor ready")

    @staticmethod
    def _load_axe_source() -> str:
        if settings.AXE_CORE_PATH:
            try:
                return Path(settings.AXE_CORE_PATH).read_text(encoding="utf-8")
            except OSError as e:
                raise AuditorUnavailableError(f"Cannot read axe-core from {settings.AXE_CORE_PATH}: {e}") from e

        try:
            response = requests.get(settings.AXE_CORE_URL, timeout=30)
            response.raise_for_status()
        except requests.RequestException as e:
            raise AuditorUnavailableError(f"Cannot download axe-core from {settings.AXE_CORE_URL}: {e}") from e
        return response.text

    def audit(self, url: str) -> PageResult:
        if self._axe_source is None:
            raise AuditorUnavailableError("AxeAuditor.setup() was not called")

        try:
            driver = build_driver()
        except WebDriverException as e:
            raise AuditError(url, f"Chrome failed to start: {e.msg or e}") from e

        try:
            driver.set_page_load_timeout(self._page_timeout)
            driver.set_script_timeout(self._page_timeout)
            driver.get(url)
            driver.execute_script(self._axe_source)
            results = driver.execute_async_script(_RUN_AXE_SCRIPT)
        except TimeoutException as e:
            raise AuditError(url, f"Axe audit timed out after {self._page_timeout}s") from e
        except WebDriverException as e:
            raise AuditError(url, f"Axe audit failed: {e.msg or e}") from e
        finally:
            driver.quit()

        if not isinstance(results, dict) or "error" in results:
            error = results.get("error") if isinstance(results, dict) else "no result returned"
            raise AuditError(url, f"axe.run() failed: {error}")

        return parse_axe_results(url, results)

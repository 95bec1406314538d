import json
import subprocess
from unittest.mock import MagicMock, patch

import pytest
import requests
from selenium.common.exceptions import TimeoutException, WebDriverException

from a11y_portal.features.scan.models.scan_job import ScanType
from a11y_portal.features.scan.schemas.audit import PageResult, SeverityBreakdown
from a11y_portal.features.scan.services.auditing import registry
from a11y_portal.features.scan.services.auditing.axe_auditor import (
    AxeAuditor,
    parse_axe_results,
    score_from_violations,
)
from a11y_portal.features.scan.services.auditing.base import PageAuditor
from a11y_portal.features.scan.services.auditing.combined_auditor import CombinedAuditor
from a11y_portal.features.scan.services.auditing.lighthouse_auditor import (
    LighthouseAuditor,
    parse_lighthouse_report,
)
from a11y_portal.platform.exceptions import AuditError, AuditorUnavailableError

URL = "https://example.org/about"
AXE_MODULE = "a11y_portal.features.scan.services.auditing.axe_auditor"
LIGHTHOUSE_MODULE = "a11y_portal.features.scan.services.auditing.lighthouse_auditor"

AXE_RESULTS = {
    "violations": [
        {"id": "image-alt", "impact": "critical", "help": "Images must have alternate text", "nodes": [{}, {}]},
        {"id": "color-contrast", "impact": "serious", "help": "Elements must have sufficient color contrast", "nodes": [{}]},
        {"id": "region", "impact": None, "help": "All page content should be contained by landmarks", "nodes": []},
    ]
}

LIGHTHOUSE_REPORT = {
    "categories": {
        "accessibility": {
            "score": 0.87,
            "auditRefs": [{"id": "image-alt"}, {"id": "color-contrast"}, {"id": "html-has-lang"}, {"id": "video-caption"}],
        },
        "performance": {"score": 0.5, "auditRefs": [{"id": "speed-index"}]},
    },
    "audits": {
        "image-alt": {"score": 0, "title": "Image elements do not have [alt] attributes", "details": {"items": [{}, {}, {}]}},
        "color-contrast": {"score": 0.5, "title": "Low contrast"},
        "html-has-lang": {"score": 1, "title": "<html> has a [lang] attribute"},
        "video-caption": {"score": None, "title": "Not applicable"},
        "speed-index": {"score": 0.1, "title": "Speed Index"},
    },
}


# ── Axe ─────────────────────────────────────────


def test_axe_score_is_five_points_per_rule():
    assert score_from_violations(0) == 100
    assert score_from_violations(3) == 85
    assert score_from_violations(25) == 0
    assert score_from_violations(40) == 0


def test_parse_axe_results():
    result = parse_axe_results(URL, AXE_RESULTS)

    assert result.score == 85
    assert result.violation_count == 3
    assert result.severity == SeverityBreakdown(critical=2, serious=1, minor=1)
    assert result.engine_scores == {"axe": 85}
    assert [v.impact for v in result.violations] == ["critical", "serious", "minor"]
    assert result.succeeded


def test_axe_audit_runs_in_fresh_driver():
    driver = MagicMock()
    driver.execute_async_script.return_value = AXE_RESULTS

    with patch(f"{AXE_MODULE}.build_driver", return_value=driver):
        result = AxeAuditor(axe_source="/* axe */", page_timeout=15).audit(URL)

    assert result.score == 85
    driver.get.assert_called_once_with(URL)
    driver.execute_script.assert_called_once_with("/* axe */")
    driver.set_page_load_timeout.assert_called_once_with(15)
    driver.quit.assert_called_once()


def test_axe_page_timeout_is_a_page_error():
    driver = MagicMock()
    driver.get.side_effect = TimeoutException("page load timeout")

    with patch(f"{AXE_MODULE}.build_driver", return_value=driver):
        with pytest.raises(AuditError) as exc:
            AxeAuditor(axe_source="/* axe */", page_timeout=15).audit(URL)

    assert exc.value.url == URL
    assert "timed out" in str(exc.value)
    driver.quit.assert_called_once()


def test_axe_script_error_is_a_page_error():
    driver = MagicMock()
    driver.execute_async_script.return_value = {"error": "axe is not defined"}

    with patch(f"{AXE_MODULE}.build_driver", return_value=driver):
        with pytest.raises(AuditError, match="axe is not defined"):
            AxeAuditor(axe_source="/* axe */").audit(URL)


def test_axe_setup_without_browser_is_fatal():
    with patch(f"{AXE_MODULE}.build_driver", side_effect=WebDriverException("chromedriver not found")):
        with pytest.raises(AuditorUnavailableError, match="chromedriver not found"):
            AxeAuditor(axe_source="/* axe */").setup()


def test_axe_setup_without_axe_source_is_fatal():
    with patch(f"{AXE_MODULE}.settings") as settings, \
         patch(f"{AXE_MODULE}.requests.get", side_effect=requests.ConnectionError("offline")):
        settings.AXE_CORE_PATH = None
        settings.AXE_CORE_URL = "https://cdn.example/axe.min.js"
        settings.AUDIT_PAGE_TIMEOUT_SECONDS = 60
        with pytest.raises(AuditorUnavailableError, match="offline"):
            AxeAuditor().setup()


def test_axe_setup_reads_local_axe_core(tmp_path):
    axe_file = tmp_path / "axe.min.js"
    axe_file.write_text("window.axe = {};", encoding="utf-8")
    driver = MagicMock()
    driver.execute_async_script.return_value = {"violations": []}

    with patch(f"{AXE_MODULE}.settings") as settings, \
         patch(f"{AXE_MODULE}.build_driver", return_value=driver):
        settings.AXE_CORE_PATH = str(axe_file)
        settings.AUDIT_PAGE_TIMEOUT_SECONDS = 60
        auditor = AxeAuditor()
        auditor.setup()
        result = auditor.audit(URL)

    driver.execute_script.assert_called_with("window.axe = {};")
    assert result.score == 100


# ── Lighthouse ──────────────────────────────────


def test_parse_lighthouse_report():
    result = parse_lighthouse_report(URL, LIGHTHOUSE_REPORT)

    assert result.score == 87
    assert result.engine_scores == {"lighthouse": 87}
    assert [v.id for v in result.violations] == ["image-alt", "color-contrast"]
    assert result.violations[0].nodes == 3
    assert result.violations[0].engine == "lighthouse"
    assert result.violation_count == 2
    assert result.category_scores == {"accessibility": 87, "performance": 50}


def test_lighthouse_report_without_accessibility_category():
    with pytest.raises(AuditError):
        parse_lighthouse_report(URL, {"categories": {"performance": {"score": 1}}})


def _lighthouse_auditor():
    auditor = LighthouseAuditor(binary="lighthouse", page_timeout=30)
    with patch(f"{LIGHTHOUSE_MODULE}.shutil.which", return_value="/usr/bin/lighthouse"):
        auditor.setup()
    return auditor


def test_lighthouse_audit_parses_cli_output():
    completed = subprocess.CompletedProcess(args=[], returncode=0, stdout=json.dumps(LIGHTHOUSE_REPORT), stderr="")

    with patch(f"{LIGHTHOUSE_MODULE}.subprocess.run", return_value=completed) as run:
        result = _lighthouse_auditor().audit(URL)

    assert result.score == 87
    command = run.call_args.args[0]
    assert command[:2] == ["/usr/bin/lighthouse", URL]
    assert "--only-categories=accessibility,performance,best-practices,seo" in command
    assert "--output=json" in command
    assert run.call_args.kwargs["timeout"] == 30


def test_lighthouse_failures_are_page_errors():
    auditor = _lighthouse_auditor()

    failed = subprocess.CompletedProcess(args=[], returncode=1, stdout="", stderr="Runtime error\nERR_NAME_NOT_RESOLVED")
    with patch(f"{LIGHTHOUSE_MODULE}.subprocess.run", return_value=failed):
        with pytest.raises(AuditError, match="ERR_NAME_NOT_RESOLVED"):
            auditor.audit(URL)

    with patch(f"{LIGHTHOUSE_MODULE}.subprocess.run", side_effect=subprocess.TimeoutExpired(cmd="lighthouse", timeout=30)):
        with pytest.raises(AuditError, match="timed out"):
            auditor.audit(URL)

    garbage = subprocess.CompletedProcess(args=[], returncode=0, stdout="not json", stderr="")
    with patch(f"{LIGHTHOUSE_MODULE}.subprocess.run", return_value=garbage):
        with pytest.raises(AuditError, match="invalid JSON"):
            auditor.audit(URL)


def test_lighthouse_missing_binary_is_fatal():
    with patch(f"{LIGHTHOUSE_MODULE}.shutil.which", return_value=None):
        with pytest.raises(AuditorUnavailableError):
            LighthouseAuditor(binary="lighthouse").setup()


# ── Combined / registry ─────────────────────────


class StubAuditor(PageAuditor):
    def __init__(self, engine, score=None, error=None):
        self.engine = engine
        self._score = score
        self._error = error
        self.setup_calls = 0
        self.categories = {}

    def setup(self):
        self.setup_calls += 1

    def audit(self, url):
        if self._error:
            raise AuditError(url, self._error)
        result = PageResult(
            url=url,
            score=self._score,
            violation_count=1,
            engine_scores={self.engine: self._score},
            category_scores=self.categories,
        )
        result.severity.add("moderate", 2)
        return result


def test_combined_auditor_averages_engines():
    lighthouse, axe = StubAuditor("lighthouse", 90), StubAuditor("axe", 75)
    combined = CombinedAuditor([lighthouse, axe])

    with combined:
        result = combined.audit(URL)

    assert lighthouse.setup_calls == axe.setup_calls == 1
    assert result.score == 82
    assert result.engine_scores == {"lighthouse": 90, "axe": 75}
    assert result.violation_count == 2
    assert result.severity.moderate == 4


def test_combined_auditor_fails_page_when_any_engine_fails():
    combined = CombinedAuditor([StubAuditor("lighthouse", 90), StubAuditor("axe", error="chrome crashed")])

    with pytest.raises(AuditError, match=r"\[axe\] chrome crashed"):
        combined.audit(URL)


def test_registry_resolves_each_scan_type():
    assert isinstance(registry.get_page_auditor(ScanType.axe), AxeAuditor)
    assert isinstance(registry.get_page_auditor(ScanType.lighthouse), LighthouseAuditor)
    both = registry.get_page_auditor(ScanType.both)
    assert isinstance(both, CombinedAuditor)
    assert both.engine == "lighthouse+axe"


def test_register_auditor_replaces_variant():
    original = registry._FACTORIES[ScanType.axe]
    try:
        registry.register_auditor(ScanType.axe, lambda: StubAuditor("axe", 100))
        assert isinstance(registry.get_page_auditor(ScanType.axe), StubAuditor)
    finally:
        registry.register_auditor(ScanType.axe, original)


def test_combined_auditor_keeps_lighthouse_categories():
    lighthouse = StubAuditor("lighthouse", 90)
    lighthouse.categories = {"accessibility": 90, "performance": 41, "seo": 100}
    combined = CombinedAuditor([lighthouse, StubAuditor("axe", 80)])

    result = combined.audit(URL)

    assert result.score == 85
    assert result.category_scores == {"accessibility": 90, "performance": 41, "seo": 100}

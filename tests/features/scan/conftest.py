import pytest

from a11y_portal.features.scan.models.scan_job import ScanType
from a11y_portal.features.scan.services.orchestration.multi_page_runner import MultiPageRunner
from a11y_portal.features.scan.services.timeout.timeout_guard import TimeoutGuard

from scan_fakes import (
    SCAN_ID,
    SITE_ID,
    FakeClock,
    InMemoryProgressStore,
    InMemoryScanJobRepository,
    ScriptedAuditor,
    page_urls,
)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store():
    return InMemoryProgressStore()


@pytest.fixture
def repo():
    return InMemoryScanJobRepository()


@pytest.fixture
def activity():
    class RecordingActivityLog:
        def __init__(self):
            self.events = []

        def record(self, event, scan_id, site_id=None, metadata=None):
            self.events.append((event, metadata or {}))

    return RecordingActivityLog()


@pytest.fixture
def run_scan(store, repo, activity, clock):
    """Run the runner over `len(scores)` pages with a ScriptedAuditor."""
    def _run(scores, budget_hours=2.0, restart=False, **auditor_kwargs):
        auditor = ScriptedAuditor(scores, **auditor_kwargs)
        runner = MultiPageRunner(store, repo, lambda scan_type: auditor, activity)
        guard = TimeoutGuard(budget_hours, clock=clock)
        outcome = runner.run(SCAN_ID, SITE_ID, ScanType.axe, page_urls(len(scores)), guard, restart=restart)
        return outcome, auditor

    return _run

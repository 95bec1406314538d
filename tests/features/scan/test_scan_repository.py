import pytest
from sqlalchemy import select

from a11y_portal.features.scan.models.page_scan_result import PageScanResult, PageScanStatus
from a11y_portal.features.scan.models.scan_job import ScanJob, ScanJobStatus
from a11y_portal.features.scan.schemas.audit import PageResult, Violation
from a11y_portal.features.scan.services.scan.scan_repository import SqlScanJobRepository
from a11y_portal.features.sites.models.site import Site
from a11y_portal.platform.exceptions import InvalidScanTransition, ScanNotFoundError


@pytest.fixture
def repository(session_factory):
    return SqlScanJobRepository(session_factory)


def _load(session_factory, model, row_id):
    db = session_factory()
    try:
        return db.execute(select(model).where(model.id == row_id)).scalar_one()
    finally:
        db.close()


def test_start_pending_scan(repository, make_scan, session_factory):
    job = make_scan()

    previous = repository.start(job.id)

    row = _load(session_factory, ScanJob, job.id)
    assert previous == ScanJobStatus.pending
    assert row.status == ScanJobStatus.running
    assert row.started_at is not None


def test_resume_keeps_original_started_at(repository, make_scan, session_factory):
    job = make_scan()
    repository.start(job.id)
    first_start = _load(session_factory, ScanJob, job.id).started_at
    repository.pause(job.id)
    assert _load(session_factory, ScanJob, job.id).paused_at is not None

    assert repository.start(job.id) == ScanJobStatus.paused

    row = _load(session_factory, ScanJob, job.id)
    assert row.started_at == first_start
    assert row.paused_at is None


def test_illegal_transition_is_refused(repository, make_scan, session_factory):
    job = make_scan(status=ScanJobStatus.completed)

    with pytest.raises(InvalidScanTransition):
        repository.start(job.id)

    assert _load(session_factory, ScanJob, job.id).status == ScanJobStatus.completed


def test_pending_scan_cannot_complete_directly(repository, make_scan):
    job = make_scan()

    with pytest.raises(InvalidScanTransition):
        repository.complete(job.id, 90, {"axe": 90})


def test_fail_stores_error_message(repository, make_scan, session_factory):
    job = make_scan(status=ScanJobStatus.running)

    repository.fail(job.id, "AuditorUnavailableError: chromedriver not found")

    row = _load(session_factory, ScanJob, job.id)
    assert row.status == ScanJobStatus.failed
    assert row.error_message == "AuditorUnavailableError: chromedriver not found"
    assert row.completed_at is not None


def test_complete_copies_scores_to_site(repository, make_site, make_scan, session_factory):
    site = make_site()
    job = make_scan(status=ScanJobStatus.running, site=site)

    repository.complete(job.id, 75, {"axe": 80, "lighthouse": 70})

    row = _load(session_factory, ScanJob, job.id)
    assert row.status == ScanJobStatus.completed
    assert (row.average_score, row.axe_score, row.lighthouse_score) == (75, 80, 70)
    site_row = _load(session_factory, Site, site.id)
    assert site_row.axe_score == 80
    assert site_row.lighthouse_score == 70
    assert site_row.axe_last_updated is not None


def test_cancel_flag(repository, make_scan):
    job = make_scan(status=ScanJobStatus.running, cancel_requested=True)
    other = make_scan()

    assert repository.is_cancel_requested(job.id) is True
    assert repository.is_cancel_requested(other.id) is False


def test_unknown_scan(repository):
    with pytest.raises(ScanNotFoundError):
        repository.get_status("missing")
    with pytest.raises(ScanNotFoundError):
        repository.start("missing")


def test_page_result_recorded_once_per_index(repository, make_scan, session_factory):
    job = make_scan(status=ScanJobStatus.running)
    url = "https://example.org/page-0"

    repository.record_page_result(job.id, 0, PageResult.failed(url, "timeout"))
    repository.record_page_result(
        job.id,
        0,
        PageResult(
            url=url,
            score=85,
            violation_count=1,
            violations=[Violation(id="color-contrast", engine="axe", impact="serious", nodes=3)],
            engine_scores={"axe": 85, "lighthouse": 90},
            category_scores={"accessibility": 90, "seo": 72},
        ),
    )

    db = session_factory()
    try:
        rows = db.execute(select(PageScanResult).where(PageScanResult.scan_job_id == job.id)).scalars().all()
    finally:
        db.close()
    assert len(rows) == 1
    assert rows[0].status == PageScanStatus.success
    assert rows[0].score == 85
    assert rows[0].violations[0]["id"] == "color-contrast"
    assert rows[0].category_scores == {"accessibility": 90, "seo": 72}


def test_clear_page_results(repository, make_scan, session_factory):
    job = make_scan(status=ScanJobStatus.paused)
    for index in range(2):
        repository.record_page_result(job.id, index, PageResult.failed(f"https://example.org/page-{index}", "x"))

    repository.clear_page_results(job.id)

    db = session_factory()
    try:
        assert db.query(PageScanResult).filter(PageScanResult.scan_job_id == job.id).count() == 0
    finally:
        db.close()

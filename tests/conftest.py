"""
Test configuration and fixtures for the A11y Portal API.

Every test runs against a throw-away SQLite file; the schema is created once
per session and the tables are emptied after each test.
"""

import os
import tempfile
from typing import Generator

from dotenv import load_dotenv

import pytest
from fastapi.testclient import TestClient

load_dotenv()

test_db_url = os.getenv("TEST_DATABASE_URL")
if test_db_url:
    if "postgresql://" in test_db_url and "asyncpg" not in test_db_url:
        test_db_url = test_db_url.replace("postgresql://", "postgresql+asyncpg://")
    os.environ["DATABASE_URL"] = test_db_url
else:
    test_db_path = tempfile.mktemp(suffix=".db")
    os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{test_db_path}"

from a11y_portal.features.activity.models.activity_log import ActivityLog  # noqa: E402
from a11y_portal.features.scan.models import PageScanResult, ScanJob, ScanJobStatus, ScanType  # noqa: E402
from a11y_portal.features.sites.models.site import Site  # noqa: E402
from a11y_portal.platform.db.base import Base  # noqa: E402
from a11y_portal.platform.db.session import get_sync_session_factory  # noqa: E402


@pytest.fixture(scope="session")
def session_factory():
    factory = get_sync_session_factory()
    Base.metadata.create_all(bind=factory.kw["bind"])
    return factory


@pytest.fixture(autouse=True)
def _clean_tables(session_factory):
    yield
    db = session_factory()
    try:
        for model in (ActivityLog, PageScanResult, ScanJob, Site):
            db.query(model).delete()
        db.commit()
    finally:
        db.close()


@pytest.fixture
def make_site(session_factory):
    def _make(url="https://example.org", sitemap_url="https://example.org/sitemap.xml", title="Example"):
        db = session_factory()
        try:
            site = Site(url=url, sitemap_url=sitemap_url, title=title)
            db.add(site)
            db.commit()
            return site
        finally:
            db.close()

    return _make


@pytest.fixture
def make_scan(session_factory, make_site):
    """Insert a scan job row; extra keyword arguments are set as columns."""
    def _make(pages=3, status=ScanJobStatus.pending, scan_type=ScanType.axe, site=None, **columns):
        site = site or make_site()
        urls = [f"{site.url}/page-{i}" for i in range(pages)]
        db = session_factory()
        try:
            job = ScanJob(
                site_id=site.id,
                scan_type=scan_type,
                status=status,
                page_urls=urls,
                pages_total=len(urls),
                **columns,
            )
            db.add(job)
            db.commit()
            return job
        finally:
            db.close()

    return _make


@pytest.fixture(scope="session")
def test_app(session_factory):
    """Create FastAPI test application."""
    from a11y_portal.main import app

    return app


@pytest.fixture(scope="function")
def client(test_app) -> Generator[TestClient, None, None]:
    """
    Create a test client for making HTTP requests.
    This fixture provides a clean TestClient instance for each test function,
    ensuring proper isolation between tests.
    """
    with TestClient(test_app) as test_client:
        yield test_client

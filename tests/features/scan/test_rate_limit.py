import pytest

from a11y_portal.features.scan.models.scan_job import ScanType
from a11y_portal.features.scan.services.scan.rate_limit import scan_rate_limit, scan_weight
from a11y_portal.platform.config import settings


@pytest.mark.parametrize("environment, expected", [("production", 10), ("staging", 50), ("local", 50)])
def test_default_limit_follows_environment(monkeypatch, environment, expected):
    monkeypatch.setattr(settings, "SCAN_RATE_LIMIT_PER_HOUR", None)
    monkeypatch.setattr(settings, "ENVIRONMENT", environment)

    assert scan_rate_limit() == expected


def test_configured_limit_wins(monkeypatch):
    monkeypatch.setattr(settings, "SCAN_RATE_LIMIT_PER_HOUR", 4)
    monkeypatch.setattr(settings, "ENVIRONMENT", "production")

    assert scan_rate_limit() == 4


def test_both_engines_weigh_double():
    assert scan_weight(ScanType.both) == 2
    assert scan_weight(ScanType.axe) == 1
    assert scan_weight(ScanType.lighthouse) == 1

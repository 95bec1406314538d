"""
Scan models package.
"""
from a11y_portal.features.sites.models.site import Site  # noqa: F401  (ScanJob.site relationship)
from a11y_portal.features.scan.models.scan_job import ScanJob, ScanJobStatus, ScanType
from a11y_portal.features.scan.models.page_scan_result import PageScanResult, PageScanStatus

__all__ = ["ScanJob", "ScanJobStatus", "ScanType", "PageScanResult", "PageScanStatus"]

from typing import Callable, Dict

from a11y_portal.features.scan.models.scan_job import ScanType
from a11y_portal.features.scan.services.auditing.axe_auditor import AxeAuditor
from a11y_portal.features.scan.services.auditing.base import PageAuditor
from a11y_portal.features.scan.services.auditing.combined_auditor import CombinedAuditor
from a11y_portal.features.scan.services.auditing.lighthouse_auditor import LighthouseAuditor

AuditorFactory = Callable[[], PageAuditor]

_FACTORIES: Dict[ScanType, AuditorFactory] = {
    ScanType.lighthouse: LighthouseAuditor,
    ScanType.axe: AxeAuditor,
    ScanType.both: lambda: CombinedAuditor([LighthouseAuditor(), AxeAuditor()]),
}


def register_auditor(scan_type: ScanType, factory: AuditorFactory) -> None:
    _FACTORIES[scan_type] = factory


def get_page_auditor(scan_type: ScanType) -> PageAuditor:
    try:
        factory = _FACTORIES[scan_type]
    except KeyError:
        raise ValueError(f"No auditor registered for scan type '{scan_type}'")
    return factory()

from typing import Dict, FrozenSet

from a11y_portal.features.scan.models.scan_job import ScanJobStatus
from a11y_portal.platform.exceptions import InvalidScanTransition

ALLOWED_TRANSITIONS: Dict[ScanJobStatus, FrozenSet[ScanJobStatus]] = {
    ScanJobStatus.pending: frozenset({ScanJobStatus.running}),
    ScanJobStatus.running: frozenset({
        ScanJobStatus.completed,
        ScanJobStatus.failed,
        ScanJobStatus.paused,
        ScanJobStatus.cancelled,
    }),
    ScanJobStatus.paused: frozenset({ScanJobStatus.running}),
    ScanJobStatus.completed: frozenset(),
    ScanJobStatus.failed: frozenset(),
    ScanJobStatus.cancelled: frozenset(),
}

FINAL_STATUSES = frozenset({ScanJobStatus.completed, ScanJobStatus.failed, ScanJobStatus.cancelled})
RUNNABLE_STATUSES = frozenset({ScanJobStatus.pending, ScanJobStatus.paused})
CANCELLABLE_STATUSES = frozenset({ScanJobStatus.pending, ScanJobStatus.running})


def can_transition(current: ScanJobStatus, target: ScanJobStatus) -> bool:
    return target in ALLOWED_TRANSITIONS[current]


def ensure_transition(scan_id: str, current: ScanJobStatus, target: ScanJobStatus) -> None:
    if not can_transition(current, target):
        raise InvalidScanTransition(scan_id, current, target)


def is_final(status: ScanJobStatus) -> bool:
    return status in FINAL_STATUSES

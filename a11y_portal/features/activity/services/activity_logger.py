from typing import Any, Callable, Dict, Optional

from sqlalchemy.orm import Session

from a11y_portal.features.activity.models.activity_log import ActivityLog, ActivitySeverity
from a11y_portal.platform.logger import get_logger

logger = get_logger(__name__)

SCAN_STARTED = "scan_started"
SCAN_COMPLETED = "scan_completed"
SCAN_FAILED = "scan_failed"
SCAN_PAUSED = "scan_paused"
SCAN_CANCELLED = "scan_cancelled"

_EVENTS = {
    SCAN_STARTED: (ActivitySeverity.info, "Scan started"),
    SCAN_COMPLETED: (ActivitySeverity.info, "Scan completed"),
    SCAN_FAILED: (ActivitySeverity.error, "Scan failed"),
    SCAN_PAUSED: (ActivitySeverity.warning, "Scan paused"),
    SCAN_CANCELLED: (ActivitySeverity.warning, "Scan cancelled"),
}


class ActivityLogger:
    """
    Best-effort sink for scan lifecycle events.

    Writing to the activity log must never change how a scan ends, so every
    failure here is logged and dropped.
    """

    def __init__(self, session_factory: Callable[[], Session]):
        self._session_factory = session_factory

    def record(
        self,
        event: str,
        scan_id: str,
        site_id: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> None:
        severity, description = _EVENTS.get(event, (ActivitySeverity.info, event.replace("_", " ").capitalize()))
        metadata = metadata or {}
        if metadata.get("error"):
            description = f"{description}: {metadata['error']}"
        elif metadata.get("reason"):
            description = f"{description} ({metadata['reason']})"

        db = None
        try:
            db = self._session_factory()
            db.add(
                ActivityLog(
                    event_type=event,
                    event_description=description,
                    entity_type="scan",
                    entity_id=scan_id,
                    site_id=site_id,
                    event_metadata=metadata,
                    severity=severity,
                )
            )
            db.commit()
        except Exception as e:
            logger.error(f"[{scan_id}] Failed to record activity '{event}': {e}")
            if db is not None:
                db.rollback()
        finally:
            if db is not None:
                db.close()

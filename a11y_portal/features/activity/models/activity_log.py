import enum

from sqlalchemy import JSON, Column, Enum, String, Text

from a11y_portal.platform.db.base import BaseModel


class ActivitySeverity(enum.Enum):
    info = "info"
    warning = "warning"
    error = "error"


class ActivityLog(BaseModel):
    """Append-only record of scan lifecycle events."""
    __tablename__ = "activity_log"

    event_type = Column(String(64), nullable=False, index=True)
    event_description = Column(Text, nullable=False)
    entity_type = Column(String(32), nullable=False, default="scan")
    entity_id = Column(String, nullable=True, index=True)
    site_id = Column(String, nullable=True, index=True)
    # "metadata" is reserved on declarative classes
    event_metadata = Column("metadata", JSON, nullable=True)
    severity = Column(Enum(ActivitySeverity), default=ActivitySeverity.info, nullable=False)

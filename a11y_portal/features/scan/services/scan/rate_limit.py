"""
Per-site scan rate limit.

Counted from the scan_jobs table over a rolling hour, so every API process
sees the same quota. A `both` scan runs two engines and counts twice.
"""
from datetime import datetime, timedelta, timezone
from typing import Optional, Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from a11y_portal.features.scan.models.scan_job import ScanJob, ScanType
from a11y_portal.platform.config import settings

WINDOW = timedelta(hours=1)


def scan_rate_limit() -> int:
    if settings.SCAN_RATE_LIMIT_PER_HOUR is not None:
        return settings.SCAN_RATE_LIMIT_PER_HOUR
    return 10 if settings.ENVIRONMENT == "production" else 50


def scan_weight(scan_type: ScanType) -> int:
    return 2 if scan_type == ScanType.both else 1


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


async def check_scan_rate_limit(
    db: AsyncSession,
    site_id: str,
    now: Optional[datetime] = None,
) -> Tuple[bool, int, datetime]:
    """
    Check whether another scan may start for the site.

    Returns:
        (is_allowed, remaining, reset_time) tuple. `reset_time` is when the
        oldest scan in the window stops counting.
    """
    now = now or datetime.now(timezone.utc)
    result = await db.execute(
        select(ScanJob.scan_type, ScanJob.created_at)
        .where(ScanJob.site_id == site_id, ScanJob.created_at > now - WINDOW)
        .order_by(ScanJob.created_at)
    )
    recent = result.all()

    limit = scan_rate_limit()
    used = sum(scan_weight(scan_type) for scan_type, _ in recent)
    remaining = max(0, limit - used)
    reset_time = _as_utc(recent[0].created_at) + WINDOW if recent else now + WINDOW

    return used < limit, remaining, reset_time

"""Status overview API for dashboard."""
from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..models import Monitor, MonitorStats
from ..schemas.status import StatusOverview, MonitorSummary
from .monitors import get_requester

router = APIRouter(prefix="/api/status", tags=["status"])


@router.get("/overview", response_model=StatusOverview)
async def get_status_overview(
    db: AsyncSession = Depends(get_db),
    requester: Optional[str] = Depends(get_requester),
):
    """Get dashboard overview data from the stored aggregates."""
    query = (
        select(Monitor, MonitorStats)
        .outerjoin(MonitorStats, MonitorStats.monitor_id == Monitor.id)
        .order_by(Monitor.name)
    )
    if requester is not None:
        query = query.where(Monitor.owner_id == requester)
    rows = (await db.execute(query)).all()

    counts = {"UP": 0, "DOWN": 0, "ERROR": 0, "UNKNOWN": 0}
    summaries = []
    total_uptime = 0.0

    for monitor, stats in rows:
        status = stats.last_status if stats else "UNKNOWN"
        counts[status if status in counts else "UNKNOWN"] += 1
        uptime = stats.uptime_percentage if stats else 0.0
        total_uptime += uptime

        summaries.append(MonitorSummary(
            id=monitor.id,
            name=monitor.name,
            url=monitor.url,
            is_active=bool(monitor.is_active),
            status=status,
            uptime_percentage=round(uptime, 2),
            avg_response_time=round(stats.avg_response_time, 2) if stats else 0.0,
            last_check=stats.last_check_time.isoformat() if stats else None,
        ))

    overall_uptime = (total_uptime / len(rows)) if rows else 0

    return StatusOverview(
        total_monitors=len(rows),
        monitors_up=counts["UP"],
        monitors_down=counts["DOWN"],
        monitors_error=counts["ERROR"],
        monitors_unknown=counts["UNKNOWN"],
        overall_uptime=round(overall_uptime, 2),
        monitors=summaries,
    )

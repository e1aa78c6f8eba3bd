"""Monitor API endpoints: CRUD, pause/resume, instant checks and history."""
from typing import List, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query
from sqlalchemy import select, delete, func
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..exceptions import MonitorInactiveError, MonitorNotFoundError
from ..models import Monitor, MonitorStats, UptimeCheck
from ..schemas.monitor import (
    MonitorCreate,
    MonitorResponse,
    MonitorStatsResponse,
    CheckResponse,
    MonitorWithStats,
    ToggleResponse,
)
from ..schemas.status import ResultsPage
from ..services.scheduler import RoundScheduler, round_scheduler
from ..utils.db_utils import retry_on_lock

router = APIRouter(prefix="/api/monitors", tags=["monitors"])

RECENT_CHECKS = 10


def get_requester(x_user_id: Optional[str] = Header(default=None)) -> Optional[str]:
    """Owner id forwarded by the authentication layer, if any."""
    return x_user_id


def get_round_scheduler() -> RoundScheduler:
    return round_scheduler


async def _get_owned_monitor(db: AsyncSession, monitor_id: int, requester: Optional[str]) -> Monitor:
    monitor = await db.get(Monitor, monitor_id)
    if not monitor or (requester is not None and monitor.owner_id != requester):
        raise HTTPException(status_code=404, detail="Monitor not found or access denied")
    return monitor


async def _monitor_with_stats(db: AsyncSession, monitor: Monitor) -> MonitorWithStats:
    stats_result = await db.execute(
        select(MonitorStats).where(MonitorStats.monitor_id == monitor.id)
    )
    stats = stats_result.scalar_one_or_none()

    checks_result = await db.execute(
        select(UptimeCheck)
        .where(UptimeCheck.monitor_id == monitor.id)
        .order_by(UptimeCheck.checked_at.desc(), UptimeCheck.id.desc())
        .limit(RECENT_CHECKS)
    )
    recent = checks_result.scalars().all()

    return MonitorWithStats(
        id=monitor.id,
        name=monitor.name,
        url=monitor.url,
        is_active=bool(monitor.is_active),
        check_interval=monitor.check_interval,
        created_at=monitor.created_at,
        stats=MonitorStatsResponse.model_validate(stats) if stats else MonitorStatsResponse(),
        recent_checks=[CheckResponse.model_validate(c) for c in recent],
    )


@router.get("", response_model=List[MonitorWithStats])
async def list_monitors(
    db: AsyncSession = Depends(get_db),
    requester: Optional[str] = Depends(get_requester),
):
    """List monitors with their stats and most recent checks."""
    query = select(Monitor).order_by(Monitor.created_at, Monitor.id)
    if requester is not None:
        query = query.where(Monitor.owner_id == requester)
    result = await db.execute(query)

    return [await _monitor_with_stats(db, m) for m in result.scalars().all()]


@router.post("", response_model=MonitorResponse, status_code=201)
async def create_monitor(
    monitor: MonitorCreate,
    db: AsyncSession = Depends(get_db),
    requester: Optional[str] = Depends(get_requester),
):
    """Create a new, active monitor. Stats appear with its first check."""
    db_monitor = Monitor(
        owner_id=requester,
        name=monitor.name,
        url=monitor.url,
        check_interval=monitor.check_interval,
        is_active=True,
    )
    db.add(db_monitor)
    await retry_on_lock(db.commit)
    await db.refresh(db_monitor)

    return MonitorResponse.model_validate(db_monitor)


@router.get("/{monitor_id}", response_model=MonitorWithStats)
async def get_monitor(
    monitor_id: int,
    db: AsyncSession = Depends(get_db),
    requester: Optional[str] = Depends(get_requester),
):
    """Get a specific monitor with its stats."""
    monitor = await _get_owned_monitor(db, monitor_id, requester)
    return await _monitor_with_stats(db, monitor)


@router.delete("/{monitor_id}", status_code=204)
async def delete_monitor(
    monitor_id: int,
    db: AsyncSession = Depends(get_db),
    requester: Optional[str] = Depends(get_requester),
):
    """Delete a monitor and its stats. Check history is kept."""
    monitor = await _get_owned_monitor(db, monitor_id, requester)

    await db.execute(delete(MonitorStats).where(MonitorStats.monitor_id == monitor.id))
    await db.delete(monitor)
    await retry_on_lock(db.commit)


@router.post("/{monitor_id}/toggle", response_model=ToggleResponse)
async def toggle_monitor(
    monitor_id: int,
    db: AsyncSession = Depends(get_db),
    requester: Optional[str] = Depends(get_requester),
):
    """Pause an active monitor or resume a paused one."""
    monitor = await _get_owned_monitor(db, monitor_id, requester)
    monitor.is_active = not monitor.is_active
    await retry_on_lock(db.commit)

    return ToggleResponse(id=monitor.id, is_active=bool(monitor.is_active))


@router.post("/{monitor_id}/check", response_model=CheckResponse)
async def check_monitor_now(
    monitor_id: int,
    db: AsyncSession = Depends(get_db),
    requester: Optional[str] = Depends(get_requester),
    scheduler: RoundScheduler = Depends(get_round_scheduler),
):
    """Run an instant check and record it like a scheduled one."""
    await _get_owned_monitor(db, monitor_id, requester)
    # Release the read transaction before the check writes
    await db.close()

    try:
        result = await scheduler.run_single(monitor_id)
    except MonitorNotFoundError:
        raise HTTPException(status_code=404, detail="Monitor not found or access denied")
    except MonitorInactiveError:
        raise HTTPException(status_code=409, detail="Cannot check paused monitor")

    return CheckResponse(
        monitor_id=result.monitor_id,
        status=result.status,
        response_time_ms=result.response_time_ms,
        status_code=result.status_code,
        error_message=result.error_message,
        checked_at=result.checked_at,
    )


@router.get("/{monitor_id}/checks", response_model=ResultsPage)
async def get_monitor_checks(
    monitor_id: int,
    page: int = Query(default=1, ge=1),
    per_page: int = Query(default=25, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
    requester: Optional[str] = Depends(get_requester),
):
    """Get paginated check history for a monitor, newest first."""
    await _get_owned_monitor(db, monitor_id, requester)

    count_result = await db.execute(
        select(func.count(UptimeCheck.id)).where(UptimeCheck.monitor_id == monitor_id)
    )
    total = count_result.scalar() or 0

    total_pages = (total + per_page - 1) // per_page if total > 0 else 1
    offset = (page - 1) * per_page

    checks_result = await db.execute(
        select(UptimeCheck)
        .where(UptimeCheck.monitor_id == monitor_id)
        .order_by(UptimeCheck.checked_at.desc(), UptimeCheck.id.desc())
        .offset(offset)
        .limit(per_page)
    )

    return ResultsPage(
        items=[CheckResponse.model_validate(c) for c in checks_result.scalars().all()],
        total=total,
        page=page,
        per_page=per_page,
        total_pages=total_pages,
    )

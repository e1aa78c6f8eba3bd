"""Endpoints for external integrations: Prometheus scrape and status webhooks."""
import logging
import re

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, PlainTextResponse
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..models import Monitor, MonitorStats, STATUS_UP

logger = logging.getLogger(__name__)

router = APIRouter(tags=["integrations"])

_LABEL_UNSAFE = re.compile(r"[^A-Za-z0-9_]")

GAUGES = (
    ("uptime_monitor_status", "Monitor status (1=UP, 0=DOWN)"),
    ("uptime_monitor_uptime_percentage", "Share of successful checks (0-100)"),
    ("uptime_monitor_avg_response_time_ms", "Mean response time in milliseconds"),
)


def _escape_label(value: str) -> str:
    return value.replace("\\", "\\\\").replace("\n", "\\n").replace('"', '\\"')


def render_prometheus(rows) -> str:
    """Render (monitor, stats) pairs in the Prometheus text format."""
    samples = {name: [] for name, _ in GAUGES}
    for monitor, stats in rows:
        labels = f'name="{_LABEL_UNSAFE.sub("_", monitor.name)}",url="{_escape_label(monitor.url)}"'
        up = 1 if stats and stats.last_status == STATUS_UP else 0
        samples["uptime_monitor_status"].append(f"uptime_monitor_status{{{labels}}} {up}")
        samples["uptime_monitor_uptime_percentage"].append(
            f"uptime_monitor_uptime_percentage{{{labels}}} {stats.uptime_percentage if stats else 0}"
        )
        samples["uptime_monitor_avg_response_time_ms"].append(
            f"uptime_monitor_avg_response_time_ms{{{labels}}} {stats.avg_response_time if stats else 0}"
        )

    lines = []
    for name, help_text in GAUGES:
        lines.append(f"# HELP {name} {help_text}")
        lines.append(f"# TYPE {name} gauge")
        lines.extend(samples[name])
    return "\n".join(lines) + "\n"


@router.get("/metrics", response_class=PlainTextResponse)
async def metrics(db: AsyncSession = Depends(get_db)):
    """Prometheus scrape endpoint covering every active monitor."""
    try:
        result = await db.execute(
            select(Monitor, MonitorStats)
            .outerjoin(MonitorStats, MonitorStats.monitor_id == Monitor.id)
            .where(Monitor.is_active.is_(True))
            .order_by(Monitor.id)
        )
        return PlainTextResponse(render_prometheus(result.all()))
    except Exception as e:
        logger.error(f"Error generating metrics: {e!r}")
        return PlainTextResponse("Error generating metrics", status_code=500)


@router.post("/webhook/status-change")
async def status_change_webhook(request: Request):
    """Accept status-change notifications from external systems."""
    try:
        body = await request.json()
    except ValueError:
        # JSONDecodeError, or UnicodeDecodeError for non-UTF-8 bodies
        return PlainTextResponse("Invalid webhook payload", status_code=400)

    logger.info(f"Status change webhook received: {body}")
    return JSONResponse({"received": True})

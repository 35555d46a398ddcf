"""Health check and status endpoints."""

import logging
import sys
from datetime import datetime

from fastapi import APIRouter

from taskbridge import __version__
from taskbridge.api.dependencies import ConfigDep, SchedulerDep
from taskbridge.api.models import HealthResponse, ServiceStatus, StatusResponse, VersionResponse
from taskbridge.core.services import SERVICES, enabled_services, poll_interval

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/health", response_model=HealthResponse)
async def health_check(scheduler: SchedulerDep):
    """Health check endpoint.

    Reports ``degraded`` when the last pass of any source had errors.
    """
    snapshot = scheduler.health.snapshot()
    return HealthResponse(
        status=snapshot["status"],
        timestamp=datetime.now().isoformat(),
        uptime_seconds=snapshot["uptime_seconds"],
    )


@router.get("/version", response_model=VersionResponse)
async def get_version():
    """Get version information."""
    return VersionResponse(
        version=__version__,
        python_version=f"{sys.version_info.major}.{sys.version_info.minor}.{sys.version_info.micro}",
    )


@router.get("/status", response_model=StatusResponse)
async def get_status(config: ConfigDep, scheduler: SchedulerDep):
    """Get sync status for every source.

    Returns:
        StatusResponse with health counters and snapshot counts per source
    """
    snapshot = scheduler.health.snapshot()
    enabled = set(enabled_services(config))

    services: dict[str, ServiceStatus] = {}
    for service in SERVICES:
        health = snapshot["services"].get(service, {})
        stats = {"total": 0, "linked": 0}
        engine = scheduler.engines.get(service)
        if engine is not None:
            try:
                stats = await engine.store.get_stats()
            except Exception as e:
                logger.warning(f"Failed to read {service} snapshot stats: {e}")

        services[service] = ServiceStatus(
            enabled=service in enabled,
            scheduled=engine is not None,
            poll_interval_minutes=poll_interval(config, service) if service in enabled else None,
            sync_count=health.get("sync_count", 0),
            error_count=health.get("error_count", 0),
            last_sync_at=health.get("last_sync_at"),
            last_success=health.get("last_success"),
            last_result=health.get("last_result"),
            snapshots=stats["total"],
            linked=stats["linked"],
        )

    return StatusResponse(
        status=snapshot["status"],
        version=snapshot["version"],
        started_at=snapshot["started_at"],
        uptime_seconds=snapshot["uptime_seconds"],
        total_syncs=snapshot["total_syncs"],
        scheduler_running=scheduler.is_running,
        services=services,
    )

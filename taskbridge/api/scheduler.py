"""Scheduler manager for the sync daemon.

Every enabled source gets its own APScheduler interval job. A source's job
never overlaps with itself; different sources run concurrently since they
touch disjoint snapshot partitions.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from taskbridge import __version__
from taskbridge.core.config import AppConfig
from taskbridge.core.engine import SyncEngine
from taskbridge.core.models import SyncResult
from taskbridge.core.services import build_engine, enabled_services, poll_interval

logger = logging.getLogger(__name__)


@dataclass
class ServiceHealth:
    """Rolling health of one source."""

    sync_count: int = 0
    error_count: int = 0
    last_sync_at: str | None = None
    last_success: bool | None = None
    last_result: dict[str, Any] | None = None


@dataclass
class HealthState:
    """Daemon health, owned by the scheduler.

    Updated through :meth:`record` after every pass and read through
    :meth:`snapshot`.
    """

    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    services: dict[str, ServiceHealth] = field(default_factory=dict)

    def register(self, service: str) -> None:
        self.services.setdefault(service, ServiceHealth())

    def record(self, service: str, result: SyncResult) -> None:
        """Accumulate the outcome of one pass."""
        health = self.services.setdefault(service, ServiceHealth())
        health.sync_count += 1
        if not result.success or result.errors:
            health.error_count += 1
        health.last_sync_at = datetime.now(timezone.utc).isoformat()
        health.last_success = result.success and not result.errors
        health.last_result = result.to_dict()

    def snapshot(self) -> dict[str, Any]:
        """Point-in-time copy, safe to serialize."""
        degraded = any(health.last_success is False for health in self.services.values())
        uptime = (datetime.now(timezone.utc) - self.started_at).total_seconds()
        return {
            "status": "degraded" if degraded else "healthy",
            "version": __version__,
            "started_at": self.started_at.isoformat(),
            "uptime_seconds": int(uptime),
            "total_syncs": sum(health.sync_count for health in self.services.values()),
            "services": {
                name: {
                    "sync_count": health.sync_count,
                    "error_count": health.error_count,
                    "last_sync_at": health.last_sync_at,
                    "last_success": health.last_success,
                    "last_result": dict(health.last_result) if health.last_result else None,
                }
                for name, health in self.services.items()
            },
        }


class SchedulerManager:
    """Runs every enabled source on its own poll interval.

    Features:
    - One interval job per source, started immediately
    - Periodic health log line
    - Manual triggers share the per-source lock with scheduled runs
    - Graceful stop waits (bounded) for in-flight passes
    """

    def __init__(self, config: AppConfig):
        """Initialize the scheduler manager.

        Args:
            config: Application configuration
        """
        self.config = config
        self.scheduler = AsyncIOScheduler()
        self.health = HealthState()
        self.engines: dict[str, SyncEngine] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._in_flight: set[asyncio.Task] = set()
        self._running = False

    @property
    def is_running(self) -> bool:
        """Return True if the scheduler is actively running."""
        return self._running

    async def start(self) -> None:
        """
        Build engines for every enabled source and schedule them.

        Raises:
            Exception: When a source fails to initialize and is not allowed
                to fail silently
        """
        if self._running:
            logger.warning("Scheduler already running")
            return

        for service in enabled_services(self.config):
            try:
                engine = build_engine(service, self.config)
                await engine.initialize()
            except Exception as exc:  # pylint: disable=broad-except
                if service.startswith("alexa") and self.config.alexa.fail_silently:
                    logger.error(f"Failed to initialize {service} (continuing without it): {exc}")
                    continue
                await self._close_engines()
                raise

            self.engines[service] = engine
            self._locks[service] = asyncio.Lock()
            self.health.register(service)

            minutes = poll_interval(self.config, service)
            self.scheduler.add_job(
                self._run_scheduled,
                trigger=IntervalTrigger(minutes=minutes),
                args=[service],
                id=f"sync_{service}",
                replace_existing=True,
                name=f"{service} sync",
                max_instances=1,
                coalesce=True,
                next_run_time=datetime.now(),
            )
            logger.info(f"Scheduled {service} sync every {minutes} minute(s)")

        self.scheduler.add_job(
            self._log_health,
            trigger=IntervalTrigger(minutes=self.config.sync.health_log_interval_minutes),
            id="health_log",
            replace_existing=True,
            name="health log",
        )

        self.scheduler.start()
        self._running = True

        if not self.engines:
            logger.warning("No sources enabled; nothing will be synced")
        logger.info(f"Scheduler started with {len(self.engines)} source(s)")

    async def stop(self) -> None:
        """Stop scheduling, wait for in-flight passes, then release resources."""
        if not self._running:
            return

        self.scheduler.shutdown(wait=False)
        self._running = False

        pending = {task for task in self._in_flight if not task.done()}
        if pending:
            timeout = self.config.sync.shutdown_timeout_seconds
            logger.info(f"Waiting up to {timeout:.0f}s for {len(pending)} sync(s) to finish")
            _, still_running = await asyncio.wait(pending, timeout=timeout)
            if still_running:
                logger.warning(f"Shutdown timeout reached with {len(still_running)} sync(s) still running")

        await self._close_engines()
        logger.info("Scheduler stopped")

    async def trigger(self, service: str) -> SyncResult:
        """Run one pass of a source now.

        Args:
            service: Name of an enabled source

        Returns:
            Result of the pass

        Raises:
            KeyError: If the source is not enabled
        """
        if service not in self.engines:
            raise KeyError(service)
        return await self._run(service)

    async def _run_scheduled(self, service: str) -> None:
        await self._run(service)

    async def _run(self, service: str) -> SyncResult:
        task = asyncio.current_task()
        if task is not None:
            self._in_flight.add(task)
        try:
            async with self._locks[service]:
                try:
                    result = await self.engines[service].sync()
                except Exception as exc:  # pylint: disable=broad-except
                    logger.exception(f"Unhandled error during {service} sync")
                    result = SyncResult(success=False, errors=[f"Sync failed: {exc}"])
            self.health.record(service, result)
            return result
        finally:
            if task is not None:
                self._in_flight.discard(task)

    async def _log_health(self) -> None:
        snapshot = self.health.snapshot()
        parts = [
            f"{name}: {info['sync_count']} sync(s), {info['error_count']} with errors"
            for name, info in snapshot["services"].items()
        ]
        logger.info(
            f"Health {snapshot['status']}, uptime {snapshot['uptime_seconds']}s"
            + (f" ({'; '.join(parts)})" if parts else "")
        )

    async def _close_engines(self) -> None:
        for service, engine in self.engines.items():
            try:
                await engine.close()
            except Exception as exc:  # pylint: disable=broad-except
                logger.warning(f"Failed to close {service} engine: {exc}")
        self.engines.clear()

"""Tests for the scheduler and its health state."""

import asyncio
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from taskbridge.api.scheduler import HealthState, SchedulerManager
from taskbridge.core.models import BidirectionalSyncResult, SyncResult


class TestHealthState:
    def test_starts_healthy(self):
        snapshot = HealthState().snapshot()
        assert snapshot["status"] == "healthy"
        assert snapshot["total_syncs"] == 0
        assert snapshot["services"] == {}

    def test_record_accumulates(self):
        health = HealthState()
        health.register("google")

        health.record("google", SyncResult(created=2))
        health.record("google", SyncResult(errors=["Failed to sync \"x\": boom"]))

        snapshot = health.snapshot()
        google = snapshot["services"]["google"]
        assert snapshot["total_syncs"] == 2
        assert google["sync_count"] == 2
        assert google["error_count"] == 1
        assert google["last_success"] is False
        assert snapshot["status"] == "degraded"

    def test_recovers_after_clean_pass(self):
        health = HealthState()
        health.record("microsoft", SyncResult(success=False))
        health.record("microsoft", BidirectionalSyncResult(created_in_source=1))

        snapshot = health.snapshot()
        assert snapshot["status"] == "healthy"
        assert snapshot["services"]["microsoft"]["last_result"]["created_in_source"] == 1

    def test_snapshot_is_a_copy(self):
        health = HealthState()
        health.record("google", SyncResult(created=1))

        snapshot = health.snapshot()
        snapshot["services"]["google"]["last_result"]["created"] = 99

        assert health.services["google"].last_result["created"] == 1

    def test_uptime(self):
        health = HealthState(started_at=datetime.now(timezone.utc) - timedelta(seconds=90))
        assert health.snapshot()["uptime_seconds"] >= 90


def make_engine(result: SyncResult | Exception) -> MagicMock:
    engine = MagicMock()
    engine.initialize = AsyncMock()
    engine.close = AsyncMock()
    if isinstance(result, Exception):
        engine.sync = AsyncMock(side_effect=result)
    else:
        engine.sync = AsyncMock(return_value=result)
    return engine


class TestSchedulerManager:
    @pytest.mark.asyncio
    async def test_start_schedules_enabled_sources(self, app_config):
        app_config.google.enabled = True
        app_config.microsoft.enabled = True
        engines = {"google": make_engine(SyncResult()), "microsoft": make_engine(BidirectionalSyncResult())}
        manager = SchedulerManager(app_config)

        with patch("taskbridge.api.scheduler.build_engine", side_effect=lambda service, cfg: engines[service]):
            await manager.start()
        try:
            assert manager.is_running
            assert set(manager.engines) == {"google", "microsoft"}
            job_ids = {job.id for job in manager.scheduler.get_jobs()}
            assert job_ids == {"sync_google", "sync_microsoft", "health_log"}
            engines["google"].initialize.assert_awaited_once()
        finally:
            await manager.stop()

        assert not manager.is_running
        engines["google"].close.assert_awaited_once()
        engines["microsoft"].close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_alexa_failure_is_tolerated(self, app_config):
        from taskbridge.core.config import SyncMapping
        from taskbridge.core.errors import AuthenticationError

        app_config.alexa.enabled = True
        app_config.alexa.lists = [SyncMapping(source_list_id="all")]
        broken = make_engine(SyncResult())
        broken.initialize = AsyncMock(side_effect=AuthenticationError("cookie expired"))
        manager = SchedulerManager(app_config)

        with patch("taskbridge.api.scheduler.build_engine", return_value=broken):
            await manager.start()
        try:
            assert manager.engines == {}
        finally:
            await manager.stop()

    @pytest.mark.asyncio
    async def test_trigger_records_health(self, app_config):
        manager = SchedulerManager(app_config)
        manager.engines["google"] = make_engine(SyncResult(created=3))
        manager._locks["google"] = asyncio.Lock()

        result = await manager.trigger("google")

        assert result.created == 3
        assert manager.health.snapshot()["services"]["google"]["sync_count"] == 1

    @pytest.mark.asyncio
    async def test_trigger_unknown_service(self, app_config):
        with pytest.raises(KeyError):
            await SchedulerManager(app_config).trigger("google")

    @pytest.mark.asyncio
    async def test_engine_crash_is_recorded_not_raised(self, app_config):
        manager = SchedulerManager(app_config)
        manager.engines["google"] = make_engine(RuntimeError("database is locked"))
        manager._locks["google"] = asyncio.Lock()

        result = await manager.trigger("google")

        assert result.success is False
        assert result.errors == ["Sync failed: database is locked"]
        assert manager.health.snapshot()["status"] == "degraded"

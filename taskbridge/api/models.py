"""Pydantic models for API responses."""

from typing import Any

from pydantic import BaseModel, Field


class HealthResponse(BaseModel):
    """Response model for health check."""

    status: str = "healthy"
    timestamp: str
    uptime_seconds: int = 0


class VersionResponse(BaseModel):
    """Response model for version information."""

    version: str
    python_version: str


class ServiceStatus(BaseModel):
    """Status of one source."""

    enabled: bool
    scheduled: bool = False
    poll_interval_minutes: int | None = None
    sync_count: int = 0
    error_count: int = 0
    last_sync_at: str | None = None
    last_success: bool | None = None
    last_result: dict[str, Any] | None = None
    snapshots: int = 0
    linked: int = 0


class StatusResponse(BaseModel):
    """Response model for overall daemon status."""

    status: str
    version: str
    started_at: str
    uptime_seconds: int
    total_syncs: int = 0
    scheduler_running: bool = False
    services: dict[str, ServiceStatus] = Field(default_factory=dict)


class SyncResultResponse(BaseModel):
    """Outcome of a manually triggered pass."""

    service: str
    success: bool
    created: int = 0
    updated: int = 0
    deleted: int = 0
    completed: int = 0
    deleted_from_source: int = 0
    tags_updated: int = 0
    created_in_source: int | None = None
    updated_in_source: int | None = None
    completed_in_source: int | None = None
    skipped: int | None = None
    errors: list[str] = Field(default_factory=list)

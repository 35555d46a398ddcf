"""Dependency injection for FastAPI endpoints."""

import logging
from typing import Annotated

from fastapi import Depends, HTTPException, Request, status

from taskbridge.api.scheduler import SchedulerManager
from taskbridge.core.config import AppConfig

logger = logging.getLogger(__name__)


def get_config(request: Request) -> AppConfig:
    """Get the configuration the application was started with."""
    return request.app.state.config


def get_scheduler(request: Request) -> SchedulerManager:
    """Get the running scheduler.

    Raises:
        HTTPException: 503 while the scheduler is not available
    """
    scheduler = getattr(request.app.state, "scheduler", None)
    if scheduler is None:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Scheduler is not running")
    return scheduler


# Type aliases for dependency injection
ConfigDep = Annotated[AppConfig, Depends(get_config)]
SchedulerDep = Annotated[SchedulerManager, Depends(get_scheduler)]

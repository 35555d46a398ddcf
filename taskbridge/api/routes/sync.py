"""Manual sync trigger endpoint."""

import logging

from fastapi import APIRouter, HTTPException, status

from taskbridge.api.dependencies import SchedulerDep
from taskbridge.api.models import SyncResultResponse
from taskbridge.core.services import SERVICES

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/{service}", response_model=SyncResultResponse)
async def trigger_sync(service: str, scheduler: SchedulerDep):
    """Run one pass of a source immediately.

    Waits for a scheduled pass of the same source to finish first.
    """
    if service not in SERVICES:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Unknown service: {service}")

    try:
        result = await scheduler.trigger(service)
    except KeyError:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Service {service} is not enabled",
        )

    logger.info(f"Manual {service} sync finished (success={result.success})")
    return SyncResultResponse(service=service, **result.to_dict())

"""Operational routes: health check and manual status override."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException

from api.dependencies import get_registry
from api.schemas import ServiceStatusResponse, StatusUpdateRequest, StatusUpdateResponse
from calls.errors import RelayError
from calls.registry import CallRegistry

LOGGER = logging.getLogger(__name__)

router = APIRouter()


@router.get("/", response_model=ServiceStatusResponse)
async def index() -> ServiceStatusResponse:
    return ServiceStatusResponse(message="Media Stream Server is running!")


@router.post("/update-status", response_model=StatusUpdateResponse)
async def update_status(
    payload: StatusUpdateRequest,
    registry: CallRegistry = Depends(get_registry),
) -> StatusUpdateResponse:
    try:
        session = await registry.set_status(payload.status, payload.stream_id)
    except RelayError as exc:
        LOGGER.warning("Status update rejected: %s", exc.detail)
        raise HTTPException(status_code=exc.status_code, detail=exc.detail) from exc

    return StatusUpdateResponse(
        success=True,
        message=f"Resolution status updated to {session.status.value}",
    )

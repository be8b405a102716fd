"""API-facing Pydantic models."""

from __future__ import annotations

from pydantic import BaseModel, Field


class StatusUpdateRequest(BaseModel):
    # Validated by the call registry so unknown values map to a 400, not a 422.
    status: str = Field(description='Either "Resolved" or "Unresolved".')
    stream_id: str | None = Field(
        default=None,
        description="Stream to update. Defaults to the most recently started call.",
    )


class StatusUpdateResponse(BaseModel):
    success: bool
    message: str


class ServiceStatusResponse(BaseModel):
    message: str

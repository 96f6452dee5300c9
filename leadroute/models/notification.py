"""Notification model."""

from datetime import datetime
from pydantic import BaseModel, Field


class Notification(BaseModel):
    """Human-readable system event shown on the support dashboard."""
    id: str = Field(..., description="Notification ID (ULID)")
    message: str = Field(..., min_length=1)
    created_at: datetime

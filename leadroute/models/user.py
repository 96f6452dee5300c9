"""User account model."""

from typing import Optional
from pydantic import BaseModel, Field


class UserAccount(BaseModel):
    """Login account a realtor's assignments belong to."""
    user_id: str = Field(..., description="User ID (ULID)")
    email: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    role: str = Field(default="realtor", description="Role: realtor, support, sales, qa, admin")
    is_active: bool = True

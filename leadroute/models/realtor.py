"""Realtor model - licensed agents with a zip-code service area."""

from datetime import datetime
from typing import Optional, Union

from pydantic import BaseModel, Field, field_validator


# Fields support staff may change on an existing realtor
REALTOR_UPDATABLE_FIELDS = frozenset({
    "is_active",
    "zip_codes",
    "central_zip_code",
    "radius",
    "contact_signed",
    "contract_sent",
    "brokerage",
    "phone",
    "state",
    "sign_up_category",
})

# Fields a realtor may change on their own record
REALTOR_SELF_UPDATABLE_FIELDS = frozenset({
    "contract_sent",
    "phone",
    "brokerage",
})


def parse_zip_codes(value: Union[str, list[str], None]) -> list[str]:
    """Parse "10001, 10002" or a list into a de-duplicated list of zip codes."""
    if value is None:
        return []
    raw = value.split(",") if isinstance(value, str) else value
    zip_codes: list[str] = []
    for item in raw:
        item = str(item).strip()
        if item and item not in zip_codes:
            zip_codes.append(item)
    return zip_codes


class Realtor(BaseModel):
    """Realtor model."""
    realtor_id: str = Field(..., description="Realtor ID (ULID)")
    agent_code: str = Field(..., description="Operator-assigned short code")
    first_name: str
    last_name: str
    email: str
    phone: Optional[str] = None
    brokerage: Optional[str] = None
    state: Optional[str] = Field(None, description="Home state")
    central_zip_code: Optional[str] = None
    radius: int = Field(default=0, ge=0, description="Coverage radius (display value, not geodesic)")
    sign_up_category: Optional[str] = Field(None, description="Plan tier: individual, team")
    team_members: Optional[int] = Field(None, ge=0)
    zip_codes: list[str] = Field(default_factory=list, description="Explicitly covered zip codes")
    is_active: bool = Field(default=False, description="Only active realtors receive leads")
    contact_signed: bool = False
    contract_sent: bool = False
    user_id: Optional[str] = Field(None, description="Linked user account ID")
    created_by_id: Optional[str] = Field(None, description="Sales user who registered the realtor")
    created_at: Optional[datetime] = None

    @field_validator("zip_codes", mode="before")
    @classmethod
    def _parse_zip_codes(cls, value):
        return parse_zip_codes(value)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


class RealtorRegistration(BaseModel):
    """Sales intake payload for a new realtor."""
    agent_code: str
    first_name: str
    last_name: str
    email: str
    phone: Optional[str] = None
    brokerage: Optional[str] = None
    state: Optional[str] = None
    central_zip_code: Optional[str] = None
    radius: int = Field(default=0, ge=0)
    sign_up_category: Optional[str] = None
    team_members: Optional[int] = Field(None, ge=0)
    zip_codes: list[str] = Field(default_factory=list)

    @field_validator("agent_code", "first_name", "last_name", "email")
    @classmethod
    def _required_text(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be blank")
        return value

    @field_validator("zip_codes", mode="before")
    @classmethod
    def _parse_zip_codes(cls, value):
        return parse_zip_codes(value)

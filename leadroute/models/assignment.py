"""Lead assignment models - one outreach attempt of one realtor on one lead."""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from leadroute.utils.errors import ValidationError


class AssignmentStatus(str, Enum):
    """Assignment status with canonical casing."""
    ASSIGNED = "assigned"
    FOLLOW_UP_NEEDED = "Follow up needed"
    APPOINTMENT_SCHEDULED = "Appointment scheduled"
    # Win
    LISTING_AGREEMENT_SIGNED = "Listing Agreement Signed"
    # Losses
    NOT_INTERESTED_IN_SELLING = "Not interested in selling"
    RESULTED_IN_NOT_LISTING = "Resulted in not listing"
    LISTED_BY_HOMEOWNER = "Listed by Homeowner"
    LEAD_TAKEN_BY_ANOTHER_REALTOR = "Lead taken by another realtor"

    @classmethod
    def normalize(cls, value) -> "AssignmentStatus":
        """Match a label case-insensitively ("Not Interested in Selling" works)."""
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            key = " ".join(value.split()).casefold()
            for status in cls:
                if status.value.casefold() == key:
                    return status
        raise ValidationError(f"Unknown assignment status: {value!r}")

    @property
    def is_winning(self) -> bool:
        return self is AssignmentStatus.LISTING_AGREEMENT_SIGNED

    @property
    def is_losing(self) -> bool:
        return self in LOSING_STATUSES

    @property
    def is_terminal(self) -> bool:
        return self.is_winning or self.is_losing


# Realtor-chosen disengagement statuses
DISENGAGEMENT_STATUSES = frozenset({
    AssignmentStatus.NOT_INTERESTED_IN_SELLING,
    AssignmentStatus.RESULTED_IN_NOT_LISTING,
    AssignmentStatus.LISTED_BY_HOMEOWNER,
})

LOSING_STATUSES = DISENGAGEMENT_STATUSES | {AssignmentStatus.LEAD_TAKEN_BY_ANOTHER_REALTOR}


class LeadAssignment(BaseModel):
    """Assignment record. Never deleted; losing siblings are relabelled."""
    id: str = Field(..., description="Assignment ID (ULID)")
    lead_id: str = Field(..., description="Internal lead ID")
    user_id: str = Field(..., description="Realtor's user account ID")
    status: AssignmentStatus = AssignmentStatus.ASSIGNED
    sent_date: datetime
    callback_time: Optional[datetime] = None
    comments: Optional[str] = None
    version: int = Field(default=0, ge=0, description="Incremented on every write")

    @field_validator("status", mode="before")
    @classmethod
    def _normalize_status(cls, value):
        return AssignmentStatus.normalize(value)

    @property
    def is_active(self) -> bool:
        return not self.status.is_losing

    @property
    def can_change_status(self) -> bool:
        return not self.status.is_winning


class RealtorAssignmentView(BaseModel):
    """Assignment row on the realtor dashboard."""
    id: str
    lead_id: str = Field(..., description="Human-facing lead code")
    prospect_name: str
    prospect_contact: str
    property_address: str
    bedrooms: Optional[int] = None
    bathrooms: Optional[int] = None
    under_agent_contract: bool = False
    status: AssignmentStatus
    comments: Optional[str] = None
    callback_time: Optional[datetime] = None
    can_change_status: bool


class SupportAssignmentView(BaseModel):
    """Assignment row on the support dashboard."""
    id: str
    agent_code: str = "N/A"
    realtor_first_name: Optional[str] = None
    realtor_last_name: Optional[str] = None
    date_sent: datetime
    lead_id: str = Field(..., description="Human-facing lead code")
    comments: Optional[str] = None
    status: AssignmentStatus
    callback_time: Optional[datetime] = None


class ActionResult(BaseModel):
    """Outcome of a mutating action."""
    success: bool = True

"""Lead models - prospective property sellers captured at intake."""

import re
from datetime import date, datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from leadroute.utils.errors import ValidationError


def _status_key(value: str) -> str:
    return re.sub(r'[\s_-]+', '_', value.strip().lower())


# Intake fields that may never be blank
REQUIRED_LEAD_FIELDS = ("first_name", "last_name", "phone_number", "property_address", "zip_code")


class LeadStatus(str, Enum):
    """Top-level lead status."""
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    NO_COVERAGE = "no_coverage"
    REJECTED_OVERTURNED = "rejected_overturned"

    @classmethod
    def normalize(cls, value) -> "LeadStatus":
        """Map historical spellings ("No Coverage", "Rejected-Overturned") onto the enum."""
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            key = _status_key(value)
            for status in cls:
                if status.value == key:
                    return status
        raise ValidationError(f"Unknown lead status: {value!r}")


class Lead(BaseModel):
    """Lead record."""
    id: str = Field(..., description="Internal lead ID (ULID)")
    lead_id: str = Field(..., min_length=8, max_length=8, description="Human-facing lead code")
    first_name: str
    last_name: str
    phone_number: str
    email_address: Optional[str] = None
    property_address: str
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: str
    is_home_owner: bool = False
    property_value: float = Field(default=0.0, ge=0)
    has_realtor_contract: bool = False
    bedrooms: Optional[int] = Field(None, ge=0)
    bathrooms: Optional[int] = Field(None, ge=0)
    additional_notes: Optional[str] = None
    recording: Optional[str] = Field(None, description="Call recording reference")
    submission_date: datetime
    status: LeadStatus = LeadStatus.PENDING

    @property
    def prospect_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    @property
    def full_address(self) -> str:
        locality = " ".join(part for part in (self.state, self.zip_code) if part)
        parts = [self.property_address, self.city, locality]
        return ", ".join(part for part in parts if part)


class LeadCreate(BaseModel):
    """Lead intake payload."""
    first_name: str
    last_name: str
    phone_number: str
    email_address: Optional[str] = None
    property_address: str
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: str
    is_home_owner: bool = False
    property_value: float = Field(default=0.0, ge=0)
    has_realtor_contract: bool = False
    bedrooms: Optional[int] = Field(None, ge=0)
    bathrooms: Optional[int] = Field(None, ge=0)
    additional_notes: Optional[str] = None
    recording: Optional[str] = None

    @field_validator(*REQUIRED_LEAD_FIELDS)
    @classmethod
    def _required_text(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be blank")
        return value

    @field_validator("email_address", "city", "state", "additional_notes", "recording")
    @classmethod
    def _optional_text(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        return value.strip() or None


class LeadUpdate(BaseModel):
    """QA edit payload; only fields that are set get written."""
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone_number: Optional[str] = None
    email_address: Optional[str] = None
    property_address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None
    is_home_owner: Optional[bool] = None
    property_value: Optional[float] = Field(None, ge=0)
    has_realtor_contract: Optional[bool] = None
    bedrooms: Optional[int] = Field(None, ge=0)
    bathrooms: Optional[int] = Field(None, ge=0)
    additional_notes: Optional[str] = None
    recording: Optional[str] = None
    status: Optional[str] = None

    @field_validator(*REQUIRED_LEAD_FIELDS)
    @classmethod
    def _required_text(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        value = value.strip()
        if not value:
            raise ValueError("must not be blank")
        return value

    @field_validator("email_address", "city", "state", "additional_notes", "recording")
    @classmethod
    def _optional_text(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        return value.strip() or None


class LeadFilter(BaseModel):
    """Dashboard filter for lead listings."""
    status: Optional[LeadStatus] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    search: Optional[str] = None

    @field_validator("status", mode="before")
    @classmethod
    def _normalize_status(cls, value):
        if value is None or value == "":
            return None
        return LeadStatus.normalize(value)


class LeadPage(BaseModel):
    """One page of leads."""
    leads: list[Lead] = Field(default_factory=list)
    total_count: int = 0
    page: int = 1
    page_size: int = 10
    total_pages: int = 0

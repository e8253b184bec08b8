"""Request/response schemas for the API layer.

Request bodies never accept an outfitter id; the tenant always comes
from the resolved context.
"""

from __future__ import annotations

from datetime import date

from pydantic import ConfigDict, Field

from outfitter_tenancy.models.domain import BookingStatus, CamelModel


class _Request(CamelModel):
    model_config = ConfigDict(extra="ignore")


# --- Experience ---


class ExperienceCreateRequest(_Request):
    """Request body for POST /experiences."""

    name: str = Field(..., min_length=1, max_length=200)
    description: str | None = None
    location_id: int | None = None
    duration_days: int = Field(default=1, ge=1)
    capacity: int = Field(default=1, ge=1)


class ExperienceUpdateRequest(_Request):
    """Request body for PUT /experiences/{id}. Unset fields are kept."""

    name: str | None = Field(default=None, min_length=1, max_length=200)
    description: str | None = None
    location_id: int | None = None
    duration_days: int | None = Field(default=None, ge=1)
    capacity: int | None = Field(default=None, ge=1)


# --- Customer ---


class CustomerCreateRequest(_Request):
    first_name: str = Field(..., min_length=1)
    last_name: str = Field(..., min_length=1)
    email: str = Field(..., pattern=r"^[^@\s]+@[^@\s]+$")
    phone: str | None = None


# --- Booking ---


class BookingCreateRequest(_Request):
    experience_id: int
    customer_id: int
    start_date: date
    group_size: int = Field(default=1, ge=1)


class BookingStatusUpdateRequest(_Request):
    status: BookingStatus


# --- Settings ---


class SettingsUpdateRequest(_Request):
    company_name: str = ""
    company_address: str = ""
    company_phone: str = ""
    company_email: str = ""
    booking_link: str = ""


# --- Usage ---


class ProfileUsage(CamelModel):
    current_window: int
    daily_usage: int
    daily_quota: int
    window_reset_time: float
    daily_reset_time: float


class UsageResponse(CamelModel):
    """Rate limit and cache usage of the caller's outfitter."""

    outfitter_id: int
    rate_limits: dict[str, ProfileUsage]
    cache_entries: int

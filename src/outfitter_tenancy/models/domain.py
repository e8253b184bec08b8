"""Tenant-scoped domain records.

Every record carries ``outfitter_id`` (serialized as ``outfitterId``);
the response guard relies on that tag.
"""

from __future__ import annotations

from datetime import date, datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base model: snake_case in Python, camelCase on the wire."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class BookingStatus(StrEnum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


class Experience(CamelModel):
    id: int
    outfitter_id: int
    name: str
    description: str | None = None
    location_id: int | None = None
    duration_days: int = 1
    capacity: int = 1
    created_at: datetime


class Customer(CamelModel):
    id: int
    outfitter_id: int
    first_name: str
    last_name: str
    email: str
    phone: str | None = None
    created_at: datetime


class Booking(CamelModel):
    id: int
    outfitter_id: int
    experience_id: int
    customer_id: int
    start_date: date
    group_size: int = Field(default=1, ge=1)
    status: BookingStatus = BookingStatus.PENDING
    created_at: datetime


class OutfitterSettings(CamelModel):
    outfitter_id: int
    company_name: str = ""
    company_address: str = ""
    company_phone: str = ""
    company_email: str = ""
    booking_link: str = ""


class DashboardStats(CamelModel):
    outfitter_id: int
    experience_count: int
    customer_count: int
    booking_count: int
    upcoming_booking_count: int

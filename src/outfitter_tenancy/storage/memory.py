"""In-memory, tenant-scoped storage for the booking domain.

Stands in for the ORM-backed storage layer. All repositories are
constructed with an ``outfitter_id`` and every query filters by it.
"""

from __future__ import annotations

import itertools
from dataclasses import dataclass, field
from datetime import UTC, date, datetime
from typing import Any

from outfitter_tenancy.models.domain import (
    Booking,
    BookingStatus,
    Customer,
    DashboardStats,
    Experience,
    OutfitterSettings,
)


@dataclass
class OutfitterStore:
    """Process-wide tables. Repositories hold a tenant-scoped view of it."""

    experiences: dict[int, Experience] = field(default_factory=dict)
    customers: dict[int, Customer] = field(default_factory=dict)
    bookings: dict[int, Booking] = field(default_factory=dict)
    settings: dict[int, OutfitterSettings] = field(default_factory=dict)
    _ids: itertools.count[int] = field(default_factory=lambda: itertools.count(1))

    def next_id(self) -> int:
        return next(self._ids)


def _now() -> datetime:
    return datetime.now(UTC)


class ExperienceRepository:
    """Tenant-scoped repository for experiences."""

    def __init__(self, store: OutfitterStore, outfitter_id: int) -> None:
        self._store = store
        self._outfitter_id = outfitter_id

    async def list(self, location_id: int | None = None) -> list[Experience]:
        return [
            e
            for e in self._store.experiences.values()
            if e.outfitter_id == self._outfitter_id
            and (location_id is None or e.location_id == location_id)
        ]

    async def get(self, experience_id: int) -> Experience | None:
        experience = self._store.experiences.get(experience_id)
        if experience is None or experience.outfitter_id != self._outfitter_id:
            return None
        return experience

    async def create(self, **fields: Any) -> Experience:
        experience = Experience(
            id=self._store.next_id(),
            outfitter_id=self._outfitter_id,
            created_at=_now(),
            **fields,
        )
        self._store.experiences[experience.id] = experience
        return experience

    async def update(self, experience_id: int, **fields: Any) -> Experience | None:
        current = await self.get(experience_id)
        if current is None:
            return None
        updated = current.model_copy(update=fields)
        self._store.experiences[experience_id] = updated
        return updated

    async def delete(self, experience_id: int) -> bool:
        if await self.get(experience_id) is None:
            return False
        del self._store.experiences[experience_id]
        return True


class CustomerRepository:
    """Tenant-scoped repository for customers."""

    def __init__(self, store: OutfitterStore, outfitter_id: int) -> None:
        self._store = store
        self._outfitter_id = outfitter_id

    async def list(self) -> list[Customer]:
        return [
            c for c in self._store.customers.values()
            if c.outfitter_id == self._outfitter_id
        ]

    async def get(self, customer_id: int) -> Customer | None:
        customer = self._store.customers.get(customer_id)
        if customer is None or customer.outfitter_id != self._outfitter_id:
            return None
        return customer

    async def create(self, **fields: Any) -> Customer:
        customer = Customer(
            id=self._store.next_id(),
            outfitter_id=self._outfitter_id,
            created_at=_now(),
            **fields,
        )
        self._store.customers[customer.id] = customer
        return customer

    async def delete(self, customer_id: int) -> bool:
        if await self.get(customer_id) is None:
            return False
        del self._store.customers[customer_id]
        return True


class BookingRepository:
    """Tenant-scoped repository for bookings."""

    def __init__(self, store: OutfitterStore, outfitter_id: int) -> None:
        self._store = store
        self._outfitter_id = outfitter_id

    async def list(self, status: BookingStatus | None = None) -> list[Booking]:
        return [
            b
            for b in self._store.bookings.values()
            if b.outfitter_id == self._outfitter_id
            and (status is None or b.status == status)
        ]

    async def upcoming(self, today: date | None = None) -> list[Booking]:
        today = today or _now().date()
        rows = [
            b
            for b in await self.list()
            if b.start_date >= today and b.status != BookingStatus.CANCELLED
        ]
        return sorted(rows, key=lambda b: b.start_date)

    async def get(self, booking_id: int) -> Booking | None:
        booking = self._store.bookings.get(booking_id)
        if booking is None or booking.outfitter_id != self._outfitter_id:
            return None
        return booking

    async def create(self, **fields: Any) -> Booking:
        booking = Booking(
            id=self._store.next_id(),
            outfitter_id=self._outfitter_id,
            created_at=_now(),
            **fields,
        )
        self._store.bookings[booking.id] = booking
        return booking

    async def update_status(
        self, booking_id: int, status: BookingStatus
    ) -> Booking | None:
        current = await self.get(booking_id)
        if current is None:
            return None
        updated = current.model_copy(update={"status": status})
        self._store.bookings[booking_id] = updated
        return updated

    async def delete(self, booking_id: int) -> bool:
        if await self.get(booking_id) is None:
            return False
        del self._store.bookings[booking_id]
        return True


class SettingsRepository:
    """Per-outfitter settings document."""

    def __init__(self, store: OutfitterStore, outfitter_id: int) -> None:
        self._store = store
        self._outfitter_id = outfitter_id

    async def get(self) -> OutfitterSettings:
        return self._store.settings.get(
            self._outfitter_id, OutfitterSettings(outfitter_id=self._outfitter_id)
        )

    async def replace(self, **fields: Any) -> OutfitterSettings:
        settings = OutfitterSettings(outfitter_id=self._outfitter_id, **fields)
        self._store.settings[self._outfitter_id] = settings
        return settings


async def dashboard_stats(store: OutfitterStore, outfitter_id: int) -> DashboardStats:
    """Aggregate counts for the tenant's dashboard."""
    bookings = BookingRepository(store, outfitter_id)
    return DashboardStats(
        outfitter_id=outfitter_id,
        experience_count=len(await ExperienceRepository(store, outfitter_id).list()),
        customer_count=len(await CustomerRepository(store, outfitter_id).list()),
        booking_count=len(await bookings.list()),
        upcoming_booking_count=len(await bookings.upcoming()),
    )

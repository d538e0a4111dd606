from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Optional, Sequence

from ..common.lifecycle import Lifecycle
from ..core.constants import DEFAULT_AVAILABILITY_WINDOW_HOURS, DEFAULT_PAGE, DEFAULT_PAGE_LIMIT
from ..core.enums import TripStatus

ALLOWED_TRANSITIONS: dict[TripStatus, frozenset[TripStatus]] = {
    TripStatus.SCHEDULED: frozenset({TripStatus.IN_PROGRESS, TripStatus.CANCELLED}),
    TripStatus.IN_PROGRESS: frozenset({TripStatus.COMPLETED, TripStatus.CANCELLED}),
    TripStatus.COMPLETED: frozenset(),
    TripStatus.CANCELLED: frozenset(),
}

OPEN_STATUSES = frozenset({TripStatus.SCHEDULED, TripStatus.IN_PROGRESS})


@dataclass(frozen=True)
class Destination:
    trip_start_time: datetime
    trip_approx_arrival_time: Optional[datetime] = None
    request_id: Optional[int] = None
    trip_purpose_time: Optional[int] = None  # minutes
    purpose_id: Optional[int] = None
    destination: Optional[str] = None
    destination_added_by: Optional[int] = None
    destination_added_at: Optional[datetime] = None


def trip_window(destinations: Sequence[Destination]) -> tuple[datetime, Optional[datetime]]:
    """(earliest start, latest approximate arrival) over the destinations."""
    start = min(d.trip_start_time for d in destinations)
    arrivals = [d.trip_approx_arrival_time for d in destinations if d.trip_approx_arrival_time]
    return start, max(arrivals) if arrivals else None


def planned_end(start: datetime, arrival: Optional[datetime]) -> datetime:
    """End of the window a trip blocks its driver and vehicle for.

    A trip with no arrival after its start blocks the default availability window.
    """
    if arrival is None or arrival <= start:
        return start + timedelta(hours=DEFAULT_AVAILABILITY_WINDOW_HOURS)
    return arrival


@dataclass(frozen=True)
class TripSchedule:
    schedule_id: int
    driver_id: int
    vehicle_id: int
    destinations: tuple[Destination, ...]
    status: TripStatus
    trip_start_time: datetime
    created_by: int
    created_at: datetime
    trip_approx_arrival_time: Optional[datetime] = None
    actual_start_time: Optional[datetime] = None
    actual_end_time: Optional[datetime] = None
    start_odometer: Optional[float] = None
    end_odometer: Optional[float] = None
    distance_traveled: Optional[float] = None
    cancelled_by: Optional[int] = None
    cancelled_at: Optional[datetime] = None
    version: int = 1
    lifecycle: Lifecycle = field(default_factory=Lifecycle)

    @property
    def effective_end(self) -> datetime:
        if self.actual_end_time:
            return self.actual_end_time
        arrival = self.trip_approx_arrival_time
        if arrival is None and self.destinations:
            arrival = trip_window(self.destinations)[1]
        return planned_end(self.trip_start_time, arrival)

    @property
    def is_open(self) -> bool:
        return self.status in OPEN_STATUSES

    def overlaps(self, start: datetime, end: datetime) -> bool:
        return self.is_open and self.trip_start_time < end and self.effective_end > start

    @property
    def request_ids(self) -> tuple[int, ...]:
        seen: dict[int, None] = {}
        for d in self.destinations:
            if d.request_id is not None:
                seen.setdefault(int(d.request_id), None)
        return tuple(seen)


@dataclass(frozen=True)
class ScheduleDraft:
    driver_id: int
    vehicle_id: int
    destinations: Sequence[Destination]
    start_odometer: Optional[float] = None


@dataclass(frozen=True)
class SchedulePatch:
    """Fields left as None are kept from the stored schedule."""

    driver_id: Optional[int] = None
    vehicle_id: Optional[int] = None
    destinations: Optional[Sequence[Destination]] = None
    status: Optional[TripStatus] = None
    start_odometer: Optional[float] = None
    end_odometer: Optional[float] = None


@dataclass(frozen=True)
class ScheduleFilters:
    statuses: Sequence[TripStatus] = ()
    date_from: Optional[date] = None
    date_to: Optional[date] = None
    driver_ids: Sequence[int] = ()
    vehicle_ids: Sequence[int] = ()
    page: int = DEFAULT_PAGE
    limit: int = DEFAULT_PAGE_LIMIT


@dataclass(frozen=True)
class AvailabilityEntry:
    resource_id: int
    name: str
    available: bool
    detail: Optional[str] = None  # phone for drivers, plate for vehicles


@dataclass(frozen=True)
class AvailabilityReport:
    start_time: datetime
    end_time: datetime
    drivers: tuple[AvailabilityEntry, ...]
    vehicles: tuple[AvailabilityEntry, ...]

    @property
    def total_drivers(self) -> int:
        return len(self.drivers)

    @property
    def available_drivers(self) -> int:
        return sum(1 for d in self.drivers if d.available)

    @property
    def total_vehicles(self) -> int:
        return len(self.vehicles)

    @property
    def available_vehicles(self) -> int:
        return sum(1 for v in self.vehicles if v.available)


@dataclass(frozen=True)
class AvailabilityCheck:
    is_available: bool
    conflicting_schedules: tuple[TripSchedule, ...] = ()

from __future__ import annotations

from datetime import datetime
from typing import Iterable, Optional, Protocol, Sequence

from ..core.enums import ConflictReason
from .model import ScheduleFilters, TripSchedule


class ScheduleRepository(Protocol):
    def get_by_id(self, schedule_id: int) -> Optional[TripSchedule]:
        """Active schedule by id; soft-deleted ones are not returned."""

        raise NotImplementedError

    def create(self, schedule: TripSchedule) -> int:
        raise NotImplementedError

    def update(self, schedule: TripSchedule, *, expected_version: int) -> bool:
        """Write every mutable field if the stored version still matches; bumps the version."""

        raise NotImplementedError

    def start_trip(self, schedule: TripSchedule, *, expected_version: int) -> Optional[ConflictReason]:
        """Write an in-progress schedule in one transaction that re-checks its preconditions.

        Returns None on success, else why nothing was written: the driver has no open
        punch, the driver or vehicle is on another in-progress trip, or the version moved.
        """

        raise NotImplementedError

    def soft_delete(self, schedule_id: int, *, actor_id: int, at: datetime, expected_version: int) -> bool:
        raise NotImplementedError

    def has_in_progress_for_driver(self, driver_id: int) -> bool:
        raise NotImplementedError

    def find_in_progress_for(
        self, *, driver_id: int, vehicle_id: int, exclude_schedule_id: Optional[int] = None
    ) -> Sequence[TripSchedule]:
        """In-progress schedules holding the driver or the vehicle."""

        raise NotImplementedError

    def list_in_progress(self) -> Sequence[TripSchedule]:
        raise NotImplementedError

    def list_open_starting_before(self, end: datetime) -> Sequence[TripSchedule]:
        """Scheduled or in-progress schedules whose trip starts before ``end``."""

        raise NotImplementedError

    def search(self, filters: ScheduleFilters, *, offset: int, limit: int) -> tuple[Sequence[TripSchedule], int]:
        raise NotImplementedError

    def count_trips_in_window(self, start: datetime, end: datetime) -> int:
        """Completed with actual end in [start, end), in progress, or any destination starting in [start, end)."""

        raise NotImplementedError

    def latest_completed_end_by_driver(self, driver_ids: Iterable[int]) -> dict[int, datetime]:
        raise NotImplementedError

from __future__ import annotations

from datetime import date
from typing import Optional, Protocol, Sequence

from ..core.enums import ConflictReason
from .model import AttendanceRecord, Punch


class AttendanceRepository(Protocol):
    def get_for_driver_and_date(self, driver_id: int, work_date: date) -> Optional[AttendanceRecord]:
        raise NotImplementedError

    def find_latest_open_before(self, driver_id: int, before: date) -> Optional[AttendanceRecord]:
        """Most recent active record dated before ``before`` whose last punch is open."""

        raise NotImplementedError

    def list_for_driver_since(self, driver_id: int, since: date) -> Sequence[AttendanceRecord]:
        raise NotImplementedError

    def list_open_records(self) -> Sequence[AttendanceRecord]:
        """Every active punched-in record holding an open punch, any date."""

        raise NotImplementedError

    def count_for_date(self, work_date: date) -> int:
        raise NotImplementedError

    def create_with_punch(self, *, driver_id: int, work_date: date, punch: Punch) -> Optional[AttendanceRecord]:
        """Insert the day's record; None when (driver, date) already exists."""

        raise NotImplementedError

    def save_punches(self, *, record: AttendanceRecord, expected_version: int) -> bool:
        """Persist punches/status/total only if the stored version still matches."""

        raise NotImplementedError

    def close_punch(self, *, record: AttendanceRecord, expected_version: int) -> Optional[ConflictReason]:
        """Versioned punch-out write that refuses while the driver is on an in-progress trip.

        Returns None on success, else the reason nothing was written.
        """

        raise NotImplementedError

    def add_carried_hours(self, *, driver_id: int, work_date: date, hours: float) -> None:
        raise NotImplementedError

    def search(
        self,
        *,
        driver_id: Optional[int] = None,
        work_date: Optional[date] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        offset: int = 0,
        limit: int = 10,
    ) -> tuple[Sequence[AttendanceRecord], int]:
        """Active records newest first, plus the unpaginated total."""

        raise NotImplementedError

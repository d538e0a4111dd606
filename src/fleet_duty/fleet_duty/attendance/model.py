from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import date, datetime
from typing import Optional

from ..common.datetime_utils import hours_between
from ..common.lifecycle import Lifecycle
from ..core.enums import PunchState


@dataclass(frozen=True)
class Location:
    latitude: float
    longitude: float
    place_name: Optional[str] = None


@dataclass(frozen=True)
class Punch:
    """One in/out duty interval; ``duration`` is in hours once closed."""

    in_time: datetime
    out_time: Optional[datetime] = None
    duration: Optional[float] = None
    in_location: Optional[Location] = None
    out_location: Optional[Location] = None

    @property
    def is_open(self) -> bool:
        return self.out_time is None

    def closed(self, *, out_time: datetime, out_location: Optional[Location] = None) -> "Punch":
        return replace(
            self,
            out_time=out_time,
            duration=hours_between(self.in_time, out_time),
            out_location=out_location,
        )


@dataclass(frozen=True)
class AttendanceRecord:
    """Per-driver, per-day container of punches.

    ``carried_hours`` holds hours credited from a punch opened on an earlier
    day; it stays 0 unless split accounting is configured.
    """

    attendance_id: int
    driver_id: int
    work_date: date
    punches: tuple[Punch, ...] = ()
    status: PunchState = PunchState.NOT_PUNCHED_IN
    total_hours: float = 0.0
    carried_hours: float = 0.0
    version: int = 1
    lifecycle: Lifecycle = field(default_factory=Lifecycle)

    @property
    def last_punch(self) -> Optional[Punch]:
        return self.punches[-1] if self.punches else None

    @property
    def open_punch(self) -> Optional[Punch]:
        last = self.last_punch
        return last if last and last.is_open else None

    @property
    def has_open_punch(self) -> bool:
        return self.open_punch is not None

    @property
    def closed_punches(self) -> tuple[Punch, ...]:
        return tuple(p for p in self.punches if not p.is_open)

    def with_punch_in(self, punch: Punch) -> "AttendanceRecord":
        return replace(self, punches=self.punches + (punch,), status=PunchState.PUNCHED_IN)

    def with_closed_punch(self, punch: Punch, *, total_hours: float) -> "AttendanceRecord":
        return replace(
            self,
            punches=self.punches[:-1] + (punch,),
            status=PunchState.PUNCHED_OUT,
            total_hours=total_hours,
        )


@dataclass(frozen=True)
class PunchStatus:
    is_punched_in: bool
    status: PunchState
    time_since_punch_in: Optional[float] = None  # seconds
    punch_in_time: Optional[datetime] = None
    punch_out_time: Optional[datetime] = None
    total_hours: float = 0.0
    punches: tuple[Punch, ...] = ()
    work_date: Optional[date] = None


@dataclass(frozen=True)
class OnDutyDriver:
    driver_id: int
    name: Optional[str]
    phone: Optional[str]
    punch_in_time: datetime
    work_date: date
    in_location: Optional[Location] = None


@dataclass(frozen=True)
class PunchedInSummary:
    punched_in_count: int
    total_drivers: int
    punched_in_today_count: int
    drivers: tuple[OnDutyDriver, ...] = ()


@dataclass(frozen=True)
class AttendanceEntry:
    record: AttendanceRecord
    driver_name: Optional[str] = None
    driver_phone: Optional[str] = None


@dataclass(frozen=True)
class HistorySummary:
    total_hours: float
    total_days: int
    average_hours_per_day: float

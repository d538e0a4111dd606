from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Optional

from ..common.datetime_utils import now_local
from ..common.locks import KeyedLocks, driver_key
from ..common.pagination import Page, offset_for
from ..common.validators import require_page
from ..core.constants import DEFAULT_PAGE, DEFAULT_PAGE_LIMIT, DEFAULT_SERVICE_TIMEZONE
from ..core.enums import ADMIN_ROLES, ConflictReason, NotificationType, PunchState
from ..core.exceptions import ConflictError, NotFoundError, ValidationError
from ..notifications import templates
from ..notifications.dispatcher import NotificationDispatcher
from ..schedules.repository import ScheduleRepository
from ..users.model import User
from ..users.repository import UserRepository
from .factory import HoursAccountingFactory
from .geocoding import ReverseGeocoder, enrich_location
from .model import (
    AttendanceEntry,
    AttendanceRecord,
    HistorySummary,
    Location,
    OnDutyDriver,
    Punch,
    PunchedInSummary,
    PunchStatus,
)
from .repository import AttendanceRepository
from .strategies.base import HoursAccountingStrategy

logger = logging.getLogger(__name__)

_CONCURRENT = "Attendance changed concurrently, retry"
_TRIP_IN_PROGRESS = "Cannot punch out while a trip is in progress"


class AttendanceTracker:
    """Punch-in/punch-out state machine per driver, across calendar days.

    Duty state may span midnight, so every query and mutation first resolves
    the authoritative open record: today's if it holds an open punch, else
    the most recent earlier record that does.
    """

    def __init__(
        self,
        attendance: AttendanceRepository,
        users: UserRepository,
        schedules: ScheduleRepository,
        notifier: NotificationDispatcher,
        *,
        accounting: HoursAccountingStrategy | None = None,
        locks: KeyedLocks | None = None,
        geocoder: ReverseGeocoder | None = None,
        timezone: str = DEFAULT_SERVICE_TIMEZONE,
    ):
        self._attendance = attendance
        self._users = users
        self._schedules = schedules
        self._notifier = notifier
        self._accounting = accounting or HoursAccountingFactory().for_name()
        self._locks = locks or KeyedLocks()
        self._geocoder = geocoder
        self._timezone = timezone

    def _now(self, now: datetime | None) -> datetime:
        return now or now_local(self._timezone)

    def _require_driver(self, driver_id: int) -> User:
        driver = self._users.get_active_driver(driver_id)
        if not driver:
            raise NotFoundError("Driver not found")
        return driver

    def _resolve(self, driver_id: int, today: date) -> tuple[Optional[AttendanceRecord], Optional[AttendanceRecord]]:
        """Return (authoritative open record, today's record)."""
        today_record = self._attendance.get_for_driver_and_date(driver_id, today)
        if today_record and today_record.has_open_punch:
            return today_record, today_record
        return self._attendance.find_latest_open_before(driver_id, today), today_record

    def is_on_duty(self, driver_id: int, *, now: datetime | None = None) -> bool:
        open_record, _ = self._resolve(driver_id, self._now(now).date())
        return open_record is not None

    def get_punch_status(self, driver_id: int, *, now: datetime | None = None) -> PunchStatus:
        now = self._now(now)
        self._require_driver(driver_id)

        open_record, today_record = self._resolve(driver_id, now.date())
        record = open_record or today_record
        if record is None:
            return PunchStatus(is_punched_in=False, status=PunchState.NOT_PUNCHED_IN)

        if open_record is not None:
            punch = open_record.open_punch
            return PunchStatus(
                is_punched_in=True,
                status=PunchState.PUNCHED_IN,
                time_since_punch_in=max(0.0, (now - punch.in_time).total_seconds()),
                punch_in_time=punch.in_time,
                total_hours=open_record.total_hours,
                punches=open_record.punches,
                work_date=open_record.work_date,
            )

        last = record.last_punch
        return PunchStatus(
            is_punched_in=False,
            status=record.status,
            punch_in_time=last.in_time if last else None,
            punch_out_time=last.out_time if last else None,
            total_hours=record.total_hours,
            punches=record.punches,
            work_date=record.work_date,
        )

    def punch_in(self, driver_id: int, location: Location | None = None, *, now: datetime | None = None) -> AttendanceRecord:
        now = self._now(now)
        today = now.date()
        driver = self._require_driver(driver_id)
        location = enrich_location(self._geocoder, location)

        with self._locks.hold(driver_key(driver_id)):
            open_record, today_record = self._resolve(driver_id, today)
            if open_record is not None:
                raise ConflictError("Already punched in", reason=ConflictReason.ALREADY_PUNCHED_IN)

            punch = Punch(in_time=now, in_location=location)
            if today_record is None:
                record = self._attendance.create_with_punch(driver_id=driver_id, work_date=today, punch=punch)
                if record is None:
                    raise ConflictError(_CONCURRENT, reason=ConflictReason.CONCURRENT_MODIFICATION)
            else:
                record = today_record.with_punch_in(punch)
                if not self._attendance.save_punches(record=record, expected_version=today_record.version):
                    raise ConflictError(_CONCURRENT, reason=ConflictReason.CONCURRENT_MODIFICATION)

        logger.info("Driver %s punched in at %s", driver_id, now.isoformat())
        title, body, data = templates.punch_in(driver.name, driver_id=driver.user_id, at=now)
        self._notifier.notify_roles(ADMIN_ROLES, [NotificationType.DRIVER_PUNCH_IN], title, body, data)
        return record

    def punch_out(self, driver_id: int, location: Location | None = None, *, now: datetime | None = None) -> AttendanceRecord:
        now = self._now(now)
        driver = self._require_driver(driver_id)
        location = enrich_location(self._geocoder, location)

        with self._locks.hold(driver_key(driver_id)):
            if self._schedules.has_in_progress_for_driver(driver_id):
                raise ConflictError(_TRIP_IN_PROGRESS, reason=ConflictReason.ACTIVE_TRIP_IN_PROGRESS)

            open_record, today_record = self._resolve(driver_id, now.date())
            if open_record is None:
                if today_record is not None and today_record.status == PunchState.PUNCHED_OUT:
                    raise ConflictError("Already punched out", reason=ConflictReason.ALREADY_PUNCHED_OUT)
                raise ConflictError("No active punch-in found", reason=ConflictReason.NO_ACTIVE_PUNCH)

            closed = open_record.open_punch.closed(out_time=now, out_location=location)
            punches = open_record.punches[:-1] + (closed,)
            record = open_record.with_closed_punch(
                closed, total_hours=self._accounting.record_total(open_record, punches)
            )
            # the write re-checks for an in-progress trip under the driver lock the
            # trip-start write also takes, so a trip started elsewhere still blocks
            refused = self._attendance.close_punch(record=record, expected_version=open_record.version)
            if refused == ConflictReason.ACTIVE_TRIP_IN_PROGRESS:
                raise ConflictError(_TRIP_IN_PROGRESS, reason=refused)
            if refused is not None:
                raise ConflictError(_CONCURRENT, reason=ConflictReason.CONCURRENT_MODIFICATION)

            for day, hours in sorted(self._accounting.credit(closed).items()):
                if day != open_record.work_date and hours > 0:
                    self._attendance.add_carried_hours(driver_id=driver_id, work_date=day, hours=hours)

            on_duty_hours = sum(
                p.duration or 0.0
                for r in self._attendance.list_for_driver_since(driver_id, open_record.work_date)
                for p in r.punches
            )

        logger.info("Driver %s punched out at %s (record %s)", driver_id, now.isoformat(), record.work_date)
        title, body, data = templates.punch_out(
            driver.name, driver_id=driver.user_id, at=now, on_duty_hours=on_duty_hours
        )
        self._notifier.notify_roles(ADMIN_ROLES, [NotificationType.DRIVER_PUNCH_OUT], title, body, data)
        return record

    def get_punched_in_drivers(self, *, now: datetime | None = None) -> PunchedInSummary:
        now = self._now(now)
        latest: dict[int, AttendanceRecord] = {}
        for rec in self._attendance.list_open_records():
            current = latest.get(rec.driver_id)
            if current is None or rec.open_punch.in_time > current.open_punch.in_time:
                latest[rec.driver_id] = rec

        users = {u.user_id: u for u in self._users.list_active_by_ids(latest)}
        drivers = [
            OnDutyDriver(
                driver_id=driver_id,
                name=users[driver_id].name if driver_id in users else None,
                phone=users[driver_id].phone if driver_id in users else None,
                punch_in_time=rec.open_punch.in_time,
                work_date=rec.work_date,
                in_location=rec.open_punch.in_location,
            )
            for driver_id, rec in latest.items()
        ]
        drivers.sort(key=lambda d: d.punch_in_time, reverse=True)
        return PunchedInSummary(
            punched_in_count=len(drivers),
            total_drivers=self._users.count_active_drivers(),
            punched_in_today_count=self._attendance.count_for_date(now.date()),
            drivers=tuple(drivers),
        )

    def get_attendance_history(
        self,
        driver_id: int,
        *,
        start_date: date | None = None,
        end_date: date | None = None,
        page: int = DEFAULT_PAGE,
        limit: int = DEFAULT_PAGE_LIMIT,
    ) -> tuple[Page[AttendanceRecord], HistorySummary]:
        page, limit = require_page(page, limit)
        if start_date and end_date and end_date < start_date:
            raise ValidationError("end_date must not be before start_date")
        self._require_driver(driver_id)

        records, total = self._attendance.search(
            driver_id=driver_id,
            start_date=start_date,
            end_date=end_date,
            offset=offset_for(page, limit),
            limit=limit,
        )
        total_hours = sum(r.total_hours for r in records)
        summary = HistorySummary(
            total_hours=total_hours,
            total_days=len(records),
            average_hours_per_day=total_hours / len(records) if records else 0.0,
        )
        return Page(items=list(records), total=total, page=page, limit=limit), summary

    def list_attendance(
        self,
        *,
        work_date: date | None = None,
        driver_id: int | None = None,
        page: int = DEFAULT_PAGE,
        limit: int = DEFAULT_PAGE_LIMIT,
    ) -> Page[AttendanceEntry]:
        page, limit = require_page(page, limit)
        records, total = self._attendance.search(
            driver_id=driver_id,
            work_date=work_date,
            offset=offset_for(page, limit),
            limit=limit,
        )
        users = {u.user_id: u for u in self._users.list_active_by_ids(r.driver_id for r in records)}
        entries = [
            AttendanceEntry(
                record=r,
                driver_name=users[r.driver_id].name if r.driver_id in users else None,
                driver_phone=users[r.driver_id].phone if r.driver_id in users else None,
            )
            for r in records
        ]
        return Page(items=entries, total=total, page=page, limit=limit)

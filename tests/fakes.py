from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import date, datetime, timedelta
from types import SimpleNamespace
from typing import Optional

from src.fleet_duty.fleet_duty.attendance.model import AttendanceRecord
from src.fleet_duty.fleet_duty.attendance.service import AttendanceTracker
from src.fleet_duty.fleet_duty.attendance.strategies.base import HoursAccountingStrategy
from src.fleet_duty.fleet_duty.availability.service import AvailabilityEngine
from src.fleet_duty.fleet_duty.common.datetime_utils import start_of_day
from src.fleet_duty.fleet_duty.common.lifecycle import Lifecycle
from src.fleet_duty.fleet_duty.common.locks import KeyedLocks
from src.fleet_duty.fleet_duty.core.enums import ConflictReason, PunchState, Role, TripStatus
from src.fleet_duty.fleet_duty.notifications.dispatcher import NotificationDispatcher
from src.fleet_duty.fleet_duty.notifications.history import NotificationInbox
from src.fleet_duty.fleet_duty.notifications.model import DeliveryReport, NotificationPreference, NotificationRecord
from src.fleet_duty.fleet_duty.notifications.preference_store import AttendancePreferenceStore
from src.fleet_duty.fleet_duty.notifications.preferences import defaults_for_role
from src.fleet_duty.fleet_duty.schedules.model import OPEN_STATUSES, TripSchedule
from src.fleet_duty.fleet_duty.schedules.service import TripScheduleManager
from src.fleet_duty.fleet_duty.users.model import User
from src.fleet_duty.fleet_duty.vehicles.model import Vehicle


def make_user(user_id: int, role: Role, *, name: Optional[str] = None, tokens=(), active: bool = True) -> User:
    lifecycle = Lifecycle() if active else Lifecycle().deleted(actor_id=1, at=datetime(2026, 1, 1))
    return User(
        user_id=user_id,
        name=name or f"{role.value}-{user_id}",
        role=role,
        phone=f"+97150000{user_id:04d}",
        device_tokens=tuple(tokens),
        lifecycle=lifecycle,
    )


class InMemoryUsers:
    def __init__(self, users=()):
        self.users: dict[int, User] = {u.user_id: u for u in users}

    def add(self, user: User) -> User:
        self.users[user.user_id] = user
        return user

    def get_by_id(self, user_id):
        return self.users.get(int(user_id))

    def get_active_driver(self, driver_id):
        u = self.users.get(int(driver_id))
        return u if u and u.is_active and u.role == Role.DRIVER else None

    def list_active_by_ids(self, user_ids):
        ids = {int(i) for i in user_ids}
        return [u for uid, u in sorted(self.users.items()) if uid in ids and u.is_active]

    def list_active_by_roles(self, roles, *, exclude_ids=()):
        roles = {Role(r) for r in roles}
        excluded = {int(i) for i in exclude_ids}
        return [
            u
            for uid, u in sorted(self.users.items())
            if u.is_active and u.role in roles and uid not in excluded
        ]

    def count_active_drivers(self):
        return sum(1 for u in self.users.values() if u.is_active and u.role == Role.DRIVER)


class InMemoryVehicles:
    def __init__(self, vehicles=()):
        self.vehicles: dict[int, Vehicle] = {v.vehicle_id: v for v in vehicles}

    def get_active(self, vehicle_id):
        v = self.vehicles.get(int(vehicle_id))
        return v if v and v.is_active else None

    def get_by_id(self, vehicle_id):
        return self.vehicles.get(int(vehicle_id))

    def list_active(self):
        return sorted((v for v in self.vehicles.values() if v.is_active), key=lambda v: v.name)

    def count_active(self):
        return len(self.list_active())


class InMemoryFueling:
    def __init__(self, counts: Optional[dict[date, int]] = None):
        self.counts = counts or {}

    def count_active_for_date(self, day):
        return self.counts.get(day, 0)


@dataclass
class FakeTripRequest:
    request_id: int
    requestor_id: int
    status: str = "pending"
    linked_schedule_id: Optional[int] = None


class InMemoryTripRequests:
    def __init__(self, requests=()):
        self.requests: dict[int, FakeTripRequest] = {r.request_id: r for r in requests}

    def count_pending(self):
        return sum(1 for r in self.requests.values() if r.status == "pending")

    def get_requestor_ids(self, request_ids):
        ids = {int(i) for i in request_ids}
        return sorted({r.requestor_id for rid, r in self.requests.items() if rid in ids})

    def find_scheduled(self, request_ids, *, exclude_schedule_id=None):
        ids = {int(i) for i in request_ids}
        return {
            rid
            for rid, r in self.requests.items()
            if rid in ids and r.status == "scheduled" and r.linked_schedule_id != exclude_schedule_id
        }

    def mark_scheduled(self, request_ids, *, schedule_id):
        for rid in request_ids:
            if rid in self.requests:
                self.requests[rid].status = "scheduled"
                self.requests[rid].linked_schedule_id = schedule_id

    def mark_pending(self, request_ids):
        for rid in request_ids:
            if rid in self.requests:
                self.requests[rid].status = "pending"
                self.requests[rid].linked_schedule_id = None


class InMemoryPreferences:
    def __init__(self):
        self.prefs: dict[int, NotificationPreference] = {}

    def get_for_user(self, user_id):
        pref = self.prefs.get(int(user_id))
        return pref if pref and pref.lifecycle.is_active else None

    def get_for_users(self, user_ids):
        found = {}
        for uid in user_ids:
            pref = self.get_for_user(uid)
            if pref:
                found[pref.user_id] = pref
        return found

    def list_active_for_role(self, role):
        return [p for p in self.prefs.values() if p.role == Role(role) and p.lifecycle.is_active]

    def upsert(self, *, user_id, role, settings):
        self.prefs[int(user_id)] = NotificationPreference(user_id=int(user_id), role=Role(role), settings=settings)

    def deactivate(self, *, user_id, actor_id, at):
        pref = self.get_for_user(user_id)
        if not pref:
            return False
        self.prefs[int(user_id)] = replace(pref, lifecycle=pref.lifecycle.deleted(actor_id=actor_id, at=at))
        return True


class InMemoryAttendance:
    def __init__(self):
        self.records: dict[int, AttendanceRecord] = {}
        self._next_id = 1
        # build_world links the schedule fake so close_punch can see in-progress trips
        self.schedules: Optional["InMemorySchedules"] = None

    def _active(self):
        return [r for r in self.records.values() if r.lifecycle.is_active]

    def seed(self, record: AttendanceRecord) -> AttendanceRecord:
        if not record.attendance_id:
            record = replace(record, attendance_id=self._next_id)
        self._next_id = max(self._next_id, record.attendance_id) + 1
        self.records[record.attendance_id] = record
        return record

    def get_for_driver_and_date(self, driver_id, work_date):
        for r in self._active():
            if r.driver_id == driver_id and r.work_date == work_date:
                return r
        return None

    def find_latest_open_before(self, driver_id, before):
        candidates = [
            r
            for r in self._active()
            if r.driver_id == driver_id and r.work_date < before and r.status == PunchState.PUNCHED_IN and r.has_open_punch
        ]
        return max(candidates, key=lambda r: r.work_date, default=None)

    def list_for_driver_since(self, driver_id, since):
        return sorted(
            (r for r in self._active() if r.driver_id == driver_id and r.work_date >= since),
            key=lambda r: r.work_date,
        )

    def list_open_records(self):
        return [r for r in self._active() if r.status == PunchState.PUNCHED_IN and r.has_open_punch]

    def count_for_date(self, work_date):
        return sum(1 for r in self._active() if r.work_date == work_date)

    def create_with_punch(self, *, driver_id, work_date, punch):
        if self.get_for_driver_and_date(driver_id, work_date):
            return None
        return self.seed(
            AttendanceRecord(
                attendance_id=0,
                driver_id=driver_id,
                work_date=work_date,
                punches=(punch,),
                status=PunchState.PUNCHED_IN,
            )
        )

    def save_punches(self, *, record, expected_version):
        stored = self.records.get(record.attendance_id)
        if not stored or stored.version != expected_version:
            return False
        self.records[record.attendance_id] = replace(
            stored,
            punches=record.punches,
            status=record.status,
            total_hours=record.total_hours,
            version=stored.version + 1,
        )
        return True

    def close_punch(self, *, record, expected_version):
        if self.schedules is not None and self.schedules.has_in_progress_for_driver(record.driver_id):
            return ConflictReason.ACTIVE_TRIP_IN_PROGRESS
        if not self.save_punches(record=record, expected_version=expected_version):
            return ConflictReason.CONCURRENT_MODIFICATION
        return None

    def add_carried_hours(self, *, driver_id, work_date, hours):
        existing = self.get_for_driver_and_date(driver_id, work_date)
        if existing:
            self.records[existing.attendance_id] = replace(
                existing,
                carried_hours=existing.carried_hours + hours,
                total_hours=existing.total_hours + hours,
                version=existing.version + 1,
            )
            return
        self.seed(
            AttendanceRecord(
                attendance_id=0,
                driver_id=driver_id,
                work_date=work_date,
                total_hours=hours,
                carried_hours=hours,
                status=PunchState.PUNCHED_OUT,
            )
        )

    def search(self, *, driver_id=None, work_date=None, start_date=None, end_date=None, offset=0, limit=10):
        rows = [
            r
            for r in self._active()
            if (driver_id is None or r.driver_id == driver_id)
            and (work_date is None or r.work_date == work_date)
            and (start_date is None or r.work_date >= start_date)
            and (end_date is None or r.work_date <= end_date)
        ]
        rows.sort(key=lambda r: (-r.work_date.toordinal(), r.driver_id))
        return rows[offset : offset + limit], len(rows)

    def open_punch_count(self, driver_id) -> int:
        return sum(1 for r in self.records.values() if r.driver_id == driver_id for p in r.punches if p.is_open)


class InMemorySchedules:
    def __init__(self):
        self.schedules: dict[int, TripSchedule] = {}
        self._next_id = 1
        self.attendance: Optional[InMemoryAttendance] = None

    def _active(self):
        return [s for s in self.schedules.values() if s.lifecycle.is_active]

    def seed(self, schedule: TripSchedule) -> TripSchedule:
        if not schedule.schedule_id:
            schedule = replace(schedule, schedule_id=self._next_id)
        self._next_id = max(self._next_id, schedule.schedule_id) + 1
        self.schedules[schedule.schedule_id] = schedule
        return schedule

    def get_by_id(self, schedule_id):
        s = self.schedules.get(int(schedule_id))
        return s if s and s.lifecycle.is_active else None

    def create(self, schedule):
        return self.seed(replace(schedule, schedule_id=0, version=1)).schedule_id

    def update(self, schedule, *, expected_version):
        stored = self.get_by_id(schedule.schedule_id)
        if not stored or stored.version != expected_version:
            return False
        self.schedules[schedule.schedule_id] = replace(schedule, version=stored.version + 1)
        return True

    def start_trip(self, schedule, *, expected_version):
        if self.attendance is not None and not any(
            r.driver_id == schedule.driver_id for r in self.attendance.list_open_records()
        ):
            return ConflictReason.DRIVER_NOT_ON_DUTY
        if self._holding(schedule.driver_id, schedule.vehicle_id, schedule.schedule_id):
            return ConflictReason.RESOURCE_BUSY
        if not self.update(schedule, expected_version=expected_version):
            return ConflictReason.CONCURRENT_MODIFICATION
        return None

    def soft_delete(self, schedule_id, *, actor_id, at, expected_version):
        stored = self.get_by_id(schedule_id)
        if not stored or stored.version != expected_version:
            return False
        self.schedules[schedule_id] = replace(
            stored, lifecycle=stored.lifecycle.deleted(actor_id=actor_id, at=at), version=stored.version + 1
        )
        return True

    def has_in_progress_for_driver(self, driver_id):
        return any(s.driver_id == driver_id and s.status == TripStatus.IN_PROGRESS for s in self._active())

    def find_in_progress_for(self, *, driver_id, vehicle_id, exclude_schedule_id=None):
        return self._holding(driver_id, vehicle_id, exclude_schedule_id)

    def _holding(self, driver_id, vehicle_id, exclude_schedule_id):
        return [
            s
            for s in self._active()
            if s.status == TripStatus.IN_PROGRESS
            and s.schedule_id != exclude_schedule_id
            and (s.driver_id == driver_id or s.vehicle_id == vehicle_id)
        ]

    def list_in_progress(self):
        return [s for s in self._active() if s.status == TripStatus.IN_PROGRESS]

    def list_open_starting_before(self, end):
        return [s for s in self._active() if s.status in OPEN_STATUSES and s.trip_start_time < end]

    def search(self, filters, *, offset, limit):
        rows = [s for s in self._active()]
        if filters.statuses:
            rows = [s for s in rows if s.status in set(filters.statuses)]
        if filters.date_from:
            rows = [s for s in rows if s.trip_start_time >= start_of_day(filters.date_from)]
        if filters.date_to:
            rows = [s for s in rows if s.trip_start_time < start_of_day(filters.date_to) + timedelta(days=1)]
        if filters.driver_ids:
            rows = [s for s in rows if s.driver_id in set(filters.driver_ids)]
        if filters.vehicle_ids:
            rows = [s for s in rows if s.vehicle_id in set(filters.vehicle_ids)]
        rows.sort(key=lambda s: (s.trip_start_time, s.schedule_id), reverse=True)
        return rows[offset : offset + limit], len(rows)

    def count_trips_in_window(self, start, end):
        def matches(s):
            if s.status == TripStatus.COMPLETED and s.actual_end_time and start <= s.actual_end_time < end:
                return True
            if s.status == TripStatus.IN_PROGRESS:
                return True
            return any(start <= d.trip_start_time < end for d in s.destinations)

        return sum(1 for s in self._active() if matches(s))

    def latest_completed_end_by_driver(self, driver_ids):
        ids = set(driver_ids)
        latest: dict[int, datetime] = {}
        for s in self._active():
            if s.driver_id in ids and s.status == TripStatus.COMPLETED and s.actual_end_time:
                if s.driver_id not in latest or s.actual_end_time > latest[s.driver_id]:
                    latest[s.driver_id] = s.actual_end_time
        return latest


class InMemoryHistory:
    def __init__(self):
        self.rows: dict[int, NotificationRecord] = {}
        self._next_id = 1

    def _active_for(self, user_id):
        rows = [r for r in self.rows.values() if r.user_id == int(user_id) and r.lifecycle.is_active]
        return sorted(rows, key=lambda r: (r.created_at, r.notification_id), reverse=True)

    def record_many(self, *, user_ids, title, body, data, at):
        for uid in user_ids:
            self.rows[self._next_id] = NotificationRecord(
                notification_id=self._next_id,
                user_id=int(uid),
                title=title,
                body=body,
                data={**dict(data), "userId": str(uid)},
                created_at=at,
            )
            self._next_id += 1
        return len(user_ids)

    def list_for_user(self, user_id, *, offset, limit):
        rows = self._active_for(user_id)
        return rows[offset : offset + limit], len(rows)

    def count_unread(self, user_id):
        return sum(1 for r in self._active_for(user_id) if not r.is_read)

    def mark_read(self, user_id, *, notification_ids, at):
        wanted = set(notification_ids) if notification_ids else None
        changed = 0
        for r in self._active_for(user_id):
            if r.is_read or (wanted is not None and r.notification_id not in wanted):
                continue
            self.rows[r.notification_id] = replace(r, is_read=True, read_at=at)
            changed += 1
        return changed

    def deactivate(self, notification_id, *, user_id, at):
        r = self.rows.get(int(notification_id))
        if not r or r.user_id != int(user_id) or not r.lifecycle.is_active:
            return False
        self.rows[r.notification_id] = replace(r, lifecycle=r.lifecycle.deleted(actor_id=user_id, at=at))
        return True


@dataclass
class RecordingTransport:
    deliveries: list = field(default_factory=list)

    def deliver(self, tokens, title, body, data):
        self.deliveries.append({"tokens": list(tokens), "title": title, "body": body, "data": dict(data)})
        return DeliveryReport(success_count=len(tokens))

    def titles(self) -> list[str]:
        return [d["title"] for d in self.deliveries]


def build_world(*, users=(), vehicles=(), requests=(), accounting: HoursAccountingStrategy | None = None):
    """Wire every service over in-memory fakes; notifications deliver inline."""
    world = SimpleNamespace()
    world.users = InMemoryUsers(users)
    world.vehicles = InMemoryVehicles(vehicles)
    world.fueling = InMemoryFueling()
    world.trip_requests = InMemoryTripRequests(requests)
    world.preferences = InMemoryPreferences()
    world.attendance = InMemoryAttendance()
    world.schedules = InMemorySchedules()
    world.attendance.schedules = world.schedules
    world.schedules.attendance = world.attendance
    world.transport = RecordingTransport()
    world.history = InMemoryHistory()
    world.locks = KeyedLocks()

    for user in world.users.users.values():
        world.preferences.upsert(user_id=user.user_id, role=user.role, settings=defaults_for_role(user.role))

    world.store = AttendancePreferenceStore(world.preferences)
    world.dispatcher = NotificationDispatcher(world.users, world.preferences, world.transport, history=world.history)
    world.inbox = NotificationInbox(world.history)
    world.tracker = AttendanceTracker(
        world.attendance,
        world.users,
        world.schedules,
        world.dispatcher,
        accounting=accounting,
        locks=world.locks,
    )
    world.manager = TripScheduleManager(
        world.schedules,
        world.users,
        world.vehicles,
        world.trip_requests,
        world.tracker,
        world.dispatcher,
        locks=world.locks,
    )
    world.engine = AvailabilityEngine(
        world.attendance,
        world.schedules,
        world.vehicles,
        world.users,
        world.trip_requests,
        world.fueling,
        max_workers=3,
    )
    return world


def make_vehicle(vehicle_id: int, *, name: Optional[str] = None, in_maintenance: bool = False) -> Vehicle:
    return Vehicle(
        vehicle_id=vehicle_id,
        name=name or f"Vehicle {vehicle_id}",
        plate_number=f"DXB-{vehicle_id:04d}",
        in_maintenance=in_maintenance,
    )

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime, timedelta
from typing import Iterable, Optional, Sequence

from ..attendance.service import AttendanceTracker
from ..common.datetime_utils import now_local
from ..common.locks import KeyedLocks, driver_key, vehicle_key
from ..common.pagination import Page, offset_for
from ..common.validators import require_non_negative, require_page, require_window
from ..core.constants import DEFAULT_AVAILABILITY_WINDOW_HOURS, DEFAULT_SERVICE_TIMEZONE
from ..core.enums import ADMIN_ROLES, STAFF_ROLES, ConflictReason, NotificationType, Role, TripStatus
from ..core.exceptions import ConflictError, NotFoundError, ValidationError
from ..notifications import templates
from ..notifications.dispatcher import NotificationDispatcher
from ..trip_requests.repository import TripRequestRepository
from ..users.repository import UserRepository
from ..vehicles.repository import VehicleRepository
from .model import (
    ALLOWED_TRANSITIONS,
    AvailabilityCheck,
    AvailabilityEntry,
    AvailabilityReport,
    Destination,
    ScheduleDraft,
    ScheduleFilters,
    SchedulePatch,
    TripSchedule,
    planned_end,
    trip_window,
)
from .repository import ScheduleRepository

logger = logging.getLogger(__name__)

_CONCURRENT = "Trip schedule changed concurrently, retry"
_NOT_ON_DUTY = "Driver is not on duty"
_BUSY = "Driver or vehicle is already on another trip"
_START_REFUSED = {
    ConflictReason.DRIVER_NOT_ON_DUTY: _NOT_ON_DUTY,
    ConflictReason.RESOURCE_BUSY: _BUSY,
}


def _validate_destinations(destinations: Optional[Sequence[Destination]]) -> tuple[Destination, ...]:
    if not destinations:
        raise ValidationError("At least one destination is required")
    for i, d in enumerate(destinations):
        if not isinstance(d.trip_start_time, datetime):
            raise ValidationError(f"destinations[{i}].trip_start_time is required")
        if d.trip_approx_arrival_time is not None and d.trip_approx_arrival_time < d.trip_start_time:
            raise ValidationError(f"destinations[{i}].trip_approx_arrival_time must not be before its start time")
        if d.trip_purpose_time is not None and d.trip_purpose_time < 0:
            raise ValidationError(f"destinations[{i}].trip_purpose_time must be non-negative")
    return tuple(destinations)


class TripScheduleManager:
    """Trip-schedule lifecycle: scheduled -> in progress -> completed, with cancellation.

    Starting a trip is cross-checked against the attendance tracker: the
    driver must be on duty and neither driver nor vehicle may already be on
    another trip.
    """

    def __init__(
        self,
        schedules: ScheduleRepository,
        users: UserRepository,
        vehicles: VehicleRepository,
        trip_requests: TripRequestRepository,
        tracker: AttendanceTracker,
        notifier: NotificationDispatcher,
        *,
        locks: KeyedLocks | None = None,
        timezone: str = DEFAULT_SERVICE_TIMEZONE,
    ):
        self._schedules = schedules
        self._users = users
        self._vehicles = vehicles
        self._trip_requests = trip_requests
        self._tracker = tracker
        self._notifier = notifier
        self._locks = locks or KeyedLocks()
        self._timezone = timezone

    def _now(self, now: datetime | None) -> datetime:
        return now or now_local(self._timezone)

    def _require_schedule(self, schedule_id: int) -> TripSchedule:
        schedule = self._schedules.get_by_id(schedule_id)
        if not schedule:
            raise NotFoundError("Trip schedule not found")
        return schedule

    def _require_driver(self, driver_id: int) -> None:
        if not self._users.get_active_driver(driver_id):
            raise NotFoundError("Driver not found")

    def _require_vehicle(self, vehicle_id: int) -> None:
        if not self._vehicles.get_active(vehicle_id):
            raise NotFoundError("Vehicle not found")

    @staticmethod
    def _planned_window(destinations: Sequence[Destination]) -> tuple[datetime, datetime]:
        start, arrival = trip_window(destinations)
        return start, planned_end(start, arrival)

    def _conflicts(
        self,
        start: datetime,
        end: datetime,
        *,
        driver_id: int | None,
        vehicle_id: int | None,
        exclude_schedule_id: int | None = None,
    ) -> list[TripSchedule]:
        return [
            s
            for s in self._schedules.list_open_starting_before(end)
            if s.schedule_id != exclude_schedule_id
            and s.overlaps(start, end)
            and (s.driver_id == driver_id or s.vehicle_id == vehicle_id)
        ]

    def _ensure_no_overlap(self, destinations, *, driver_id: int, vehicle_id: int, exclude_schedule_id=None) -> None:
        start, end = self._planned_window(destinations)
        clashes = self._conflicts(
            start, end, driver_id=driver_id, vehicle_id=vehicle_id, exclude_schedule_id=exclude_schedule_id
        )
        if clashes:
            ids = ", ".join(str(s.schedule_id) for s in clashes)
            raise ConflictError(
                f"Driver or vehicle already committed to schedule(s) {ids} in that window",
                reason=ConflictReason.OVERLAPPING_SCHEDULE,
            )

    def _ensure_requests_free(self, request_ids: Iterable[int], *, schedule_id: int | None = None) -> None:
        taken = self._trip_requests.find_scheduled(request_ids, exclude_schedule_id=schedule_id)
        if taken:
            raise ConflictError(
                f"Trip request(s) already scheduled: {', '.join(map(str, sorted(taken)))}",
                reason=ConflictReason.REQUEST_ALREADY_SCHEDULED,
            )

    def _names(self, schedule: TripSchedule) -> tuple[str, str]:
        driver = self._users.get_by_id(schedule.driver_id)
        vehicle = self._vehicles.get_by_id(schedule.vehicle_id)
        return (driver.name if driver else ""), (vehicle.name if vehicle else "")

    def get_schedule(self, schedule_id: int) -> TripSchedule:
        return self._require_schedule(schedule_id)

    def create_schedule(self, data: ScheduleDraft, creator_id: int, *, now: datetime | None = None) -> TripSchedule:
        now = self._now(now)
        destinations = _validate_destinations(data.destinations)
        require_non_negative(data.start_odometer, "start_odometer")
        self._require_driver(data.driver_id)
        self._require_vehicle(data.vehicle_id)

        start, arrival = trip_window(destinations)
        draft = TripSchedule(
            schedule_id=0,
            driver_id=int(data.driver_id),
            vehicle_id=int(data.vehicle_id),
            destinations=destinations,
            status=TripStatus.SCHEDULED,
            trip_start_time=start,
            trip_approx_arrival_time=arrival,
            start_odometer=data.start_odometer,
            created_by=int(creator_id),
            created_at=now,
        )

        with self._locks.hold(driver_key(draft.driver_id), vehicle_key(draft.vehicle_id)):
            self._ensure_no_overlap(destinations, driver_id=draft.driver_id, vehicle_id=draft.vehicle_id)
            self._ensure_requests_free(draft.request_ids)
            schedule_id = self._schedules.create(draft)
            schedule = replace(draft, schedule_id=schedule_id)
            self._trip_requests.mark_scheduled(schedule.request_ids, schedule_id=schedule_id)

        logger.info("Trip schedule %s created by %s for driver %s", schedule_id, creator_id, schedule.driver_id)
        self._notify_created(schedule, creator_id)
        return schedule

    def update_schedule(
        self, schedule_id: int, patch: SchedulePatch, updater_id: int, *, now: datetime | None = None
    ) -> TripSchedule:
        now = self._now(now)
        current = self._require_schedule(schedule_id)

        target = TripStatus(patch.status) if patch.status is not None else None
        if target == current.status:
            target = None
        if target is not None and target not in ALLOWED_TRANSITIONS[current.status]:
            raise ValidationError(f"Invalid status transition from '{current.status.value}' to '{target.value}'")
        if not ALLOWED_TRANSITIONS[current.status]:
            raise ValidationError(f"A {current.status.value} trip schedule cannot be modified")

        driver_id = int(patch.driver_id) if patch.driver_id is not None else current.driver_id
        vehicle_id = int(patch.vehicle_id) if patch.vehicle_id is not None else current.vehicle_id
        reassigned = driver_id != current.driver_id or vehicle_id != current.vehicle_id
        if reassigned and current.status == TripStatus.IN_PROGRESS:
            raise ValidationError("Driver or vehicle cannot change while the trip is in progress")
        if driver_id != current.driver_id:
            self._require_driver(driver_id)
        if vehicle_id != current.vehicle_id:
            self._require_vehicle(vehicle_id)

        destinations = current.destinations
        if patch.destinations is not None:
            destinations = _validate_destinations(patch.destinations)
        start, arrival = trip_window(destinations)
        start_odometer = require_non_negative(patch.start_odometer, "start_odometer")
        end_odometer = require_non_negative(patch.end_odometer, "end_odometer")

        updated = replace(
            current,
            driver_id=driver_id,
            vehicle_id=vehicle_id,
            destinations=destinations,
            trip_start_time=start,
            trip_approx_arrival_time=arrival,
            start_odometer=start_odometer if start_odometer is not None else current.start_odometer,
            end_odometer=end_odometer if end_odometer is not None else current.end_odometer,
        )
        plan_changed = reassigned or destinations != current.destinations

        keys = {driver_key(driver_id), vehicle_key(vehicle_id), driver_key(current.driver_id), vehicle_key(current.vehicle_id)}
        with self._locks.hold(*keys):
            if plan_changed and target != TripStatus.CANCELLED and updated.status == TripStatus.SCHEDULED:
                self._ensure_no_overlap(
                    destinations, driver_id=driver_id, vehicle_id=vehicle_id, exclude_schedule_id=current.schedule_id
                )
            added_requests = set(updated.request_ids) - set(current.request_ids)
            if added_requests:
                self._ensure_requests_free(added_requests, schedule_id=current.schedule_id)

            if target == TripStatus.IN_PROGRESS:
                if not self._tracker.is_on_duty(driver_id, now=now):
                    raise ConflictError(_NOT_ON_DUTY, reason=ConflictReason.DRIVER_NOT_ON_DUTY)
                busy = self._schedules.find_in_progress_for(
                    driver_id=driver_id, vehicle_id=vehicle_id, exclude_schedule_id=current.schedule_id
                )
                if busy:
                    raise ConflictError(_BUSY, reason=ConflictReason.RESOURCE_BUSY)
                updated = replace(updated, status=TripStatus.IN_PROGRESS, actual_start_time=now)
            elif target == TripStatus.COMPLETED:
                distance = None
                if updated.start_odometer is not None and updated.end_odometer is not None:
                    if updated.end_odometer < updated.start_odometer:
                        raise ValidationError("end_odometer must not be less than start_odometer")
                    distance = updated.end_odometer - updated.start_odometer
                updated = replace(updated, status=TripStatus.COMPLETED, actual_end_time=now, distance_traveled=distance)
            elif target == TripStatus.CANCELLED:
                updated = replace(updated, status=TripStatus.CANCELLED, cancelled_by=int(updater_id), cancelled_at=now)

            if target == TripStatus.IN_PROGRESS:
                # the checks above read on their own connections; start_trip repeats
                # them inside the write's transaction for writers in other processes
                refused = self._schedules.start_trip(updated, expected_version=current.version)
                if refused is not None:
                    raise ConflictError(_START_REFUSED.get(refused, _CONCURRENT), reason=refused)
            elif not self._schedules.update(updated, expected_version=current.version):
                raise ConflictError(_CONCURRENT, reason=ConflictReason.CONCURRENT_MODIFICATION)
            updated = replace(updated, version=current.version + 1)

            released = set(current.request_ids) - set(updated.request_ids)
            if target == TripStatus.CANCELLED:
                released = set(current.request_ids) | set(updated.request_ids)
                added_requests = set()
            self._trip_requests.mark_pending(released)
            self._trip_requests.mark_scheduled(added_requests, schedule_id=updated.schedule_id)

        logger.info(
            "Trip schedule %s updated by %s (status %s -> %s)",
            schedule_id,
            updater_id,
            current.status.value,
            updated.status.value,
        )
        self._notify_updated(current, updated, plan_changed=plan_changed)
        return updated

    def delete_schedule(self, schedule_id: int, deleter_id: int, *, now: datetime | None = None) -> None:
        now = self._now(now)
        current = self._require_schedule(schedule_id)
        if current.status == TripStatus.IN_PROGRESS:
            raise ConflictError("Cannot delete a trip in progress", reason=ConflictReason.SCHEDULE_IN_PROGRESS)
        if not self._schedules.soft_delete(
            schedule_id, actor_id=int(deleter_id), at=now, expected_version=current.version
        ):
            raise ConflictError(_CONCURRENT, reason=ConflictReason.CONCURRENT_MODIFICATION)
        if current.status == TripStatus.SCHEDULED:
            self._trip_requests.mark_pending(current.request_ids)
        logger.info("Trip schedule %s deleted by %s", schedule_id, deleter_id)

    def get_schedules_v2(self, filters: ScheduleFilters) -> Page[TripSchedule]:
        page, limit = require_page(filters.page, filters.limit)
        if filters.date_from and filters.date_to and filters.date_to <= filters.date_from:
            raise ValidationError("date_to must be after date_from")
        rows, total = self._schedules.search(filters, offset=offset_for(page, limit), limit=limit)
        return Page(items=list(rows), total=total, page=page, limit=limit)

    def check_all_availability(self, start_time: datetime, end_time: datetime | None = None) -> AvailabilityReport:
        end_time = end_time or start_time + timedelta(hours=DEFAULT_AVAILABILITY_WINDOW_HOURS)
        require_window(start_time, end_time, start_name="start_time", end_name="end_time")

        overlapping = [s for s in self._schedules.list_open_starting_before(end_time) if s.overlaps(start_time, end_time)]
        busy_drivers = {s.driver_id for s in overlapping}
        busy_vehicles = {s.vehicle_id for s in overlapping}

        drivers = [
            AvailabilityEntry(resource_id=u.user_id, name=u.name, available=u.user_id not in busy_drivers, detail=u.phone)
            for u in self._users.list_active_by_roles([Role.DRIVER])
        ]
        vehicles = [
            AvailabilityEntry(
                resource_id=v.vehicle_id, name=v.name, available=v.vehicle_id not in busy_vehicles, detail=v.plate_number
            )
            for v in self._vehicles.list_active()
        ]

        def order(entry: AvailabilityEntry):
            return (not entry.available, entry.name.lower(), entry.resource_id)

        return AvailabilityReport(
            start_time=start_time,
            end_time=end_time,
            drivers=tuple(sorted(drivers, key=order)),
            vehicles=tuple(sorted(vehicles, key=order)),
        )

    def check_availability(
        self,
        start_time: datetime,
        end_time: datetime,
        *,
        driver_id: int | None = None,
        vehicle_id: int | None = None,
        exclude_schedule_id: int | None = None,
    ) -> AvailabilityCheck:
        if driver_id is None and vehicle_id is None:
            raise ValidationError("driver_id or vehicle_id is required")
        require_window(start_time, end_time, start_name="start_time", end_name="end_time")
        clashes = self._conflicts(
            start_time,
            end_time,
            driver_id=driver_id,
            vehicle_id=vehicle_id,
            exclude_schedule_id=exclude_schedule_id,
        )
        return AvailabilityCheck(is_available=not clashes, conflicting_schedules=tuple(clashes))

    def _notify_created(self, schedule: TripSchedule, creator_id: int) -> None:
        driver_name, vehicle_name = self._names(schedule)
        title, body, data = templates.trip_scheduled(schedule, driver_name=driver_name, vehicle_name=vehicle_name)
        self._notifier.notify_ids([schedule.driver_id], [NotificationType.TRIP_SCHEDULED], title, body, data)
        requestors = self._trip_requests.get_requestor_ids(schedule.request_ids)
        self._notifier.notify_ids(requestors, [NotificationType.MY_REQUEST], title, body, data)
        self._notifier.notify_roles(
            STAFF_ROLES, [NotificationType.TRIP_SCHEDULED], title, body, data, exclude_user_ids=[creator_id]
        )

    def _notify_updated(self, before: TripSchedule, after: TripSchedule, *, plan_changed: bool) -> None:
        driver_name, vehicle_name = self._names(after)
        status_changed = before.status != after.status

        if after.status == TripStatus.IN_PROGRESS and status_changed:
            title, body, data = templates.trip_started(after, driver_name=driver_name, vehicle_name=vehicle_name)
            self._notifier.notify_roles(ADMIN_ROLES, [NotificationType.DRIVER_TRIP_STARTED], title, body, data)
            requestors = self._trip_requests.get_requestor_ids(after.request_ids)
            self._notifier.notify_ids(requestors, [NotificationType.MY_REQUEST_TRIP_STARTED], title, body, data)
            return

        if after.status == TripStatus.COMPLETED and status_changed:
            title, body, data = templates.trip_ended(after, driver_name=driver_name, vehicle_name=vehicle_name)
            self._notifier.notify_roles(ADMIN_ROLES, [NotificationType.DRIVER_TRIP_ENDED], title, body, data)
            requestors = self._trip_requests.get_requestor_ids(after.request_ids)
            self._notifier.notify_ids(requestors, [NotificationType.MY_REQUEST_TRIP_ENDED], title, body, data)
            return

        if plan_changed or status_changed:
            title, body, data = templates.trip_updated(after, driver_name=driver_name, vehicle_name=vehicle_name)
            driver_ids = {after.driver_id, before.driver_id}
            self._notifier.notify_ids(sorted(driver_ids), [NotificationType.TRIP_SCHEDULE_UPDATED], title, body, data)

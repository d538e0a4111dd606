from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta
from functools import partial
from typing import Any, Callable

from ..attendance.model import AttendanceRecord
from ..attendance.repository import AttendanceRepository
from ..common.datetime_utils import hours_between, month_start, next_month_start, now_local, start_of_day, week_start
from ..core.constants import DEFAULT_DASHBOARD_WORKERS, DEFAULT_SERVICE_TIMEZONE
from ..core.enums import Role
from ..core.exceptions import InternalError
from ..fueling.repository import FuelingRepository
from ..schedules.repository import ScheduleRepository
from ..trip_requests.repository import TripRequestRepository
from ..users.repository import UserRepository
from ..vehicles.repository import VehicleRepository
from . import permissions as p
from .model import IdleDriver

logger = logging.getLogger(__name__)


def _latest_open_by_driver(records: list[AttendanceRecord]) -> dict[int, AttendanceRecord]:
    latest: dict[int, AttendanceRecord] = {}
    for rec in records:
        if not rec.has_open_punch:
            continue
        current = latest.get(rec.driver_id)
        if current is None or rec.open_punch.in_time > current.open_punch.in_time:
            latest[rec.driver_id] = rec
    return latest


class AvailabilityEngine:
    """Read-only aggregation of duty, trip and fleet state for dashboards."""

    def __init__(
        self,
        attendance: AttendanceRepository,
        schedules: ScheduleRepository,
        vehicles: VehicleRepository,
        users: UserRepository,
        trip_requests: TripRequestRepository,
        fueling: FuelingRepository,
        *,
        max_workers: int = DEFAULT_DASHBOARD_WORKERS,
        timezone: str = DEFAULT_SERVICE_TIMEZONE,
    ):
        self._attendance = attendance
        self._schedules = schedules
        self._vehicles = vehicles
        self._users = users
        self._trip_requests = trip_requests
        self._fueling = fueling
        self._max_workers = max(1, int(max_workers))
        self._timezone = timezone

    def _run_concurrently(self, queries: dict[str, Callable[[], Any]]) -> dict[str, Any]:
        """Run every sub-query; a single failure fails the whole aggregate."""
        if not queries:
            return {}
        with ThreadPoolExecutor(max_workers=min(self._max_workers, len(queries)), thread_name_prefix="dashboard") as pool:
            futures = {name: pool.submit(fn) for name, fn in queries.items()}
            results: dict[str, Any] = {}
            for name, future in futures.items():
                try:
                    results[name] = future.result()
                except Exception as e:
                    logger.error("Dashboard sub-query %s failed: %s", name, e)
                    raise InternalError("Failed to compute dashboard counts") from e
        return results

    def _plan(self, metrics: frozenset[str], now: datetime) -> dict[str, Callable[[], Any]]:
        queries: dict[str, Callable[[], Any]] = {}
        if metrics & {p.ACTIVE_TRIPS, p.AVAILABLE_VEHICLES, p.IDLE_DRIVERS}:
            queries["in_progress"] = self._schedules.list_in_progress
        if metrics & {p.DRIVERS_ON_DUTY, p.IDLE_DRIVERS}:
            queries["open_records"] = self._attendance.list_open_records
        if metrics & {p.AVAILABLE_VEHICLES, p.TOTAL_ACTIVE_VEHICLES}:
            queries["active_vehicles"] = self._vehicles.count_active
        if p.PENDING_REQUESTS in metrics:
            queries[p.PENDING_REQUESTS] = self._trip_requests.count_pending

        day = start_of_day(now)
        windows = {
            p.TRIPS_TODAY: (day, day + timedelta(days=1)),
            p.TRIPS_THIS_WEEK: (week_start(now), week_start(now) + timedelta(days=7)),
            p.TRIPS_THIS_MONTH: (month_start(now), next_month_start(now)),
        }
        for metric, (start, end) in windows.items():
            if metric in metrics:
                queries[metric] = partial(self._schedules.count_trips_in_window, start, end)

        if p.FUELING_RECORDS_TODAY in metrics:
            queries[p.FUELING_RECORDS_TODAY] = partial(self._fueling.count_active_for_date, now.date())
        return queries

    def get_dashboard_counts(self, requesting_role: Role, *, now: datetime | None = None) -> dict[str, int]:
        """Counts for the metrics ``requesting_role`` may see; other metrics are omitted."""
        now = now or now_local(self._timezone)
        metrics = p.permitted_metrics(requesting_role)
        results = self._run_concurrently(self._plan(metrics, now))

        in_progress = results.get("in_progress", [])
        on_duty = {r.driver_id for r in results.get("open_records", []) if r.has_open_punch}
        busy_drivers = {s.driver_id for s in in_progress}
        busy_vehicles = {s.vehicle_id for s in in_progress}

        counts: dict[str, int] = {}
        if p.ACTIVE_TRIPS in metrics:
            counts[p.ACTIVE_TRIPS] = len(in_progress)
        if p.PENDING_REQUESTS in metrics:
            counts[p.PENDING_REQUESTS] = int(results[p.PENDING_REQUESTS])
        if p.DRIVERS_ON_DUTY in metrics:
            counts[p.DRIVERS_ON_DUTY] = len(on_duty)
        if p.IDLE_DRIVERS in metrics:
            counts[p.IDLE_DRIVERS] = len(on_duty - busy_drivers)
        if p.TOTAL_ACTIVE_VEHICLES in metrics:
            counts[p.TOTAL_ACTIVE_VEHICLES] = int(results["active_vehicles"])
        if p.AVAILABLE_VEHICLES in metrics:
            counts[p.AVAILABLE_VEHICLES] = max(0, int(results["active_vehicles"]) - len(busy_vehicles))
        for metric in (p.TRIPS_TODAY, p.TRIPS_THIS_WEEK, p.TRIPS_THIS_MONTH, p.FUELING_RECORDS_TODAY):
            if metric in metrics:
                counts[metric] = int(results[metric])
        return counts

    def get_idle_drivers(self, requesting_role: Role, *, now: datetime | None = None) -> list[IdleDriver]:
        now = now or now_local(self._timezone)
        results = self._run_concurrently(
            {
                "open_records": self._attendance.list_open_records,
                "in_progress": self._schedules.list_in_progress,
            }
        )
        latest = _latest_open_by_driver(list(results["open_records"]))
        busy = {s.driver_id for s in results["in_progress"]}
        idle_ids = [driver_id for driver_id in latest if driver_id not in busy]
        if not idle_ids:
            return []

        last_trip_end = self._schedules.latest_completed_end_by_driver(idle_ids)
        users = {u.user_id: u for u in self._users.list_active_by_ids(idle_ids)}
        show_location = Role(requesting_role) in p.LOCATION_VISIBLE_ROLES

        idle: list[IdleDriver] = []
        for driver_id in idle_ids:
            punch = latest[driver_id].open_punch
            # a trip completed before this duty started does not reset idleness
            ended = last_trip_end.get(driver_id)
            idle_from = ended if ended and ended >= punch.in_time else punch.in_time
            user = users.get(driver_id)
            idle.append(
                IdleDriver(
                    driver_id=driver_id,
                    name=user.name if user else None,
                    phone=user.phone if user else None,
                    punch_in_time=punch.in_time,
                    idle_from=idle_from,
                    idle_hours=hours_between(idle_from, now),
                    location=punch.in_location if show_location else None,
                )
            )
        idle.sort(key=lambda d: d.idle_hours, reverse=True)
        return idle

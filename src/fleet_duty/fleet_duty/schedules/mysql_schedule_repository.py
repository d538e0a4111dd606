from __future__ import annotations

from collections import defaultdict
from datetime import datetime, timedelta
from typing import Iterable, Optional, Sequence

from ..common.datetime_utils import start_of_day
from ..common.lifecycle import Lifecycle
from ..core.enums import ConflictReason, PunchState, TripStatus
from ..database.connection import DatabaseConnection
from ..database.mysql_base import db_cursor, fetchall, fetchone, in_clause, lock_row
from .model import Destination, OPEN_STATUSES, ScheduleFilters, TripSchedule
from .repository import ScheduleRepository

_COLUMNS = (
    "schedule_id, driver_id, vehicle_id, status, trip_start_time, trip_approx_arrival_time, "
    "actual_start_time, actual_end_time, start_odometer, end_odometer, distance_traveled, "
    "created_by, created_at, cancelled_by, cancelled_at, version, lifecycle_status, deleted_by, deleted_at"
)


def _opt_float(value) -> Optional[float]:
    return float(value) if value is not None else None


def _opt_int(value) -> Optional[int]:
    return int(value) if value is not None else None


class MySQLScheduleRepository(ScheduleRepository):
    def __init__(self, conn_factory: DatabaseConnection):
        self._conn_factory = conn_factory

    def _destinations_for(self, cur, schedule_ids: Sequence[int]) -> dict[int, tuple[Destination, ...]]:
        if not schedule_ids:
            return {}
        cur.execute(
            f"""
            SELECT * FROM trip_destinations
            WHERE schedule_id IN ({in_clause(schedule_ids)})
            ORDER BY schedule_id, position
            """,
            tuple(schedule_ids),
        )
        grouped: dict[int, list[Destination]] = defaultdict(list)
        for r in fetchall(cur):
            grouped[int(r["schedule_id"])].append(
                Destination(
                    trip_start_time=r["trip_start_time"],
                    trip_approx_arrival_time=r.get("trip_approx_arrival_time"),
                    request_id=_opt_int(r.get("request_id")),
                    trip_purpose_time=_opt_int(r.get("trip_purpose_time")),
                    purpose_id=_opt_int(r.get("purpose_id")),
                    destination=r.get("destination"),
                    destination_added_by=_opt_int(r.get("destination_added_by")),
                    destination_added_at=r.get("destination_added_at"),
                )
            )
        return {sid: tuple(items) for sid, items in grouped.items()}

    def _map_rows(self, cur, rows: list[dict]) -> list[TripSchedule]:
        destinations = self._destinations_for(cur, [int(r["schedule_id"]) for r in rows])
        return [
            TripSchedule(
                schedule_id=int(r["schedule_id"]),
                driver_id=int(r["driver_id"]),
                vehicle_id=int(r["vehicle_id"]),
                destinations=destinations.get(int(r["schedule_id"]), ()),
                status=TripStatus(r["status"]),
                trip_start_time=r["trip_start_time"],
                trip_approx_arrival_time=r.get("trip_approx_arrival_time"),
                actual_start_time=r.get("actual_start_time"),
                actual_end_time=r.get("actual_end_time"),
                start_odometer=_opt_float(r.get("start_odometer")),
                end_odometer=_opt_float(r.get("end_odometer")),
                distance_traveled=_opt_float(r.get("distance_traveled")),
                created_by=int(r["created_by"]),
                created_at=r["created_at"],
                cancelled_by=_opt_int(r.get("cancelled_by")),
                cancelled_at=r.get("cancelled_at"),
                version=int(r["version"]),
                lifecycle=Lifecycle.from_row(r),
            )
            for r in rows
        ]

    def _select(self, where: str, params: Sequence, *, suffix: str = "") -> list[TripSchedule]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(f"SELECT {_COLUMNS} FROM trip_schedules WHERE {where} {suffix}", tuple(params))
            return self._map_rows(cur, fetchall(cur))

    def _write_destinations(self, cur, schedule_id: int, destinations: Sequence[Destination]) -> None:
        cur.execute("DELETE FROM trip_destinations WHERE schedule_id=%s", (schedule_id,))
        for position, d in enumerate(destinations):
            cur.execute(
                """
                INSERT INTO trip_destinations(
                    schedule_id, position, request_id, trip_start_time, trip_approx_arrival_time,
                    trip_purpose_time, purpose_id, destination, destination_added_by, destination_added_at
                )
                VALUES(%s,%s,%s,%s,%s,%s,%s,%s,%s,%s)
                """,
                (
                    schedule_id,
                    position,
                    d.request_id,
                    d.trip_start_time,
                    d.trip_approx_arrival_time,
                    d.trip_purpose_time,
                    d.purpose_id,
                    d.destination,
                    d.destination_added_by,
                    d.destination_added_at,
                ),
            )

    def get_by_id(self, schedule_id: int) -> Optional[TripSchedule]:
        rows = self._select("schedule_id=%s AND lifecycle_status='active'", (int(schedule_id),))
        return rows[0] if rows else None

    def create(self, schedule: TripSchedule) -> int:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                INSERT INTO trip_schedules(
                    driver_id, vehicle_id, status, trip_start_time, trip_approx_arrival_time,
                    start_odometer, created_by, created_at, version
                )
                VALUES(%s,%s,%s,%s,%s,%s,%s,%s,1)
                """,
                (
                    schedule.driver_id,
                    schedule.vehicle_id,
                    schedule.status.value,
                    schedule.trip_start_time,
                    schedule.trip_approx_arrival_time,
                    schedule.start_odometer,
                    schedule.created_by,
                    schedule.created_at,
                ),
            )
            schedule_id = int(cur.lastrowid)
            self._write_destinations(cur, schedule_id, schedule.destinations)
            return schedule_id

    def _write(self, cur, schedule: TripSchedule, expected_version: int) -> bool:
        cur.execute(
            """
            UPDATE trip_schedules
            SET driver_id=%s, vehicle_id=%s, status=%s, trip_start_time=%s, trip_approx_arrival_time=%s,
                actual_start_time=%s, actual_end_time=%s, start_odometer=%s, end_odometer=%s,
                distance_traveled=%s, cancelled_by=%s, cancelled_at=%s, version=version+1
            WHERE schedule_id=%s AND version=%s AND lifecycle_status='active'
            """,
            (
                schedule.driver_id,
                schedule.vehicle_id,
                schedule.status.value,
                schedule.trip_start_time,
                schedule.trip_approx_arrival_time,
                schedule.actual_start_time,
                schedule.actual_end_time,
                schedule.start_odometer,
                schedule.end_odometer,
                schedule.distance_traveled,
                schedule.cancelled_by,
                schedule.cancelled_at,
                schedule.schedule_id,
                int(expected_version),
            ),
        )
        if cur.rowcount == 0:
            return False
        self._write_destinations(cur, schedule.schedule_id, schedule.destinations)
        return True

    def update(self, schedule: TripSchedule, *, expected_version: int) -> bool:
        with db_cursor(self._conn_factory) as (_, cur):
            return self._write(cur, schedule, expected_version)

    def start_trip(self, schedule: TripSchedule, *, expected_version: int) -> Optional[ConflictReason]:
        with db_cursor(self._conn_factory) as (_, cur):
            # close_punch takes the same driver row, so a punch-out and a trip
            # start for one driver commit one after the other
            lock_row(cur, "users", "user_id", schedule.driver_id)
            lock_row(cur, "vehicles", "vehicle_id", schedule.vehicle_id)

            cur.execute(
                """
                SELECT 1 AS found FROM driver_attendance
                WHERE driver_id=%s AND status=%s AND lifecycle_status='active'
                LIMIT 1 LOCK IN SHARE MODE
                """,
                (schedule.driver_id, PunchState.PUNCHED_IN.value),
            )
            if not fetchall(cur):
                return ConflictReason.DRIVER_NOT_ON_DUTY

            cur.execute(
                """
                SELECT 1 AS found FROM trip_schedules
                WHERE status=%s AND lifecycle_status='active'
                  AND (driver_id=%s OR vehicle_id=%s) AND schedule_id<>%s
                LIMIT 1 LOCK IN SHARE MODE
                """,
                (TripStatus.IN_PROGRESS.value, schedule.driver_id, schedule.vehicle_id, schedule.schedule_id),
            )
            if fetchall(cur):
                return ConflictReason.RESOURCE_BUSY

            if not self._write(cur, schedule, expected_version):
                return ConflictReason.CONCURRENT_MODIFICATION
            return None

    def soft_delete(self, schedule_id: int, *, actor_id: int, at: datetime, expected_version: int) -> bool:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                UPDATE trip_schedules
                SET lifecycle_status='deleted', deleted_by=%s, deleted_at=%s, version=version+1
                WHERE schedule_id=%s AND version=%s AND lifecycle_status='active'
                """,
                (actor_id, at, int(schedule_id), int(expected_version)),
            )
            return cur.rowcount > 0

    def has_in_progress_for_driver(self, driver_id: int) -> bool:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                SELECT 1 AS found FROM trip_schedules
                WHERE driver_id=%s AND status=%s AND lifecycle_status='active'
                LIMIT 1
                """,
                (int(driver_id), TripStatus.IN_PROGRESS.value),
            )
            return fetchone(cur) is not None

    def find_in_progress_for(
        self, *, driver_id: int, vehicle_id: int, exclude_schedule_id: Optional[int] = None
    ) -> Sequence[TripSchedule]:
        where = "status=%s AND lifecycle_status='active' AND (driver_id=%s OR vehicle_id=%s)"
        params: list = [TripStatus.IN_PROGRESS.value, int(driver_id), int(vehicle_id)]
        if exclude_schedule_id is not None:
            where += " AND schedule_id<>%s"
            params.append(int(exclude_schedule_id))
        return self._select(where, params)

    def list_in_progress(self) -> Sequence[TripSchedule]:
        return self._select("status=%s AND lifecycle_status='active'", (TripStatus.IN_PROGRESS.value,))

    def list_open_starting_before(self, end: datetime) -> Sequence[TripSchedule]:
        statuses = sorted(s.value for s in OPEN_STATUSES)
        return self._select(
            f"status IN ({in_clause(statuses)}) AND trip_start_time<%s AND lifecycle_status='active'",
            (*statuses, end),
        )

    def search(self, filters: ScheduleFilters, *, offset: int, limit: int) -> tuple[Sequence[TripSchedule], int]:
        where = ["lifecycle_status='active'"]
        params: list = []
        if filters.statuses:
            statuses = [TripStatus(s).value for s in filters.statuses]
            where.append(f"status IN ({in_clause(statuses)})")
            params.extend(statuses)
        if filters.date_from:
            where.append("trip_start_time>=%s")
            params.append(start_of_day(filters.date_from))
        if filters.date_to:
            where.append("trip_start_time<%s")
            params.append(start_of_day(filters.date_to) + timedelta(days=1))
        if filters.driver_ids:
            where.append(f"driver_id IN ({in_clause(filters.driver_ids)})")
            params.extend(int(i) for i in filters.driver_ids)
        if filters.vehicle_ids:
            where.append(f"vehicle_id IN ({in_clause(filters.vehicle_ids)})")
            params.extend(int(i) for i in filters.vehicle_ids)
        clause = " AND ".join(where)

        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(f"SELECT COUNT(*) AS total FROM trip_schedules WHERE {clause}", tuple(params))
            r = fetchone(cur)
            total = int(r["total"]) if r else 0
            cur.execute(
                f"""
                SELECT {_COLUMNS} FROM trip_schedules
                WHERE {clause}
                ORDER BY trip_start_time DESC, schedule_id DESC
                LIMIT %s OFFSET %s
                """,
                (*params, int(limit), int(offset)),
            )
            return self._map_rows(cur, fetchall(cur)), total

    def count_trips_in_window(self, start: datetime, end: datetime) -> int:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                SELECT COUNT(*) AS total FROM trip_schedules s
                WHERE s.lifecycle_status='active' AND (
                    (s.status=%s AND s.actual_end_time>=%s AND s.actual_end_time<%s)
                    OR s.status=%s
                    OR EXISTS (
                        SELECT 1 FROM trip_destinations d
                        WHERE d.schedule_id=s.schedule_id AND d.trip_start_time>=%s AND d.trip_start_time<%s
                    )
                )
                """,
                (TripStatus.COMPLETED.value, start, end, TripStatus.IN_PROGRESS.value, start, end),
            )
            r = fetchone(cur)
            return int(r["total"]) if r else 0

    def latest_completed_end_by_driver(self, driver_ids: Iterable[int]) -> dict[int, datetime]:
        ids = sorted({int(i) for i in driver_ids})
        if not ids:
            return {}
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"""
                SELECT driver_id, MAX(actual_end_time) AS last_end FROM trip_schedules
                WHERE driver_id IN ({in_clause(ids)}) AND status=%s
                  AND actual_end_time IS NOT NULL AND lifecycle_status='active'
                GROUP BY driver_id
                """,
                (*ids, TripStatus.COMPLETED.value),
            )
            return {int(r["driver_id"]): r["last_end"] for r in fetchall(cur)}

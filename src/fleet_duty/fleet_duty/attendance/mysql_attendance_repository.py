from __future__ import annotations

import json
from datetime import date, datetime
from typing import Any, Optional, Sequence

import mysql.connector

from ..common.lifecycle import Lifecycle
from ..core.enums import ConflictReason, PunchState, TripStatus
from ..database.connection import DatabaseConnection
from ..database.mysql_base import db_cursor, fetchall, fetchone, load_json, lock_row
from .model import AttendanceRecord, Location, Punch
from .repository import AttendanceRepository

_COLUMNS = (
    "attendance_id, driver_id, work_date, punches, status, total_hours, carried_hours, version, "
    "lifecycle_status, deleted_by, deleted_at"
)


def _location_to_json(loc: Optional[Location]) -> Optional[dict[str, Any]]:
    if loc is None:
        return None
    return {"latitude": loc.latitude, "longitude": loc.longitude, "placeName": loc.place_name}


def _location_from_json(raw: Optional[dict[str, Any]]) -> Optional[Location]:
    if not raw:
        return None
    return Location(latitude=float(raw["latitude"]), longitude=float(raw["longitude"]), place_name=raw.get("placeName"))


def _dt(raw: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(raw) if raw else None


def punches_to_json(punches: Sequence[Punch]) -> str:
    return json.dumps(
        [
            {
                "inTime": p.in_time.isoformat(),
                "outTime": p.out_time.isoformat() if p.out_time else None,
                "duration": p.duration,
                "inLocation": _location_to_json(p.in_location),
                "outLocation": _location_to_json(p.out_location),
            }
            for p in punches
        ]
    )


def punches_from_json(raw: Any) -> tuple[Punch, ...]:
    return tuple(
        Punch(
            in_time=_dt(p["inTime"]),
            out_time=_dt(p.get("outTime")),
            duration=p.get("duration"),
            in_location=_location_from_json(p.get("inLocation")),
            out_location=_location_from_json(p.get("outLocation")),
        )
        for p in load_json(raw, [])
    )


def _to_record(r: dict) -> AttendanceRecord:
    return AttendanceRecord(
        attendance_id=int(r["attendance_id"]),
        driver_id=int(r["driver_id"]),
        work_date=r["work_date"],
        punches=punches_from_json(r.get("punches")),
        status=PunchState(r["status"]),
        total_hours=float(r.get("total_hours") or 0.0),
        carried_hours=float(r.get("carried_hours") or 0.0),
        version=int(r["version"]),
        lifecycle=Lifecycle.from_row(r),
    )


class MySQLAttendanceRepository(AttendanceRepository):
    def __init__(self, conn_factory: DatabaseConnection):
        self._conn_factory = conn_factory

    def get_for_driver_and_date(self, driver_id: int, work_date: date) -> Optional[AttendanceRecord]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"""
                SELECT {_COLUMNS} FROM driver_attendance
                WHERE driver_id=%s AND work_date=%s AND lifecycle_status='active'
                """,
                (int(driver_id), work_date),
            )
            r = fetchone(cur)
            return _to_record(r) if r else None

    def find_latest_open_before(self, driver_id: int, before: date) -> Optional[AttendanceRecord]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"""
                SELECT {_COLUMNS} FROM driver_attendance
                WHERE driver_id=%s AND work_date<%s AND status=%s AND lifecycle_status='active'
                ORDER BY work_date DESC
                """,
                (int(driver_id), before, PunchState.PUNCHED_IN.value),
            )
            for record in map(_to_record, fetchall(cur)):
                if record.has_open_punch:
                    return record
            return None

    def list_for_driver_since(self, driver_id: int, since: date) -> Sequence[AttendanceRecord]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"""
                SELECT {_COLUMNS} FROM driver_attendance
                WHERE driver_id=%s AND work_date>=%s AND lifecycle_status='active'
                ORDER BY work_date
                """,
                (int(driver_id), since),
            )
            return [_to_record(r) for r in fetchall(cur)]

    def list_open_records(self) -> Sequence[AttendanceRecord]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"""
                SELECT {_COLUMNS} FROM driver_attendance
                WHERE status=%s AND lifecycle_status='active'
                ORDER BY work_date DESC
                """,
                (PunchState.PUNCHED_IN.value,),
            )
            return [rec for rec in map(_to_record, fetchall(cur)) if rec.has_open_punch]

    def count_for_date(self, work_date: date) -> int:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                "SELECT COUNT(*) AS total FROM driver_attendance WHERE work_date=%s AND lifecycle_status='active'",
                (work_date,),
            )
            r = fetchone(cur)
            return int(r["total"]) if r else 0

    def create_with_punch(self, *, driver_id: int, work_date: date, punch: Punch) -> Optional[AttendanceRecord]:
        try:
            with db_cursor(self._conn_factory) as (_, cur):
                cur.execute(
                    """
                    INSERT INTO driver_attendance(driver_id, work_date, punches, status, total_hours, version)
                    VALUES(%s,%s,%s,%s,0,1)
                    """,
                    (int(driver_id), work_date, punches_to_json([punch]), PunchState.PUNCHED_IN.value),
                )
                attendance_id = int(cur.lastrowid)
        except mysql.connector.errors.IntegrityError:
            # unique (driver_id, work_date): another writer created the day first
            return None
        return AttendanceRecord(
            attendance_id=attendance_id,
            driver_id=int(driver_id),
            work_date=work_date,
            punches=(punch,),
            status=PunchState.PUNCHED_IN,
        )

    def _write_punches(self, cur, record: AttendanceRecord, expected_version: int) -> bool:
        cur.execute(
            """
            UPDATE driver_attendance
            SET punches=%s, status=%s, total_hours=%s, version=version+1
            WHERE attendance_id=%s AND version=%s AND lifecycle_status='active'
            """,
            (
                punches_to_json(record.punches),
                record.status.value,
                float(record.total_hours),
                int(record.attendance_id),
                int(expected_version),
            ),
        )
        return cur.rowcount > 0

    def save_punches(self, *, record: AttendanceRecord, expected_version: int) -> bool:
        with db_cursor(self._conn_factory) as (_, cur):
            return self._write_punches(cur, record, expected_version)

    def close_punch(self, *, record: AttendanceRecord, expected_version: int) -> Optional[ConflictReason]:
        with db_cursor(self._conn_factory) as (_, cur):
            # same driver row lock as the schedule repository's start_trip
            lock_row(cur, "users", "user_id", record.driver_id)
            cur.execute(
                """
                SELECT 1 AS found FROM trip_schedules
                WHERE driver_id=%s AND status=%s AND lifecycle_status='active'
                LIMIT 1 LOCK IN SHARE MODE
                """,
                (int(record.driver_id), TripStatus.IN_PROGRESS.value),
            )
            if fetchall(cur):
                return ConflictReason.ACTIVE_TRIP_IN_PROGRESS
            if not self._write_punches(cur, record, expected_version):
                return ConflictReason.CONCURRENT_MODIFICATION
            return None

    def add_carried_hours(self, *, driver_id: int, work_date: date, hours: float) -> None:
        # a carried-only day has no punches of its own; it reads as punched out
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                INSERT INTO driver_attendance(driver_id, work_date, punches, status, total_hours, carried_hours, version)
                VALUES(%s,%s,'[]',%s,%s,%s,1)
                ON DUPLICATE KEY UPDATE
                    carried_hours=carried_hours+VALUES(carried_hours),
                    total_hours=total_hours+VALUES(carried_hours),
                    version=version+1
                """,
                (int(driver_id), work_date, PunchState.PUNCHED_OUT.value, float(hours), float(hours)),
            )

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
        where = ["lifecycle_status='active'"]
        params: list = []
        if driver_id is not None:
            where.append("driver_id=%s")
            params.append(int(driver_id))
        if work_date is not None:
            where.append("work_date=%s")
            params.append(work_date)
        if start_date is not None:
            where.append("work_date>=%s")
            params.append(start_date)
        if end_date is not None:
            where.append("work_date<=%s")
            params.append(end_date)
        clause = " AND ".join(where)

        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(f"SELECT COUNT(*) AS total FROM driver_attendance WHERE {clause}", tuple(params))
            r = fetchone(cur)
            total = int(r["total"]) if r else 0
            cur.execute(
                f"""
                SELECT {_COLUMNS} FROM driver_attendance
                WHERE {clause}
                ORDER BY work_date DESC, driver_id
                LIMIT %s OFFSET %s
                """,
                (*params, int(limit), int(offset)),
            )
            return [_to_record(r) for r in fetchall(cur)], total

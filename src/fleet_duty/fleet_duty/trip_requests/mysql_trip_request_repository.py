from __future__ import annotations

from typing import Iterable

from ..database.connection import DatabaseConnection
from ..database.mysql_base import db_cursor, fetchall, fetchone, in_clause
from .repository import TripRequestRepository

PENDING = "pending"
SCHEDULED = "scheduled"


def _ids(values: Iterable[int]) -> list[int]:
    return sorted({int(v) for v in values})


class MySQLTripRequestRepository(TripRequestRepository):
    def __init__(self, conn_factory: DatabaseConnection):
        self._conn_factory = conn_factory

    def count_pending(self) -> int:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                "SELECT COUNT(*) AS total FROM trip_requests WHERE status=%s AND lifecycle_status='active'",
                (PENDING,),
            )
            r = fetchone(cur)
            return int(r["total"]) if r else 0

    def get_requestor_ids(self, request_ids: Iterable[int]) -> list[int]:
        ids = _ids(request_ids)
        if not ids:
            return []
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"""
                SELECT DISTINCT requestor_id FROM trip_requests
                WHERE request_id IN ({in_clause(ids)}) AND lifecycle_status='active'
                """,
                tuple(ids),
            )
            return [int(r["requestor_id"]) for r in fetchall(cur)]

    def find_scheduled(self, request_ids: Iterable[int], *, exclude_schedule_id: int | None = None) -> set[int]:
        ids = _ids(request_ids)
        if not ids:
            return set()
        sql = f"""
            SELECT request_id FROM trip_requests
            WHERE request_id IN ({in_clause(ids)}) AND status=%s AND lifecycle_status='active'
        """
        params: list = [*ids, SCHEDULED]
        if exclude_schedule_id is not None:
            sql += " AND (linked_schedule_id IS NULL OR linked_schedule_id<>%s)"
            params.append(int(exclude_schedule_id))
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(sql, tuple(params))
            return {int(r["request_id"]) for r in fetchall(cur)}

    def mark_scheduled(self, request_ids: Iterable[int], *, schedule_id: int) -> None:
        ids = _ids(request_ids)
        if not ids:
            return
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"UPDATE trip_requests SET status=%s, linked_schedule_id=%s WHERE request_id IN ({in_clause(ids)})",
                (SCHEDULED, int(schedule_id), *ids),
            )

    def mark_pending(self, request_ids: Iterable[int]) -> None:
        ids = _ids(request_ids)
        if not ids:
            return
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"UPDATE trip_requests SET status=%s, linked_schedule_id=NULL WHERE request_id IN ({in_clause(ids)})",
                (PENDING, *ids),
            )

from __future__ import annotations

from datetime import date

from ..database.connection import DatabaseConnection
from ..database.mysql_base import db_cursor, fetchone
from .repository import FuelingRepository


class MySQLFuelingRepository(FuelingRepository):
    def __init__(self, conn_factory: DatabaseConnection):
        self._conn_factory = conn_factory

    def count_active_for_date(self, day: date) -> int:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                SELECT COUNT(*) AS total FROM fueling_records
                WHERE fueled_on=%s AND lifecycle_status='active'
                """,
                (day,),
            )
            r = fetchone(cur)
            return int(r["total"]) if r else 0

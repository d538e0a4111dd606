from __future__ import annotations

from typing import Optional, Sequence

from ..common.lifecycle import Lifecycle
from ..database.connection import DatabaseConnection
from ..database.mysql_base import db_cursor, fetchall, fetchone
from .model import Vehicle
from .repository import VehicleRepository

_ACTIVE = "lifecycle_status='active' AND in_maintenance=0"


def _to_vehicle(r: dict) -> Vehicle:
    return Vehicle(
        vehicle_id=int(r["vehicle_id"]),
        name=r["name"],
        plate_number=r["plate_number"],
        vehicle_type=r.get("vehicle_type"),
        in_maintenance=bool(r.get("in_maintenance")),
        lifecycle=Lifecycle.from_row(r),
    )


class MySQLVehicleRepository(VehicleRepository):
    def __init__(self, conn_factory: DatabaseConnection):
        self._conn_factory = conn_factory

    def get_active(self, vehicle_id: int) -> Optional[Vehicle]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(f"SELECT * FROM vehicles WHERE vehicle_id=%s AND {_ACTIVE}", (int(vehicle_id),))
            r = fetchone(cur)
            return _to_vehicle(r) if r else None

    def list_active(self) -> Sequence[Vehicle]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(f"SELECT * FROM vehicles WHERE {_ACTIVE} ORDER BY name")
            return [_to_vehicle(r) for r in fetchall(cur)]

    def count_active(self) -> int:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(f"SELECT COUNT(*) AS total FROM vehicles WHERE {_ACTIVE}")
            r = fetchone(cur)
            return int(r["total"]) if r else 0

    def get_by_id(self, vehicle_id: int) -> Optional[Vehicle]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute("SELECT * FROM vehicles WHERE vehicle_id=%s", (int(vehicle_id),))
            r = fetchone(cur)
            return _to_vehicle(r) if r else None

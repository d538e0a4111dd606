from __future__ import annotations

from collections import defaultdict
from typing import Iterable, Optional, Sequence

from ..common.lifecycle import Lifecycle
from ..core.enums import Role
from ..database.connection import DatabaseConnection
from ..database.mysql_base import db_cursor, fetchall, fetchone, in_clause
from .model import User
from .repository import UserRepository

_USER_COLUMNS = "user_id, name, phone, role, lifecycle_status, deleted_by, deleted_at"


class MySQLUserRepository(UserRepository):
    def __init__(self, conn_factory: DatabaseConnection):
        self._conn_factory = conn_factory

    def _tokens_for(self, cur, user_ids: Sequence[int]) -> dict[int, tuple[str, ...]]:
        if not user_ids:
            return {}
        cur.execute(
            f"SELECT user_id, token FROM user_device_tokens WHERE user_id IN ({in_clause(user_ids)}) ORDER BY token",
            tuple(user_ids),
        )
        tokens: dict[int, list[str]] = defaultdict(list)
        for r in fetchall(cur):
            tokens[int(r["user_id"])].append(str(r["token"]))
        return {uid: tuple(items) for uid, items in tokens.items()}

    def _map_rows(self, cur, rows: list[dict]) -> list[User]:
        tokens = self._tokens_for(cur, [int(r["user_id"]) for r in rows])
        return [
            User(
                user_id=int(r["user_id"]),
                name=r["name"],
                role=Role(r["role"]),
                phone=r.get("phone"),
                device_tokens=tokens.get(int(r["user_id"]), ()),
                lifecycle=Lifecycle.from_row(r),
            )
            for r in rows
        ]

    def get_by_id(self, user_id: int) -> Optional[User]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(f"SELECT {_USER_COLUMNS} FROM users WHERE user_id=%s", (int(user_id),))
            r = fetchone(cur)
            if not r:
                return None
            return self._map_rows(cur, [r])[0]

    def get_active_driver(self, driver_id: int) -> Optional[User]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"""
                SELECT {_USER_COLUMNS} FROM users
                WHERE user_id=%s AND role=%s AND lifecycle_status='active'
                """,
                (int(driver_id), Role.DRIVER.value),
            )
            r = fetchone(cur)
            if not r:
                return None
            return self._map_rows(cur, [r])[0]

    def list_active_by_ids(self, user_ids: Iterable[int]) -> Sequence[User]:
        ids = sorted({int(i) for i in user_ids})
        if not ids:
            return []
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"""
                SELECT {_USER_COLUMNS} FROM users
                WHERE user_id IN ({in_clause(ids)}) AND lifecycle_status='active'
                ORDER BY user_id
                """,
                tuple(ids),
            )
            return self._map_rows(cur, fetchall(cur))

    def list_active_by_roles(self, roles: Iterable[Role], *, exclude_ids: Iterable[int] = ()) -> Sequence[User]:
        role_values = sorted({Role(r).value for r in roles})
        if not role_values:
            return []
        excluded = sorted({int(i) for i in exclude_ids})
        sql = f"""
            SELECT {_USER_COLUMNS} FROM users
            WHERE role IN ({in_clause(role_values)}) AND lifecycle_status='active'
        """
        params: list = list(role_values)
        if excluded:
            sql += f" AND user_id NOT IN ({in_clause(excluded)})"
            params.extend(excluded)
        sql += " ORDER BY user_id"
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(sql, tuple(params))
            return self._map_rows(cur, fetchall(cur))

    def count_active_drivers(self) -> int:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                "SELECT COUNT(*) AS total FROM users WHERE role=%s AND lifecycle_status='active'",
                (Role.DRIVER.value,),
            )
            r = fetchone(cur)
            return int(r["total"]) if r else 0

from __future__ import annotations

import json
from datetime import datetime
from typing import Iterable, Optional, Sequence

from ..common.lifecycle import Lifecycle
from ..core.enums import Role
from ..database.connection import DatabaseConnection
from ..database.mysql_base import db_cursor, fetchall, fetchone, in_clause, load_json
from .model import NotificationPreference
from .preferences import PreferenceSettings, settings_from_dict, settings_to_dict
from .repository import PreferenceRepository

_COLUMNS = "user_id, role, settings, lifecycle_status, deleted_by, deleted_at"


def _to_preference(r: dict) -> NotificationPreference:
    role = Role(r["role"])
    return NotificationPreference(
        user_id=int(r["user_id"]),
        role=role,
        settings=settings_from_dict(role, load_json(r.get("settings"), {})),
        lifecycle=Lifecycle.from_row(r),
    )


class MySQLPreferenceRepository(PreferenceRepository):
    def __init__(self, conn_factory: DatabaseConnection):
        self._conn_factory = conn_factory

    def get_for_user(self, user_id: int) -> Optional[NotificationPreference]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"SELECT {_COLUMNS} FROM user_notification_settings WHERE user_id=%s AND lifecycle_status='active'",
                (int(user_id),),
            )
            r = fetchone(cur)
            return _to_preference(r) if r else None

    def get_for_users(self, user_ids: Iterable[int]) -> dict[int, NotificationPreference]:
        ids = sorted({int(i) for i in user_ids})
        if not ids:
            return {}
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"""
                SELECT {_COLUMNS} FROM user_notification_settings
                WHERE user_id IN ({in_clause(ids)}) AND lifecycle_status='active'
                """,
                tuple(ids),
            )
            return {p.user_id: p for p in map(_to_preference, fetchall(cur))}

    def list_active_for_role(self, role: Role) -> Sequence[NotificationPreference]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"SELECT {_COLUMNS} FROM user_notification_settings WHERE role=%s AND lifecycle_status='active'",
                (Role(role).value,),
            )
            return [_to_preference(r) for r in fetchall(cur)]

    def upsert(self, *, user_id: int, role: Role, settings: PreferenceSettings) -> None:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                INSERT INTO user_notification_settings(user_id, role, settings, lifecycle_status)
                VALUES(%s,%s,%s,'active')
                ON DUPLICATE KEY UPDATE role=VALUES(role), settings=VALUES(settings),
                    lifecycle_status='active', deleted_by=NULL, deleted_at=NULL
                """,
                (int(user_id), Role(role).value, json.dumps(settings_to_dict(settings))),
            )

    def deactivate(self, *, user_id: int, actor_id: Optional[int], at: datetime) -> bool:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                UPDATE user_notification_settings
                SET lifecycle_status='deleted', deleted_by=%s, deleted_at=%s
                WHERE user_id=%s AND lifecycle_status='active'
                """,
                (actor_id, at, int(user_id)),
            )
            return cur.rowcount > 0

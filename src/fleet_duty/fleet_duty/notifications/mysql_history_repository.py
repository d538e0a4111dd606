from __future__ import annotations

import json
from datetime import datetime
from typing import Any, Mapping, Optional, Sequence

from ..common.lifecycle import Lifecycle
from ..database.connection import DatabaseConnection
from ..database.mysql_base import db_cursor, fetchall, fetchone, in_clause, load_json
from .model import NotificationRecord
from .repository import NotificationHistoryRepository

_COLUMNS = (
    "notification_id, user_id, title, body, data, is_read, read_at, created_at, "
    "lifecycle_status, deleted_by, deleted_at"
)


def _to_record(r: dict) -> NotificationRecord:
    return NotificationRecord(
        notification_id=int(r["notification_id"]),
        user_id=int(r["user_id"]),
        title=r["title"],
        body=r["body"],
        data=load_json(r.get("data"), {}),
        is_read=bool(r.get("is_read")),
        read_at=r.get("read_at"),
        created_at=r["created_at"],
        lifecycle=Lifecycle.from_row(r),
    )


class MySQLNotificationHistoryRepository(NotificationHistoryRepository):
    def __init__(self, conn_factory: DatabaseConnection):
        self._conn_factory = conn_factory

    def record_many(
        self, *, user_ids: Sequence[int], title: str, body: str, data: Mapping[str, Any], at: datetime
    ) -> int:
        rows = [
            (int(uid), title, body, json.dumps({**dict(data), "userId": str(uid)}, default=str), at)
            for uid in user_ids
        ]
        if not rows:
            return 0
        with db_cursor(self._conn_factory) as (_, cur):
            cur.executemany(
                """
                INSERT INTO notification_history(user_id, title, body, data, created_at)
                VALUES(%s,%s,%s,%s,%s)
                """,
                rows,
            )
        return len(rows)

    def list_for_user(self, user_id: int, *, offset: int, limit: int) -> tuple[Sequence[NotificationRecord], int]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                "SELECT COUNT(*) AS total FROM notification_history WHERE user_id=%s AND lifecycle_status='active'",
                (int(user_id),),
            )
            r = fetchone(cur)
            total = int(r["total"]) if r else 0
            cur.execute(
                f"""
                SELECT {_COLUMNS} FROM notification_history
                WHERE user_id=%s AND lifecycle_status='active'
                ORDER BY created_at DESC, notification_id DESC
                LIMIT %s OFFSET %s
                """,
                (int(user_id), int(limit), int(offset)),
            )
            return [_to_record(row) for row in fetchall(cur)], total

    def count_unread(self, user_id: int) -> int:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                SELECT COUNT(*) AS total FROM notification_history
                WHERE user_id=%s AND is_read=0 AND lifecycle_status='active'
                """,
                (int(user_id),),
            )
            r = fetchone(cur)
            return int(r["total"]) if r else 0

    def mark_read(self, user_id: int, *, notification_ids: Optional[Sequence[int]], at: datetime) -> int:
        where = "user_id=%s AND is_read=0 AND lifecycle_status='active'"
        params: list[Any] = [at, int(user_id)]
        if notification_ids:
            ids = sorted({int(i) for i in notification_ids})
            where += f" AND notification_id IN ({in_clause(ids)})"
            params.extend(ids)
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(f"UPDATE notification_history SET is_read=1, read_at=%s WHERE {where}", tuple(params))
            return int(cur.rowcount)

    def deactivate(self, notification_id: int, *, user_id: int, at: datetime) -> bool:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                UPDATE notification_history
                SET lifecycle_status='deleted', deleted_by=%s, deleted_at=%s
                WHERE notification_id=%s AND user_id=%s AND lifecycle_status='active'
                """,
                (int(user_id), at, int(notification_id), int(user_id)),
            )
            return cur.rowcount > 0

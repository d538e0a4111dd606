from __future__ import annotations

from datetime import datetime
from typing import Any, Iterable, Mapping, Optional, Protocol, Sequence

from ..core.enums import Role
from .model import NotificationPreference, NotificationRecord
from .preferences import PreferenceSettings


class PreferenceRepository(Protocol):
    def get_for_user(self, user_id: int) -> Optional[NotificationPreference]:
        """Active preference record of a user, if any."""

        raise NotImplementedError

    def get_for_users(self, user_ids: Iterable[int]) -> dict[int, NotificationPreference]:
        raise NotImplementedError

    def list_active_for_role(self, role: Role) -> Sequence[NotificationPreference]:
        raise NotImplementedError

    def upsert(self, *, user_id: int, role: Role, settings: PreferenceSettings) -> None:
        """Create or replace the record, re-activating it when soft-deleted."""

        raise NotImplementedError

    def deactivate(self, *, user_id: int, actor_id: Optional[int], at: datetime) -> bool:
        raise NotImplementedError


class NotificationHistoryRepository(Protocol):
    def record_many(
        self, *, user_ids: Sequence[int], title: str, body: str, data: Mapping[str, Any], at: datetime
    ) -> int:
        """Insert one unread row per user; ``data`` gains the recipient's ``userId``."""

        raise NotImplementedError

    def list_for_user(self, user_id: int, *, offset: int, limit: int) -> tuple[Sequence[NotificationRecord], int]:
        """Active rows newest first, plus the unpaginated total."""

        raise NotImplementedError

    def count_unread(self, user_id: int) -> int:
        raise NotImplementedError

    def mark_read(self, user_id: int, *, notification_ids: Optional[Sequence[int]], at: datetime) -> int:
        """Mark the given rows (or every unread row when None) read; returns rows changed."""

        raise NotImplementedError

    def deactivate(self, notification_id: int, *, user_id: int, at: datetime) -> bool:
        raise NotImplementedError

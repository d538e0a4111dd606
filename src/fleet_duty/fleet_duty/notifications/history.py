from __future__ import annotations

import logging
from datetime import datetime
from typing import Iterable, Optional

from ..common.datetime_utils import now_local
from ..common.pagination import Page, offset_for
from ..common.validators import require_page
from ..core.constants import DEFAULT_PAGE, DEFAULT_PAGE_LIMIT, DEFAULT_SERVICE_TIMEZONE
from ..core.exceptions import NotFoundError
from .model import NotificationRecord
from .repository import NotificationHistoryRepository

logger = logging.getLogger(__name__)


class NotificationInbox:
    """Read side of the per-user notification history the dispatcher writes."""

    def __init__(self, history: NotificationHistoryRepository, *, timezone: str = DEFAULT_SERVICE_TIMEZONE):
        self._history = history
        self._timezone = timezone

    def _now(self, now: datetime | None) -> datetime:
        return now or now_local(self._timezone)

    def get_notifications(
        self, user_id: int, *, page: int = DEFAULT_PAGE, limit: int = DEFAULT_PAGE_LIMIT
    ) -> Page[NotificationRecord]:
        page, limit = require_page(page, limit)
        rows, total = self._history.list_for_user(user_id, offset=offset_for(page, limit), limit=limit)
        return Page(items=list(rows), total=total, page=page, limit=limit)

    def get_unread_count(self, user_id: int) -> int:
        return self._history.count_unread(user_id)

    def mark_as_read(
        self, user_id: int, notification_ids: Optional[Iterable[int]] = None, *, now: datetime | None = None
    ) -> int:
        """Mark the listed notifications read, or every unread one when none are listed."""
        ids = [int(i) for i in notification_ids] if notification_ids else None
        changed = self._history.mark_read(user_id, notification_ids=ids, at=self._now(now))
        logger.debug("Marked %d notification(s) read for user %s", changed, user_id)
        return changed

    def delete_notification(self, user_id: int, notification_id: int, *, now: datetime | None = None) -> None:
        if not self._history.deactivate(notification_id, user_id=user_id, at=self._now(now)):
            raise NotFoundError("Notification not found")

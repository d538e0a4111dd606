from __future__ import annotations

import logging
from typing import Any, Iterable, Mapping, Optional, Sequence

from ..common.background import BackgroundTaskRunner
from ..common.datetime_utils import now_local
from ..core.constants import DEFAULT_SERVICE_TIMEZONE
from ..core.enums import NotificationType, Role
from ..users.model import User
from ..users.repository import UserRepository
from .repository import NotificationHistoryRepository, PreferenceRepository
from .transport import PushTransport

logger = logging.getLogger(__name__)


class NotificationDispatcher:
    """Resolves an audience to device tokens through preferences and hands them to the transport.

    ``send_*`` deliver synchronously and return the tokens handed over.
    ``notify_*`` submit the same work to the background runner: at-most-once,
    never raising into the caller.
    With a history repository, each delivery also leaves one unread row per
    recipient user.
    """

    def __init__(
        self,
        users: UserRepository,
        preferences: PreferenceRepository,
        transport: PushTransport,
        *,
        runner: Optional[BackgroundTaskRunner] = None,
        history: Optional[NotificationHistoryRepository] = None,
        timezone: str = DEFAULT_SERVICE_TIMEZONE,
    ):
        self._users = users
        self._preferences = preferences
        self._transport = transport
        self._runner = runner
        self._history = history
        self._timezone = timezone

    def _collect_tokens(
        self, users: Sequence[User], notification_types: Sequence[NotificationType]
    ) -> tuple[list[str], list[int]]:
        """(deduplicated tokens, ids of the users they belong to)."""
        prefs = self._preferences.get_for_users(u.user_id for u in users)
        tokens: list[str] = []
        recipients: list[int] = []
        seen: set[str] = set()
        for user in users:
            pref = prefs.get(user.user_id)
            if not pref or not pref.allows(notification_types):
                continue
            owned = [t for t in user.device_tokens if t]
            if owned:
                recipients.append(user.user_id)
            for token in owned:
                if token not in seen:
                    seen.add(token)
                    tokens.append(token)
        return tokens, recipients

    def _deliver(
        self, audience: tuple[list[str], list[int]], title: str, body: str, data: Mapping[str, Any]
    ) -> list[str]:
        tokens, recipients = audience
        if not tokens:
            logger.debug("No recipients for notification %r", title)
            return tokens
        report = self._transport.deliver(tokens, title, body, dict(data or {}))
        logger.info(
            "Notification %r: %d tokens, %d delivered, %d failed",
            title,
            len(tokens),
            report.success_count,
            report.failure_count,
        )
        self._record(recipients, title, body, data)
        return tokens

    def _record(self, recipients: list[int], title: str, body: str, data: Mapping[str, Any]) -> None:
        if self._history is None:
            return
        try:
            self._history.record_many(
                user_ids=recipients, title=title, body=body, data=dict(data or {}), at=now_local(self._timezone)
            )
        except Exception:
            # history is best-effort; the push has already gone out
            logger.exception("Storing notification history for %r failed", title)

    def send_notifications_to_roles(
        self,
        roles: Iterable[Role],
        notification_types: Iterable[NotificationType],
        title: str,
        body: str,
        data: Mapping[str, Any],
        exclude_user_ids: Iterable[int] = (),
    ) -> list[str]:
        types = [NotificationType(t) for t in notification_types]
        users = self._users.list_active_by_roles([Role(r) for r in roles], exclude_ids=exclude_user_ids)
        return self._deliver(self._collect_tokens(users, types), title, body, data)

    def send_notifications_to_ids(
        self,
        ids: Iterable[int],
        notification_types: Iterable[NotificationType],
        title: str,
        body: str,
        data: Mapping[str, Any],
    ) -> list[str]:
        types = [NotificationType(t) for t in notification_types]
        users = self._users.list_active_by_ids(ids)
        return self._deliver(self._collect_tokens(users, types), title, body, data)

    def notify_roles(self, roles, notification_types, title, body, data, exclude_user_ids=()) -> None:
        self._submit(
            self.send_notifications_to_roles,
            list(roles),
            list(notification_types),
            title,
            body,
            dict(data or {}),
            tuple(exclude_user_ids),
        )

    def notify_ids(self, ids, notification_types, title, body, data) -> None:
        ids = list(ids)
        if not ids:
            return
        self._submit(self.send_notifications_to_ids, ids, list(notification_types), title, body, dict(data or {}))

    def _submit(self, fn, *args) -> None:
        if self._runner is None:
            # no runner configured: deliver inline, still never raising into the caller
            try:
                fn(*args)
            except Exception:
                logger.exception("Notification delivery failed")
            return
        self._runner.submit(fn, *args)

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Mapping, Optional

from ..common.datetime_utils import now_local
from ..core.constants import DEFAULT_SERVICE_TIMEZONE
from ..core.enums import Role
from ..core.exceptions import NotFoundError, ValidationError
from .model import NotificationPreference
from .preferences import apply_changes, defaults_for_role, settings_type_for, validate_changes
from .repository import PreferenceRepository

logger = logging.getLogger(__name__)


class AttendancePreferenceStore:
    """Per-user notification preferences seeded from role templates."""

    def __init__(self, preferences: PreferenceRepository, *, timezone: str = DEFAULT_SERVICE_TIMEZONE):
        self._preferences = preferences
        self._timezone = timezone

    def get_or_create(self, user_id: int, role: Role) -> NotificationPreference:
        existing = self._preferences.get_for_user(user_id)
        if existing:
            return existing
        self._preferences.upsert(user_id=user_id, role=Role(role), settings=defaults_for_role(role))
        created = self._preferences.get_for_user(user_id)
        if not created:
            raise NotFoundError("Notification settings not found")
        return created

    def get(self, user_id: int) -> NotificationPreference:
        pref = self._preferences.get_for_user(user_id)
        if not pref:
            raise NotFoundError("Notification settings not found")
        return pref

    def update_settings(self, user_id: int, role: Role, changes: Mapping[str, Any]) -> NotificationPreference:
        role = Role(role)
        cleaned = validate_changes(role, changes)
        current = self.get(user_id)
        if settings_type_for(current.role) is not settings_type_for(role):
            raise ValidationError("Settings do not match the user's role")

        settings = apply_changes(current.settings, cleaned)
        self._preferences.upsert(user_id=user_id, role=role, settings=settings)
        return self.get(user_id)

    def on_role_changed(self, user_id: int, new_role: Role) -> NotificationPreference:
        """Re-seed from the new role's template, keeping the master switch."""
        new_role = Role(new_role)
        current = self._preferences.get_for_user(user_id)
        settings = defaults_for_role(new_role)
        if current:
            settings = apply_changes(settings, {"receive_notification": current.receive_notification})
        self._preferences.upsert(user_id=user_id, role=new_role, settings=settings)
        logger.info("Notification settings of user %s re-seeded for role %s", user_id, new_role.value)
        return self.get(user_id)

    def reset_for_role(self, role: Role) -> int:
        role = Role(role)
        defaults = defaults_for_role(role)
        affected = self._preferences.list_active_for_role(role)
        for pref in affected:
            self._preferences.upsert(user_id=pref.user_id, role=role, settings=defaults)
        logger.info("Reset notification settings of %d %s users", len(affected), role.value)
        return len(affected)

    def deactivate(self, user_id: int, actor_id: Optional[int], *, now: datetime | None = None) -> bool:
        now = now or now_local(self._timezone)
        return self._preferences.deactivate(user_id=user_id, actor_id=actor_id, at=now)

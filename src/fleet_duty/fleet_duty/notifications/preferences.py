"""Role-parameterized notification preference records.

Each role family has a closed record type listing its exact flags and
defaults. Updates are validated against the fields the role may edit.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, fields, replace
from typing import Any, ClassVar, Iterable, Mapping, Union

from ..core.constants import (
    DEFAULT_UPCOMING_TRIP_REMINDER_MINUTES,
    MAX_UPCOMING_TRIP_REMINDER_MINUTES,
    MIN_UPCOMING_TRIP_REMINDER_MINUTES,
)
from ..core.enums import NotificationType, Role, STAFF_ROLES
from ..core.exceptions import ValidationError


@dataclass(frozen=True)
class AdminPreferences:
    receive_notification: bool = True
    receive_driver_punch_in: bool = True
    receive_driver_punch_out: bool = True
    receive_driver_trip_started: bool = True
    receive_driver_trip_ended: bool = True
    receive_driver_idle: bool = True
    receive_trip_scheduled_notification: bool = True

    EDITABLE: ClassVar[frozenset[str]] = frozenset(
        {
            "receive_notification",
            "receive_driver_punch_in",
            "receive_driver_punch_out",
            "receive_driver_trip_started",
            "receive_driver_trip_ended",
            "receive_driver_idle",
            "receive_trip_scheduled_notification",
        }
    )


@dataclass(frozen=True)
class RequestorPreferences:
    receive_notification: bool = True
    receive_my_request_notification: bool = True
    receive_my_request_trip_started: bool = True
    receive_my_request_trip_ended: bool = True

    EDITABLE: ClassVar[frozenset[str]] = frozenset(
        {
            "receive_notification",
            "receive_my_request_notification",
            "receive_my_request_trip_started",
            "receive_my_request_trip_ended",
        }
    )


@dataclass(frozen=True)
class DriverPreferences:
    receive_notification: bool = True
    receive_trip_scheduled_notification: bool = True
    receive_trip_schedule_updated_notification: bool = True
    receive_reminder_for_upcoming_trip: bool = True
    reminder_for_upcoming_trip_time: int = DEFAULT_UPCOMING_TRIP_REMINDER_MINUTES
    receive_reminder_for_punch_out: bool = True

    EDITABLE: ClassVar[frozenset[str]] = frozenset(
        {
            "receive_reminder_for_upcoming_trip",
            "receive_reminder_for_punch_out",
            "reminder_for_upcoming_trip_time",
        }
    )


PreferenceSettings = Union[AdminPreferences, RequestorPreferences, DriverPreferences]

_INT_FIELDS = {
    "reminder_for_upcoming_trip_time": (MIN_UPCOMING_TRIP_REMINDER_MINUTES, MAX_UPCOMING_TRIP_REMINDER_MINUTES),
}


def settings_type_for(role: Role) -> type:
    role = Role(role)
    if role == Role.DRIVER:
        return DriverPreferences
    if role in STAFF_ROLES:
        return AdminPreferences
    return RequestorPreferences


def defaults_for_role(role: Role) -> PreferenceSettings:
    return settings_type_for(role)()


def settings_from_dict(role: Role, data: Mapping[str, Any]) -> PreferenceSettings:
    """Rebuild stored settings; keys the role's record does not know are dropped."""
    cls = settings_type_for(role)
    known = {f.name for f in fields(cls)}
    return cls(**{k: v for k, v in data.items() if k in known})


def settings_to_dict(settings: PreferenceSettings) -> dict[str, Any]:
    return asdict(settings)


def validate_changes(role: Role, changes: Mapping[str, Any]) -> dict[str, Any]:
    if not changes:
        raise ValidationError("No settings to update")
    cls = settings_type_for(role)
    not_allowed = sorted(set(changes) - cls.EDITABLE)
    if not_allowed:
        raise ValidationError(f"Settings not editable for role {Role(role).value}: {', '.join(not_allowed)}")

    cleaned: dict[str, Any] = {}
    for name, value in changes.items():
        bounds = _INT_FIELDS.get(name)
        if bounds:
            low, high = bounds
            if isinstance(value, bool) or not isinstance(value, int) or not low <= value <= high:
                raise ValidationError(f"{name} must be an integer between {low} and {high}")
        elif not isinstance(value, bool):
            raise ValidationError(f"{name} must be a boolean")
        cleaned[name] = value
    return cleaned


def apply_changes(settings: PreferenceSettings, changes: Mapping[str, Any]) -> PreferenceSettings:
    return replace(settings, **dict(changes))


def settings_allow(settings: PreferenceSettings, notification_types: Iterable[NotificationType]) -> bool:
    """Master switch on and, when types are given, at least one of them enabled."""
    if not settings.receive_notification:
        return False
    types = [NotificationType(t) for t in notification_types]
    if not types:
        return True
    return any(getattr(settings, t.value, False) is True for t in types)

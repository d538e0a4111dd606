from __future__ import annotations

from enum import Enum


class Role(str, Enum):
    """Roles supplied by the authentication layer."""

    SUPER_ADMIN = "super-admin"
    ADMIN = "admin"
    SCHEDULER = "scheduler"
    REQUESTOR = "requestor"
    DRIVER = "driver"


class PunchState(str, Enum):
    """Duty status stored on an attendance record, derived from its last punch."""

    NOT_PUNCHED_IN = "not-punched-in"
    PUNCHED_IN = "punched-in"
    PUNCHED_OUT = "punched-out"


class TripStatus(str, Enum):
    SCHEDULED = "scheduled"
    IN_PROGRESS = "in progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class LifecycleStatus(str, Enum):
    ACTIVE = "active"
    DELETED = "deleted"


class NotificationType(str, Enum):
    """Preference flags that gate a notification sent from this package.

    Values are the field names of the preference records in
    ``notifications.preferences``. The idle and reminder flags on those
    records have no member here because nothing in this package sends them.
    """

    DRIVER_PUNCH_IN = "receive_driver_punch_in"
    DRIVER_PUNCH_OUT = "receive_driver_punch_out"
    DRIVER_TRIP_STARTED = "receive_driver_trip_started"
    DRIVER_TRIP_ENDED = "receive_driver_trip_ended"
    TRIP_SCHEDULED = "receive_trip_scheduled_notification"
    TRIP_SCHEDULE_UPDATED = "receive_trip_schedule_updated_notification"
    MY_REQUEST = "receive_my_request_notification"
    MY_REQUEST_TRIP_STARTED = "receive_my_request_trip_started"
    MY_REQUEST_TRIP_ENDED = "receive_my_request_trip_ended"


class ConflictReason(str, Enum):
    ALREADY_PUNCHED_IN = "AlreadyPunchedIn"
    ALREADY_PUNCHED_OUT = "AlreadyPunchedOut"
    NO_ACTIVE_PUNCH = "NoActivePunch"
    ACTIVE_TRIP_IN_PROGRESS = "ActiveTripInProgress"
    OVERLAPPING_SCHEDULE = "OverlappingSchedule"
    RESOURCE_BUSY = "ResourceBusy"
    DRIVER_NOT_ON_DUTY = "DriverNotOnDuty"
    CONCURRENT_MODIFICATION = "ConcurrentModification"
    SCHEDULE_IN_PROGRESS = "ScheduleInProgress"
    REQUEST_ALREADY_SCHEDULED = "RequestAlreadyScheduled"


ADMIN_ROLES = frozenset({Role.ADMIN, Role.SUPER_ADMIN})
STAFF_ROLES = frozenset({Role.SCHEDULER, Role.ADMIN, Role.SUPER_ADMIN})

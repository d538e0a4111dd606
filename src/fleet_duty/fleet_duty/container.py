from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from .attendance.factory import HoursAccountingFactory
from .attendance.geocoding import ReverseGeocoder
from .attendance.mysql_attendance_repository import MySQLAttendanceRepository
from .attendance.service import AttendanceTracker
from .availability.service import AvailabilityEngine
from .common.background import BackgroundTaskRunner
from .common.locks import KeyedLocks
from .core.constants import (
    DEFAULT_DASHBOARD_WORKERS,
    DEFAULT_HOURS_ACCOUNTING,
    DEFAULT_NOTIFICATION_QUEUE_LIMIT,
    DEFAULT_NOTIFICATION_WORKERS,
    DEFAULT_SERVICE_TIMEZONE,
)
from .database.connection import DatabaseConnection, DBConfig
from .fueling.mysql_fueling_repository import MySQLFuelingRepository
from .notifications.dispatcher import NotificationDispatcher
from .notifications.history import NotificationInbox
from .notifications.mysql_history_repository import MySQLNotificationHistoryRepository
from .notifications.mysql_preference_repository import MySQLPreferenceRepository
from .notifications.preference_store import AttendancePreferenceStore
from .notifications.transport import FirebasePushTransport, PushTransport
from .schedules.mysql_schedule_repository import MySQLScheduleRepository
from .schedules.service import TripScheduleManager
from .trip_requests.mysql_trip_request_repository import MySQLTripRequestRepository
from .users.mysql_user_repository import MySQLUserRepository
from .vehicles.mysql_vehicle_repository import MySQLVehicleRepository


@dataclass(frozen=True)
class Container:
    conn: DatabaseConnection
    runner: BackgroundTaskRunner
    locks: KeyedLocks

    users_repo: MySQLUserRepository
    vehicles_repo: MySQLVehicleRepository
    fueling_repo: MySQLFuelingRepository
    trip_requests_repo: MySQLTripRequestRepository
    preferences_repo: MySQLPreferenceRepository
    attendance_repo: MySQLAttendanceRepository
    schedules_repo: MySQLScheduleRepository
    history_repo: MySQLNotificationHistoryRepository

    preference_store: AttendancePreferenceStore
    dispatcher: NotificationDispatcher
    inbox: NotificationInbox
    attendance_tracker: AttendanceTracker
    schedule_manager: TripScheduleManager
    availability_engine: AvailabilityEngine

    def shutdown(self, *, wait: bool = True) -> None:
        self.runner.shutdown(wait=wait)


def build_container(
    *,
    db_config: dict,
    service_timezone: str = DEFAULT_SERVICE_TIMEZONE,
    hours_accounting: str = DEFAULT_HOURS_ACCOUNTING,
    notification_workers: int = DEFAULT_NOTIFICATION_WORKERS,
    notification_queue_limit: int = DEFAULT_NOTIFICATION_QUEUE_LIMIT,
    dashboard_workers: int = DEFAULT_DASHBOARD_WORKERS,
    firebase_credentials: Optional[str] = None,
    transport: Optional[PushTransport] = None,
    geocoder: Optional[ReverseGeocoder] = None,
) -> Container:
    conn = DatabaseConnection(DBConfig.from_mapping(db_config))
    runner = BackgroundTaskRunner(
        max_workers=notification_workers, max_pending=notification_queue_limit, name="notifications"
    )
    locks = KeyedLocks()

    users_repo = MySQLUserRepository(conn)
    vehicles_repo = MySQLVehicleRepository(conn)
    fueling_repo = MySQLFuelingRepository(conn)
    trip_requests_repo = MySQLTripRequestRepository(conn)
    preferences_repo = MySQLPreferenceRepository(conn)
    attendance_repo = MySQLAttendanceRepository(conn)
    schedules_repo = MySQLScheduleRepository(conn)
    history_repo = MySQLNotificationHistoryRepository(conn)

    preference_store = AttendancePreferenceStore(preferences_repo, timezone=service_timezone)
    dispatcher = NotificationDispatcher(
        users_repo,
        preferences_repo,
        transport or FirebasePushTransport(firebase_credentials),
        runner=runner,
        history=history_repo,
        timezone=service_timezone,
    )
    inbox = NotificationInbox(history_repo, timezone=service_timezone)
    attendance_tracker = AttendanceTracker(
        attendance_repo,
        users_repo,
        schedules_repo,
        dispatcher,
        accounting=HoursAccountingFactory().for_name(hours_accounting),
        locks=locks,
        geocoder=geocoder,
        timezone=service_timezone,
    )
    schedule_manager = TripScheduleManager(
        schedules_repo,
        users_repo,
        vehicles_repo,
        trip_requests_repo,
        attendance_tracker,
        dispatcher,
        locks=locks,
        timezone=service_timezone,
    )
    availability_engine = AvailabilityEngine(
        attendance_repo,
        schedules_repo,
        vehicles_repo,
        users_repo,
        trip_requests_repo,
        fueling_repo,
        max_workers=dashboard_workers,
        timezone=service_timezone,
    )

    return Container(
        conn=conn,
        runner=runner,
        locks=locks,
        users_repo=users_repo,
        vehicles_repo=vehicles_repo,
        fueling_repo=fueling_repo,
        trip_requests_repo=trip_requests_repo,
        preferences_repo=preferences_repo,
        attendance_repo=attendance_repo,
        schedules_repo=schedules_repo,
        history_repo=history_repo,
        preference_store=preference_store,
        dispatcher=dispatcher,
        inbox=inbox,
        attendance_tracker=attendance_tracker,
        schedule_manager=schedule_manager,
        availability_engine=availability_engine,
    )

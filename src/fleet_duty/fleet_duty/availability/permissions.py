"""Which roles may see which dashboard metric."""

from __future__ import annotations

from ..core.enums import Role
from ..core.exceptions import AuthorizationError

ACTIVE_TRIPS = "activeTrips"
PENDING_REQUESTS = "pendingRequests"
DRIVERS_ON_DUTY = "driversOnDuty"
IDLE_DRIVERS = "idleDrivers"
AVAILABLE_VEHICLES = "availableVehicles"
TOTAL_ACTIVE_VEHICLES = "totalActiveVehicles"
TRIPS_TODAY = "tripsToday"
TRIPS_THIS_WEEK = "tripsThisWeek"
TRIPS_THIS_MONTH = "tripsThisMonth"
FUELING_RECORDS_TODAY = "fuelingRecordsToday"

_ADMINS = frozenset({Role.ADMIN, Role.SUPER_ADMIN})
_OPERATIONS = frozenset({Role.SCHEDULER, Role.ADMIN, Role.SUPER_ADMIN})

DASHBOARD_PERMISSIONS: dict[str, frozenset[Role]] = {
    ACTIVE_TRIPS: frozenset({Role.DRIVER}) | _ADMINS,
    PENDING_REQUESTS: frozenset({Role.REQUESTOR}) | _OPERATIONS,
    DRIVERS_ON_DUTY: _OPERATIONS,
    IDLE_DRIVERS: _OPERATIONS,
    AVAILABLE_VEHICLES: _OPERATIONS,
    TOTAL_ACTIVE_VEHICLES: _OPERATIONS,
    TRIPS_TODAY: frozenset({Role.DRIVER, Role.REQUESTOR}) | _OPERATIONS,
    TRIPS_THIS_WEEK: _OPERATIONS,
    TRIPS_THIS_MONTH: _OPERATIONS,
    FUELING_RECORDS_TODAY: _ADMINS,
}

LOCATION_VISIBLE_ROLES = _ADMINS


def permitted_metrics(role: Role) -> frozenset[str]:
    role = Role(role)
    return frozenset(metric for metric, roles in DASHBOARD_PERMISSIONS.items() if role in roles)


def can_view(role: Role, metric: str) -> bool:
    return Role(role) in DASHBOARD_PERMISSIONS.get(metric, frozenset())


def require_view(role: Role, metric: str) -> None:
    """For callers gating a metric's detail view (e.g. the idle-driver list)."""
    if not can_view(role, metric):
        raise AuthorizationError(f"Role {Role(role).value} may not view {metric}")

"""Titles, bodies and data payloads of the push notifications sent by the core."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from ..common.datetime_utils import format_duration, hours_between


def _when(value: Optional[datetime]) -> str:
    if not value:
        return "-"
    return value.strftime("%d %B %Y, %I:%M %p")


def punch_in(driver_name: str, *, driver_id: int, at: datetime) -> tuple[str, str, dict[str, Any]]:
    return (
        "Driver Punch IN",
        f"{driver_name} punched in at {at.strftime('%I:%M %p')}",
        {"type": "driver_punch_in", "driverId": driver_id, "time": at.isoformat()},
    )


def punch_out(driver_name: str, *, driver_id: int, at: datetime, on_duty_hours: float) -> tuple[str, str, dict[str, Any]]:
    total = format_duration(on_duty_hours)
    return (
        "Driver Punch OUT",
        f"{driver_name} punched out at {at.strftime('%I:%M %p')}\n• Total time: {total}",
        {"type": "driver_punch_out", "driverId": driver_id, "driverName": driver_name, "totalTime": total},
    )


def _destinations_line(destinations) -> str:
    names = [d.destination for d in destinations if d.destination]
    return " - ".join(names) if names else "-"


def trip_summary(schedule, *, driver_name: str = "", vehicle_name: str = "") -> str:
    first = [_when(schedule.trip_start_time)]
    if vehicle_name:
        first.append(vehicle_name)
    second = [driver_name] if driver_name else []
    second.append("Connecting" if len(schedule.destinations) > 1 else "Direct")
    return f"• {' - '.join(first)}\n• {' - '.join(second)}"


def trip_scheduled(schedule, *, driver_name: str, vehicle_name: str) -> tuple[str, str, dict[str, Any]]:
    return (
        "Trip Scheduled",
        trip_summary(schedule, driver_name=driver_name, vehicle_name=vehicle_name),
        {"type": "trip_scheduled", "scheduleId": schedule.schedule_id},
    )


def trip_updated(schedule, *, driver_name: str, vehicle_name: str) -> tuple[str, str, dict[str, Any]]:
    return (
        "Trip Schedule Updated",
        trip_summary(schedule, driver_name=driver_name, vehicle_name=vehicle_name),
        {"type": "trip_schedule_updated", "scheduleId": schedule.schedule_id, "status": schedule.status.value},
    )


def trip_started(schedule, *, driver_name: str, vehicle_name: str) -> tuple[str, str, dict[str, Any]]:
    return (
        f"Trip started by {driver_name}",
        f"• Vehicle: {vehicle_name}\n• Destinations: {_destinations_line(schedule.destinations)}",
        {"type": "trip_started", "scheduleId": schedule.schedule_id},
    )


def trip_ended(schedule, *, driver_name: str, vehicle_name: str) -> tuple[str, str, dict[str, Any]]:
    duration = "-"
    if schedule.actual_start_time and schedule.actual_end_time:
        duration = format_duration(hours_between(schedule.actual_start_time, schedule.actual_end_time))
    distance = schedule.distance_traveled if schedule.distance_traveled is not None else "-"
    return (
        f"Trip ended by {driver_name}",
        f"• Vehicle: {vehicle_name}\n• Destinations: {_destinations_line(schedule.destinations)}\n"
        f"• Distance: {distance}km ({duration})",
        {"type": "trip_ended", "scheduleId": schedule.schedule_id},
    )

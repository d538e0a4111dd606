from datetime import date, datetime, timedelta
from types import SimpleNamespace

import pytest

from src.fleet_duty.fleet_duty.core.enums import ConflictReason, Role, TripStatus
from src.fleet_duty.fleet_duty.core.exceptions import ConflictError, NotFoundError, ValidationError
from src.fleet_duty.fleet_duty.schedules.model import Destination, ScheduleDraft, ScheduleFilters, SchedulePatch
from tests.fakes import FakeTripRequest, build_world, make_user, make_vehicle

CREATOR = 12


def at(hour, minute=0, day=2):
    return datetime(2026, 3, day, hour, minute)


def _world():
    return build_world(
        users=[
            make_user(1, Role.DRIVER, name="Ali", tokens=["drv-1"]),
            make_user(2, Role.DRIVER, name="Sara", tokens=["drv-2"]),
            make_user(10, Role.ADMIN, tokens=["adm-10"]),
            make_user(CREATOR, Role.SCHEDULER, tokens=["sch-12"]),
            make_user(20, Role.REQUESTOR, tokens=["req-20"]),
        ],
        vehicles=[make_vehicle(5, name="Van"), make_vehicle(6, name="Sedan"), make_vehicle(7, in_maintenance=True)],
        requests=[FakeTripRequest(100, requestor_id=20), FakeTripRequest(101, requestor_id=20)],
    )


def draft(driver_id=1, vehicle_id=5, start=None, arrival=None, request_id=None, **kw):
    start = start or at(10)
    arrival = arrival or start + timedelta(hours=2)
    return ScheduleDraft(
        driver_id=driver_id,
        vehicle_id=vehicle_id,
        destinations=[
            Destination(trip_start_time=start, trip_approx_arrival_time=arrival, request_id=request_id, destination="Airport")
        ],
        **kw,
    )


def test_create_schedule_derives_window_and_links_requests():
    w = _world()
    data = ScheduleDraft(
        driver_id=1,
        vehicle_id=5,
        destinations=[
            Destination(trip_start_time=at(10), trip_approx_arrival_time=at(11), request_id=100),
            Destination(trip_start_time=at(11, 30), trip_approx_arrival_time=at(13), request_id=101),
        ],
        start_odometer=1200,
    )
    schedule = w.manager.create_schedule(data, CREATOR, now=at(8))

    assert schedule.status == TripStatus.SCHEDULED
    assert schedule.trip_start_time == at(10)
    assert schedule.trip_approx_arrival_time == at(13)
    assert schedule.created_by == CREATOR
    assert w.manager.get_schedule(schedule.schedule_id) == schedule
    assert w.trip_requests.requests[100].status == "scheduled"
    assert w.trip_requests.requests[101].linked_schedule_id == schedule.schedule_id


def test_create_schedule_notifies_driver_requestors_and_staff_except_creator():
    w = _world()
    w.manager.create_schedule(draft(request_id=100), CREATOR, now=at(8))

    tokens = [d["tokens"] for d in w.transport.deliveries]
    assert tokens == [["drv-1"], ["req-20"], ["adm-10"]]
    assert set(w.transport.titles()) == {"Trip Scheduled"}


def test_create_schedule_requires_destinations_and_active_resources():
    w = _world()
    with pytest.raises(ValidationError):
        w.manager.create_schedule(ScheduleDraft(driver_id=1, vehicle_id=5, destinations=[]), CREATOR, now=at(8))
    with pytest.raises(ValidationError):
        w.manager.create_schedule(draft(start=at(12), arrival=at(11)), CREATOR, now=at(8))
    with pytest.raises(NotFoundError):
        w.manager.create_schedule(draft(driver_id=99), CREATOR, now=at(8))
    with pytest.raises(NotFoundError):
        w.manager.create_schedule(draft(driver_id=10), CREATOR, now=at(8))
    with pytest.raises(NotFoundError):
        w.manager.create_schedule(draft(vehicle_id=7), CREATOR, now=at(8))
    with pytest.raises(ValidationError):
        w.manager.create_schedule(draft(start_odometer=-1), CREATOR, now=at(8))


def test_overlapping_schedule_for_same_driver_or_vehicle_is_rejected():
    w = _world()
    w.manager.create_schedule(draft(driver_id=1, vehicle_id=5, start=at(10)), CREATOR, now=at(8))

    with pytest.raises(ConflictError) as exc:
        w.manager.create_schedule(draft(driver_id=1, vehicle_id=6, start=at(11)), CREATOR, now=at(8))
    assert exc.value.reason == ConflictReason.OVERLAPPING_SCHEDULE.value

    with pytest.raises(ConflictError):
        w.manager.create_schedule(draft(driver_id=2, vehicle_id=5, start=at(11)), CREATOR, now=at(8))

    w.manager.create_schedule(draft(driver_id=2, vehicle_id=6, start=at(11)), CREATOR, now=at(8))
    w.manager.create_schedule(draft(driver_id=1, vehicle_id=5, start=at(12)), CREATOR, now=at(8))


def test_schedule_without_arrival_blocks_the_default_window():
    w = _world()

    def open_ended(vehicle_id, start):
        return ScheduleDraft(driver_id=1, vehicle_id=vehicle_id, destinations=[Destination(trip_start_time=start)])

    w.manager.create_schedule(open_ended(5, at(10)), CREATOR, now=at(8))

    with pytest.raises(ConflictError) as exc:
        w.manager.create_schedule(open_ended(6, at(10)), CREATOR, now=at(8))
    assert exc.value.reason == ConflictReason.OVERLAPPING_SCHEDULE.value
    with pytest.raises(ConflictError):
        w.manager.create_schedule(draft(driver_id=1, vehicle_id=6, start=at(13, 30)), CREATOR, now=at(8))

    w.manager.create_schedule(draft(driver_id=1, vehicle_id=6, start=at(14)), CREATOR, now=at(8))


def test_overlap_uses_latest_arrival_not_last_listed_stop():
    w = _world()
    data = ScheduleDraft(
        driver_id=1,
        vehicle_id=5,
        destinations=[
            Destination(trip_start_time=at(10), trip_approx_arrival_time=at(15)),
            Destination(trip_start_time=at(11), trip_approx_arrival_time=at(12)),
        ],
    )
    w.manager.create_schedule(data, CREATOR, now=at(8))

    with pytest.raises(ConflictError) as exc:
        w.manager.create_schedule(draft(driver_id=1, vehicle_id=6, start=at(13)), CREATOR, now=at(8))
    assert exc.value.reason == ConflictReason.OVERLAPPING_SCHEDULE.value


def test_request_cannot_be_scheduled_twice():
    w = _world()
    w.manager.create_schedule(draft(request_id=100), CREATOR, now=at(8))
    with pytest.raises(ConflictError) as exc:
        w.manager.create_schedule(draft(driver_id=2, vehicle_id=6, request_id=100), CREATOR, now=at(8))
    assert exc.value.reason == ConflictReason.REQUEST_ALREADY_SCHEDULED.value


def test_scheduled_cannot_jump_to_completed():
    w = _world()
    schedule = w.manager.create_schedule(draft(), CREATOR, now=at(8))
    with pytest.raises(ValidationError):
        w.manager.update_schedule(schedule.schedule_id, SchedulePatch(status=TripStatus.COMPLETED), CREATOR, now=at(9))
    assert w.manager.get_schedule(schedule.schedule_id).status == TripStatus.SCHEDULED


def test_start_requires_driver_on_duty():
    w = _world()
    schedule = w.manager.create_schedule(draft(), CREATOR, now=at(8))
    with pytest.raises(ConflictError) as exc:
        w.manager.update_schedule(schedule.schedule_id, SchedulePatch(status=TripStatus.IN_PROGRESS), 1, now=at(10))
    assert exc.value.reason == ConflictReason.DRIVER_NOT_ON_DUTY.value


def test_start_trip_stamps_actual_start_and_notifies():
    w = _world()
    schedule = w.manager.create_schedule(draft(request_id=100), CREATOR, now=at(8))
    w.tracker.punch_in(1, now=at(9))
    w.transport.deliveries.clear()

    started = w.manager.update_schedule(
        schedule.schedule_id, SchedulePatch(status=TripStatus.IN_PROGRESS), 1, now=at(10, 5)
    )

    assert started.status == TripStatus.IN_PROGRESS
    assert started.actual_start_time == at(10, 5)
    assert started.version == schedule.version + 1
    assert w.transport.titles() == ["Trip started by Ali", "Trip started by Ali"]
    assert [d["tokens"] for d in w.transport.deliveries] == [["adm-10"], ["req-20"]]


def test_start_rejected_when_vehicle_already_on_another_trip():
    w = _world()
    first = w.manager.create_schedule(draft(driver_id=1, vehicle_id=5, start=at(10)), CREATOR, now=at(8))
    second = w.manager.create_schedule(draft(driver_id=2, vehicle_id=5, start=at(15)), CREATOR, now=at(8))
    w.tracker.punch_in(1, now=at(9))
    w.tracker.punch_in(2, now=at(9))
    w.manager.update_schedule(first.schedule_id, SchedulePatch(status=TripStatus.IN_PROGRESS), 1, now=at(10))

    with pytest.raises(ConflictError) as exc:
        w.manager.update_schedule(second.schedule_id, SchedulePatch(status=TripStatus.IN_PROGRESS), 2, now=at(10, 30))
    assert exc.value.reason == ConflictReason.RESOURCE_BUSY.value


def test_start_write_refuses_a_vehicle_taken_after_the_check():
    w = _world()
    first = w.manager.create_schedule(draft(driver_id=1, vehicle_id=5, start=at(10)), CREATOR, now=at(8))
    second = w.manager.create_schedule(draft(driver_id=2, vehicle_id=5, start=at(15)), CREATOR, now=at(8))
    w.tracker.punch_in(1, now=at(9))
    w.tracker.punch_in(2, now=at(9))
    w.manager.update_schedule(first.schedule_id, SchedulePatch(status=TripStatus.IN_PROGRESS), 1, now=at(10))
    # a read from another process that has not seen the first trip start yet
    w.schedules.find_in_progress_for = lambda **kwargs: []

    with pytest.raises(ConflictError) as exc:
        w.manager.update_schedule(second.schedule_id, SchedulePatch(status=TripStatus.IN_PROGRESS), 2, now=at(10, 30))
    assert exc.value.reason == ConflictReason.RESOURCE_BUSY.value
    assert w.manager.get_schedule(second.schedule_id).status == TripStatus.SCHEDULED


def test_start_write_refuses_a_driver_who_punched_out_after_the_check():
    w = _world()
    schedule = w.manager.create_schedule(draft(), CREATOR, now=at(8))
    w.tracker.punch_in(1, now=at(9))
    w.tracker.punch_out(1, now=at(9, 50))
    w.manager._tracker = SimpleNamespace(is_on_duty=lambda driver_id, now=None: True)

    with pytest.raises(ConflictError) as exc:
        w.manager.update_schedule(schedule.schedule_id, SchedulePatch(status=TripStatus.IN_PROGRESS), 1, now=at(10))
    assert exc.value.reason == ConflictReason.DRIVER_NOT_ON_DUTY.value
    assert w.manager.get_schedule(schedule.schedule_id).status == TripStatus.SCHEDULED


def test_complete_trip_derives_distance_from_odometers():
    w = _world()
    schedule = w.manager.create_schedule(draft(start_odometer=1000), CREATOR, now=at(8))
    w.tracker.punch_in(1, now=at(9))
    w.manager.update_schedule(schedule.schedule_id, SchedulePatch(status=TripStatus.IN_PROGRESS), 1, now=at(10))

    with pytest.raises(ValidationError):
        w.manager.update_schedule(
            schedule.schedule_id, SchedulePatch(status=TripStatus.COMPLETED, end_odometer=900), 1, now=at(12)
        )

    done = w.manager.update_schedule(
        schedule.schedule_id, SchedulePatch(status=TripStatus.COMPLETED, end_odometer=1042.5), 1, now=at(12)
    )
    assert done.status == TripStatus.COMPLETED
    assert done.actual_end_time == at(12)
    assert done.distance_traveled == pytest.approx(42.5)
    assert "Trip ended by Ali" in w.transport.titles()

    # the driver may punch out once the trip is over
    w.tracker.punch_out(1, now=at(12, 30))


def test_completed_schedule_is_immutable():
    w = _world()
    schedule = w.manager.create_schedule(draft(), CREATOR, now=at(8))
    w.tracker.punch_in(1, now=at(9))
    w.manager.update_schedule(schedule.schedule_id, SchedulePatch(status=TripStatus.IN_PROGRESS), 1, now=at(10))
    w.manager.update_schedule(schedule.schedule_id, SchedulePatch(status=TripStatus.COMPLETED), 1, now=at(11))

    with pytest.raises(ValidationError):
        w.manager.update_schedule(schedule.schedule_id, SchedulePatch(vehicle_id=6), CREATOR, now=at(12))
    with pytest.raises(ValidationError):
        w.manager.update_schedule(schedule.schedule_id, SchedulePatch(status=TripStatus.CANCELLED), CREATOR, now=at(12))


def test_reassignment_rejected_while_in_progress():
    w = _world()
    schedule = w.manager.create_schedule(draft(), CREATOR, now=at(8))
    w.tracker.punch_in(1, now=at(9))
    w.manager.update_schedule(schedule.schedule_id, SchedulePatch(status=TripStatus.IN_PROGRESS), 1, now=at(10))

    with pytest.raises(ValidationError):
        w.manager.update_schedule(schedule.schedule_id, SchedulePatch(driver_id=2), CREATOR, now=at(10, 30))


def test_cancel_stamps_actor_and_releases_requests():
    w = _world()
    schedule = w.manager.create_schedule(draft(request_id=100), CREATOR, now=at(8))
    w.transport.deliveries.clear()

    cancelled = w.manager.update_schedule(
        schedule.schedule_id, SchedulePatch(status=TripStatus.CANCELLED), CREATOR, now=at(9)
    )

    assert cancelled.status == TripStatus.CANCELLED
    assert cancelled.cancelled_by == CREATOR
    assert cancelled.cancelled_at == at(9)
    assert w.trip_requests.requests[100].status == "pending"
    assert w.transport.deliveries[0]["title"] == "Trip Schedule Updated"
    assert w.transport.deliveries[0]["tokens"] == ["drv-1"]


def test_reassigning_driver_checks_overlap_and_notifies_both_drivers():
    w = _world()
    w.manager.create_schedule(draft(driver_id=2, vehicle_id=6, start=at(10)), CREATOR, now=at(8))
    schedule = w.manager.create_schedule(draft(driver_id=1, vehicle_id=5, start=at(11)), CREATOR, now=at(8))

    with pytest.raises(ConflictError):
        w.manager.update_schedule(schedule.schedule_id, SchedulePatch(driver_id=2), CREATOR, now=at(9))

    w.transport.deliveries.clear()
    moved = w.manager.update_schedule(
        schedule.schedule_id,
        SchedulePatch(driver_id=2, destinations=[Destination(trip_start_time=at(14), trip_approx_arrival_time=at(15))]),
        CREATOR,
        now=at(9),
    )
    assert moved.driver_id == 2
    assert moved.trip_start_time == at(14)
    assert sorted(w.transport.deliveries[0]["tokens"]) == ["drv-1", "drv-2"]


def test_update_unknown_schedule_is_not_found():
    w = _world()
    with pytest.raises(NotFoundError):
        w.manager.update_schedule(404, SchedulePatch(status=TripStatus.CANCELLED), CREATOR, now=at(9))


def test_delete_schedule():
    w = _world()
    schedule = w.manager.create_schedule(draft(request_id=100), CREATOR, now=at(8))
    w.manager.delete_schedule(schedule.schedule_id, CREATOR, now=at(9))

    with pytest.raises(NotFoundError):
        w.manager.get_schedule(schedule.schedule_id)
    assert w.trip_requests.requests[100].status == "pending"


def test_delete_in_progress_schedule_is_conflict():
    w = _world()
    schedule = w.manager.create_schedule(draft(), CREATOR, now=at(8))
    w.tracker.punch_in(1, now=at(9))
    w.manager.update_schedule(schedule.schedule_id, SchedulePatch(status=TripStatus.IN_PROGRESS), 1, now=at(10))

    with pytest.raises(ConflictError) as exc:
        w.manager.delete_schedule(schedule.schedule_id, CREATOR, now=at(10, 30))
    assert exc.value.reason == ConflictReason.SCHEDULE_IN_PROGRESS.value


def test_get_schedules_v2_filters_and_pages():
    w = _world()
    a = w.manager.create_schedule(draft(driver_id=1, vehicle_id=5, start=at(10)), CREATOR, now=at(8))
    b = w.manager.create_schedule(draft(driver_id=2, vehicle_id=6, start=at(10, 0, day=3)), CREATOR, now=at(8))
    w.manager.create_schedule(draft(driver_id=1, vehicle_id=5, start=at(10, 0, day=4)), CREATOR, now=at(8))
    w.manager.update_schedule(a.schedule_id, SchedulePatch(status=TripStatus.CANCELLED), CREATOR, now=at(9))

    page = w.manager.get_schedules_v2(ScheduleFilters(statuses=[TripStatus.SCHEDULED]))
    assert page.total == 2

    page = w.manager.get_schedules_v2(ScheduleFilters(driver_ids=[2]))
    assert [s.schedule_id for s in page.items] == [b.schedule_id]

    page = w.manager.get_schedules_v2(ScheduleFilters(date_from=date(2026, 3, 2), date_to=date(2026, 3, 3)))
    assert page.total == 2

    page = w.manager.get_schedules_v2(ScheduleFilters(page=2, limit=2))
    assert page.total == 3
    assert len(page.items) == 1


def test_get_schedules_v2_validates_range_and_paging():
    w = _world()
    with pytest.raises(ValidationError):
        w.manager.get_schedules_v2(ScheduleFilters(date_from=date(2026, 3, 3), date_to=date(2026, 3, 3)))
    with pytest.raises(ValidationError):
        w.manager.get_schedules_v2(ScheduleFilters(date_from=date(2026, 3, 3), date_to=date(2026, 3, 2)))
    with pytest.raises(ValidationError):
        w.manager.get_schedules_v2(ScheduleFilters(page=0))

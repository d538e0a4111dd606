from datetime import date, datetime, timedelta

import pytest

from src.fleet_duty.fleet_duty.attendance.factory import HoursAccountingFactory
from src.fleet_duty.fleet_duty.attendance.model import AttendanceRecord, Punch
from src.fleet_duty.fleet_duty.attendance.strategies.split_days_strategy import SplitAcrossDaysAccounting
from src.fleet_duty.fleet_duty.attendance.strategies.start_day_strategy import StartDayAccounting
from src.fleet_duty.fleet_duty.core.enums import ConflictReason, PunchState, Role
from src.fleet_duty.fleet_duty.core.exceptions import ConflictError, ValidationError
from tests.fakes import build_world, make_user

DAY = date(2026, 3, 2)
NEXT = DAY + timedelta(days=1)


def closed_punch(start, end):
    return Punch(in_time=start).closed(out_time=end)


def test_start_day_credits_whole_duration_to_first_day():
    punch = closed_punch(datetime(2026, 3, 2, 22), datetime(2026, 3, 3, 2, 30))
    assert StartDayAccounting().credit(punch) == {DAY: pytest.approx(4.5)}


def test_split_credits_each_calendar_day():
    punch = closed_punch(datetime(2026, 3, 2, 22), datetime(2026, 3, 4, 3))
    credits = SplitAcrossDaysAccounting().credit(punch)
    assert credits[DAY] == pytest.approx(2.0)
    assert credits[NEXT] == pytest.approx(24.0)
    assert credits[DAY + timedelta(days=2)] == pytest.approx(3.0)
    assert sum(credits.values()) == pytest.approx(punch.duration)


def test_open_punch_earns_no_credit():
    punch = Punch(in_time=datetime(2026, 3, 2, 9))
    assert StartDayAccounting().credit(punch) == {}
    assert SplitAcrossDaysAccounting().credit(punch) == {}


def test_record_total_adds_carried_hours():
    record = AttendanceRecord(
        attendance_id=1,
        driver_id=1,
        work_date=NEXT,
        punches=(closed_punch(datetime(2026, 3, 3, 8), datetime(2026, 3, 3, 10)),),
        carried_hours=1.5,
    )
    assert SplitAcrossDaysAccounting().record_total(record) == pytest.approx(3.5)


@pytest.mark.parametrize(
    "name, expected",
    [
        (None, StartDayAccounting),
        ("start_day", StartDayAccounting),
        ("Split", SplitAcrossDaysAccounting),
        ("split-across-days", SplitAcrossDaysAccounting),
    ],
)
def test_factory_resolves_names(name, expected):
    assert isinstance(HoursAccountingFactory().for_name(name), expected)


def test_factory_rejects_unknown_name():
    with pytest.raises(ValidationError):
        HoursAccountingFactory().for_name("weekly")


def test_split_tracker_carries_hours_into_next_day_record():
    w = build_world(users=[make_user(1, Role.DRIVER)], accounting=SplitAcrossDaysAccounting())
    w.tracker.punch_in(1, now=datetime(2026, 3, 2, 22))
    record = w.tracker.punch_out(1, now=datetime(2026, 3, 3, 2))

    assert record.work_date == DAY
    assert record.total_hours == pytest.approx(2.0)
    carried = w.attendance.get_for_driver_and_date(1, NEXT)
    assert carried.carried_hours == pytest.approx(2.0)
    assert carried.total_hours == pytest.approx(2.0)
    assert carried.status == PunchState.PUNCHED_OUT

    status = w.tracker.get_punch_status(1, now=datetime(2026, 3, 3, 3))
    assert status.is_punched_in is False
    assert status.status == PunchState.PUNCHED_OUT
    assert status.work_date == NEXT
    with pytest.raises(ConflictError) as exc:
        w.tracker.punch_out(1, now=datetime(2026, 3, 3, 3))
    assert exc.value.reason == ConflictReason.ALREADY_PUNCHED_OUT.value

    # the carried record is reused when the driver punches in again that day
    w.tracker.punch_in(1, now=datetime(2026, 3, 3, 8))
    later = w.tracker.punch_out(1, now=datetime(2026, 3, 3, 10))
    assert later.work_date == NEXT
    assert later.total_hours == pytest.approx(4.0)
    assert w.attendance.count_for_date(NEXT) == 1


def test_start_day_tracker_keeps_whole_duration_on_first_record():
    w = build_world(users=[make_user(1, Role.DRIVER)], accounting=StartDayAccounting())
    w.tracker.punch_in(1, now=datetime(2026, 3, 2, 22))
    record = w.tracker.punch_out(1, now=datetime(2026, 3, 3, 2))

    assert record.total_hours == pytest.approx(4.0)
    assert w.attendance.get_for_driver_and_date(1, NEXT) is None
